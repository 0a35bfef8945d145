"""Protocol translation layer.

Translates Messages API requests into generate-content requests, races them
across backend endpoints, and translates the backend's event stream back.
"""

from .batch import BatchTranslator
from .client import EndpointRacer, RaceWinner, build_upstream_headers
from .errors import (
    ConfigurationError,
    RelayError,
    TokenRefreshError,
    TranslationAnomaly,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamOverloadedError,
    UpstreamRejectedError,
)
from .models import MessageResponse, MessagesRequest, ProviderRequest
from .schemas import normalize_tool_schema
from .streaming import StreamTranslator, encode_sse
from .translator import RequestTranslator, map_model

__all__ = [
    "BatchTranslator",
    "EndpointRacer",
    "RaceWinner",
    "build_upstream_headers",
    "RequestTranslator",
    "map_model",
    "StreamTranslator",
    "encode_sse",
    "normalize_tool_schema",
    "MessagesRequest",
    "MessageResponse",
    "ProviderRequest",
    "RelayError",
    "ConfigurationError",
    "TokenRefreshError",
    "UpstreamError",
    "UpstreamOverloadedError",
    "UpstreamRejectedError",
    "UpstreamConnectionError",
    "TranslationAnomaly",
]
