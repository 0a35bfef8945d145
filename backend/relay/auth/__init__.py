"""Credential record and bearer token source."""

from .credentials import CredentialStore, Credentials
from .token_source import TokenSource

__all__ = ["CredentialStore", "Credentials", "TokenSource"]
