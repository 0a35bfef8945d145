"""Cloud Code relay.

Local Messages API endpoint backed by the Cloud Code generate-content API.
"""

__version__ = "1.0.0"
