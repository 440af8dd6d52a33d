"""
Backblaze B2 native API client.

Implements the StorageGateway protocol from core.storage.service.
"""

from .client import B2Client, B2Config, HttpxRequester, create_b2_client, normalize_response
from .mock import MockB2Requester

__all__ = [
    "B2Client",
    "B2Config",
    "HttpxRequester",
    "MockB2Requester",
    "create_b2_client",
    "normalize_response",
]
