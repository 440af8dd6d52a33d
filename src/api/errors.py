"""
Mapping from storage errors to HTTP responses.

The response detail is the short title/body pair the user sees. Status
codes and remote error codes stay in the logs.
"""

from fastapi import HTTPException, status

from ..core.storage.errors import ConfigError, StorageError


def storage_http_error(error: Exception, title: str) -> HTTPException:
    """Translate a storage-layer exception into an HTTPException."""
    if isinstance(error, ConfigError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(error, StorageError):
        # the remote API failed us, not the client
        code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(error, ValueError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return HTTPException(
        status_code=code,
        detail={"title": title, "body": str(error)},
    )
