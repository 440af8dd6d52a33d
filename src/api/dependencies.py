"""
FastAPI dependency injection.

Dependencies provide instances of services, clients, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests
- Configuration is centralized

Each dependency is a function that FastAPI calls when needed.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.events import EventBus
from ..core.storage.service import ObjectStorageService
from ..infrastructure.b2.client import B2Config, create_b2_client
from ..infrastructure.b2.mock import MockB2Requester

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Shared emulator so mock-mode uploads survive across requests
_mock_requester: Optional[MockB2Requester] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_mock_requester() -> MockB2Requester:
    """Shared in-memory emulator, created on first use."""
    global _mock_requester

    if _mock_requester is None:
        _mock_requester = MockB2Requester()
        logger.info("Created shared mock B2 requester for session")
    return _mock_requester


def reset_mock_requester() -> None:
    """Drop the shared emulator (tests call this between cases)."""
    global _mock_requester
    _mock_requester = None


def build_storage_service(settings: Settings) -> ObjectStorageService:
    """
    Wire a storage service from settings.

    The service is cheap and stateless (every operation authorizes its own
    session), so a new one per request is fine.
    """
    config = B2Config(
        authorize_base_url=settings.b2_api_base_url,
        control_timeout_seconds=settings.b2_control_timeout_seconds,
        upload_timeout_seconds=settings.b2_upload_timeout_seconds,
    )

    if settings.b2_mock_mode:
        client = create_b2_client(config=config, requester=get_mock_requester())
        logger.debug("Using shared mock B2 requester")
    else:
        client = create_b2_client(config=config)

    return ObjectStorageService(gateway=client, options=settings.storage_options())


def get_storage_service(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ObjectStorageService:
    return build_storage_service(settings)


def get_event_bus(request: Request) -> Optional[EventBus]:
    """The host's event bus, or None when removal sync isn't installed."""
    return getattr(request.app.state, "event_bus", None)


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
StorageServiceDep = Annotated[ObjectStorageService, Depends(get_storage_service)]
EventBusDep = Annotated[Optional[EventBus], Depends(get_event_bus)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
