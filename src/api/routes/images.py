"""
Image upload and gallery removal endpoints.

Upload:  POST /api/v1/images         multipart files -> public URLs
Removal: POST /api/v1/images/remove  gallery items the host deleted

Removal doesn't call the storage service directly. It is emitted on the
host's event bus as a "remove" event, and the RemoveSyncListener that
was registered at startup does the remote cleanup. Hosts without the bus
get a no-op.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, File, HTTPException, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.storage.errors import StorageError
from ...core.storage.models import RemovedItem, RemoveSummary, UploadItem
from ...core.storage.naming import split_name
from ...core.storage.service import UPLOAD_ERROR_TITLE
from ...core.storage.sync import REMOVE_EVENT
from ..dependencies import (
    AuthenticatedUser,
    EventBusDep,
    SettingsDep,
    StorageServiceDep,
)
from ..errors import storage_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class ImageResult(BaseModel):
    """Outcome for one uploaded file."""
    file_name: str = Field(description="Original file name")
    storage_key: Optional[str] = Field(default=None, description="Key in the bucket")
    url: Optional[str] = Field(default=None, description="Public URL")
    error: Optional[str] = Field(default=None, description="Why the upload failed")


class ImageUploadResponse(BaseModel):
    """Response after uploading a batch of images."""
    uploaded: int = Field(description="Files stored successfully")
    failed: int = Field(description="Files that failed to upload")
    items: list[ImageResult] = Field(description="Per-file results, in request order")


class RemovedItemPayload(BaseModel):
    """A gallery item the host removed."""
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(description="Uploader that produced the item")
    img_url: Optional[str] = Field(default=None, alias="imgUrl", description="Public URL")
    file_name: str = Field(default="", alias="fileName", description="Display name")


class RemoveRequest(BaseModel):
    items: list[RemovedItemPayload] = Field(description="Removed gallery items")


class FailedRemoval(BaseModel):
    storage_key: str = Field(description="Storage key, or the URL when no key was derived")
    error: str


class RemoveResponse(BaseModel):
    enabled: bool = Field(description="False when removal sync isn't installed")
    deleted: list[str] = Field(default_factory=list, description="Storage keys deleted")
    skipped: list[str] = Field(default_factory=list, description="Items not handled")
    failed: list[FailedRemoval] = Field(default_factory=list, description="Items whose delete failed")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ImageUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload images",
    description="Upload one or more images to the bucket and get their public URLs",
)
async def upload_images(
    files: Annotated[list[UploadFile], File(description="Images to upload")],
    api_key: AuthenticatedUser = None,
    service: StorageServiceDep = None,
    settings: SettingsDep = None,
) -> ImageUploadResponse:
    """
    Upload a batch of images.

    Files are uploaded one after another. A file that fails is reported
    with its error while the rest of the batch carries on; failing to
    authorize or to get an upload URL fails the whole request.
    """
    if not files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one file is required"
        )

    max_size_bytes = settings.max_upload_size_mb * 1024 * 1024
    items: list[UploadItem] = []
    total_size = 0

    for upload in files:
        payload = await upload.read()
        total_size += len(payload)

        if total_size > max_size_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"Total upload size exceeds {settings.max_upload_size_mb}MB"
            )

        name = upload.filename or "upload"
        items.append(UploadItem(
            payload=payload,
            original_name=name,
            extension=split_name(name)[1],
        ))

    logger.info(
        "Processing image upload",
        extra={"file_count": len(items), "total_size_bytes": total_size}
    )

    try:
        await service.upload_batch(items)
    except StorageError as e:
        raise storage_http_error(e, UPLOAD_ERROR_TITLE)

    results = [
        ImageResult(
            file_name=item.original_name,
            storage_key=item.storage_key,
            url=item.url,
            error=item.error,
        )
        for item in items
    ]
    uploaded = sum(1 for item in items if item.succeeded)

    return ImageUploadResponse(
        uploaded=uploaded,
        failed=len(items) - uploaded,
        items=results,
    )


@router.post(
    "/remove",
    response_model=RemoveResponse,
    status_code=status.HTTP_200_OK,
    summary="Sync gallery removals",
    description="Delete the remote objects behind gallery items the host removed",
)
async def remove_images(
    request: RemoveRequest,
    api_key: AuthenticatedUser = None,
    bus: EventBusDep = None,
) -> RemoveResponse:
    """
    Emit a "remove" event for the batch.

    Per-item failures are reported in the response, never as an error
    status: one bad item can't fail the batch.
    """
    if bus is None:
        logger.info("Removal sync not installed, ignoring batch")
        return RemoveResponse(enabled=False)

    removed = [
        RemovedItem(type=item.type, img_url=item.img_url, file_name=item.file_name)
        for item in request.items
    ]

    results = await bus.emit(REMOVE_EVENT, removed)
    summaries = [result for result in results if isinstance(result, RemoveSummary)]

    if not summaries:
        return RemoveResponse(enabled=False)

    response = RemoveResponse(enabled=True)
    for summary in summaries:
        response.deleted.extend(summary.deleted)
        response.skipped.extend(summary.skipped)
        response.failed.extend(
            FailedRemoval(storage_key=key, error=error) for key, error in summary.failed
        )
    return response
