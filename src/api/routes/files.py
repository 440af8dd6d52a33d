"""
Bucket file management endpoints.

GET    /api/v1/files                 one page of file names
DELETE /api/v1/files/{storage_key}   delete a file by its storage key
POST   /api/v1/files/delete-by-url   delete the file behind a public URL
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from ...core.storage.errors import StorageError
from ...core.storage.service import DELETE_ERROR_TITLE, LIST_ERROR_TITLE
from ..dependencies import AuthenticatedUser, SettingsDep, StorageServiceDep
from ..errors import storage_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


class FileEntry(BaseModel):
    file_id: str
    file_name: str
    size_bytes: int


class FileListResponse(BaseModel):
    count: int = Field(description="Files in this page")
    files: list[FileEntry]


class DeleteResponse(BaseModel):
    storage_key: str
    deleted: bool
    message: str


class DeleteByUrlRequest(BaseModel):
    url: str = Field(description="Public URL returned by the upload endpoint")


@router.get(
    "",
    response_model=FileListResponse,
    summary="List bucket files",
    description="Returns a single page of files, optionally under a prefix",
)
async def list_files(
    prefix: Annotated[Optional[str], Query(description="Only names starting with this")] = None,
    max_count: Annotated[Optional[int], Query(ge=1, le=1000)] = None,
    api_key: AuthenticatedUser = None,
    service: StorageServiceDep = None,
    settings: SettingsDep = None,
) -> FileListResponse:
    try:
        refs = await service.list_objects(
            prefix=prefix,
            max_count=max_count or settings.list_page_size,
        )
    except (StorageError, ValueError) as e:
        raise storage_http_error(e, LIST_ERROR_TITLE)

    return FileListResponse(
        count=len(refs),
        files=[
            FileEntry(file_id=ref.object_id, file_name=ref.storage_key, size_bytes=ref.size_bytes)
            for ref in refs
        ],
    )


@router.delete(
    "/{storage_key:path}",
    response_model=DeleteResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete a file by name",
)
async def delete_file(
    storage_key: str,
    api_key: AuthenticatedUser = None,
    service: StorageServiceDep = None,
) -> DeleteResponse:
    """Deleting a name that isn't in the bucket succeeds with "already absent"."""
    try:
        outcome = await service.delete_object(storage_key)
    except (StorageError, ValueError) as e:
        raise storage_http_error(e, DELETE_ERROR_TITLE)

    return DeleteResponse(
        storage_key=storage_key,
        deleted=outcome.deleted,
        message=outcome.message,
    )


@router.post(
    "/delete-by-url",
    response_model=DeleteResponse,
    summary="Delete a file by public URL",
)
async def delete_file_by_url(
    request: DeleteByUrlRequest,
    api_key: AuthenticatedUser = None,
    service: StorageServiceDep = None,
) -> DeleteResponse:
    try:
        outcome = await service.delete_by_url(request.url)
    except (StorageError, ValueError) as e:
        raise storage_http_error(e, DELETE_ERROR_TITLE)

    return DeleteResponse(
        storage_key=service.storage_key_for(request.url) or "",
        deleted=outcome.deleted,
        message=outcome.message,
    )
