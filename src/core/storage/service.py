"""
Upload and delete orchestration.

This is where the remote steps are chained together:

    upload: authorize -> upload lease -> (name, content type) -> upload -> URL
    delete: authorize -> locate by name -> delete by id

The service doesn't know it's talking to B2 over HTTP. It depends on the
StorageGateway protocol, so tests can drive it with a fake and the real
client lives in the infrastructure layer.

Every public operation authorizes its own session. Nothing is cached
between batches, so two batches running at once share no state.
"""

import logging
from typing import Optional, Protocol

from .errors import ConfigError, StorageError, UploadError
from .models import (
    Credentials,
    DeleteOutcome,
    Session,
    StorageOptions,
    StoredObjectMeta,
    StoredObjectRef,
    UploadItem,
    UploadLease,
)
from .naming import build_url, content_type, split_name, storage_key_from_url, unique_key

logger = logging.getLogger(__name__)

UPLOAD_ERROR_TITLE = "B2 Upload Error"
DELETE_ERROR_TITLE = "B2 Delete Error"
LIST_ERROR_TITLE = "B2 List Error"

ALREADY_ABSENT = "already absent"


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class StorageGateway(Protocol):
    """
    The remote steps the service chains together.

    Each method raises the StorageError subclass named for its step.
    """

    async def authorize(self, credentials: Credentials) -> Session:
        ...

    async def get_upload_lease(self, session: Session, bucket_id: str) -> UploadLease:
        ...

    async def upload(
        self,
        lease: UploadLease,
        payload: bytes,
        storage_key: str,
        content_type: str,
    ) -> StoredObjectMeta:
        ...

    async def find_by_name(
        self,
        session: Session,
        bucket_id: str,
        storage_key: str,
    ) -> Optional[StoredObjectRef]:
        """Exact-name match, or None when the object isn't there."""
        ...

    async def delete_by_ref(self, session: Session, ref: StoredObjectRef) -> DeleteOutcome:
        ...

    async def list_objects(
        self,
        session: Session,
        bucket_id: str,
        prefix: Optional[str] = None,
        max_count: int = 100,
    ) -> list[StoredObjectRef]:
        ...


class Notifier(Protocol):
    """Short human-readable messages for the host's user."""

    def notify(self, title: str, body: str) -> None:
        ...


class LoggingNotifier:
    """Default notifier for hosts without a notification surface."""

    def notify(self, title: str, body: str) -> None:
        logger.warning("Notification", extra={"title": title, "body": body})


# ---------------------------------------------------------------------------
# Storage Service
# ---------------------------------------------------------------------------

class ObjectStorageService:
    """
    Uploads batches of files and deletes objects by name.

    Batch policy: a failure to authorize or to obtain an upload lease
    aborts the whole batch. A single file failing to upload is recorded on
    that item and the loop moves on; the lease it used is dropped and a
    fresh one is requested for the next file, since the remote side may
    have invalidated it.
    """

    def __init__(
        self,
        gateway: StorageGateway,
        options: StorageOptions,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._gateway = gateway
        self._options = options
        self._notifier = notifier or LoggingNotifier()

    @property
    def options(self) -> StorageOptions:
        return self._options

    async def upload_batch(self, items: list[UploadItem]) -> list[UploadItem]:
        """
        Upload every item sequentially and annotate it with its public URL.

        Returns the same list. Raises AuthError/LeaseError (after notifying
        the host) when the batch can't proceed at all.
        """
        self._ensure_configured(UPLOAD_ERROR_TITLE)
        bucket = self._options.bucket

        try:
            session = await self._gateway.authorize(self._options.credentials)
            lease: Optional[UploadLease] = None

            for item in items:
                if item.payload is None:
                    logger.error(
                        "No payload for file",
                        extra={"file_name": item.original_name}
                    )
                    item.error = "No payload provided"
                    continue

                if lease is None:
                    lease = await self._gateway.get_upload_lease(session, bucket.bucket_id)

                if not await self._upload_item(session, lease, item):
                    lease = None

        except StorageError as e:
            logger.error(
                "Upload batch aborted",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            self._notifier.notify(UPLOAD_ERROR_TITLE, str(e))
            raise

        failed = [item for item in items if item.error is not None]
        if failed:
            self._notifier.notify(
                UPLOAD_ERROR_TITLE,
                f"{len(failed)} of {len(items)} files failed to upload",
            )

        return items

    async def _upload_item(
        self,
        session: Session,
        lease: UploadLease,
        item: UploadItem,
    ) -> bool:
        """Upload one item; False means the lease must not be reused."""
        storage_key = unique_key(item.original_name, self._options.path_prefix)
        extension = item.extension or split_name(item.original_name)[1]

        logger.info("Preparing upload", extra={"storage_key": storage_key})

        try:
            await self._gateway.upload(
                lease,
                item.payload,
                storage_key,
                content_type(extension),
            )
        except UploadError as e:
            logger.error(
                "Failed to upload file",
                extra={"file_name": item.original_name, "error": str(e)}
            )
            item.error = str(e)
            return False

        item.storage_key = storage_key
        item.url = build_url(
            session,
            self._options.bucket.bucket_name,
            storage_key,
            self._options.custom_domain,
        )
        item.error = None

        logger.info(
            "Uploaded file",
            extra={"url": item.url, "size_bytes": item.size_bytes}
        )
        return True

    async def delete_object(self, storage_key: str, notify: bool = True) -> DeleteOutcome:
        """
        Delete an object by storage key.

        Deletion is idempotent: when the key isn't in the bucket the result
        is a success with an "already absent" message and no delete call
        is made.
        """
        if not storage_key or not storage_key.strip():
            raise ValueError("Storage key is empty")

        self._ensure_configured(DELETE_ERROR_TITLE)
        bucket_id = self._options.bucket.bucket_id

        logger.info("Deleting object", extra={"storage_key": storage_key})

        try:
            session = await self._gateway.authorize(self._options.credentials)
            ref = await self._gateway.find_by_name(session, bucket_id, storage_key)

            if ref is None:
                logger.warning(
                    "Object not found, nothing to delete",
                    extra={"storage_key": storage_key}
                )
                return DeleteOutcome(deleted=True, message=ALREADY_ABSENT)

            outcome = await self._gateway.delete_by_ref(session, ref)

        except StorageError as e:
            logger.error(
                "Failed to delete object",
                extra={"storage_key": storage_key, "error": str(e)}
            )
            if notify:
                self._notifier.notify(DELETE_ERROR_TITLE, str(e))
            raise

        logger.info(
            "Deleted object",
            extra={"storage_key": storage_key, "message": outcome.message}
        )
        return outcome

    async def delete_by_url(self, url: str) -> DeleteOutcome:
        """Delete the object behind a URL previously returned by upload_batch."""
        storage_key = self.storage_key_for(url)
        if storage_key is None:
            raise ValueError(f"Cannot derive storage key from URL: {url}")
        return await self.delete_object(storage_key)

    def storage_key_for(self, url: Optional[str]) -> Optional[str]:
        return storage_key_from_url(
            url,
            self._options.bucket.bucket_name,
            self._options.custom_domain,
        )

    async def list_objects(
        self,
        prefix: Optional[str] = None,
        max_count: int = 100,
    ) -> list[StoredObjectRef]:
        """One page of objects in the bucket, optionally under a prefix."""
        self._ensure_configured(LIST_ERROR_TITLE)

        try:
            session = await self._gateway.authorize(self._options.credentials)
            return await self._gateway.list_objects(
                session,
                self._options.bucket.bucket_id,
                prefix=prefix,
                max_count=max_count,
            )
        except StorageError as e:
            logger.error("Failed to list objects", extra={"error": str(e)})
            self._notifier.notify(LIST_ERROR_TITLE, str(e))
            raise

    def _ensure_configured(self, title: str) -> None:
        """Raise ConfigError before any network call if config is incomplete."""
        missing = self._options.missing_fields()
        if missing:
            message = f"Missing required configuration: {', '.join(missing)}"
            logger.error("Storage not configured", extra={"missing_fields": missing})
            self._notifier.notify(title, message)
            raise ConfigError(message)
