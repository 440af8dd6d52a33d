"""
Remote cleanup when the host removes items from its gallery.

The host emits a "remove" event with the batch of removed items. Items
uploaded through this backend are deleted remotely, one at a time in batch
order, and a failure on one item never stops the rest of the batch.
"""

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from ..events import EventBus
from .models import RemovedItem, RemoveSummary
from .service import ObjectStorageService

logger = logging.getLogger(__name__)

REMOVE_EVENT = "remove"
UPLOADER_TYPE = "b2"


def _coerce_item(raw: Union[RemovedItem, Mapping[str, Any]]) -> RemovedItem:
    if isinstance(raw, RemovedItem):
        return raw
    return RemovedItem(
        type=str(raw.get("type") or ""),
        img_url=raw.get("imgUrl") or raw.get("img_url"),
        file_name=str(raw.get("fileName") or raw.get("file_name") or ""),
    )


class RemoveSyncListener:
    """Deletes remote objects for gallery items the host removed."""

    def __init__(
        self,
        service: ObjectStorageService,
        uploader_type: str = UPLOADER_TYPE,
    ) -> None:
        self._service = service
        self._uploader_type = uploader_type

    async def __call__(
        self,
        items: Iterable[Union[RemovedItem, Mapping[str, Any]]],
    ) -> RemoveSummary:
        return await self.handle(items)

    async def handle(
        self,
        items: Iterable[Union[RemovedItem, Mapping[str, Any]]],
    ) -> RemoveSummary:
        batch = [_coerce_item(raw) for raw in items or []]
        summary = RemoveSummary()

        logger.info("Removal batch received", extra={"count": len(batch)})

        for item in batch:
            label = str(item.img_url or item.file_name)

            if item.type != self._uploader_type:
                logger.info(
                    "Skipping item from another uploader",
                    extra={"file_name": item.file_name, "type": item.type}
                )
                summary.skipped.append(label)
                continue

            storage_key = None
            try:
                storage_key = self._service.storage_key_for(item.img_url)
                if storage_key is None:
                    logger.warning(
                        "Cannot derive storage key from URL",
                        extra={"img_url": label}
                    )
                    summary.skipped.append(label)
                    continue

                outcome = await self._service.delete_object(storage_key, notify=False)
            except Exception as e:
                # one bad item must not block the rest of the batch
                logger.error(
                    "Remote delete failed",
                    extra={"img_url": label, "storage_key": storage_key, "error": str(e)}
                )
                summary.failed.append((storage_key or label, str(e)))
                continue

            logger.info(
                "Remote delete done",
                extra={"storage_key": storage_key, "message": outcome.message}
            )
            summary.deleted.append(storage_key)

        return summary


def register_remove_listener(
    bus: Optional[EventBus],
    service: ObjectStorageService,
) -> Optional[RemoveSyncListener]:
    """
    Subscribe a RemoveSyncListener to the host's "remove" event.

    Hosts without an event bus (CLI-style hosts) pass None; the feature is
    simply not installed.
    """
    if bus is None:
        logger.info("No event bus available, remote removal sync disabled")
        return None

    listener = RemoveSyncListener(service)
    bus.on(REMOVE_EVENT, listener)
    logger.info("Registered remote removal listener")
    return listener
