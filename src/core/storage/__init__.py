"""
Object storage domain: models, naming rules, errors and orchestration.
"""

from .errors import (
    AuthError,
    ConfigError,
    DeleteError,
    LeaseError,
    ObjectLookupError,
    StorageError,
    TransportError,
    UploadError,
)
from .models import (
    BucketRef,
    Credentials,
    DeleteOutcome,
    RemovedItem,
    RemoveSummary,
    ResponseEnvelope,
    Session,
    StorageOptions,
    StoredObjectMeta,
    StoredObjectRef,
    UploadItem,
    UploadLease,
)
from .service import LoggingNotifier, Notifier, ObjectStorageService, StorageGateway
from .sync import RemoveSyncListener, register_remove_listener

__all__ = [
    "AuthError",
    "BucketRef",
    "ConfigError",
    "Credentials",
    "DeleteError",
    "DeleteOutcome",
    "LeaseError",
    "LoggingNotifier",
    "Notifier",
    "ObjectLookupError",
    "ObjectStorageService",
    "RemoveSummary",
    "RemoveSyncListener",
    "RemovedItem",
    "ResponseEnvelope",
    "Session",
    "StorageError",
    "StorageGateway",
    "StorageOptions",
    "StoredObjectMeta",
    "StoredObjectRef",
    "TransportError",
    "UploadError",
    "UploadItem",
    "UploadLease",
    "register_remove_listener",
]
