"""
Domain models for object storage.

These are plain values that flow between the orchestration layer and the
B2 client. They don't know about HTTP or FastAPI, which keeps the upload
and delete logic testable with simple fakes.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class Credentials:
    """
    Long-lived application key pair.

    The key itself is excluded from repr so it can't leak into logs or
    tracebacks by accident.
    """
    key_id: str
    key: str = field(repr=False)

    @property
    def key_id_prefix(self) -> str:
        """Safe-to-log prefix of the key id."""
        return self.key_id[:8]


@dataclass(frozen=True)
class Session:
    """
    Short-lived authorization context.

    Created per operation and never cached, so a revoked key stops
    working on the very next call.
    """
    api_base_url: str
    auth_token: str = field(repr=False)
    download_base_url: str
    allowed: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class UploadLease:
    """One upload endpoint plus the token that unlocks it."""
    upload_url: str
    upload_token: str = field(repr=False)


@dataclass(frozen=True)
class BucketRef:
    bucket_id: str
    bucket_name: str


@dataclass
class UploadItem:
    """
    A single file in an upload batch.

    The caller owns the payload. The service only reads it and fills in
    storage_key/url on success, or error on failure.
    """
    payload: Optional[bytes]
    original_name: str
    extension: str = ""
    storage_key: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.url is not None and self.error is None

    @property
    def size_bytes(self) -> int:
        return len(self.payload) if self.payload is not None else 0


@dataclass(frozen=True)
class StoredObjectRef:
    """A stored object as seen in a bucket listing."""
    object_id: str
    storage_key: str
    size_bytes: int = 0


@dataclass(frozen=True)
class StoredObjectMeta:
    """What the remote side reports after accepting an upload."""
    file_id: str
    file_name: str
    content_sha1: Optional[str] = None
    content_length: Optional[int] = None
    content_type: Optional[str] = None


@dataclass(frozen=True)
class ResponseEnvelope:
    """
    Uniform shape for every remote call result.

    status_code is the only success/failure discriminator the rest of the
    system looks at.
    """
    status_code: Optional[int]
    body: Any = None

    @property
    def is_success(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    @property
    def error_message(self) -> Optional[str]:
        """Remote-provided error message, when the body carries one."""
        if isinstance(self.body, Mapping):
            message = self.body.get("message")
            if message:
                return str(message)
        return None

    @property
    def error_code(self) -> Optional[str]:
        if isinstance(self.body, Mapping):
            code = self.body.get("code")
            if code:
                return str(code)
        return None


@dataclass(frozen=True)
class DeleteOutcome:
    deleted: bool
    message: str


@dataclass(frozen=True)
class RemovedItem:
    """
    An item the host reports as removed from its gallery.

    type tags which uploader produced the item; only matching items
    are deleted remotely.
    """
    type: str
    img_url: Optional[str]
    file_name: str = ""


@dataclass
class RemoveSummary:
    """
    Per-item results of one removal batch, in batch order.

    failed holds (storage key or URL, error) pairs; the same key may
    appear more than once.
    """
    deleted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.deleted) + len(self.skipped) + len(self.failed)


@dataclass(frozen=True)
class StorageOptions:
    """
    Host-supplied configuration for one storage backend.

    Fields may be blank at construction time so the host can start without
    a complete configuration; operations check missing_fields() before
    touching the network.
    """
    credentials: Credentials
    bucket: BucketRef
    custom_domain: Optional[str] = None
    path_prefix: str = ""

    def missing_fields(self) -> list[str]:
        """Names of required fields that are empty, in host naming."""
        missing = []
        if not self.credentials.key_id:
            missing.append("applicationKeyId")
        if not self.credentials.key:
            missing.append("applicationKey")
        if not self.bucket.bucket_id:
            missing.append("bucketId")
        if not self.bucket.bucket_name:
            missing.append("bucketName")
        return missing

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "StorageOptions":
        """Build options from the camelCase dict a plugin host stores."""
        return cls(
            credentials=Credentials(
                key_id=str(config.get("applicationKeyId") or ""),
                key=str(config.get("applicationKey") or ""),
            ),
            bucket=BucketRef(
                bucket_id=str(config.get("bucketId") or ""),
                bucket_name=str(config.get("bucketName") or ""),
            ),
            custom_domain=config.get("customDomain") or None,
            path_prefix=config.get("pathPrefix") or "",
        )
