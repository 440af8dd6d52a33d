"""
Backblaze B2 native API client.

Implements the StorageGateway protocol from core.storage.service on top of
the B2 v4 endpoints:

    b2_authorize_account    key pair -> session (api/download URLs, token)
    b2_get_upload_url       session + bucket -> upload URL and token
    <upload URL>            raw bytes + SHA-1 header -> stored file
    b2_list_file_names      name prefix -> fileId for a name
    b2_delete_file_version  fileId + name -> deleted

B2 has no delete-by-name call, hence the list-then-delete pair.

HTTP goes through a Requester so the wire layer can be swapped. Whatever
the requester returns is run through normalize_response(), which absorbs
the different envelope shapes (bare JSON body, {statusCode, body},
{status, data}) into one ResponseEnvelope.
"""

import base64
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

import httpx

from ...core.storage.errors import (
    AuthError,
    DeleteError,
    LeaseError,
    ObjectLookupError,
    StorageError,
    TransportError,
    UploadError,
)
from ...core.storage.models import (
    Credentials,
    DeleteOutcome,
    ResponseEnvelope,
    Session,
    StoredObjectMeta,
    StoredObjectRef,
    UploadLease,
)
from ...core.storage.naming import DEFAULT_CONTENT_TYPE, encode_key
from ...core.storage.service import ALREADY_ABSENT

logger = logging.getLogger(__name__)

DEFAULT_AUTHORIZE_BASE_URL = "https://api.backblazeb2.com"
API_PATH = "/b2api/v4"

# exact-name lookup only needs the first few names under the prefix
LOOKUP_PAGE_SIZE = 10

# B2 answers with these codes when the file version is already gone
_ALREADY_GONE_CODES = {"file_not_present", "not_found"}


@dataclass
class B2Config:
    """
    Connection settings for the B2 API.

    Timeouts are per call. Control calls are small JSON exchanges; uploads
    carry the payload and get a longer budget.
    """
    authorize_base_url: str = DEFAULT_AUTHORIZE_BASE_URL
    control_timeout_seconds: float = 30.0
    upload_timeout_seconds: float = 120.0

    def __post_init__(self) -> None:
        self.authorize_base_url = self.authorize_base_url.rstrip("/")
        if self.control_timeout_seconds <= 0:
            raise ValueError("control_timeout_seconds must be positive")
        if self.upload_timeout_seconds <= 0:
            raise ValueError("upload_timeout_seconds must be positive")


# ---------------------------------------------------------------------------
# Response Normalization
# ---------------------------------------------------------------------------

def _parse_body(body: Any) -> Any:
    """Parse JSON text when possible, otherwise keep the value as-is."""
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return body
    if isinstance(body, str):
        try:
            return json.loads(body)
        except ValueError:
            return body
    return body


def _numeric_status(raw: Mapping[str, Any]) -> Optional[int]:
    for name in ("statusCode", "status"):
        value = raw.get(name)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and value.strip().isdigit():
            return int(value)
    return None


def normalize_response(raw: Any) -> ResponseEnvelope:
    """
    Map any requester result into a ResponseEnvelope.

    Priority:
    1. A numeric statusCode/status outside [200, 300) means failure. The
       body is taken from body/data, or is the mapping itself (B2 error
       bodies carry their own "status" field).
    2. A body/data field means a successful wrapped response.
    3. Anything else is the success body itself.

    Known limitation: a success payload that legitimately contains a
    non-2xx numeric "status" field is read as a failure.
    """
    if isinstance(raw, Mapping):
        status_code = _numeric_status(raw)

        if status_code is not None and not 200 <= status_code < 300:
            if "body" in raw:
                body = raw["body"]
            elif "data" in raw:
                body = raw["data"]
            else:
                body = raw
            return ResponseEnvelope(status_code=status_code, body=_parse_body(body))

        if "body" in raw:
            return ResponseEnvelope(status_code=200, body=_parse_body(raw["body"]))
        if "data" in raw:
            return ResponseEnvelope(status_code=200, body=_parse_body(raw["data"]))

        return ResponseEnvelope(status_code=200, body=dict(raw))

    return ResponseEnvelope(status_code=200, body=_parse_body(raw))


# ---------------------------------------------------------------------------
# Requesters
# ---------------------------------------------------------------------------

class Requester(Protocol):
    """
    Wire layer: sends one request and returns the raw result.

    Must raise TransportError when no response arrives (connection
    failure, timeout). Any HTTP status is a response, not an error.
    """

    async def __call__(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json_body: Optional[dict[str, Any]] = None,
        content: Optional[bytes] = None,
        timeout: float,
    ) -> Any:
        ...


class HttpxRequester:
    """
    Requester backed by httpx.

    A client is opened per call. Sessions are per operation anyway, and it
    keeps this class free of lifecycle management. Pass a transport
    (e.g. httpx.MockTransport) to keep tests off the network.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    async def __call__(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json_body: Optional[dict[str, Any]] = None,
        content: Optional[bytes] = None,
        timeout: float,
    ) -> Any:
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=timeout) as client:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    json=json_body,
                    content=content,
                )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out after {timeout:g}s: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}") from e

        return {"statusCode": response.status_code, "body": response.text}


# ---------------------------------------------------------------------------
# B2 Client
# ---------------------------------------------------------------------------

class B2Client:
    """
    StorageGateway implementation for Backblaze B2.

    Stateless apart from its config and requester: sessions and leases are
    passed in by the caller, never cached here.
    """

    def __init__(
        self,
        config: Optional[B2Config] = None,
        requester: Optional[Requester] = None,
    ) -> None:
        self._config = config or B2Config()
        self._request = requester or HttpxRequester()

        logger.info(
            "Initialized B2 client",
            extra={"authorize_base_url": self._config.authorize_base_url}
        )

    async def _call(
        self,
        error_type: type[StorageError],
        step: str,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json_body: Optional[dict[str, Any]] = None,
        content: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> ResponseEnvelope:
        """Issue one request, re-raising transport failures with step context."""
        try:
            raw = await self._request(
                method,
                url,
                headers=headers,
                json_body=json_body,
                content=content,
                timeout=timeout or self._config.control_timeout_seconds,
            )
        except TransportError as e:
            logger.error("B2 request failed", extra={"step": step, "error": str(e)})
            raise error_type(f"{step} request failed: {e}") from e

        envelope = normalize_response(raw)
        if not envelope.is_success:
            logger.warning(
                "B2 returned an error",
                extra={
                    "step": step,
                    "status_code": envelope.status_code,
                    "code": envelope.error_code,
                }
            )
        return envelope

    @staticmethod
    def _failure(envelope: ResponseEnvelope) -> str:
        return envelope.error_message or "Unknown error"

    @staticmethod
    def _json_headers(token: str) -> dict[str, str]:
        return {"Authorization": token, "Content-Type": "application/json"}

    async def authorize(self, credentials: Credentials) -> Session:
        """
        Exchange the key pair for a session.

        downloadUrl is occasionally missing from the response; the API
        URL serves downloads too, so it is used instead.
        """
        raw_pair = f"{credentials.key_id}:{credentials.key}".encode("utf-8")
        auth_string = base64.b64encode(raw_pair).decode("ascii")

        logger.info("Authorizing", extra={"key_id_prefix": credentials.key_id_prefix})

        envelope = await self._call(
            AuthError,
            "Authorization",
            "GET",
            f"{self._config.authorize_base_url}{API_PATH}/b2_authorize_account",
            headers={"Authorization": f"Basic {auth_string}"},
        )

        if envelope.status_code != 200:
            raise AuthError(f"Authorization failed: {self._failure(envelope)}")

        body = envelope.body
        if not isinstance(body, Mapping):
            raise AuthError("Authorization response is empty or invalid")

        storage_api = (body.get("apiInfo") or {}).get("storageApi") or {}
        api_url = storage_api.get("apiUrl")
        download_url = storage_api.get("downloadUrl")
        auth_token = body.get("authorizationToken")

        if not api_url or not auth_token:
            detail = envelope.error_message or "response missing apiUrl or authorizationToken"
            raise AuthError(f"Authorization failed: {detail}")

        return Session(
            api_base_url=api_url,
            auth_token=auth_token,
            download_base_url=download_url or api_url,
            allowed=body.get("allowed"),
        )

    async def get_upload_lease(self, session: Session, bucket_id: str) -> UploadLease:
        envelope = await self._call(
            LeaseError,
            "Get upload URL",
            "POST",
            f"{session.api_base_url}{API_PATH}/b2_get_upload_url",
            headers=self._json_headers(session.auth_token),
            json_body={"bucketId": bucket_id},
        )

        if envelope.status_code != 200:
            raise LeaseError(f"Failed to get upload URL: {self._failure(envelope)}")

        body = envelope.body if isinstance(envelope.body, Mapping) else {}
        upload_url = body.get("uploadUrl")
        upload_token = body.get("authorizationToken")

        if not upload_url or not upload_token:
            raise LeaseError(
                "Failed to get upload URL: response missing uploadUrl or authorizationToken"
            )

        return UploadLease(upload_url=upload_url, upload_token=upload_token)

    async def upload(
        self,
        lease: UploadLease,
        payload: bytes,
        storage_key: str,
        content_type: str,
    ) -> StoredObjectMeta:
        """
        Send the payload to the leased URL.

        The SHA-1 is computed over the very bytes object handed to the
        requester; nothing re-encodes the payload in between.
        """
        data = bytes(payload)
        content_sha1 = hashlib.sha1(data).hexdigest()

        logger.info(
            "Uploading",
            extra={"storage_key": storage_key, "size_kb": round(len(data) / 1024, 2)}
        )

        envelope = await self._call(
            UploadError,
            "Upload",
            "POST",
            lease.upload_url,
            headers={
                "Authorization": lease.upload_token,
                "X-Bz-File-Name": encode_key(storage_key),
                "Content-Type": content_type or DEFAULT_CONTENT_TYPE,
                "X-Bz-Content-Sha1": content_sha1,
                "Content-Length": str(len(data)),
            },
            content=data,
            timeout=self._config.upload_timeout_seconds,
        )

        if envelope.status_code != 200:
            raise UploadError(f"Upload failed: {self._failure(envelope)}")

        body = envelope.body
        if not isinstance(body, Mapping) or not body.get("fileId"):
            raise UploadError("Upload failed: response is empty or invalid")

        returned_sha1 = body.get("contentSha1")
        if _is_hex_sha1(returned_sha1) and returned_sha1.lower() != content_sha1:
            raise UploadError(
                f"Upload failed: checksum mismatch (sent {content_sha1}, stored {returned_sha1})"
            )

        return StoredObjectMeta(
            file_id=body["fileId"],
            file_name=body.get("fileName") or storage_key,
            content_sha1=returned_sha1,
            content_length=body.get("contentLength"),
            content_type=body.get("contentType"),
        )

    async def _list_file_names(
        self,
        session: Session,
        bucket_id: str,
        prefix: Optional[str],
        max_count: int,
    ) -> list[StoredObjectRef]:
        request_body: dict[str, Any] = {"bucketId": bucket_id, "maxFileCount": max_count}
        if prefix:
            request_body["prefix"] = prefix

        envelope = await self._call(
            ObjectLookupError,
            "List files",
            "POST",
            f"{session.api_base_url}{API_PATH}/b2_list_file_names",
            headers=self._json_headers(session.auth_token),
            json_body=request_body,
        )

        if envelope.status_code != 200:
            raise ObjectLookupError(f"Failed to list files: {self._failure(envelope)}")

        body = envelope.body if isinstance(envelope.body, Mapping) else {}
        refs = []
        for entry in body.get("files") or []:
            if not isinstance(entry, Mapping):
                continue
            if not entry.get("fileId") or not entry.get("fileName"):
                continue
            refs.append(StoredObjectRef(
                object_id=entry["fileId"],
                storage_key=entry["fileName"],
                size_bytes=int(entry.get("contentLength") or 0),
            ))
        return refs

    async def find_by_name(
        self,
        session: Session,
        bucket_id: str,
        storage_key: str,
    ) -> Optional[StoredObjectRef]:
        """
        Resolve a storage key to its file id.

        The listing is by prefix, which also matches longer names, so only
        an exact name match counts.
        """
        refs = await self._list_file_names(session, bucket_id, storage_key, LOOKUP_PAGE_SIZE)
        for ref in refs:
            if ref.storage_key == storage_key:
                return ref
        return None

    async def list_objects(
        self,
        session: Session,
        bucket_id: str,
        prefix: Optional[str] = None,
        max_count: int = 100,
    ) -> list[StoredObjectRef]:
        """A single page of file names; no pagination."""
        return await self._list_file_names(session, bucket_id, prefix, max_count)

    async def delete_by_ref(self, session: Session, ref: StoredObjectRef) -> DeleteOutcome:
        envelope = await self._call(
            DeleteError,
            "Delete",
            "POST",
            f"{session.api_base_url}{API_PATH}/b2_delete_file_version",
            headers=self._json_headers(session.auth_token),
            json_body={"fileId": ref.object_id, "fileName": ref.storage_key},
        )

        if envelope.status_code == 200:
            return DeleteOutcome(deleted=True, message="deleted")

        if envelope.status_code == 404 or envelope.error_code in _ALREADY_GONE_CODES:
            logger.info(
                "Object already gone",
                extra={"storage_key": ref.storage_key, "code": envelope.error_code}
            )
            return DeleteOutcome(deleted=True, message=ALREADY_ABSENT)

        raise DeleteError(f"Delete failed: {self._failure(envelope)}")


def _is_hex_sha1(value: Any) -> bool:
    if not isinstance(value, str) or len(value) != 40:
        return False
    try:
        int(value, 16)
    except ValueError:
        return False
    return True


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_b2_client(
    config: Optional[B2Config] = None,
    mock_mode: bool = False,
    requester: Optional[Requester] = None,
) -> B2Client:
    """
    Create a B2 client.

    In mock mode the client talks to an in-memory B2 emulator instead of
    the network, which enables local development without a bucket.
    """
    if mock_mode and requester is None:
        from .mock import MockB2Requester
        requester = MockB2Requester()

    return B2Client(config=config, requester=requester)
