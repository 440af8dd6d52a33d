"""
In-memory B2 emulator for local development and tests.

Plugs into B2Client as its Requester, so the real client code (headers,
checksums, response normalization, list-then-delete) runs unchanged while
"the bucket" is a dict. Responses deliberately use the different envelope
shapes the client has to cope with: bare JSON bodies, {status, data} and
{statusCode, body} with a JSON string body.

Not suitable for production, but handy for running the host without a
real bucket and for asserting exactly which calls were made.
"""

import base64
import hashlib
import itertools
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import unquote, urlsplit

from ...core.storage.errors import TransportError

logger = logging.getLogger(__name__)

MOCK_API_URL = "https://api000.mock.backblazeb2.com"
MOCK_DOWNLOAD_URL = "https://f000.mock.backblazeb2.com"


@dataclass
class RecordedCall:
    """One request as the emulator received it."""
    method: str
    endpoint: str
    url: str
    headers: dict[str, str]
    json_body: Optional[dict[str, Any]] = None
    content: Optional[bytes] = None


@dataclass
class _Failure:
    status: int
    code: str
    message: str
    transport: bool = False


@dataclass
class _StoredFile:
    file_id: str
    file_name: str
    bucket_id: str
    data: bytes = field(repr=False)
    content_sha1: str
    content_type: str


class MockB2Requester:
    """
    Requester that answers B2 API calls from memory.

    When key_id/key/bucket_id are given, requests are checked against them
    the way B2 would; otherwise any credentials and bucket are accepted.
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        key: Optional[str] = None,
        bucket_id: Optional[str] = None,
        api_url: str = MOCK_API_URL,
        download_url: Optional[str] = MOCK_DOWNLOAD_URL,
    ) -> None:
        self._key_id = key_id
        self._key = key
        self._bucket_id = bucket_id
        self._api_url = api_url
        self._download_url = download_url

        self.calls: list[RecordedCall] = []
        self._files: dict[str, _StoredFile] = {}
        self._auth_tokens: set[str] = set()
        self._upload_tokens: set[str] = set()
        self._failures: dict[str, list[_Failure]] = {}
        self._ids = itertools.count(1)

        logger.info("Initialized mock B2 requester (in-memory)")

    # -- test helpers -------------------------------------------------------

    def fail_next(
        self,
        endpoint: str,
        status: int = 500,
        code: str = "internal_error",
        message: str = "Injected failure",
        transport: bool = False,
    ) -> None:
        """Make the next call to endpoint fail (HTTP error or transport error)."""
        self._failures.setdefault(endpoint, []).append(
            _Failure(status=status, code=code, message=message, transport=transport)
        )

    def calls_to(self, endpoint: str) -> list[RecordedCall]:
        return [call for call in self.calls if call.endpoint == endpoint]

    def object_names(self) -> list[str]:
        return sorted(f.file_name for f in self._files.values())

    def object_data(self, file_name: str) -> Optional[bytes]:
        for stored in self._files.values():
            if stored.file_name == file_name:
                return stored.data
        return None

    def put_object(self, file_name: str, data: bytes, bucket_id: str = "") -> str:
        """Seed the bucket directly, bypassing the upload flow."""
        file_id = self._next_id("file")
        self._files[file_id] = _StoredFile(
            file_id=file_id,
            file_name=file_name,
            bucket_id=bucket_id or self._bucket_id or "",
            data=data,
            content_sha1=hashlib.sha1(data).hexdigest(),
            content_type="application/octet-stream",
        )
        return file_id

    # -- requester ----------------------------------------------------------

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
        endpoint = self._endpoint(url)
        self.calls.append(RecordedCall(
            method=method,
            endpoint=endpoint,
            url=url,
            headers=dict(headers),
            json_body=json_body,
            content=content,
        ))

        pending = self._failures.get(endpoint)
        if pending:
            failure = pending.pop(0)
            if failure.transport:
                raise TransportError(failure.message)
            return self._error(failure.status, failure.code, failure.message)

        handlers = {
            "b2_authorize_account": self._authorize,
            "b2_get_upload_url": self._get_upload_url,
            "b2_upload_file": self._upload_file,
            "b2_list_file_names": self._list_file_names,
            "b2_delete_file_version": self._delete_file_version,
        }
        handler = handlers.get(endpoint)
        if handler is None:
            return self._error(404, "not_found", f"Unknown endpoint: {endpoint}")
        return handler(headers, json_body or {}, content)

    # -- endpoints ----------------------------------------------------------

    def _authorize(self, headers, body, content):
        expected = None
        if self._key_id is not None and self._key is not None:
            pair = f"{self._key_id}:{self._key}".encode("utf-8")
            expected = "Basic " + base64.b64encode(pair).decode("ascii")

        supplied = headers.get("Authorization", "")
        if not supplied.startswith("Basic ") or (expected and supplied != expected):
            # bare B2 error body, no wrapper
            return {"status": 401, "code": "unauthorized", "message": "Invalid key pair"}

        token = self._next_id("auth-token")
        self._auth_tokens.add(token)

        storage_api: dict[str, Any] = {"apiUrl": self._api_url}
        if self._download_url:
            storage_api["downloadUrl"] = self._download_url

        return {
            "accountId": "mock-account",
            "authorizationToken": token,
            "apiInfo": {"storageApi": storage_api},
            "allowed": {"capabilities": ["listFiles", "writeFiles", "deleteFiles"]},
        }

    def _get_upload_url(self, headers, body, content):
        denied = self._check_token(headers, self._auth_tokens)
        if denied:
            return denied
        bucket_denied = self._check_bucket(body.get("bucketId"))
        if bucket_denied:
            return bucket_denied

        token = self._next_id("upload-token")
        self._upload_tokens.add(token)
        return {
            "status": 200,
            "data": {
                "bucketId": body["bucketId"],
                "uploadUrl": f"{self._api_url}/b2api/v4/b2_upload_file/{body['bucketId']}/c000",
                "authorizationToken": token,
            },
        }

    def _upload_file(self, headers, body, content):
        denied = self._check_token(headers, self._upload_tokens)
        if denied:
            return denied

        data = content or b""
        if headers.get("Content-Length") != str(len(data)):
            return self._error(400, "bad_request", "Content-Length does not match body")

        sha1 = hashlib.sha1(data).hexdigest()
        if headers.get("X-Bz-Content-Sha1") != sha1:
            return self._error(400, "bad_request", "Checksum did not match data received")

        file_name = unquote(headers.get("X-Bz-File-Name", ""))
        if not file_name:
            return self._error(400, "bad_request", "Missing file name")

        file_id = self._next_id("file")
        stored = _StoredFile(
            file_id=file_id,
            file_name=file_name,
            bucket_id=self._bucket_id or "",
            data=data,
            content_sha1=sha1,
            content_type=headers.get("Content-Type", "application/octet-stream"),
        )
        self._files[file_id] = stored

        return {
            "statusCode": 200,
            "body": json.dumps({
                "fileId": file_id,
                "fileName": file_name,
                "contentLength": len(data),
                "contentSha1": sha1,
                "contentType": stored.content_type,
            }),
        }

    def _list_file_names(self, headers, body, content):
        denied = self._check_token(headers, self._auth_tokens)
        if denied:
            return denied
        bucket_denied = self._check_bucket(body.get("bucketId"))
        if bucket_denied:
            return bucket_denied

        prefix = body.get("prefix") or ""
        max_count = int(body.get("maxFileCount") or 100)
        matches = sorted(
            (f for f in self._files.values() if f.file_name.startswith(prefix)),
            key=lambda f: f.file_name,
        )[:max_count]

        return {
            "statusCode": 200,
            "body": {
                "files": [
                    {
                        "fileId": f.file_id,
                        "fileName": f.file_name,
                        "contentLength": len(f.data),
                        "contentSha1": f.content_sha1,
                        "contentType": f.content_type,
                        "action": "upload",
                    }
                    for f in matches
                ],
                "nextFileName": None,
            },
        }

    def _delete_file_version(self, headers, body, content):
        denied = self._check_token(headers, self._auth_tokens)
        if denied:
            return denied

        stored = self._files.get(body.get("fileId"))
        if stored is None or stored.file_name != body.get("fileName"):
            return self._error(400, "file_not_present", "File not present")

        del self._files[stored.file_id]
        return {
            "statusCode": 200,
            "body": {"fileId": stored.file_id, "fileName": stored.file_name},
        }

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _endpoint(url: str) -> str:
        path = urlsplit(url).path
        if "/b2_upload_file" in path:
            return "b2_upload_file"
        return path.rstrip("/").rsplit("/", 1)[-1]

    @staticmethod
    def _error(status: int, code: str, message: str) -> dict[str, Any]:
        return {
            "statusCode": status,
            "body": {"status": status, "code": code, "message": message},
        }

    def _check_token(self, headers: dict[str, str], valid: set[str]) -> Optional[dict[str, Any]]:
        if headers.get("Authorization") not in valid:
            return self._error(401, "bad_auth_token", "Invalid authorization token")
        return None

    def _check_bucket(self, bucket_id: Optional[str]) -> Optional[dict[str, Any]]:
        if not bucket_id or (self._bucket_id is not None and bucket_id != self._bucket_id):
            return self._error(400, "bad_request", f"Invalid bucketId: {bucket_id}")
        return None

    def _next_id(self, kind: str) -> str:
        return f"mock-{kind}-{next(self._ids)}"
