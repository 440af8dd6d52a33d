"""
Shared fixtures.

Most tests run the real B2Client against the in-memory emulator, so the
wire-level behavior (headers, checksums, envelopes) is exercised without
touching the network.
"""

import pytest

from src.core.storage.models import BucketRef, Credentials, Session, StorageOptions
from src.core.storage.service import ObjectStorageService
from src.infrastructure.b2.client import B2Client, B2Config
from src.infrastructure.b2.mock import MockB2Requester


class RecordingNotifier:
    """Collects (title, body) pairs instead of showing them."""

    def __init__(self) -> None:
        self.notifications: list[tuple[str, str]] = []

    def notify(self, title: str, body: str) -> None:
        self.notifications.append((title, body))


@pytest.fixture
def options() -> StorageOptions:
    return StorageOptions(
        credentials=Credentials(key_id="0012345abcdef0000000001", key="K001secret"),
        bucket=BucketRef(bucket_id="bucket-123", bucket_name="my-images"),
    )


@pytest.fixture
def requester(options) -> MockB2Requester:
    return MockB2Requester(
        key_id=options.credentials.key_id,
        key=options.credentials.key,
        bucket_id=options.bucket.bucket_id,
    )


@pytest.fixture
def client(requester) -> B2Client:
    return B2Client(B2Config(), requester=requester)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(client, options, notifier) -> ObjectStorageService:
    return ObjectStorageService(gateway=client, options=options, notifier=notifier)


@pytest.fixture
def session() -> Session:
    return Session(
        api_base_url="https://api.example.com",
        auth_token="token",
        download_base_url="https://f1.example.com",
    )
