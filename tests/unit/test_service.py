"""
Unit tests for ObjectStorageService.

The service runs against the real B2Client wired to the in-memory
emulator, so these double as integration tests of the upload and delete
flows. The recorded calls tell us exactly how many round trips happened.
"""

import hashlib
import re

import pytest

from src.core.storage.errors import AuthError, ConfigError, LeaseError, ObjectLookupError
from src.core.storage.models import BucketRef, Credentials, StorageOptions, UploadItem
from src.core.storage.service import ALREADY_ABSENT, UPLOAD_ERROR_TITLE, ObjectStorageService
from src.infrastructure.b2.mock import MOCK_DOWNLOAD_URL


def make_item(name: str = "logo.png", payload: bytes = b"image-bytes") -> UploadItem:
    return UploadItem(payload=payload, original_name=name, extension="." + name.rsplit(".", 1)[-1])


# ---------------------------------------------------------------------------
# Upload Tests
# ---------------------------------------------------------------------------

class TestUploadBatch:

    @pytest.mark.asyncio
    async def test_single_upload_sets_url(self, service, requester):
        """
        Given a configured service
        When one image is uploaded
        Then the item carries a native download URL for its unique key
        """
        item = make_item()

        await service.upload_batch([item])

        assert item.succeeded
        assert re.match(r"^logo_\d+_[0-9a-z]{6}\.png$", item.storage_key)
        assert item.url == f"{MOCK_DOWNLOAD_URL}/file/my-images/{item.storage_key}"
        assert requester.object_names() == [item.storage_key]

    @pytest.mark.asyncio
    async def test_content_type_follows_extension(self, service, requester):
        await service.upload_batch([make_item("photo.JPG")])

        headers = requester.calls_to("b2_upload_file")[0].headers
        assert headers["Content-Type"] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_batch_shares_session_and_lease(self, service, requester):
        items = [make_item("a.png"), make_item("b.png")]

        await service.upload_batch(items)

        assert all(item.succeeded for item in items)
        assert len(requester.calls_to("b2_authorize_account")) == 1
        assert len(requester.calls_to("b2_get_upload_url")) == 1
        assert len(requester.calls_to("b2_upload_file")) == 2

    @pytest.mark.asyncio
    async def test_failed_file_does_not_stop_batch(self, service, requester, notifier):
        """
        Given the first upload is rejected
        When a batch of two is uploaded
        Then the second still succeeds on a fresh lease
        """
        requester.fail_next("b2_upload_file", 503, "service_unavailable", "Pod busy")
        first, second = make_item("a.png"), make_item("b.png")

        await service.upload_batch([first, second])

        assert not first.succeeded
        assert "Pod busy" in first.error
        assert second.succeeded
        assert len(requester.calls_to("b2_get_upload_url")) == 2
        assert notifier.notifications == [(UPLOAD_ERROR_TITLE, "1 of 2 files failed to upload")]

    @pytest.mark.asyncio
    async def test_auth_failure_aborts_batch(self, service, requester, notifier):
        requester.fail_next("b2_authorize_account", 401, "unauthorized", "Bad key")
        item = make_item()

        with pytest.raises(AuthError, match="Bad key"):
            await service.upload_batch([item])

        assert requester.calls_to("b2_upload_file") == []
        assert item.url is None
        assert notifier.notifications[0][0] == UPLOAD_ERROR_TITLE
        assert "Bad key" in notifier.notifications[0][1]

    @pytest.mark.asyncio
    async def test_lease_failure_aborts_batch(self, service, requester, notifier):
        requester.fail_next("b2_get_upload_url", 500, "internal_error", "No pods")

        with pytest.raises(LeaseError, match="No pods"):
            await service.upload_batch([make_item("a.png"), make_item("b.png")])

        assert requester.calls_to("b2_upload_file") == []
        assert len(notifier.notifications) == 1

    @pytest.mark.asyncio
    async def test_missing_payload_is_reported_on_item(self, service, requester):
        empty = UploadItem(payload=None, original_name="ghost.png")
        real = make_item()

        await service.upload_batch([empty, real])

        assert empty.error == "No payload provided"
        assert real.succeeded
        assert len(requester.calls_to("b2_upload_file")) == 1

    @pytest.mark.asyncio
    async def test_missing_config_fails_before_network(self, requester, client, notifier):
        options = StorageOptions(
            credentials=Credentials(key_id="", key="secret"),
            bucket=BucketRef(bucket_id="bucket-123", bucket_name=""),
        )
        service = ObjectStorageService(client, options, notifier)

        with pytest.raises(ConfigError, match="applicationKeyId, bucketName"):
            await service.upload_batch([make_item()])

        assert requester.calls == []
        assert notifier.notifications[0][0] == UPLOAD_ERROR_TITLE

    @pytest.mark.asyncio
    async def test_prefix_and_custom_domain(self, client, requester, options):
        options = StorageOptions(
            credentials=options.credentials,
            bucket=options.bucket,
            custom_domain="https://img.example.com/",
            path_prefix="/blog/2024/",
        )
        service = ObjectStorageService(client, options)
        item = make_item("my photo.png")

        await service.upload_batch([item])

        assert item.storage_key.startswith("blog/2024/my photo_")
        assert item.url.startswith("https://img.example.com/blog%2F2024%2Fmy%20photo_")
        assert requester.object_names() == [item.storage_key]

    @pytest.mark.asyncio
    async def test_stored_bytes_match_checksum(self, service, requester):
        """
        Given binary payload bytes
        When they are uploaded
        Then the header checksum, the bytes sent and the stored bytes all agree
        """
        payload = bytes(range(256)) * 4
        item = make_item("raw.png", payload)

        await service.upload_batch([item])

        call = requester.calls_to("b2_upload_file")[0]
        expected = hashlib.sha1(payload).hexdigest()
        assert call.headers["X-Bz-Content-Sha1"] == expected
        assert hashlib.sha1(call.content).hexdigest() == expected
        assert requester.object_data(item.storage_key) == payload


# ---------------------------------------------------------------------------
# Delete Tests
# ---------------------------------------------------------------------------

class TestDeleteObject:

    @pytest.mark.asyncio
    async def test_deletes_existing_object(self, service, requester):
        requester.put_object("logo.png", b"x")

        outcome = await service.delete_object("logo.png")

        assert outcome.deleted
        assert outcome.message == "deleted"
        assert requester.object_names() == []

    @pytest.mark.asyncio
    async def test_missing_object_is_already_absent(self, service, requester):
        """
        Given the key isn't in the bucket
        When it is deleted
        Then the result is success and no delete call is made
        """
        outcome = await service.delete_object("nope.png")

        assert outcome.deleted
        assert outcome.message == ALREADY_ABSENT
        assert requester.calls_to("b2_delete_file_version") == []

    @pytest.mark.asyncio
    async def test_blank_key_is_rejected(self, service, requester):
        with pytest.raises(ValueError):
            await service.delete_object("  ")

        assert requester.calls == []

    @pytest.mark.asyncio
    async def test_lookup_failure_notifies(self, service, requester, notifier):
        requester.fail_next("b2_list_file_names", 500, "internal_error", "Listing down")

        with pytest.raises(ObjectLookupError, match="Listing down"):
            await service.delete_object("logo.png")

        assert notifier.notifications[0][0] == "B2 Delete Error"

    @pytest.mark.asyncio
    async def test_silent_mode_skips_notification(self, service, requester, notifier):
        requester.fail_next("b2_list_file_names", 500, "internal_error", "Listing down")

        with pytest.raises(ObjectLookupError):
            await service.delete_object("logo.png", notify=False)

        assert notifier.notifications == []

    @pytest.mark.asyncio
    async def test_delete_by_url_round_trip(self, service, requester):
        item = make_item("a b.png")
        await service.upload_batch([item])

        outcome = await service.delete_by_url(item.url)

        assert outcome.message == "deleted"
        assert requester.object_names() == []

    @pytest.mark.asyncio
    async def test_delete_by_unparseable_url(self, service):
        with pytest.raises(ValueError, match="Cannot derive storage key"):
            await service.delete_by_url("not a url")


class TestListObjects:

    @pytest.mark.asyncio
    async def test_lists_under_prefix(self, service, requester):
        requester.put_object("blog/a.png", b"1")
        requester.put_object("blog/b.png", b"22")
        requester.put_object("other/c.png", b"3")

        refs = await service.list_objects(prefix="blog/")

        assert [(ref.storage_key, ref.size_bytes) for ref in refs] == [
            ("blog/a.png", 1),
            ("blog/b.png", 2),
        ]
