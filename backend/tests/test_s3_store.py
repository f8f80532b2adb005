"""
Screenshot Manager API - S3 Object Store Tests
==============================================

What:  Tests for S3ObjectStore against a stubbed boto3 client.
How:   botocore's Stubber asserts the exact request parameters of every call
       and returns canned responses; no network access.

What we test:
    ✅ Listing with and without per-object HEADs, bounded concurrent HEADs, truncation flag
    ✅ Non-ASCII metadata sent escaped and read back decoded
    ✅ HEAD 404 → None, other errors → StorageError
    ✅ Metadata rewrite: self-copy with REPLACE keeps ContentType
    ✅ Delete, health check
"""

import threading
from datetime import datetime, timezone

import boto3
import pytest
from botocore.stub import Stubber

from screenshot_manager.exceptions import NotFoundError, StorageError
from screenshot_manager.services.screenshot_service import ScreenshotService
from screenshot_manager.storage.base import StoredObject
from screenshot_manager.storage.s3_store import MAX_LIST_KEYS, S3ObjectStore

BUCKET = "screenshots"
LAST_MODIFIED = datetime(2025, 11, 30, 7, 2, 11, 430000, tzinfo=timezone.utc)


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


def head_response(metadata=None, content_type="image/png"):
    return {
        "ContentLength": 2048,
        "LastModified": LAST_MODIFIED,
        "ETag": '"abc123"',
        "ContentType": content_type,
        "Metadata": metadata or {},
    }


class OverlappingHeadClient:
    """Fake S3 client whose HEADs block until `parties` of them are in flight together."""

    def __init__(self, keys, parties):
        self.keys = keys
        self.barrier = threading.Barrier(parties, timeout=5)
        self.lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0

    def list_objects_v2(self, **params):
        contents = [
            {"Key": key, "Size": 1, "LastModified": LAST_MODIFIED, "ETag": '"e"'} for key in self.keys
        ]
        return {"Contents": contents, "IsTruncated": False}

    def head_object(self, Bucket, Key):
        with self.lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.barrier.wait()
        finally:
            with self.lock:
                self.in_flight -= 1
        return head_response({"title": Key})


class TestListObjects:

    @pytest.mark.asyncio
    async def test_list_with_metadata_heads_each_object(self, s3_client, stubber):
        stubber.add_response(
            "list_objects_v2",
            {
                "Contents": [
                    {"Key": "a.png", "Size": 10, "LastModified": LAST_MODIFIED, "ETag": '"e1"'},
                    {"Key": "b.png", "Size": 20, "LastModified": LAST_MODIFIED, "ETag": '"e2"'},
                ],
                "IsTruncated": True,
            },
            {"Bucket": BUCKET, "MaxKeys": MAX_LIST_KEYS},
        )
        stubber.add_response(
            "head_object", head_response({"title": "A"}), {"Bucket": BUCKET, "Key": "a.png"}
        )
        stubber.add_client_error(
            "head_object",
            service_error_code="404",
            http_status_code=404,
            expected_params={"Bucket": BUCKET, "Key": "b.png"},
        )

        store = S3ObjectStore(s3_client, BUCKET, head_concurrency=1)
        listing = await store.list_objects()

        assert listing.truncated is True
        assert [obj.key for obj in listing.objects] == ["a.png"]
        assert listing.objects[0].metadata == {"title": "A"}
        assert listing.objects[0].etag == "abc123"

    @pytest.mark.asyncio
    async def test_heads_run_concurrently_up_to_the_cap(self):
        keys = ["a.png", "b.png", "c.png", "d.png"]
        client = OverlappingHeadClient(keys, parties=2)

        listing = await S3ObjectStore(client, BUCKET, head_concurrency=2).list_objects()

        assert [obj.key for obj in listing.objects] == keys
        assert [obj.metadata["title"] for obj in listing.objects] == keys
        assert client.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_list_without_metadata(self, s3_client, stubber):
        stubber.add_response(
            "list_objects_v2",
            {
                "Contents": [
                    {"Key": "a.png", "Size": 10, "LastModified": LAST_MODIFIED, "ETag": '"e1"'},
                ],
                "IsTruncated": False,
            },
            {"Bucket": BUCKET, "MaxKeys": MAX_LIST_KEYS},
        )

        store = S3ObjectStore(s3_client, BUCKET, list_include_metadata=False)
        listing = await store.list_objects()

        assert listing.truncated is False
        obj = listing.objects[0]
        assert (obj.key, obj.size, obj.etag, obj.uploaded) == ("a.png", 10, "e1", LAST_MODIFIED)
        assert obj.metadata is None

    @pytest.mark.asyncio
    async def test_empty_bucket(self, s3_client, stubber):
        stubber.add_response(
            "list_objects_v2", {"IsTruncated": False}, {"Bucket": BUCKET, "MaxKeys": MAX_LIST_KEYS}
        )
        listing = await S3ObjectStore(s3_client, BUCKET).list_objects()
        assert listing.objects == []

    @pytest.mark.asyncio
    async def test_access_denied_is_storage_error(self, s3_client, stubber):
        stubber.add_client_error(
            "list_objects_v2",
            service_error_code="AccessDenied",
            http_status_code=403,
            expected_params={"Bucket": BUCKET, "MaxKeys": MAX_LIST_KEYS},
        )
        with pytest.raises(StorageError) as exc_info:
            await S3ObjectStore(s3_client, BUCKET).list_objects()
        assert exc_info.value.context["code"] == "AccessDenied"
        assert exc_info.value.message == "Object storage operation failed"


class TestHead:

    @pytest.mark.asyncio
    async def test_head(self, s3_client, stubber):
        stubber.add_response(
            "head_object",
            head_response({"description": "d", "tags": '["ui"]'}),
            {"Bucket": BUCKET, "Key": "dir/a.png"},
        )
        stored = await S3ObjectStore(s3_client, BUCKET).head("dir/a.png")
        assert stored.key == "dir/a.png"
        assert stored.size == 2048
        assert stored.content_type == "image/png"
        assert stored.metadata == {"description": "d", "tags": '["ui"]'}

    @pytest.mark.asyncio
    async def test_head_missing_returns_none(self, s3_client, stubber):
        stubber.add_client_error(
            "head_object",
            service_error_code="NotFound",
            http_status_code=404,
            expected_params={"Bucket": BUCKET, "Key": "missing.png"},
        )
        assert await S3ObjectStore(s3_client, BUCKET).head("missing.png") is None

    @pytest.mark.asyncio
    async def test_head_server_error_raises(self, s3_client, stubber):
        stubber.add_client_error(
            "head_object",
            service_error_code="InternalError",
            http_status_code=500,
            expected_params={"Bucket": BUCKET, "Key": "a.png"},
        )
        with pytest.raises(StorageError):
            await S3ObjectStore(s3_client, BUCKET).head("a.png")


class TestMutations:

    @pytest.mark.asyncio
    async def test_replace_metadata_copies_onto_itself(self, s3_client, stubber):
        new_time = datetime(2025, 12, 1, tzinfo=timezone.utc)
        stubber.add_response(
            "copy_object",
            {"CopyObjectResult": {"ETag": '"abc123"', "LastModified": new_time}},
            {
                "Bucket": BUCKET,
                "Key": "a.png",
                "CopySource": {"Bucket": BUCKET, "Key": "a.png"},
                "Metadata": {"title": "New"},
                "MetadataDirective": "REPLACE",
                "ContentType": "image/webp",
            },
        )
        original = StoredObject(
            key="a.png",
            size=5,
            uploaded=LAST_MODIFIED,
            etag="abc123",
            content_type="image/webp",
            metadata={"title": "Old"},
        )

        updated = await S3ObjectStore(s3_client, BUCKET).replace_metadata(original, {"title": "New"})

        assert updated.metadata == {"title": "New"}
        assert updated.content_type == "image/webp"
        assert updated.uploaded == new_time
        assert updated.size == 5
        assert original.metadata == {"title": "Old"}

    @pytest.mark.asyncio
    async def test_replace_metadata_on_vanished_object(self, s3_client, stubber):
        stubber.add_client_error(
            "copy_object",
            service_error_code="NoSuchKey",
            http_status_code=404,
        )
        original = StoredObject(key="gone.png", size=1, uploaded=LAST_MODIFIED, etag="e")
        with pytest.raises(NotFoundError):
            await S3ObjectStore(s3_client, BUCKET).replace_metadata(original, {})

    @pytest.mark.asyncio
    async def test_delete(self, s3_client, stubber):
        stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "a.png"})
        await S3ObjectStore(s3_client, BUCKET).delete("a.png")


class TestHealth:

    @pytest.mark.asyncio
    async def test_reachable_bucket(self, s3_client, stubber):
        stubber.add_response("head_bucket", {}, {"Bucket": BUCKET})
        store = S3ObjectStore(s3_client, BUCKET)
        assert await store.check_health() is True
        assert store.backend_name == "s3"

    @pytest.mark.asyncio
    async def test_unreachable_bucket(self, s3_client, stubber):
        stubber.add_client_error(
            "head_bucket",
            service_error_code="NoSuchBucket",
            http_status_code=404,
            expected_params={"Bucket": BUCKET},
        )
        assert await S3ObjectStore(s3_client, BUCKET).check_health() is False


class TestNonAsciiMetadata:

    @pytest.mark.asyncio
    async def test_update_with_accents_and_cjk_is_sent_as_ascii(self, s3_client, stubber):
        stored_metadata = {"description": "Caf%C3%A9 menu", "tags": '["\\u65e5\\u672c"]'}
        stubber.add_response(
            "head_object", head_response(content_type="image/jpeg"), {"Bucket": BUCKET, "Key": "menu.jpg"}
        )
        stubber.add_response(
            "copy_object",
            {"CopyObjectResult": {"ETag": '"abc123"', "LastModified": LAST_MODIFIED}},
            {
                "Bucket": BUCKET,
                "Key": "menu.jpg",
                "CopySource": {"Bucket": BUCKET, "Key": "menu.jpg"},
                "Metadata": stored_metadata,
                "MetadataDirective": "REPLACE",
                "ContentType": "image/jpeg",
            },
        )
        service = ScreenshotService(S3ObjectStore(s3_client, BUCKET), "https://shots.example.test")

        result = await service.update_metadata("menu.jpg", {"description": "Café menu", "tags": ["日本"]})

        assert result.metadata == {"description": "Café menu", "tags": ["日本"]}

    @pytest.mark.asyncio
    async def test_head_decodes_escaped_metadata(self, s3_client, stubber):
        stubber.add_response(
            "head_object",
            head_response({"title": "50%25 off", "description": "Caf%C3%A9", "tags": '["\\u00e9t\\u00e9"]'}),
            {"Bucket": BUCKET, "Key": "sale.png"},
        )
        service = ScreenshotService(S3ObjectStore(s3_client, BUCKET), "https://shots.example.test")

        screenshot = await service.get_screenshot("sale.png")

        assert screenshot.metadata == {"title": "50% off", "description": "Café", "tags": ["été"]}
