"""
MedSnap Backend — Blob Storage Tests
======================================

Tests both BlobStorage implementations.
    LocalBlobStorage:    real files in pytest's tmp_path
    SupabaseBlobStorage: httpx.MockTransport standing in for the storage API

Test Coverage:
    ✅ put / remove / missing-blob removal
    ✅ Existing paths are never overwritten
    ✅ Path traversal is refused
    ✅ Signed URLs verify, and expire or fail when tampered with (including non-ASCII)
    ✅ Hosted bucket request shapes, error messages, and signed URL assembly
"""

import json
from urllib.parse import parse_qs, unquote, urlparse

import httpx
import pytest

from medsnap.exceptions import ConfigurationError, FileStorageError
from medsnap.services.local_storage import LocalBlobStorage
from medsnap.services.supabase_storage import SupabaseBlobStorage


# ══════════════════════════════════════════════════════════════════════════
# Local Disk
# ══════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
class TestLocalBlobStorage:

    async def test_put_and_remove(self, storage):
        path = await storage.put("user-1/1-abc-a.pdf", b"%PDF", "application/pdf")
        assert path == "user-1/1-abc-a.pdf"
        assert storage.resolve(path).read_bytes() == b"%PDF"

        await storage.remove(path)
        assert not storage.resolve(path).exists()

    async def test_remove_missing_blob_is_not_an_error(self, storage):
        await storage.remove("user-1/never-existed.pdf")

    async def test_put_never_overwrites(self, storage):
        await storage.put("user-1/same.pdf", b"first", "application/pdf")
        with pytest.raises(FileStorageError):
            await storage.put("user-1/same.pdf", b"second", "application/pdf")
        assert storage.resolve("user-1/same.pdf").read_bytes() == b"first"

    async def test_path_traversal_refused(self, storage):
        with pytest.raises(FileStorageError, match="Invalid file path"):
            await storage.put("../outside.pdf", b"x", "application/pdf")

    async def test_signed_url_round_trip(self, storage):
        url = await storage.signed_url("user-1/a b.pdf", 600)
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        assert parsed.path.startswith("/api/files/")
        path = unquote(parsed.path[len("/api/files/"):])
        assert path == "user-1/a b.pdf"
        assert storage.verify_signature(path, int(query["expires"][0]), query["signature"][0]) is True

    async def test_signature_rejects_tampering_and_expiry(self, storage):
        url = await storage.signed_url("user-1/a.pdf", 600)
        query = parse_qs(urlparse(url).query)
        expires = int(query["expires"][0])
        signature = query["signature"][0]

        assert storage.verify_signature("user-2/a.pdf", expires, signature) is False
        assert storage.verify_signature("user-1/a.pdf", expires + 1, signature) is False
        assert storage.verify_signature("user-1/a.pdf", expires, signature, now=expires + 1) is False

    async def test_non_ascii_signature_is_rejected(self, storage):
        url = await storage.signed_url("user-1/a.pdf", 600)
        expires = int(parse_qs(urlparse(url).query)["expires"][0])
        assert storage.verify_signature("user-1/a.pdf", expires, "\u00e9" * 64) is False

    async def test_other_secret_does_not_verify(self, storage, tmp_path):
        url = await storage.signed_url("user-1/a.pdf", 600)
        query = parse_qs(urlparse(url).query)
        other = LocalBlobStorage(storage_root=str(tmp_path / "storage"), secret="another-secret")
        assert other.verify_signature("user-1/a.pdf", int(query["expires"][0]), query["signature"][0]) is False

    async def test_health_check(self, storage):
        assert await storage.health_check() is True


# ══════════════════════════════════════════════════════════════════════════
# Hosted Bucket
# ══════════════════════════════════════════════════════════════════════════


def make_supabase(handler) -> SupabaseBlobStorage:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseBlobStorage(
        base_url="https://project.supabase.co",
        service_key="service-role-key",
        bucket="guidelines",
        client=client,
    )


@pytest.mark.asyncio
class TestSupabaseBlobStorage:

    async def test_requires_configuration(self):
        with pytest.raises(ConfigurationError, match="Storage not configured"):
            SupabaseBlobStorage(base_url="", service_key="", bucket="guidelines")

    async def test_put_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = request.content
            return httpx.Response(200, json={"Key": "guidelines/user-1/a.pdf"})

        storage = make_supabase(handler)
        assert await storage.put("user-1/a.pdf", b"%PDF", "application/pdf") == "user-1/a.pdf"

        assert seen["method"] == "POST"
        assert seen["url"] == "https://project.supabase.co/storage/v1/object/guidelines/user-1/a.pdf"
        assert seen["headers"]["authorization"] == "Bearer service-role-key"
        assert seen["headers"]["x-upsert"] == "false"
        assert seen["headers"]["content-type"] == "application/pdf"
        assert seen["body"] == b"%PDF"
        await storage.aclose()

    async def test_missing_bucket_message(self):
        storage = make_supabase(lambda request: httpx.Response(404, json={"message": "Bucket not found"}))
        with pytest.raises(FileStorageError, match='Storage bucket "guidelines" not found'):
            await storage.put("user-1/a.pdf", b"%PDF", "application/pdf")
        await storage.aclose()

    async def test_upstream_error_message_kept(self):
        storage = make_supabase(lambda request: httpx.Response(400, json={"message": "The resource already exists"}))
        with pytest.raises(FileStorageError, match="Upload failed: The resource already exists"):
            await storage.put("user-1/a.pdf", b"%PDF", "application/pdf")
        await storage.aclose()

    async def test_remove_sends_prefixes(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["json"] = json.loads(request.content)
            return httpx.Response(200, json=[])

        storage = make_supabase(handler)
        await storage.remove("user-1/a.pdf")

        assert seen["method"] == "DELETE"
        assert seen["url"] == "https://project.supabase.co/storage/v1/object/guidelines"
        assert seen["json"] == {"prefixes": ["user-1/a.pdf"]}
        await storage.aclose()

    async def test_signed_url_is_absolute(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {"expiresIn": 3600}
            return httpx.Response(200, json={"signedURL": "/object/sign/guidelines/user-1/a.pdf?token=abc"})

        storage = make_supabase(handler)
        url = await storage.signed_url("user-1/a.pdf", 3600)
        assert url == "https://project.supabase.co/storage/v1/object/sign/guidelines/user-1/a.pdf?token=abc"
        await storage.aclose()

    async def test_network_failure_becomes_storage_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        storage = make_supabase(handler)
        with pytest.raises(FileStorageError, match="Signing failed"):
            await storage.signed_url("user-1/a.pdf", 60)
        assert await storage.health_check() is False
        await storage.aclose()
