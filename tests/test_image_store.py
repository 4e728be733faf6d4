import httpx
import pytest

from markwall.config import TestConfig
from markwall.services.image_store import (
    ImageStore,
    build_image_store,
    fetch_image_bytes,
)

PUBLIC_BASE = "https://storage.test/storage/v1/object/public"


def test_upload_stores_jpeg_under_bookmark_key(
    image_store, fake_supabase, fetched_images
):
    url = image_store.upload("https://shots.example/abc.png", 42)

    assert url == f"{PUBLIC_BASE}/screenshots/42.jpg"
    stored = fake_supabase.storage.objects[("screenshots", "42.jpg")]
    assert stored["options"]["content-type"] == "image/jpeg"
    assert stored["options"]["upsert"] == "true"
    assert fetched_images == [("https://shots.example/abc.png", 15.0)]


def test_repeated_upload_overwrites_in_place(image_store, fake_supabase, monkeypatch):
    payloads = iter([b"first", b"second"])
    monkeypatch.setattr(
        "markwall.services.image_store.fetch_image_bytes",
        lambda url, timeout, max_bytes=None: next(payloads),
    )

    first = image_store.upload("https://shots.example/abc.png", 7)
    second = image_store.upload("https://shots.example/def.png", 7)

    assert first == second == image_store.public_url_for(7)
    assert list(fake_supabase.storage.objects) == [("screenshots", "7.jpg")]
    assert fake_supabase.storage.objects[("screenshots", "7.jpg")]["data"] == b"second"


def test_upload_returns_none_when_source_fetch_fails(
    image_store, fake_supabase, monkeypatch
):
    def _fail(url, timeout, max_bytes=None):
        raise RuntimeError("source gone")

    monkeypatch.setattr("markwall.services.image_store.fetch_image_bytes", _fail)

    assert image_store.upload("https://shots.example/abc.png", 3) is None
    assert fake_supabase.storage.objects == {}


def test_upload_returns_none_when_storage_rejects(image_store, fake_supabase):
    fake_supabase.storage.upload_failures = 1

    assert image_store.upload("https://shots.example/abc.png", 3) is None
    assert fake_supabase.storage.objects == {}


def test_delete_removes_object_and_tolerates_missing_keys(image_store, fake_supabase):
    image_store.upload("https://shots.example/abc.png", 5)

    assert image_store.delete(5) is True
    assert fake_supabase.storage.objects == {}
    assert image_store.delete(5) is True


def test_delete_reports_failure(image_store, fake_supabase):
    image_store.upload("https://shots.example/abc.png", 5)
    fake_supabase.storage.remove_failures = 1

    assert image_store.delete(5) is False
    assert ("screenshots", "5.jpg") in fake_supabase.storage.objects


def test_unconfigured_store_degrades_quietly(fetched_images):
    store = build_image_store(
        {
            "SUPABASE_URL": "",
            "SUPABASE_SERVICE_KEY": "",
            "STORAGE_BUCKET": "screenshots",
            "STORAGE_PUBLIC_BASE_URL": PUBLIC_BASE,
            "STORAGE_TIMEOUT": TestConfig.STORAGE_TIMEOUT,
        }
    )

    assert store.configured is False
    assert store.upload("https://shots.example/abc.png", 1) is None
    assert store.delete(1) is False
    assert store.public_url_for(1) == f"{PUBLIC_BASE}/screenshots/1.jpg"
    assert fetched_images == []


def test_public_url_does_not_depend_on_client():
    store = ImageStore(client=None, bucket="shots", public_base_url=PUBLIC_BASE + "/")

    assert store.public_url_for(9) == f"{PUBLIC_BASE}/shots/9.jpg"


def test_fetch_image_bytes_enforces_size_limit():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, content=b"x" * 64)
    )

    assert fetch_image_bytes(
        "https://shots.example/a.png", timeout=1.0, max_bytes=64, transport=transport
    ) == b"x" * 64
    with pytest.raises(ValueError):
        fetch_image_bytes(
            "https://shots.example/a.png",
            timeout=1.0,
            max_bytes=63,
            transport=transport,
        )


def test_oversized_image_is_not_stored(app, fake_supabase, monkeypatch):
    seen = []

    def _fetch(url, timeout, max_bytes=None):
        seen.append(max_bytes)
        raise ValueError(f"image larger than {max_bytes} bytes")

    monkeypatch.setattr("markwall.services.image_store.fetch_image_bytes", _fetch)
    store = ImageStore(
        client=fake_supabase,
        bucket="screenshots",
        public_base_url=PUBLIC_BASE,
        max_bytes=1024,
    )

    assert store.upload("https://shots.example/huge.png", 1) is None
    assert seen == [1024]
    assert fake_supabase.storage.calls == []
