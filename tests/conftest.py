import pytest

from markwall import create_app
from markwall.config import TestConfig
from markwall.extensions import db
from markwall.services.image_store import ImageStore

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"


class _FakeBucket:
    def __init__(self, storage, name):
        self._storage = storage
        self._name = name

    def upload(self, path, file, file_options=None):
        self._storage.calls.append(("upload", self._name, path))
        if self._storage.upload_failures:
            self._storage.upload_failures -= 1
            raise RuntimeError("storage unavailable")
        self._storage.objects[(self._name, path)] = {
            "data": file,
            "options": dict(file_options or {}),
        }
        return {"path": path}

    def remove(self, paths):
        self._storage.calls.append(("remove", self._name, tuple(paths)))
        if self._storage.remove_failures:
            self._storage.remove_failures -= 1
            raise RuntimeError("storage unavailable")
        for path in paths:
            self._storage.objects.pop((self._name, path), None)
        return []


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.calls = []
        self.upload_failures = 0
        self.remove_failures = 0

    def from_(self, bucket):
        return _FakeBucket(self, bucket)


class FakeSupabase:
    def __init__(self):
        self.storage = FakeStorage()


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def fetched_images(monkeypatch):
    fetched = []

    def _fetch(url, timeout, max_bytes=None):
        fetched.append((url, timeout))
        return JPEG_BYTES

    monkeypatch.setattr("markwall.services.image_store.fetch_image_bytes", _fetch)
    return fetched


@pytest.fixture
def image_store(app, fake_supabase, fetched_images):
    store = ImageStore(
        client=fake_supabase,
        bucket="screenshots",
        public_base_url=app.config["STORAGE_PUBLIC_BASE_URL"],
        timeout=app.config["STORAGE_TIMEOUT"],
    )
    app.extensions["image_store"] = store
    return store
