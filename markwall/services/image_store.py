from __future__ import annotations

import logging

import httpx
from flask import Flask, current_app
from supabase import Client, ClientOptions, create_client

logger = logging.getLogger(__name__)

IMAGE_EXTENSION = ".jpg"
IMAGE_CONTENT_TYPE = "image/jpeg"
DEFAULT_STORAGE_TIMEOUT = 15.0
DEFAULT_MAX_IMAGE_BYTES = 10_000_000


def fetch_image_bytes(
    url: str,
    timeout: float,
    max_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
    transport: httpx.BaseTransport | None = None,
) -> bytes:
    with httpx.Client(
        follow_redirects=True, timeout=timeout, transport=transport
    ) as client:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            chunks = []
            total = 0
            for chunk in response.iter_bytes():
                total += len(chunk)
                if total > max_bytes:
                    raise ValueError(f"image larger than {max_bytes} bytes")
                chunks.append(chunk)
            return b"".join(chunks)


class ImageStore:
    def __init__(
        self,
        client: Client | None,
        bucket: str,
        public_base_url: str,
        timeout: float = DEFAULT_STORAGE_TIMEOUT,
        max_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
    ):
        self.client = client
        self.bucket = bucket
        self.public_base_url = (public_base_url or "").rstrip("/")
        self.timeout = timeout
        self.max_bytes = max_bytes

    @property
    def configured(self) -> bool:
        return self.client is not None

    @staticmethod
    def object_path(key) -> str:
        return f"{key}{IMAGE_EXTENSION}"

    def public_url_for(self, key) -> str:
        return f"{self.public_base_url}/{self.bucket}/{self.object_path(key)}"

    def fetch(self, source_url: str) -> bytes | None:
        if not self.configured:
            logger.warning(
                "Image storage is not configured; not fetching %s", source_url
            )
            return None
        try:
            return fetch_image_bytes(
                source_url, timeout=self.timeout, max_bytes=self.max_bytes
            )
        except Exception as exc:
            logger.warning("Failed to fetch image %s: %s", source_url, exc)
            return None

    def put(self, data: bytes, key) -> str | None:
        if not self.configured:
            logger.warning(
                "Image storage is not configured; skipping upload for %s", key
            )
            return None
        path = self.object_path(key)
        try:
            self.client.storage.from_(self.bucket).upload(
                path=path,
                file=data,
                file_options={"content-type": IMAGE_CONTENT_TYPE, "upsert": "true"},
            )
        except Exception as exc:
            logger.warning("Failed to upload image %s: %s", path, exc)
            return None
        return self.public_url_for(key)

    def upload(self, source_url: str, key) -> str | None:
        data = self.fetch(source_url)
        if data is None:
            return None
        return self.put(data, key)

    def delete(self, key) -> bool:
        if not self.configured:
            logger.warning("Image storage is not configured; cannot delete %s", key)
            return False
        path = self.object_path(key)
        try:
            self.client.storage.from_(self.bucket).remove([path])
        except Exception as exc:
            logger.warning("Failed to delete image %s: %s", path, exc)
            return False
        return True


def build_image_store(config) -> ImageStore:
    timeout = float(config.get("STORAGE_TIMEOUT", DEFAULT_STORAGE_TIMEOUT))
    client = None
    supabase_url = config.get("SUPABASE_URL")
    supabase_key = config.get("SUPABASE_SERVICE_KEY")
    if supabase_url and supabase_key:
        client = create_client(
            supabase_url,
            supabase_key,
            options=ClientOptions(storage_client_timeout=int(timeout)),
        )
    return ImageStore(
        client=client,
        bucket=config.get("STORAGE_BUCKET", "screenshots"),
        public_base_url=config.get("STORAGE_PUBLIC_BASE_URL", ""),
        timeout=timeout,
        max_bytes=int(config.get("STORAGE_MAX_IMAGE_BYTES", DEFAULT_MAX_IMAGE_BYTES)),
    )


def init_image_store(app: Flask) -> ImageStore:
    store = build_image_store(app.config)
    app.extensions["image_store"] = store
    return store


def get_image_store() -> ImageStore:
    return current_app.extensions["image_store"]
