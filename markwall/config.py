import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


def _storage_public_base_url() -> str:
    explicit = os.environ.get("STORAGE_PUBLIC_BASE_URL", "").strip()
    if explicit:
        return explicit.rstrip("/")
    supabase_url = os.environ.get("SUPABASE_URL", "").strip().rstrip("/")
    if not supabase_url:
        return ""
    return f"{supabase_url}/storage/v1/object/public"


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'markwall.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1") == "1"

    METADATA_FETCH_TIMEOUT = float(os.environ.get("METADATA_FETCH_TIMEOUT", "10"))
    METADATA_MAX_BYTES = int(os.environ.get("METADATA_MAX_BYTES", "2500000"))

    SCREENSHOT_API_URL = os.environ.get(
        "SCREENSHOT_API_URL", "https://api.microlink.io"
    )
    MICROLINK_API_KEY = os.environ.get("MICROLINK_API_KEY") or None
    SCREENSHOT_TIMEOUT = float(os.environ.get("SCREENSHOT_TIMEOUT", "30"))
    SCREENSHOT_TRANSIENT_HOSTS = [
        host.strip().lower()
        for host in os.environ.get("SCREENSHOT_TRANSIENT_HOSTS", "microlink.io").split(
            ","
        )
        if host.strip()
    ]

    SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
    SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY", "")
    STORAGE_BUCKET = os.environ.get("STORAGE_BUCKET", "screenshots")
    STORAGE_PUBLIC_BASE_URL = _storage_public_base_url()
    STORAGE_TIMEOUT = float(os.environ.get("STORAGE_TIMEOUT", "15"))
    STORAGE_MAX_IMAGE_BYTES = int(os.environ.get("STORAGE_MAX_IMAGE_BYTES", "10000000"))

    PROMOTION_SWEEP_INTERVAL_MINUTES = int(
        os.environ.get("PROMOTION_SWEEP_INTERVAL_MINUTES", "60")
    )


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SCHEDULER_ENABLED = False
    SUPABASE_URL = ""
    SUPABASE_SERVICE_KEY = ""
    STORAGE_PUBLIC_BASE_URL = "https://storage.test/storage/v1/object/public"
    MICROLINK_API_KEY = None
