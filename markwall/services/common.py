import re
from urllib.parse import urlparse

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from markwall.extensions import db
from markwall.services.errors import PersistenceError, ValidationError

ALLOWED_URL_SCHEMES = {"http", "https"}
DEFAULT_PORTS = {"http": 80, "https": 443}
_INVALID_HOST_CHARS = re.compile(r"[\s<>\"{}|\\^`%]")


def validate_bookmark_url(url) -> str:
    candidate = (url or "").strip() if isinstance(url, str) else ""
    if not candidate:
        raise ValidationError("url is required")
    try:
        parsed = urlparse(candidate)
        hostname = parsed.hostname
        port = parsed.port
    except ValueError as exc:
        raise ValidationError(f"invalid url: {candidate}") from exc
    if parsed.scheme.lower() not in ALLOWED_URL_SCHEMES or not hostname or port == 0:
        raise ValidationError(f"invalid url: {candidate}")
    if _INVALID_HOST_CHARS.search(hostname):
        raise ValidationError(f"invalid url: {candidate}")
    return candidate


def domain_for(url: str) -> str:
    hostname = (urlparse(url).hostname or "").lower()
    return hostname.removeprefix("www.")


def origin_for(url: str) -> str:
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parsed.port
    if port and DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"
    return f"{scheme}://{host}"


def to_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def parse_id_list(raw) -> list[int]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.replace(";", ",").split(",")
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("expected a list of ids")

    ids: list[int] = []
    for item in raw:
        if isinstance(item, str):
            item = item.strip()
            if not item:
                continue
        if isinstance(item, bool):
            raise ValidationError(f"invalid id: {item}")
        try:
            value = int(item)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"invalid id: {item}") from exc
        if value not in ids:
            ids.append(value)
    return ids


def commit_or_raise(action: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Failed to %s: %s", action, exc)
        raise PersistenceError(f"could not {action}") from exc
