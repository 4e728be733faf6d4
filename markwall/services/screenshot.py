from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

DEFAULT_SCREENSHOT_API_URL = "https://api.microlink.io"
DEFAULT_SCREENSHOT_TIMEOUT = 30.0
DEFAULT_SCREENSHOT_WIDTH = 1200
DEFAULT_SCREENSHOT_HEIGHT = 630


@dataclass
class CapturedScreenshot:
    url: str
    width: int = DEFAULT_SCREENSHOT_WIDTH
    height: int = DEFAULT_SCREENSHOT_HEIGHT


def _screenshot_params(url: str, api_key: str | None = None) -> dict[str, str]:
    params = {
        "url": url,
        "screenshot": "true",
        "meta": "false",
        "embed": "screenshot.url",
    }
    if api_key:
        params["apiKey"] = api_key
    return params


def _dimension(value, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _parse_screenshot_payload(payload) -> CapturedScreenshot | None:
    if not isinstance(payload, dict) or payload.get("status") != "success":
        return None
    data = payload.get("data")
    screenshot = data.get("screenshot") if isinstance(data, dict) else None
    if not isinstance(screenshot, dict) or not screenshot.get("url"):
        return None
    return CapturedScreenshot(
        url=str(screenshot["url"]),
        width=_dimension(screenshot.get("width"), DEFAULT_SCREENSHOT_WIDTH),
        height=_dimension(screenshot.get("height"), DEFAULT_SCREENSHOT_HEIGHT),
    )


def capture_screenshot(
    url: str,
    api_url: str = DEFAULT_SCREENSHOT_API_URL,
    api_key: str | None = None,
    timeout: float = DEFAULT_SCREENSHOT_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
) -> CapturedScreenshot | None:
    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            response = client.get(api_url, params=_screenshot_params(url, api_key))
        location = response.headers.get("location")
        # embed mode can redirect straight to the image
        if response.is_redirect and location:
            return CapturedScreenshot(url=str(response.url.join(location)))
        response.raise_for_status()
        payload = response.json()
    except Exception as exc:
        logger.warning("Failed to capture screenshot for %s: %s", url, exc)
        return None

    screenshot = _parse_screenshot_payload(payload)
    if screenshot is None:
        logger.warning(
            "Screenshot service returned no image for %s (status=%s)",
            url,
            payload.get("status") if isinstance(payload, dict) else None,
        )
    return screenshot


def screenshot_embed_url(
    url: str,
    width: int | None = None,
    height: int | None = None,
    image_type: str | None = None,
    api_url: str = DEFAULT_SCREENSHOT_API_URL,
    api_key: str | None = None,
) -> str:
    params = _screenshot_params(url)
    if width:
        params["screenshot.width"] = str(width)
    if height:
        params["screenshot.height"] = str(height)
    if image_type:
        params["screenshot.type"] = image_type
    if api_key:
        params["apiKey"] = api_key
    return str(httpx.URL(api_url, params=params))


def is_transient_image_url(url: str | None, hosts) -> bool:
    if not url:
        return False
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return False
    if not hostname:
        return False
    return any(
        hostname == host or hostname.endswith(f".{host}")
        for host in (h.strip().lower() for h in hosts or ())
        if host
    )
