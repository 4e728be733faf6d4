from __future__ import annotations

import logging
import re
import warnings
from dataclasses import asdict, dataclass
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning

from markwall.services.common import domain_for, origin_for, validate_bookmark_url

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (compatible; MarkWallBot/1.0; +https://markwall.local)"
    ),
    "Accept": "text/html,application/xhtml+xml",
}
DEFAULT_FETCH_TIMEOUT = 10.0
DEFAULT_MAX_BYTES = 2_500_000

MAX_TITLE_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 1000

TITLE_META_NAMES = ("og:title", "twitter:title")
DESCRIPTION_META_NAMES = ("og:description", "twitter:description", "description")
IMAGE_META_NAMES = ("og:image", "og:image:url", "twitter:image", "twitter:image:src")
FAVICON_LINK_RELS = ("icon", "shortcut icon", "apple-touch-icon")

_LEADING_INT = re.compile(r"^\s*(\d+)")


@dataclass
class ScrapedMetadata:
    title: str
    domain: str
    description: str | None = None
    image_url: str | None = None
    image_width: int | None = None
    image_height: int | None = None
    favicon_url: str | None = None
    og_type: str | None = None

    def as_dict(self):
        return asdict(self)


def default_favicon_url(url: str) -> str:
    return f"{origin_for(url)}/favicon.ico"


def degraded_metadata(url: str) -> ScrapedMetadata:
    domain = domain_for(url)
    return ScrapedMetadata(
        title=domain,
        domain=domain,
        favicon_url=default_favicon_url(url),
    )


def fetch_html(
    url: str,
    timeout: float,
    max_bytes: int,
    transport: httpx.BaseTransport | None = None,
) -> tuple[bytes, str, int, str | None]:
    with httpx.Client(
        follow_redirects=True,
        timeout=timeout,
        headers=DEFAULT_HEADERS,
        transport=transport,
    ) as client:
        with client.stream("GET", url) as response:
            status_code = response.status_code
            chunks = []
            total = 0
            for chunk in response.iter_bytes():
                total += len(chunk)
                if total > max_bytes:
                    break
                chunks.append(chunk)
            return (
                b"".join(chunks),
                str(response.url),
                status_code,
                response.charset_encoding,
            )


def _build_soup(markup: str | bytes, encoding: str | None = None) -> BeautifulSoup:
    # bytes without a header charset let bs4 sniff <meta charset>
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
        if isinstance(markup, bytes):
            return BeautifulSoup(markup, "lxml", from_encoding=encoding)
        return BeautifulSoup(markup, "lxml")


def _meta_content(soup: BeautifulSoup, *names: str) -> str | None:
    for name in names:
        for attr in ("property", "name"):
            tag = soup.find("meta", attrs={attr: name})
            if tag is None:
                continue
            content = (tag.get("content") or "").strip()
            if content:
                return content
    return None


def _link_href(soup: BeautifulSoup, *rels: str) -> str | None:
    links = soup.find_all("link", href=True)
    for rel in rels:
        for link in links:
            value = link.get("rel") or []
            if isinstance(value, str):
                value = value.split()
            if " ".join(value).strip().lower() != rel:
                continue
            href = (link.get("href") or "").strip()
            if href:
                return href
    return None


def _parse_dimension(value: str | None) -> int | None:
    if not value:
        return None
    match = _LEADING_INT.match(value)
    if not match:
        return None
    return int(match.group(1))


def _document_title(soup: BeautifulSoup) -> str | None:
    if soup.title is None:
        return None
    text = soup.title.get_text().strip()
    return text or None


def parse_metadata(
    html: str | bytes, url: str, encoding: str | None = None
) -> ScrapedMetadata:
    soup = _build_soup(html, encoding)
    domain = domain_for(url)

    title = _meta_content(soup, *TITLE_META_NAMES) or _document_title(soup) or domain
    description = _meta_content(soup, *DESCRIPTION_META_NAMES)

    image_url = _meta_content(soup, *IMAGE_META_NAMES)
    if image_url:
        image_url = urljoin(url, image_url)

    favicon_url = _link_href(soup, *FAVICON_LINK_RELS)
    if favicon_url:
        favicon_url = urljoin(url, favicon_url)
    else:
        favicon_url = default_favicon_url(url)

    return ScrapedMetadata(
        title=title.strip()[:MAX_TITLE_LENGTH],
        domain=domain,
        description=description[:MAX_DESCRIPTION_LENGTH] if description else None,
        image_url=image_url,
        image_width=_parse_dimension(_meta_content(soup, "og:image:width")),
        image_height=_parse_dimension(_meta_content(soup, "og:image:height")),
        favicon_url=favicon_url,
        og_type=_meta_content(soup, "og:type"),
    )


def extract_metadata(
    url: str,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    max_bytes: int = DEFAULT_MAX_BYTES,
    transport: httpx.BaseTransport | None = None,
) -> ScrapedMetadata:
    url = validate_bookmark_url(url)
    try:
        data, _final_url, status_code, charset = fetch_html(
            url, timeout=timeout, max_bytes=max_bytes, transport=transport
        )
        if not 200 <= status_code < 300:
            raise httpx.HTTPError(f"HTTP {status_code}")
        return parse_metadata(data, url, encoding=charset)
    except Exception as exc:
        logger.warning("Failed to extract metadata for %s: %s", url, exc)
        return degraded_metadata(url)
