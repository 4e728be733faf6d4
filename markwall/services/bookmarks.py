from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import or_

from markwall.extensions import db
from markwall.models import Bookmark, Collection, Tag
from markwall.services.common import commit_or_raise, validate_bookmark_url
from markwall.services.errors import NotFoundError, ValidationError
from markwall.services.image_store import get_image_store
from markwall.services.metadata import (
    MAX_TITLE_LENGTH,
    ScrapedMetadata,
    extract_metadata,
)
from markwall.services.promotion_jobs import start_image_promotion
from markwall.services.screenshot import capture_screenshot

SORTABLE_FIELDS = {
    "created_at": Bookmark.created_at,
    "updated_at": Bookmark.updated_at,
    "title": Bookmark.title,
    "domain": Bookmark.domain,
}
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dataclass
class Enrichment:
    metadata: ScrapedMetadata
    image_url: str | None
    image_width: int | None
    image_height: int | None
    from_screenshot: bool = False


def _enrich(url: str) -> Enrichment:
    config = current_app.config
    metadata = extract_metadata(
        url,
        timeout=float(config["METADATA_FETCH_TIMEOUT"]),
        max_bytes=int(config["METADATA_MAX_BYTES"]),
    )
    enrichment = Enrichment(
        metadata=metadata,
        image_url=metadata.image_url,
        image_width=metadata.image_width,
        image_height=metadata.image_height,
    )
    if enrichment.image_url:
        return enrichment

    screenshot = capture_screenshot(
        url,
        api_url=config["SCREENSHOT_API_URL"],
        api_key=config.get("MICROLINK_API_KEY"),
        timeout=float(config["SCREENSHOT_TIMEOUT"]),
    )
    if screenshot:
        enrichment.image_url = screenshot.url
        enrichment.image_width = screenshot.width
        enrichment.image_height = screenshot.height
        enrichment.from_screenshot = True
    return enrichment


def _schedule_promotion(bookmark: Bookmark, enrichment: Enrichment) -> None:
    if not enrichment.from_screenshot or not bookmark.image_url:
        return
    start_image_promotion(
        app=current_app._get_current_object(),
        bookmark_id=bookmark.id,
        transient_url=bookmark.image_url,
    )


def get_owned_bookmark(user_id: int, bookmark_id: int) -> Bookmark:
    bookmark = Bookmark.query.filter_by(id=bookmark_id, user_id=user_id).first()
    if not bookmark:
        raise NotFoundError("bookmark")
    return bookmark


def resolve_collection(user_id: int, collection_id) -> Collection | None:
    if collection_id in (None, ""):
        return None
    try:
        collection_id = int(collection_id)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"invalid collection id: {collection_id}") from exc
    collection = Collection.query.filter_by(id=collection_id, user_id=user_id).first()
    if not collection:
        raise NotFoundError("collection")
    return collection


def resolve_tags(user_id: int, tag_ids: list[int] | None) -> list[Tag]:
    if not tag_ids:
        return []
    tags = Tag.query.filter(Tag.user_id == user_id, Tag.id.in_(tag_ids)).all()
    if len(tags) != len(set(tag_ids)):
        raise NotFoundError("tag")
    by_id = {tag.id: tag for tag in tags}
    return [by_id[tag_id] for tag_id in dict.fromkeys(tag_ids)]


def create_bookmark(
    user_id: int,
    url: str,
    collection_id: int | None = None,
    tag_ids: list[int] | None = None,
) -> Bookmark:
    url = validate_bookmark_url(url)
    collection = resolve_collection(user_id, collection_id)
    tags = resolve_tags(user_id, tag_ids)

    enrichment = _enrich(url)
    metadata = enrichment.metadata
    bookmark = Bookmark(
        user_id=user_id,
        collection_id=collection.id if collection else None,
        url=url,
        title=metadata.title,
        description=metadata.description,
        image_url=enrichment.image_url,
        image_width=enrichment.image_width,
        image_height=enrichment.image_height,
        favicon_url=metadata.favicon_url,
        domain=metadata.domain,
        og_type=metadata.og_type,
    )
    bookmark.tags = tags
    db.session.add(bookmark)
    commit_or_raise("save bookmark")

    _schedule_promotion(bookmark, enrichment)
    return bookmark


def refresh_bookmark(user_id: int, bookmark_id: int) -> Bookmark:
    bookmark = get_owned_bookmark(user_id, bookmark_id)
    enrichment = _enrich(bookmark.url)
    metadata = enrichment.metadata

    bookmark.title = metadata.title
    bookmark.description = metadata.description
    bookmark.favicon_url = metadata.favicon_url
    bookmark.domain = metadata.domain
    bookmark.og_type = metadata.og_type
    # a failed refresh never drops an image the bookmark already has
    if enrichment.image_url:
        bookmark.image_url = enrichment.image_url
        bookmark.image_width = enrichment.image_width
        bookmark.image_height = enrichment.image_height
    commit_or_raise("refresh bookmark")

    _schedule_promotion(bookmark, enrichment)
    return bookmark


def update_bookmark(user_id: int, bookmark_id: int, changes: dict) -> Bookmark:
    bookmark = get_owned_bookmark(user_id, bookmark_id)

    if "title" in changes:
        title = (changes.get("title") or "").strip()
        bookmark.title = title[:MAX_TITLE_LENGTH] or bookmark.title
    if "description" in changes:
        bookmark.description = (changes.get("description") or "").strip() or None
    if "collection_id" in changes:
        collection = resolve_collection(user_id, changes.get("collection_id"))
        bookmark.collection_id = collection.id if collection else None
    if "tag_ids" in changes:
        bookmark.tags = resolve_tags(user_id, changes.get("tag_ids"))

    commit_or_raise("update bookmark")
    return bookmark


def delete_bookmark(user_id: int, bookmark_id: int) -> None:
    """Release the stored preview image, then remove the row.

    The storage cleanup comes first so a retry after a failed database delete
    still finds the bookmark and tries the storage delete again.
    """
    bookmark = get_owned_bookmark(user_id, bookmark_id)
    if not get_image_store().delete(bookmark.id):
        current_app.logger.warning(
            "Could not release stored image for bookmark %s", bookmark.id
        )
    bookmark.tags.clear()
    db.session.delete(bookmark)
    commit_or_raise("delete bookmark")


def toggle_favorite(user_id: int, bookmark_id: int) -> Bookmark:
    bookmark = get_owned_bookmark(user_id, bookmark_id)
    bookmark.is_favorite = not bookmark.is_favorite
    commit_or_raise("update bookmark")
    return bookmark


def toggle_archive(user_id: int, bookmark_id: int) -> Bookmark:
    bookmark = get_owned_bookmark(user_id, bookmark_id)
    bookmark.is_archived = not bookmark.is_archived
    commit_or_raise("update bookmark")
    return bookmark


def list_bookmarks(
    user_id: int,
    search: str | None = None,
    tag_ids: list[int] | None = None,
    collection_id: int | None = None,
    is_favorite: bool | None = None,
    is_archived: bool = False,
    sort_by: str = "created_at",
    sort_direction: str = "desc",
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> dict:
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"cannot sort by {sort_by}")
    if sort_direction not in {"asc", "desc"}:
        raise ValidationError("sort direction must be asc or desc")
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    offset = max(0, int(offset))

    query = Bookmark.query.filter_by(user_id=user_id, is_archived=is_archived)
    if is_favorite is not None:
        query = query.filter_by(is_favorite=is_favorite)
    if collection_id:
        query = query.filter_by(collection_id=collection_id)
    if tag_ids:
        query = query.filter(Bookmark.tags.any(Tag.id.in_(tag_ids)))
    term = (search or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.filter(
            or_(
                Bookmark.title.ilike(pattern),
                Bookmark.description.ilike(pattern),
                Bookmark.url.ilike(pattern),
                Bookmark.domain.ilike(pattern),
            )
        )

    total = query.count()
    column = SORTABLE_FIELDS[sort_by]
    ordering = column.asc() if sort_direction == "asc" else column.desc()
    items = (
        query.order_by(ordering, Bookmark.id.desc()).offset(offset).limit(limit).all()
    )
    return {
        "items": items,
        "total": total,
        "has_more": offset + len(items) < total,
    }
