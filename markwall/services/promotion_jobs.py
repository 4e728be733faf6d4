from __future__ import annotations

import threading

from flask import Flask, current_app
from sqlalchemy import or_, select, update

from markwall.extensions import db
from markwall.models import Bookmark
from markwall.services.image_store import get_image_store
from markwall.services.screenshot import is_transient_image_url

PROMOTION_PROMOTED = "promoted"
PROMOTION_SKIPPED = "skipped"
PROMOTION_FAILED = "failed"
PROMOTION_STALE = "stale"
PROMOTION_ORPHANED = "orphaned"

SWEEP_BATCH_SIZE = 50


def start_image_promotion(app: Flask, bookmark_id: int, transient_url: str) -> None:
    worker = threading.Thread(
        target=_run_image_promotion,
        args=(app, bookmark_id, transient_url),
        daemon=True,
        name=f"image-promotion-{bookmark_id}",
    )
    worker.start()


def _run_image_promotion(app: Flask, bookmark_id: int, transient_url: str) -> str:
    with app.app_context():
        db.session.remove()
        try:
            return promote_bookmark_image(bookmark_id, transient_url)
        except Exception as exc:
            db.session.rollback()
            app.logger.warning(
                "Failed image promotion for bookmark %s: %s", bookmark_id, exc
            )
            return PROMOTION_FAILED
        finally:
            db.session.remove()


def _current_image_url(bookmark_id: int) -> tuple[bool, str | None]:
    row = db.session.execute(
        select(Bookmark.image_url).where(Bookmark.id == bookmark_id)
    ).first()
    if row is None:
        return False, None
    return True, row[0]


def promote_bookmark_image(bookmark_id: int, transient_url: str) -> str:
    """Copy a transient screenshot into durable storage and repoint the row.

    The row is re-read after the download so a promotion that lost a race never
    overwrites the stored object. The final write only applies while the
    bookmark still points at ``transient_url``; if the bookmark disappeared
    while the upload was in flight, the uploaded object is removed again.
    """
    exists, image_url = _current_image_url(bookmark_id)
    if not exists or image_url != transient_url:
        return PROMOTION_SKIPPED

    store = get_image_store()
    data = store.fetch(transient_url)
    if data is None:
        current_app.logger.warning(
            "Keeping transient image for bookmark %s; download failed", bookmark_id
        )
        return PROMOTION_FAILED

    exists, image_url = _current_image_url(bookmark_id)
    if not exists or image_url != transient_url:
        return PROMOTION_SKIPPED

    permanent_url = store.put(data, bookmark_id)
    if not permanent_url:
        current_app.logger.warning(
            "Keeping transient image for bookmark %s; upload failed", bookmark_id
        )
        return PROMOTION_FAILED

    result = db.session.execute(
        update(Bookmark)
        .where(Bookmark.id == bookmark_id, Bookmark.image_url == transient_url)
        .values(image_url=permanent_url)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if result.rowcount:
        return PROMOTION_PROMOTED

    exists, _image_url = _current_image_url(bookmark_id)
    if not exists:
        store.delete(bookmark_id)
        return PROMOTION_ORPHANED
    return PROMOTION_STALE


def run_transient_image_sweep(app: Flask) -> dict[str, int]:
    hosts = app.config.get("SCREENSHOT_TRANSIENT_HOSTS") or []
    counts: dict[str, int] = {}
    if not hosts:
        return counts

    with app.app_context():
        conditions = [Bookmark.image_url.contains(host) for host in hosts]
        candidates = db.session.execute(
            select(Bookmark.id, Bookmark.image_url)
            .where(Bookmark.image_url.is_not(None), or_(*conditions))
            .order_by(Bookmark.updated_at.asc())
            .limit(SWEEP_BATCH_SIZE)
        ).all()
        targets = [
            (bookmark_id, image_url)
            for bookmark_id, image_url in candidates
            if is_transient_image_url(image_url, hosts)
        ]
        db.session.remove()

    for bookmark_id, image_url in targets:
        outcome = _run_image_promotion(app, bookmark_id, image_url)
        counts[outcome] = counts.get(outcome, 0) + 1
    if targets:
        app.logger.info("Transient image sweep finished: %s", counts)
    return counts
