from __future__ import annotations

from flask import current_app, g, jsonify, request

from markwall.api import api_bp
from markwall.extensions import db
from markwall.models import (
    DEFAULT_COLLECTION_COLOR,
    DEFAULT_COLLECTION_ICON,
    DEFAULT_TAG_COLOR,
    ApiToken,
    Collection,
    Tag,
    User,
)
from markwall.services.bookmarks import (
    create_bookmark,
    delete_bookmark,
    get_owned_bookmark,
    list_bookmarks,
    refresh_bookmark,
    toggle_archive,
    toggle_favorite,
    update_bookmark,
)
from markwall.services.common import commit_or_raise, parse_id_list, to_bool
from markwall.services.errors import MarkWallError, ValidationError
from markwall.services.metadata import extract_metadata
from markwall.services.security import api_auth_required

BOOKMARK_UPDATE_FIELDS = ("title", "description", "collection_id")


@api_bp.errorhandler(MarkWallError)
def handle_markwall_error(exc: MarkWallError):
    return jsonify({"error": exc.message}), exc.status_code


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _get_user_collection_or_404(user_id: int, collection_id: int):
    collection = Collection.query.filter_by(id=collection_id, user_id=user_id).first()
    if not collection:
        return None, (jsonify({"error": "collection not found"}), 404)
    return collection, None


def _get_user_tag_or_404(user_id: int, tag_id: int):
    tag = Tag.query.filter_by(id=tag_id, user_id=user_id).first()
    if not tag:
        return None, (jsonify({"error": "tag not found"}), 404)
    return tag, None


def _optional_bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return None
    return to_bool(raw)


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "MarkWall"})


@api_bp.route("/auth/bootstrap-admin", methods=["POST"])
def bootstrap_admin_api():
    if User.query.count() > 0:
        return jsonify({"error": "bootstrap already completed"}), 409

    payload = _json_payload()
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    if not username or not password:
        return jsonify({"error": "username and password are required"}), 400

    admin = User(username=username, is_admin=True, is_active=True)
    admin.set_password(password)
    db.session.add(admin)
    db.session.commit()
    return jsonify({"status": "created", "user_id": admin.id}), 201


@api_bp.route("/auth/token", methods=["POST"])
def create_token_with_credentials():
    payload = _json_payload()
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    token_name = (payload.get("token_name") or "MarkWall API Token").strip()

    user = User.query.filter_by(username=username).first()
    if not user or not user.is_active or not user.check_password(password):
        return jsonify({"error": "invalid credentials"}), 401

    token, token_hash = ApiToken.issue_token()
    row = ApiToken(user_id=user.id, name=token_name, token_hash=token_hash)
    db.session.add(row)
    db.session.commit()
    return jsonify({"token": token, "token_name": token_name, "user_id": user.id})


@api_bp.route("/admin/users", methods=["POST"])
@api_auth_required(admin=True)
def admin_create_user():
    payload = _json_payload()
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    is_admin = to_bool(payload.get("is_admin"), default=False)

    if not username or not password:
        return jsonify({"error": "username and password are required"}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({"error": "username already exists"}), 409

    user = User(username=username, is_admin=is_admin, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return jsonify({"status": "created", "user_id": user.id}), 201


@api_bp.route("/metadata", methods=["GET"])
@api_auth_required()
def metadata_preview():
    metadata = extract_metadata(
        request.args.get("url", ""),
        timeout=float(current_app.config["METADATA_FETCH_TIMEOUT"]),
        max_bytes=int(current_app.config["METADATA_MAX_BYTES"]),
    )
    return jsonify(metadata.as_dict())


@api_bp.route("/bookmarks", methods=["GET"])
@api_auth_required()
def bookmarks_list_api():
    user = g.api_user
    result = list_bookmarks(
        user.id,
        search=request.args.get("search"),
        tag_ids=parse_id_list(request.args.get("tags")),
        collection_id=request.args.get("collection_id", type=int),
        is_favorite=_optional_bool_arg("is_favorite"),
        is_archived=to_bool(request.args.get("is_archived"), default=False),
        sort_by=request.args.get("sort_by", "created_at"),
        sort_direction=request.args.get("sort_direction", "desc"),
        limit=request.args.get("limit", 50, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify(
        {
            "items": [item.as_dict() for item in result["items"]],
            "total": result["total"],
            "has_more": result["has_more"],
        }
    )


@api_bp.route("/bookmarks", methods=["POST"])
@api_auth_required()
def bookmarks_create_api():
    user = g.api_user
    payload = _json_payload()
    bookmark = create_bookmark(
        user.id,
        payload.get("url"),
        collection_id=payload.get("collection_id"),
        tag_ids=parse_id_list(payload.get("tag_ids")),
    )
    return jsonify(bookmark.as_dict()), 201


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["GET"])
@api_auth_required()
def bookmarks_get_api(bookmark_id: int):
    bookmark = get_owned_bookmark(g.api_user.id, bookmark_id)
    return jsonify(bookmark.as_dict())


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["PATCH"])
@api_auth_required()
def bookmarks_update_api(bookmark_id: int):
    payload = _json_payload()
    changes = {
        field: payload.get(field)
        for field in BOOKMARK_UPDATE_FIELDS
        if field in payload
    }
    if "tag_ids" in payload:
        changes["tag_ids"] = parse_id_list(payload.get("tag_ids"))
    bookmark = update_bookmark(g.api_user.id, bookmark_id, changes)
    return jsonify(bookmark.as_dict())


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["DELETE"])
@api_auth_required()
def bookmarks_delete_api(bookmark_id: int):
    delete_bookmark(g.api_user.id, bookmark_id)
    return jsonify({"status": "deleted"})


@api_bp.route("/bookmarks/<int:bookmark_id>/favorite", methods=["POST"])
@api_auth_required()
def bookmarks_toggle_favorite_api(bookmark_id: int):
    bookmark = toggle_favorite(g.api_user.id, bookmark_id)
    return jsonify(bookmark.as_dict())


@api_bp.route("/bookmarks/<int:bookmark_id>/archive", methods=["POST"])
@api_auth_required()
def bookmarks_toggle_archive_api(bookmark_id: int):
    bookmark = toggle_archive(g.api_user.id, bookmark_id)
    return jsonify(bookmark.as_dict())


@api_bp.route("/bookmarks/<int:bookmark_id>/refresh", methods=["POST"])
@api_auth_required()
def bookmarks_refresh_api(bookmark_id: int):
    bookmark = refresh_bookmark(g.api_user.id, bookmark_id)
    return jsonify(bookmark.as_dict())


@api_bp.route("/collections", methods=["GET"])
@api_auth_required()
def collections_list():
    user = g.api_user
    items = (
        Collection.query.filter_by(user_id=user.id)
        .order_by(Collection.name.asc())
        .all()
    )
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/collections", methods=["POST"])
@api_auth_required()
def collections_create():
    user = g.api_user
    payload = _json_payload()
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("collection name is required")

    collection = Collection(
        user_id=user.id,
        name=name,
        description=(payload.get("description") or "").strip() or None,
        color=(payload.get("color") or "").strip() or DEFAULT_COLLECTION_COLOR,
        icon=(payload.get("icon") or "").strip() or DEFAULT_COLLECTION_ICON,
    )
    db.session.add(collection)
    commit_or_raise("save collection")
    return jsonify(collection.as_dict()), 201


@api_bp.route("/collections/<int:collection_id>", methods=["PATCH"])
@api_auth_required()
def collections_update(collection_id: int):
    user = g.api_user
    collection, error = _get_user_collection_or_404(user.id, collection_id)
    if error:
        return error

    payload = _json_payload()
    if "name" in payload:
        collection.name = (payload.get("name") or "").strip() or collection.name
    if "description" in payload:
        collection.description = (payload.get("description") or "").strip() or None
    if "color" in payload:
        collection.color = (payload.get("color") or "").strip() or collection.color
    if "icon" in payload:
        collection.icon = (payload.get("icon") or "").strip() or collection.icon
    commit_or_raise("update collection")
    return jsonify(collection.as_dict())


@api_bp.route("/collections/<int:collection_id>", methods=["DELETE"])
@api_auth_required()
def collections_delete(collection_id: int):
    user = g.api_user
    collection, error = _get_user_collection_or_404(user.id, collection_id)
    if error:
        return error

    for bookmark in collection.bookmarks:
        bookmark.collection_id = None
    db.session.delete(collection)
    commit_or_raise("delete collection")
    return jsonify({"status": "deleted"})


@api_bp.route("/tags", methods=["GET"])
@api_auth_required()
def tags_list():
    user = g.api_user
    tags = Tag.query.filter_by(user_id=user.id).order_by(Tag.name.asc()).all()
    return jsonify({"items": [tag.as_dict() for tag in tags]})


@api_bp.route("/tags", methods=["POST"])
@api_auth_required()
def tags_create():
    user = g.api_user
    payload = _json_payload()
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("tag name is required")

    existing = Tag.query.filter_by(user_id=user.id, name=name).first()
    if existing:
        return jsonify(existing.as_dict())

    tag = Tag(
        user_id=user.id,
        name=name,
        color=(payload.get("color") or "").strip() or DEFAULT_TAG_COLOR,
    )
    db.session.add(tag)
    commit_or_raise("save tag")
    return jsonify(tag.as_dict()), 201


@api_bp.route("/tags/<int:tag_id>", methods=["PATCH"])
@api_auth_required()
def tags_update(tag_id: int):
    user = g.api_user
    tag, error = _get_user_tag_or_404(user.id, tag_id)
    if error:
        return error

    payload = _json_payload()
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if name and name != tag.name:
            if Tag.query.filter_by(user_id=user.id, name=name).first():
                return jsonify({"error": "tag name already exists"}), 409
            tag.name = name
    if "color" in payload:
        tag.color = (payload.get("color") or "").strip() or tag.color
    commit_or_raise("update tag")
    return jsonify(tag.as_dict())


@api_bp.route("/tags/<int:tag_id>", methods=["DELETE"])
@api_auth_required()
def tags_delete(tag_id: int):
    user = g.api_user
    tag, error = _get_user_tag_or_404(user.id, tag_id)
    if error:
        return error

    tag.bookmarks.clear()
    db.session.delete(tag)
    commit_or_raise("delete tag")
    return jsonify({"status": "deleted"})
