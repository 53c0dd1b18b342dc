from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from flask import Blueprint, request, jsonify, g, abort, current_app
from sqlalchemy import func, insert, or_, update

from models import storage
from models.user import User
from models.video import Video, watch_history
from models.schemas.video import VideoCreateSchema, VideoOutSchema, VideoUpdateSchema
from api.extensions import get_media_uploader
from utils.decorators import jwt_required
from utils.media import save_upload

logger = logging.getLogger(__name__)

bp = Blueprint("videos", __name__, url_prefix="/videos")

video_create_schema = VideoCreateSchema()
video_update_schema = VideoUpdateSchema()
video_out_schema = VideoOutSchema()
videos_out_schema = VideoOutSchema(many=True)

# Sorting allowlist: API field -> SQLAlchemy column
SORT_COLUMNS = {
    "created_at": Video.created_at,
    "title": Video.title,
    "views": Video.views,
    "duration": Video.duration,
}
DEFAULT_SORT = "-created_at"

MAX_LIMIT = 100


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "10"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def parse_sort() -> List:
    sort_param = request.args.get("sort", DEFAULT_SORT)
    fields = [s.strip() for s in sort_param.split(",") if s.strip()]
    order_by = []
    for f in fields:
        desc = f.startswith("-")
        key = f[1:] if desc else f
        col = SORT_COLUMNS.get(key)
        if col is None:
            abort(400, description=f"Unsupported sort field: {key}")
        order_by.append(col.desc() if desc else col.asc())
    return order_by or [Video.created_at.desc()]


def paginated(query):
    """Sort and page a Video query; returns the response body."""
    page, limit = parse_pagination()
    order_by = parse_sort()
    total = query.count()
    rows = query.order_by(*order_by, Video.id).offset((page - 1) * limit).limit(limit).all()
    return {
        "data": videos_out_schema.dump(rows),
        "meta": {
            "page": page,
            "limit": limit,
            "total": total,
            "sort": request.args.get("sort", DEFAULT_SORT),
        },
    }


def get_video_or_404(video_id: str, viewer: Optional[User] = None) -> Video:
    video = storage.get(Video, video_id)
    if not video or not video.visible_to(viewer):
        abort(404, description="Video not found")
    return video


def get_own_video(video_id: str, action: str) -> Video:
    video = storage.get(Video, video_id)
    if not video:
        abort(404, description="Video not found")
    if video.owner_id != g.current_user.id:
        abort(403, description=f"You can only {action} your own videos")
    return video


def _destroy(public_id: Optional[str], resource_type: str = "image") -> None:
    if not public_id:
        return
    try:
        get_media_uploader().destroy(public_id, resource_type=resource_type)
    except Exception:
        logger.exception("could not delete CDN asset %s", public_id)


@bp.get("/all")
def list_videos():
    """
    Published videos with search, sorting and pagination
    ---
    tags:
      - Videos
    parameters:
      - { in: query, name: page, type: integer, default: 1 }
      - { in: query, name: limit, type: integer, default: 10 }
      - in: query
        name: sort
        type: string
        description: "Comma-separated fields; prefix with '-' for desc. Allowed: created_at, title, views, duration"
        default: "-created_at"
      - in: query
        name: q
        type: string
        description: "Case-insensitive substring search on title and description"
      - { in: query, name: user_id, type: string }
    responses:
      200:
        description: List of videos
    """
    session = storage.get_session()
    query = session.query(Video).filter(Video.is_published.is_(True))

    q = (request.args.get("q") or "").strip()
    if q:
        qnorm = f"%{q.lower()}%"
        query = query.filter(
            or_(func.lower(Video.title).like(qnorm), func.lower(Video.description).like(qnorm))
        )
    user_id = request.args.get("user_id")
    if user_id:
        query = query.filter(Video.owner_id == user_id)

    return jsonify(paginated(query))


@bp.post("/upload-video")
@jwt_required()
def publish_video():
    """
    Upload a video file and thumbnail, then publish
    ---
    tags:
      - Videos
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
    parameters:
      - { in: formData, name: title, type: string, required: true }
      - { in: formData, name: description, type: string, required: true }
      - { in: formData, name: video_file, type: file, required: true }
      - { in: formData, name: thumbnail, type: file, required: true }
    responses:
      201: { description: Published }
      400: { description: File missing or upload failed }
      422: { description: Validation error }
    """
    data = video_create_schema.load(request.form.to_dict())

    video_upload = request.files.get("video_file")
    thumbnail_upload = request.files.get("thumbnail")
    if not video_upload or not video_upload.filename:
        abort(400, description="Video file is required")
    if not thumbnail_upload or not thumbnail_upload.filename:
        abort(400, description="Thumbnail image is required")

    folder = current_app.config["UPLOAD_FOLDER"]
    uploader = get_media_uploader()
    uploaded_video = uploader.upload(save_upload(video_upload, folder))
    if not uploaded_video:
        abort(400, description="Failed to upload video")
    uploaded_thumbnail = uploader.upload(save_upload(thumbnail_upload, folder))
    if not uploaded_thumbnail:
        _destroy(uploaded_video.public_id, resource_type="video")
        abort(400, description="Failed to upload thumbnail")

    video = Video(
        title=data["title"],
        description=data["description"],
        video_file=uploaded_video.url,
        video_public_id=uploaded_video.public_id,
        thumbnail=uploaded_thumbnail.url,
        thumbnail_public_id=uploaded_thumbnail.public_id,
        duration=uploaded_video.duration or 0,
        owner_id=g.current_user.id,
    )
    storage.new(video)
    storage.save()
    logger.info("user %s published video %s", g.current_user.id, video.id)
    return jsonify({"data": video_out_schema.dump(video), "message": "Video published successfully"}), 201


@bp.get("/my-videos")
@jwt_required()
def my_videos():
    """
    The current user's videos, unpublished included
    ---
    tags:
      - Videos
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer, default: 1 }
      - { in: query, name: limit, type: integer, default: 10 }
      - { in: query, name: sort, type: string, default: "-created_at" }
    responses:
      200: { description: OK }
    """
    session = storage.get_session()
    query = session.query(Video).filter(Video.owner_id == g.current_user.id)
    return jsonify(paginated(query))


@bp.get("/user/<user_id>/videos")
@jwt_required()
def user_videos(user_id: str):
    """
    A user's published videos (all of them when it is the caller)
    ---
    tags:
      - Videos
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
      - { in: query, name: page, type: integer, default: 1 }
      - { in: query, name: limit, type: integer, default: 10 }
      - { in: query, name: sort, type: string, default: "-created_at" }
    responses:
      200: { description: OK }
      404: { description: User not found }
    """
    if not storage.get(User, user_id):
        abort(404, description="User not found")
    session = storage.get_session()
    query = session.query(Video).filter(Video.owner_id == user_id)
    if user_id != g.current_user.id:
        query = query.filter(Video.is_published.is_(True))
    return jsonify(paginated(query))


@bp.get("/user-video/<video_id>")
@jwt_required()
def get_video(video_id: str):
    """
    Get a single video by id
    ---
    tags:
      - Videos
    security:
      - Bearer: []
    parameters:
      - { in: path, name: video_id, type: string, required: true }
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    video = get_video_or_404(video_id, g.current_user)
    return jsonify({"data": video_out_schema.dump(video), "message": "Video fetched successfully"})


@bp.patch("/update-video/<video_id>")
@jwt_required()
def update_video(video_id: str):
    """
    Update title, description, publish flag and optionally the thumbnail
    ---
    tags:
      - Videos
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
      - application/json
    parameters:
      - { in: path, name: video_id, type: string, required: true }
      - { in: formData, name: title, type: string }
      - { in: formData, name: description, type: string }
      - { in: formData, name: is_published, type: boolean }
      - { in: formData, name: thumbnail, type: file }
    responses:
      200: { description: Updated }
      400: { description: Thumbnail upload failed }
      403: { description: Not the owner }
      404: { description: Not found }
      422: { description: Validation error }
    """
    video = get_own_video(video_id, "update")
    payload = request.form.to_dict() if request.form else (request.get_json(silent=True) or {})
    data = video_update_schema.load(payload)

    old_thumbnail_id = None
    path = save_upload(request.files.get("thumbnail"), current_app.config["UPLOAD_FOLDER"])
    if path:
        uploaded = get_media_uploader().upload(path)
        if not uploaded:
            abort(400, description="Error while uploading thumbnail")
        old_thumbnail_id = video.thumbnail_public_id
        video.thumbnail = uploaded.url
        video.thumbnail_public_id = uploaded.public_id

    for field in ("title", "description", "is_published"):
        if field in data:
            setattr(video, field, data[field])
    video.save()

    # Old thumbnail goes only after the new url is stored
    _destroy(old_thumbnail_id)
    return jsonify({"data": video_out_schema.dump(video), "message": "Video updated successfully"})


@bp.delete("/delete-video/<video_id>")
@jwt_required()
def delete_video(video_id: str):
    """
    Delete a video and its CDN assets
    ---
    tags:
      - Videos
    security:
      - Bearer: []
    parameters:
      - { in: path, name: video_id, type: string, required: true }
    responses:
      200: { description: Deleted }
      403: { description: Not the owner }
      404: { description: Not found }
    """
    video = get_own_video(video_id, "delete")
    assets = (video.video_public_id, video.thumbnail_public_id)
    storage.delete(video)
    storage.save()

    _destroy(assets[0], resource_type="video")
    _destroy(assets[1])
    return jsonify({"data": None, "message": "Video deleted successfully"})


@bp.patch("/toggle/publish/<video_id>")
@jwt_required()
def toggle_publish(video_id: str):
    """
    Flip the publish flag of one of your videos
    ---
    tags:
      - Videos
    security:
      - Bearer: []
    parameters:
      - { in: path, name: video_id, type: string, required: true }
    responses:
      200: { description: Toggled }
      403: { description: Not the owner }
      404: { description: Not found }
    """
    video = get_own_video(video_id, "toggle publish status of")
    video.is_published = not video.is_published
    video.save()
    state = "published" if video.is_published else "unpublished"
    return jsonify({"data": video_out_schema.dump(video), "message": f"Video {state} successfully"})


@bp.patch("/incrementViews/<video_id>")
@jwt_required()
def increment_views(video_id: str):
    """
    Count a view and move the video to the top of the caller's watch history
    ---
    tags:
      - Videos
    security:
      - Bearer: []
    parameters:
      - { in: path, name: video_id, type: string, required: true }
    responses:
      200: { description: View counted }
      404: { description: Not found }
    """
    user: User = g.current_user
    video = get_video_or_404(video_id, user)
    session = storage.get_session()

    session.execute(
        update(Video)
        .where(Video.id == video.id)
        .values(views=Video.views + 1)
        .execution_options(synchronize_session=False)
    )
    now = datetime.now(timezone.utc)
    seen = session.execute(
        update(watch_history)
        .where(watch_history.c.user_id == user.id, watch_history.c.video_id == video.id)
        .values(watched_at=now)
    )
    if seen.rowcount == 0:
        session.execute(insert(watch_history).values(user_id=user.id, video_id=video.id, watched_at=now))
    storage.save()

    session.expire(video, ["views"])
    session.expire(user, ["watch_history"])
    return jsonify({"data": video_out_schema.dump(video), "message": "View counted"})
