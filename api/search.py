from __future__ import annotations

from typing import Tuple

from flask import Blueprint, request, jsonify, abort
from sqlalchemy import func

from models import storage
from models.user import User
from models.video import Video
from models.schemas.user import UserSummarySchema
from models.schemas.video import VideoOutSchema
from utils.decorators import jwt_required

MAX_LIMIT = 100

bp = Blueprint("search", __name__, url_prefix="/search")

# Search hits never carry the playable file url
video_hits_schema = VideoOutSchema(many=True, exclude=("video_file",))
user_hits_schema = UserSummarySchema(many=True)


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


@bp.get("/all")
@jwt_required()
def search():
    """
    Case-insensitive substring search over video titles and usernames
    ---
    tags:
      - Search
    security:
      - Bearer: []
    parameters:
      - { in: query, name: q, type: string, required: true }
      - { in: query, name: page, type: integer, default: 1 }
      - { in: query, name: limit, type: integer, default: 20 }
    responses:
      200: { description: Matching videos and users }
      400: { description: Missing query }
    """
    q = (request.args.get("q") or "").strip()
    if not q:
        abort(400, description="Search query is required")
    page, limit = parse_pagination()
    offset = (page - 1) * limit
    qnorm = f"%{q.lower()}%"
    session = storage.get_session()

    videos = session.query(Video).filter(
        Video.is_published.is_(True), func.lower(Video.title).like(qnorm)
    )
    users = session.query(User).filter(func.lower(User.username).like(qnorm))

    video_total, user_total = videos.count(), users.count()
    video_rows = videos.order_by(Video.created_at.desc(), Video.id).offset(offset).limit(limit).all()
    user_rows = users.order_by(User.username).offset(offset).limit(limit).all()

    return jsonify(
        {
            "data": {
                "videos": video_hits_schema.dump(video_rows),
                "users": user_hits_schema.dump(user_rows),
            },
            "meta": {"page": page, "limit": limit, "total_videos": video_total, "total_users": user_total},
            "message": "Search results fetched successfully",
        }
    )
