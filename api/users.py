from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort, current_app
from sqlalchemy import func

from models import storage
from models.user import User
from models.subscription import Subscription
from models.schemas.user import (
    AccountUpdateSchema,
    ChangePasswordSchema,
    ChannelProfileSchema,
    UserOutSchema,
)
from models.schemas.video import VideoOutSchema
from api.extensions import get_media_uploader
from utils.decorators import jwt_required
from utils.media import public_id_from_url, save_upload

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__, url_prefix="/users")

change_password_schema = ChangePasswordSchema()
account_update_schema = AccountUpdateSchema()
user_out_schema = UserOutSchema()
channel_profile_schema = ChannelProfileSchema()
videos_out_schema = VideoOutSchema(many=True)

# multipart field -> (url column, CDN id column)
IMAGE_FIELDS = {
    "avatar": ("avatar", "avatar_public_id"),
    "cover_image": ("cover_image", "cover_image_public_id"),
}


@bp.post("/change-password")
@jwt_required()
def change_password():
    """
    Change the current user's password
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             old_password: { type: string }
             new_password: { type: string }
    responses:
      200: { description: Password changed }
      400: { description: Invalid old password }
      422: { description: Validation error }
    """
    data = change_password_schema.load(request.get_json(silent=True) or {})
    user: User = g.current_user
    if not user.check_password(data["old_password"]):
        abort(400, description="Invalid old password")

    user.set_password(data["new_password"])
    user.save()
    return jsonify({"data": {}, "message": "Password changed successfully"}), 200


@bp.get("/current-user")
@jwt_required()
def current_user():
    """
    Get current user info
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200: { description: OK }
      401: { description: Unauthorized }
    """
    return jsonify({"data": user_out_schema.dump(g.current_user), "message": "User fetched"}), 200


@bp.patch("/update-account")
@jwt_required()
def update_account():
    """
    Update full name and email
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             full_name: { type: string }
             email: { type: string }
    responses:
      200: { description: Updated }
      409: { description: Email already registered }
      422: { description: Validation error }
    """
    data = account_update_schema.load(request.get_json(silent=True) or {})
    user: User = g.current_user

    session = storage.get_session()
    taken = session.query(User).filter(User.email == data["email"], User.id != user.id).first()
    if taken:
        abort(409, description="Email already registered")

    user.full_name = data["full_name"]
    user.email = data["email"]
    user.save()
    return jsonify({"data": user_out_schema.dump(user), "message": "Account details updated successfully"}), 200


def _replace_image(field: str):
    """Upload a new avatar/cover image, store its url, then drop the old asset."""
    path = save_upload(request.files.get(field), current_app.config["UPLOAD_FOLDER"])
    if not path:
        abort(400, description=f"{field} file is missing")

    uploader = get_media_uploader()
    uploaded = uploader.upload(path)
    if not uploaded:
        abort(400, description=f"Error while uploading {field}")

    user: User = g.current_user
    column, id_column = IMAGE_FIELDS[field]
    old_url, old_id = getattr(user, column), getattr(user, id_column)
    setattr(user, column, uploaded.url)
    setattr(user, id_column, uploaded.public_id)
    user.save()

    # Old asset goes only after the new url is stored
    if not old_id and old_url:
        old_id = public_id_from_url(old_url)
    if old_id:
        try:
            uploader.destroy(old_id)
        except Exception:
            logger.exception("could not delete old %s %s", field, old_id)
    return user


@bp.patch("/avatar")
@jwt_required()
def update_avatar():
    """
    Replace the avatar image
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
    parameters:
      - { in: formData, name: avatar, type: file, required: true }
    responses:
      200: { description: Updated }
      400: { description: File missing or upload failed }
    """
    user = _replace_image("avatar")
    return jsonify({"data": user_out_schema.dump(user), "message": "Avatar image updated successfully"}), 200


@bp.patch("/cover-image")
@jwt_required()
def update_cover_image():
    """
    Replace the cover image
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
    parameters:
      - { in: formData, name: cover_image, type: file, required: true }
    responses:
      200: { description: Updated }
      400: { description: File missing or upload failed }
    """
    user = _replace_image("cover_image")
    return jsonify({"data": user_out_schema.dump(user), "message": "Cover image updated successfully"}), 200


@bp.get("/c/<username>")
@jwt_required()
def channel_profile(username: str):
    """
    Channel profile with subscription counts
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: username
        type: string
        required: true
    responses:
      200: { description: OK }
      404: { description: Channel does not exist }
    """
    username = (username or "").strip().lower()
    if not username:
        abort(400, description="username is missing")

    session = storage.get_session()
    channel = session.query(User).filter(User.username == username).first()
    if not channel:
        abort(404, description="Channel does not exist")

    subscribers_count = (
        session.query(func.count(Subscription.id)).filter(Subscription.channel_id == channel.id).scalar()
    )
    subscribed_to_count = (
        session.query(func.count(Subscription.id)).filter(Subscription.subscriber_id == channel.id).scalar()
    )
    is_subscribed = (
        session.query(Subscription.id)
        .filter(Subscription.channel_id == channel.id, Subscription.subscriber_id == g.current_user.id)
        .first()
        is not None
    )

    profile = {
        "id": channel.id,
        "username": channel.username,
        "full_name": channel.full_name,
        "email": channel.email,
        "avatar": channel.avatar,
        "cover_image": channel.cover_image,
        "subscribers_count": subscribers_count,
        "channels_subscribed_to_count": subscribed_to_count,
        "is_subscribed": is_subscribed,
    }
    return jsonify({"data": channel_profile_schema.dump(profile), "message": "User channel fetched successfully"}), 200


@bp.get("/history")
@jwt_required()
def watch_history():
    """
    Videos the current user has watched, most recent first, with owner summary
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200: { description: OK }
    """
    videos = g.current_user.watch_history
    return jsonify({"data": videos_out_schema.dump(videos), "message": "Watch history fetched successfully"}), 200
