"""
Authentication blueprint (mounted under /api/v1/users):
- POST /register
- POST /login
- POST /logout
- POST /refresh-token

Login, register and refresh all hand out a fresh access/refresh pair, both
as httpOnly cookies and in the JSON body. Only the newest refresh token of
an account is accepted (see utils.tokens).
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort, current_app, make_response

from models import storage
from models.user import User
from models.schemas.user import UserRegisterSchema, UserLoginSchema, UserOutSchema, RefreshTokenSchema
from api.extensions import get_token_manager, get_media_uploader
from utils.decorators import jwt_required, ACCESS_COOKIE
from utils.media import save_upload
from utils.tokens import TokenPair

logger = logging.getLogger(__name__)

REFRESH_COOKIE = "refreshToken"

bp = Blueprint("auth", __name__, url_prefix="/users")

user_register_schema = UserRegisterSchema()
user_login_schema = UserLoginSchema()
user_out_schema = UserOutSchema()
refresh_token_schema = RefreshTokenSchema()


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": current_app.config["COOKIE_SECURE"],
        "samesite": current_app.config["COOKIE_SAMESITE"],
    }


def _first_filled(data: dict, *keys: str) -> str | None:
    """First value among keys that is not blank."""
    for key in keys:
        value = data.get(key)
        if value and value.strip():
            return value
    return None


def session_response(body: dict, status: int, pair: TokenPair):
    """JSON response that also sets both session cookies."""
    response = make_response(jsonify(body), status)
    max_age = current_app.config["COOKIE_MAX_AGE"]
    response.set_cookie(ACCESS_COOKIE, pair.access_token, max_age=max_age, **_cookie_options())
    response.set_cookie(REFRESH_COOKIE, pair.refresh_token, max_age=max_age, **_cookie_options())
    return response


@bp.post("/register")
def register():
    """
    Register a new account and start a session.
    ---
    tags:
      - Auth
    consumes:
      - multipart/form-data
    parameters:
      - { in: formData, name: full_name, type: string, required: true }
      - { in: formData, name: email, type: string, required: true }
      - { in: formData, name: username, type: string, required: true }
      - { in: formData, name: password, type: string, required: true }
      - { in: formData, name: avatar, type: file, required: true }
      - { in: formData, name: cover_image, type: file, required: false }
    responses:
      201:
        description: Created (returns user and tokens, sets cookies)
      400:
        description: Avatar missing or upload failed
      409:
        description: Username or email already registered
      422:
        description: Validation error
    """
    data = user_register_schema.load(request.form.to_dict())

    session = storage.get_session()
    existing = (
        session.query(User)
        .filter((User.username == data["username"]) | (User.email == data["email"]))
        .first()
    )
    if existing:
        abort(409, description="User already exists with this username or email")

    folder = current_app.config["UPLOAD_FOLDER"]
    avatar_path = save_upload(request.files.get("avatar"), folder)
    if not avatar_path:
        abort(400, description="Avatar is required")

    # The cover is only staged once the avatar is on the CDN
    uploader = get_media_uploader()
    avatar = uploader.upload(avatar_path)
    if not avatar:
        abort(400, description="Failed to upload avatar image")
    cover_path = save_upload(request.files.get("cover_image"), folder)
    cover = uploader.upload(cover_path) if cover_path else None

    user = User(
        full_name=data["full_name"],
        email=data["email"],
        username=data["username"],
        avatar=avatar.url,
        avatar_public_id=avatar.public_id,
        cover_image=cover.url if cover else None,
        cover_image_public_id=cover.public_id if cover else None,
    )
    user.set_password(data["password"])
    storage.new(user)
    storage.save()
    logger.info("registered user %s", user.id)

    pair = get_token_manager().issue_token_pair(user)
    return session_response(
        {
            "data": {
                "user": user_out_schema.dump(user),
                "access_token": pair.access_token,
                "refresh_token": pair.refresh_token,
            },
            "message": "User registered successfully",
        },
        201,
        pair,
    )


@bp.post("/login")
def login():
    """
    Login with username or email: returns access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             username: { type: string }
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens, sets cookies)
      401:
        description: Invalid credentials
      422:
        description: Missing identifier or password
    """
    payload = request.get_json(silent=True) or {}
    data = user_login_schema.load(payload)
    identifier = _first_filled(data, "identifier", "username", "email")

    manager = get_token_manager()
    user = manager.verify_credentials(identifier, data["password"])
    pair = manager.issue_token_pair(user)

    return session_response(
        {
            "data": {
                "user": user_out_schema.dump(user),
                "access_token": pair.access_token,
                "refresh_token": pair.refresh_token,
            },
            "message": "User logged in successfully",
        },
        200,
        pair,
    )


@bp.post("/logout")
@jwt_required()
def logout():
    """
    Logout: forget the stored refresh token and clear both cookies
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out
      401:
        description: Unauthorized
    """
    get_token_manager().revoke(g.current_user)

    response = make_response(jsonify({"data": {}, "message": "User logged out"}), 200)
    response.delete_cookie(ACCESS_COOKIE, **_cookie_options())
    response.delete_cookie(REFRESH_COOKIE, **_cookie_options())
    return response


@bp.post("/refresh-token")
def refresh_token():
    """
    Exchange the refresh token for a new pair (rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string, description: "Optional when the refreshToken cookie is sent" }
    responses:
      200:
        description: New tokens (cookies rotated)
      401:
        description: Missing, invalid, expired or already-rotated refresh token
    """
    payload = refresh_token_schema.load(request.get_json(silent=True) or {})
    presented = (
        request.cookies.get(REFRESH_COOKIE)
        or payload.get("refresh_token")
        or payload.get("refreshToken")
    )

    pair = get_token_manager().refresh(presented)
    return session_response(
        {
            "data": {
                "access_token": pair.access_token,
                "refresh_token": pair.refresh_token,
            },
            "message": "Access token refreshed",
        },
        200,
        pair,
    )
