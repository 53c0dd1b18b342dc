from __future__ import annotations
from functools import wraps
from flask import request, g
from models import storage
from models.user import User
from utils.exceptions import InvalidToken
from api.extensions import get_token_manager

ACCESS_COOKIE = "accessToken"


def get_access_token() -> str | None:
    """Access token from the session cookie, else from 'Authorization: Bearer <token>'."""
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth.split(" ", 1)[1].strip() or None
    return None


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            decoded = get_token_manager().verify_access_token(get_access_token())

            user = storage.get(User, decoded.get("sub"))
            if not user:
                raise InvalidToken("Invalid Access Token")
            g.current_user = user
            g.current_token_jti = decoded.get("jti")
            return fn(*args, **kwargs)

        return wrapper

    return decorator
