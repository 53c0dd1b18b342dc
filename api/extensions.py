"""
Per-app services built once in create_app() and stored on app.extensions.
"""
from flask import current_app

from utils.media import MediaUploader
from utils.tokens import TokenManager

TOKEN_MANAGER = "token_manager"
MEDIA_UPLOADER = "media_uploader"


def get_token_manager() -> TokenManager:
    return current_app.extensions[TOKEN_MANAGER]


def get_media_uploader() -> MediaUploader:
    return current_app.extensions[MEDIA_UPLOADER]
