"""
Media uploads.

Incoming multipart files are written to UPLOAD_FOLDER first, then pushed to
the CDN. The local copy is always removed afterwards, whether or not the
upload worked.
"""
from __future__ import annotations

import logging
import os
import uuid
from typing import NamedTuple, Optional
from urllib.parse import urlparse

import cloudinary
import cloudinary.uploader
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class UploadResult(NamedTuple):
    url: str
    public_id: str
    duration: Optional[float] = None  # seconds, video uploads only


def save_upload(file: Optional[FileStorage], folder: str) -> Optional[str]:
    """Store a multipart file on disk and return its path (None if no file was sent)."""
    if file is None or not file.filename:
        return None
    filename = secure_filename(file.filename) or "upload"
    os.makedirs(folder, exist_ok=True)
    # Prefix keeps two uploads of "avatar.png" from overwriting each other
    path = os.path.join(folder, f"{uuid.uuid4().hex}_{filename}")
    file.save(path)
    return path


def public_id_from_url(url: str) -> Optional[str]:
    """'https://res.cloudinary.com/x/image/upload/v1/folder/pic.jpg' -> 'folder/pic'"""
    if not url:
        return None
    parts = [p for p in urlparse(url).path.split("/") if p]
    if not parts:
        return None
    last_two = "/".join(parts[-2:])
    return last_two.rsplit(".", 1)[0]


def discard_upload(path: Optional[str]) -> None:
    """Remove a staged file that will not be uploaded."""
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class MediaUploader:
    """CDN client interface."""

    def upload(self, local_path: Optional[str]) -> Optional[UploadResult]:
        raise NotImplementedError

    def destroy(self, public_id: str, resource_type: str = "image") -> None:
        raise NotImplementedError


class CloudinaryUploader(MediaUploader):

    def __init__(self, cloud_name: str | None, api_key: str | None, api_secret: str | None):
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )

    @classmethod
    def from_config(cls, config) -> "CloudinaryUploader":
        return cls(
            config.get("CLOUDINARY_CLOUD_NAME"),
            config.get("CLOUDINARY_API_KEY"),
            config.get("CLOUDINARY_API_SECRET"),
        )

    def upload(self, local_path: Optional[str]) -> Optional[UploadResult]:
        if not local_path:
            return None
        try:
            response = cloudinary.uploader.upload(local_path, resource_type="auto")
        except Exception:
            logger.exception("CDN upload failed for %s", local_path)
            return None
        finally:
            discard_upload(local_path)
        return UploadResult(
            url=response.get("secure_url") or response["url"],
            public_id=response["public_id"],
            duration=response.get("duration"),
        )

    def destroy(self, public_id: str, resource_type: str = "image") -> None:
        cloudinary.uploader.destroy(public_id, resource_type=resource_type)
