"""
tests/conftest.py -- shared fixtures.

APP_ENV and DATABASE_URL must be set before `models` is imported: the
DBStorage singleton picks its engine at import time. "sqlite://" gives one
in-memory database shared through a static pool, so the schema is simply
dropped and recreated around every test.

The CDN is replaced by FakeUploader; nothing leaves the process.
"""
from __future__ import annotations

import io
import os

os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite://"

import pytest

from api import create_app
from models import storage
from models.base_model import Base
from models.user import User
from models.video import Video
from utils.media import MediaUploader, UploadResult
from utils.tokens import TokenManager, TokenSettings

PASSWORD = "secret123"
VIDEO_EXTENSIONS = {"mp4", "mov", "webm"}
VIDEO_DURATION = 42.5


class FakeUploader(MediaUploader):
    """Records uploads and deletions; can be told to fail."""

    def __init__(self):
        self.attempted = []
        self.uploaded = []
        self.destroyed = []
        self.destroyed_types = {}
        self.fail = False
        # substrings of file names whose upload fails
        self.fail_on = set()

    def upload(self, local_path):
        if not local_path:
            return None
        name = os.path.basename(local_path)
        os.remove(local_path)
        self.attempted.append(name)
        if self.fail or any(part in name for part in self.fail_on):
            return None
        self.uploaded.append(name)
        stem, ext = name.rsplit(".", 1) if "." in name else (name, "")
        kind = "video" if ext in VIDEO_EXTENSIONS else "image"
        return UploadResult(
            url=f"https://cdn.test/{kind}/upload/v1/videotube/{name}",
            public_id=f"videotube/{stem}",
            duration=VIDEO_DURATION if kind == "video" else None,
        )

    def destroy(self, public_id, resource_type="image"):
        self.destroyed.append(public_id)
        self.destroyed_types[public_id] = resource_type


@pytest.fixture(autouse=True)
def clean_db():
    engine = storage.get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield
    storage.close()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def app(uploader, tmp_path):
    app = create_app("testing", media_uploader=uploader)
    app.config["UPLOAD_FOLDER"] = str(tmp_path / "uploads")
    return app


@pytest.fixture
def client(app):
    """Test client that keeps cookies between requests, like a browser."""
    return app.test_client()


@pytest.fixture
def api_client(app):
    """Test client without a cookie jar: tokens travel in headers and bodies only."""
    return app.test_client(use_cookies=False)


@pytest.fixture
def settings(app):
    return TokenSettings.from_config(app.config)


@pytest.fixture
def manager(settings):
    return TokenManager(settings, storage)


def make_user(username="u1", email=None, password=PASSWORD, full_name="User One"):
    user = User(
        username=username,
        email=email or f"{username}@example.com",
        full_name=full_name,
        avatar=f"https://cdn.test/image/upload/v1/videotube/{username}.png",
    )
    user.set_password(password)
    storage.new(user)
    storage.save()
    return user


@pytest.fixture
def user():
    return make_user()


def make_video(owner, title="Intro", published=True, **kwargs):
    video = Video(
        title=title,
        description=kwargs.pop("description", f"About {title}"),
        video_file=f"https://cdn.test/video/upload/v1/videotube/{title}.mp4",
        thumbnail=f"https://cdn.test/image/upload/v1/videotube/{title}.png",
        duration=12.5,
        is_published=published,
        owner_id=owner.id,
        **kwargs,
    )
    storage.new(video)
    storage.save()
    return video


def clip(name="clip.mp4"):
    return (io.BytesIO(b"\x00\x00\x00\x18ftypmp42 fake video"), name)


def image(name="pic.png"):
    return (io.BytesIO(b"\x89PNG fake image bytes"), name)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def login(client, identifier="u1", password=PASSWORD):
    resp = client.post("/api/v1/users/login", json={"username": identifier, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]
