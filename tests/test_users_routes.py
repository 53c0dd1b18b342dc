"""Account routes: password change, profile, images, channel profile, watch history."""
from __future__ import annotations

from conftest import PASSWORD, bearer, image, login, make_user
from models import storage
from models.subscription import Subscription
from models.user import User
from models.video import Video

USERS = "/api/v1/users"


def auth(api_client, username="u1"):
    return bearer(login(api_client, username)["access_token"])


class TestCurrentUser:

    def test_requires_token(self, api_client):
        resp = api_client.get(f"{USERS}/current-user")
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "UNAUTHENTICATED"

    def test_rejects_bad_token(self, api_client):
        resp = api_client.get(f"{USERS}/current-user", headers=bearer("garbage"))
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "INVALID_TOKEN"

    def test_returns_user_without_secrets(self, api_client, user):
        resp = api_client.get(f"{USERS}/current-user", headers=auth(api_client))
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["username"] == "u1"
        assert "password_hash" not in data and "refresh_token" not in data

    def test_token_of_deleted_user(self, api_client, user):
        headers = auth(api_client)
        storage.delete(storage.get(User, user.id))
        storage.save()
        resp = api_client.get(f"{USERS}/current-user", headers=headers)
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid Access Token"


class TestChangePassword:

    def test_change_password(self, api_client, user):
        headers = auth(api_client)
        resp = api_client.post(
            f"{USERS}/change-password",
            json={"old_password": PASSWORD, "new_password": "another-pass"},
            headers=headers,
        )
        assert resp.status_code == 200
        ok = api_client.post(f"{USERS}/login", json={"username": "u1", "password": "another-pass"})
        old = api_client.post(f"{USERS}/login", json={"username": "u1", "password": PASSWORD})
        assert ok.status_code == 200
        assert old.status_code == 401

    def test_wrong_old_password(self, api_client, user):
        resp = api_client.post(
            f"{USERS}/change-password",
            json={"old_password": "nope-nope", "new_password": "another-pass"},
            headers=auth(api_client),
        )
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid old password"

    def test_new_password_too_short(self, api_client, user):
        resp = api_client.post(
            f"{USERS}/change-password",
            json={"old_password": PASSWORD, "new_password": "short"},
            headers=auth(api_client),
        )
        assert resp.status_code == 422


class TestUpdateAccount:

    def test_update(self, api_client, user):
        resp = api_client.patch(
            f"{USERS}/update-account",
            json={"full_name": "New Name", "email": "NEW@example.com"},
            headers=auth(api_client),
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["full_name"] == "New Name"
        assert data["email"] == "new@example.com"

    def test_both_fields_required(self, api_client, user):
        resp = api_client.patch(f"{USERS}/update-account", json={"full_name": "X"}, headers=auth(api_client))
        assert resp.status_code == 422
        assert "email" in resp.get_json()["details"]

    def test_non_object_body(self, api_client, user):
        resp = api_client.patch(f"{USERS}/update-account", json=["x"], headers=auth(api_client))
        assert resp.status_code == 422
        body = resp.get_json()
        assert body["error"] == "VALIDATION_ERROR"
        assert "_schema" in body["details"]

    def test_email_taken(self, api_client, user):
        make_user("other")
        resp = api_client.patch(
            f"{USERS}/update-account",
            json={"full_name": "X", "email": "other@example.com"},
            headers=auth(api_client),
        )
        assert resp.status_code == 409

    def test_password_hash_untouched(self, api_client, user):
        before = user.password_hash
        api_client.patch(
            f"{USERS}/update-account",
            json={"full_name": "X", "email": "u1@example.com"},
            headers=auth(api_client),
        )
        storage.close()
        assert storage.get(User, user.id).password_hash == before


class TestImages:

    def test_update_avatar_destroys_old(self, api_client, user, uploader):
        resp = api_client.patch(
            f"{USERS}/avatar",
            data={"avatar": image("new-face.png")},
            content_type="multipart/form-data",
            headers=auth(api_client),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["avatar"].endswith("new-face.png")
        assert uploader.destroyed == ["videotube/u1"]

    def test_stored_cdn_id_is_destroyed_and_replaced(self, api_client, user, uploader):
        record = storage.get(User, user.id)
        record.avatar_public_id = "avatars/original-upload"
        storage.save()

        resp = api_client.patch(
            f"{USERS}/avatar",
            data={"avatar": image("second.png")},
            content_type="multipart/form-data",
            headers=auth(api_client),
        )
        assert resp.status_code == 200
        assert uploader.destroyed == ["avatars/original-upload"]
        storage.close()
        assert storage.get(User, user.id).avatar_public_id.endswith("_second")

    def test_first_cover_image_has_nothing_to_destroy(self, api_client, user, uploader):
        resp = api_client.patch(
            f"{USERS}/cover-image",
            data={"cover_image": image("banner.jpg")},
            content_type="multipart/form-data",
            headers=auth(api_client),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["cover_image"].endswith("banner.jpg")
        assert uploader.destroyed == []

    def test_missing_file(self, api_client, user):
        resp = api_client.patch(f"{USERS}/avatar", data={}, content_type="multipart/form-data", headers=auth(api_client))
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "avatar file is missing"

    def test_failed_upload_keeps_old_avatar(self, api_client, user, uploader):
        headers = auth(api_client)
        uploader.fail = True
        resp = api_client.patch(
            f"{USERS}/avatar",
            data={"avatar": image("x.png")},
            content_type="multipart/form-data",
            headers=headers,
        )
        assert resp.status_code == 400
        storage.close()
        assert storage.get(User, user.id).avatar.endswith("u1.png")


class TestChannelProfile:

    def test_profile_counts(self, api_client, user):
        fan_a, fan_b, star = make_user("fan_a"), make_user("fan_b"), make_user("star")
        for sub, chan in [(fan_a, user), (fan_b, user), (user, star)]:
            storage.new(Subscription(subscriber_id=sub.id, channel_id=chan.id))
        storage.save()

        resp = api_client.get(f"{USERS}/c/U1", headers=auth(api_client, "fan_a"))
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["username"] == "u1"
        assert data["subscribers_count"] == 2
        assert data["channels_subscribed_to_count"] == 1
        assert data["is_subscribed"] is True

    def test_not_subscribed(self, api_client, user):
        make_user("viewer")
        data = api_client.get(f"{USERS}/c/u1", headers=auth(api_client, "viewer")).get_json()["data"]
        assert data["is_subscribed"] is False
        assert data["subscribers_count"] == 0

    def test_missing_channel(self, api_client, user):
        resp = api_client.get(f"{USERS}/c/nobody", headers=auth(api_client))
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Channel does not exist"


def test_watch_history(api_client, user):
    owner = make_user("creator")
    video = Video(
        title="Intro",
        video_file="https://cdn.test/video/intro.mp4",
        thumbnail="https://cdn.test/image/intro.png",
        duration=12.5,
        owner_id=owner.id,
    )
    storage.new(video)
    storage.save()
    viewer = storage.get(User, user.id)
    viewer.watch_history.append(video)
    storage.save()

    resp = api_client.get(f"{USERS}/history", headers=auth(api_client))
    assert resp.status_code == 200
    history = resp.get_json()["data"]
    assert len(history) == 1
    assert history[0]["title"] == "Intro"
    assert history[0]["owner"]["username"] == "creator"
    assert "email" not in history[0]["owner"]
