"""App factory, configuration selection and the error envelope."""
from __future__ import annotations

import pytest

from api import create_app
from api.config import DevelopmentConfig, ProductionConfig, TestingConfig, get_config, samesite_default
from utils.exceptions import ConfigurationError


@pytest.mark.parametrize(
    "name, expected",
    [("prod", ProductionConfig), ("production", ProductionConfig), ("testing", TestingConfig), ("dev", DevelopmentConfig)],
)
def test_get_config(name, expected):
    assert get_config(name) is expected


def test_production_without_secrets_refuses_to_start(monkeypatch, uploader):
    monkeypatch.setattr(ProductionConfig, "ACCESS_TOKEN_SECRET", "")
    monkeypatch.setattr(ProductionConfig, "REFRESH_TOKEN_SECRET", "")
    with pytest.raises(ConfigurationError):
        create_app("production", media_uploader=uploader)


def test_production_with_secrets_starts(monkeypatch, uploader):
    monkeypatch.setattr(ProductionConfig, "ACCESS_TOKEN_SECRET", "a" * 32)
    monkeypatch.setattr(ProductionConfig, "REFRESH_TOKEN_SECRET", "r" * 32)
    app = create_app("production", media_uploader=uploader)
    assert app.extensions["token_manager"].settings.access_secret == "a" * 32


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok", "version": "1.0.0"}


def test_root(client):
    assert client.get("/").get_json()["docs"] == "/apidocs/"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/v1/nope")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "NOT_FOUND", "message": resp.get_json()["message"], "status": 404}


def test_method_not_allowed(client):
    resp = client.get("/api/v1/users/login")
    assert resp.status_code == 405
    assert resp.get_json()["error"] == "METHOD_NOT_ALLOWED"


def test_cors_allows_credentials(client):
    resp = client.get("/api/v1/health", headers={"Origin": "http://localhost:5173"})
    assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
    assert resp.headers["Access-Control-Allow-Credentials"] == "true"


def test_samesite_follows_cookie_security(monkeypatch):
    monkeypatch.delenv("COOKIE_SAMESITE", raising=False)
    assert samesite_default(True) == "None"
    assert samesite_default(False) == "Lax"
    monkeypatch.setenv("COOKIE_SAMESITE", "Strict")
    assert samesite_default(False) == "Strict"


def test_testing_config_cookies_survive_plain_http():
    assert TestingConfig.COOKIE_SECURE is False
    assert TestingConfig.COOKIE_SAMESITE == "Lax"
