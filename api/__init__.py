from flask import Flask
from flasgger import Swagger
from flask_cors import CORS
import logging

from .config import get_config
from .errors import register_error_handlers
from .extensions import TOKEN_MANAGER, MEDIA_UPLOADER
from models import storage  # DBStorage singleton (scoped_session)
from utils.media import CloudinaryUploader, MediaUploader
from utils.tokens import TokenManager, TokenSettings

__version__ = "1.0.0"

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "VideoTube API",
        "version": __version__,
        "description": "REST API for a video-sharing platform: accounts, sessions, channels and subscriptions.",
    },
    "basePath": "/",  # Blueprints are mounted under /api/v1
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(config_name: str | None = None, media_uploader: MediaUploader | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    Token settings are frozen here; a missing signing secret raises
    ConfigurationError and the app never starts.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    logging.basicConfig(level=logging.DEBUG if app.debug else logging.INFO)

    if app.config["COOKIE_SAMESITE"] == "None" and not app.config["COOKIE_SECURE"]:
        logging.getLogger(__name__).warning(
            "COOKIE_SAMESITE=None without COOKIE_SECURE: browsers will drop the session cookies"
        )

    token_settings = TokenSettings.from_config(app.config)
    app.extensions[TOKEN_MANAGER] = TokenManager(token_settings, storage)
    app.extensions[MEDIA_UPLOADER] = media_uploader or CloudinaryUploader.from_config(app.config)

    # Cookies carry the session, so origins must be explicit
    CORS(app, resources={r"/*": {"origins": app.config["CORS_ORIGINS"]}}, supports_credentials=True)

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Global error handlers return the uniform error envelope
    register_error_handlers(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp
    from .subscriptions import bp as subscriptions_bp
    from .videos import bp as videos_bp
    from .search import bp as search_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/users")
    app.register_blueprint(users_bp, url_prefix="/api/v1/users")
    app.register_blueprint(subscriptions_bp, url_prefix="/api/v1/subscriptions")
    app.register_blueprint(videos_bp, url_prefix="/api/v1/videos")
    app.register_blueprint(search_bp, url_prefix="/api/v1/search")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        # calls scoped_session.remove(), preventing connection leaks
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to VideoTube API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
