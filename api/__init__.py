import click
from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import AppSettings, get_config
from .correlation import init_correlation
from .errors import register_error_handlers
from models.db_storage import DBStorage
from services.resource_service import UserService
from services.session_manager import SessionManager
from utils.logging import configure_logging, get_logger
from utils.security import JwtTokenIssuer, PasswordService

__version__ = "1.0.0"

logger = get_logger(__name__)

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Account API",
        "version": __version__,
        "description": "User accounts with rotating refresh tokens and ETag-versioned resources.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http"],
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


def create_app(config_name: str | None = None, store=None, overrides: dict | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    `store` replaces the SQLAlchemy store (tests pass a MemoryStorage);
    `overrides` are applied on top of the selected config class.
    Raises ConfigurationError when the JWT secret is missing or too short.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)
    settings = AppSettings.from_mapping(app.config)

    configure_logging(settings.log_level, json_output=settings.log_json)

    # Fail at startup, not on the first login
    issuer = JwtTokenIssuer.from_settings(settings)
    passwords = PasswordService(
        time_cost=settings.argon2_time_cost or None,
        memory_cost=settings.argon2_memory_cost or None,
    )
    if store is None:
        store = DBStorage(settings.database_url)
        store.reload()

    sessions = SessionManager(store, issuer, passwords, refresh_ttl=settings.refresh_token_ttl)
    users = UserService(store, sessions, passwords, allowed_roles=settings.allowed_roles)

    app.extensions["settings"] = settings
    app.extensions["store"] = store
    app.extensions["session_manager"] = sessions
    app.extensions["user_service"] = users

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    origins = "*" if settings.cors_origins == ("*",) else list(settings.cors_origins)
    CORS(app, resources={r"/*": {"origins": origins}}, expose_headers=["ETag", "X-Correlation-ID"])

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    init_correlation(app)
    register_error_handlers(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1")
    app.register_blueprint(users_bp, url_prefix="/api/v1")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        store.close()

    register_commands(app)

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Account API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    logger.info("application_created", env=app.config.get("APP_ENV"))
    return app


def register_commands(app: Flask) -> None:
    @app.cli.command("sweep-tokens")
    def sweep_tokens():
        """Delete refresh tokens past their expiry."""
        deleted = app.extensions["session_manager"].sweep_expired()
        click.echo(f"Deleted {deleted} expired refresh tokens")

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.argument("password")
    @click.argument("display_name")
    def create_admin(email, password, display_name):
        """Create a user holding the admin role."""
        user = app.extensions["user_service"].create_user(
            email, password, display_name, roles=("admin", "user")
        )
        click.echo(f"Created admin {user.email} ({user.id})")
