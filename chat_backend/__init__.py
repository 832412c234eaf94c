"""Flask application factory"""

import json
import logging
import os
import time
import uuid
from datetime import timedelta
from pathlib import Path

from flask import Flask, g, request
from flask_jwt_extended import JWTManager
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.engine import make_url

from config import get_config, set_config_name
from config.base import DEFAULT_SECRET_KEY, DEFAULT_JWT_SECRET_KEY

# SQLAlchemy instance (importable from other modules)
db = SQLAlchemy()
jwt = JWTManager()
_REQUEST_LOGGER_NAME = "chat_backend.request"
_REQUEST_ID_HEADER = "X-Request-ID"
_ERROR_CODES = ("error_code", "code")


def _get_request_logger() -> logging.Logger:
    logger = logging.getLogger(_REQUEST_LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def _resolve_request_id() -> str:
    request_id = (request.headers.get(_REQUEST_ID_HEADER) or "").strip()
    if request_id:
        return request_id[:128]
    return uuid.uuid4().hex


def _resolve_route() -> str:
    rule = getattr(request, "url_rule", None)
    if rule and getattr(rule, "rule", None):
        return str(rule.rule)
    return request.path


def _resolve_error_code_from_response(response) -> str | None:
    status_code = int(getattr(response, "status_code", 0) or 0)
    if status_code < 400:
        return None

    if response.is_json:
        payload = response.get_json(silent=True)
        if isinstance(payload, dict):
            for key in _ERROR_CODES:
                value = payload.get(key)
                if value not in (None, ""):
                    return str(value)

    return f"HTTP_{status_code}"


def _log_request(
    request_logger: logging.Logger,
    *,
    request_id: str,
    route: str,
    status: int,
    latency: float,
    error_code: str | None,
) -> None:
    request_logger.info(
        json.dumps(
            {
                "request_id": request_id,
                "route": route,
                "status": status,
                "latency": latency,
                "error_code": error_code,
            },
            separators=(",", ":"),
        )
    )


def _elapsed_ms() -> float:
    started_at = getattr(g, "request_started_at", None)
    if started_at is None:
        return 0.0
    return round((time.perf_counter() - started_at) * 1000, 2)


def _ensure_sqlite_directory(db_uri: str) -> None:
    url = make_url(db_uri)
    if url.get_backend_name() != "sqlite":
        return
    database = url.database
    if not database or database == ":memory:":
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


def create_app(
    config_name="default",
    db_uri_override: str | None = None,
    create_schema: bool | None = None,
):
    """
    Flask application factory

    Args:
        config_name: config profile ('development', 'production', 'default')
        db_uri_override: database URI taking precedence over DATABASE_URL
        create_schema: run db.create_all(); defaults to AUTO_CREATE_DB

    Returns:
        Flask app instance
    """
    app = Flask(__name__)

    set_config_name(config_name)
    cfg = get_config()

    if config_name == "production":
        if not cfg.secret_key or cfg.secret_key == DEFAULT_SECRET_KEY:
            raise RuntimeError(
                "SECRET_KEY must be set to a non-default value in production."
            )
        if (
            not cfg.runtime.jwt_secret_key
            or cfg.runtime.jwt_secret_key == DEFAULT_JWT_SECRET_KEY
        ):
            raise RuntimeError(
                "JWT_SECRET must be set to a non-default value in production."
            )

    app.config["ENV_NAME"] = config_name
    effective_db_uri = db_uri_override or cfg.runtime.db_uri
    app.config["SQLALCHEMY_DATABASE_URI"] = effective_db_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    if str(effective_db_uri).startswith("postgres"):
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_pre_ping": True,
            "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", "1800")),
            "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
        }
    else:
        _ensure_sqlite_directory(effective_db_uri)
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["JWT_SECRET_KEY"] = cfg.runtime.jwt_secret_key
    app.config["JWT_TOKEN_LOCATION"] = ["headers", "cookies"]
    app.config["JWT_ACCESS_COOKIE_NAME"] = "auth_token"
    app.config["JWT_COOKIE_SAMESITE"] = "Lax"
    app.config["JWT_COOKIE_SECURE"] = cfg.runtime.jwt_cookie_secure
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(
        minutes=cfg.runtime.jwt_access_token_expires_minutes
    )
    app.config["JWT_COOKIE_CSRF_PROTECT"] = config_name == "production"
    app.config["DB_READ_ONLY"] = cfg.runtime.db_read_only
    app.config["AUTO_CREATE_DB"] = cfg.runtime.auto_create_db
    app.config["MIGRATION_LOG_DIR"] = str(cfg.runtime.migration_log_dir)
    app.config["CORS_ALLOWED_ORIGINS"] = cfg.runtime.cors_allowed_origins
    app.secret_key = cfg.secret_key

    db.init_app(app)
    jwt.init_app(app)

    # Import models so create_all() sees every table.
    from chat_backend import models  # noqa: F401

    if create_schema is None:
        create_schema = app.config["AUTO_CREATE_DB"]
    if create_schema:
        with app.app_context():
            db.create_all()

    _register_blueprints(app)

    cors_allowed = {
        origin.strip()
        for origin in app.config.get("CORS_ALLOWED_ORIGINS", "").split(",")
        if origin.strip()
    }
    request_logger = _get_request_logger()

    def _apply_cors_headers(response):
        origin = request.headers.get("Origin")
        if not origin:
            return response
        if "*" not in cors_allowed and origin not in cors_allowed:
            return response

        # Cookie auth requires explicit origin echo, not wildcard.
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = (
            "GET, POST, PUT, DELETE, OPTIONS"
        )
        request_headers = request.headers.get("Access-Control-Request-Headers")
        response.headers["Access-Control-Allow-Headers"] = (
            request_headers
            if request_headers
            else "Authorization, Content-Type, X-CSRF-TOKEN"
        )
        vary = response.headers.get("Vary")
        response.headers["Vary"] = "Origin" if not vary else f"{vary}, Origin"
        return response

    @app.before_request
    def mark_request_started():
        g.request_id = _resolve_request_id()
        g.request_started_at = time.perf_counter()
        g.request_logged = False

    @app.before_request
    def handle_cors_preflight():
        if request.method == "OPTIONS":
            return _apply_cors_headers(app.make_default_options_response())
        return None

    @app.after_request
    def finish_request(response):
        response = _apply_cors_headers(response)
        request_id = getattr(g, "request_id", None) or _resolve_request_id()
        _log_request(
            request_logger,
            request_id=request_id,
            route=_resolve_route(),
            status=int(getattr(response, "status_code", 0) or 0),
            latency=_elapsed_ms(),
            error_code=_resolve_error_code_from_response(response),
        )
        g.request_logged = True
        response.headers[_REQUEST_ID_HEADER] = request_id
        return response

    @app.teardown_request
    def log_request_exception(exc):
        if exc is None or getattr(g, "request_logged", False):
            return None

        error_code = getattr(exc, "name", None) or getattr(exc, "code", None)
        if error_code in (None, ""):
            error_code = "INTERNAL_SERVER_ERROR"
        _log_request(
            request_logger,
            request_id=getattr(g, "request_id", _resolve_request_id()),
            route=_resolve_route(),
            status=int(getattr(exc, "code", 500) or 500),
            latency=_elapsed_ms(),
            error_code=str(error_code),
        )
        g.request_logged = True
        return None

    return app


def _register_blueprints(app: Flask) -> None:
    from chat_backend.routes.api_auth import api_auth_bp
    from chat_backend.routes.api_providers import api_providers_bp

    app.register_blueprint(api_auth_bp, url_prefix="/api/auth")
    app.register_blueprint(api_providers_bp)
