"""Flask application exposing the sync queue over HTTP."""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Mapping, Optional

from flask import Flask, jsonify
from flask_jwt_extended import JWTManager
from sqlalchemy.engine import Engine

from api.routes import sync_bp
from core.errors import StorageError, SyncError
from core.settings import API, SYNC, SyncSettings
from datetime_utils import Clock, utc_now
from services.sync_service import SyncService
from storage.db import init_db, session_factory_for


def _unauthorized(_reason: str = ""):
    return jsonify({"message": "Unauthorized"}), 401


def create_app(
    engine: Optional[Engine] = None,
    *,
    clock: Clock = utc_now,
    settings: SyncSettings = SYNC,
    config: Optional[Mapping[str, Any]] = None,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config["JWT_SECRET_KEY"] = API.jwt_secret_key
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(hours=API.jwt_access_token_hours)
    if config:
        app.config.update(config)

    actual_engine = init_db(engine)
    app.extensions["shopsync"] = SyncService.build(
        session_factory_for(actual_engine),
        clock=clock,
        settings=settings,
    )

    jwt = JWTManager(app)
    jwt.unauthorized_loader(_unauthorized)
    jwt.invalid_token_loader(_unauthorized)
    jwt.expired_token_loader(lambda _header, _payload: _unauthorized())

    app.register_blueprint(sync_bp, url_prefix=API.url_prefix)

    @app.errorhandler(SyncError)
    def handle_sync_error(exc: SyncError):
        if isinstance(exc, StorageError):
            app.logger.error("Sync storage failure: %s", exc.message)
            return jsonify({"message": "Server error"}), exc.status_code
        return jsonify({"message": exc.message}), exc.status_code

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    return app


__all__ = ["create_app"]
