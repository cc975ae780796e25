from __future__ import annotations

import threading
from typing import Optional

from flask import Flask, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from .auth import CallerAuthenticator
from .config import load_settings
from .contract import RaffleContract
from .db import SqlStore
from .errors import RaffleError
from .routes.execute import bp as execute_bp
from .routes.health import bp as health_bp
from .routes.rounds import bp as rounds_bp
from .storage import StateStore


def create_app(store: Optional[StateStore] = None) -> Flask:
    settings = load_settings()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.flask.secret_key

    if store is None:
        store = SqlStore(settings.database_url)
    app.extensions["raffle.contract"] = RaffleContract(store, settings.engine)
    app.extensions["raffle.auth"] = CallerAuthenticator(store)
    # Mutating operations run one at a time per process; other processes are
    # fenced off by the row versions SqlStore checks on every write.
    app.extensions["raffle.lock"] = threading.Lock()

    app.register_blueprint(health_bp)
    app.register_blueprint(execute_bp)
    app.register_blueprint(rounds_bp)

    @app.errorhandler(RaffleError)
    def handle_raffle_error(exc: RaffleError):
        app.logger.info("Rejected operation: %s", exc)
        return jsonify({"error": exc.code, "message": str(exc)}), exc.status

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return jsonify({"error": "invalid_request", "message": exc.errors(include_url=False, include_context=False)}), 400

    @app.errorhandler(Exception)
    def handle_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify({"error": "internal_error", "message": str(exc)}), 500

    return app
