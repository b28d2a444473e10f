"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - Alembic to load the metadata without starting the server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  3. Attach the membership notifier as app.extensions["notifier"]
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Register a custom JSON provider to serialise Decimal as string

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it. They are not used
  directly here — the import side-effect is sufficient.
"""

from __future__ import annotations

import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from expensor.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal.
# All monetary amounts are serialised as strings to preserve precision.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".

    Returns:
        A fully configured Flask app ready to serve requests.
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from expensor.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    from expensor.app.services.notification_service import build_notifier
    app.extensions["notifier"] = build_notifier(app.config)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    with app.app_context():
        from expensor.app.models import (  # noqa: F401
            expense,
            group,
            membership,
            share,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "" and "/<int:id>").
    """
    from expensor.app.routes.expense_splits import expense_splits_bp
    from expensor.app.routes.group_expenses import group_expenses_bp
    from expensor.app.routes.group_members import group_members_bp
    from expensor.app.routes.groups import groups_bp
    from expensor.app.routes.users import users_bp

    app.register_blueprint(users_bp,           url_prefix="/api/v1/users")
    app.register_blueprint(groups_bp,          url_prefix="/api/v1/groups")
    app.register_blueprint(group_members_bp,   url_prefix="/api/v1/group-members")
    app.register_blueprint(group_expenses_bp,  url_prefix="/api/v1/group-expenses")
    app.register_blueprint(expense_splits_bp,  url_prefix="/api/v1/expense-splits")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors formatted as MISSING_FIELD /
                        INVALID_FIELD responses (400)
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Every handler rolls the session back first, so a half-done unit of work
    (locks taken, rows flushed) never reaches a later commit.

    Stack traces never leave the server.
    """
    from expensor.app.errors import AppError, ErrorCode
    from expensor.app.extensions import db

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        db.session.rollback()
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Marshmallow raises ValidationError with a messages dict keyed by field name.
        We return the FIRST error only: one error, not many.

        The error code from the ValidationError message is used directly if it
        matches a known ErrorCode constant; otherwise INVALID_FIELD is used.
        """
        db.session.rollback()

        # Flatten the nested messages dict to find the first field+message pair.
        messages = error.messages  # e.g. {"amount": ["INVALID_AMOUNT_PRECISION"]}

        field = None
        raw_message = "Invalid input."
        code = ErrorCode.INVALID_FIELD

        if isinstance(messages, dict):
            for field_name, field_errors in messages.items():
                field = field_name if field_name != "_schema" else None

                if isinstance(field_errors, list):
                    raw_message = field_errors[0] if field_errors else "Invalid value."
                else:
                    raw_message = str(field_errors)

                # If the message is already one of our registered codes, keep it.
                if raw_message in vars(ErrorCode).values():
                    code = raw_message
                elif str(raw_message).startswith("Missing data for required field"):
                    code = ErrorCode.MISSING_FIELD
                else:
                    code = ErrorCode.INVALID_FIELD
                break
        elif isinstance(messages, list):
            raw_message = messages[0] if messages else "Invalid input."
            if raw_message in vars(ErrorCode).values():
                code = raw_message
            elif str(raw_message).startswith("Missing data for required field"):
                code = ErrorCode.MISSING_FIELD

        response_body = {
            "error": {
                "code": code,
                "message": raw_message if raw_message not in vars(ErrorCode).values()
                else _code_to_message(code),
            }
        }
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        HTTP errors raised by Flask itself (404 for unknown URLs, 405 for a
        wrong method) keep their status and are rendered in the error envelope.
        """
        db.session.rollback()

        if isinstance(error, HTTPException):
            # e.g. "Method Not Allowed" -> "METHOD_NOT_ALLOWED"
            return jsonify({
                "error": {
                    "code": error.name.upper().replace(" ", "_"),
                    "message": error.description,
                }
            }), error.code

        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for the browser frontend.

    The session travels in a cookie, so responses must allow credentials and
    therefore name one explicit origin (never "*"). In production that is
    CORS_ALLOWED_ORIGIN; in DEBUG/TESTING the request's Origin is reflected
    so a frontend on another local port can call the API.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if not origin:
            return response

        allowed = app.config.get("CORS_ALLOWED_ORIGIN")
        reflect_any = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if origin == allowed or reflect_any:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a ValidationError message IS the error code constant itself
    (e.g. INVALID_AMOUNT_PRECISION raised as ValidationError in schemas).
    """
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
    }
    return _messages.get(code, "Invalid input.")
