"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from expensor.app.extensions import db, ma

db.init_app() builds exactly one engine (and therefore one connection pool)
per application. The pool opens connections lazily on first checkout and
keeps them for the process lifetime; see SQLALCHEMY_ENGINE_OPTIONS in
config.py for the pre-ping that replaces dropped connections.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_marshmallow import Marshmallow

db = SQLAlchemy()

# Marshmallow instance, available for model serialization helpers.
#
# IMPORTANT: schema inheritance rule:
#   All validation Schema classes (in app/schemas/) must inherit from
#   marshmallow.Schema directly, NOT from ma.Schema.
#
#   Reason: ma.Schema requires an active Flask application context. Unit tests
#   in tests/unit/ run without a Flask app.
ma = Marshmallow()
