"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in gatehouse/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from gatehouse.extensions import db, ma
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Marshmallow instance. Request/response Schema classes in gatehouse/schemas/
# inherit from marshmallow.Schema directly, NOT from ma.Schema: ma.Schema
# needs an active Flask application context, and the unit tests in
# tests/unit/ instantiate schemas without one.
ma = Marshmallow()
