"""
tests/unit/conftest.py

Unit tests build ORM instances (GroupMember, Group, ...) without an app.
SQLAlchemy configures all mappers on the first instantiation, so every model
named in a relationship() must be imported by then.
"""

from expensor.app.models import expense, group, membership, share, user  # noqa: F401
