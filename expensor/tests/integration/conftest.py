"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against a real PostgreSQL database (TEST_DATABASE_URL,
    default expensor_test). The suite is skipped when it is unreachable.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - The app's notifier is replaced by a RecordingNotifier for every test, so
    tests can assert which emails would have been sent.

Helper functions (not fixtures) are provided for common operations:
  - login(client, ...)        → dict with user + token
  - auth_headers(token)       → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)   → group dict
  - add_member(...)           → HTTP response
  - make_expense(...)         → expense dict
  - add_split(...)            → HTTP response
  - list_splits(...)          → list of share dicts

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.

login() goes through a throwaway client: the login response sets the session
cookie, and the cookie would otherwise override the Bearer header that the
other helpers send on the shared client.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from expensor.app import create_app
from expensor.app.extensions import db as _db


class RecordingNotifier:
    """Collects notices instead of sending them."""

    def __init__(self) -> None:
        self.notices: list = []

    def notify(self, notice) -> None:
        self.notices.append(notice)


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.

    Steps:
      1. Create app with TestingConfig (uses the expensor_test DB).
      2. Skip the integration suite if PostgreSQL cannot be reached.
      3. Run db.create_all() to create all tables.
      4. Yield the app for the test session.
      5. Drop all tables at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        try:
            with _db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError as exc:
            pytest.skip(f"PostgreSQL test database unavailable: {exc.orig}")

        _db.drop_all()
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.session.remove()
        _db.drop_all()
        _db.engine.dispose()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test in FK-safe order.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM group_expense_shares"))
            conn.execute(text("DELETE FROM group_expenses"))
            conn.execute(text("DELETE FROM group_members"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


@pytest.fixture(autouse=True)
def notifier(app):
    """Installs a fresh RecordingNotifier for each test."""
    previous = app.extensions["notifier"]
    recorder = RecordingNotifier()
    app.extensions["notifier"] = recorder
    yield recorder
    app.extensions["notifier"] = previous


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def login(
    client,
    microsoft_id: str = "alice",
    email: str | None = None,
    name: str | None = None,
) -> dict:
    """
    Logs a user in (registering on first login) and returns the response data.
    Returns: {"user": {...}, "token": "..."}
    """
    if email is None:
        email = f"{microsoft_id}@test.com"
    if name is None:
        name = microsoft_id.capitalize()
    resp = client.application.test_client().post(
        "/api/v1/users/login",
        json={"microsoft_id": microsoft_id, "email": email, "name": name},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_group(client, token: str, name: str = "Test Group") -> dict:
    """
    Creates a group and returns the group data dict.
    The caller (token owner) becomes admin and first member.
    """
    resp = client.post(
        "/api/v1/groups",
        json={"name": name},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, token: str, group_id: int, microsoft_id: str):
    """Adds a user to a group (admin token required). Returns the HTTP response."""
    return client.post(
        "/api/v1/group-members",
        json={"group_id": group_id, "microsoft_id": microsoft_id},
        headers=auth_headers(token),
    )


def remove_member(client, token: str, group_id: int, microsoft_id: str):
    return client.post(
        "/api/v1/group-members/remove",
        json={"groupId": group_id, "removedId": microsoft_id},
        headers=auth_headers(token),
    )


def make_expense(
    client,
    token: str,
    group_id: int,
    amount: str = "100.00",
    description: str = "Test Expense",
) -> dict:
    """Creates a group expense (admin token required) and returns its data."""
    resp = client.post(
        "/api/v1/group-expenses",
        json={"group_id": group_id, "description": description, "amount": amount},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_expense failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_split(client, token: str, expense_id: int, user_id: str, amount: str):
    """Adds a signed delta to a user's share. Returns the HTTP response."""
    return client.post(
        "/api/v1/expense-splits",
        json={"expense_id": expense_id, "user_id": user_id, "amount": amount},
        headers=auth_headers(token),
    )


def remove_split(client, token: str, expense_id: int, user_id: str):
    return client.post(
        "/api/v1/expense-splits/remove",
        json={"expense_id": expense_id, "user_id": user_id},
        headers=auth_headers(token),
    )


def list_splits(client, token: str, expense_id: int) -> list[dict]:
    resp = client.get(
        f"/api/v1/expense-splits?expenseId={expense_id}",
        headers=auth_headers(token),
    )
    assert resp.status_code == 200, f"list_splits failed: {resp.get_json()}"
    return resp.get_json()["data"]


def shares_by_user(client, token: str, expense_id: int) -> dict[str, Decimal]:
    """{user_id: Decimal(amount)} snapshot of an expense's shares."""
    return {s["user_id"]: Decimal(s["amount"]) for s in list_splits(client, token, expense_id)}
