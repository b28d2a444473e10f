"""
Unit tests for share_service: the negative-share guard, the user-facing
message format, and the authorization branches of every mutation.

DB-free: the session is a MagicMock; store helpers are patched where the
branch under test only needs their return value.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from expensor.app.errors import AppError, ErrorCode
from expensor.app.services import share_service


def _integrity_error(pgcode: str) -> IntegrityError:
    return IntegrityError("INSERT ...", {}, SimpleNamespace(pgcode=pgcode))


# ═══════════════════════════════════════════════════════════════════════════
# Pure helpers
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (Decimal("60"), "60"),
        (Decimal("60.00"), "60"),
        (Decimal("12.5"), "12.50"),
        (Decimal("0.10"), "0.10"),
        (Decimal("-10"), "10"),
    ],
)
def test_format_amount(value, expected):
    assert share_service.format_amount(value) == expected


def test_negative_share_message_names_delta_and_current_share():
    err = share_service.negative_share_error(Decimal("40"), Decimal("-50"))

    assert err.code == ErrorCode.SHARE_WOULD_BE_NEGATIVE
    assert err.http_status == 400
    assert err.field == "amount"
    assert err.message == (
        "Impossibile sottrarre 50€. L'utente ha una quota attuale di soli 40€."
    )


def test_check_share_delta_accepts_exact_zero_result():
    assert share_service.check_share_delta(Decimal("10.10"), Decimal("-10.10")) == Decimal("0.00")


def test_check_share_delta_adds_positive_delta():
    assert share_service.check_share_delta(Decimal("0"), Decimal("60")) == Decimal("60")


def test_check_share_delta_rejects_one_cent_too_many():
    with pytest.raises(AppError) as exc_info:
        share_service.check_share_delta(Decimal("10.10"), Decimal("-10.11"))

    assert exc_info.value.code == ErrorCode.SHARE_WOULD_BE_NEGATIVE


def test_check_share_delta_rejects_negative_first_assignment():
    with pytest.raises(AppError) as exc_info:
        share_service.check_share_delta(Decimal("0"), Decimal("-5"))

    assert "soli 0€" in exc_info.value.message


# ═══════════════════════════════════════════════════════════════════════════
# adjust_share_by_delta
# ═══════════════════════════════════════════════════════════════════════════

def test_adjust_share_missing_expense_raises_404():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        share_service.adjust_share_by_delta(
            expense_id=999, user_id="u1", delta=Decimal("10"),
            requester_id="admin", session=session,
        )

    assert exc_info.value.code == ErrorCode.EXPENSE_NOT_FOUND
    assert exc_info.value.http_status == 404
    session.execute.assert_called_once()  # only the admin lookup ran


@patch("expensor.app.services.share_service._current_share")
@patch("expensor.app.services.share_service._lock_expense_admin")
def test_adjust_share_non_admin_is_forbidden_before_any_read(mock_lock, mock_current):
    session = MagicMock()
    mock_lock.return_value = "admin"

    with pytest.raises(AppError) as exc_info:
        share_service.adjust_share_by_delta(
            expense_id=1, user_id="u1", delta=Decimal("10"),
            requester_id="payer-not-admin", session=session,
        )

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    assert exc_info.value.http_status == 403
    mock_current.assert_not_called()
    session.execute.assert_not_called()


@patch("expensor.app.services.share_service._current_share")
@patch("expensor.app.services.share_service._lock_expense_admin")
def test_adjust_share_rejects_delta_below_zero_without_writing(mock_lock, mock_current):
    session = MagicMock()
    mock_lock.return_value = "admin"
    mock_current.return_value = Decimal("40")

    with pytest.raises(AppError) as exc_info:
        share_service.adjust_share_by_delta(
            expense_id=1, user_id="u1", delta=Decimal("-50"),
            requester_id="admin", session=session,
        )

    assert exc_info.value.code == ErrorCode.SHARE_WOULD_BE_NEGATIVE
    assert "soli 40€" in exc_info.value.message
    session.execute.assert_not_called()
    session.flush.assert_not_called()


@patch("expensor.app.services.share_service._current_share")
@patch("expensor.app.services.share_service._lock_expense_admin")
def test_adjust_share_returns_stored_amount(mock_lock, mock_current):
    session = MagicMock()
    mock_lock.return_value = "admin"
    mock_current.return_value = Decimal("60")
    session.execute.return_value.scalar_one_or_none.return_value = Decimal("70.00")

    result = share_service.adjust_share_by_delta(
        expense_id=1, user_id="u1", delta=Decimal("10"),
        requester_id="admin", session=session,
    )

    assert result == {"expense_id": 1, "user_id": "u1", "amount": Decimal("70.00")}
    session.execute.assert_called_once()
    session.flush.assert_called_once()


@patch("expensor.app.services.share_service._current_share")
@patch("expensor.app.services.share_service._lock_expense_admin")
def test_adjust_share_refused_conditional_update_is_a_validation_error(mock_lock, mock_current):
    # The upsert's WHERE refused the update: a concurrent writer got there first.
    session = MagicMock()
    mock_lock.return_value = "admin"
    mock_current.side_effect = [Decimal("10"), Decimal("3")]
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        share_service.adjust_share_by_delta(
            expense_id=1, user_id="u1", delta=Decimal("-5"),
            requester_id="admin", session=session,
        )

    assert exc_info.value.code == ErrorCode.SHARE_WOULD_BE_NEGATIVE
    assert "soli 3€" in exc_info.value.message


@patch("expensor.app.services.share_service._current_share")
@patch("expensor.app.services.share_service._lock_expense_admin")
def test_adjust_share_unknown_user_maps_to_404(mock_lock, mock_current):
    session = MagicMock()
    mock_lock.return_value = "admin"
    mock_current.return_value = Decimal("0")
    session.execute.side_effect = _integrity_error("23503")

    with pytest.raises(AppError) as exc_info:
        share_service.adjust_share_by_delta(
            expense_id=1, user_id="ghost", delta=Decimal("5"),
            requester_id="admin", session=session,
        )

    assert exc_info.value.code == ErrorCode.USER_NOT_FOUND
    assert exc_info.value.http_status == 404


@patch("expensor.app.services.share_service._current_share")
@patch("expensor.app.services.share_service._lock_expense_admin")
def test_adjust_share_unexpected_integrity_error_propagates(mock_lock, mock_current):
    session = MagicMock()
    mock_lock.return_value = "admin"
    mock_current.return_value = Decimal("0")
    session.execute.side_effect = _integrity_error("23502")

    with pytest.raises(IntegrityError):
        share_service.adjust_share_by_delta(
            expense_id=1, user_id="u1", delta=Decimal("5"),
            requester_id="admin", session=session,
        )


# ═══════════════════════════════════════════════════════════════════════════
# set_share
# ═══════════════════════════════════════════════════════════════════════════

def test_set_share_rejects_negative_amount_before_touching_the_store():
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        share_service.set_share(
            expense_id=1, user_id="u1", amount=Decimal("-1"),
            requester_id="admin", session=session,
        )

    assert exc_info.value.code == ErrorCode.INVALID_FIELD
    session.execute.assert_not_called()


@patch("expensor.app.services.share_service._lock_expense_admin")
def test_set_share_non_admin_is_forbidden(mock_lock):
    session = MagicMock()
    mock_lock.return_value = "admin"

    with pytest.raises(AppError) as exc_info:
        share_service.set_share(
            expense_id=1, user_id="u1", amount=Decimal("25"),
            requester_id="someone", session=session,
        )

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.execute.assert_not_called()


@patch("expensor.app.services.share_service._lock_expense_admin")
def test_set_share_returns_absolute_amount(mock_lock):
    session = MagicMock()
    mock_lock.return_value = "admin"
    session.execute.return_value.scalar_one_or_none.return_value = Decimal("25.00")

    result = share_service.set_share(
        expense_id=1, user_id="u1", amount=Decimal("25"),
        requester_id="admin", session=session,
    )

    assert result["amount"] == Decimal("25.00")


# ═══════════════════════════════════════════════════════════════════════════
# remove_share
# ═══════════════════════════════════════════════════════════════════════════

@patch("expensor.app.services.share_service._lock_expense_admin")
def test_remove_share_deleted_row_skips_follow_up_lookup(mock_lock):
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = ["u1"]

    assert share_service.remove_share(1, "u1", "admin", session) is True
    mock_lock.assert_not_called()


@patch("expensor.app.services.share_service._lock_expense_admin")
def test_remove_share_absent_share_is_idempotent_for_admin(mock_lock):
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = []
    mock_lock.return_value = "admin"

    assert share_service.remove_share(1, "u1", "admin", session) is False


@patch("expensor.app.services.share_service._lock_expense_admin")
def test_remove_share_non_admin_is_forbidden(mock_lock):
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = []
    mock_lock.return_value = "admin"

    with pytest.raises(AppError) as exc_info:
        share_service.remove_share(1, "u1", "intruder", session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN


def test_remove_share_missing_expense_is_404():
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = []
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        share_service.remove_share(999, "u1", "admin", session)

    assert exc_info.value.code == ErrorCode.EXPENSE_NOT_FOUND


# ═══════════════════════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════════════════════

def test_list_shares_serializes_rows():
    session = MagicMock()
    ts = datetime(2026, 3, 1, tzinfo=timezone.utc)
    session.execute.return_value.all.return_value = [
        SimpleNamespace(
            user_id="u1", share_amount=Decimal("60.00"), last_updated=ts,
            name="Ada", email="ada@example.com",
        ),
    ]

    assert share_service.list_shares(1, session) == [{
        "user_id": "u1",
        "amount": Decimal("60.00"),
        "last_updated": ts.isoformat(),
        "user_name": "Ada",
        "user_email": "ada@example.com",
    }]


def test_expense_share_summary_reports_unassigned_remainder():
    session = MagicMock()
    session.execute.return_value.scalar_one.return_value = Decimal("60.00")

    summary = share_service.expense_share_summary(1, Decimal("100.00"), session)

    assert summary == {
        "assigned_amount": Decimal("60.00"),
        "unassigned_amount": Decimal("40.00"),
    }
