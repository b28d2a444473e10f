"""
Unit tests for expense_service branches: admin-only creation, the collapsed
403 on removal, and the detail view's share reconciliation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from expensor.app.errors import AppError, ErrorCode
from expensor.app.services import expense_service


@patch("expensor.app.services.group_service.get_group_admin")
def test_add_group_expense_non_admin_is_forbidden(mock_admin):
    session = MagicMock()
    mock_admin.return_value = "admin"

    with pytest.raises(AppError) as exc_info:
        expense_service.add_group_expense(1, "Dinner", Decimal("30"), "member", session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.add.assert_not_called()
    mock_admin.assert_called_once_with(1, session, lock=True)


@patch("expensor.app.services.group_service.get_group_admin")
def test_add_group_expense_records_admin_as_payer(mock_admin):
    session = MagicMock()
    mock_admin.return_value = "admin"

    result = expense_service.add_group_expense(1, "Dinner", Decimal("30.00"), "admin", session)

    expense = session.add.call_args.args[0]
    assert expense.paid_by == "admin"
    assert result["amount"] == Decimal("30.00")
    assert result["description"] == "Dinner"
    session.refresh.assert_called_once_with(expense)


def test_get_expense_group_missing_is_404():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        expense_service.get_expense_group(9, session)

    assert exc_info.value.code == ErrorCode.EXPENSE_NOT_FOUND


def test_get_expense_missing_is_404():
    session = MagicMock()
    session.execute.return_value.one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        expense_service.get_expense(9, session)

    assert exc_info.value.code == ErrorCode.EXPENSE_NOT_FOUND


@patch("expensor.app.services.share_service.expense_share_summary")
def test_get_expense_includes_payer_name_and_reconciliation(mock_summary):
    session = MagicMock()
    ts = datetime(2026, 2, 1, tzinfo=timezone.utc)
    expense = SimpleNamespace(
        id=9, group_id=1, description="Hotel", amount=Decimal("100.00"),
        paid_by="admin", created_at=ts,
    )
    session.execute.return_value.one_or_none.return_value = (expense, "Ada")
    mock_summary.return_value = {
        "assigned_amount": Decimal("60.00"),
        "unassigned_amount": Decimal("40.00"),
    }

    result = expense_service.get_expense(9, session)

    assert result["paid_by_name"] == "Ada"
    assert result["assigned_amount"] == Decimal("60.00")
    assert result["unassigned_amount"] == Decimal("40.00")
    mock_summary.assert_called_once_with(9, Decimal("100.00"), session)


def test_remove_group_expense_no_rows_is_collapsed_403():
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = []

    with pytest.raises(AppError) as exc_info:
        expense_service.remove_group_expense(1, 9, "someone", session)

    assert exc_info.value.code == ErrorCode.REMOVE_EXPENSE_FAILED
    assert exc_info.value.http_status == 403
    session.execute.assert_called_once()


def test_remove_group_expense_success():
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = [9]

    expense_service.remove_group_expense(1, 9, "admin", session)

    session.flush.assert_called_once()
