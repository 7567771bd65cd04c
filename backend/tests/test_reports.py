from datetime import date
from decimal import Decimal

import pytest
from sqlmodel import select

from nonprofit_manager import models, schemas
from nonprofit_manager.config import settings
from nonprofit_manager.errors import InvalidOperationError
from nonprofit_manager.reports import ReportService
from nonprofit_manager.services import CategoryService, TransactionService


def _category(session, name):
    return session.exec(select(models.Category).where(models.Category.name == name)).one()


def _fund_id(session, name):
    return session.exec(select(models.Fund.id).where(models.Fund.name == name)).one()


def _add(session, when, amount, kind, category):
    return TransactionService(session).create(schemas.TransactionCreate(
        transaction_date=when, amount=Decimal(amount), type=kind, category_id=_category(session, category).id,
        fund_id=_fund_id(session, "General Operating"),
    ))


@pytest.fixture
def ledger(session):
    income, expense = models.TransactionType.INCOME, models.TransactionType.EXPENSE
    _add(session, date(2024, 1, 10), "300", income, "Individual Donations")
    _add(session, date(2024, 1, 20), "100", income, "Foundation Grants")
    _add(session, date(2024, 2, 5), "50", expense, "Utilities")
    _add(session, date(2024, 3, 15), "25", expense, "Bank Fees")
    TransactionService(session).create(schemas.TransactionCreate(
        transaction_date=date(2024, 2, 1), amount=Decimal("75"), type=models.TransactionType.TRANSFER,
        fund_id=_fund_id(session, "General Operating"), to_fund_id=_fund_id(session, "Emergency Reserve"),
    ))
    return session


def test_income_expense_summary_ignores_transfers(ledger):
    report = ReportService(ledger).income_expense_summary(date(2024, 1, 1), date(2024, 12, 31))
    assert report["total_income"] == Decimal("400")
    assert report["total_expenses"] == Decimal("75")
    assert report["net"] == Decimal("325")
    names = [c["name"] for c in report["income_categories"]]
    assert names == ["Contributions", "Grants"]
    contributions = report["income_categories"][0]
    assert contributions["percentage"] == 75.0
    assert contributions["subcategories"][0]["name"] == "Individual Donations"


def test_trends_split_range_into_inclusive_periods(ledger):
    periods = ReportService(ledger).trends(date(2024, 1, 1), date(2024, 3, 10), "monthly")
    assert [(p["period_start"], p["period_end"]) for p in periods] == [
        (date(2024, 1, 1), date(2024, 1, 31)),
        (date(2024, 2, 1), date(2024, 2, 29)),
        (date(2024, 3, 1), date(2024, 3, 10)),
    ]
    assert periods[0]["income"] == Decimal("400")
    assert periods[1]["expenses"] == Decimal("50")
    assert periods[2]["expenses"] == Decimal("0")


def test_trends_reject_unknown_interval_and_reversed_range(ledger):
    svc = ReportService(ledger)
    with pytest.raises(InvalidOperationError):
        svc.trends(date(2024, 1, 1), date(2024, 2, 1), "hourly")
    with pytest.raises(InvalidOperationError):
        svc.trends(date(2024, 2, 1), date(2024, 1, 1))


def test_budget_vs_actual_rolls_up_subcategories(ledger):
    facilities = _category(ledger, "Facilities/Utilities")
    CategoryService(ledger).update(facilities.id, schemas.CategoryUpdate(budget_limit=Decimal("40")))
    rows = ReportService(ledger).budget_vs_actual(2024)
    assert rows == [{
        "category_id": facilities.id, "name": "Facilities/Utilities", "budget": Decimal("40"),
        "actual": Decimal("50"), "variance": Decimal("-10"), "percent_used": 125.0, "over_budget": True,
    }]


def test_audit_threshold_status(ledger, monkeypatch):
    monkeypatch.setattr(settings, "AUDIT_THRESHOLD", Decimal("450"))
    status = ReportService(ledger).audit_threshold_status(today=date(2024, 6, 30))
    assert status["ytd_revenue"] == Decimal("400")
    assert status["approaching"] is True
    assert status["exceeded"] is False


def test_dashboard_counts_month_and_year(ledger):
    data = ReportService(ledger).dashboard(today=date(2024, 2, 20))
    assert data["monthly_income"] == Decimal("0")
    assert data["monthly_expenses"] == Decimal("50")
    assert data["ytd_income"] == Decimal("400")
    assert data["funds"]["fund_count"] == 4
