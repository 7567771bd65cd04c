from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from sqlmodel import select

from nonprofit_manager import models, schemas
from nonprofit_manager.errors import InvalidOperationError
from nonprofit_manager.recurring import RecurringScheduler, RecurringTransactionService
from nonprofit_manager.services import GrantService


def _category_id(session, name):
    return session.exec(select(models.Category.id).where(models.Category.name == name)).one()


def _template(session, **extra):
    values = dict(
        name="Monthly rent",
        amount=Decimal("1200"),
        type=models.TransactionType.EXPENSE,
        category_id=_category_id(session, "Utilities"),
        pattern=models.RecurrencePattern.MONTHLY,
        start_date=date.today() - timedelta(days=1),
    )
    values.update(extra)
    return RecurringTransactionService(session, "bob").create(schemas.RecurringCreate(**values))


def test_process_due_creates_transaction_and_advances(session):
    template = _template(session)
    start = template.start_date

    result = RecurringTransactionService(session).process_due()

    assert result["succeeded"] == 1
    assert result["failed"] == 0
    created = session.get(models.Transaction, result["created_transaction_ids"][0])
    assert created.transaction_date == start
    assert created.amount == Decimal("1200")
    session.refresh(template)
    assert template.last_processed == start
    assert template.next_occurrence > date.today()
    assert template.total_occurrences == 1


def test_failing_template_is_reported_and_others_continue(session):
    grant = GrantService(session).create(schemas.GrantCreate(
        name="Tiny grant", grantor_name="Foundation", amount=Decimal("10"), start_date=date(2024, 1, 1),
    ))
    _template(session, name="Too big", grant_id=grant.id)
    _template(session, name="Fine", amount=Decimal("5"))

    result = RecurringTransactionService(session).process_due()

    assert result["processed"] == 2
    assert result["succeeded"] == 1
    assert result["failed"] == 1
    assert "Too big" in result["errors"][0]


def test_template_past_end_date_is_deactivated(session):
    template = _template(session, start_date=date.today() - timedelta(days=1), end_date=date.today())
    RecurringTransactionService(session).process_due()
    session.refresh(template)
    assert template.is_active is False


def test_transfer_templates_are_rejected(session):
    with pytest.raises(InvalidOperationError):
        _template(session, type=models.TransactionType.TRANSFER)


def test_skip_next_moves_occurrence_forward(session):
    template = _template(session, start_date=date(2030, 1, 31))
    skipped = RecurringTransactionService(session).skip_next(template.id)
    assert skipped.next_occurrence == date(2030, 2, 28)


def test_upcoming_lists_templates_within_window(session):
    _template(session, name="Soon", start_date=date.today() + timedelta(days=3))
    _template(session, name="Later", start_date=date.today() + timedelta(days=90))
    upcoming = RecurringTransactionService(session).upcoming(days=30)
    assert [u["name"] for u in upcoming] == ["Soon"]
    assert upcoming[0]["days_until"] == 3


def test_seconds_until_next_run_targets_midnight():
    assert RecurringScheduler.seconds_until_next_run(datetime(2026, 1, 1, 23, 0, 0)) == 3600


def test_run_with_retry_recovers_after_failure(session):
    calls = []

    def factory():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database unavailable")
        return _NonClosingSession(session)

    scheduler = RecurringScheduler(session_factory=factory, retry_delays=(0, 0))
    result = scheduler.run_with_retry()

    assert result is not None
    assert len(calls) == 2
    assert scheduler.last_result == result
    assert scheduler.last_run_at is not None


def test_run_with_retry_gives_up_after_last_delay():
    def factory():
        raise RuntimeError("still down")

    scheduler = RecurringScheduler(session_factory=factory, retry_delays=(0, 0, 0))
    assert scheduler.run_with_retry() is None
    assert scheduler.last_result is None


class _NonClosingSession:
    """Hands the test session to the scheduler without closing it."""

    def __init__(self, session):
        self.session = session

    def __enter__(self):
        return self.session

    def __exit__(self, *exc):
        return False
