from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlmodel import select

from nonprofit_manager import models, schemas
from nonprofit_manager.errors import ConcurrencyConflictError, InvalidOperationError, NotFoundError
from nonprofit_manager.services import DonorService, FundService, GrantService, TransactionService


def _category(session, name):
    return session.exec(select(models.Category).where(models.Category.name == name)).one()


def _fund(session, name="General Operating"):
    return session.exec(select(models.Fund).where(models.Fund.name == name)).one()


def _income(session, amount, **extra):
    values = dict(
        transaction_date=date(2024, 3, 1),
        amount=Decimal(amount),
        type=models.TransactionType.INCOME,
        category_id=_category(session, "Individual Donations").id,
        fund_id=_fund(session).id,
    )
    values.update(extra)
    return TransactionService(session, "alice").create(schemas.TransactionCreate(**values))


def test_income_updates_fund_balance_and_donor_totals(session):
    donor = DonorService(session).create(schemas.DonorCreate(name="Jane Giver"))
    _income(session, "100.00", donor_id=donor.id)
    _income(session, "50.00", donor_id=donor.id, transaction_date=date(2024, 5, 2))

    fund = _fund(session)
    session.refresh(fund)
    assert fund.balance == Decimal("150.00")
    donor = DonorService(session).get(donor.id)
    assert donor.total_contributions == Decimal("150.00")
    assert donor.first_contribution_date == date(2024, 3, 1)
    assert donor.last_contribution_date == date(2024, 5, 2)


def test_soft_delete_and_restore_round_trip(session):
    svc = TransactionService(session, "alice")
    t = _income(session, "80")
    svc.delete(t.id)

    with pytest.raises(NotFoundError):
        svc.get(t.id)
    assert [d.id for d in svc.recently_deleted()] == [t.id]
    assert _fund(session).balance == Decimal("0")

    restored = svc.restore(t.id)
    assert restored.is_deleted is False
    assert restored.deleted_by is None
    assert _fund(session).balance == Decimal("80")


def test_restore_of_live_transaction_is_rejected(session):
    t = _income(session, "10")
    with pytest.raises(InvalidOperationError):
        TransactionService(session).restore(t.id)


def test_permanent_delete_removes_row_and_writes_audit(session):
    svc = TransactionService(session, "alice")
    t = _income(session, "10")
    svc.permanent_delete(t.id)
    assert session.get(models.Transaction, t.id) is None
    actions = [a.action for a in session.exec(select(models.AuditLog)).all()]
    assert models.AuditAction.PERMANENT_DELETE in actions


def test_stale_row_version_raises_conflict(session):
    svc = TransactionService(session, "alice")
    t = _income(session, "25")
    version = t.row_version
    svc.update(t.id, schemas.TransactionUpdate(description="first edit", row_version=version))
    with pytest.raises(ConcurrencyConflictError):
        svc.update(t.id, schemas.TransactionUpdate(description="second edit", row_version=version))
    assert svc.get(t.id).description == "first edit"


def test_transfer_creates_two_legs_and_deletes_them_together(session):
    svc = TransactionService(session, "alice")
    general = _fund(session)
    reserve = _fund(session, "Emergency Reserve")
    _income(session, "500")

    outgoing = svc.create(schemas.TransactionCreate(
        transaction_date=date(2024, 3, 2), amount=Decimal("200"), type=models.TransactionType.TRANSFER,
        fund_id=general.id, to_fund_id=reserve.id,
    ))
    legs = session.exec(
        select(models.Transaction).where(models.Transaction.transfer_pair_id == outgoing.transfer_pair_id)
    ).all()
    assert sorted(leg.type.value for leg in legs) == ["Expense", "Income"]
    assert _fund(session).balance == Decimal("300")
    assert _fund(session, "Emergency Reserve").balance == Decimal("200")

    svc.delete(outgoing.id)
    assert all(leg.is_deleted for leg in session.exec(
        select(models.Transaction).where(models.Transaction.transfer_pair_id == outgoing.transfer_pair_id)
    ).all())
    assert _fund(session).balance == Decimal("500")
    assert _fund(session, "Emergency Reserve").balance == Decimal("0")


def test_transfer_to_same_fund_is_rejected(session):
    fund = _fund(session)
    with pytest.raises(InvalidOperationError):
        TransactionService(session).create(schemas.TransactionCreate(
            transaction_date=date(2024, 1, 1), amount=Decimal("5"), type=models.TransactionType.TRANSFER,
            fund_id=fund.id, to_fund_id=fund.id,
        ))


def test_grant_expense_cannot_exceed_remaining_balance(session):
    grant = GrantService(session).create(schemas.GrantCreate(
        name="Roof grant", grantor_name="City", amount=Decimal("1000"), start_date=date(2024, 1, 1),
        status=models.GrantStatus.ACTIVE,
    ))
    svc = TransactionService(session)
    expense = dict(
        transaction_date=date(2024, 2, 1), type=models.TransactionType.EXPENSE,
        category_id=_category(session, "Building Repairs").id, grant_id=grant.id,
    )
    svc.create(schemas.TransactionCreate(amount=Decimal("700"), **expense))
    assert GrantService(session).get(grant.id).remaining_balance == Decimal("300")

    with pytest.raises(InvalidOperationError, match="remaining balance"):
        svc.create(schemas.TransactionCreate(amount=Decimal("301"), **expense))


def test_splits_must_add_up(session):
    office = _category(session, "Office Supplies")
    equipment = _category(session, "Equipment")
    base = dict(transaction_date=date(2024, 2, 1), amount=Decimal("100"), type=models.TransactionType.EXPENSE,
                category_id=office.id)
    svc = TransactionService(session)
    with pytest.raises(InvalidOperationError, match="Split amounts"):
        svc.create(schemas.TransactionCreate(**base, splits=[
            schemas.SplitIn(category_id=office.id, amount=Decimal("60")),
            schemas.SplitIn(category_id=equipment.id, amount=Decimal("30")),
        ]))
    session.rollback()
    t = svc.create(schemas.TransactionCreate(**base, splits=[
        schemas.SplitIn(category_id=office.id, amount=Decimal("60")),
        schemas.SplitIn(category_id=equipment.id, amount=Decimal("40")),
    ]))
    assert len(t.splits) == 2


def test_fund_with_transactions_cannot_be_deleted(session):
    _income(session, "1")
    with pytest.raises(InvalidOperationError):
        FundService(session).delete(_fund(session).id)


def test_fund_summary_splits_restricted_and_unrestricted(session):
    _income(session, "300")
    _income(session, "100", fund_id=_fund(session, "Building Fund").id)

    summary = FundService(session).summary()
    assert summary["unrestricted_balance"] == Decimal("300")
    assert summary["restricted_balance"] == Decimal("100")
    assert summary["total_balance"] == Decimal("400")
    assert summary["restricted_percentage"] == 25.0
    assert summary["fund_count"] == 4


def test_payee_suggestions_rank_by_usage(session):
    for payee in ("Acme Supply", "Acme Supply", "Acorn Books"):
        _income(session, "5", payee=payee)
    svc = TransactionService(session)
    suggestions = svc.payee_suggestions("ac")
    assert [s["payee"] for s in suggestions] == ["Acme Supply", "Acorn Books"]
    assert suggestions[0]["usage_count"] == 2
    assert svc.payee_suggestions("a") == []


def test_po_numbers_follow_yearly_sequence(session):
    svc = TransactionService(session)
    assert svc.next_po_number(date(2024, 6, 1)) == "PO-2024-0001"
    _income(session, "5", po_number="PO-2024-0007")
    assert svc.next_po_number(date(2024, 6, 1)) == "PO-2024-0008"
    assert svc.po_number_exists("PO-2024-0007")


def test_recurring_transaction_generates_copy(session):
    svc = TransactionService(session)
    t = _income(session, "40", transaction_date=date.today() - timedelta(days=31), is_recurring=True,
                recurrence_pattern=models.RecurrencePattern.MONTHLY)
    assert t.next_recurrence_date is not None
    assert svc.process_recurring() == 1
    assert svc.process_recurring() == 0
    copies = session.exec(select(models.Transaction).where(models.Transaction.id != t.id)).all()
    assert len(copies) == 1
    assert copies[0].amount == Decimal("40")
