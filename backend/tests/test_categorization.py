from datetime import date
from decimal import Decimal

import pytest
from sqlmodel import select

from nonprofit_manager import models, schemas
from nonprofit_manager.categorization import CategorizationService
from nonprofit_manager.errors import InvalidOperationError
from nonprofit_manager.services import CategoryService, TransactionService

RMT = models.RuleMatchType


def _category(session, name):
    return session.exec(select(models.Category).where(models.Category.name == name)).one()


def _expense(session, payee, category_name, amount="20.00"):
    fund = session.exec(select(models.Fund).where(models.Fund.name == "General Operating")).one()
    return TransactionService(session).create(schemas.TransactionCreate(
        transaction_date=date(2024, 7, 1), amount=Decimal(amount), type=models.TransactionType.EXPENSE,
        category_id=_category(session, category_name).id, fund_id=fund.id, payee=payee,
    ))


def _rule(svc, session, pattern, category_name, **extra):
    values = dict(name=f"rule {pattern}", match_pattern=pattern, category_id=_category(session, category_name).id)
    values.update(extra)
    return svc.create(schemas.RuleIn(**values))


def test_highest_priority_matching_rule_wins(session):
    svc = CategorizationService(session)
    _rule(svc, session, "depot", "Equipment", priority=10)
    preferred = _rule(svc, session, "office", "Office Supplies", priority=90)

    suggestion = svc.suggest(payee="Office Depot #12")
    assert suggestion.category_id == preferred.category_id
    assert suggestion.rule_id == preferred.id
    assert suggestion.source == "rule"


def test_case_sensitive_and_inactive_rules(session):
    svc = CategorizationService(session)
    _rule(svc, session, "ACME", "Equipment", case_sensitive=True)
    _rule(svc, session, "power", "Utilities", match_type=RMT.DESCRIPTION, is_active=False)

    assert svc.suggest(payee="acme tools").category_id is None
    assert svc.suggest(payee="ACME tools").category_id == _category(session, "Equipment").id
    assert svc.suggest(description="monthly power bill").category_id is None


def test_amount_rules_compare_numerically(session):
    svc = CategorizationService(session)
    _rule(svc, session, "1000", "Equipment", match_type=RMT.AMOUNT_GREATER_THAN, priority=5)
    _rule(svc, session, "4.50", "Bank Fees", match_type=RMT.AMOUNT_EQUALS, priority=9)

    assert svc.suggest(amount=Decimal("4.5")).category_id == _category(session, "Bank Fees").id
    assert svc.suggest(amount=Decimal("1500")).category_id == _category(session, "Equipment").id
    assert svc.suggest(amount=Decimal("999.99")).category_id is None


def test_rules_are_validated(session):
    svc = CategorizationService(session)
    with pytest.raises(InvalidOperationError, match="not a valid amount"):
        _rule(svc, session, "lots", "Equipment", match_type=RMT.AMOUNT_LESS_THAN)
    with pytest.raises(InvalidOperationError, match="does not exist"):
        svc.create(schemas.RuleIn(name="ghost", match_pattern="x", category_id=999999))

    rule = _rule(svc, session, "water", "Utilities")
    with pytest.raises(InvalidOperationError, match="not a valid amount"):
        svc.update(rule.id, schemas.RuleUpdate(match_type=RMT.AMOUNT_EQUALS))


def test_payee_history_is_the_fallback(session):
    _expense(session, "City Water Dept", "Utilities")
    _expense(session, "City Water Dept", "Utilities")
    _expense(session, "City Water Dept", "Insurance")

    suggestion = CategorizationService(session).suggest(payee="water")
    assert suggestion.category_id == _category(session, "Utilities").id
    assert suggestion.source == "history"
    assert CategorizationService(session).suggest(payee="Nobody").category_id is None


def test_learning_creates_payee_rules_once(session):
    for _ in range(3):
        _expense(session, "Office Depot", "Office Supplies")
    _expense(session, "Rare Vendor", "Equipment")
    svc = CategorizationService(session, "bookkeeper")

    assert svc.learn_from_history(3) == 1
    rules = svc.list()
    assert [(r.name, r.match_type, r.priority) for r in rules] == [("Auto: Office Depot", RMT.PAYEE, 50)]
    assert svc.learn_from_history(3) == 0


def test_category_used_by_a_rule_cannot_be_deleted(session):
    categories = CategoryService(session)
    category = categories.create(schemas.CategoryCreate(name="Postage", type=models.CategoryType.EXPENSE))
    _rule(CategorizationService(session), session, "usps", "Postage")

    with pytest.raises(InvalidOperationError, match="categorization rules"):
        categories.delete(category.id)
