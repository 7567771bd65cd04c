from datetime import date
from decimal import Decimal

import pytest
from sqlmodel import select

from nonprofit_manager import models, schemas
from nonprofit_manager.errors import InvalidOperationError, NotFoundError
from nonprofit_manager.services import CategoryService, TransactionService

EXPENSE = models.CategoryType.EXPENSE
INCOME = models.CategoryType.INCOME


def _create(svc, name, category_type=EXPENSE, parent_id=None):
    return svc.create(schemas.CategoryCreate(name=name, type=category_type, parent_id=parent_id))


def _chain(svc, depth):
    """Create a single branch `depth` levels deep and return its nodes, root first."""
    nodes = []
    parent_id = None
    for level in range(1, depth + 1):
        node = _create(svc, f"Level {level}", parent_id=parent_id)
        nodes.append(node)
        parent_id = node.id
    return nodes


def test_category_with_transactions_cannot_be_deleted(session):
    svc = CategoryService(session)
    category = _create(svc, "Printing")
    fund = session.exec(select(models.Fund).where(models.Fund.name == "General Operating")).one()
    TransactionService(session).create(schemas.TransactionCreate(
        transaction_date=date(2024, 6, 1), amount=Decimal("12.00"), type=models.TransactionType.EXPENSE,
        category_id=category.id, fund_id=fund.id,
    ))

    with pytest.raises(InvalidOperationError, match="has transactions"):
        svc.delete(category.id)
    assert svc.get(category.id).name == "Printing"


def test_category_with_children_cannot_be_deleted(session):
    svc = CategoryService(session)
    parent = _create(svc, "Outreach")
    child = _create(svc, "Flyers", parent_id=parent.id)

    with pytest.raises(InvalidOperationError, match="subcategories"):
        svc.delete(parent.id)

    svc.delete(child.id)
    svc.delete(parent.id)
    with pytest.raises(NotFoundError):
        svc.get(parent.id)


def test_nesting_is_limited_to_five_levels(session):
    svc = CategoryService(session)
    nodes = _chain(svc, 5)

    with pytest.raises(InvalidOperationError, match="at most 5 levels"):
        _create(svc, "Level 6", parent_id=nodes[-1].id)


def test_moving_a_subtree_respects_the_depth_limit(session):
    svc = CategoryService(session)
    nodes = _chain(svc, 4)
    branch = _create(svc, "Branch")
    _create(svc, "Leaf", parent_id=branch.id)

    # branch (2 levels) under level 4 would reach level 6
    with pytest.raises(InvalidOperationError, match="at most 5 levels"):
        svc.update(branch.id, schemas.CategoryUpdate(parent_id=nodes[3].id))

    moved = svc.update(branch.id, schemas.CategoryUpdate(parent_id=nodes[2].id))
    assert moved.parent_id == nodes[2].id


def test_category_cannot_move_under_itself_or_its_descendants(session):
    svc = CategoryService(session)
    top, middle, bottom = _chain(svc, 3)

    with pytest.raises(InvalidOperationError, match="its own parent"):
        svc.update(top.id, schemas.CategoryUpdate(parent_id=top.id))
    with pytest.raises(InvalidOperationError, match="its own subcategories"):
        svc.update(top.id, schemas.CategoryUpdate(parent_id=bottom.id))
    assert svc.get(top.id).parent_id is None
    assert svc.get(middle.id).parent_id == top.id


def test_names_are_unique_per_parent_and_type_ignoring_case(session):
    svc = CategoryService(session)
    rent = _create(svc, "Rent")

    with pytest.raises(InvalidOperationError, match="already exists"):
        _create(svc, "RENT")

    # same name is fine for the other type or under a different parent
    assert _create(svc, "rent", category_type=INCOME).type == INCOME
    assert _create(svc, "Rent", parent_id=rent.id).parent_id == rent.id

    other = _create(svc, "Lease")
    with pytest.raises(InvalidOperationError, match="already exists"):
        svc.update(other.id, schemas.CategoryUpdate(name="rent"))


def test_subcategory_type_must_match_parent(session):
    svc = CategoryService(session)
    expense_parent = _create(svc, "Programs")
    income_root = _create(svc, "Program Fees", category_type=INCOME)

    with pytest.raises(InvalidOperationError, match="same type as its parent"):
        _create(svc, "Registration", category_type=INCOME, parent_id=expense_parent.id)
    with pytest.raises(InvalidOperationError, match="same type as its parent"):
        svc.update(income_root.id, schemas.CategoryUpdate(parent_id=expense_parent.id))
