from datetime import date, timedelta
from decimal import Decimal

import pytest

from nonprofit_manager import models, schemas
from nonprofit_manager.errors import InvalidOperationError, NotFoundError
from nonprofit_manager.inventory import (InventoryCategoryService, InventoryItemService,
                                         InventoryTransactionService, LocationService, derive_status)


def _item(session, **extra):
    values = dict(name="Nitrile gloves", sku="GLV-1", quantity=Decimal("20"), minimum_quantity=Decimal("5"),
                  unit_cost=Decimal("2.50"))
    values.update(extra)
    return InventoryItemService(session, "carol").create(schemas.InventoryItemCreate(**values))


def test_derive_status_rules():
    item = models.InventoryItem(name="x", quantity=Decimal("3"), minimum_quantity=Decimal("5"))
    assert derive_status(item) == models.InventoryStatus.LOW_STOCK
    item.quantity = Decimal("0")
    assert derive_status(item) == models.InventoryStatus.OUT_OF_STOCK
    item.status = models.InventoryStatus.ON_ORDER
    assert derive_status(item) == models.InventoryStatus.ON_ORDER
    item.quantity = Decimal("10")
    assert derive_status(item) == models.InventoryStatus.IN_STOCK
    item.expiration_date = date.today() - timedelta(days=1)
    assert derive_status(item) == models.InventoryStatus.DISCONTINUED


def test_adjust_stock_records_movements_and_status(session):
    item = _item(session)
    svc = InventoryItemService(session, "carol")

    item = svc.adjust_stock(item.id, Decimal("-16"), "used at event")
    assert item.quantity == Decimal("4")
    assert item.status == models.InventoryStatus.LOW_STOCK

    with pytest.raises(InvalidOperationError, match="Insufficient stock"):
        svc.adjust_stock(item.id, Decimal("-5"))
    with pytest.raises(InvalidOperationError):
        svc.adjust_stock(item.id, Decimal("0"))

    movements = InventoryTransactionService(session).by_item(item.id)
    assert [m.type for m in movements] == [models.InventoryTransactionType.USE]
    assert movements[0].total_cost == Decimal("40.00")
    assert movements[0].performed_by == "carol"


def test_set_stock_level_writes_adjustment(session):
    item = _item(session)
    item = InventoryItemService(session).set_stock_level(item.id, Decimal("0"), "count")
    assert item.status == models.InventoryStatus.OUT_OF_STOCK
    movement = InventoryTransactionService(session).by_item(item.id)[0]
    assert movement.type == models.InventoryTransactionType.ADJUSTMENT
    assert movement.notes.startswith("20") and movement.notes.endswith("-> 0")


def test_transfer_requires_matching_source(session):
    locations = LocationService(session)
    shed = locations.create(schemas.LocationIn(name="Shed"))
    pantry = locations.create(schemas.LocationIn(name="Pantry"))
    item = _item(session, location_id=shed.id)
    svc = InventoryItemService(session)

    with pytest.raises(InvalidOperationError):
        svc.transfer_stock(item.id, pantry.id, shed.id)
    moved = svc.transfer_stock(item.id, shed.id, pantry.id)
    assert moved.location_id == pantry.id
    assert [i.id for i in locations.items_at(pantry.id)] == [item.id]


def test_duplicate_sku_is_rejected(session):
    _item(session)
    with pytest.raises(InvalidOperationError, match="SKU"):
        _item(session, name="Other gloves")


def test_deleted_item_is_not_found(session):
    item = _item(session)
    svc = InventoryItemService(session)
    svc.delete(item.id)
    with pytest.raises(NotFoundError):
        svc.get(item.id)


def test_category_with_items_cannot_be_deleted(session):
    categories = InventoryCategoryService(session)
    parent = categories.create(schemas.InventoryCategoryIn(name="Medical"))
    child = categories.create(schemas.InventoryCategoryIn(name="First aid", parent_id=parent.id))
    _item(session, category_id=child.id)

    with pytest.raises(InvalidOperationError, match="children"):
        categories.delete(parent.id)
    with pytest.raises(InvalidOperationError, match="items"):
        categories.delete(child.id)
    with pytest.raises(InvalidOperationError):
        categories.move(parent.id, child.id)

    tree = categories.tree(schemas.InventoryCategoryRead)
    medical = next(node for node in tree if node["name"] == "Medical")
    assert [c["name"] for c in medical["children"]] == ["First aid"]


def test_list_filters_and_pages(session):
    _item(session, name="Bleach", sku="BLC-1", quantity=Decimal("1"), minimum_quantity=Decimal("4"))
    _item(session, name="Mop", sku="MOP-1", quantity=Decimal("9"), minimum_quantity=Decimal("2"))
    svc = InventoryItemService(session)

    low = svc.list(low_stock_only=True)
    assert [i.name for i in low["items"]] == ["Bleach"]

    page = svc.list(sort_by="quantity", descending=True, page=1, page_size=1)
    assert page["total_count"] == 2
    assert page["total_pages"] == 2
    assert page["items"][0].name == "Mop"


def test_usage_report_sums_purchases_and_use(session):
    item = _item(session)
    svc = InventoryItemService(session)
    svc.adjust_stock(item.id, Decimal("10"))
    svc.adjust_stock(item.id, Decimal("-6"))
    report = InventoryTransactionService(session).usage_report(date.today(), date.today())
    assert report == [{
        "item_id": item.id, "item_name": "Nitrile gloves", "unit": models.UnitOfMeasure.EACH,
        "purchased": Decimal("10"), "used": Decimal("6"), "used_cost": Decimal("15.00"),
        "net": Decimal("4"), "average_daily_usage": Decimal("6.000"),
    }]


def test_total_value(session):
    _item(session)
    _item(session, name="Masks", sku="MSK-1", quantity=Decimal("4"), unit_cost=Decimal("1.25"))
    assert InventoryItemService(session).total_value() == Decimal("55.00")
