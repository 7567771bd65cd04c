"""Inventory services: categories, locations, items and stock movements.

Every change to an item's quantity or location goes through
`InventoryItemService` so that a matching `InventoryTransaction` is
recorded and the item's status is re-derived in the same commit.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_
from sqlmodel import Session, select

from . import models, schemas
from .errors import InvalidOperationError, NotFoundError
from .services import HierarchyService, _DomainService, snapshot, utcnow
from .utils.paging import clamp_paging, paged

ZERO = Decimal("0")
SORT_COLUMNS = {
    "name": models.InventoryItem.name,
    "sku": models.InventoryItem.sku,
    "quantity": models.InventoryItem.quantity,
    "status": models.InventoryItem.status,
    "expiration": models.InventoryItem.expiration_date,
    "value": models.InventoryItem.quantity * func.coalesce(models.InventoryItem.unit_cost, 0),
}


def derive_status(item: models.InventoryItem, today: Optional[date] = None) -> models.InventoryStatus:
    """Status implied by quantity, minimum and expiration.

    OnOrder is only ever set explicitly and survives while the shelf is
    empty.
    """
    today = today or date.today()
    if item.expiration_date is not None and item.expiration_date < today:
        return models.InventoryStatus.DISCONTINUED
    if item.quantity <= 0:
        if item.status == models.InventoryStatus.ON_ORDER:
            return models.InventoryStatus.ON_ORDER
        return models.InventoryStatus.OUT_OF_STOCK
    if item.minimum_quantity is not None and item.quantity <= item.minimum_quantity:
        return models.InventoryStatus.LOW_STOCK
    return models.InventoryStatus.IN_STOCK


class InventoryCategoryService(HierarchyService):
    model = models.InventoryCategory
    entity_name = "InventoryCategory"

    def _in_use(self, entity_id: int) -> bool:
        stmt = select(models.InventoryItem.id).where(
            models.InventoryItem.category_id == entity_id, models.InventoryItem.is_active == True  # noqa: E712
        )
        return self.session.exec(stmt).first() is not None

    def items_in(self, category_id: int) -> List[models.InventoryItem]:
        self.get(category_id)
        stmt = (
            select(models.InventoryItem)
            .where(models.InventoryItem.category_id == category_id, models.InventoryItem.is_active == True)  # noqa: E712
            .order_by(models.InventoryItem.name)
        )
        return self.session.exec(stmt).all()


class LocationService(HierarchyService):
    model = models.Location
    entity_name = "Location"

    def _in_use(self, entity_id: int) -> bool:
        stmt = select(models.InventoryItem.id).where(
            models.InventoryItem.location_id == entity_id, models.InventoryItem.is_active == True  # noqa: E712
        )
        return self.session.exec(stmt).first() is not None

    def items_at(self, location_id: int) -> List[models.InventoryItem]:
        self.get(location_id)
        stmt = (
            select(models.InventoryItem)
            .where(models.InventoryItem.location_id == location_id, models.InventoryItem.is_active == True)  # noqa: E712
            .order_by(models.InventoryItem.name)
        )
        return self.session.exec(stmt).all()


class InventoryItemService(_DomainService):
    """Items, their stock levels and stock summaries."""

    def __init__(self, session: Session, user_name: str = "System", ip_address: Optional[str] = None):
        super().__init__(session, user_name, ip_address)
        self.categories = InventoryCategoryService(session, user_name, ip_address)
        self.locations = LocationService(session, user_name, ip_address)

    def _active(self):
        return select(models.InventoryItem).where(models.InventoryItem.is_active == True)  # noqa: E712

    def list(self, category_id: Optional[int] = None, location_id: Optional[int] = None,
             status: Optional[models.InventoryStatus] = None, low_stock_only: bool = False,
             search: Optional[str] = None, sort_by: str = "name", descending: bool = False,
             page: int = 1, page_size: int = 50) -> dict:
        page, page_size = clamp_paging(page, page_size)
        stmt = self._active()
        if category_id is not None:
            stmt = stmt.where(models.InventoryItem.category_id == category_id)
        if location_id is not None:
            stmt = stmt.where(models.InventoryItem.location_id == location_id)
        if status is not None:
            stmt = stmt.where(models.InventoryItem.status == status)
        if low_stock_only:
            stmt = stmt.where(
                models.InventoryItem.minimum_quantity.is_not(None),
                models.InventoryItem.quantity <= models.InventoryItem.minimum_quantity,
            )
        if search:
            stmt = stmt.where(self._matches(search))
        total = self.session.exec(select(func.count()).select_from(stmt.subquery())).one()
        if sort_by == "category":
            stmt = stmt.outerjoin(models.InventoryCategory,
                                  models.InventoryCategory.id == models.InventoryItem.category_id)
            column = models.InventoryCategory.name
        else:
            column = SORT_COLUMNS.get(sort_by, models.InventoryItem.name)
        stmt = stmt.order_by(column.desc() if descending else column.asc(), models.InventoryItem.id)
        rows = self.session.exec(stmt.offset((page - 1) * page_size).limit(page_size)).all()
        return paged(rows, total, page, page_size)

    @staticmethod
    def _matches(term: str):
        like = f"%{term.lower()}%"
        return or_(
            func.lower(models.InventoryItem.name).like(like),
            func.lower(func.coalesce(models.InventoryItem.sku, "")).like(like),
            func.lower(func.coalesce(models.InventoryItem.barcode, "")).like(like),
            func.lower(func.coalesce(models.InventoryItem.description, "")).like(like),
        )

    def get(self, item_id: int) -> models.InventoryItem:
        item = self.session.get(models.InventoryItem, item_id)
        if not item or not item.is_active:
            raise NotFoundError("InventoryItem", item_id)
        return item

    def create(self, data: schemas.InventoryItemCreate) -> models.InventoryItem:
        self._check_unique(data.sku, data.barcode)
        self._check_refs(data.category_id, data.location_id)
        item = models.InventoryItem(**data.model_dump(), created_by=self.user_name)
        item.status = derive_status(item)
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        self.audit.log(models.AuditAction.CREATE, "InventoryItem", item.id,
                       f"Created inventory item {item.name}", new_values=snapshot(item))
        return item

    def update(self, item_id: int, data: schemas.InventoryItemUpdate) -> models.InventoryItem:
        item = self.get(item_id)
        old = snapshot(item)
        changes = data.model_dump(exclude_unset=True)
        self._check_unique(changes.get("sku"), changes.get("barcode"), exclude_id=item_id)
        self._check_refs(changes.get("category_id"), changes.get("location_id"))
        for key, value in changes.items():
            setattr(item, key, value)
        if changes.get("status") not in (models.InventoryStatus.ON_ORDER, models.InventoryStatus.DISCONTINUED):
            item.status = derive_status(item)
        item.updated_at = utcnow()
        item.updated_by = self.user_name
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        self.audit.log(models.AuditAction.UPDATE, "InventoryItem", item.id,
                       f"Updated inventory item {item.name}", old_values=old, new_values=snapshot(item))
        return item

    def delete(self, item_id: int) -> None:
        item = self.get(item_id)
        item.is_active = False
        item.updated_at = utcnow()
        item.updated_by = self.user_name
        self.session.add(item)
        self.session.commit()
        self.audit.log(models.AuditAction.DELETE, "InventoryItem", item_id, f"Deactivated inventory item {item.name}")

    def search(self, term: str, limit: int = 10) -> List[models.InventoryItem]:
        if not term or not term.strip():
            return []
        stmt = self._active().where(self._matches(term.strip())).order_by(models.InventoryItem.name).limit(limit)
        return self.session.exec(stmt).all()

    def low_stock(self) -> List[models.InventoryItem]:
        stmt = self._active().where(
            models.InventoryItem.minimum_quantity.is_not(None),
            models.InventoryItem.quantity > 0,
            models.InventoryItem.quantity <= models.InventoryItem.minimum_quantity,
        ).order_by(models.InventoryItem.name)
        return self.session.exec(stmt).all()

    def out_of_stock(self) -> List[models.InventoryItem]:
        stmt = self._active().where(models.InventoryItem.quantity <= 0).order_by(models.InventoryItem.name)
        return self.session.exec(stmt).all()

    def expiring(self, days: int = 30, today: Optional[date] = None) -> List[models.InventoryItem]:
        today = today or date.today()
        stmt = self._active().where(
            models.InventoryItem.expiration_date.is_not(None),
            models.InventoryItem.expiration_date <= today + timedelta(days=days),
        ).order_by(models.InventoryItem.expiration_date)
        return self.session.exec(stmt).all()

    def adjust_stock(self, item_id: int, change: Decimal, reason: Optional[str] = None) -> models.InventoryItem:
        """Add (purchase) or remove (use) stock; the result may not go negative."""
        if change == 0:
            raise InvalidOperationError("Quantity change must not be zero")
        item = self.get(item_id)
        new_quantity = item.quantity + change
        if new_quantity < 0:
            raise InvalidOperationError(
                f"Insufficient stock for {item.name}: have {item.quantity}, requested {-change}"
            )
        kind = models.InventoryTransactionType.PURCHASE if change > 0 else models.InventoryTransactionType.USE
        self._record(item, kind, abs(change), reason,
                     from_location_id=item.location_id if change < 0 else None,
                     to_location_id=item.location_id if change > 0 else None)
        item.quantity = new_quantity
        return self._save_stock(item)

    def set_stock_level(self, item_id: int, new_quantity: Decimal, reason: Optional[str] = None) -> models.InventoryItem:
        if new_quantity < 0:
            raise InvalidOperationError("Stock level cannot be negative")
        item = self.get(item_id)
        old_quantity = item.quantity
        self._record(item, models.InventoryTransactionType.ADJUSTMENT, abs(new_quantity - old_quantity), reason,
                     notes=f"{old_quantity} -> {new_quantity}")
        item.quantity = new_quantity
        return self._save_stock(item)

    def transfer_stock(self, item_id: int, from_location_id: int, to_location_id: int,
                       reason: Optional[str] = None) -> models.InventoryItem:
        item = self.get(item_id)
        if item.location_id != from_location_id:
            raise InvalidOperationError(f"{item.name} is not at location {from_location_id}")
        if from_location_id == to_location_id:
            raise InvalidOperationError("Source and destination locations are the same")
        destination = self.locations.get(to_location_id)
        if not destination.is_active:
            raise InvalidOperationError(f"Location {destination.name} is inactive")
        self._record(item, models.InventoryTransactionType.TRANSFER, item.quantity, reason,
                     from_location_id=from_location_id, to_location_id=to_location_id)
        item.location_id = to_location_id
        return self._save_stock(item)

    def total_value(self) -> Decimal:
        return sum((item.total_value for item in self.session.exec(self._active()).all()), ZERO)

    def stock_by_category(self) -> List[dict]:
        names = {c.id: c.name for c in self.categories.list(include_inactive=True)}
        return self._summarise("category_id", "category_name", names, "Uncategorized")

    def stock_by_location(self) -> List[dict]:
        names = {loc.id: loc.name for loc in self.locations.list(include_inactive=True)}
        return self._summarise("location_id", "location_name", names, "Unassigned")

    def _summarise(self, key_attr: str, label: str, names: dict, fallback: str) -> List[dict]:
        groups = {}
        for item in self.session.exec(self._active()).all():
            key = getattr(item, key_attr)
            group = groups.setdefault(key, {
                key_attr: key, label: names.get(key, fallback),
                "item_count": 0, "total_quantity": ZERO, "total_value": ZERO,
            })
            group["item_count"] += 1
            group["total_quantity"] += item.quantity
            group["total_value"] += item.total_value
        return sorted(groups.values(), key=lambda g: g["total_value"], reverse=True)

    def _record(self, item: models.InventoryItem, kind: models.InventoryTransactionType, quantity: Decimal,
                reason: Optional[str], **extra) -> None:
        unit_cost = item.unit_cost or ZERO
        self.session.add(models.InventoryTransaction(
            item_id=item.id,
            type=kind,
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=(quantity * unit_cost).quantize(Decimal("0.01")),
            reason=reason,
            performed_by=self.user_name,
            **extra,
        ))

    def _save_stock(self, item: models.InventoryItem) -> models.InventoryItem:
        item.status = derive_status(item)
        item.updated_at = utcnow()
        item.updated_by = self.user_name
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def _check_unique(self, sku: Optional[str], barcode: Optional[str], exclude_id: Optional[int] = None) -> None:
        for column, value, label in ((models.InventoryItem.sku, sku, "SKU"),
                                     (models.InventoryItem.barcode, barcode, "Barcode")):
            if not value:
                continue
            stmt = self._active().where(column == value)
            if exclude_id is not None:
                stmt = stmt.where(models.InventoryItem.id != exclude_id)
            if self.session.exec(stmt).first():
                raise InvalidOperationError(f"{label} '{value}' is already in use")

    def _check_refs(self, category_id: Optional[int], location_id: Optional[int]) -> None:
        if category_id is not None:
            self.categories.get(category_id)
        if location_id is not None:
            self.locations.get(location_id)


class InventoryTransactionService(_DomainService):
    """Stock movement ledger.

    `create` records a movement without touching the item; use the item
    stock operations to change quantities.
    """

    def list(self, start: Optional[date] = None, end: Optional[date] = None, item_id: Optional[int] = None,
             location_id: Optional[int] = None, type: Optional[models.InventoryTransactionType] = None,
             page: int = 1, page_size: int = 50) -> dict:
        page, page_size = clamp_paging(page, page_size)
        stmt = select(models.InventoryTransaction)
        if start is not None:
            stmt = stmt.where(models.InventoryTransaction.transaction_date >= _day_start(start))
        if end is not None:
            stmt = stmt.where(models.InventoryTransaction.transaction_date <= _day_end(end))
        if item_id is not None:
            stmt = stmt.where(models.InventoryTransaction.item_id == item_id)
        if location_id is not None:
            stmt = stmt.where(or_(models.InventoryTransaction.from_location_id == location_id,
                                  models.InventoryTransaction.to_location_id == location_id))
        if type is not None:
            stmt = stmt.where(models.InventoryTransaction.type == type)
        total = self.session.exec(select(func.count()).select_from(stmt.subquery())).one()
        stmt = stmt.order_by(models.InventoryTransaction.transaction_date.desc(), models.InventoryTransaction.id.desc())
        rows = self.session.exec(stmt.offset((page - 1) * page_size).limit(page_size)).all()
        return paged(rows, total, page, page_size)

    def get(self, txn_id: int) -> models.InventoryTransaction:
        txn = self.session.get(models.InventoryTransaction, txn_id)
        if not txn:
            raise NotFoundError("InventoryTransaction", txn_id)
        return txn

    def create(self, data: schemas.InventoryTransactionCreate) -> models.InventoryTransaction:
        item = self.session.get(models.InventoryItem, data.item_id)
        if not item:
            raise NotFoundError("InventoryItem", data.item_id)
        values = data.model_dump(exclude_none=True)
        unit_cost = data.unit_cost if data.unit_cost is not None else (item.unit_cost or ZERO)
        values["unit_cost"] = unit_cost
        values["total_cost"] = (data.quantity * unit_cost).quantize(Decimal("0.01"))
        txn = models.InventoryTransaction(**values, performed_by=self.user_name)
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def by_item(self, item_id: int, limit: int = 50) -> List[models.InventoryTransaction]:
        return self.list(item_id=item_id, page_size=limit)["items"]

    def by_location(self, location_id: int, limit: int = 50) -> List[models.InventoryTransaction]:
        return self.list(location_id=location_id, page_size=limit)["items"]

    def recent(self, limit: int = 25) -> List[models.InventoryTransaction]:
        return self.list(page_size=limit)["items"]

    def usage_report(self, start: date, end: date, item_id: Optional[int] = None) -> List[dict]:
        """Purchased vs used quantities per item between two dates, most used first."""
        if end < start:
            raise InvalidOperationError("End date must be on or after the start date")
        stmt = (
            select(models.InventoryTransaction, models.InventoryItem)
            .join(models.InventoryItem, models.InventoryItem.id == models.InventoryTransaction.item_id)
            .where(
                models.InventoryTransaction.type.in_([models.InventoryTransactionType.PURCHASE,
                                                      models.InventoryTransactionType.USE]),
                models.InventoryTransaction.transaction_date >= _day_start(start),
                models.InventoryTransaction.transaction_date <= _day_end(end),
            )
        )
        if item_id is not None:
            stmt = stmt.where(models.InventoryTransaction.item_id == item_id)
        days = max(1, (end - start).days + 1)
        usage = {}
        for txn, item in self.session.exec(stmt).all():
            row = usage.setdefault(item.id, {
                "item_id": item.id, "item_name": item.name, "unit": item.unit,
                "purchased": ZERO, "used": ZERO, "used_cost": ZERO,
            })
            if txn.type == models.InventoryTransactionType.PURCHASE:
                row["purchased"] += txn.quantity
            else:
                row["used"] += txn.quantity
                row["used_cost"] += txn.total_cost
        for row in usage.values():
            row["net"] = row["purchased"] - row["used"]
            row["average_daily_usage"] = (row["used"] / days).quantize(Decimal("0.001"))
        return sorted(usage.values(), key=lambda r: r["used"], reverse=True)


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def _day_end(d: date) -> datetime:
    return datetime.combine(d, time.max, tzinfo=timezone.utc)
