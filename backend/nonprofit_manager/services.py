"""Business logic services used by HTTP controllers.

This module holds the finance services: authentication, audit logging,
funds, categories, donors, grants and transactions. Services are
intentionally thin: they validate, execute domain rules and persist
aggregates via repositories. Rule violations raise
`InvalidOperationError`, missing rows raise `NotFoundError` and stale
concurrency tokens raise `ConcurrencyConflictError` (see `errors.py`).

Every service takes the request's `Session` and the acting user's name,
which ends up in audit entries and `deleted_by` columns.
"""

import json
import logging
import uuid
from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy import update
from sqlmodel import Session, select

from . import models, repositories, schemas
from .config import settings
from .errors import ConcurrencyConflictError, InvalidOperationError, NotFoundError
from .utils.paging import advance, clamp_paging, paged
from .utils.trees import build_tree, depth_of, is_descendant_of

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
ZERO = Decimal("0")
SPLIT_TOLERANCE = Decimal("0.01")
MAX_CATEGORY_DEPTH = 5
TRANSFER_CATEGORY_COLOR = "#6B7280"

logger = logging.getLogger("nonprofit_manager.services")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def bump_version(session: Session, entity, expected: Optional[int]) -> None:
    """Advance `entity.row_version`, failing if someone else got there first.

    `expected` is the version the client read (None skips the client
    check). The increment is a conditional UPDATE so a concurrent writer
    that committed in between is detected at the database too.
    """
    model = type(entity)
    current = entity.row_version
    if expected is not None and expected != current:
        raise ConcurrencyConflictError(model.__name__, entity.id, expected, current)
    stmt = (
        update(model)
        .where(model.id == entity.id, model.row_version == current)
        .values(row_version=current + 1)
    )
    result = session.exec(stmt)
    if result.rowcount != 1:
        session.rollback()
        raise ConcurrencyConflictError(model.__name__, entity.id, current, current + 1)


def snapshot(entity) -> dict:
    """JSON-safe dict of an entity's columns for audit entries."""
    return entity.model_dump(mode="json")


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, username: str, password: str) -> models.User:
        """Create a new user with a hashed password.

        Returns the persisted `User` instance.
        """
        if self.user_repo.get_by_username(username):
            raise InvalidOperationError("username already registered")
        hashed = PWD_CTX.hash(password)
        u = models.User(username=username, password_hash=hashed)
        return self.user_repo.create(u)

    def authenticate(self, username: str, password: str):
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_username(username)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        expire = utcnow() + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "username": user.username, "exp": int(expire.timestamp())}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class AuditService:
    """Write and query audit entries.

    Writing never raises: a failed audit write is rolled back and
    logged so the operation that triggered it still succeeds.
    """
    def __init__(self, session: Session, user_name: str = "System", ip_address: Optional[str] = None):
        self.session = session
        self.user_name = user_name or "System"
        self.ip_address = ip_address
        self.repo = repositories.AuditRepository(session)

    def log(self, action: models.AuditAction, entity_type: str, entity_id: Optional[int],
            description: str, old_values: Optional[dict] = None, new_values: Optional[dict] = None) -> None:
        entry = models.AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description[:1000],
            old_values=json.dumps(old_values, default=str) if old_values is not None else None,
            new_values=json.dumps(new_values, default=str) if new_values is not None else None,
            user_name=self.user_name,
            ip_address=self.ip_address,
        )
        try:
            self.repo.add(entry)
        except Exception:
            self.session.rollback()
            logger.exception("audit write failed for %s %s %s", action.value, entity_type, entity_id)

    def list(self, **filters) -> List[models.AuditLog]:
        max_results = max(1, min(1000, filters.pop("max_results", 100) or 100))
        return self.repo.list(max_results=max_results, **filters)

    def entity_history(self, entity_type: str, entity_id: int) -> List[models.AuditLog]:
        return self.repo.list(entity_type=entity_type, entity_id=entity_id, max_results=1000)


class _DomainService:
    """Base for services that audit their changes."""
    def __init__(self, session: Session, user_name: str = "System", ip_address: Optional[str] = None):
        self.session = session
        self.user_name = user_name or "System"
        self.audit = AuditService(session, self.user_name, ip_address)


class FundService(_DomainService):
    """Funds and their derived balances."""
    def __init__(self, session: Session, user_name: str = "System", ip_address: Optional[str] = None):
        super().__init__(session, user_name, ip_address)
        self.repo = repositories.FundRepository(session)
        self.txn_repo = repositories.TransactionRepository(session)

    def list(self, include_inactive: bool = False) -> List[models.Fund]:
        return self.repo.list(include_inactive)

    def get(self, fund_id: int) -> models.Fund:
        fund = self.repo.get(fund_id)
        if not fund:
            raise NotFoundError("Fund", fund_id)
        return fund

    def create(self, data: schemas.FundCreate) -> models.Fund:
        fund = models.Fund(**data.model_dump())
        fund.balance = fund.starting_balance
        fund = self.repo.save(fund)
        self.audit.log(models.AuditAction.CREATE, "Fund", fund.id, f"Created fund {fund.name}", new_values=snapshot(fund))
        return fund

    def update(self, fund_id: int, data: schemas.FundUpdate) -> models.Fund:
        fund = self.get(fund_id)
        old = snapshot(fund)
        changes = data.model_dump(exclude_unset=True, exclude={"row_version"})
        for key, value in changes.items():
            setattr(fund, key, value)
        fund.updated_at = utcnow()
        bump_version(self.session, fund, data.row_version)
        self.session.commit()
        if "starting_balance" in changes:
            self.recalculate(fund.id)
        self.session.refresh(fund)
        self.audit.log(models.AuditAction.UPDATE, "Fund", fund.id, f"Updated fund {fund.name}",
                       old_values=old, new_values=snapshot(fund))
        return fund

    def delete(self, fund_id: int) -> None:
        fund = self.get(fund_id)
        if self.repo.has_transactions(fund_id):
            raise InvalidOperationError("Cannot delete a fund that has transactions. Deactivate it instead.")
        old = snapshot(fund)
        self.repo.delete(fund)
        self.audit.log(models.AuditAction.DELETE, "Fund", fund_id, f"Deleted fund {old['name']}", old_values=old)

    def recalculate(self, fund_id: int) -> Optional[models.Fund]:
        """Set `balance = starting_balance + income - expenses` and commit."""
        fund = self.repo.get(fund_id)
        if not fund:
            return None
        balance = fund.starting_balance or ZERO
        for t in self.txn_repo.for_fund(fund_id):
            if t.type == models.TransactionType.INCOME:
                balance += t.amount
            elif t.type == models.TransactionType.EXPENSE:
                balance -= t.amount
        fund.balance = balance
        self.session.add(fund)
        self.session.commit()
        return fund

    def recalculate_all(self) -> int:
        funds = self.repo.list(include_inactive=True)
        for fund in funds:
            self.recalculate(fund.id)
        logger.info("recalculated %d fund balances", len(funds))
        return len(funds)

    def summary(self) -> dict:
        funds = self.repo.list()
        restricted = sum((f.balance for f in funds if f.type != models.FundType.UNRESTRICTED), ZERO)
        unrestricted = sum((f.balance for f in funds if f.type == models.FundType.UNRESTRICTED), ZERO)
        total = restricted + unrestricted
        pct = float(restricted / total * 100) if total else 0.0
        return {
            "total_balance": total,
            "restricted_balance": restricted,
            "unrestricted_balance": unrestricted,
            "restricted_percentage": round(pct, 2),
            "fund_count": len(funds),
        }


class CategoryService(_DomainService):
    """Income/expense categories arranged in a tree of at most five levels."""
    def __init__(self, session: Session, user_name: str = "System", ip_address: Optional[str] = None):
        super().__init__(session, user_name, ip_address)
        self.repo = repositories.CategoryRepository(session)

    def list(self, category_type: Optional[models.CategoryType] = None, include_archived: bool = False):
        return self.repo.list(category_type, include_archived)

    def get(self, category_id: int) -> models.Category:
        category = self.repo.get(category_id)
        if not category:
            raise NotFoundError("Category", category_id)
        return category

    def tree(self, category_type: models.CategoryType) -> List[dict]:
        rows = self.repo.list(category_type, include_archived=False)
        return build_tree(rows, lambda c: schemas.CategoryRead.model_validate(c).model_dump(mode="json"))

    def create(self, data: schemas.CategoryCreate) -> models.Category:
        if data.parent_id is not None:
            parent = self.get(data.parent_id)
            if parent.type != data.type:
                raise InvalidOperationError("A subcategory must have the same type as its parent")
            if depth_of(parent.id, self.repo.parent_id_of) + 1 > MAX_CATEGORY_DEPTH:
                raise InvalidOperationError(f"Categories can be nested at most {MAX_CATEGORY_DEPTH} levels deep")
        self._ensure_unique(data.name, data.type, data.parent_id)
        category = self.repo.save(models.Category(**data.model_dump()))
        self.audit.log(models.AuditAction.CREATE, "Category", category.id, f"Created category {category.name}",
                       new_values=snapshot(category))
        return category

    def update(self, category_id: int, data: schemas.CategoryUpdate) -> models.Category:
        category = self.get(category_id)
        old = snapshot(category)
        changes = data.model_dump(exclude_unset=True)
        if "parent_id" in changes and changes["parent_id"] != category.parent_id:
            self._check_move(category, changes["parent_id"])
        name = changes.get("name", category.name)
        parent_id = changes.get("parent_id", category.parent_id)
        if name.lower() != category.name.lower() or parent_id != category.parent_id:
            self._ensure_unique(name, category.type, parent_id, exclude_id=category.id)
        for key, value in changes.items():
            setattr(category, key, value)
        category.updated_at = utcnow()
        category = self.repo.save(category)
        self.audit.log(models.AuditAction.UPDATE, "Category", category.id, f"Updated category {category.name}",
                       old_values=old, new_values=snapshot(category))
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if self.repo.is_in_use(category_id):
            raise InvalidOperationError("Cannot delete a category that has transactions. Archive it instead.")
        if self.repo.children(category_id):
            raise InvalidOperationError("Cannot delete a category that has subcategories")
        if self.session.exec(select(models.CategorizationRule.id).where(
                models.CategorizationRule.category_id == category_id)).first() is not None:
            raise InvalidOperationError("Cannot delete a category used by categorization rules")
        old = snapshot(category)
        self.repo.delete(category)
        self.audit.log(models.AuditAction.DELETE, "Category", category_id, f"Deleted category {old['name']}",
                       old_values=old)

    def archive(self, category_id: int) -> models.Category:
        category = self.get(category_id)
        category.is_archived = True
        category.updated_at = utcnow()
        category = self.repo.save(category)
        self.audit.log(models.AuditAction.ARCHIVE, "Category", category.id, f"Archived category {category.name}")
        return category

    def restore(self, category_id: int) -> models.Category:
        category = self.get(category_id)
        category.is_archived = False
        category.updated_at = utcnow()
        category = self.repo.save(category)
        self.audit.log(models.AuditAction.RESTORE, "Category", category.id, f"Restored category {category.name}")
        return category

    def find_or_create(self, name: str, category_type: models.CategoryType, color: Optional[str] = None,
                       description: Optional[str] = None) -> models.Category:
        """Return the category named `name` of `category_type` anywhere in the tree, creating a root one if absent."""
        existing = self.repo.find_by_name(name, category_type, any_parent=True)
        if existing:
            return existing
        return self.create(schemas.CategoryCreate(name=name.strip(), type=category_type, color=color,
                                                  description=description))

    def _ensure_unique(self, name: str, category_type, parent_id: Optional[int], exclude_id: Optional[int] = None):
        existing = self.repo.find_by_name(name, category_type, parent_id)
        if existing and existing.id != exclude_id:
            raise InvalidOperationError(f"A category named '{name}' already exists at this level")

    def _subtree_height(self, category_id: int) -> int:
        children = self.repo.children(category_id)
        return 1 + max((self._subtree_height(c.id) for c in children), default=0)

    def _check_move(self, category: models.Category, new_parent_id: Optional[int]) -> None:
        if new_parent_id is None:
            return
        if new_parent_id == category.id:
            raise InvalidOperationError("A category cannot be its own parent")
        parent = self.get(new_parent_id)
        if is_descendant_of(category.id, new_parent_id, self.repo.parent_id_of):
            raise InvalidOperationError("Cannot move a category under one of its own subcategories")
        if parent.type != category.type:
            raise InvalidOperationError("A subcategory must have the same type as its parent")
        depth = depth_of(new_parent_id, self.repo.parent_id_of) + self._subtree_height(category.id)
        if depth > MAX_CATEGORY_DEPTH:
            raise InvalidOperationError(f"Categories can be nested at most {MAX_CATEGORY_DEPTH} levels deep")


class DonorService(_DomainService):
    """Donors and their contribution totals."""
    def __init__(self, session: Session, user_name: str = "System", ip_address: Optional[str] = None):
        super().__init__(session, user_name, ip_address)
        self.repo = repositories.DonorRepository(session)
        self.txn_repo = repositories.TransactionRepository(session)

    def list(self, include_inactive: bool = False, search: Optional[str] = None) -> List[models.Donor]:
        return self.repo.list(include_inactive, search)

    def get(self, donor_id: int) -> models.Donor:
        donor = self.repo.get(donor_id)
        if not donor:
            raise NotFoundError("Donor", donor_id)
        return donor

    def create(self, data: schemas.DonorCreate) -> models.Donor:
        donor = self.repo.save(models.Donor(**data.model_dump()))
        self.audit.log(models.AuditAction.CREATE, "Donor", donor.id, f"Created donor {donor.name}",
                       new_values=snapshot(donor))
        return donor

    def update(self, donor_id: int, data: schemas.DonorUpdate) -> models.Donor:
        donor = self.get(donor_id)
        old = snapshot(donor)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(donor, key, value)
        donor.updated_at = utcnow()
        donor = self.repo.save(donor)
        self.audit.log(models.AuditAction.UPDATE, "Donor", donor.id, f"Updated donor {donor.name}",
                       old_values=old, new_values=snapshot(donor))
        return donor

    def delete(self, donor_id: int) -> None:
        donor = self.get(donor_id)
        if self.repo.has_transactions(donor_id):
            raise InvalidOperationError("Cannot delete a donor with contributions. Deactivate the donor instead.")
        old = snapshot(donor)
        self.repo.delete(donor)
        self.audit.log(models.AuditAction.DELETE, "Donor", donor_id, f"Deleted donor {old['name']}", old_values=old)

    def contribution_history(self, donor_id: int) -> List[models.Transaction]:
        self.get(donor_id)
        return [t for t in self.txn_repo.for_donor(donor_id) if t.type == models.TransactionType.INCOME]

    def recalculate_totals(self, donor_id: int) -> Optional[models.Donor]:
        donor = self.repo.get(donor_id)
        if not donor:
            return None
        income = [t for t in self.txn_repo.for_donor(donor_id) if t.type == models.TransactionType.INCOME]
        donor.total_contributions = sum((t.amount for t in income), ZERO)
        donor.first_contribution_date = min((t.transaction_date for t in income), default=None)
        donor.last_contribution_date = max((t.transaction_date for t in income), default=None)
        self.session.add(donor)
        self.session.commit()
        return donor


class GrantService(_DomainService):
    """Grants, their usage and reporting deadlines."""
    def __init__(self, session: Session, user_name: str = "System", ip_address: Optional[str] = None):
        super().__init__(session, user_name, ip_address)
        self.repo = repositories.GrantRepository(session)
        self.txn_repo = repositories.TransactionRepository(session)

    def list(self, status: Optional[models.GrantStatus] = None) -> List[models.Grant]:
        return self.repo.list(status)

    def get(self, grant_id: int) -> models.Grant:
        grant = self.repo.get(grant_id)
        if not grant:
            raise NotFoundError("Grant", grant_id)
        return grant

    def create(self, data: schemas.GrantCreate) -> models.Grant:
        if data.end_date and data.end_date < data.start_date:
            raise InvalidOperationError("Grant end date must be on or after the start date")
        grant = self.repo.save(models.Grant(**data.model_dump()))
        self.audit.log(models.AuditAction.CREATE, "Grant", grant.id, f"Created grant {grant.name}",
                       new_values=snapshot(grant))
        return grant

    def update(self, grant_id: int, data: schemas.GrantUpdate) -> models.Grant:
        grant = self.get(grant_id)
        old = snapshot(grant)
        changes = data.model_dump(exclude_unset=True, exclude={"row_version"})
        start = changes.get("start_date", grant.start_date)
        end = changes.get("end_date", grant.end_date)
        if end and start and end < start:
            raise InvalidOperationError("Grant end date must be on or after the start date")
        for key, value in changes.items():
            setattr(grant, key, value)
        grant.updated_at = utcnow()
        bump_version(self.session, grant, data.row_version)
        self.session.commit()
        self.session.refresh(grant)
        self.audit.log(models.AuditAction.UPDATE, "Grant", grant.id, f"Updated grant {grant.name}",
                       old_values=old, new_values=snapshot(grant))
        return grant

    def delete(self, grant_id: int) -> None:
        grant = self.get(grant_id)
        if self.repo.has_transactions(grant_id):
            raise InvalidOperationError("Cannot delete a grant that has transactions")
        old = snapshot(grant)
        self.repo.delete(grant)
        self.audit.log(models.AuditAction.DELETE, "Grant", grant_id, f"Deleted grant {old['name']}", old_values=old)

    def usage_history(self, grant_id: int) -> List[models.Transaction]:
        self.get(grant_id)
        return [t for t in self.txn_repo.for_grant(grant_id) if t.type == models.TransactionType.EXPENSE]

    def expiring(self, days: int = 30, today: Optional[date] = None) -> List[models.Grant]:
        today = today or date.today()
        horizon = today + timedelta(days=days)
        return [
            g for g in self.repo.list(models.GrantStatus.ACTIVE)
            if g.end_date is not None and today <= g.end_date <= horizon
        ]

    def upcoming_reports(self, days: int = 14, today: Optional[date] = None) -> List[models.Grant]:
        today = today or date.today()
        horizon = today + timedelta(days=days)
        due = [
            g for g in self.repo.list()
            if g.next_report_due_date is not None and today <= g.next_report_due_date <= horizon
        ]
        return sorted(due, key=lambda g: g.next_report_due_date)

    def recalculate_usage(self, grant_id: int) -> Optional[models.Grant]:
        grant = self.repo.get(grant_id)
        if not grant:
            return None
        grant.amount_used = sum(
            (t.amount for t in self.txn_repo.for_grant(grant_id) if t.type == models.TransactionType.EXPENSE),
            ZERO,
        )
        self.session.add(grant)
        self.session.commit()
        return grant


class TransactionService(_DomainService):
    """Create, change and query transactions.

    After any change the balances that depend on the touched rows are
    recalculated: fund balances, donor contribution totals and grant
    usage. Transfers between funds are written as an expense/income
    pair in a single database transaction.
    """
    def __init__(self, session: Session, user_name: str = "System", ip_address: Optional[str] = None):
        super().__init__(session, user_name, ip_address)
        self.repo = repositories.TransactionRepository(session)
        self.funds = FundService(session, user_name, ip_address)
        self.donors = DonorService(session, user_name, ip_address)
        self.grants = GrantService(session, user_name, ip_address)
        self.categories = CategoryService(session, user_name, ip_address)

    # -- queries

    def list(self, flt: schemas.TransactionFilter) -> dict:
        page, page_size = clamp_paging(flt.page, flt.page_size)
        rows, total = self.repo.search(
            start_date=flt.start_date, end_date=flt.end_date, category_id=flt.category_id,
            fund_id=flt.fund_id, donor_id=flt.donor_id, grant_id=flt.grant_id, type=flt.type,
            search_term=flt.search_term, tags=flt.tags,
            offset=(page - 1) * page_size, limit=page_size,
        )
        return paged(rows, total, page, page_size)

    def get(self, transaction_id: int) -> models.Transaction:
        t = self.repo.get(transaction_id)
        if not t:
            raise NotFoundError("Transaction", transaction_id)
        return t

    def recent(self, limit: int = 10) -> List[models.Transaction]:
        return self.repo.recent(max(1, min(100, limit)))

    def recently_deleted(self, max_count: int = 50) -> List[models.Transaction]:
        return self.repo.deleted(max(1, min(500, max_count)))

    def by_donor(self, donor_id: int) -> List[models.Transaction]:
        return self.repo.for_donor(donor_id)

    def by_grant(self, grant_id: int) -> List[models.Transaction]:
        return self.repo.for_grant(grant_id)

    def payee_suggestions(self, prefix: str, limit: int = 10) -> List[dict]:
        """Payees starting with `prefix` (2+ characters), most used first."""
        if not prefix or len(prefix.strip()) < 2:
            return []
        stats: "OrderedDict[str, dict]" = OrderedDict()
        for t in self.repo.with_payee_prefix(prefix.strip()):
            key = t.payee.strip().lower()
            entry = stats.setdefault(key, {"payee": t.payee.strip(), "usage_count": 0, "last_category_id": None})
            entry["usage_count"] += 1
            # rows come oldest first so the last one seen wins
            entry["last_category_id"] = t.category_id
        ranked = sorted(stats.values(), key=lambda e: (-e["usage_count"], e["payee"].lower()))
        return ranked[:limit]

    def distinct_tags(self) -> List[str]:
        seen = {}
        for raw in self.repo.all_tags():
            for tag in raw.split(","):
                tag = tag.strip()
                if tag and tag.lower() not in seen:
                    seen[tag.lower()] = tag
        return sorted(seen.values(), key=str.lower)

    def check_duplicates(self, on: date, amount: Decimal, payee: Optional[str] = None) -> List[models.Transaction]:
        """Possible duplicates: same date and amount, and same payee when given."""
        matches = self.repo.same_day_amount(on, amount)
        if payee and payee.strip():
            wanted = payee.strip().lower()
            matches = [t for t in matches if (t.payee or "").strip().lower() == wanted]
        return matches[:5]

    def next_po_number(self, today: Optional[date] = None) -> str:
        """Next purchase-order number in the `PO-YYYY-NNNN` sequence."""
        year = (today or date.today()).year
        prefix = f"PO-{year}-"
        highest = 0
        for po in self.repo.po_numbers_like(prefix):
            suffix = po[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}{highest + 1:04d}"

    def po_number_exists(self, po_number: str) -> bool:
        return self.repo.po_number_exists(po_number.strip())

    # -- commands

    def create(self, data: schemas.TransactionCreate) -> models.Transaction:
        if data.type == models.TransactionType.TRANSFER:
            return self._create_transfer(data)
        if data.category_id is None:
            raise InvalidOperationError("category_id is required")
        self.categories.get(data.category_id)
        self._check_references(data.fund_id, data.donor_id, data.grant_id)
        if data.grant_id is not None and data.type == models.TransactionType.EXPENSE:
            self._check_grant_balance(data.grant_id, data.amount)
        self._check_splits(data.amount, data.splits)

        t = models.Transaction(**data.model_dump(exclude={"splits", "to_fund_id"}))
        if t.is_recurring:
            t.recurrence_pattern = t.recurrence_pattern or models.RecurrencePattern.MONTHLY
            t.next_recurrence_date = advance(t.transaction_date, t.recurrence_pattern)
        t.splits = [models.TransactionSplit(**s.model_dump()) for s in data.splits]
        t = self.repo.save(t)
        self._recalculate(fund_ids={t.fund_id}, donor_ids={t.donor_id}, grant_ids={t.grant_id})
        self.session.refresh(t)
        self.audit.log(models.AuditAction.CREATE, "Transaction", t.id,
                       f"Created {t.type.value.lower()} of {t.amount}", new_values=snapshot(t))
        return t

    def update(self, transaction_id: int, data: schemas.TransactionUpdate) -> models.Transaction:
        t = self.get(transaction_id)
        old = snapshot(t)
        changes = data.model_dump(exclude_unset=True, exclude={"row_version", "splits"})
        if changes.get("type") == models.TransactionType.TRANSFER and t.transfer_pair_id is None:
            raise InvalidOperationError("Create a transfer instead of changing a transaction into one")
        if t.transfer_pair_id is not None:
            locked = {"amount", "type", "fund_id", "category_id"} & changes.keys()
            if locked:
                raise InvalidOperationError(
                    f"Cannot change {', '.join(sorted(locked))} on a transfer; delete and re-create it"
                )
        if "category_id" in changes:
            if changes["category_id"] is None:
                raise InvalidOperationError("category_id is required")
            self.categories.get(changes["category_id"])
        self._check_references(changes.get("fund_id"), changes.get("donor_id"), changes.get("grant_id"))

        new_amount = changes.get("amount", t.amount)
        new_type = changes.get("type", t.type)
        new_grant = changes.get("grant_id", t.grant_id)
        if new_grant is not None and new_type == models.TransactionType.EXPENSE:
            already = t.amount if (t.grant_id == new_grant and t.type == models.TransactionType.EXPENSE) else ZERO
            self._check_grant_balance(new_grant, new_amount, already_charged=already)
        if data.splits is not None:
            self._check_splits(new_amount, data.splits)
        elif "amount" in changes and t.splits:
            self._check_splits(new_amount, t.splits)

        before = {"fund": t.fund_id, "donor": t.donor_id, "grant": t.grant_id}
        for key, value in changes.items():
            setattr(t, key, value)
        if data.splits is not None:
            t.splits = [models.TransactionSplit(**s.model_dump()) for s in data.splits]
        if t.is_recurring:
            t.recurrence_pattern = t.recurrence_pattern or models.RecurrencePattern.MONTHLY
            if "recurrence_pattern" in changes or "is_recurring" in changes or t.next_recurrence_date is None:
                t.next_recurrence_date = advance(t.transaction_date, t.recurrence_pattern)
        else:
            t.next_recurrence_date = None
        t.updated_at = utcnow()
        if t.transfer_pair_id is not None and "transaction_date" in changes:
            for leg in self.repo.transfer_pair(t.transfer_pair_id):
                if leg.id != t.id:
                    leg.transaction_date = t.transaction_date
                    self.session.add(leg)
        bump_version(self.session, t, data.row_version)
        self.session.commit()
        self._recalculate(
            fund_ids={before["fund"], t.fund_id},
            donor_ids={before["donor"], t.donor_id},
            grant_ids={before["grant"], t.grant_id},
        )
        self.session.refresh(t)
        self.audit.log(models.AuditAction.UPDATE, "Transaction", t.id, f"Updated transaction {t.id}",
                       old_values=old, new_values=snapshot(t))
        return t

    def delete(self, transaction_id: int) -> None:
        """Soft delete; both legs of a transfer go together."""
        t = self.get(transaction_id)
        legs = self._legs(t)
        now = utcnow()
        for leg in legs:
            leg.is_deleted = True
            leg.deleted_at = now
            leg.deleted_by = self.user_name
            self.session.add(leg)
        self.session.commit()
        self._recalculate_for(legs)
        for leg in legs:
            self.audit.log(models.AuditAction.DELETE, "Transaction", leg.id, f"Deleted transaction {leg.id}",
                           old_values=snapshot(leg))

    def restore(self, transaction_id: int) -> models.Transaction:
        t = self.repo.get(transaction_id, include_deleted=True)
        if not t:
            raise NotFoundError("Transaction", transaction_id)
        if not t.is_deleted:
            raise InvalidOperationError("Transaction is not deleted")
        legs = self._legs(t, include_deleted=True)
        for leg in legs:
            leg.is_deleted = False
            leg.deleted_at = None
            leg.deleted_by = None
            leg.updated_at = utcnow()
            self.session.add(leg)
        self.session.commit()
        self._recalculate_for(legs)
        self.session.refresh(t)
        self.audit.log(models.AuditAction.RESTORE, "Transaction", t.id, f"Restored transaction {t.id}")
        return t

    def permanent_delete(self, transaction_id: int) -> None:
        t = self.repo.get(transaction_id, include_deleted=True)
        if not t:
            raise NotFoundError("Transaction", transaction_id)
        legs = self._legs(t, include_deleted=True)
        refs = [(leg.fund_id, leg.donor_id, leg.grant_id) for leg in legs]
        olds = [(leg.id, snapshot(leg)) for leg in legs]
        for leg in legs:
            self.session.delete(leg)
        self.session.commit()
        self._recalculate(
            fund_ids={r[0] for r in refs}, donor_ids={r[1] for r in refs}, grant_ids={r[2] for r in refs}
        )
        for leg_id, old in olds:
            self.audit.log(models.AuditAction.PERMANENT_DELETE, "Transaction", leg_id,
                           f"Permanently deleted transaction {leg_id}", old_values=old)

    def process_recurring(self, today: Optional[date] = None) -> int:
        """Materialise recurring transactions whose next date has arrived.

        Each due transaction produces one copy dated on its recurrence
        date, and its next date moves forward by one period.
        """
        today = today or date.today()
        created = 0
        for template in self.repo.due_recurring(today):
            copy = models.Transaction(
                transaction_date=template.next_recurrence_date,
                amount=template.amount,
                description=template.description,
                type=template.type,
                category_id=template.category_id,
                fund_type=template.fund_type,
                fund_id=template.fund_id,
                donor_id=template.donor_id,
                grant_id=template.grant_id,
                project_id=template.project_id,
                payee=template.payee,
                tags=template.tags,
            )
            copy.splits = [
                models.TransactionSplit(category_id=s.category_id, amount=s.amount, description=s.description)
                for s in template.splits
            ]
            template.next_recurrence_date = advance(template.next_recurrence_date, template.recurrence_pattern)
            self.session.add(copy)
            self.session.add(template)
            self.session.commit()
            self._recalculate(fund_ids={copy.fund_id}, donor_ids={copy.donor_id}, grant_ids={copy.grant_id})
            self.audit.log(models.AuditAction.CREATE, "Transaction", copy.id,
                           f"Generated from recurring transaction {template.id}")
            created += 1
        if created:
            logger.info("generated %d recurring transactions", created)
        return created

    # -- helpers

    def _create_transfer(self, data: schemas.TransactionCreate) -> models.Transaction:
        if data.fund_id is None or data.to_fund_id is None:
            raise InvalidOperationError("Both source and destination funds are required for transfers")
        if data.fund_id == data.to_fund_id:
            raise InvalidOperationError("Cannot transfer to the same account")
        source = self.funds.get(data.fund_id)
        target = self.funds.get(data.to_fund_id)
        category = self.categories.repo.find_by_name("Transfer", models.CategoryType.EXPENSE, any_parent=True)
        pair_id = str(uuid.uuid4())
        try:
            if category is None:
                category = models.Category(
                    name="Transfer", type=models.CategoryType.EXPENSE,
                    description="Internal transfers between funds", color=TRANSFER_CATEGORY_COLOR,
                )
                self.session.add(category)
                self.session.flush()
            common = dict(
                transaction_date=data.transaction_date, amount=data.amount, category_id=category.id,
                fund_type=models.FundType.UNRESTRICTED, transfer_pair_id=pair_id,
                reference_number=data.reference_number, tags="Transfer",
            )
            outgoing = models.Transaction(
                type=models.TransactionType.EXPENSE, fund_id=source.id, to_fund_id=target.id,
                description=data.description or f"Transfer to {target.name}", **common,
            )
            incoming = models.Transaction(
                type=models.TransactionType.INCOME, fund_id=target.id, to_fund_id=source.id,
                description=data.description or f"Transfer from {source.name}", **common,
            )
            self.session.add(outgoing)
            self.session.add(incoming)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self._recalculate(fund_ids={source.id, target.id}, donor_ids=set(), grant_ids=set())
        self.session.refresh(outgoing)
        self.audit.log(models.AuditAction.TRANSFER, "Transaction", outgoing.id,
                       f"Transferred {data.amount} from {source.name} to {target.name}",
                       new_values={"transfer_pair_id": pair_id, "expense_id": outgoing.id, "income_id": incoming.id})
        return outgoing

    def _legs(self, t: models.Transaction, include_deleted: bool = False) -> List[models.Transaction]:
        if t.transfer_pair_id is None:
            return [t]
        legs = self.repo.transfer_pair(t.transfer_pair_id)
        if not include_deleted:
            legs = [leg for leg in legs if not leg.is_deleted]
        return legs or [t]

    def _check_references(self, fund_id: Optional[int], donor_id: Optional[int], grant_id: Optional[int]) -> None:
        if fund_id is not None and not self.funds.repo.get(fund_id):
            raise InvalidOperationError(f"Fund {fund_id} does not exist")
        if donor_id is not None and not self.donors.repo.get(donor_id):
            raise InvalidOperationError(f"Donor {donor_id} does not exist")
        if grant_id is not None and not self.grants.repo.get(grant_id):
            raise InvalidOperationError(f"Grant {grant_id} does not exist")

    def _check_grant_balance(self, grant_id: int, amount: Decimal, already_charged: Decimal = ZERO) -> None:
        grant = self.grants.get(grant_id)
        remaining = grant.remaining_balance + already_charged
        if amount > remaining:
            raise InvalidOperationError(
                f"Expense of {amount} exceeds the remaining balance of grant '{grant.name}' ({remaining})"
            )

    def _check_splits(self, amount: Decimal, splits) -> None:
        if not splits:
            return
        for s in splits:
            self.categories.get(s.category_id)
        total = sum((s.amount for s in splits), ZERO)
        if abs(total - amount) > SPLIT_TOLERANCE:
            raise InvalidOperationError(f"Split amounts ({total}) must add up to the transaction amount ({amount})")

    def _recalculate_for(self, legs: List[models.Transaction]) -> None:
        self._recalculate(
            fund_ids={leg.fund_id for leg in legs},
            donor_ids={leg.donor_id for leg in legs},
            grant_ids={leg.grant_id for leg in legs},
        )

    def _recalculate(self, fund_ids, donor_ids, grant_ids) -> None:
        for fund_id in filter(None, fund_ids):
            self.funds.recalculate(fund_id)
        for donor_id in filter(None, donor_ids):
            self.donors.recalculate_totals(donor_id)
        for grant_id in filter(None, grant_ids):
            self.grants.recalculate_usage(grant_id)


class HierarchyService(_DomainService):
    """Shared behaviour for nestable, soft-deletable lookup tables.

    Subclasses set `model`, `entity_name` and, when the parent column is
    not `parent_id`, `parent_attr`. Deleting deactivates the row and is
    refused while active children (or, via `_in_use`, active dependants)
    remain.
    """
    model = None
    entity_name = ""
    parent_attr = "parent_id"

    def _select(self, active_only: bool = True):
        stmt = select(self.model)
        if active_only:
            stmt = stmt.where(self.model.is_active == True)  # noqa: E712
        return stmt.order_by(self.model.name)

    def list(self, include_inactive: bool = False) -> list:
        return self.session.exec(self._select(not include_inactive)).all()

    def get(self, entity_id: int):
        entity = self.session.get(self.model, entity_id)
        if not entity:
            raise NotFoundError(self.entity_name, entity_id)
        return entity

    def children(self, parent_id: Optional[int]) -> list:
        stmt = self._select().where(getattr(self.model, self.parent_attr) == parent_id)
        return self.session.exec(stmt).all()

    def roots(self) -> list:
        return self.children(None)

    def tree(self, schema) -> List[dict]:
        return build_tree(self.list(), lambda row: schema.model_validate(row).model_dump(mode="json"),
                          parent_attr=self.parent_attr)

    def create(self, data):
        values = data.model_dump()
        parent_id = values.get(self.parent_attr)
        if parent_id is not None:
            self._require_active_parent(parent_id)
        entity = self.model(**values)
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        self.audit.log(models.AuditAction.CREATE, self.entity_name, entity.id,
                       f"Created {self.entity_name.lower()} {entity.name}", new_values=snapshot(entity))
        return entity

    def update(self, entity_id: int, data):
        entity = self.get(entity_id)
        old = snapshot(entity)
        changes = data.model_dump(exclude_unset=True)
        if self.parent_attr in changes:
            self._check_parent(entity_id, changes[self.parent_attr])
        for key, value in changes.items():
            setattr(entity, key, value)
        if hasattr(entity, "updated_at"):
            entity.updated_at = utcnow()
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        self.audit.log(models.AuditAction.UPDATE, self.entity_name, entity.id,
                       f"Updated {self.entity_name.lower()} {entity.name}", old_values=old, new_values=snapshot(entity))
        return entity

    def move(self, entity_id: int, new_parent_id: Optional[int]):
        entity = self.get(entity_id)
        self._check_parent(entity_id, new_parent_id)
        setattr(entity, self.parent_attr, new_parent_id)
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        return entity

    def can_delete(self, entity_id: int) -> bool:
        return not self.children(entity_id) and not self._in_use(entity_id)

    def delete(self, entity_id: int) -> None:
        entity = self.get(entity_id)
        if self.children(entity_id):
            raise InvalidOperationError(f"Cannot delete a {self.entity_name.lower()} that has active children")
        if self._in_use(entity_id):
            raise InvalidOperationError(f"Cannot delete a {self.entity_name.lower()} that still has items")
        entity.is_active = False
        self.session.add(entity)
        self.session.commit()
        self.audit.log(models.AuditAction.DELETE, self.entity_name, entity_id,
                       f"Deactivated {self.entity_name.lower()} {entity.name}")

    def _in_use(self, entity_id: int) -> bool:
        return False

    def _parent_id_of(self, entity_id: int) -> Optional[int]:
        entity = self.session.get(self.model, entity_id)
        return getattr(entity, self.parent_attr) if entity else None

    def _require_active_parent(self, parent_id: int):
        parent = self.get(parent_id)
        if not parent.is_active:
            raise InvalidOperationError(f"Parent {self.entity_name.lower()} {parent_id} is inactive")
        return parent

    def _check_parent(self, entity_id: int, new_parent_id: Optional[int]) -> None:
        if new_parent_id is None:
            return
        self._require_active_parent(new_parent_id)
        if is_descendant_of(entity_id, new_parent_id, self._parent_id_of):
            raise InvalidOperationError(f"Cannot move a {self.entity_name.lower()} under itself or its descendants")
