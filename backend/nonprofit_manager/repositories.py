"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
funds, categories, donors, grants, transactions, recurring templates,
audit entries). Repositories return SQLModel objects; `save` commits
and refreshes, while multi-row operations that must be atomic add rows
to the session and let the calling service commit once.
"""

from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlmodel import Session, select

from . import models


class _Repository:
    """Shared get/save/delete helpers for a single table."""
    model = None

    def __init__(self, session: Session):
        self.session = session

    def get(self, entity_id: int):
        """Fetch a row by primary key or `None`."""
        return self.session.get(self.model, entity_id)

    def save(self, entity):
        """Persist `entity` and return the refreshed instance."""
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        return entity

    def delete(self, entity) -> None:
        self.session.delete(entity)
        self.session.commit()

    def _count(self, stmt) -> int:
        return self.session.exec(select(func.count()).select_from(stmt.subquery())).one()


class UserRepository(_Repository):
    """CRUD operations for `User` objects."""
    model = models.User

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        return self.save(user)

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()


class FundRepository(_Repository):
    model = models.Fund

    def list(self, include_inactive: bool = False) -> List[models.Fund]:
        stmt = select(models.Fund)
        if not include_inactive:
            stmt = stmt.where(models.Fund.is_active == True)  # noqa: E712
        return self.session.exec(stmt.order_by(models.Fund.name)).all()

    def get_by_name(self, name: str) -> Optional[models.Fund]:
        stmt = select(models.Fund).where(func.lower(models.Fund.name) == name.strip().lower())
        return self.session.exec(stmt).first()

    def has_transactions(self, fund_id: int) -> bool:
        """True when any transaction (deleted or not) references the fund."""
        stmt = select(models.Transaction.id).where(
            or_(models.Transaction.fund_id == fund_id, models.Transaction.to_fund_id == fund_id)
        )
        return self.session.exec(stmt).first() is not None


class CategoryRepository(_Repository):
    model = models.Category

    def list(self, category_type: Optional[models.CategoryType] = None, include_archived: bool = False) -> List[models.Category]:
        stmt = select(models.Category)
        if category_type is not None:
            stmt = stmt.where(models.Category.type == category_type)
        if not include_archived:
            stmt = stmt.where(models.Category.is_archived == False)  # noqa: E712
        stmt = stmt.order_by(models.Category.sort_order, models.Category.name)
        return self.session.exec(stmt).all()

    def find_by_name(self, name: str, category_type: models.CategoryType, parent_id: Optional[int] = None,
                     any_parent: bool = False) -> Optional[models.Category]:
        """Case-insensitive lookup of a sibling (or, with `any_parent`, any) category."""
        stmt = select(models.Category).where(
            func.lower(models.Category.name) == name.strip().lower(),
            models.Category.type == category_type,
        )
        if not any_parent:
            stmt = stmt.where(models.Category.parent_id == parent_id)
        return self.session.exec(stmt).first()

    def children(self, parent_id: int) -> List[models.Category]:
        stmt = select(models.Category).where(models.Category.parent_id == parent_id)
        return self.session.exec(stmt).all()

    def parent_id_of(self, category_id: int) -> Optional[int]:
        category = self.get(category_id)
        return category.parent_id if category else None

    def is_in_use(self, category_id: int) -> bool:
        """True when a transaction, split or recurring template uses the category."""
        checks = (
            select(models.Transaction.id).where(models.Transaction.category_id == category_id),
            select(models.TransactionSplit.id).where(models.TransactionSplit.category_id == category_id),
            select(models.RecurringTransaction.id).where(models.RecurringTransaction.category_id == category_id),
        )
        return any(self.session.exec(stmt).first() is not None for stmt in checks)


class DonorRepository(_Repository):
    model = models.Donor

    def list(self, include_inactive: bool = False, search: Optional[str] = None) -> List[models.Donor]:
        stmt = select(models.Donor)
        if not include_inactive:
            stmt = stmt.where(models.Donor.is_active == True)  # noqa: E712
        if search:
            term = search.strip().lower()
            stmt = stmt.where(or_(
                func.lower(models.Donor.name).contains(term),
                func.lower(models.Donor.email).contains(term),
            ))
        return self.session.exec(stmt.order_by(models.Donor.name)).all()

    def get_by_name(self, name: str) -> Optional[models.Donor]:
        stmt = select(models.Donor).where(func.lower(models.Donor.name) == name.strip().lower())
        return self.session.exec(stmt).first()

    def has_transactions(self, donor_id: int) -> bool:
        stmt = select(models.Transaction.id).where(models.Transaction.donor_id == donor_id)
        return self.session.exec(stmt).first() is not None


class GrantRepository(_Repository):
    model = models.Grant

    def list(self, status: Optional[models.GrantStatus] = None) -> List[models.Grant]:
        stmt = select(models.Grant)
        if status is not None:
            stmt = stmt.where(models.Grant.status == status)
        return self.session.exec(stmt.order_by(models.Grant.start_date.desc())).all()

    def get_by_name(self, name: str) -> Optional[models.Grant]:
        stmt = select(models.Grant).where(func.lower(models.Grant.name) == name.strip().lower())
        return self.session.exec(stmt).first()

    def has_transactions(self, grant_id: int) -> bool:
        stmt = select(models.Transaction.id).where(models.Transaction.grant_id == grant_id)
        return self.session.exec(stmt).first() is not None


class TransactionRepository(_Repository):
    """Queries over transactions. Soft-deleted rows are excluded unless asked for."""
    model = models.Transaction

    def active(self):
        """Base statement over non-deleted transactions."""
        return select(models.Transaction).where(models.Transaction.is_deleted == False)  # noqa: E712

    def get(self, transaction_id: int, include_deleted: bool = False) -> Optional[models.Transaction]:
        t = self.session.get(models.Transaction, transaction_id)
        if t is None or (t.is_deleted and not include_deleted):
            return None
        return t

    def search(self, *, start_date: Optional[date] = None, end_date: Optional[date] = None,
               category_id: Optional[int] = None, fund_id: Optional[int] = None,
               donor_id: Optional[int] = None, grant_id: Optional[int] = None,
               type: Optional[models.TransactionType] = None, search_term: Optional[str] = None,
               tags: Optional[str] = None, offset: int = 0, limit: Optional[int] = None
               ) -> Tuple[List[models.Transaction], int]:
        """Filter transactions; returns `(rows, total_count)` newest first."""
        T = models.Transaction
        stmt = self.active()
        if start_date:
            stmt = stmt.where(T.transaction_date >= start_date)
        if end_date:
            stmt = stmt.where(T.transaction_date <= end_date)
        if category_id:
            split_ids = select(models.TransactionSplit.transaction_id).where(
                models.TransactionSplit.category_id == category_id
            )
            stmt = stmt.where(or_(T.category_id == category_id, T.id.in_(split_ids)))
        if fund_id:
            stmt = stmt.where(T.fund_id == fund_id)
        if donor_id:
            stmt = stmt.where(T.donor_id == donor_id)
        if grant_id:
            stmt = stmt.where(T.grant_id == grant_id)
        if type:
            stmt = stmt.where(T.type == type)
        if search_term and search_term.strip():
            term = search_term.strip().lower()
            stmt = stmt.where(or_(
                func.lower(T.description).contains(term),
                func.lower(T.payee).contains(term),
                func.lower(T.tags).contains(term),
            ))
        if tags:
            wanted = [t.strip().lower() for t in tags.split(",") if t.strip()]
            if wanted:
                stmt = stmt.where(or_(*[func.lower(T.tags).contains(t) for t in wanted]))
        total = self._count(stmt)
        stmt = stmt.order_by(T.transaction_date.desc(), T.id.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.session.exec(stmt).all(), total

    def for_fund(self, fund_id: int) -> List[models.Transaction]:
        stmt = self.active().where(models.Transaction.fund_id == fund_id)
        return self.session.exec(stmt).all()

    def for_donor(self, donor_id: int) -> List[models.Transaction]:
        stmt = self.active().where(models.Transaction.donor_id == donor_id).order_by(
            models.Transaction.transaction_date.desc(), models.Transaction.id.desc()
        )
        return self.session.exec(stmt).all()

    def for_grant(self, grant_id: int) -> List[models.Transaction]:
        stmt = self.active().where(models.Transaction.grant_id == grant_id).order_by(
            models.Transaction.transaction_date.desc(), models.Transaction.id.desc()
        )
        return self.session.exec(stmt).all()

    def transfer_pair(self, pair_id: str) -> List[models.Transaction]:
        stmt = select(models.Transaction).where(models.Transaction.transfer_pair_id == pair_id)
        return self.session.exec(stmt).all()

    def recent(self, limit: int = 10) -> List[models.Transaction]:
        stmt = self.active().order_by(
            models.Transaction.transaction_date.desc(), models.Transaction.id.desc()
        ).limit(limit)
        return self.session.exec(stmt).all()

    def deleted(self, limit: int = 50) -> List[models.Transaction]:
        stmt = select(models.Transaction).where(
            models.Transaction.is_deleted == True  # noqa: E712
        ).order_by(models.Transaction.deleted_at.desc()).limit(limit)
        return self.session.exec(stmt).all()

    def due_recurring(self, today: date) -> List[models.Transaction]:
        stmt = self.active().where(
            models.Transaction.is_recurring == True,  # noqa: E712
            models.Transaction.next_recurrence_date != None,  # noqa: E711
            models.Transaction.next_recurrence_date <= today,
        )
        return self.session.exec(stmt).all()

    def with_payee_prefix(self, prefix: str) -> List[models.Transaction]:
        stmt = self.active().where(
            models.Transaction.payee != None,  # noqa: E711
            func.lower(models.Transaction.payee).startswith(prefix.lower()),
        ).order_by(models.Transaction.transaction_date, models.Transaction.id)
        return self.session.exec(stmt).all()

    def all_tags(self) -> List[str]:
        stmt = select(models.Transaction.tags).where(
            models.Transaction.is_deleted == False,  # noqa: E712
            models.Transaction.tags != None,  # noqa: E711
        )
        return self.session.exec(stmt).all()

    def same_day_amount(self, on: date, amount) -> List[models.Transaction]:
        stmt = self.active().where(
            models.Transaction.transaction_date == on,
            models.Transaction.amount == amount,
        )
        return self.session.exec(stmt).all()

    def po_numbers_like(self, prefix: str) -> List[str]:
        stmt = select(models.Transaction.po_number).where(models.Transaction.po_number.startswith(prefix))
        return self.session.exec(stmt).all()

    def po_number_exists(self, po_number: str) -> bool:
        stmt = select(models.Transaction.id).where(
            models.Transaction.po_number == po_number,
            models.Transaction.is_deleted == False,  # noqa: E712
        )
        return self.session.exec(stmt).first() is not None

    def between(self, start: date, end: date, exclude_transfers: bool = True) -> List[models.Transaction]:
        """Non-deleted transactions in `[start, end]`, optionally without transfer legs."""
        stmt = self.active().where(
            models.Transaction.transaction_date >= start,
            models.Transaction.transaction_date <= end,
        )
        if exclude_transfers:
            stmt = stmt.where(models.Transaction.transfer_pair_id == None)  # noqa: E711
        return self.session.exec(stmt).all()


class RecurringRepository(_Repository):
    model = models.RecurringTransaction

    def list(self, include_inactive: bool = True) -> List[models.RecurringTransaction]:
        stmt = select(models.RecurringTransaction)
        if not include_inactive:
            stmt = stmt.where(models.RecurringTransaction.is_active == True)  # noqa: E712
        return self.session.exec(stmt.order_by(models.RecurringTransaction.next_occurrence)).all()

    def due(self, today: date) -> List[models.RecurringTransaction]:
        R = models.RecurringTransaction
        stmt = select(R).where(
            R.is_active == True,  # noqa: E712
            R.next_occurrence <= today,
            or_(R.end_date == None, R.end_date >= today),  # noqa: E711
        ).order_by(R.next_occurrence, R.id)
        return self.session.exec(stmt).all()


class AuditRepository(_Repository):
    model = models.AuditLog

    def add(self, entry: models.AuditLog) -> models.AuditLog:
        return self.save(entry)

    def list(self, *, entity_type: Optional[str] = None, entity_id: Optional[int] = None,
             action: Optional[models.AuditAction] = None, user_name: Optional[str] = None,
             start=None, end=None, max_results: int = 100) -> List[models.AuditLog]:
        A = models.AuditLog
        stmt = select(A)
        if entity_type:
            stmt = stmt.where(A.entity_type == entity_type)
        if entity_id is not None:
            stmt = stmt.where(A.entity_id == entity_id)
        if action:
            stmt = stmt.where(A.action == action)
        if user_name:
            stmt = stmt.where(A.user_name == user_name)
        if start:
            stmt = stmt.where(A.timestamp >= start)
        if end:
            stmt = stmt.where(A.timestamp <= end)
        stmt = stmt.order_by(A.timestamp.desc(), A.id.desc()).limit(max_results)
        return self.session.exec(stmt).all()
