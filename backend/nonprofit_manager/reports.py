"""Financial reports.

Every figure here is computed from non-deleted transactions with both
legs of fund transfers left out, since a transfer moves money between
funds without being income or expense.
"""

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from . import models, repositories
from .config import settings
from .errors import InvalidOperationError
from .services import FundService
from .utils.paging import add_months

ZERO = Decimal("0")
AUDIT_WARNING_RATIO = Decimal("0.8")
OTHER_COLOR = "#6c757d"
TREND_INTERVALS = ("daily", "weekly", "monthly", "quarterly", "yearly")


def _pct(part: Decimal, whole: Decimal) -> float:
    if not whole:
        return 0.0
    return float((part / whole * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _totals(rows: List[models.Transaction]) -> Dict[str, Decimal]:
    income = sum((t.amount for t in rows if t.type == models.TransactionType.INCOME), ZERO)
    expenses = sum((t.amount for t in rows if t.type == models.TransactionType.EXPENSE), ZERO)
    return {"income": income, "expenses": expenses, "net": income - expenses}


class ReportService:
    def __init__(self, session: Session):
        self.session = session
        self.txn_repo = repositories.TransactionRepository(session)
        self.category_repo = repositories.CategoryRepository(session)

    def dashboard(self, today: Optional[date] = None) -> dict:
        today = today or date.today()
        start_of_year = date(today.year, 1, 1)
        start_of_month = date(today.year, today.month, 1)
        rows = self.txn_repo.between(start_of_year, today)
        month = _totals([t for t in rows if t.transaction_date >= start_of_month])
        ytd = _totals(rows)
        active_grants = self.session.exec(
            select(func.count()).select_from(models.Grant).where(models.Grant.status == models.GrantStatus.ACTIVE)
        ).one()
        active_donors = self.session.exec(
            select(func.count()).select_from(models.Donor).where(
                models.Donor.is_active == True,  # noqa: E712
                models.Donor.last_contribution_date >= start_of_year,
            )
        ).one()
        return {
            "monthly_income": month["income"],
            "monthly_expenses": month["expenses"],
            "monthly_net": month["net"],
            "ytd_income": ytd["income"],
            "ytd_expenses": ytd["expenses"],
            "ytd_net": ytd["net"],
            "funds": FundService(self.session).summary(),
            "active_grants": active_grants,
            "active_donors": active_donors,
        }

    def income_expense_summary(self, start: date, end: date, fund_id: Optional[int] = None,
                               donor_id: Optional[int] = None, grant_id: Optional[int] = None,
                               category_id: Optional[int] = None, include_subcategories: bool = True) -> dict:
        self._check_range(start, end)
        income = self.category_breakdown(models.CategoryType.INCOME, start, end, fund_id, donor_id, grant_id,
                                         category_id, include_subcategories)
        expenses = self.category_breakdown(models.CategoryType.EXPENSE, start, end, fund_id, donor_id, grant_id,
                                           category_id, include_subcategories)
        total_income = sum((c["amount"] for c in income), ZERO)
        total_expenses = sum((c["amount"] for c in expenses), ZERO)
        return {
            "start_date": start,
            "end_date": end,
            "total_income": total_income,
            "total_expenses": total_expenses,
            "net": total_income - total_expenses,
            "income_categories": income,
            "expense_categories": expenses,
        }

    def category_breakdown(self, category_type: models.CategoryType, start: date, end: date,
                           fund_id: Optional[int] = None, donor_id: Optional[int] = None,
                           grant_id: Optional[int] = None, category_id: Optional[int] = None,
                           include_subcategories: bool = True) -> List[dict]:
        """Totals per top-level category with one level of subcategory rollups.

        Amounts of deeper descendants roll up into their top-level
        ancestor. Transactions whose category is not reachable from an
        active top-level category are reported under "Other".
        """
        self._check_range(start, end)
        txn_type = (models.TransactionType.INCOME if category_type == models.CategoryType.INCOME
                    else models.TransactionType.EXPENSE)
        rows = [t for t in self.txn_repo.between(start, end) if t.type == txn_type]
        if fund_id is not None:
            rows = [t for t in rows if t.fund_id == fund_id]
        if donor_id is not None:
            rows = [t for t in rows if t.donor_id == donor_id]
        if grant_id is not None:
            rows = [t for t in rows if t.grant_id == grant_id]

        categories = self.category_repo.list(include_archived=True)
        children: Dict[Optional[int], List[models.Category]] = {}
        for c in categories:
            children.setdefault(c.parent_id, []).append(c)

        def subtree(root_id: int) -> set:
            ids, stack = {root_id}, [root_id]
            while stack:
                for child in children.get(stack.pop(), []):
                    if child.id not in ids:
                        ids.add(child.id)
                        stack.append(child.id)
            return ids

        if category_id is not None:
            allowed = subtree(category_id) if include_subcategories else {category_id}
            rows = [t for t in rows if t.category_id in allowed]

        total = sum((t.amount for t in rows), ZERO)
        used = {t.category_id for t in rows}
        tops = [c for c in children.get(None, [])
                if not c.is_archived and (c.type == category_type or c.id in used)]
        summaries, handled = [], set()
        for top in tops:
            ids = subtree(top.id)
            amount = sum((t.amount for t in rows if t.category_id in ids), ZERO)
            if amount <= 0:
                continue
            handled |= ids
            subs = []
            if include_subcategories:
                for child in children.get(top.id, []):
                    child_ids = subtree(child.id)
                    child_amount = sum((t.amount for t in rows if t.category_id in child_ids), ZERO)
                    if child_amount > 0:
                        subs.append({
                            "category_id": child.id, "name": child.name, "color": child.color,
                            "amount": child_amount, "percentage": _pct(child_amount, amount),
                        })
                subs.sort(key=lambda s: s["amount"], reverse=True)
            summaries.append({
                "category_id": top.id, "name": top.name, "color": top.color,
                "amount": amount, "percentage": _pct(amount, total), "subcategories": subs,
            })
        orphan = sum((t.amount for t in rows if t.category_id not in handled), ZERO)
        if orphan > 0:
            summaries.append({
                "category_id": None, "name": "Other", "color": OTHER_COLOR,
                "amount": orphan, "percentage": _pct(orphan, total), "subcategories": [],
            })
        return sorted(summaries, key=lambda s: s["amount"], reverse=True)

    def trends(self, start: date, end: date, interval: str = "monthly") -> List[dict]:
        """Income, expenses and net per period; the last period ends at `end`."""
        self._check_range(start, end)
        interval = (interval or "monthly").lower()
        if interval not in TREND_INTERVALS:
            raise InvalidOperationError(f"Unknown interval '{interval}'; use one of {', '.join(TREND_INTERVALS)}")
        rows = self.txn_repo.between(start, end)
        out = []
        current = start
        while current <= end:
            nxt = self._step(current, interval)
            period_end = min(nxt - timedelta(days=1), end)
            out.append({
                "period_start": current,
                "period_end": period_end,
                **_totals([t for t in rows if current <= t.transaction_date <= period_end]),
            })
            current = nxt
        return out

    @staticmethod
    def _step(d: date, interval: str) -> date:
        if interval == "daily":
            return d + timedelta(days=1)
        if interval == "weekly":
            return d + timedelta(days=7)
        if interval == "quarterly":
            return add_months(d, 3)
        if interval == "yearly":
            return add_months(d, 12)
        return add_months(d, 1)

    def ytd_revenue(self, today: Optional[date] = None) -> Decimal:
        today = today or date.today()
        rows = self.txn_repo.between(date(today.year, 1, 1), today)
        return _totals(rows)["income"]

    def audit_threshold_status(self, today: Optional[date] = None) -> dict:
        """Year-to-date revenue against the audit threshold, warning at 80 %."""
        revenue = self.ytd_revenue(today)
        threshold = settings.AUDIT_THRESHOLD
        return {
            "ytd_revenue": revenue,
            "threshold": threshold,
            "percentage": _pct(revenue, threshold),
            "approaching": revenue >= threshold * AUDIT_WARNING_RATIO,
            "exceeded": revenue >= threshold,
        }

    def budget_vs_actual(self, year: int) -> List[dict]:
        """Expense categories with a budget limit against the year's spend.

        Spend in subcategories counts toward their budgeted ancestor.
        """
        categories = self.category_repo.list(models.CategoryType.EXPENSE, include_archived=True)
        parent_of = {c.id: c.parent_id for c in categories}
        spend: Dict[int, Decimal] = {}
        for t in self.txn_repo.between(date(year, 1, 1), date(year, 12, 31)):
            if t.type != models.TransactionType.EXPENSE:
                continue
            seen = set()
            node = t.category_id
            while node is not None and node not in seen:
                seen.add(node)
                spend[node] = spend.get(node, ZERO) + t.amount
                node = parent_of.get(node)
        out = []
        for c in categories:
            if c.budget_limit is None or c.is_archived:
                continue
            actual = spend.get(c.id, ZERO)
            out.append({
                "category_id": c.id,
                "name": c.name,
                "budget": c.budget_limit,
                "actual": actual,
                "variance": c.budget_limit - actual,
                "percent_used": _pct(actual, c.budget_limit),
                "over_budget": actual > c.budget_limit,
            })
        return sorted(out, key=lambda r: r["percent_used"], reverse=True)

    @staticmethod
    def _check_range(start: date, end: date) -> None:
        if end < start:
            raise InvalidOperationError("End date must be on or after the start date")
