"""CSV import and export.

Imports map CSV columns onto transactions by zero-based index. Each row
is created through `TransactionService`, so the usual validation and
fund/donor/grant recalculation apply; a row that fails is reported in
`ImportResult.errors` and skipped. Exports render the same listings the
API serves as CSV text.
"""

import csv
import io
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from . import models, repositories, schemas
from .services import CategoryService, DonorService, FundService, TransactionService, _DomainService

DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d", "%d-%b-%Y", "%b %d, %Y")
CURRENCY_SYMBOLS = "$€£¥"
INCOME_WORDS = {"income", "deposit", "credit", "i", "cr"}
EXPENSE_WORDS = {"expense", "withdrawal", "debit", "e", "dr"}
TRANSFER_WORDS = {"transfer", "t", "xfer"}

TRANSACTION_TEMPLATE = [
    ["Date", "Amount", "Description", "Type", "Category", "Fund", "Donor", "Grant", "Payee", "Tags"],
    ["2026-01-15", "500.00", "Monthly donation", "Income", "Individual Donations", "General Operating",
     "Jane Smith", "", "", "donation"],
    ["2026-01-16", "-150.00", "Office supplies", "Expense", "Office Supplies", "General Operating",
     "", "", "Office Depot", "supplies"],
]
DONOR_TEMPLATE = [
    ["Name", "Type", "Email", "Phone", "Address", "Notes", "Anonymous"],
    ["Jane Smith", "Individual", "jane@example.com", "555-1234", "123 Main St", "Monthly donor", "false"],
    ["ABC Corporation", "Corporate", "contact@abc.example", "555-5678", "456 Business Ave", "Annual sponsor", "false"],
]

logger = logging.getLogger("nonprofit_manager.csv_io")


def parse_amount(raw: str) -> Tuple[Optional[Decimal], bool]:
    """Parse `raw` into `(amount, negative)`.

    Currency symbols and thousands separators are ignored; `(500.00)`
    and `-500.00` are negative, `+500.00` is positive. Returns
    `(None, False)` when nothing numeric is left.
    """
    text = (raw or "").strip()
    if not text:
        return None, False
    negative = False
    if text.startswith("(") and text.endswith(")"):
        text, negative = text[1:-1], True
    elif text.startswith("-"):
        negative = True
    elif text.startswith("+"):
        text = text[1:]
    for ch in CURRENCY_SYMBOLS + ",":
        text = text.replace(ch, "")
    try:
        amount = Decimal(text.strip())
    except InvalidOperation:
        return None, False
    if negative and amount > 0:
        amount = -amount
    return amount, negative


def parse_date(raw: str, fmt: Optional[str] = None) -> Optional[date]:
    text = (raw or "").strip()
    if not text:
        return None
    for candidate in ((fmt,) if fmt else ()) + DATE_FORMATS:
        try:
            return datetime.strptime(text, candidate).date()
        except ValueError:
            continue
    return None


def parse_type(raw: Optional[str]) -> Optional[models.TransactionType]:
    word = (raw or "").strip().lower()
    if word in INCOME_WORDS:
        return models.TransactionType.INCOME
    if word in EXPENSE_WORDS:
        return models.TransactionType.EXPENSE
    if word in TRANSFER_WORDS:
        return models.TransactionType.TRANSFER
    return None


def to_csv(header: Sequence[str], rows: Iterable[Sequence]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    return buf.getvalue()


def _cell(columns: List[str], index: Optional[int]) -> str:
    if index is None or index >= len(columns):
        return ""
    return columns[index].strip()


def _enum_text(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


class ImportService(_DomainService):
    def __init__(self, session: Session, user_name: str = "System", ip_address: Optional[str] = None):
        super().__init__(session, user_name, ip_address)
        self.categories = CategoryService(session, user_name, ip_address)
        self.funds = FundService(session, user_name, ip_address)
        self.donors = DonorService(session, user_name, ip_address)
        self.transactions = TransactionService(session, user_name, ip_address)
        self.grant_repo = repositories.GrantRepository(session)

    def import_transactions(self, text: str, mapping: schemas.ImportMapping, preview: bool = False) -> dict:
        """Import (or, with `preview`, only parse) transactions from CSV text."""
        result = schemas.ImportResult(success=True)
        new_categories, new_funds, new_donors = [], [], []
        rows = list(csv.reader(io.StringIO(text)))
        start = 1 if mapping.has_header else 0
        for row_number, columns in enumerate(rows[start:], start=start + 1):
            if not any(c.strip() for c in columns):
                continue
            result.total_rows += 1
            original = ",".join(columns)
            parsed, error = self._parse_row(columns, mapping)
            if error:
                column, message = error
                result.errors.append(schemas.ImportRowError(row=row_number, column=column, message=message,
                                                            original_data=original))
                result.skipped_rows += 1
                if preview:
                    result.preview.append({"row": row_number, "valid": False, "error": message})
                continue
            if preview:
                self._note_missing(parsed, new_categories, new_funds, new_donors)
                result.preview.append({
                    "row": row_number, "valid": True,
                    **{k: v for k, v in parsed.items() if k != "type"},
                    "type": parsed["type"].value,
                })
                continue
            try:
                payload = self._resolve(parsed, mapping.create_missing, new_categories, new_funds, new_donors)
                self.transactions.create(payload)
            except (ValueError, LookupError) as exc:
                self.session.rollback()
                result.errors.append(schemas.ImportRowError(row=row_number, column=None, message=str(exc),
                                                            original_data=original))
                result.skipped_rows += 1
                continue
            result.imported_rows += 1
        result.created_categories = new_categories
        result.created_funds = new_funds
        result.created_donors = new_donors
        result.success = not result.errors
        if not preview:
            self.audit.log(models.AuditAction.IMPORT, "Transaction", None,
                           f"Imported {result.imported_rows} of {result.total_rows} rows "
                           f"({result.skipped_rows} skipped)")
            logger.info("csv import by %s: %d imported, %d skipped", self.user_name,
                        result.imported_rows, result.skipped_rows)
        return result.model_dump(mode="json")

    def import_donors(self, text: str, has_header: bool = True) -> dict:
        """Import donors laid out like the donor template; existing names are skipped."""
        result = schemas.ImportResult(success=True)
        rows = list(csv.reader(io.StringIO(text)))
        start = 1 if has_header else 0
        for row_number, columns in enumerate(rows[start:], start=start + 1):
            if not any(c.strip() for c in columns):
                continue
            result.total_rows += 1
            name = _cell(columns, 0)
            try:
                if not name:
                    raise ValueError("Name is required")
                if self.donors.repo.get_by_name(name):
                    raise ValueError(f"Donor '{name}' already exists")
                type_text = _cell(columns, 1)
                donor_type = next((t for t in models.DonorType if t.value.lower() == type_text.lower()),
                                  models.DonorType.INDIVIDUAL)
                self.donors.create(schemas.DonorCreate(
                    name=name,
                    type=donor_type,
                    email=_cell(columns, 2) or None,
                    phone=_cell(columns, 3) or None,
                    address=_cell(columns, 4) or None,
                    notes=_cell(columns, 5) or None,
                    is_anonymous=_cell(columns, 6).lower() in ("true", "yes", "1"),
                ))
            except ValueError as exc:
                self.session.rollback()
                result.errors.append(schemas.ImportRowError(row=row_number, column="Name", message=str(exc),
                                                            original_data=",".join(columns)))
                result.skipped_rows += 1
                continue
            result.imported_rows += 1
            result.created_donors.append(name)
        result.success = not result.errors
        self.audit.log(models.AuditAction.IMPORT, "Donor", None, f"Imported {result.imported_rows} donors")
        return result.model_dump(mode="json")

    def _parse_row(self, columns: List[str], mapping: schemas.ImportMapping):
        """Return `(parsed, None)` or `(None, (column, message))`."""
        when = parse_date(_cell(columns, mapping.date_column), mapping.date_format)
        if when is None:
            return None, ("Date", "Invalid date format")
        amount, negative = parse_amount(_cell(columns, mapping.amount_column))
        if amount is None:
            return None, ("Amount", "Invalid amount format")
        txn_type = parse_type(_cell(columns, mapping.type_column))
        if txn_type is None:
            txn_type = models.TransactionType.EXPENSE if negative or amount < 0 else models.TransactionType.INCOME
        if txn_type == models.TransactionType.TRANSFER:
            return None, ("Type", "Transfers cannot be imported; record them as fund transfers")
        amount = abs(amount)
        if amount == 0:
            return None, ("Amount", "Amount must be greater than zero")
        return {
            "date": when.isoformat(),
            "amount": str(amount),
            "type": txn_type,
            "description": _cell(columns, mapping.description_column) or None,
            "category": _cell(columns, mapping.category_column) or None,
            "fund": _cell(columns, mapping.fund_column) or None,
            "donor": _cell(columns, mapping.donor_column) or None,
            "grant": _cell(columns, mapping.grant_column) or None,
            "payee": _cell(columns, mapping.payee_column) or None,
            "tags": _cell(columns, mapping.tags_column) or None,
        }, None

    def _category_type(self, txn_type: models.TransactionType) -> models.CategoryType:
        if txn_type == models.TransactionType.INCOME:
            return models.CategoryType.INCOME
        return models.CategoryType.EXPENSE

    def _note_missing(self, parsed: dict, categories: list, funds: list, donors: list) -> None:
        name = parsed["category"] or "Uncategorized"
        if not self.categories.repo.find_by_name(name, self._category_type(parsed["type"]), any_parent=True):
            if name not in categories:
                categories.append(name)
        if parsed["fund"] and not self.funds.repo.get_by_name(parsed["fund"]) and parsed["fund"] not in funds:
            funds.append(parsed["fund"])
        if parsed["donor"] and not self.donors.repo.get_by_name(parsed["donor"]) and parsed["donor"] not in donors:
            donors.append(parsed["donor"])

    def _resolve(self, parsed: dict, create_missing: bool, new_categories: list, new_funds: list,
                 new_donors: list) -> schemas.TransactionCreate:
        category_type = self._category_type(parsed["type"])
        category_name = parsed["category"] or "Uncategorized"
        category = self.categories.repo.find_by_name(category_name, category_type, any_parent=True)
        if category is None:
            if not create_missing:
                raise LookupError(f"Category '{category_name}' not found")
            category = self.categories.find_or_create(category_name, category_type)
            new_categories.append(category_name)

        fund_id = None
        if parsed["fund"]:
            fund = self.funds.repo.get_by_name(parsed["fund"])
            if fund is None:
                if not create_missing:
                    raise LookupError(f"Fund '{parsed['fund']}' not found")
                fund = self.funds.create(schemas.FundCreate(
                    name=parsed["fund"], description=f"Auto-created during import on {date.today().isoformat()}",
                ))
                new_funds.append(parsed["fund"])
            fund_id = fund.id

        donor_id = None
        if parsed["donor"]:
            donor = self.donors.repo.get_by_name(parsed["donor"])
            if donor is None:
                if not create_missing:
                    raise LookupError(f"Donor '{parsed['donor']}' not found")
                donor = self.donors.create(schemas.DonorCreate(name=parsed["donor"]))
                new_donors.append(parsed["donor"])
            donor_id = donor.id

        grant_id = None
        if parsed["grant"]:
            grant = None
            if parsed["grant"].isdigit():
                grant = self.grant_repo.get(int(parsed["grant"]))
            grant = grant or self.grant_repo.get_by_name(parsed["grant"])
            if grant is None:
                raise LookupError(f"Grant '{parsed['grant']}' not found")
            grant_id = grant.id

        return schemas.TransactionCreate(
            transaction_date=date.fromisoformat(parsed["date"]),
            amount=Decimal(parsed["amount"]),
            description=parsed["description"],
            type=parsed["type"],
            category_id=category.id,
            fund_id=fund_id,
            donor_id=donor_id,
            grant_id=grant_id,
            payee=parsed["payee"],
            tags=parsed["tags"],
        )


class ExportService(_DomainService):
    """Render listings as CSV; every export is recorded in the audit log."""

    def _audited(self, entity_type: str, header: Sequence[str], rows: list) -> str:
        self.audit.log(models.AuditAction.EXPORT, entity_type, None, f"Exported {len(rows)} rows")
        return to_csv(header, rows)

    def _names(self, model) -> dict:
        return {row.id: row.name for row in self.session.exec(select(model)).all()}

    def transactions(self, flt: schemas.TransactionFilter) -> str:
        rows, _ = repositories.TransactionRepository(self.session).search(
            start_date=flt.start_date, end_date=flt.end_date, category_id=flt.category_id,
            fund_id=flt.fund_id, donor_id=flt.donor_id, grant_id=flt.grant_id, type=flt.type,
            search_term=flt.search_term, tags=flt.tags,
        )
        categories = self._names(models.Category)
        funds = self._names(models.Fund)
        donors = self._names(models.Donor)
        grants = self._names(models.Grant)
        return self._audited(
            "Transaction",
            ["Date", "Amount", "Description", "Type", "Category", "Fund", "Donor", "Grant",
             "Payee", "Tags", "Reference", "Reconciled"],
            [[t.transaction_date.isoformat(), t.amount, t.description, _enum_text(t.type),
              categories.get(t.category_id), funds.get(t.fund_id), donors.get(t.donor_id),
              grants.get(t.grant_id), t.payee, t.tags, t.reference_number, t.is_reconciled]
             for t in rows],
        )

    def categories(self) -> str:
        rows = repositories.CategoryRepository(self.session).list(include_archived=True)
        names = {c.id: c.name for c in rows}
        rows = sorted(rows, key=lambda c: (_enum_text(c.type), c.sort_order, c.name))
        return self._audited(
            "Category",
            ["ID", "Name", "Type", "Parent", "Description", "Color", "BudgetLimit", "Archived"],
            [[c.id, c.name, _enum_text(c.type), names.get(c.parent_id), c.description, c.color,
              c.budget_limit, c.is_archived] for c in rows],
        )

    def donors(self) -> str:
        rows = repositories.DonorRepository(self.session).list(include_inactive=True)
        return self._audited(
            "Donor",
            ["ID", "Name", "Type", "Email", "Phone", "Address", "TotalContributions",
             "FirstContribution", "LastContribution", "Anonymous", "Active"],
            [[d.id, d.name, _enum_text(d.type), d.email, d.phone, d.address, d.total_contributions,
              d.first_contribution_date, d.last_contribution_date, d.is_anonymous, d.is_active] for d in rows],
        )

    def grants(self) -> str:
        rows = repositories.GrantRepository(self.session).list()
        return self._audited(
            "Grant",
            ["ID", "Name", "Grantor", "Amount", "AmountUsed", "Remaining", "StartDate", "EndDate",
             "Status", "GrantNumber", "Restrictions"],
            [[g.id, g.name, g.grantor_name, g.amount, g.amount_used, g.remaining_balance, g.start_date,
              g.end_date, _enum_text(g.status), g.grant_number, g.restrictions] for g in rows],
        )


def transaction_template() -> str:
    return to_csv(TRANSACTION_TEMPLATE[0], TRANSACTION_TEMPLATE[1:])


def donor_template() -> str:
    return to_csv(DONOR_TEMPLATE[0], DONOR_TEMPLATE[1:])
