from datetime import date
from decimal import Decimal

from sqlmodel import select

from nonprofit_manager import models, schemas
from nonprofit_manager.csv_io import (ExportService, ImportService, parse_amount, parse_date, parse_type,
                                      transaction_template)

CSV = """Date,Amount,Description,Type,Category,Fund,Donor
2024-01-15,"$1,250.00",Gala ticket,,Ticket Sales,General Operating,Pat Lee
01/20/2024,(40.00),Paper,,Office Supplies,,
2024-02-30,10,Bad date,,,,
2024-02-01,5,Moved,transfer,,,
"""

MAPPING = schemas.ImportMapping(date_column=0, amount_column=1, description_column=2, type_column=3,
                                category_column=4, fund_column=5, donor_column=6)


def test_parse_helpers():
    assert parse_amount("$1,250.00") == (Decimal("1250.00"), False)
    assert parse_amount("(40.00)") == (Decimal("-40.00"), True)
    assert parse_amount("abc") == (None, False)
    assert parse_date("03/04/2024") == date(2024, 3, 4)
    assert parse_date("2024-13-01") is None
    assert parse_type("Deposit") == models.TransactionType.INCOME
    assert parse_type("xfer") == models.TransactionType.TRANSFER
    assert parse_type("") is None


def test_import_reports_row_errors_and_creates_missing_donor(session):
    result = ImportService(session, "frank").import_transactions(CSV, MAPPING)

    assert result["total_rows"] == 4
    assert result["imported_rows"] == 2
    assert result["skipped_rows"] == 2
    assert result["success"] is False
    assert {e["column"] for e in result["errors"]} == {"Date", "Type"}
    assert result["created_donors"] == ["Pat Lee"]

    rows = session.exec(select(models.Transaction).order_by(models.Transaction.transaction_date)).all()
    assert [(r.type, r.amount) for r in rows] == [
        (models.TransactionType.INCOME, Decimal("1250.00")),
        (models.TransactionType.EXPENSE, Decimal("40.00")),
    ]
    actions = [a.action for a in session.exec(select(models.AuditLog)).all()]
    assert models.AuditAction.IMPORT in actions


def test_preview_writes_nothing(session):
    result = ImportService(session).import_transactions(CSV, MAPPING, preview=True)
    assert [p["valid"] for p in result["preview"]] == [True, True, False, False]
    assert result["created_donors"] == ["Pat Lee"]
    assert session.exec(select(models.Transaction)).first() is None


def test_unknown_category_without_create_missing_fails_row(session):
    text = "Date,Amount,Description,Type,Category\n2024-01-01,5,x,income,Nope\n"
    mapping = MAPPING.model_copy(update={"create_missing": False, "fund_column": None, "donor_column": None})
    result = ImportService(session).import_transactions(text, mapping)
    assert result["imported_rows"] == 0
    assert "Nope" in result["errors"][0]["message"]


def test_import_donors_skips_existing_names(session):
    text = "Name,Type,Email\nAcme Corp,Corporate,a@acme.example\nAcme Corp,Corporate,\n"
    result = ImportService(session).import_donors(text)
    assert result["imported_rows"] == 1
    assert result["errors"][0]["message"] == "Donor 'Acme Corp' already exists"
    donor = session.exec(select(models.Donor)).one()
    assert donor.type == models.DonorType.CORPORATE


def test_export_round_trips_template_columns(session):
    text = transaction_template()
    assert text.splitlines()[0].startswith("Date,Amount,Description,Type")
    ImportService(session).import_transactions(text, MAPPING.model_copy(update={
        "payee_column": 8, "tags_column": 9, "grant_column": None,
    }))
    exported = ExportService(session).transactions(schemas.TransactionFilter())
    lines = exported.splitlines()
    assert lines[0].split(",")[:4] == ["Date", "Amount", "Description", "Type"]
    assert len(lines) == 3
    assert any("Office Depot" in line for line in lines)


def test_exports_are_audited_with_row_counts(session):
    service = ExportService(session, "auditor", "10.0.0.5")
    service.donors()
    service.grants()
    text = service.categories()
    entries = session.exec(
        select(models.AuditLog).where(models.AuditLog.action == models.AuditAction.EXPORT)
    ).all()
    assert {e.entity_type for e in entries} == {"Donor", "Grant", "Category"}
    assert all(e.user_name == "auditor" and e.ip_address == "10.0.0.5" for e in entries)
    category_entry = next(e for e in entries if e.entity_type == "Category")
    assert category_entry.description == f"Exported {len(text.splitlines()) - 1} rows"
