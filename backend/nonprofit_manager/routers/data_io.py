"""CSV import, export and template downloads."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from sqlmodel import Session

from .. import schemas
from ..auth import actor
from ..config import settings
from ..csv_io import ExportService, ImportService, donor_template, transaction_template
from ..database import get_session

router = APIRouter(tags=["import-export"])

CSV_CONTENT_TYPES = ("text/csv", "text/plain", "application/csv", "application/vnd.ms-excel",
                     "application/octet-stream")


def _read_upload(file: UploadFile) -> str:
    if not file.filename:
        raise HTTPException(status_code=400, detail="no file")
    if file.content_type and file.content_type not in CSV_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="unsupported content type")
    content = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="file too large")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="file is not UTF-8 text")


def _csv_response(text: str, name: str) -> Response:
    filename = f"{name}_{date.today():%Y%m%d}.csv"
    return Response(content=text, media_type="text/csv",
                    headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@router.post("/import/transactions")
def import_transactions(file: UploadFile = File(...), mapping: Optional[str] = Form(None),
                        preview: bool = Form(False), db: Session = Depends(get_session),
                        who: tuple = Depends(actor)):
    """Import transactions from a CSV upload.

    `mapping` is an optional JSON object of zero-based column indexes
    (see `ImportMapping`). With `preview` set, rows are parsed and
    validated but nothing is written.
    """
    text = _read_upload(file)
    column_map = schemas.ImportMapping.model_validate_json(mapping) if mapping else schemas.ImportMapping()
    return ImportService(db, *who).import_transactions(text, column_map, preview=preview)


@router.post("/import/donors")
def import_donors(file: UploadFile = File(...), has_header: bool = Form(True), db: Session = Depends(get_session),
                  who: tuple = Depends(actor)):
    return ImportService(db, *who).import_donors(_read_upload(file), has_header)


@router.get("/import/templates/transactions")
def transaction_import_template(who: tuple = Depends(actor)):
    return _csv_response(transaction_template(), "transaction_import_template")


@router.get("/import/templates/donors")
def donor_import_template(who: tuple = Depends(actor)):
    return _csv_response(donor_template(), "donor_import_template")


@router.get("/export/transactions")
def export_transactions(flt: schemas.TransactionFilter = Depends(), db: Session = Depends(get_session),
                        who: tuple = Depends(actor)):
    return _csv_response(ExportService(db, *who).transactions(flt), "transactions")


@router.get("/export/categories")
def export_categories(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return _csv_response(ExportService(db, *who).categories(), "categories")


@router.get("/export/donors")
def export_donors(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return _csv_response(ExportService(db, *who).donors(), "donors")


@router.get("/export/grants")
def export_grants(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return _csv_response(ExportService(db, *who).grants(), "grants")
