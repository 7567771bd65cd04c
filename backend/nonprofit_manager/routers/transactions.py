"""Transaction endpoints, including soft delete and restore."""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from .. import schemas
from ..auth import actor
from ..database import get_session
from ..services import TransactionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])


def _read(rows) -> List[schemas.TransactionRead]:
    return [schemas.TransactionRead.model_validate(t) for t in rows]


@router.get("", response_model=schemas.Page[schemas.TransactionRead])
def list_transactions(flt: schemas.TransactionFilter = Depends(), db: Session = Depends(get_session),
                      who: tuple = Depends(actor)):
    return schemas.to_page(TransactionService(db, *who).list(flt), schemas.TransactionRead)


@router.get("/recent", response_model=List[schemas.TransactionRead])
def recent_transactions(limit: int = 10, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return _read(TransactionService(db, *who).recent(limit))


@router.get("/deleted", response_model=List[schemas.TransactionRead])
def deleted_transactions(max_count: int = 50, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return _read(TransactionService(db, *who).recently_deleted(max_count))


@router.get("/payees", response_model=List[schemas.PayeeSuggestion])
def payee_suggestions(prefix: str = "", limit: int = Query(10, ge=1, le=50),
                      db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return TransactionService(db, *who).payee_suggestions(prefix, limit)


@router.get("/tags", response_model=List[str])
def distinct_tags(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return TransactionService(db, *who).distinct_tags()


@router.get("/duplicates", response_model=List[schemas.TransactionRead])
def check_duplicates(on: date, amount: Decimal, payee: Optional[str] = None,
                     db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return _read(TransactionService(db, *who).check_duplicates(on, amount, payee))


@router.get("/po-numbers/next")
def next_po_number(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return {"po_number": TransactionService(db, *who).next_po_number()}


@router.get("/po-numbers/exists")
def po_number_exists(po_number: str, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return {"po_number": po_number, "exists": TransactionService(db, *who).po_number_exists(po_number)}


@router.post("/process-recurring")
def process_recurring(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    """Materialise recurring transactions that are due today or earlier."""
    return {"created": TransactionService(db, *who).process_recurring()}


@router.get("/{transaction_id}", response_model=schemas.TransactionRead)
def get_transaction(transaction_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.TransactionRead.model_validate(TransactionService(db, *who).get(transaction_id))


@router.post("", response_model=schemas.TransactionRead, status_code=201)
def create_transaction(payload: schemas.TransactionCreate, db: Session = Depends(get_session),
                       who: tuple = Depends(actor)):
    t = TransactionService(db, *who).create(payload)
    logger.info("transaction %s created by %s", t.id, who[0])
    return schemas.TransactionRead.model_validate(t)


@router.put("/{transaction_id}", response_model=schemas.TransactionRead)
def update_transaction(transaction_id: int, payload: schemas.TransactionUpdate,
                       db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.TransactionRead.model_validate(TransactionService(db, *who).update(transaction_id, payload))


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    TransactionService(db, *who).delete(transaction_id)


@router.post("/{transaction_id}/restore", response_model=schemas.TransactionRead)
def restore_transaction(transaction_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.TransactionRead.model_validate(TransactionService(db, *who).restore(transaction_id))


@router.delete("/{transaction_id}/permanent", status_code=204)
def permanently_delete_transaction(transaction_id: int, db: Session = Depends(get_session),
                                   who: tuple = Depends(actor)):
    TransactionService(db, *who).permanent_delete(transaction_id)
