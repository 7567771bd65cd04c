"""Fund endpoints."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import schemas
from ..auth import actor
from ..database import get_session
from ..services import FundService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/funds", tags=["funds"])


@router.get("", response_model=List[schemas.FundRead])
def list_funds(include_inactive: bool = False, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return [schemas.FundRead.model_validate(f) for f in FundService(db, *who).list(include_inactive)]


@router.get("/summary", response_model=schemas.FundSummary)
def fund_summary(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return FundService(db, *who).summary()


@router.post("/recalculate")
def recalculate_balances(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    """Recompute every fund balance from its transactions."""
    return {"recalculated": FundService(db, *who).recalculate_all()}


@router.get("/{fund_id}", response_model=schemas.FundRead)
def get_fund(fund_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.FundRead.model_validate(FundService(db, *who).get(fund_id))


@router.post("", response_model=schemas.FundRead, status_code=201)
def create_fund(payload: schemas.FundCreate, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.FundRead.model_validate(FundService(db, *who).create(payload))


@router.put("/{fund_id}", response_model=schemas.FundRead)
def update_fund(fund_id: int, payload: schemas.FundUpdate, db: Session = Depends(get_session),
                who: tuple = Depends(actor)):
    return schemas.FundRead.model_validate(FundService(db, *who).update(fund_id, payload))


@router.delete("/{fund_id}", status_code=204)
def delete_fund(fund_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    FundService(db, *who).delete(fund_id)
