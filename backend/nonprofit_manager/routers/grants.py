"""Grant endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from .. import models, schemas
from ..auth import actor
from ..database import get_session
from ..services import GrantService

router = APIRouter(prefix="/grants", tags=["grants"])


def _read(rows) -> List[schemas.GrantRead]:
    return [schemas.GrantRead.model_validate(g) for g in rows]


@router.get("", response_model=List[schemas.GrantRead])
def list_grants(status: Optional[models.GrantStatus] = None, db: Session = Depends(get_session),
                who: tuple = Depends(actor)):
    return _read(GrantService(db, *who).list(status))


@router.get("/expiring", response_model=List[schemas.GrantRead])
def expiring_grants(days: int = Query(30, ge=1, le=365), db: Session = Depends(get_session),
                    who: tuple = Depends(actor)):
    return _read(GrantService(db, *who).expiring(days))


@router.get("/reports-due", response_model=List[schemas.GrantRead])
def grant_reports_due(days: int = Query(14, ge=1, le=365), db: Session = Depends(get_session),
                      who: tuple = Depends(actor)):
    return _read(GrantService(db, *who).upcoming_reports(days))


@router.get("/{grant_id}", response_model=schemas.GrantRead)
def get_grant(grant_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.GrantRead.model_validate(GrantService(db, *who).get(grant_id))


@router.get("/{grant_id}/usage", response_model=List[schemas.TransactionRead])
def grant_usage(grant_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return [schemas.TransactionRead.model_validate(t) for t in GrantService(db, *who).usage_history(grant_id)]


@router.post("", response_model=schemas.GrantRead, status_code=201)
def create_grant(payload: schemas.GrantCreate, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.GrantRead.model_validate(GrantService(db, *who).create(payload))


@router.put("/{grant_id}", response_model=schemas.GrantRead)
def update_grant(grant_id: int, payload: schemas.GrantUpdate, db: Session = Depends(get_session),
                 who: tuple = Depends(actor)):
    return schemas.GrantRead.model_validate(GrantService(db, *who).update(grant_id, payload))


@router.delete("/{grant_id}", status_code=204)
def delete_grant(grant_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    GrantService(db, *who).delete(grant_id)
