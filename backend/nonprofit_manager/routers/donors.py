"""Donor endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import schemas
from ..auth import actor
from ..database import get_session
from ..services import DonorService

router = APIRouter(prefix="/donors", tags=["donors"])


@router.get("", response_model=List[schemas.DonorRead])
def list_donors(include_inactive: bool = False, search: Optional[str] = None,
                db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return [schemas.DonorRead.model_validate(d) for d in DonorService(db, *who).list(include_inactive, search)]


@router.get("/{donor_id}", response_model=schemas.DonorRead)
def get_donor(donor_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.DonorRead.model_validate(DonorService(db, *who).get(donor_id))


@router.get("/{donor_id}/contributions", response_model=List[schemas.TransactionRead])
def donor_contributions(donor_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    rows = DonorService(db, *who).contribution_history(donor_id)
    return [schemas.TransactionRead.model_validate(t) for t in rows]


@router.post("", response_model=schemas.DonorRead, status_code=201)
def create_donor(payload: schemas.DonorCreate, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.DonorRead.model_validate(DonorService(db, *who).create(payload))


@router.put("/{donor_id}", response_model=schemas.DonorRead)
def update_donor(donor_id: int, payload: schemas.DonorUpdate, db: Session = Depends(get_session),
                 who: tuple = Depends(actor)):
    return schemas.DonorRead.model_validate(DonorService(db, *who).update(donor_id, payload))


@router.delete("/{donor_id}", status_code=204)
def delete_donor(donor_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    DonorService(db, *who).delete(donor_id)
