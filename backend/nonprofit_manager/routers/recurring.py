"""Recurring transaction templates and the daily processing job."""

from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlmodel import Session

from .. import schemas
from ..auth import actor
from ..database import get_session
from ..recurring import RecurringScheduler, RecurringTransactionService

router = APIRouter(prefix="/recurring", tags=["recurring"])


@router.get("", response_model=List[schemas.RecurringRead])
def list_templates(include_inactive: bool = True, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    rows = RecurringTransactionService(db, *who).list(include_inactive)
    return [schemas.RecurringRead.model_validate(t) for t in rows]


@router.get("/upcoming")
def upcoming_templates(days: int = Query(30, ge=1, le=366), db: Session = Depends(get_session),
                       who: tuple = Depends(actor)):
    return RecurringTransactionService(db, *who).upcoming(days)


@router.post("/process", response_model=schemas.ProcessingResult)
def process_due_templates(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    """Run template processing now instead of waiting for the nightly job."""
    return RecurringTransactionService(db, *who).process_due()


@router.get("/scheduler")
def scheduler_status(request: Request, who: tuple = Depends(actor)):
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "enabled": scheduler is not None,
        "running": bool(scheduler and scheduler.running),
        "last_run_at": scheduler.last_run_at if scheduler else None,
        "last_result": scheduler.last_result if scheduler else None,
        "seconds_until_next_run": RecurringScheduler.seconds_until_next_run(),
    }


@router.get("/{template_id}", response_model=schemas.RecurringRead)
def get_template(template_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.RecurringRead.model_validate(RecurringTransactionService(db, *who).get(template_id))


@router.post("", response_model=schemas.RecurringRead, status_code=201)
def create_template(payload: schemas.RecurringCreate, db: Session = Depends(get_session),
                    who: tuple = Depends(actor)):
    return schemas.RecurringRead.model_validate(RecurringTransactionService(db, *who).create(payload))


@router.put("/{template_id}", response_model=schemas.RecurringRead)
def update_template(template_id: int, payload: schemas.RecurringUpdate, db: Session = Depends(get_session),
                    who: tuple = Depends(actor)):
    return schemas.RecurringRead.model_validate(RecurringTransactionService(db, *who).update(template_id, payload))


@router.delete("/{template_id}", status_code=204)
def delete_template(template_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    RecurringTransactionService(db, *who).delete(template_id)


@router.post("/{template_id}/skip", response_model=schemas.RecurringRead)
def skip_next_occurrence(template_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.RecurringRead.model_validate(RecurringTransactionService(db, *who).skip_next(template_id))
