"""Read-only access to the audit trail."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from .. import models, schemas
from ..auth import actor
from ..database import get_session
from ..services import AuditService

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=List[schemas.AuditLogRead])
def list_audit_entries(entity_type: Optional[str] = None, entity_id: Optional[int] = None,
                       action: Optional[models.AuditAction] = None, user_name: Optional[str] = None,
                       start: Optional[datetime] = None, end: Optional[datetime] = None,
                       max_results: int = Query(100, ge=1, le=1000),
                       db: Session = Depends(get_session), who: tuple = Depends(actor)):
    rows = AuditService(db, *who).list(entity_type=entity_type, entity_id=entity_id, action=action,
                                       user_name=user_name, start=start, end=end, max_results=max_results)
    return [schemas.AuditLogRead.model_validate(a) for a in rows]


@router.get("/{entity_type}/{entity_id}", response_model=List[schemas.AuditLogRead])
def entity_history(entity_type: str, entity_id: int, db: Session = Depends(get_session),
                   who: tuple = Depends(actor)):
    return [schemas.AuditLogRead.model_validate(a) for a in AuditService(db, *who).entity_history(entity_type, entity_id)]
