"""Categorization rule endpoints and category suggestions."""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from .. import schemas
from ..auth import actor
from ..categorization import CategorizationService
from ..database import get_session

router = APIRouter(prefix="/categorization", tags=["categorization"])


@router.get("/rules", response_model=List[schemas.RuleRead])
def list_rules(include_inactive: bool = True, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return [schemas.RuleRead.model_validate(r) for r in CategorizationService(db, *who).list(include_inactive)]


@router.get("/rules/{rule_id}", response_model=schemas.RuleRead)
def get_rule(rule_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.RuleRead.model_validate(CategorizationService(db, *who).get(rule_id))


@router.post("/rules", response_model=schemas.RuleRead, status_code=201)
def create_rule(payload: schemas.RuleIn, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.RuleRead.model_validate(CategorizationService(db, *who).create(payload))


@router.put("/rules/{rule_id}", response_model=schemas.RuleRead)
def update_rule(rule_id: int, payload: schemas.RuleUpdate, db: Session = Depends(get_session),
                who: tuple = Depends(actor)):
    return schemas.RuleRead.model_validate(CategorizationService(db, *who).update(rule_id, payload))


@router.delete("/rules/{rule_id}", status_code=204)
def delete_rule(rule_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    CategorizationService(db, *who).delete(rule_id)


@router.post("/rules/learn")
def learn_rules(minimum_occurrences: int = Query(3, ge=1, le=100), db: Session = Depends(get_session),
                who: tuple = Depends(actor)):
    return {"created": CategorizationService(db, *who).learn_from_history(minimum_occurrences)}


@router.get("/suggest", response_model=schemas.CategorySuggestion)
def suggest_category(payee: Optional[str] = None, description: Optional[str] = None,
                     amount: Optional[Decimal] = None, db: Session = Depends(get_session),
                     who: tuple = Depends(actor)):
    return CategorizationService(db, *who).suggest(payee, description, amount)
