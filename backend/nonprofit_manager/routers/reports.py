"""Financial report endpoints."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from sqlmodel import Session

from .. import models
from ..auth import actor
from ..database import get_session
from ..reports import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    """Month and year-to-date totals, fund balances and activity counts."""
    return jsonable_encoder(ReportService(db).dashboard())


@router.get("/income-expense")
def income_expense_summary(start: date, end: date, fund_id: Optional[int] = None, donor_id: Optional[int] = None,
                           grant_id: Optional[int] = None, category_id: Optional[int] = None,
                           include_subcategories: bool = True,
                           db: Session = Depends(get_session), who: tuple = Depends(actor)):
    report = ReportService(db).income_expense_summary(start, end, fund_id, donor_id, grant_id, category_id,
                                                      include_subcategories)
    return jsonable_encoder(report)


@router.get("/category-breakdown")
def category_breakdown(type: models.CategoryType, start: date, end: date, fund_id: Optional[int] = None,
                       donor_id: Optional[int] = None, grant_id: Optional[int] = None,
                       db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return jsonable_encoder(ReportService(db).category_breakdown(type, start, end, fund_id, donor_id, grant_id))


@router.get("/trends")
def trends(start: date, end: date, interval: str = "monthly", db: Session = Depends(get_session),
           who: tuple = Depends(actor)):
    return jsonable_encoder(ReportService(db).trends(start, end, interval))


@router.get("/audit-threshold")
def audit_threshold(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return jsonable_encoder(ReportService(db).audit_threshold_status())


@router.get("/budget-vs-actual")
def budget_vs_actual(year: Optional[int] = None, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return jsonable_encoder(ReportService(db).budget_vs_actual(year or date.today().year))
