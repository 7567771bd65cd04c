"""Income/expense category endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, schemas
from ..auth import actor
from ..database import get_session
from ..services import CategoryService

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=List[schemas.CategoryRead])
def list_categories(type: Optional[models.CategoryType] = None, include_archived: bool = False,
                    db: Session = Depends(get_session), who: tuple = Depends(actor)):
    rows = CategoryService(db, *who).list(type, include_archived)
    return [schemas.CategoryRead.model_validate(c) for c in rows]


@router.get("/tree")
def category_tree(type: models.CategoryType, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    """Nested categories of one type; each node carries a `children` list."""
    return CategoryService(db, *who).tree(type)


@router.get("/{category_id}", response_model=schemas.CategoryRead)
def get_category(category_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.CategoryRead.model_validate(CategoryService(db, *who).get(category_id))


@router.post("", response_model=schemas.CategoryRead, status_code=201)
def create_category(payload: schemas.CategoryCreate, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.CategoryRead.model_validate(CategoryService(db, *who).create(payload))


@router.put("/{category_id}", response_model=schemas.CategoryRead)
def update_category(category_id: int, payload: schemas.CategoryUpdate, db: Session = Depends(get_session),
                    who: tuple = Depends(actor)):
    return schemas.CategoryRead.model_validate(CategoryService(db, *who).update(category_id, payload))


@router.delete("/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    CategoryService(db, *who).delete(category_id)


@router.post("/{category_id}/archive", response_model=schemas.CategoryRead)
def archive_category(category_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.CategoryRead.model_validate(CategoryService(db, *who).archive(category_id))


@router.post("/{category_id}/restore", response_model=schemas.CategoryRead)
def restore_category(category_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.CategoryRead.model_validate(CategoryService(db, *who).restore(category_id))
