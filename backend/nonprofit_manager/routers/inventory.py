"""Inventory endpoints: categories, storage locations, items and stock movements."""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from sqlmodel import Session

from .. import models, schemas
from ..auth import actor
from ..database import get_session
from ..inventory import (InventoryCategoryService, InventoryItemService, InventoryTransactionService,
                         LocationService)
from .hierarchy import add_hierarchy_routes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["inventory"])

add_hierarchy_routes(router, "/categories", InventoryCategoryService,
                     schemas.InventoryCategoryIn, schemas.InventoryCategoryRead)
add_hierarchy_routes(router, "/locations", LocationService, schemas.LocationIn, schemas.LocationRead)


def _items(rows) -> List[schemas.InventoryItemRead]:
    return [schemas.InventoryItemRead.model_validate(i) for i in rows]


def _movements(rows) -> List[schemas.InventoryTransactionRead]:
    return [schemas.InventoryTransactionRead.model_validate(t) for t in rows]


@router.get("/categories/{category_id}/items", response_model=List[schemas.InventoryItemRead])
def items_in_category(category_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return _items(InventoryCategoryService(db, *who).items_in(category_id))


@router.get("/locations/{location_id}/items", response_model=List[schemas.InventoryItemRead])
def items_at_location(location_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return _items(LocationService(db, *who).items_at(location_id))


# -- items


@router.get("/items", response_model=schemas.Page[schemas.InventoryItemRead])
def list_items(category_id: Optional[int] = None, location_id: Optional[int] = None,
               status: Optional[models.InventoryStatus] = None, low_stock_only: bool = False,
               search: Optional[str] = None, sort_by: str = "name", descending: bool = False,
               page: int = 1, page_size: int = 50,
               db: Session = Depends(get_session), who: tuple = Depends(actor)):
    result = InventoryItemService(db, *who).list(category_id, location_id, status, low_stock_only, search,
                                                 sort_by, descending, page, page_size)
    return schemas.to_page(result, schemas.InventoryItemRead)


@router.get("/items/search", response_model=List[schemas.InventoryItemRead])
def search_items(term: str, limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_session),
                 who: tuple = Depends(actor)):
    return _items(InventoryItemService(db, *who).search(term, limit))


@router.get("/items/low-stock", response_model=List[schemas.InventoryItemRead])
def low_stock_items(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return _items(InventoryItemService(db, *who).low_stock())


@router.get("/items/out-of-stock", response_model=List[schemas.InventoryItemRead])
def out_of_stock_items(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return _items(InventoryItemService(db, *who).out_of_stock())


@router.get("/items/expiring", response_model=List[schemas.InventoryItemRead])
def expiring_items(days: int = Query(30, ge=1, le=365), db: Session = Depends(get_session),
                   who: tuple = Depends(actor)):
    return _items(InventoryItemService(db, *who).expiring(days))


@router.get("/items/total-value")
def inventory_total_value(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return {"total_value": float(InventoryItemService(db, *who).total_value())}


@router.get("/items/by-category")
def stock_by_category(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return jsonable_encoder(InventoryItemService(db, *who).stock_by_category())


@router.get("/items/by-location")
def stock_by_location(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return jsonable_encoder(InventoryItemService(db, *who).stock_by_location())


@router.get("/items/{item_id}", response_model=schemas.InventoryItemRead)
def get_item(item_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.InventoryItemRead.model_validate(InventoryItemService(db, *who).get(item_id))


@router.post("/items", response_model=schemas.InventoryItemRead, status_code=201)
def create_item(payload: schemas.InventoryItemCreate, db: Session = Depends(get_session),
                who: tuple = Depends(actor)):
    return schemas.InventoryItemRead.model_validate(InventoryItemService(db, *who).create(payload))


@router.put("/items/{item_id}", response_model=schemas.InventoryItemRead)
def update_item(item_id: int, payload: schemas.InventoryItemUpdate, db: Session = Depends(get_session),
                who: tuple = Depends(actor)):
    return schemas.InventoryItemRead.model_validate(InventoryItemService(db, *who).update(item_id, payload))


@router.delete("/items/{item_id}", status_code=204)
def delete_item(item_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    InventoryItemService(db, *who).delete(item_id)


@router.post("/items/{item_id}/adjust", response_model=schemas.InventoryItemRead)
def adjust_stock(item_id: int, payload: schemas.StockAdjustIn, db: Session = Depends(get_session),
                 who: tuple = Depends(actor)):
    """Add (positive change) or remove (negative change) stock."""
    item = InventoryItemService(db, *who).adjust_stock(item_id, payload.change, payload.reason)
    return schemas.InventoryItemRead.model_validate(item)


@router.post("/items/{item_id}/stock-level", response_model=schemas.InventoryItemRead)
def set_stock_level(item_id: int, payload: schemas.StockLevelIn, db: Session = Depends(get_session),
                    who: tuple = Depends(actor)):
    item = InventoryItemService(db, *who).set_stock_level(item_id, payload.new_quantity, payload.reason)
    return schemas.InventoryItemRead.model_validate(item)


@router.post("/items/{item_id}/transfer", response_model=schemas.InventoryItemRead)
def transfer_stock(item_id: int, payload: schemas.StockTransferIn, db: Session = Depends(get_session),
                   who: tuple = Depends(actor)):
    item = InventoryItemService(db, *who).transfer_stock(item_id, payload.from_location_id,
                                                         payload.to_location_id, payload.reason)
    return schemas.InventoryItemRead.model_validate(item)


@router.get("/items/{item_id}/transactions", response_model=List[schemas.InventoryTransactionRead])
def item_movements(item_id: int, limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_session),
                   who: tuple = Depends(actor)):
    return _movements(InventoryTransactionService(db, *who).by_item(item_id, limit))


# -- stock movements


@router.get("/transactions", response_model=schemas.Page[schemas.InventoryTransactionRead])
def list_movements(start: Optional[date] = None, end: Optional[date] = None, item_id: Optional[int] = None,
                   location_id: Optional[int] = None, type: Optional[models.InventoryTransactionType] = None,
                   page: int = 1, page_size: int = 50,
                   db: Session = Depends(get_session), who: tuple = Depends(actor)):
    result = InventoryTransactionService(db, *who).list(start, end, item_id, location_id, type, page, page_size)
    return schemas.to_page(result, schemas.InventoryTransactionRead)


@router.get("/transactions/recent", response_model=List[schemas.InventoryTransactionRead])
def recent_movements(limit: int = Query(25, ge=1, le=500), db: Session = Depends(get_session),
                     who: tuple = Depends(actor)):
    return _movements(InventoryTransactionService(db, *who).recent(limit))


@router.get("/transactions/usage")
def usage_report(start: date, end: date, item_id: Optional[int] = None, db: Session = Depends(get_session),
                 who: tuple = Depends(actor)):
    return jsonable_encoder(InventoryTransactionService(db, *who).usage_report(start, end, item_id))


@router.get("/locations/{location_id}/transactions", response_model=List[schemas.InventoryTransactionRead])
def location_movements(location_id: int, limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_session),
                       who: tuple = Depends(actor)):
    return _movements(InventoryTransactionService(db, *who).by_location(location_id, limit))


@router.get("/transactions/{txn_id}", response_model=schemas.InventoryTransactionRead)
def get_movement(txn_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.InventoryTransactionRead.model_validate(InventoryTransactionService(db, *who).get(txn_id))


@router.post("/transactions", response_model=schemas.InventoryTransactionRead, status_code=201)
def record_movement(payload: schemas.InventoryTransactionCreate, db: Session = Depends(get_session),
                    who: tuple = Depends(actor)):
    """Record a movement in the ledger; item quantities are left as they are."""
    txn = InventoryTransactionService(db, *who).create(payload)
    return schemas.InventoryTransactionRead.model_validate(txn)
