"""Building maintenance endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, schemas
from ..auth import actor
from ..database import get_session
from ..maintenance import (BuildingService, ContractorService, ProjectService, ServiceRequestService,
                           WorkOrderService)
from .hierarchy import add_hierarchy_routes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/maintenance", tags=["maintenance"])

add_hierarchy_routes(router, "/buildings", BuildingService, schemas.BuildingIn, schemas.BuildingRead)


# -- contractors


@router.get("/contractors", response_model=List[schemas.ContractorRead])
def list_contractors(include_inactive: bool = False, preferred_only: bool = False, search: Optional[str] = None,
                     db: Session = Depends(get_session), who: tuple = Depends(actor)):
    rows = ContractorService(db, *who).list(include_inactive, preferred_only, search)
    return [schemas.ContractorRead.model_validate(c) for c in rows]


@router.get("/contractors/{contractor_id}", response_model=schemas.ContractorRead)
def get_contractor(contractor_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.ContractorRead.model_validate(ContractorService(db, *who).get(contractor_id))


@router.post("/contractors", response_model=schemas.ContractorRead, status_code=201)
def create_contractor(payload: schemas.ContractorIn, db: Session = Depends(get_session),
                      who: tuple = Depends(actor)):
    return schemas.ContractorRead.model_validate(ContractorService(db, *who).create(payload))


@router.put("/contractors/{contractor_id}", response_model=schemas.ContractorRead)
def update_contractor(contractor_id: int, payload: schemas.ContractorIn, db: Session = Depends(get_session),
                      who: tuple = Depends(actor)):
    return schemas.ContractorRead.model_validate(ContractorService(db, *who).update(contractor_id, payload))


@router.delete("/contractors/{contractor_id}", status_code=204)
def delete_contractor(contractor_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    ContractorService(db, *who).delete(contractor_id)


# -- projects


@router.get("/projects", response_model=schemas.Page[schemas.ProjectRead])
def list_projects(status: Optional[models.ProjectStatus] = None, priority: Optional[models.Priority] = None,
                  building_id: Optional[int] = None, page: int = 1, page_size: int = 50,
                  db: Session = Depends(get_session), who: tuple = Depends(actor)):
    result = ProjectService(db, *who).list(status, priority, building_id, page, page_size)
    return schemas.to_page(result, schemas.ProjectRead)


@router.get("/projects/overdue", response_model=List[schemas.ProjectRead])
def overdue_projects(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return [schemas.ProjectRead.model_validate(p) for p in ProjectService(db, *who).overdue()]


@router.get("/projects/{project_id}", response_model=schemas.ProjectRead)
def get_project(project_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.ProjectRead.model_validate(ProjectService(db, *who).get(project_id))


@router.get("/projects/{project_id}/work-orders", response_model=List[schemas.WorkOrderRead])
def project_work_orders(project_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return [schemas.WorkOrderRead.model_validate(w) for w in ProjectService(db, *who).work_orders(project_id)]


@router.post("/projects", response_model=schemas.ProjectRead, status_code=201)
def create_project(payload: schemas.ProjectIn, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.ProjectRead.model_validate(ProjectService(db, *who).create(payload))


@router.put("/projects/{project_id}", response_model=schemas.ProjectRead)
def update_project(project_id: int, payload: schemas.ProjectIn, db: Session = Depends(get_session),
                   who: tuple = Depends(actor)):
    return schemas.ProjectRead.model_validate(ProjectService(db, *who).update(project_id, payload))


@router.post("/projects/{project_id}/complete", response_model=schemas.ProjectRead)
def complete_project(project_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.ProjectRead.model_validate(ProjectService(db, *who).complete(project_id))


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(project_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    ProjectService(db, *who).delete(project_id)


# -- work orders


@router.get("/work-orders", response_model=schemas.Page[schemas.WorkOrderRead])
def list_work_orders(status: Optional[models.WorkOrderStatus] = None, priority: Optional[models.Priority] = None,
                     building_id: Optional[int] = None, project_id: Optional[int] = None,
                     assigned_to: Optional[str] = None, page: int = 1, page_size: int = 50,
                     db: Session = Depends(get_session), who: tuple = Depends(actor)):
    result = WorkOrderService(db, *who).list(status, priority, building_id, project_id, assigned_to,
                                             page, page_size)
    return schemas.to_page(result, schemas.WorkOrderRead)


@router.get("/work-orders/next-number")
def next_work_order_number(db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return {"work_order_number": WorkOrderService(db, *who).next_number()}


@router.get("/work-orders/{work_order_id}", response_model=schemas.WorkOrderRead)
def get_work_order(work_order_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.WorkOrderRead.model_validate(WorkOrderService(db, *who).get(work_order_id))


@router.post("/work-orders", response_model=schemas.WorkOrderRead, status_code=201)
def create_work_order(payload: schemas.WorkOrderIn, db: Session = Depends(get_session),
                      who: tuple = Depends(actor)):
    return schemas.WorkOrderRead.model_validate(WorkOrderService(db, *who).create(payload))


@router.put("/work-orders/{work_order_id}", response_model=schemas.WorkOrderRead)
def update_work_order(work_order_id: int, payload: schemas.WorkOrderIn, db: Session = Depends(get_session),
                      who: tuple = Depends(actor)):
    return schemas.WorkOrderRead.model_validate(WorkOrderService(db, *who).update(work_order_id, payload))


@router.post("/work-orders/{work_order_id}/status", response_model=schemas.WorkOrderRead)
def change_work_order_status(work_order_id: int, payload: schemas.WorkOrderStatusIn,
                             db: Session = Depends(get_session), who: tuple = Depends(actor)):
    work_order = WorkOrderService(db, *who).change_status(work_order_id, payload.status, payload.notes)
    return schemas.WorkOrderRead.model_validate(work_order)


# -- service requests


@router.get("/service-requests", response_model=schemas.Page[schemas.ServiceRequestRead])
def list_service_requests(status: Optional[models.ServiceRequestStatus] = None,
                          priority: Optional[models.Priority] = None, building_id: Optional[int] = None,
                          open_only: bool = False, page: int = 1, page_size: int = 50,
                          db: Session = Depends(get_session), who: tuple = Depends(actor)):
    result = ServiceRequestService(db, *who).list(status, priority, building_id, open_only, page, page_size)
    return schemas.to_page(result, schemas.ServiceRequestRead)


@router.get("/service-requests/{request_id}", response_model=schemas.ServiceRequestRead)
def get_service_request(request_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.ServiceRequestRead.model_validate(ServiceRequestService(db, *who).get(request_id))


@router.post("/service-requests", response_model=schemas.ServiceRequestRead, status_code=201)
def submit_service_request(payload: schemas.ServiceRequestIn, db: Session = Depends(get_session),
                           who: tuple = Depends(actor)):
    return schemas.ServiceRequestRead.model_validate(ServiceRequestService(db, *who).submit(payload))


@router.post("/service-requests/{request_id}/review", response_model=schemas.ServiceRequestRead)
def review_service_request(request_id: int, payload: schemas.ReviewIn, db: Session = Depends(get_session),
                           who: tuple = Depends(actor)):
    request = ServiceRequestService(db, *who).review(request_id, payload.approve, payload.notes)
    return schemas.ServiceRequestRead.model_validate(request)


@router.post("/service-requests/{request_id}/convert", response_model=schemas.WorkOrderRead, status_code=201)
def convert_service_request(request_id: int, payload: schemas.ConvertIn, db: Session = Depends(get_session),
                            who: tuple = Depends(actor)):
    """Turn an approved request into a work order."""
    work_order = ServiceRequestService(db, *who).convert_to_work_order(request_id, payload)
    logger.info("service request %s converted to work order %s", request_id, work_order.work_order_number)
    return schemas.WorkOrderRead.model_validate(work_order)


@router.post("/service-requests/{request_id}/complete", response_model=schemas.ServiceRequestRead)
def complete_service_request(request_id: int, payload: schemas.ResolutionIn, db: Session = Depends(get_session),
                             who: tuple = Depends(actor)):
    request = ServiceRequestService(db, *who).complete(request_id, payload.resolution)
    return schemas.ServiceRequestRead.model_validate(request)


@router.post("/service-requests/{request_id}/cancel", response_model=schemas.ServiceRequestRead)
def cancel_service_request(request_id: int, db: Session = Depends(get_session), who: tuple = Depends(actor)):
    return schemas.ServiceRequestRead.model_validate(ServiceRequestService(db, *who).cancel(request_id))
