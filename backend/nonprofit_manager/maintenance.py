"""Building maintenance services.

Buildings form a tree like inventory locations. Projects group work
orders; service requests come in from staff, get reviewed and are turned
into work orders. Work order and service request numbers are per-year
sequences (`WO-2026-0001`, `SR-2026-0001`).
"""

from datetime import date
from typing import Dict, List, Optional, Set

from sqlalchemy import func
from sqlmodel import Session, select

from . import models, schemas
from .errors import InvalidOperationError, NotFoundError
from .services import HierarchyService, _DomainService, snapshot, utcnow
from .utils.paging import clamp_paging, paged

WS = models.WorkOrderStatus
SRS = models.ServiceRequestStatus

# allowed next states for each work order state
WORK_ORDER_TRANSITIONS: Dict[models.WorkOrderStatus, Set[models.WorkOrderStatus]] = {
    WS.CREATED: {WS.ASSIGNED, WS.IN_PROGRESS, WS.CLOSED},
    WS.ASSIGNED: {WS.IN_PROGRESS, WS.PAUSED, WS.CLOSED},
    WS.IN_PROGRESS: {WS.PAUSED, WS.COMPLETED},
    WS.PAUSED: {WS.IN_PROGRESS, WS.CLOSED},
    WS.COMPLETED: {WS.VERIFIED, WS.IN_PROGRESS},
    WS.VERIFIED: {WS.CLOSED},
    WS.CLOSED: set(),
}

OPEN_REQUEST_STATES = (SRS.SUBMITTED, SRS.UNDER_REVIEW, SRS.APPROVED, SRS.ASSIGNED, SRS.IN_PROGRESS)


def next_number(session: Session, column, prefix: str) -> str:
    """Next value in a `{prefix}NNNN` sequence stored in `column`."""
    highest = 0
    for value in session.exec(select(column).where(column.startswith(prefix))).all():
        suffix = value[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:04d}"


def _page(session: Session, stmt, order_by, page: int, page_size: int) -> dict:
    page, page_size = clamp_paging(page, page_size)
    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    rows = session.exec(stmt.order_by(*order_by).offset((page - 1) * page_size).limit(page_size)).all()
    return paged(rows, total, page, page_size)


class BuildingService(HierarchyService):
    model = models.Building
    entity_name = "Building"
    parent_attr = "parent_building_id"


class ContractorService(_DomainService):
    def list(self, include_inactive: bool = False, preferred_only: bool = False,
             search: Optional[str] = None) -> List[models.Contractor]:
        stmt = select(models.Contractor)
        if not include_inactive:
            stmt = stmt.where(models.Contractor.is_active == True)  # noqa: E712
        if preferred_only:
            stmt = stmt.where(models.Contractor.is_preferred == True)  # noqa: E712
        if search:
            like = f"%{search.lower()}%"
            stmt = stmt.where(
                func.lower(models.Contractor.name).like(like)
                | func.lower(func.coalesce(models.Contractor.services, "")).like(like)
            )
        return self.session.exec(stmt.order_by(models.Contractor.name)).all()

    def get(self, contractor_id: int) -> models.Contractor:
        contractor = self.session.get(models.Contractor, contractor_id)
        if not contractor:
            raise NotFoundError("Contractor", contractor_id)
        return contractor

    def create(self, data: schemas.ContractorIn) -> models.Contractor:
        contractor = models.Contractor(**data.model_dump())
        self.session.add(contractor)
        self.session.commit()
        self.session.refresh(contractor)
        self.audit.log(models.AuditAction.CREATE, "Contractor", contractor.id,
                       f"Created contractor {contractor.name}", new_values=snapshot(contractor))
        return contractor

    def update(self, contractor_id: int, data: schemas.ContractorIn) -> models.Contractor:
        contractor = self.get(contractor_id)
        old = snapshot(contractor)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(contractor, key, value)
        contractor.updated_at = utcnow()
        self.session.add(contractor)
        self.session.commit()
        self.session.refresh(contractor)
        self.audit.log(models.AuditAction.UPDATE, "Contractor", contractor.id,
                       f"Updated contractor {contractor.name}", old_values=old, new_values=snapshot(contractor))
        return contractor

    def delete(self, contractor_id: int) -> None:
        contractor = self.get(contractor_id)
        contractor.is_active = False
        contractor.updated_at = utcnow()
        self.session.add(contractor)
        self.session.commit()
        self.audit.log(models.AuditAction.DELETE, "Contractor", contractor_id,
                       f"Deactivated contractor {contractor.name}")


class _MaintenanceService(_DomainService):
    """Reference checks shared by projects, work orders and requests."""

    def _check_refs(self, values: dict) -> None:
        refs = (
            ("building_id", models.Building, "Building"),
            ("contractor_id", models.Contractor, "Contractor"),
            ("project_id", models.Project, "Project"),
            ("fund_id", models.Fund, "Fund"),
            ("grant_id", models.Grant, "Grant"),
        )
        for key, model, name in refs:
            ref_id = values.get(key)
            if ref_id is not None and self.session.get(model, ref_id) is None:
                raise InvalidOperationError(f"{name} {ref_id} does not exist")


class ProjectService(_MaintenanceService):
    def list(self, status: Optional[models.ProjectStatus] = None, priority: Optional[models.Priority] = None,
             building_id: Optional[int] = None, page: int = 1, page_size: int = 50) -> dict:
        stmt = select(models.Project).where(models.Project.is_active == True)  # noqa: E712
        if status is not None:
            stmt = stmt.where(models.Project.status == status)
        if priority is not None:
            stmt = stmt.where(models.Project.priority == priority)
        if building_id is not None:
            stmt = stmt.where(models.Project.building_id == building_id)
        return _page(self.session, stmt, (models.Project.created_at.desc(), models.Project.id.desc()),
                     page, page_size)

    def get(self, project_id: int) -> models.Project:
        project = self.session.get(models.Project, project_id)
        if not project or not project.is_active:
            raise NotFoundError("Project", project_id)
        return project

    def create(self, data: schemas.ProjectIn) -> models.Project:
        values = data.model_dump()
        self._check_refs(values)
        self._check_dates(data.planned_start_date, data.planned_end_date)
        project = models.Project(**values)
        self.session.add(project)
        self.session.commit()
        self.session.refresh(project)
        self.audit.log(models.AuditAction.CREATE, "Project", project.id,
                       f"Created project {project.name}", new_values=snapshot(project))
        return project

    def update(self, project_id: int, data: schemas.ProjectIn) -> models.Project:
        project = self.get(project_id)
        old = snapshot(project)
        changes = data.model_dump(exclude_unset=True)
        self._check_refs(changes)
        for key, value in changes.items():
            setattr(project, key, value)
        self._check_dates(project.planned_start_date, project.planned_end_date)
        if project.status == models.ProjectStatus.IN_PROGRESS and project.actual_start_date is None:
            project.actual_start_date = date.today()
        project.updated_at = utcnow()
        self.session.add(project)
        self.session.commit()
        self.session.refresh(project)
        self.audit.log(models.AuditAction.UPDATE, "Project", project.id,
                       f"Updated project {project.name}", old_values=old, new_values=snapshot(project))
        return project

    def complete(self, project_id: int, today: Optional[date] = None) -> models.Project:
        project = self.get(project_id)
        if project.status == models.ProjectStatus.CANCELLED:
            raise InvalidOperationError("A cancelled project cannot be completed")
        project.status = models.ProjectStatus.COMPLETED
        project.actual_end_date = today or date.today()
        project.completion_percentage = 100
        project.updated_at = utcnow()
        self.session.add(project)
        self.session.commit()
        self.session.refresh(project)
        self.audit.log(models.AuditAction.UPDATE, "Project", project.id, f"Completed project {project.name}")
        return project

    def delete(self, project_id: int) -> None:
        project = self.get(project_id)
        project.is_active = False
        project.updated_at = utcnow()
        self.session.add(project)
        self.session.commit()
        self.audit.log(models.AuditAction.DELETE, "Project", project_id, f"Deactivated project {project.name}")

    def overdue(self) -> List[models.Project]:
        stmt = select(models.Project).where(
            models.Project.is_active == True,  # noqa: E712
            models.Project.due_date < date.today(),
            models.Project.status.not_in([models.ProjectStatus.COMPLETED, models.ProjectStatus.CANCELLED]),
        ).order_by(models.Project.due_date)
        return self.session.exec(stmt).all()

    def work_orders(self, project_id: int) -> List[models.WorkOrder]:
        self.get(project_id)
        stmt = select(models.WorkOrder).where(models.WorkOrder.project_id == project_id).order_by(models.WorkOrder.id)
        return self.session.exec(stmt).all()

    @staticmethod
    def _check_dates(start: Optional[date], end: Optional[date]) -> None:
        if start and end and end < start:
            raise InvalidOperationError("Planned end date must be on or after the planned start date")


class WorkOrderService(_MaintenanceService):
    def list(self, status: Optional[models.WorkOrderStatus] = None, priority: Optional[models.Priority] = None,
             building_id: Optional[int] = None, project_id: Optional[int] = None,
             assigned_to: Optional[str] = None, page: int = 1, page_size: int = 50) -> dict:
        stmt = select(models.WorkOrder)
        if status is not None:
            stmt = stmt.where(models.WorkOrder.status == status)
        if priority is not None:
            stmt = stmt.where(models.WorkOrder.priority == priority)
        if building_id is not None:
            stmt = stmt.where(models.WorkOrder.building_id == building_id)
        if project_id is not None:
            stmt = stmt.where(models.WorkOrder.project_id == project_id)
        if assigned_to:
            stmt = stmt.where(models.WorkOrder.assigned_to == assigned_to)
        return _page(self.session, stmt, (models.WorkOrder.created_at.desc(), models.WorkOrder.id.desc()),
                     page, page_size)

    def get(self, work_order_id: int) -> models.WorkOrder:
        work_order = self.session.get(models.WorkOrder, work_order_id)
        if not work_order:
            raise NotFoundError("WorkOrder", work_order_id)
        return work_order

    def next_number(self, today: Optional[date] = None) -> str:
        year = (today or date.today()).year
        return next_number(self.session, models.WorkOrder.work_order_number, f"WO-{year}-")

    def create(self, data: schemas.WorkOrderIn) -> models.WorkOrder:
        values = data.model_dump()
        self._check_refs(values)
        work_order = models.WorkOrder(**values, work_order_number=self.next_number(), created_by=self.user_name)
        if work_order.assigned_to or work_order.contractor_id:
            work_order.status = WS.ASSIGNED
        self.session.add(work_order)
        self.session.commit()
        self.session.refresh(work_order)
        self.audit.log(models.AuditAction.CREATE, "WorkOrder", work_order.id,
                       f"Created work order {work_order.work_order_number}", new_values=snapshot(work_order))
        return work_order

    def update(self, work_order_id: int, data: schemas.WorkOrderIn) -> models.WorkOrder:
        work_order = self.get(work_order_id)
        if work_order.status == WS.CLOSED:
            raise InvalidOperationError("Closed work orders cannot be edited")
        old = snapshot(work_order)
        changes = data.model_dump(exclude_unset=True)
        self._check_refs(changes)
        for key, value in changes.items():
            setattr(work_order, key, value)
        work_order.updated_at = utcnow()
        self.session.add(work_order)
        self.session.commit()
        self.session.refresh(work_order)
        self.audit.log(models.AuditAction.UPDATE, "WorkOrder", work_order.id,
                       f"Updated work order {work_order.work_order_number}",
                       old_values=old, new_values=snapshot(work_order))
        return work_order

    def change_status(self, work_order_id: int, status: models.WorkOrderStatus,
                      notes: Optional[str] = None) -> models.WorkOrder:
        work_order = self.get(work_order_id)
        current = work_order.status
        if status not in WORK_ORDER_TRANSITIONS[current]:
            raise InvalidOperationError(f"Cannot move work order from {current.value} to {status.value}")
        now = utcnow()
        if status == WS.IN_PROGRESS and work_order.started_at is None:
            work_order.started_at = now
        elif status == WS.COMPLETED:
            work_order.completed_at = now
            if notes:
                work_order.completion_notes = notes
        elif status == WS.VERIFIED:
            work_order.verified_at = now
            work_order.verified_by = self.user_name
        work_order.status = status
        work_order.updated_at = now
        self.session.add(work_order)
        self.session.commit()
        self.session.refresh(work_order)
        self.audit.log(models.AuditAction.UPDATE, "WorkOrder", work_order.id,
                       f"Work order {work_order.work_order_number}: {current.value} -> {status.value}")
        return work_order


class ServiceRequestService(_MaintenanceService):
    def list(self, status: Optional[models.ServiceRequestStatus] = None,
             priority: Optional[models.Priority] = None, building_id: Optional[int] = None,
             open_only: bool = False, page: int = 1, page_size: int = 50) -> dict:
        stmt = select(models.ServiceRequest)
        if status is not None:
            stmt = stmt.where(models.ServiceRequest.status == status)
        if open_only:
            stmt = stmt.where(models.ServiceRequest.status.in_(OPEN_REQUEST_STATES))
        if priority is not None:
            stmt = stmt.where(models.ServiceRequest.priority == priority)
        if building_id is not None:
            stmt = stmt.where(models.ServiceRequest.building_id == building_id)
        return _page(self.session, stmt,
                     (models.ServiceRequest.submitted_at.desc(), models.ServiceRequest.id.desc()), page, page_size)

    def get(self, request_id: int) -> models.ServiceRequest:
        request = self.session.get(models.ServiceRequest, request_id)
        if not request:
            raise NotFoundError("ServiceRequest", request_id)
        return request

    def submit(self, data: schemas.ServiceRequestIn, today: Optional[date] = None) -> models.ServiceRequest:
        values = data.model_dump()
        self._check_refs(values)
        values["submitted_by"] = values.get("submitted_by") or self.user_name
        year = (today or date.today()).year
        request = models.ServiceRequest(
            **values,
            request_number=next_number(self.session, models.ServiceRequest.request_number, f"SR-{year}-"),
        )
        self.session.add(request)
        self.session.commit()
        self.session.refresh(request)
        self.audit.log(models.AuditAction.CREATE, "ServiceRequest", request.id,
                       f"Submitted service request {request.request_number}", new_values=snapshot(request))
        return request

    def review(self, request_id: int, approve: bool, notes: Optional[str] = None) -> models.ServiceRequest:
        request = self.get(request_id)
        if request.status not in (SRS.SUBMITTED, SRS.UNDER_REVIEW):
            raise InvalidOperationError(f"Request {request.request_number} has already been reviewed")
        request.status = SRS.APPROVED if approve else SRS.REJECTED
        request.reviewed_by = self.user_name
        request.reviewed_at = utcnow()
        request.review_notes = notes
        return self._save(request, "Approved" if approve else "Rejected")

    def convert_to_work_order(self, request_id: int, data: schemas.ConvertIn) -> models.WorkOrder:
        """Create a work order from an approved request and link the two."""
        request = self.get(request_id)
        if request.status != SRS.APPROVED:
            raise InvalidOperationError("Only approved requests can be converted to work orders")
        work_order = WorkOrderService(self.session, self.user_name).create(schemas.WorkOrderIn(
            title=request.title,
            description=request.description,
            priority=request.priority,
            building_id=request.building_id,
            area=request.area,
            due_date=request.requested_completion_date,
            **data.model_dump(),
        ))
        request.status = SRS.ASSIGNED
        request.work_order_id = work_order.id
        request.project_id = data.project_id
        request.assigned_to = data.assigned_to
        request.assigned_at = utcnow()
        self._save(request, f"Converted to work order {work_order.work_order_number}")
        return work_order

    def complete(self, request_id: int, resolution: str) -> models.ServiceRequest:
        request = self.get(request_id)
        if request.status not in OPEN_REQUEST_STATES:
            raise InvalidOperationError(f"Request {request.request_number} is already {request.status.value}")
        request.status = SRS.COMPLETED
        request.completed_at = utcnow()
        request.resolution = resolution
        return self._save(request, "Completed")

    def cancel(self, request_id: int) -> models.ServiceRequest:
        request = self.get(request_id)
        if request.status not in OPEN_REQUEST_STATES:
            raise InvalidOperationError(f"Request {request.request_number} is already {request.status.value}")
        request.status = SRS.CANCELLED
        return self._save(request, "Cancelled")

    def _save(self, request: models.ServiceRequest, what: str) -> models.ServiceRequest:
        self.session.add(request)
        self.session.commit()
        self.session.refresh(request)
        self.audit.log(models.AuditAction.UPDATE, "ServiceRequest", request.id,
                       f"{what}: service request {request.request_number}")
        return request
