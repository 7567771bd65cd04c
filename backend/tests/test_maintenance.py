from datetime import date, timedelta
from decimal import Decimal

import pytest

from nonprofit_manager import models, schemas
from nonprofit_manager.errors import InvalidOperationError
from nonprofit_manager.maintenance import (BuildingService, ContractorService, ProjectService,
                                           ServiceRequestService, WorkOrderService)

WS = models.WorkOrderStatus


def test_work_order_numbers_and_assignment(session):
    svc = WorkOrderService(session, "dave")
    first = svc.create(schemas.WorkOrderIn(title="Fix door"))
    second = svc.create(schemas.WorkOrderIn(title="Paint hall", assigned_to="Sam"))
    year = date.today().year
    assert first.work_order_number == f"WO-{year}-0001"
    assert second.work_order_number == f"WO-{year}-0002"
    assert first.status == WS.CREATED
    assert second.status == WS.ASSIGNED
    assert first.created_by == "dave"


def test_work_order_lifecycle_stamps_times(session):
    svc = WorkOrderService(session, "dave")
    wo = svc.create(schemas.WorkOrderIn(title="Replace filter", assigned_to="Sam"))
    wo = svc.change_status(wo.id, WS.IN_PROGRESS)
    assert wo.started_at is not None
    wo = svc.change_status(wo.id, WS.COMPLETED, "filter swapped")
    assert wo.completed_at is not None
    assert wo.completion_notes == "filter swapped"
    wo = svc.change_status(wo.id, WS.VERIFIED)
    assert wo.verified_by == "dave"
    wo = svc.change_status(wo.id, WS.CLOSED)

    with pytest.raises(InvalidOperationError):
        svc.change_status(wo.id, WS.IN_PROGRESS)
    with pytest.raises(InvalidOperationError):
        svc.update(wo.id, schemas.WorkOrderIn(title="Too late"))


def test_invalid_transition_is_rejected(session):
    svc = WorkOrderService(session)
    wo = svc.create(schemas.WorkOrderIn(title="Inspect boiler"))
    with pytest.raises(InvalidOperationError, match="Created to Verified"):
        svc.change_status(wo.id, WS.VERIFIED)


def test_service_request_review_and_conversion(session):
    building = BuildingService(session).create(schemas.BuildingIn(name="Main hall"))
    requests = ServiceRequestService(session, "erin")
    sr = requests.submit(schemas.ServiceRequestIn(title="Leaking sink", building_id=building.id,
                                                  priority=models.Priority.HIGH))
    assert sr.request_number.startswith(f"SR-{date.today().year}-")
    assert sr.submitted_by == "erin"
    assert sr.is_urgent

    with pytest.raises(InvalidOperationError, match="approved"):
        requests.convert_to_work_order(sr.id, schemas.ConvertIn())

    requests.review(sr.id, approve=True, notes="ok")
    wo = requests.convert_to_work_order(sr.id, schemas.ConvertIn(assigned_to="Sam"))
    sr = requests.get(sr.id)
    assert sr.status == models.ServiceRequestStatus.ASSIGNED
    assert sr.work_order_id == wo.id
    assert wo.title == "Leaking sink"
    assert wo.building_id == building.id
    assert wo.status == WS.ASSIGNED

    sr = requests.complete(sr.id, "washer replaced")
    assert sr.status == models.ServiceRequestStatus.COMPLETED
    with pytest.raises(InvalidOperationError):
        requests.cancel(sr.id)


def test_project_completion_and_overdue(session):
    svc = ProjectService(session)
    late = svc.create(schemas.ProjectIn(name="Gutters", due_date=date.today() - timedelta(days=2)))
    svc.create(schemas.ProjectIn(name="Boiler", due_date=date.today() + timedelta(days=30)))
    assert [p.name for p in svc.overdue()] == ["Gutters"]

    done = svc.complete(late.id)
    assert done.status == models.ProjectStatus.COMPLETED
    assert done.completion_percentage == 100
    assert done.actual_end_date == date.today()
    assert svc.overdue() == []


def test_project_rejects_unknown_references_and_bad_dates(session):
    svc = ProjectService(session)
    with pytest.raises(InvalidOperationError):
        svc.create(schemas.ProjectIn(name="Ghost", building_id=9999))
    with pytest.raises(InvalidOperationError):
        svc.create(schemas.ProjectIn(name="Backwards", planned_start_date=date(2025, 5, 1),
                                     planned_end_date=date(2025, 4, 1)))


def test_project_budget_helpers(session):
    project = ProjectService(session).create(schemas.ProjectIn(
        name="Roof", budget_amount=Decimal("1000"), cost_estimate=Decimal("900"), actual_cost=Decimal("1100"),
    ))
    assert project.is_over_budget
    assert project.cost_variance == Decimal("200")


def test_building_hierarchy(session):
    buildings = BuildingService(session)
    campus = buildings.create(schemas.BuildingIn(name="Campus", type=models.LocationType.FACILITY))
    annex = buildings.create(schemas.BuildingIn(name="Annex", parent_building_id=campus.id))
    assert [b.name for b in buildings.children(campus.id)] == ["Annex"]
    with pytest.raises(InvalidOperationError):
        buildings.move(campus.id, annex.id)
    with pytest.raises(InvalidOperationError):
        buildings.delete(campus.id)
    buildings.delete(annex.id)
    assert buildings.can_delete(campus.id)


def test_contractor_search_and_preferred_filter(session):
    contractors = ContractorService(session)
    contractors.create(schemas.ContractorIn(name="Ace Plumbing", services="plumbing", is_preferred=True))
    contractors.create(schemas.ContractorIn(name="Bright Electric", services="wiring"))
    assert [c.name for c in contractors.list(search="plumb")] == ["Ace Plumbing"]
    assert [c.name for c in contractors.list(preferred_only=True)] == ["Ace Plumbing"]
