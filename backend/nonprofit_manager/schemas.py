"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. `*Create`/`*Update` models describe
request bodies; `*Read` models are built from ORM rows (including
derived properties such as `remaining_balance`) with
`Model.model_validate(row)`.

Money is held as `Decimal` and rendered as a JSON number.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from .models import (
    AuditAction, CategoryType, DonorType, FundType, GrantStatus, InventoryStatus,
    InventoryTransactionType, ItemCondition, LocationType, MaintenanceFrequency,
    Priority, ProjectStatus, ProjectType, RecurrencePattern, RuleMatchType,
    ServiceRequestStatus, ServiceRequestType, TransactionType, UnitOfMeasure, WorkOrderStatus,
)

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
T = TypeVar("T")


class ReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class Page(BaseModel, Generic[T]):
    """One page of a paginated listing."""
    items: List[T]
    total_count: int
    page: int
    page_size: int
    total_pages: int


def to_page(result: dict, schema) -> dict:
    """Convert the ORM rows of a paged service result into `schema`."""
    return {**result, "items": [schema.model_validate(row) for row in result["items"]]}


# ---------------------------------------------------------------- auth


class RegisterIn(BaseModel):
    """Payload for user registration/login endpoints."""
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str
    token_type: str = "bearer"


# ---------------------------------------------------------------- funds


class FundCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    type: FundType = FundType.UNRESTRICTED
    starting_balance: Decimal = Decimal("0")
    description: Optional[str] = Field(default=None, max_length=500)
    target_balance: Optional[Decimal] = None
    restriction_expiry_date: Optional[date] = None
    is_active: bool = True


class FundUpdate(BaseModel):
    """Partial fund update. `row_version` is the version the client read."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[FundType] = None
    starting_balance: Optional[Decimal] = None
    description: Optional[str] = Field(default=None, max_length=500)
    target_balance: Optional[Decimal] = None
    restriction_expiry_date: Optional[date] = None
    is_active: Optional[bool] = None
    row_version: Optional[int] = None


class FundRead(ReadModel):
    id: int
    name: str
    type: FundType
    starting_balance: Money
    balance: Money
    description: Optional[str] = None
    target_balance: Optional[Money] = None
    restriction_expiry_date: Optional[date] = None
    is_active: bool
    row_version: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class FundSummary(BaseModel):
    total_balance: Money
    restricted_balance: Money
    unrestricted_balance: Money
    restricted_percentage: float
    fund_count: int


# ---------------------------------------------------------------- categories


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)
    type: CategoryType
    budget_limit: Optional[Decimal] = Field(default=None, ge=0, le=10_000_000)
    sort_order: int = 0
    parent_id: Optional[int] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)
    budget_limit: Optional[Decimal] = Field(default=None, ge=0, le=10_000_000)
    sort_order: Optional[int] = None
    parent_id: Optional[int] = None


class CategoryRead(ReadModel):
    id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    type: CategoryType
    budget_limit: Optional[Money] = None
    is_archived: bool
    sort_order: int
    parent_id: Optional[int] = None


# ---------------------------------------------------------------- donors


class DonorCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    type: DonorType = DonorType.INDIVIDUAL
    email: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=2000)
    is_anonymous: bool = False
    is_active: bool = True


class DonorUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[DonorType] = None
    email: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=2000)
    is_anonymous: Optional[bool] = None
    is_active: Optional[bool] = None


class DonorRead(ReadModel):
    id: int
    name: str
    type: DonorType
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    total_contributions: Money
    first_contribution_date: Optional[date] = None
    last_contribution_date: Optional[date] = None
    is_anonymous: bool
    is_active: bool


# ---------------------------------------------------------------- grants


class GrantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    grantor_name: str = Field(min_length=1, max_length=200)
    amount: Decimal = Field(ge=0)
    start_date: date
    end_date: Optional[date] = None
    application_date: Optional[date] = None
    status: GrantStatus = GrantStatus.PENDING
    restrictions: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)
    grant_number: Optional[str] = Field(default=None, max_length=100)
    contact_person: Optional[str] = Field(default=None, max_length=200)
    contact_email: Optional[str] = Field(default=None, max_length=200)
    reporting_requirements: Optional[str] = Field(default=None, max_length=2000)
    next_report_due_date: Optional[date] = None


class GrantUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    grantor_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    application_date: Optional[date] = None
    status: Optional[GrantStatus] = None
    restrictions: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)
    grant_number: Optional[str] = Field(default=None, max_length=100)
    contact_person: Optional[str] = Field(default=None, max_length=200)
    contact_email: Optional[str] = Field(default=None, max_length=200)
    reporting_requirements: Optional[str] = Field(default=None, max_length=2000)
    next_report_due_date: Optional[date] = None
    row_version: Optional[int] = None


class GrantRead(ReadModel):
    id: int
    name: str
    grantor_name: str
    amount: Money
    amount_used: Money
    remaining_balance: Money
    start_date: date
    end_date: Optional[date] = None
    application_date: Optional[date] = None
    status: GrantStatus
    restrictions: Optional[str] = None
    notes: Optional[str] = None
    grant_number: Optional[str] = None
    contact_person: Optional[str] = None
    contact_email: Optional[str] = None
    reporting_requirements: Optional[str] = None
    next_report_due_date: Optional[date] = None
    row_version: int


# ---------------------------------------------------------------- transactions


class SplitIn(BaseModel):
    category_id: int
    amount: Decimal = Field(gt=0)
    description: Optional[str] = Field(default=None, max_length=500)


class SplitRead(ReadModel):
    id: int
    category_id: int
    amount: Money
    description: Optional[str] = None


class TransactionCreate(BaseModel):
    """Request body for a new transaction.

    `category_id` is required for income and expenses; transfers use
    `fund_id` (source) and `to_fund_id` (destination) instead.
    """
    transaction_date: date
    amount: Decimal = Field(ge=Decimal("0.01"), le=Decimal("100000000"))
    description: Optional[str] = Field(default=None, max_length=500)
    type: TransactionType
    category_id: Optional[int] = None
    fund_type: FundType = FundType.UNRESTRICTED
    fund_id: Optional[int] = None
    to_fund_id: Optional[int] = None
    donor_id: Optional[int] = None
    grant_id: Optional[int] = None
    project_id: Optional[int] = None
    payee: Optional[str] = Field(default=None, max_length=200)
    tags: Optional[str] = Field(default=None, max_length=500)
    reference_number: Optional[str] = Field(default=None, max_length=50)
    po_number: Optional[str] = Field(default=None, max_length=50)
    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None
    is_reconciled: bool = False
    external_id: Optional[str] = Field(default=None, max_length=100)
    splits: List[SplitIn] = Field(default_factory=list)


class TransactionUpdate(BaseModel):
    """Partial transaction update; `splits`, when sent, replace all splits."""
    transaction_date: Optional[date] = None
    amount: Optional[Decimal] = Field(default=None, ge=Decimal("0.01"), le=Decimal("100000000"))
    description: Optional[str] = Field(default=None, max_length=500)
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    fund_type: Optional[FundType] = None
    fund_id: Optional[int] = None
    donor_id: Optional[int] = None
    grant_id: Optional[int] = None
    project_id: Optional[int] = None
    payee: Optional[str] = Field(default=None, max_length=200)
    tags: Optional[str] = Field(default=None, max_length=500)
    reference_number: Optional[str] = Field(default=None, max_length=50)
    po_number: Optional[str] = Field(default=None, max_length=50)
    is_recurring: Optional[bool] = None
    recurrence_pattern: Optional[RecurrencePattern] = None
    is_reconciled: Optional[bool] = None
    splits: Optional[List[SplitIn]] = None
    row_version: Optional[int] = None


class TransactionRead(ReadModel):
    id: int
    transaction_date: date
    amount: Money
    description: Optional[str] = None
    type: TransactionType
    category_id: int
    fund_type: FundType
    fund_id: Optional[int] = None
    to_fund_id: Optional[int] = None
    transfer_pair_id: Optional[str] = None
    donor_id: Optional[int] = None
    grant_id: Optional[int] = None
    project_id: Optional[int] = None
    payee: Optional[str] = None
    tags: Optional[str] = None
    reference_number: Optional[str] = None
    po_number: Optional[str] = None
    is_recurring: bool
    recurrence_pattern: Optional[RecurrencePattern] = None
    next_recurrence_date: Optional[date] = None
    is_reconciled: bool
    external_id: Optional[str] = None
    row_version: int
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    splits: List[SplitRead] = Field(default_factory=list)


class TransactionFilter(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_id: Optional[int] = None
    fund_id: Optional[int] = None
    donor_id: Optional[int] = None
    grant_id: Optional[int] = None
    type: Optional[TransactionType] = None
    search_term: Optional[str] = None
    tags: Optional[str] = None
    page: int = 1
    page_size: int = 50


class PayeeSuggestion(BaseModel):
    payee: str
    usage_count: int
    last_category_id: Optional[int] = None


# ---------------------------------------------------------------- recurring


class RecurringCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    amount: Decimal = Field(ge=Decimal("0.01"), le=Decimal("100000000"))
    type: TransactionType
    category_id: int
    pattern: RecurrencePattern = RecurrencePattern.MONTHLY
    interval: int = Field(default=1, ge=1, le=365)
    start_date: date
    end_date: Optional[date] = None
    fund_id: Optional[int] = None
    donor_id: Optional[int] = None
    grant_id: Optional[int] = None
    payee: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = True


class RecurringUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(default=None, ge=Decimal("0.01"), le=Decimal("100000000"))
    category_id: Optional[int] = None
    pattern: Optional[RecurrencePattern] = None
    interval: Optional[int] = Field(default=None, ge=1, le=365)
    end_date: Optional[date] = None
    next_occurrence: Optional[date] = None
    fund_id: Optional[int] = None
    donor_id: Optional[int] = None
    grant_id: Optional[int] = None
    payee: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None


class RecurringRead(ReadModel):
    id: int
    name: str
    amount: Money
    type: TransactionType
    category_id: int
    pattern: RecurrencePattern
    interval: int
    start_date: date
    end_date: Optional[date] = None
    next_occurrence: date
    last_processed: Optional[date] = None
    fund_id: Optional[int] = None
    donor_id: Optional[int] = None
    grant_id: Optional[int] = None
    payee: Optional[str] = None
    description: Optional[str] = None
    is_active: bool
    total_occurrences: int


class ProcessingResult(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    created_transaction_ids: List[int] = Field(default_factory=list)


# ---------------------------------------------------------------- categorization rules


class RuleIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    match_type: RuleMatchType = RuleMatchType.PAYEE
    match_pattern: str = Field(min_length=1, max_length=200)
    case_sensitive: bool = False
    category_id: int
    is_active: bool = True
    priority: int = Field(default=0, ge=0, le=1000)


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    match_type: Optional[RuleMatchType] = None
    match_pattern: Optional[str] = Field(default=None, min_length=1, max_length=200)
    case_sensitive: Optional[bool] = None
    category_id: Optional[int] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = Field(default=None, ge=0, le=1000)


class RuleRead(ReadModel):
    id: int
    name: str
    match_type: RuleMatchType
    match_pattern: str
    case_sensitive: bool
    category_id: int
    is_active: bool
    priority: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class CategorySuggestion(BaseModel):
    """Where a suggested category came from: a rule, or the payee's history."""
    category_id: Optional[int] = None
    rule_id: Optional[int] = None
    source: Optional[str] = None


# ---------------------------------------------------------------- audit


class AuditLogRead(ReadModel):
    id: int
    action: AuditAction
    entity_type: str
    entity_id: Optional[int] = None
    description: Optional[str] = None
    old_values: Optional[str] = None
    new_values: Optional[str] = None
    user_name: str
    ip_address: Optional[str] = None
    timestamp: datetime


# ---------------------------------------------------------------- inventory


class InventoryCategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    parent_id: Optional[int] = None
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)
    is_active: bool = True


class InventoryCategoryRead(ReadModel):
    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    is_active: bool


class LocationIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    parent_id: Optional[int] = None
    code: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=500)
    contact_person: Optional[str] = Field(default=None, max_length=100)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    is_active: bool = True


class LocationRead(ReadModel):
    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    code: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    is_active: bool


class MoveIn(BaseModel):
    new_parent_id: Optional[int] = None


class InventoryItemCreate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    sku: Optional[str] = Field(default=None, max_length=50)
    barcode: Optional[str] = Field(default=None, max_length=100)
    category_id: Optional[int] = None
    location_id: Optional[int] = None
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
    unit: UnitOfMeasure = UnitOfMeasure.EACH
    minimum_quantity: Optional[Decimal] = Field(default=None, ge=0)
    maximum_quantity: Optional[Decimal] = Field(default=None, ge=0)
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    condition: ItemCondition = ItemCondition.NEW
    manufacturer: Optional[str] = Field(default=None, max_length=200)
    model_number: Optional[str] = Field(default=None, max_length=100)
    serial_number: Optional[str] = Field(default=None, max_length=100)
    purchase_date: Optional[date] = None
    expiration_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class InventoryItemUpdate(BaseModel):
    """Partial item update. Quantity changes go through the stock endpoints."""
    model_config = ConfigDict(protected_namespaces=())

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    sku: Optional[str] = Field(default=None, max_length=50)
    barcode: Optional[str] = Field(default=None, max_length=100)
    category_id: Optional[int] = None
    location_id: Optional[int] = None
    unit: Optional[UnitOfMeasure] = None
    minimum_quantity: Optional[Decimal] = Field(default=None, ge=0)
    maximum_quantity: Optional[Decimal] = Field(default=None, ge=0)
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[InventoryStatus] = None
    condition: Optional[ItemCondition] = None
    manufacturer: Optional[str] = Field(default=None, max_length=200)
    model_number: Optional[str] = Field(default=None, max_length=100)
    serial_number: Optional[str] = Field(default=None, max_length=100)
    purchase_date: Optional[date] = None
    expiration_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class InventoryItemRead(ReadModel):
    id: int
    name: str
    description: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    category_id: Optional[int] = None
    location_id: Optional[int] = None
    quantity: Money
    unit: UnitOfMeasure
    minimum_quantity: Optional[Money] = None
    maximum_quantity: Optional[Money] = None
    unit_cost: Optional[Money] = None
    total_value: Money
    status: InventoryStatus
    condition: ItemCondition
    manufacturer: Optional[str] = None
    model_number: Optional[str] = None
    serial_number: Optional[str] = None
    purchase_date: Optional[date] = None
    expiration_date: Optional[date] = None
    notes: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


class StockAdjustIn(BaseModel):
    change: Decimal
    reason: Optional[str] = Field(default=None, max_length=500)


class StockLevelIn(BaseModel):
    new_quantity: Decimal = Field(ge=0)
    reason: Optional[str] = Field(default=None, max_length=500)


class StockTransferIn(BaseModel):
    from_location_id: int
    to_location_id: int
    reason: Optional[str] = Field(default=None, max_length=500)


class InventoryTransactionCreate(BaseModel):
    item_id: int
    type: InventoryTransactionType
    quantity: Decimal = Field(gt=0)
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    reference_number: Optional[str] = Field(default=None, max_length=100)
    reason: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)
    transaction_date: Optional[datetime] = None


class InventoryTransactionRead(ReadModel):
    id: int
    item_id: int
    type: InventoryTransactionType
    transaction_date: datetime
    quantity: Money
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    unit_cost: Money
    total_cost: Money
    reference_number: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    performed_by: str


# ---------------------------------------------------------------- maintenance


class BuildingIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    type: LocationType = LocationType.BUILDING
    code: Optional[str] = Field(default=None, max_length=50)
    parent_building_id: Optional[int] = None
    address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=50)
    zip_code: Optional[str] = Field(default=None, max_length=20)
    year_built: Optional[int] = Field(default=None, ge=1600, le=2200)
    square_footage: Optional[int] = Field(default=None, ge=0)
    contact_name: Optional[str] = Field(default=None, max_length=200)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=2000)
    is_active: bool = True


class BuildingRead(ReadModel):
    id: int
    name: str
    description: Optional[str] = None
    type: LocationType
    code: Optional[str] = None
    parent_building_id: Optional[int] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    year_built: Optional[int] = None
    square_footage: Optional[int] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool


class ContractorIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    contact_name: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=200)
    services: Optional[str] = Field(default=None, max_length=1000)
    license_number: Optional[str] = Field(default=None, max_length=100)
    insurance_expiration: Optional[date] = None
    hourly_rate: Optional[Decimal] = Field(default=None, ge=0)
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    is_preferred: bool = False
    is_active: bool = True
    notes: Optional[str] = Field(default=None, max_length=2000)


class ContractorRead(ReadModel):
    id: int
    name: str
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    services: Optional[str] = None
    license_number: Optional[str] = None
    insurance_expiration: Optional[date] = None
    hourly_rate: Optional[Money] = None
    rating: Optional[int] = None
    is_preferred: bool
    is_active: bool
    notes: Optional[str] = None


class ProjectIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    type: ProjectType = ProjectType.MAINTENANCE
    status: ProjectStatus = ProjectStatus.PLANNED
    priority: Priority = Priority.MEDIUM
    building_id: Optional[int] = None
    area: Optional[str] = Field(default=None, max_length=200)
    planned_start_date: Optional[date] = None
    planned_end_date: Optional[date] = None
    actual_start_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = Field(default=None, max_length=200)
    contractor_id: Optional[int] = None
    cost_estimate: Optional[Decimal] = Field(default=None, ge=0)
    actual_cost: Optional[Decimal] = Field(default=None, ge=0)
    budget_amount: Optional[Decimal] = Field(default=None, ge=0)
    fund_id: Optional[int] = None
    grant_id: Optional[int] = None
    completion_percentage: int = Field(default=0, ge=0, le=100)
    notes: Optional[str] = Field(default=None, max_length=4000)


class ProjectRead(ReadModel):
    id: int
    name: str
    description: Optional[str] = None
    type: ProjectType
    status: ProjectStatus
    priority: Priority
    building_id: Optional[int] = None
    area: Optional[str] = None
    planned_start_date: Optional[date] = None
    planned_end_date: Optional[date] = None
    actual_start_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None
    contractor_id: Optional[int] = None
    cost_estimate: Optional[Money] = None
    actual_cost: Optional[Money] = None
    budget_amount: Optional[Money] = None
    fund_id: Optional[int] = None
    grant_id: Optional[int] = None
    completion_percentage: int
    notes: Optional[str] = None
    is_active: bool
    is_overdue: bool
    cost_variance: Optional[Money] = None
    is_over_budget: bool


class WorkOrderIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    priority: Priority = Priority.MEDIUM
    project_id: Optional[int] = None
    building_id: Optional[int] = None
    area: Optional[str] = Field(default=None, max_length=200)
    assigned_to: Optional[str] = Field(default=None, max_length=200)
    contractor_id: Optional[int] = None
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[Decimal] = Field(default=None, ge=0)
    actual_hours: Optional[Decimal] = Field(default=None, ge=0)
    estimated_cost: Optional[Decimal] = Field(default=None, ge=0)
    labor_cost: Optional[Decimal] = Field(default=None, ge=0)
    materials_cost: Optional[Decimal] = Field(default=None, ge=0)
    other_cost: Optional[Decimal] = Field(default=None, ge=0)
    is_recurring: bool = False
    recurrence_frequency: Optional[MaintenanceFrequency] = None


class WorkOrderStatusIn(BaseModel):
    status: WorkOrderStatus
    notes: Optional[str] = Field(default=None, max_length=2000)


class WorkOrderRead(ReadModel):
    id: int
    work_order_number: str
    title: str
    description: Optional[str] = None
    status: WorkOrderStatus
    priority: Priority
    project_id: Optional[int] = None
    building_id: Optional[int] = None
    area: Optional[str] = None
    assigned_to: Optional[str] = None
    contractor_id: Optional[int] = None
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    estimated_hours: Optional[Money] = None
    actual_hours: Optional[Money] = None
    estimated_cost: Optional[Money] = None
    labor_cost: Optional[Money] = None
    materials_cost: Optional[Money] = None
    other_cost: Optional[Money] = None
    total_cost: Money
    completion_notes: Optional[str] = None
    is_recurring: bool
    recurrence_frequency: Optional[MaintenanceFrequency] = None
    is_overdue: bool


class ServiceRequestIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    type: ServiceRequestType = ServiceRequestType.REPAIR
    priority: Priority = Priority.MEDIUM
    building_id: Optional[int] = None
    area: Optional[str] = Field(default=None, max_length=200)
    equipment: Optional[str] = Field(default=None, max_length=200)
    submitted_by: Optional[str] = Field(default=None, max_length=200)
    contact_email: Optional[str] = Field(default=None, max_length=200)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    requested_completion_date: Optional[date] = None


class ReviewIn(BaseModel):
    approve: bool
    notes: Optional[str] = Field(default=None, max_length=2000)


class ConvertIn(BaseModel):
    assigned_to: Optional[str] = Field(default=None, max_length=200)
    contractor_id: Optional[int] = None
    scheduled_date: Optional[date] = None
    project_id: Optional[int] = None


class ResolutionIn(BaseModel):
    resolution: str = Field(min_length=1, max_length=2000)


class ServiceRequestRead(ReadModel):
    id: int
    request_number: str
    title: str
    description: Optional[str] = None
    type: ServiceRequestType
    status: ServiceRequestStatus
    priority: Priority
    building_id: Optional[int] = None
    area: Optional[str] = None
    equipment: Optional[str] = None
    submitted_by: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    submitted_at: datetime
    requested_completion_date: Optional[date] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    project_id: Optional[int] = None
    work_order_id: Optional[int] = None
    resolution: Optional[str] = None
    is_urgent: bool


# ---------------------------------------------------------------- import


class ImportMapping(BaseModel):
    """Zero-based CSV column indexes for a transaction import."""
    date_column: int = Field(default=0, ge=0)
    amount_column: int = Field(default=1, ge=0)
    description_column: int = Field(default=2, ge=0)
    category_column: Optional[int] = Field(default=None, ge=0)
    fund_column: Optional[int] = Field(default=None, ge=0)
    donor_column: Optional[int] = Field(default=None, ge=0)
    grant_column: Optional[int] = Field(default=None, ge=0)
    type_column: Optional[int] = Field(default=None, ge=0)
    payee_column: Optional[int] = Field(default=None, ge=0)
    tags_column: Optional[int] = Field(default=None, ge=0)
    has_header: bool = True
    create_missing: bool = True
    date_format: Optional[str] = None


class ImportRowError(BaseModel):
    row: int
    column: Optional[str] = None
    message: str
    original_data: Optional[str] = None


class ImportResult(BaseModel):
    success: bool
    total_rows: int = 0
    imported_rows: int = 0
    skipped_rows: int = 0
    errors: List[ImportRowError] = Field(default_factory=list)
    created_categories: List[str] = Field(default_factory=list)
    created_funds: List[str] = Field(default_factory=list)
    created_donors: List[str] = Field(default_factory=list)
    preview: List[dict] = Field(default_factory=list)
