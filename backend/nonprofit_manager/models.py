"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table; enumerations used by more than one table
live at the top of the module.

Conventions shared by the finance tables:

- `row_version` is an optimistic concurrency token (Transaction, Fund,
  Grant). Services compare it with the version a client read and bump
  it on every update.
- `is_deleted`/`deleted_at`/`deleted_by` implement soft delete for
  transactions; repositories exclude deleted rows by default.
- Hierarchies (categories, inventory categories, locations, buildings)
  are self-referencing through a nullable parent id.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(default=Decimal("0.00"), **kwargs):
    return Field(default=default, max_digits=18, decimal_places=2, **kwargs)


# ---------------------------------------------------------------- enums


class CategoryType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"


class TransactionType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"
    TRANSFER = "Transfer"


class FundType(str, Enum):
    UNRESTRICTED = "Unrestricted"
    RESTRICTED = "Restricted"
    TEMPORARILY_RESTRICTED = "TemporarilyRestricted"
    PERMANENTLY_RESTRICTED = "PermanentlyRestricted"


class GrantStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    EXPIRED = "Expired"
    REJECTED = "Rejected"


class DonorType(str, Enum):
    INDIVIDUAL = "Individual"
    SMALL_BUSINESS = "SmallBusiness"
    CORPORATE = "Corporate"
    FOUNDATION = "Foundation"
    GOVERNMENT = "Government"
    OTHER = "Other"


class RecurrencePattern(str, Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"
    BIWEEKLY = "BiWeekly"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    YEARLY = "Yearly"


class RuleMatchType(str, Enum):
    PAYEE = "Payee"
    DESCRIPTION = "Description"
    AMOUNT_EQUALS = "AmountEquals"
    AMOUNT_GREATER_THAN = "AmountGreaterThan"
    AMOUNT_LESS_THAN = "AmountLessThan"


class AuditAction(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    RESTORE = "Restore"
    PERMANENT_DELETE = "PermanentDelete"
    ARCHIVE = "Archive"
    TRANSFER = "Transfer"
    IMPORT = "Import"
    EXPORT = "Export"


class InventoryStatus(str, Enum):
    IN_STOCK = "InStock"
    LOW_STOCK = "LowStock"
    OUT_OF_STOCK = "OutOfStock"
    DISCONTINUED = "Discontinued"
    ON_ORDER = "OnOrder"


class UnitOfMeasure(str, Enum):
    EACH = "Each"
    BOX = "Box"
    CASE = "Case"
    PAIR = "Pair"
    SET = "Set"
    GALLON = "Gallon"
    LITER = "Liter"
    POUND = "Pound"
    KILOGRAM = "Kilogram"
    FOOT = "Foot"
    METER = "Meter"
    SQUARE_FOOT = "SquareFoot"
    SQUARE_METER = "SquareMeter"


class ItemCondition(str, Enum):
    NEW = "New"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    DAMAGED = "Damaged"
    NEEDS_REPAIR = "NeedsRepair"


class InventoryTransactionType(str, Enum):
    PURCHASE = "Purchase"
    USE = "Use"
    TRANSFER = "Transfer"
    ADJUSTMENT = "Adjustment"
    RETURN = "Return"
    DISPOSAL = "Disposal"
    DONATION = "Donation"


class LocationType(str, Enum):
    STATION = "Station"
    FACILITY = "Facility"
    BUILDING = "Building"
    FLOOR = "Floor"
    ROOM = "Room"
    AREA = "Area"
    EQUIPMENT = "Equipment"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"
    EMERGENCY = "Emergency"


PRIORITY_RANK = {p: i for i, p in enumerate(Priority)}


class ProjectType(str, Enum):
    REPAIR = "Repair"
    MAINTENANCE = "Maintenance"
    UPGRADE = "Upgrade"
    INSTALLATION = "Installation"
    INSPECTION = "Inspection"
    EMERGENCY = "Emergency"
    RENOVATION = "Renovation"


class ProjectStatus(str, Enum):
    PLANNED = "Planned"
    APPROVED = "Approved"
    IN_PROGRESS = "InProgress"
    ON_HOLD = "OnHold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    OVERDUE = "Overdue"


class WorkOrderStatus(str, Enum):
    CREATED = "Created"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "InProgress"
    PAUSED = "Paused"
    COMPLETED = "Completed"
    VERIFIED = "Verified"
    CLOSED = "Closed"


class ServiceRequestType(str, Enum):
    REPAIR = "Repair"
    MAINTENANCE = "Maintenance"
    INSPECTION = "Inspection"
    INSTALLATION = "Installation"
    REMOVAL = "Removal"
    CLEANING = "Cleaning"
    OTHER = "Other"


class ServiceRequestStatus(str, Enum):
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "UnderReview"
    APPROVED = "Approved"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


class MaintenanceFrequency(str, Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"
    BIWEEKLY = "Biweekly"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    SEMIANNUALLY = "Semiannually"
    ANNUALLY = "Annually"
    AS_NEEDED = "AsNeeded"


# ---------------------------------------------------------------- users / audit


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    """
    __tablename__ = "users"
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)


class AuditLog(SQLModel, table=True):
    """One recorded change to a domain entity.

    `old_values`/`new_values` hold JSON snapshots of the entity before
    and after the change (either may be empty).
    """
    __tablename__ = "audit_logs"
    id: Optional[int] = Field(default=None, primary_key=True)
    action: AuditAction = Field(index=True)
    entity_type: str = Field(index=True, max_length=100)
    entity_id: Optional[int] = Field(default=None, index=True)
    description: Optional[str] = Field(default=None, max_length=1000)
    old_values: Optional[str] = None
    new_values: Optional[str] = None
    user_name: str = Field(default="System", index=True, max_length=200)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    timestamp: datetime = Field(default_factory=utcnow, index=True)


# ---------------------------------------------------------------- finance


class Fund(SQLModel, table=True):
    """A pool of money, restricted or unrestricted.

    `balance` is derived: starting balance plus income minus expenses of
    the non-deleted transactions booked to the fund.
    """
    __tablename__ = "funds"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=200)
    type: FundType = FundType.UNRESTRICTED
    starting_balance: Decimal = _money()
    balance: Decimal = _money()
    description: Optional[str] = Field(default=None, max_length=500)
    target_balance: Optional[Decimal] = _money(default=None)
    restriction_expiry_date: Optional[date] = None
    is_active: bool = True
    row_version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class Category(SQLModel, table=True):
    """An income or expense category, optionally nested under a parent."""
    __tablename__ = "categories"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)
    type: CategoryType = Field(index=True)
    budget_limit: Optional[Decimal] = _money(default=None)
    is_archived: bool = False
    sort_order: int = 0
    parent_id: Optional[int] = Field(default=None, foreign_key="categories.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class Donor(SQLModel, table=True):
    """An individual or organisation that contributes income.

    Contribution totals are maintained from income transactions.
    """
    __tablename__ = "donors"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=200)
    type: DonorType = DonorType.INDIVIDUAL
    email: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=2000)
    total_contributions: Decimal = _money()
    first_contribution_date: Optional[date] = None
    last_contribution_date: Optional[date] = None
    is_anonymous: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class Grant(SQLModel, table=True):
    """An awarded (or pending) grant; expenses charged to it consume it."""
    __tablename__ = "grants"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=200)
    grantor_name: str = Field(max_length=200)
    amount: Decimal = _money()
    amount_used: Decimal = _money()
    start_date: date
    end_date: Optional[date] = None
    application_date: Optional[date] = None
    status: GrantStatus = Field(default=GrantStatus.PENDING, index=True)
    restrictions: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)
    grant_number: Optional[str] = Field(default=None, max_length=100)
    contact_person: Optional[str] = Field(default=None, max_length=200)
    contact_email: Optional[str] = Field(default=None, max_length=200)
    reporting_requirements: Optional[str] = Field(default=None, max_length=2000)
    next_report_due_date: Optional[date] = None
    row_version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def remaining_balance(self) -> Decimal:
        return (self.amount or Decimal("0")) - (self.amount_used or Decimal("0"))


class Transaction(SQLModel, table=True):
    """A single income or expense entry.

    Transfers between funds are stored as two rows (an expense on the
    source fund and an income on the destination) sharing a
    `transfer_pair_id`.
    """
    __tablename__ = "transactions"
    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_date: date = Field(index=True)
    amount: Decimal = _money()
    description: Optional[str] = Field(default=None, max_length=500)
    type: TransactionType = Field(index=True)
    category_id: int = Field(foreign_key="categories.id", index=True)
    fund_type: FundType = FundType.UNRESTRICTED
    fund_id: Optional[int] = Field(default=None, foreign_key="funds.id", index=True)
    to_fund_id: Optional[int] = Field(default=None, foreign_key="funds.id")
    transfer_pair_id: Optional[str] = Field(default=None, index=True, max_length=36)
    donor_id: Optional[int] = Field(default=None, foreign_key="donors.id", index=True)
    grant_id: Optional[int] = Field(default=None, foreign_key="grants.id", index=True)
    project_id: Optional[int] = Field(default=None, foreign_key="projects.id")
    payee: Optional[str] = Field(default=None, max_length=200)
    tags: Optional[str] = Field(default=None, max_length=500)
    reference_number: Optional[str] = Field(default=None, max_length=50)
    po_number: Optional[str] = Field(default=None, max_length=50, index=True)
    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None
    next_recurrence_date: Optional[date] = None
    is_reconciled: bool = False
    external_id: Optional[str] = Field(default=None, max_length=100)
    row_version: int = 1
    is_deleted: bool = Field(default=False, index=True)
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = Field(default=None, max_length=200)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    splits: List["TransactionSplit"] = Relationship(
        back_populates="transaction",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "lazy": "selectin"},
    )

    @property
    def tag_list(self) -> List[str]:
        return [t.strip() for t in (self.tags or "").split(",") if t.strip()]


class TransactionSplit(SQLModel, table=True):
    """A portion of a transaction assigned to another category."""
    __tablename__ = "transaction_splits"
    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_id: int = Field(foreign_key="transactions.id", index=True)
    category_id: int = Field(foreign_key="categories.id", index=True)
    amount: Decimal = _money()
    description: Optional[str] = Field(default=None, max_length=500)
    transaction: Optional[Transaction] = Relationship(back_populates="splits")


class RecurringTransaction(SQLModel, table=True):
    """A template that generates a transaction on a schedule."""
    __tablename__ = "recurring_transactions"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=200)
    amount: Decimal = _money()
    type: TransactionType
    category_id: int = Field(foreign_key="categories.id")
    pattern: RecurrencePattern = RecurrencePattern.MONTHLY
    interval: int = 1
    start_date: date
    end_date: Optional[date] = None
    next_occurrence: date = Field(index=True)
    last_processed: Optional[date] = None
    fund_id: Optional[int] = Field(default=None, foreign_key="funds.id")
    donor_id: Optional[int] = Field(default=None, foreign_key="donors.id")
    grant_id: Optional[int] = Field(default=None, foreign_key="grants.id")
    payee: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = True
    total_occurrences: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class CategorizationRule(SQLModel, table=True):
    """Suggests a category for new transactions; higher priority rules are tried first."""
    __tablename__ = "categorization_rules"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=200)
    match_type: RuleMatchType = RuleMatchType.PAYEE
    match_pattern: str = Field(max_length=200)
    case_sensitive: bool = False
    category_id: int = Field(foreign_key="categories.id", index=True)
    is_active: bool = Field(default=True, index=True)
    priority: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------- inventory


class InventoryCategory(SQLModel, table=True):
    """A grouping of inventory items, nestable."""
    __tablename__ = "inventory_categories"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    parent_id: Optional[int] = Field(default=None, foreign_key="inventory_categories.id", index=True)
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Location(SQLModel, table=True):
    """A physical storage place (room, shelf, truck...), nestable."""
    __tablename__ = "locations"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    parent_id: Optional[int] = Field(default=None, foreign_key="locations.id", index=True)
    code: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=500)
    contact_person: Optional[str] = Field(default=None, max_length=100)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class InventoryItem(SQLModel, table=True):
    """A stocked item. `status` is derived from quantity and expiry."""
    __tablename__ = "inventory_items"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    sku: Optional[str] = Field(default=None, index=True, max_length=50)
    barcode: Optional[str] = Field(default=None, index=True, max_length=100)
    category_id: Optional[int] = Field(default=None, foreign_key="inventory_categories.id", index=True)
    location_id: Optional[int] = Field(default=None, foreign_key="locations.id", index=True)
    quantity: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=3)
    unit: UnitOfMeasure = UnitOfMeasure.EACH
    minimum_quantity: Optional[Decimal] = Field(default=None, max_digits=18, decimal_places=3)
    maximum_quantity: Optional[Decimal] = Field(default=None, max_digits=18, decimal_places=3)
    unit_cost: Optional[Decimal] = _money(default=None)
    status: InventoryStatus = Field(default=InventoryStatus.IN_STOCK, index=True)
    condition: ItemCondition = ItemCondition.NEW
    manufacturer: Optional[str] = Field(default=None, max_length=200)
    model_number: Optional[str] = Field(default=None, max_length=100)
    serial_number: Optional[str] = Field(default=None, max_length=100)
    purchase_date: Optional[date] = None
    expiration_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[str] = Field(default=None, max_length=200)
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = Field(default=None, max_length=200)

    @property
    def total_value(self) -> Decimal:
        return (self.quantity or Decimal("0")) * (self.unit_cost or Decimal("0"))


class InventoryTransaction(SQLModel, table=True):
    """A recorded stock movement for one item."""
    __tablename__ = "inventory_transactions"
    id: Optional[int] = Field(default=None, primary_key=True)
    item_id: int = Field(foreign_key="inventory_items.id", index=True)
    type: InventoryTransactionType = Field(index=True)
    transaction_date: datetime = Field(default_factory=utcnow, index=True)
    quantity: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=3)
    from_location_id: Optional[int] = Field(default=None, foreign_key="locations.id")
    to_location_id: Optional[int] = Field(default=None, foreign_key="locations.id")
    unit_cost: Decimal = _money()
    total_cost: Decimal = _money()
    reference_number: Optional[str] = Field(default=None, max_length=100)
    reason: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)
    performed_by: str = Field(default="System", max_length=200)


# ---------------------------------------------------------------- maintenance


class Building(SQLModel, table=True):
    """A building or a part of one (floor, room, equipment), nestable."""
    __tablename__ = "buildings"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    type: LocationType = LocationType.BUILDING
    code: Optional[str] = Field(default=None, max_length=50)
    parent_building_id: Optional[int] = Field(default=None, foreign_key="buildings.id", index=True)
    address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=50)
    zip_code: Optional[str] = Field(default=None, max_length=20)
    year_built: Optional[int] = None
    square_footage: Optional[int] = None
    contact_name: Optional[str] = Field(default=None, max_length=200)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=2000)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class Contractor(SQLModel, table=True):
    """An outside vendor who performs maintenance work."""
    __tablename__ = "contractors"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=200)
    contact_name: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=200)
    services: Optional[str] = Field(default=None, max_length=1000)
    license_number: Optional[str] = Field(default=None, max_length=100)
    insurance_expiration: Optional[date] = None
    hourly_rate: Optional[Decimal] = _money(default=None)
    rating: Optional[int] = None
    is_preferred: bool = False
    is_active: bool = True
    notes: Optional[str] = Field(default=None, max_length=2000)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class Project(SQLModel, table=True):
    """A maintenance or capital project on a building."""
    __tablename__ = "projects"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    type: ProjectType = ProjectType.MAINTENANCE
    status: ProjectStatus = Field(default=ProjectStatus.PLANNED, index=True)
    priority: Priority = Priority.MEDIUM
    building_id: Optional[int] = Field(default=None, foreign_key="buildings.id", index=True)
    area: Optional[str] = Field(default=None, max_length=200)
    planned_start_date: Optional[date] = None
    planned_end_date: Optional[date] = None
    actual_start_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = Field(default=None, max_length=200)
    contractor_id: Optional[int] = Field(default=None, foreign_key="contractors.id")
    cost_estimate: Optional[Decimal] = _money(default=None)
    actual_cost: Optional[Decimal] = _money(default=None)
    budget_amount: Optional[Decimal] = _money(default=None)
    fund_id: Optional[int] = Field(default=None, foreign_key="funds.id")
    grant_id: Optional[int] = Field(default=None, foreign_key="grants.id")
    completion_percentage: int = 0
    notes: Optional[str] = Field(default=None, max_length=4000)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def is_overdue(self) -> bool:
        if self.status in (ProjectStatus.COMPLETED, ProjectStatus.CANCELLED):
            return False
        return self.due_date is not None and self.due_date < date.today()

    @property
    def cost_variance(self) -> Optional[Decimal]:
        if self.cost_estimate is None or self.actual_cost is None:
            return None
        return self.actual_cost - self.cost_estimate

    @property
    def is_over_budget(self) -> bool:
        return (
            self.budget_amount is not None
            and self.actual_cost is not None
            and self.actual_cost > self.budget_amount
        )


class WorkOrder(SQLModel, table=True):
    """A unit of maintenance work, optionally part of a project."""
    __tablename__ = "work_orders"
    id: Optional[int] = Field(default=None, primary_key=True)
    work_order_number: str = Field(index=True, max_length=50)
    title: str = Field(max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: WorkOrderStatus = Field(default=WorkOrderStatus.CREATED, index=True)
    priority: Priority = Field(default=Priority.MEDIUM, index=True)
    project_id: Optional[int] = Field(default=None, foreign_key="projects.id", index=True)
    building_id: Optional[int] = Field(default=None, foreign_key="buildings.id")
    area: Optional[str] = Field(default=None, max_length=200)
    assigned_to: Optional[str] = Field(default=None, max_length=200)
    contractor_id: Optional[int] = Field(default=None, foreign_key="contractors.id")
    scheduled_date: Optional[date] = Field(default=None, index=True)
    due_date: Optional[date] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = Field(default=None, max_length=200)
    estimated_hours: Optional[Decimal] = _money(default=None)
    actual_hours: Optional[Decimal] = _money(default=None)
    estimated_cost: Optional[Decimal] = _money(default=None)
    labor_cost: Optional[Decimal] = _money(default=None)
    materials_cost: Optional[Decimal] = _money(default=None)
    other_cost: Optional[Decimal] = _money(default=None)
    completion_notes: Optional[str] = Field(default=None, max_length=2000)
    is_recurring: bool = False
    recurrence_frequency: Optional[MaintenanceFrequency] = None
    created_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[str] = Field(default=None, max_length=200)
    updated_at: Optional[datetime] = None

    @property
    def total_cost(self) -> Decimal:
        return sum(
            (c or Decimal("0") for c in (self.labor_cost, self.materials_cost, self.other_cost)),
            Decimal("0"),
        )

    @property
    def is_overdue(self) -> bool:
        if self.status in (WorkOrderStatus.COMPLETED, WorkOrderStatus.VERIFIED, WorkOrderStatus.CLOSED):
            return False
        return self.due_date is not None and self.due_date < date.today()


class ServiceRequest(SQLModel, table=True):
    """A maintenance request submitted by staff or volunteers."""
    __tablename__ = "service_requests"
    id: Optional[int] = Field(default=None, primary_key=True)
    request_number: str = Field(index=True, max_length=50)
    title: str = Field(max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    type: ServiceRequestType = ServiceRequestType.REPAIR
    status: ServiceRequestStatus = Field(default=ServiceRequestStatus.SUBMITTED, index=True)
    priority: Priority = Field(default=Priority.MEDIUM, index=True)
    building_id: Optional[int] = Field(default=None, foreign_key="buildings.id")
    area: Optional[str] = Field(default=None, max_length=200)
    equipment: Optional[str] = Field(default=None, max_length=200)
    submitted_by: str = Field(max_length=200)
    contact_email: Optional[str] = Field(default=None, max_length=200)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    submitted_at: datetime = Field(default_factory=utcnow)
    requested_completion_date: Optional[date] = None
    reviewed_by: Optional[str] = Field(default=None, max_length=200)
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = Field(default=None, max_length=2000)
    assigned_to: Optional[str] = Field(default=None, max_length=200)
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    project_id: Optional[int] = Field(default=None, foreign_key="projects.id")
    work_order_id: Optional[int] = Field(default=None, foreign_key="work_orders.id")
    resolution: Optional[str] = Field(default=None, max_length=2000)

    @property
    def is_urgent(self) -> bool:
        return PRIORITY_RANK[self.priority] >= PRIORITY_RANK[Priority.HIGH]
