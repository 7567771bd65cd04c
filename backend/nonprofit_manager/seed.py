"""Default data for a fresh database.

`seed_defaults` only touches empty tables, so it is safe to call on
every startup.
"""

import logging

from sqlmodel import Session, select

from . import models

logger = logging.getLogger("nonprofit_manager.seed")

# (name, description, color, [(child name, child color), ...])
INCOME_CATEGORIES = [
    ("Contributions", "Donations from individuals and organizations", "#4CAF50", [
        ("Individual Donations", "#66BB6A"),
        ("Corporate", "#81C784"),
        ("Legacies/Bequests", "#A5D6A7"),
        ("In-Kind Gifts", "#C8E6C9"),
    ]),
    ("Grants", "Foundation, corporate and government grants", "#2196F3", [
        ("Foundation Grants", "#42A5F5"),
        ("Government Grants", "#64B5F6"),
    ]),
    ("Fundraising Events", "Event revenue", "#FF9800", [
        ("Ticket Sales", "#FFA726"),
        ("Sponsorships", "#FFB74D"),
    ]),
    ("Investment/Other Income", "Interest, dividends and miscellaneous income", "#607D8B", [
        ("Interest", "#78909C"),
        ("Miscellaneous", "#90A4AE"),
    ]),
]

EXPENSE_CATEGORIES = [
    ("Personnel", "Wages, benefits and stipends", "#F44336", [
        ("Salaries", "#EF5350"),
        ("Benefits", "#E57373"),
    ]),
    ("Equipment/Supplies", "Equipment purchases and consumables", "#E91E63", [
        ("Office Supplies", "#EC407A"),
        ("Equipment", "#F06292"),
    ]),
    ("Maintenance/Repairs", "Building and equipment upkeep", "#795548", [
        ("Building Repairs", "#8D6E63"),
        ("Vehicle Maintenance", "#A1887F"),
    ]),
    ("Facilities/Utilities", "Rent, utilities and insurance", "#FF5722", [
        ("Utilities", "#FF7043"),
        ("Insurance", "#FF8A65"),
    ]),
    ("Administrative", "Accounting, legal and bank fees", "#009688", [
        ("Professional Fees", "#26A69A"),
        ("Bank Fees", "#4DB6AC"),
    ]),
    ("Program/Operations", "Direct program costs", "#00BCD4", []),
    ("Fundraising Expenses", "Costs of raising funds", "#FFEB3B", []),
]

DEFAULT_FUNDS = [
    ("General Operating", models.FundType.UNRESTRICTED, "Main operating fund for general expenses"),
    ("Building Fund", models.FundType.RESTRICTED, "Building improvements and capital projects"),
    ("Emergency Reserve", models.FundType.UNRESTRICTED, "Reserve for unexpected expenses"),
    ("Restricted Donations", models.FundType.RESTRICTED, "Donor-restricted gifts"),
]

INVENTORY_CATEGORIES = [
    ("Office Supplies", "General office supplies"),
    ("Cleaning Supplies", "Cleaning and maintenance supplies"),
    ("Safety Equipment", "Personal protective equipment"),
    ("Tools", "Hand and power tools"),
]


def _seed_category_tree(session: Session, category_type: models.CategoryType, tree) -> int:
    count = 0
    sort_order = 0
    for name, description, color, children in tree:
        parent = models.Category(name=name, description=description, color=color, type=category_type,
                                 sort_order=sort_order)
        sort_order += 1
        session.add(parent)
        session.flush()
        count += 1
        for child_name, child_color in children:
            session.add(models.Category(name=child_name, color=child_color, type=category_type,
                                        parent_id=parent.id, sort_order=sort_order))
            sort_order += 1
            count += 1
    return count


def seed_defaults(session: Session) -> dict:
    """Insert default categories, funds and inventory categories into empty tables."""
    created = {"categories": 0, "funds": 0, "inventory_categories": 0}
    if session.exec(select(models.Category.id)).first() is None:
        created["categories"] += _seed_category_tree(session, models.CategoryType.INCOME, INCOME_CATEGORIES)
        created["categories"] += _seed_category_tree(session, models.CategoryType.EXPENSE, EXPENSE_CATEGORIES)
    if session.exec(select(models.Fund.id)).first() is None:
        for name, fund_type, description in DEFAULT_FUNDS:
            session.add(models.Fund(name=name, type=fund_type, description=description))
            created["funds"] += 1
    if session.exec(select(models.InventoryCategory.id)).first() is None:
        for name, description in INVENTORY_CATEGORIES:
            session.add(models.InventoryCategory(name=name, description=description))
            created["inventory_categories"] += 1
    session.commit()
    if any(created.values()):
        logger.info("seeded defaults: %s", created)
    return created
