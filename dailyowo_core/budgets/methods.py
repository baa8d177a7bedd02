"""Budget creation from an allocation method, plus allocation edits.

The default category tables for the 50-30-20 and zero-based methods are
static configuration, the same way default envelopes are kept as data
rather than code.  Each row is expanded into a fresh
:class:`~dailyowo_core.models.BudgetCategory` every time a budget is created.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

from ..exceptions import InvalidInputError
from ..models import (
    BUDGET_CATEGORY_TYPES,
    SAVINGS_BUDGET_TYPES,
    Budget,
    BudgetCategory,
    BudgetMethod,
    BudgetPeriod,
    coerce_datetime,
)

logger = logging.getLogger(__name__)

NEEDS_SHARE = 0.50
WANTS_SHARE = 0.30
SAVINGS_SHARE = 0.20

# Allowed distance, in percentage points, from the 50/30/20 split
METHOD_VARIANCE = 5.0

NEEDS_TYPES = frozenset({'housing', 'utilities', 'food', 'transportation', 'healthcare', 'insurance', 'debt'})
WANTS_TYPES = frozenset({'entertainment', 'shopping', 'fitness', 'personal-care', 'subscriptions'})


class CategoryTemplate(NamedTuple):
    id: str
    name: str
    type: str
    group: str
    share: float
    allow_rollover: bool
    transaction_categories: Tuple[str, ...]


class RebalanceAdjustment(NamedTuple):
    category_id: str
    new_amount: float


# ``share`` is the fraction of the group (needs / wants / savings) amount
FIFTY_THIRTY_TWENTY_TEMPLATE: Tuple[CategoryTemplate, ...] = (
    # Needs
    CategoryTemplate('needs-housing', 'Housing', 'housing', 'needs', 0.35, False,
                     ('rent', 'mortgage', 'home-maintenance', 'home-improvement', 'home-insurance')),
    CategoryTemplate('needs-utilities', 'Utilities', 'utilities', 'needs', 0.15, True,
                     ('electricity', 'gas', 'water', 'internet', 'phone', 'cable-tv')),
    CategoryTemplate('needs-food', 'Food & Groceries', 'food', 'needs', 0.25, True,
                     ('groceries', 'dining-out', 'coffee-shops', 'fast-food', 'alcohol')),
    CategoryTemplate('needs-transportation', 'Transportation', 'transportation', 'needs', 0.15, True,
                     ('fuel', 'public-transport', 'taxi-uber', 'car-maintenance', 'parking', 'flights')),
    CategoryTemplate('needs-healthcare', 'Healthcare', 'healthcare', 'needs', 0.05, True,
                     ('medical-visits', 'prescriptions', 'dental', 'vision')),
    CategoryTemplate('needs-insurance', 'Insurance', 'insurance', 'needs', 0.05, False,
                     ('car-insurance', 'health-insurance', 'life-insurance', 'disability-insurance')),
    CategoryTemplate('needs-debt', 'Debt Payments', 'debt', 'needs', 0.0, False,
                     ('credit-card-payment', 'personal-loan', 'student-loan', 'car-loan', 'other-debt')),
    # Wants
    CategoryTemplate('wants-entertainment', 'Entertainment', 'entertainment', 'wants', 0.30, True,
                     ('movies', 'games', 'music', 'sports', 'hobbies', 'streaming-services')),
    CategoryTemplate('wants-shopping', 'Shopping & Personal', 'shopping', 'wants', 0.30, True,
                     ('clothing', 'household-items', 'electronics', 'personal-care', 'gifts-given')),
    CategoryTemplate('wants-fitness', 'Fitness & Wellness', 'fitness', 'wants', 0.15, True,
                     ('gym',)),
    CategoryTemplate('wants-travel', 'Travel & Vacation', 'travel', 'wants', 0.15, True,
                     ('vacation', 'travel', 'hotels')),
    CategoryTemplate('wants-other', 'Other Expenses', 'other', 'wants', 0.10, True,
                     ('subscriptions', 'other-expense', 'pets', 'pet-supplies', 'family-activities',
                      'childcare', 'school-fees', 'donations', 'bank-fees')),
    # Savings
    CategoryTemplate('savings-emergency', 'Emergency Fund', 'savings', 'savings', 0.40, True,
                     ('emergency-fund', 'savings-account', 'general-savings')),
    CategoryTemplate('savings-retirement', 'Retirement & Investments', 'retirement', 'savings', 0.40, True,
                     ('retirement-401k', 'retirement-ira', 'pension', 'stocks', 'etf', 'mutual-funds',
                      'cryptocurrency', 'bonds', 'real-estate')),
    CategoryTemplate('savings-debt', 'Debt Payments', 'debt', 'savings', 0.20, False,
                     ('credit-card-payment', 'loan-payment', 'student-loan', 'personal-loan', 'auto-loan',
                      'other-debt')),
)

ZERO_BASED_TEMPLATE: Tuple[CategoryTemplate, ...] = (
    CategoryTemplate('zb-housing', 'Housing', 'housing', 'needs', 0.0, False,
                     ('rent', 'mortgage', 'home-maintenance')),
    CategoryTemplate('zb-food', 'Food', 'food', 'needs', 0.0, False,
                     ('groceries', 'dining-out')),
    CategoryTemplate('zb-transportation', 'Transportation', 'transportation', 'needs', 0.0, False,
                     ('fuel', 'public-transport', 'car-maintenance')),
    CategoryTemplate('zb-savings', 'Savings', 'savings', 'savings', 0.0, True,
                     ('emergency-fund', 'general-savings')),
)

GROUP_SHARES = {
    'needs': NEEDS_SHARE,
    'wants': WANTS_SHARE,
    'savings': SAVINGS_SHARE,
}


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


def create_budget_from_method(
    method: Union[BudgetMethod, str],
    total_income: float,
    period: BudgetPeriod,
    owner_id: str,
    *,
    now: Optional[datetime] = None,
) -> Budget:
    """Create a budget whose categories follow ``method``.

    Args:
        method: Allocation method, or its type name
        total_income: Income the allocations are derived from (must be >= 0)
        period: Period the budget covers
        owner_id: Owning user
        now: Creation timestamp, defaults to the current time

    Returns:
        New active Budget

    Raises:
        InvalidInputError: On negative income or an unknown method type

    Example:
        >>> budget = create_budget_from_method('50-30-20', 5000, period, 'user-1')
        >>> budget.categories[0].allocated
        875.0
    """
    if isinstance(method, str):
        method = BudgetMethod(type=method)
    if total_income is None or total_income < 0:
        raise InvalidInputError(f'Total income must be >= 0, got {total_income!r}')

    if method.type == '50-30-20':
        categories = create_fifty_thirty_twenty_categories(total_income)
    elif method.type == 'zero-based':
        categories = create_zero_based_categories()
    elif method.type == 'custom':
        categories = create_custom_categories(method.allocations.get('categories') or {})
    else:
        raise InvalidInputError(f'Unknown budget method {method.type!r}')

    total_allocated = sum(c.allocated for c in categories)
    logger.debug(
        'Created %s budget for %s: income=%.2f allocated=%.2f categories=%d',
        method.type, owner_id, total_income, total_allocated, len(categories),
    )

    created_at = coerce_datetime(now, 'now') if now is not None else datetime.now()
    return Budget(
        id=f'budget-{uuid.uuid4().hex}',
        user_id=owner_id,
        name=f'{method.type} Budget - {period.start_date:%Y-%m-%d}',
        method=method,
        period=replace(period, total_income=float(total_income), total_allocated=total_allocated),
        categories=categories,
        is_active=True,
        created_at=created_at,
        updated_at=created_at,
    )


def create_fifty_thirty_twenty_categories(total_income: float) -> List[BudgetCategory]:
    return [
        _category_from_template(template, total_income * GROUP_SHARES[template.group] * template.share)
        for template in FIFTY_THIRTY_TWENTY_TEMPLATE
    ]


def create_zero_based_categories() -> List[BudgetCategory]:
    return [_category_from_template(template, 0.0) for template in ZERO_BASED_TEMPLATE]


def create_custom_categories(allocations: Dict[str, float]) -> List[BudgetCategory]:
    """One category per allocation key, with no transaction mappings yet."""
    categories = []
    for key, amount in allocations.items():
        categories.append(BudgetCategory(
            id=f'custom-{key}',
            name=key[:1].upper() + key[1:],
            type=key if key in BUDGET_CATEGORY_TYPES else 'other',
            allocated=amount,
            allow_rollover=True,
        ))
    return categories


def _category_from_template(template: CategoryTemplate, allocated: float) -> BudgetCategory:
    return BudgetCategory(
        id=template.id,
        name=template.name,
        type=template.type,
        allocated=allocated,
        allow_rollover=template.allow_rollover,
        transaction_categories=template.transaction_categories,
    )


# ---------------------------------------------------------------------------
# Rebalancing
# ---------------------------------------------------------------------------


def requires_rebalancing(budget: Budget) -> bool:
    """Method-based budgets need their other allocations adjusted after an edit."""
    return budget.method.type != 'custom'


def apply_budget_rebalance(
    budget: Budget,
    category_id: str,
    new_amount: float,
    adjustments: Iterable[Union[RebalanceAdjustment, Tuple[str, float]]] = (),
) -> List[BudgetCategory]:
    """Return the budget's categories with ``category_id`` and any adjusted categories re-allocated.

    Adjustments for unknown category ids are ignored; an unknown
    ``category_id`` is an error.
    """
    if not any(c.id == category_id for c in budget.categories):
        raise InvalidInputError(f'Category {category_id!r} not found in budget {budget.id!r}')

    new_amounts = {category_id: new_amount}
    for adjusted_id, amount in adjustments:
        if adjusted_id != category_id:
            new_amounts[adjusted_id] = amount

    updated = []
    for category in budget.categories:
        if category.id in new_amounts:
            amount = new_amounts[category.id]
            category = replace(category, allocated=amount, remaining=amount - category.spent)
        updated.append(category)
    return updated


def validate_budget_method(
    categories: Iterable[BudgetCategory],
    method: BudgetMethod,
    total_income: float,
) -> Tuple[bool, Optional[str]]:
    """Check that allocations still follow ``method``.

    Only the 50-30-20 method has a shape to check: needs, wants and savings
    must each stay within :data:`METHOD_VARIANCE` points of 50, 30 and 20
    percent of income.

    Returns:
        ``(is_valid, message)``; message is None when valid
    """
    if method.type != '50-30-20':
        return True, None
    if total_income <= 0:
        raise InvalidInputError('Total income must be > 0 to validate a 50-30-20 budget')

    categories = list(categories)
    groups = (
        ('Needs', NEEDS_TYPES, NEEDS_SHARE),
        ('Wants', WANTS_TYPES, WANTS_SHARE),
        ('Savings', SAVINGS_BUDGET_TYPES, SAVINGS_SHARE),
    )
    for label, types, share in groups:
        percentage = sum(c.allocated for c in categories if c.type in types) / total_income * 100
        target = share * 100
        if abs(percentage - target) > METHOD_VARIANCE:
            return False, f'{label} allocation is {percentage:.1f}%, should be around {target:.0f}%'
    return True, None


def convert_to_custom_budget(budget: Budget) -> Budget:
    """Turn a method-based budget into a custom one, keeping every allocation."""
    allocations = {'categories': {c.id: c.allocated for c in budget.categories}}
    return replace(
        budget,
        method=BudgetMethod(type='custom', allocations=allocations),
        name=re.sub(r'50-30-20|zero-based', 'Custom', budget.name, count=1, flags=re.IGNORECASE),
    )
