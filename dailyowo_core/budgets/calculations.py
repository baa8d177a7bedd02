"""Budget aggregation engine.

This module turns a budget definition and a flat transaction list into a
:class:`~dailyowo_core.models.BudgetData` snapshot: per-category spend,
top-level totals, alerts, a health score and category performance.  Every
call recomputes from scratch; nothing is cached between calls.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional

import pandas as pd

from .. import config
from ..categories import SAVINGS_CATEGORIES, category_rule
from ..exceptions import InvalidInputError
from ..models import (
    Budget,
    BudgetAlert,
    BudgetCategory,
    BudgetData,
    BudgetHealth,
    CategoryPerformance,
    Transaction,
    coerce_datetime,
    transactions_to_frame,
)

logger = logging.getLogger(__name__)

# Health score rules
MIN_ALLOCATION_RATIO = 0.80
MAX_ALLOCATION_RATIO = 1.00
MIN_SAVINGS_RATIO = 0.10
UNDER_ALLOCATION_PENALTY = 20
OVER_ALLOCATION_PENALTY = 30
OVER_BUDGET_PENALTY = 15
LOW_SAVINGS_PENALTY = 15

# Ratios within this relative tolerance of a bound count as on the bound
RATIO_TOLERANCE = 1e-9

HEALTH_STATUS_THRESHOLDS = (
    (90, 'excellent'),
    (70, 'good'),
    (50, 'fair'),
)

NO_BUDGET_SUGGESTION = 'Create your first budget to get started'


def compute_budget_snapshot(
    transactions: Iterable[Transaction],
    budget: Optional[Budget],
    as_of: Optional[datetime] = None,
    *,
    period_scoped: Optional[bool] = None,
) -> BudgetData:
    """Compute the budget snapshot for ``budget`` from ``transactions``.

    Args:
        transactions: Transactions of the budget owner
        budget: The active budget, or None when the user has none yet
        as_of: Moment the snapshot describes (recorded on the result)
        period_scoped: Only aggregate transactions dated inside the budget
            period.  Defaults to ``config.PERIOD_SCOPED_AGGREGATION``.

    Returns:
        BudgetData snapshot

    Raises:
        InvalidInputError: If a transaction has a non-positive amount or the
            budget has no period
    """
    as_of_value = coerce_datetime(as_of, 'as_of') if as_of is not None else None
    if budget is None:
        return _empty_snapshot(as_of_value)
    if budget.period is None:
        raise InvalidInputError(f"Budget {budget.id!r} has no period")

    scoped = config.PERIOD_SCOPED_AGGREGATION if period_scoped is None else period_scoped
    frame = scope_transactions(transactions_to_frame(transactions), budget, period_scoped=scoped)

    total_income = calculate_total_income(frame)
    categories = calculate_category_spending(budget.categories, frame)

    total_expense_allocated = sum(c.allocated for c in categories if not c.is_savings_type)
    total_savings_allocated = sum(c.allocated for c in categories if c.is_savings_type)
    total_allocated = total_expense_allocated + total_savings_allocated

    total_expenses = _sum_amount(frame, frame['type'] == 'expense')
    total_debt_payments = _sum_amount(frame, frame['type'] == 'liability')
    total_savings = _sum_amount(
        frame,
        (frame['type'] == 'asset') & frame['category_id'].isin(SAVINGS_CATEGORIES),
    )

    total_spent = total_expenses + total_debt_payments + total_savings
    # Debt payments are not part of cash at hand
    cash_at_hand = total_income - total_expenses - total_savings
    unallocated_amount = total_income - total_allocated

    alerts = generate_budget_alerts(categories, budget.id)
    health = calculate_budget_health(categories, total_income, total_allocated)
    performance = calculate_category_performance(categories)

    logger.debug(
        'Budget %s snapshot: %d transactions in scope, income=%.2f spent=%.2f allocated=%.2f health=%s',
        budget.id, len(frame), total_income, total_spent, total_allocated, health.score,
    )

    current_budget = replace(
        budget,
        categories=categories,
        period=replace(
            budget.period,
            total_income=total_income,
            total_allocated=total_allocated,
            total_spent=total_spent,
            total_savings=total_savings,
            total_remaining=cash_at_hand,
        ),
    )

    return BudgetData(
        current_budget=current_budget,
        alerts=alerts,
        total_income=total_income,
        total_allocated=total_allocated,
        total_expense_allocated=total_expense_allocated,
        total_savings_allocated=total_savings_allocated,
        total_expenses=total_expenses,
        total_debt_payments=total_debt_payments,
        total_spent=total_spent,
        total_savings=total_savings,
        cash_at_hand=cash_at_hand,
        unallocated_amount=unallocated_amount,
        budget_health=health,
        category_performance=performance,
        as_of=as_of_value,
    )


def scope_transactions(frame: pd.DataFrame, budget: Budget, *, period_scoped: bool = True) -> pd.DataFrame:
    """Drop soft-deleted rows and, when ``period_scoped``, rows outside the budget period."""
    scoped = frame[~frame['deleted']]
    if period_scoped:
        in_period = (scoped['date'] >= budget.period.start_date) & (scoped['date'] <= budget.period.end_date)
        scoped = scoped[in_period]
    return scoped


def calculate_total_income(frame: pd.DataFrame) -> float:
    return _sum_amount(frame, frame['type'] == 'income')


def calculate_category_spending(
    categories: Iterable[BudgetCategory],
    frame: pd.DataFrame,
) -> List[BudgetCategory]:
    """Return copies of ``categories`` with ``spent``, ``remaining`` and ``is_over_budget`` recomputed.

    Which transactions count toward a category is decided by
    :func:`~dailyowo_core.categories.category_rule`.
    """
    updated = []
    for category in categories:
        rule = category_rule(category)
        mask = (frame['type'] == rule.transaction_type) & frame['category_id'].isin(rule.category_ids)
        spent = _sum_amount(frame, mask)
        updated.append(replace(
            category,
            spent=spent,
            remaining=category.allocated - spent,
            is_over_budget=spent > category.allocated,
        ))
    return updated


def generate_budget_alerts(categories: Iterable[BudgetCategory], budget_id: str) -> List[BudgetAlert]:
    """Build over-budget and approaching-limit alerts, in category order."""
    alerts: List[BudgetAlert] = []
    for category in categories:
        if category.allocated <= 0:
            continue
        utilization = category.spent / category.allocated
        if category.is_over_budget:
            alerts.append(BudgetAlert(
                id=f'{budget_id}-{category.id}-over',
                budget_id=budget_id,
                category_id=category.id,
                type='over-budget',
                message=(
                    f"You're over budget in {category.name}. "
                    f"Spent {category.spent:,.2f} of {category.allocated:,.2f}"
                ),
                severity='error',
                threshold=category.allocated,
                current_amount=category.spent,
            ))
        elif utilization >= config.APPROACHING_LIMIT_RATIO:
            alerts.append(BudgetAlert(
                id=f'{budget_id}-{category.id}-approaching',
                budget_id=budget_id,
                category_id=category.id,
                type='approaching-limit',
                message=f"You've used {utilization * 100:.0f}% of your {category.name} budget",
                severity='warning',
                threshold=category.allocated * config.APPROACHING_LIMIT_RATIO,
                current_amount=category.spent,
            ))
    return alerts


def calculate_budget_health(
    categories: Iterable[BudgetCategory],
    total_income: float,
    total_allocated: float,
) -> BudgetHealth:
    """Score the budget from 0 to 100.

    Ratios against income are treated as 0 when income is 0, so a budget
    without recorded income is scored as unallocated rather than producing
    NaN or infinity.
    """
    categories = list(categories)
    score = 100
    suggestions: List[str] = []

    allocation_ratio = _ratio(total_allocated, total_income)
    if _below(allocation_ratio, MIN_ALLOCATION_RATIO):
        score -= UNDER_ALLOCATION_PENALTY
        suggestions.append('Allocate more of your income to specific categories')
    elif _above(allocation_ratio, MAX_ALLOCATION_RATIO):
        score -= OVER_ALLOCATION_PENALTY
        suggestions.append("You've allocated more than your income. Review your budget")

    over_budget = [c for c in categories if c.is_over_budget]
    if over_budget:
        score -= OVER_BUDGET_PENALTY * len(over_budget)
        suggestions.append(f'{len(over_budget)} categories are over budget')

    savings_allocated = sum(c.allocated for c in categories if c.is_savings_type)
    if _below(_ratio(savings_allocated, total_income), MIN_SAVINGS_RATIO):
        score -= LOW_SAVINGS_PENALTY
        suggestions.append('Consider allocating at least 10% to savings')

    score = max(0, min(100, score))
    return BudgetHealth(score=score, status=health_status(score), suggestions=tuple(suggestions))


def health_status(score: float) -> str:
    for threshold, status in HEALTH_STATUS_THRESHOLDS:
        if score >= threshold:
            return status
    return 'poor'


def calculate_category_performance(categories: Iterable[BudgetCategory]) -> List[CategoryPerformance]:
    return [
        CategoryPerformance(
            category_id=category.id,
            name=category.name,
            budget_utilization=(category.spent / category.allocated * 100) if category.allocated > 0 else 0.0,
            trend='stable',
        )
        for category in categories
    ]


def _sum_amount(frame: pd.DataFrame, mask: pd.Series) -> float:
    return float(frame.loc[mask, 'amount'].sum())


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _below(ratio: float, bound: float) -> bool:
    return ratio < bound and not math.isclose(ratio, bound, rel_tol=RATIO_TOLERANCE)


def _above(ratio: float, bound: float) -> bool:
    return ratio > bound and not math.isclose(ratio, bound, rel_tol=RATIO_TOLERANCE)


def _empty_snapshot(as_of: Optional[datetime]) -> BudgetData:
    return BudgetData(
        current_budget=None,
        alerts=[],
        total_income=0.0,
        total_allocated=0.0,
        total_expense_allocated=0.0,
        total_savings_allocated=0.0,
        total_expenses=0.0,
        total_debt_payments=0.0,
        total_spent=0.0,
        total_savings=0.0,
        cash_at_hand=0.0,
        unallocated_amount=0.0,
        budget_health=BudgetHealth(score=0, status='poor', suggestions=(NO_BUDGET_SUGGESTION,)),
        category_performance=[],
        as_of=as_of,
    )
