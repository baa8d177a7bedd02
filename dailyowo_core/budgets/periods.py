"""Budget periods, rollover and month-by-month history."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from ..categories import SAVINGS_CATEGORIES
from ..exceptions import InvalidInputError
from ..models import (
    PERIOD_FREQUENCIES,
    Budget,
    BudgetPeriod,
    Transaction,
    coerce_datetime,
    transactions_to_frame,
)
from .calculations import calculate_category_spending

logger = logging.getLogger(__name__)

PERIOD_LENGTHS = {
    'weekly': pd.DateOffset(days=7),
    'bi-weekly': pd.DateOffset(days=14),
    'monthly': pd.DateOffset(months=1),
    'quarterly': pd.DateOffset(months=3),
    'annual': pd.DateOffset(years=1),
}

HISTORY_COLUMNS = [
    'year', 'month', 'month_name', 'budget_id', 'has_budget', 'planned_income',
    'actual_income', 'total_expenses', 'total_savings', 'total_allocated',
    'savings_rate', 'budget_health', 'is_current_month',
]

# Monthly health rules
OVERSPENT_INCOME_PENALTY = 30
OVER_BUDGET_CATEGORY_PENALTY = 10
INCOME_VARIANCE_PENALTY = 20
INCOME_VARIANCE_LIMIT = 0.2

# Recommendation rules
RECOMMENDATION_VARIANCE_LIMIT = 0.3
LOW_SAVINGS_RATE = 10


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------


def create_budget_period(frequency: str, start_date: Optional[datetime] = None) -> BudgetPeriod:
    """Create a period of ``frequency`` starting at ``start_date`` (default: now).

    Monthly periods always cover a whole calendar month: the start is moved to
    the first of the month at midnight and the end is the last moment of the
    month's last day.
    """
    if frequency not in PERIOD_FREQUENCIES:
        raise InvalidInputError(f'Unknown period frequency {frequency!r}')

    start = pd.Timestamp(coerce_datetime(start_date, 'start_date') if start_date is not None else datetime.now())
    if frequency == 'monthly':
        start = start.replace(day=1).normalize()
        end = start + PERIOD_LENGTHS[frequency] - pd.Timedelta(microseconds=1)
    else:
        end = start + PERIOD_LENGTHS[frequency]

    return BudgetPeriod(
        id=f'period-{uuid.uuid4().hex}',
        start_date=start.to_pydatetime(),
        end_date=end.to_pydatetime(),
        frequency=frequency,
    )


def should_create_new_budget_period(period: BudgetPeriod, now: Optional[datetime] = None) -> bool:
    moment = coerce_datetime(now, 'now') if now is not None else datetime.now()
    return moment > period.end_date


def rollover_budget_amounts(old_budget: Budget, new_period: BudgetPeriod, *, now: Optional[datetime] = None) -> Budget:
    """Carry unused allocation of ``old_budget`` into a budget for ``new_period``.

    A category rolls over ``allocated - spent`` when it allows rollover and
    that amount is positive; otherwise it rolls over nothing.  The base
    allocation is left untouched so the carried amount stays auditable, and
    every category starts the new period with nothing spent.
    """
    categories = []
    for category in old_budget.categories:
        left_over = category.allocated - category.spent
        rollover_amount = left_over if category.allow_rollover and left_over > 0 else 0.0
        categories.append(replace(
            category,
            spent=0.0,
            remaining=category.allocated + rollover_amount,
            is_over_budget=False,
            rollover_amount=rollover_amount,
        ))

    logger.debug(
        'Rolled budget %s into period %s: %.2f carried over',
        old_budget.id, new_period.id, sum(c.rollover_amount for c in categories),
    )

    return replace(
        old_budget,
        id=f'budget-{uuid.uuid4().hex}',
        period=new_period,
        categories=categories,
        updated_at=coerce_datetime(now, 'now') if now is not None else datetime.now(),
    )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def _budget_for_month(budgets: Iterable[Budget], month: pd.Period) -> Optional[Budget]:
    for budget in budgets:
        if pd.Timestamp(budget.period.start_date).to_period('M') == month:
            return budget
    return None


def monthly_health_score(
    over_budget_count: int,
    actual_income: float,
    total_expenses: float,
    planned_income: float,
) -> int:
    """Score one month of a budget from 0 to 100.

    Starts at 100 and deducts 30 when expenses exceed a positive actual
    income, 10 per over-budget category, and 20 when actual income is more
    than 20% away from a positive planned income.
    """
    score = 100
    if actual_income > 0 and total_expenses > actual_income:
        score -= OVERSPENT_INCOME_PENALTY
    score -= OVER_BUDGET_CATEGORY_PENALTY * over_budget_count
    if planned_income > 0 and abs(actual_income - planned_income) / planned_income > INCOME_VARIANCE_LIMIT:
        score -= INCOME_VARIANCE_PENALTY
    return max(0, min(100, score))


def _month_summary(
    month: pd.Period,
    budgets: List[Budget],
    frame: pd.DataFrame,
    current_month: pd.Period,
) -> Dict[str, Any]:
    month_frame = frame[frame['month'] == month]
    budget = _budget_for_month(budgets, month)

    actual_income = float(month_frame.loc[month_frame['type'] == 'income', 'amount'].sum())
    total_expenses = float(month_frame.loc[month_frame['type'] == 'expense', 'amount'].sum())
    savings_mask = (month_frame['type'] == 'asset') & month_frame['category_id'].isin(SAVINGS_CATEGORIES)
    total_savings = float(month_frame.loc[savings_mask, 'amount'].sum())

    total_allocated = 0.0
    budget_health = 0
    if budget is not None:
        categories = calculate_category_spending(budget.categories, month_frame)
        total_allocated = sum(c.allocated for c in categories)
        over_budget_count = sum(1 for c in categories if c.is_over_budget)
        budget_health = monthly_health_score(
            over_budget_count, actual_income, total_expenses, budget.period.total_income,
        )

    return {
        'year': month.year,
        'month': month.month,
        'month_name': month.strftime('%B %Y'),
        'budget_id': budget.id if budget else None,
        'has_budget': budget is not None,
        'planned_income': budget.period.total_income if budget else 0.0,
        'actual_income': actual_income,
        'total_expenses': total_expenses,
        'total_savings': total_savings,
        'total_allocated': total_allocated,
        'savings_rate': total_savings / actual_income * 100 if actual_income > 0 else 0.0,
        'budget_health': budget_health,
        'is_current_month': month == current_month,
    }


def _history_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    frame = transactions_to_frame(transactions)
    frame = frame[~frame['deleted']].copy()
    frame['month'] = frame['date'].dt.to_period('M')
    return frame


def _month_of(now: Optional[datetime]) -> pd.Period:
    moment = coerce_datetime(now, 'now') if now is not None else datetime.now()
    return pd.Timestamp(moment).to_period('M')


def monthly_budget_summary(
    year: int,
    month: int,
    budgets: Iterable[Budget],
    transactions: Iterable[Transaction],
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Summarise actual income, expenses and savings for one calendar month.

    The budget whose period starts in that month, if any, provides the
    planned income, the allocation total and the health score.

    Example:
        >>> monthly_budget_summary(2024, 3, budgets, transactions)['savings_rate']
        12.5
    """
    if not 1 <= month <= 12:
        raise InvalidInputError(f'Month must be between 1 and 12, got {month}')
    period = pd.Period(year=year, month=month, freq='M')
    return _month_summary(period, list(budgets), _history_frame(transactions), _month_of(now))


def budget_history(
    start: datetime,
    end: datetime,
    budgets: Iterable[Budget],
    transactions: Iterable[Transaction],
    *,
    now: Optional[datetime] = None,
) -> pd.DataFrame:
    """One row per calendar month from ``start`` to ``end`` inclusive.

    Returns:
        DataFrame with :data:`HISTORY_COLUMNS`
    """
    first = pd.Timestamp(coerce_datetime(start, 'start')).to_period('M')
    last = pd.Timestamp(coerce_datetime(end, 'end')).to_period('M')
    if last < first:
        raise InvalidInputError('History ends before it starts')

    budgets = list(budgets)
    frame = _history_frame(transactions)
    current_month = _month_of(now)
    rows = [
        _month_summary(month, budgets, frame, current_month)
        for month in pd.period_range(first, last, freq='M')
    ]
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)


def history_overview(history: pd.DataFrame) -> Dict[str, float]:
    """Totals and monthly averages over a :func:`budget_history` frame.

    Averages are taken over months with recorded income.
    """
    total_income = float(history['actual_income'].sum()) if not history.empty else 0.0
    total_expenses = float(history['total_expenses'].sum()) if not history.empty else 0.0
    total_savings = float(history['total_savings'].sum()) if not history.empty else 0.0
    months_with_income = int((history['actual_income'] > 0).sum()) if not history.empty else 0
    months_with_income = months_with_income or 1
    return {
        'total_income': total_income,
        'total_expenses': total_expenses,
        'total_savings': total_savings,
        'average_monthly_income': total_income / months_with_income,
        'average_monthly_expenses': total_expenses / months_with_income,
        'average_savings_rate': total_savings / total_income * 100 if total_income > 0 else 0.0,
    }


def budget_recommendations(overview: Dict[str, float], current_month_income: float) -> List[str]:
    """Plain-language advice from a :func:`history_overview` and this month's income.

    The income comparison is skipped when there is no average income to
    compare against.
    """
    recommendations: List[str] = []
    average_income = overview.get('average_monthly_income', 0.0)

    if average_income > 0:
        variance = abs(current_month_income - average_income) / average_income
        if variance > RECOMMENDATION_VARIANCE_LIMIT:
            percent = round(variance * 100)
            if current_month_income < average_income:
                recommendations.append(
                    f'Your income this month is {percent}% below average. '
                    'Consider reducing discretionary spending.'
                )
            else:
                recommendations.append(
                    f'Your income this month is {percent}% above average. '
                    'Great opportunity to boost savings!'
                )

    if overview.get('average_savings_rate', 0.0) < LOW_SAVINGS_RATE:
        recommendations.append('Your average savings rate is below 10%. Try to allocate more to savings.')

    if current_month_income == 0:
        recommendations.append(
            'No income recorded this month. Budget allocations should be adjusted to essential expenses only.'
        )

    return recommendations


def should_create_new_monthly_budget(budgets: Iterable[Budget], now: Optional[datetime] = None) -> bool:
    """True when no budget's period starts in the calendar month of ``now``."""
    current_month = _month_of(now)
    return _budget_for_month(budgets, current_month) is None
