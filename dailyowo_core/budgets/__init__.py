"""Budget-specific business logic.

This package provides:
- The aggregation engine that turns transactions and a budget into a snapshot
- Budget creation from the 50-30-20, zero-based and custom methods
- Allocation rebalancing and method validation
- Budget periods, rollover and month-by-month history
"""

from .calculations import (
    compute_budget_snapshot,
    calculate_total_income,
    calculate_category_spending,
    generate_budget_alerts,
    calculate_budget_health,
    calculate_category_performance,
    health_status,
)
from .methods import (
    RebalanceAdjustment,
    create_budget_from_method,
    requires_rebalancing,
    apply_budget_rebalance,
    validate_budget_method,
    convert_to_custom_budget,
)
from .periods import (
    create_budget_period,
    should_create_new_budget_period,
    rollover_budget_amounts,
    monthly_budget_summary,
    budget_history,
    history_overview,
    monthly_health_score,
    budget_recommendations,
    should_create_new_monthly_budget,
)

__all__ = [
    # Calculations
    'compute_budget_snapshot',
    'calculate_total_income',
    'calculate_category_spending',
    'generate_budget_alerts',
    'calculate_budget_health',
    'calculate_category_performance',
    'health_status',
    # Methods
    'RebalanceAdjustment',
    'create_budget_from_method',
    'requires_rebalancing',
    'apply_budget_rebalance',
    'validate_budget_method',
    'convert_to_custom_budget',
    # Periods
    'create_budget_period',
    'should_create_new_budget_period',
    'rollover_budget_amounts',
    'monthly_budget_summary',
    'budget_history',
    'history_overview',
    'monthly_health_score',
    'budget_recommendations',
    'should_create_new_monthly_budget',
]
