from datetime import datetime

import pytest

from dailyowo_core.budgets.calculations import (
    calculate_budget_health,
    calculate_category_spending,
    compute_budget_snapshot,
    health_status,
)
from dailyowo_core.budgets.methods import create_budget_from_method
from dailyowo_core.budgets.periods import create_budget_period
from dailyowo_core.categories import get_unmapped_transactions
from dailyowo_core.exceptions import InvalidInputError
from dailyowo_core.models import (
    Budget,
    BudgetCategory,
    BudgetMethod,
    BudgetPeriod,
    Transaction,
    transactions_to_frame,
)


def _txn(txn_id, txn_type, amount, category_id, date='2024-03-05', **extra):
    return Transaction(
        id=txn_id,
        user_id='user-1',
        type=txn_type,
        amount=amount,
        category_id=category_id,
        date=date,
        **extra,
    )


def _build_budget(categories=None):
    period = BudgetPeriod(
        id='period-2024-03',
        start_date=datetime(2024, 3, 1),
        end_date=datetime(2024, 3, 31, 23, 59, 59, 999999),
        frequency='monthly',
    )
    if categories is None:
        categories = [
            BudgetCategory(id='housing', name='Housing', type='housing', allocated=1500,
                           transaction_categories=('rent',)),
            BudgetCategory(id='food', name='Food', type='food', allocated=400,
                           transaction_categories=('groceries', 'dining-out')),
            BudgetCategory(id='savings', name='Emergency Fund', type='savings', allocated=500,
                           transaction_categories=('emergency-fund',)),
        ]
    return Budget(
        id='budget-1',
        user_id='user-1',
        name='March',
        method=BudgetMethod(type='custom'),
        period=period,
        categories=categories,
    )


def _sample_transactions():
    return [
        _txn('t1', 'income', 3000, 'salary', '2024-03-01'),
        _txn('t2', 'expense', 1500, 'rent', '2024-03-02'),
        _txn('t3', 'expense', 450, 'groceries', '2024-03-05'),
        _txn('t4', 'asset', 500, 'emergency-fund', '2024-03-10'),
        _txn('t5', 'liability', 200, 'credit-card', '2024-03-15'),
        _txn('t6', 'expense', 50, 'movies', '2024-03-20'),
        _txn('t7', 'expense', 100, 'groceries', '2024-03-21', deleted=True),
        _txn('t8', 'expense', 80, 'groceries', '2024-02-28'),
        _txn('t9', 'asset', 1000, 'stocks', '2024-03-11'),
    ]


def test_snapshot_totals_for_period():
    data = compute_budget_snapshot(_sample_transactions(), _build_budget())

    assert data.total_income == pytest.approx(3000)
    assert data.total_expenses == pytest.approx(2000)
    assert data.total_debt_payments == pytest.approx(200)
    # Stocks are not in the savings allow-list
    assert data.total_savings == pytest.approx(500)
    assert data.total_spent == pytest.approx(2700)
    assert data.cash_at_hand == pytest.approx(500)
    assert data.total_allocated == pytest.approx(2400)
    assert data.total_expense_allocated == pytest.approx(1900)
    assert data.total_savings_allocated == pytest.approx(500)
    assert data.unallocated_amount == pytest.approx(600)


def test_total_spent_is_conserved():
    data = compute_budget_snapshot(_sample_transactions(), _build_budget())

    assert data.total_spent == data.total_expenses + data.total_debt_payments + data.total_savings
    assert data.cash_at_hand == data.total_income - data.total_expenses - data.total_savings


def test_category_spend_excludes_unmapped_transactions():
    data = compute_budget_snapshot(_sample_transactions(), _build_budget())
    spent = {c.id: c.spent for c in data.current_budget.categories}

    assert spent == {'housing': 1500, 'food': 450, 'savings': 500}
    non_savings = sum(c.spent for c in data.current_budget.categories if not c.is_savings_type)
    # Movies is unmapped: counted in total_expenses only
    assert non_savings == pytest.approx(data.total_expenses - 50)


def test_all_time_policy_includes_transactions_outside_period():
    data = compute_budget_snapshot(_sample_transactions(), _build_budget(), period_scoped=False)
    food = next(c for c in data.current_budget.categories if c.id == 'food')

    assert food.spent == pytest.approx(530)
    assert data.total_expenses == pytest.approx(2080)


def test_period_end_date_is_inclusive():
    transactions = [_txn('late', 'expense', 20, 'groceries', '2024-03-31 23:30')]

    data = compute_budget_snapshot(transactions, _build_budget())

    assert data.total_expenses == pytest.approx(20)


def test_over_budget_category_raises_single_error_alert():
    budget = _build_budget([
        BudgetCategory(id='food', name='Food', type='food', allocated=200, transaction_categories=('groceries',)),
    ])
    transactions = [
        _txn('a', 'expense', 150, 'groceries'),
        _txn('b', 'expense', 100, 'groceries'),
    ]

    data = compute_budget_snapshot(transactions, budget)
    food = data.current_budget.categories[0]

    assert food.is_over_budget
    assert food.remaining == pytest.approx(-50)
    assert len(data.alerts) == 1
    alert = data.alerts[0]
    assert alert.severity == 'error'
    assert alert.type == 'over-budget'
    assert alert.id == 'budget-1-food-over'
    assert alert.threshold == pytest.approx(200)
    assert alert.current_amount == pytest.approx(250)


def test_alerts_follow_category_order():
    data = compute_budget_snapshot(_sample_transactions(), _build_budget())

    assert [(a.category_id, a.type) for a in data.alerts] == [
        ('housing', 'approaching-limit'),
        ('food', 'over-budget'),
        ('savings', 'approaching-limit'),
    ]
    assert data.alerts[0].message == "You've used 100% of your Housing budget"
    assert data.alerts[0].threshold == pytest.approx(1200)


def test_zero_allocation_category_never_alerts():
    budget = _build_budget([
        BudgetCategory(id='food', name='Food', type='food', allocated=0, transaction_categories=('groceries',)),
    ])

    data = compute_budget_snapshot([_txn('a', 'expense', 10, 'groceries')], budget)

    assert data.current_budget.categories[0].is_over_budget
    assert data.alerts == []
    assert data.category_performance[0].budget_utilization == 0.0


def test_snapshot_is_idempotent():
    transactions = _sample_transactions()
    budget = _build_budget()

    first = compute_budget_snapshot(transactions, budget, as_of='2024-03-25')
    second = compute_budget_snapshot(transactions, budget, as_of='2024-03-25')

    assert first.to_dict() == second.to_dict()


def test_snapshot_does_not_mutate_budget():
    budget = _build_budget()

    compute_budget_snapshot(_sample_transactions(), budget)

    assert all(c.spent == 0 for c in budget.categories)
    assert budget.period.total_income == 0


def test_health_score_for_sample_budget():
    data = compute_budget_snapshot(_sample_transactions(), _build_budget())

    assert data.budget_health.score == 85
    assert data.budget_health.status == 'good'
    assert data.budget_health.suggestions == ('1 categories are over budget',)


def test_health_score_with_zero_income_stays_in_bounds():
    categories = [
        BudgetCategory(id=f'c{i}', name=f'C{i}', type='food', allocated=10, spent=20, is_over_budget=True)
        for i in range(10)
    ]

    health = calculate_budget_health(categories, total_income=0, total_allocated=100)

    assert health.score == 0
    assert health.status == 'poor'
    assert 'Allocate more of your income to specific categories' in health.suggestions
    assert 'Consider allocating at least 10% to savings' in health.suggestions


def test_health_score_penalizes_over_allocation():
    categories = [BudgetCategory(id='s', name='Savings', type='savings', allocated=1200)]

    health = calculate_budget_health(categories, total_income=1000, total_allocated=1200)

    assert health.score == 70
    assert health.suggestions == ("You've allocated more than your income. Review your budget",)


@pytest.mark.parametrize('score,status', [(100, 'excellent'), (90, 'excellent'), (89, 'good'),
                                           (70, 'good'), (50, 'fair'), (49, 'poor'), (0, 'poor')])
def test_health_status_thresholds(score, status):
    assert health_status(score) == status


def test_missing_budget_returns_empty_snapshot():
    data = compute_budget_snapshot(_sample_transactions(), None)

    assert data.current_budget is None
    assert data.total_income == 0
    assert data.alerts == []
    assert data.budget_health.score == 0
    assert data.budget_health.status == 'poor'
    assert data.budget_health.suggestions == ('Create your first budget to get started',)


def test_period_totals_written_to_snapshot_budget():
    data = compute_budget_snapshot(_sample_transactions(), _build_budget())
    period = data.current_budget.period

    assert period.total_income == pytest.approx(3000)
    assert period.total_spent == pytest.approx(2700)
    assert period.total_remaining == pytest.approx(500)


def test_non_positive_amount_is_rejected():
    with pytest.raises(InvalidInputError):
        _txn('bad', 'expense', 0, 'groceries')
    with pytest.raises(InvalidInputError):
        _txn('bad', 'expense', -5, 'groceries')


def test_savings_category_ignores_expenses_with_same_id():
    categories = [
        BudgetCategory(id='emergency-fund', name='Emergency', type='savings', allocated=100,
                       transaction_categories=('general-savings',)),
    ]
    frame = transactions_to_frame([
        _txn('a', 'expense', 40, 'emergency-fund'),
        _txn('b', 'asset', 25, 'general-savings'),
    ])

    updated = calculate_category_spending(categories, frame)

    assert updated[0].spent == pytest.approx(25)


def test_unmapped_transactions_are_listed():
    unmapped = get_unmapped_transactions(_sample_transactions(), _build_budget())

    assert [t.id for t in unmapped] == ['t6', 't9']


def test_unmapped_transactions_can_follow_period_scope():
    unmapped = get_unmapped_transactions(
        _sample_transactions() + [_txn('t10', 'expense', 20, 'movies', '2024-04-02')],
        _build_budget(),
        period_scoped=True,
    )

    assert [t.id for t in unmapped] == ['t6', 't9']


@pytest.mark.parametrize('income', [1234.56, 7777, 2500.5, 3333.33])
def test_fully_allocated_fifty_thirty_twenty_budget_scores_full_health(income):
    budget = create_budget_from_method('50-30-20', income, create_budget_period('monthly', datetime(2024, 3, 1)),
                                       'user-1')

    data = compute_budget_snapshot([_txn('pay', 'income', income, 'salary', '2024-03-01')], budget)

    assert data.total_allocated == pytest.approx(income)
    assert data.budget_health.score == 100
    assert data.budget_health.status == 'excellent'
    assert data.budget_health.suggestions == ()


def test_allocation_just_past_income_is_still_penalized():
    categories = [
        BudgetCategory(id='housing', name='Housing', type='housing', allocated=2600.01),
        BudgetCategory(id='savings', name='Savings', type='savings', allocated=400),
    ]

    health = calculate_budget_health(categories, 3000, 3000.01)

    assert health.score == 70
