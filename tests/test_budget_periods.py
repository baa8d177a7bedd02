from datetime import datetime

import pytest

from dailyowo_core.budgets.methods import create_budget_from_method
from dailyowo_core.budgets.periods import (
    HISTORY_COLUMNS,
    budget_history,
    budget_recommendations,
    create_budget_period,
    history_overview,
    monthly_budget_summary,
    monthly_health_score,
    rollover_budget_amounts,
    should_create_new_budget_period,
    should_create_new_monthly_budget,
)
from dailyowo_core.exceptions import InvalidInputError
from dailyowo_core.models import Budget, BudgetCategory, BudgetMethod, Transaction


def _txn(txn_id, txn_type, amount, category_id, date):
    return Transaction(id=txn_id, user_id='user-1', type=txn_type, amount=amount,
                       category_id=category_id, date=date)


def _budget_with(categories, start=datetime(2024, 3, 1)):
    return Budget(
        id='budget-old',
        user_id='user-1',
        name='March',
        method=BudgetMethod(type='custom'),
        period=create_budget_period('monthly', start),
        categories=categories,
    )


def test_monthly_period_covers_calendar_month():
    period = create_budget_period('monthly', datetime(2024, 2, 17, 15, 45))

    assert period.start_date == datetime(2024, 2, 1)
    assert period.end_date.date() == datetime(2024, 2, 29).date()
    assert period.end_date.hour == 23
    assert period.contains(datetime(2024, 2, 29, 23, 59))
    assert not period.contains(datetime(2024, 3, 1))


@pytest.mark.parametrize('frequency,expected_end', [
    ('weekly', datetime(2024, 1, 17, 8)),
    ('bi-weekly', datetime(2024, 1, 24, 8)),
    ('quarterly', datetime(2024, 4, 10, 8)),
    ('annual', datetime(2025, 1, 10, 8)),
])
def test_period_lengths(frequency, expected_end):
    period = create_budget_period(frequency, datetime(2024, 1, 10, 8))

    assert period.start_date == datetime(2024, 1, 10, 8)
    assert period.end_date == expected_end
    assert period.frequency == frequency


def test_unknown_frequency_is_rejected():
    with pytest.raises(InvalidInputError):
        create_budget_period('fortnightly', datetime(2024, 1, 1))


def test_should_create_new_budget_period():
    period = create_budget_period('monthly', datetime(2024, 3, 1))

    assert not should_create_new_budget_period(period, datetime(2024, 3, 31, 12))
    assert should_create_new_budget_period(period, datetime(2024, 4, 1))


def test_rollover_adds_unused_allocation():
    budget = _budget_with([
        BudgetCategory(id='food', name='Food', type='food', allocated=100, spent=60, allow_rollover=True),
        BudgetCategory(id='rent', name='Rent', type='housing', allocated=100, spent=60, allow_rollover=False),
    ])
    new_period = create_budget_period('monthly', datetime(2024, 4, 1))

    rolled = rollover_budget_amounts(budget, new_period, now=datetime(2024, 4, 1))
    food, rent = rolled.categories

    assert food.rollover_amount == pytest.approx(40)
    assert food.effective_allocated == pytest.approx(140)
    assert food.allocated == 100
    assert food.remaining == pytest.approx(140)
    assert rent.rollover_amount == 0
    assert rent.effective_allocated == 100
    for category in rolled.categories:
        assert category.spent == 0
        assert not category.is_over_budget

    assert rolled.id != budget.id
    assert rolled.period is new_period
    assert rolled.updated_at == datetime(2024, 4, 1)


def test_rollover_skips_overspent_categories():
    budget = _budget_with([
        BudgetCategory(id='food', name='Food', type='food', allocated=100, spent=130,
                       is_over_budget=True, allow_rollover=True),
    ])

    rolled = rollover_budget_amounts(budget, create_budget_period('monthly', datetime(2024, 4, 1)))

    assert rolled.categories[0].rollover_amount == 0
    assert rolled.categories[0].remaining == 100
    # The old budget keeps its figures
    assert budget.categories[0].spent == 130


def test_monthly_budget_summary():
    budget = create_budget_from_method('50-30-20', 4000, create_budget_period('monthly', datetime(2024, 3, 1)),
                                       'user-1')
    transactions = [
        _txn('i1', 'income', 4000, 'salary', '2024-03-01'),
        _txn('e1', 'expense', 900, 'rent', '2024-03-03'),
        _txn('s1', 'asset', 500, 'emergency-fund', '2024-03-20'),
        _txn('x1', 'asset', 300, 'stocks', '2024-03-20'),
        _txn('e2', 'expense', 50, 'groceries', '2024-04-02'),
    ]

    summary = monthly_budget_summary(2024, 3, [budget], transactions, now=datetime(2024, 3, 25))

    assert summary['month_name'] == 'March 2024'
    assert summary['is_current_month']
    assert summary['has_budget']
    assert summary['budget_id'] == budget.id
    assert summary['actual_income'] == pytest.approx(4000)
    assert summary['planned_income'] == pytest.approx(4000)
    assert summary['total_expenses'] == pytest.approx(900)
    assert summary['total_savings'] == pytest.approx(500)
    assert summary['total_allocated'] == pytest.approx(4000)
    assert summary['savings_rate'] == pytest.approx(12.5)
    # Housing and the emergency fund are over budget
    assert summary['budget_health'] == 80


def test_monthly_budget_summary_rejects_bad_month():
    with pytest.raises(InvalidInputError):
        monthly_budget_summary(2024, 13, [], [])


def test_budget_history_has_row_per_month():
    transactions = [
        _txn('i1', 'income', 3000, 'salary', '2024-01-05'),
        _txn('e1', 'expense', 1000, 'rent', '2024-01-06'),
        _txn('i2', 'income', 2000, 'salary', '2024-03-05'),
        _txn('s2', 'asset', 200, 'savings-account', '2024-03-06'),
    ]

    history = budget_history(datetime(2024, 1, 15), datetime(2024, 3, 2), [], transactions,
                             now=datetime(2024, 2, 10))

    assert list(history.columns) == HISTORY_COLUMNS
    assert history['month'].tolist() == [1, 2, 3]
    assert history['is_current_month'].tolist() == [False, True, False]
    assert history['actual_income'].tolist() == [3000, 0, 2000]
    assert not history['has_budget'].any()
    assert history.loc[1, 'savings_rate'] == 0

    overview = history_overview(history)
    assert overview['total_income'] == pytest.approx(5000)
    assert overview['average_monthly_income'] == pytest.approx(2500)
    assert overview['average_savings_rate'] == pytest.approx(4.0)


def test_budget_history_rejects_reversed_range():
    with pytest.raises(InvalidInputError):
        budget_history(datetime(2024, 3, 1), datetime(2024, 1, 1), [], [])


def test_monthly_health_penalises_overspending_and_income_shortfall():
    budget = create_budget_from_method('50-30-20', 5000, create_budget_period('monthly', datetime(2024, 3, 1)),
                                       'user-1')
    transactions = [
        _txn('i1', 'income', 2000, 'salary', '2024-03-01'),
        _txn('e1', 'expense', 3000, 'rent', '2024-03-02'),
    ]

    summary = monthly_budget_summary(2024, 3, [budget], transactions, now=datetime(2024, 3, 15))

    # Expenses above income, housing over budget, income 60% below plan
    assert summary['budget_health'] == 40


@pytest.mark.parametrize('over_budget, income, expenses, planned, expected', [
    (0, 5000, 4000, 5000, 100),
    (0, 0, 300, 5000, 80),
    (0, 5000, 300, 0, 100),
    (2, 4500, 4600, 5000, 50),
    (12, 1000, 5000, 5000, 0),
])
def test_monthly_health_score(over_budget, income, expenses, planned, expected):
    assert monthly_health_score(over_budget, income, expenses, planned) == expected


def test_budget_without_history_month_scores_zero():
    history = budget_history(datetime(2024, 1, 1), datetime(2024, 1, 31), [], [], now=datetime(2024, 6, 1))

    assert history.loc[0, 'budget_health'] == 0
    assert not history.loc[0, 'is_current_month']


def test_budget_recommendations_for_income_drop():
    overview = {'average_monthly_income': 4000.0, 'average_savings_rate': 15.0}

    recommendations = budget_recommendations(overview, 2000)

    assert recommendations == [
        'Your income this month is 50% below average. Consider reducing discretionary spending.',
    ]


def test_budget_recommendations_for_income_rise_and_low_savings():
    overview = {'average_monthly_income': 2000.0, 'average_savings_rate': 4.0}

    recommendations = budget_recommendations(overview, 3000)

    assert recommendations == [
        'Your income this month is 50% above average. Great opportunity to boost savings!',
        'Your average savings rate is below 10%. Try to allocate more to savings.',
    ]


def test_budget_recommendations_without_income_history():
    overview = history_overview(budget_history(datetime(2024, 1, 1), datetime(2024, 2, 1), [], []))

    recommendations = budget_recommendations(overview, 0)

    assert overview['average_monthly_income'] == 0
    assert recommendations == [
        'Your average savings rate is below 10%. Try to allocate more to savings.',
        'No income recorded this month. Budget allocations should be adjusted to essential expenses only.',
    ]


def test_budget_recommendations_within_normal_range():
    overview = {'average_monthly_income': 4000.0, 'average_savings_rate': 12.0}

    assert budget_recommendations(overview, 4400) == []


def test_should_create_new_monthly_budget():
    march = _budget_with([], start=datetime(2024, 3, 1))

    assert not should_create_new_monthly_budget([march], now=datetime(2024, 3, 31, 23, 0))
    assert should_create_new_monthly_budget([march], now=datetime(2024, 4, 1))
    assert should_create_new_monthly_budget([], now=datetime(2024, 3, 10))
