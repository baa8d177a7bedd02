from datetime import datetime, timezone

import pytest

from dailyowo_core.exceptions import FinanceCoreError, InvalidInputError
from dailyowo_core.models import (
    FRAME_COLUMNS,
    Budget,
    BudgetCategory,
    BudgetPeriod,
    Transaction,
    coerce_datetime,
    transactions_to_frame,
)


def _budget_document():
    return {
        'id': 'budget-1',
        'userId': 'user-1',
        'name': 'March',
        'method': {'type': '50-30-20', 'allocations': {}},
        'period': {
            'id': 'period-1',
            'startDate': '2024-03-01T00:00:00Z',
            'endDate': '2024-03-31T23:59:59Z',
            'frequency': 'monthly',
            'totalIncome': 5000,
        },
        'categories': [
            {
                'id': 'needs-food',
                'name': 'Food',
                'type': 'food',
                'allocated': 625,
                'spent': 100,
                'allowRollover': True,
                'transactionCategories': ['groceries'],
            },
        ],
        'isActive': True,
        'createdAt': '2024-03-01T08:00:00Z',
    }


def test_transaction_from_camel_case_document():
    txn = Transaction.from_dict({
        'id': 'abc',
        'userId': 'user-1',
        'type': 'expense',
        'amount': '12.50',
        'categoryId': 'groceries',
        'date': '2024-03-02T10:00:00+01:00',
        'paymentMethod': 'debit',
        'location': {'name': 'Main St', 'latitude': 1.0, 'longitude': 2.0},
    })

    assert txn.amount == 12.5
    assert txn.date == datetime(2024, 3, 2, 9, 0)
    assert txn.payment_method == 'debit'
    assert txn.location_name == 'Main St'
    assert txn.created_by == 'user-1'
    assert txn.description == ''
    assert txn.currency == 'EUR'


@pytest.mark.parametrize('changes', [
    {'amount': 0},
    {'amount': -3},
    {'amount': 'ten'},
    {'type': 'transfer'},
    {'user_id': ''},
    {'date': 'not a date'},
])
def test_invalid_transactions_are_rejected(changes):
    fields = dict(id='t', user_id='user-1', type='expense', amount=5, category_id='groceries', date='2024-01-01')
    fields.update(changes)

    with pytest.raises(InvalidInputError):
        Transaction(**fields)


def test_invalid_input_error_is_a_value_error():
    assert issubclass(InvalidInputError, ValueError)
    assert issubclass(InvalidInputError, FinanceCoreError)


def test_coerce_datetime_converts_aware_values_to_utc():
    aware = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    assert coerce_datetime(aware) == datetime(2024, 1, 1, 12)
    with pytest.raises(InvalidInputError):
        coerce_datetime(None, 'when')


def test_budget_from_document():
    budget = Budget.from_dict(_budget_document())
    food = budget.categories[0]

    assert budget.user_id == 'user-1'
    assert budget.method.type == '50-30-20'
    assert budget.period.start_date == datetime(2024, 3, 1)
    assert budget.period.total_income == 5000
    assert budget.created_at == datetime(2024, 3, 1, 8)
    assert food.transaction_categories == ('groceries',)
    assert food.remaining == 525
    assert food.allow_rollover


def test_budget_without_period_is_rejected():
    document = _budget_document()
    del document['period']

    with pytest.raises(InvalidInputError):
        Budget.from_dict(document)


def test_budget_category_rejects_unknown_type_and_negative_allocation():
    with pytest.raises(InvalidInputError):
        BudgetCategory(id='x', name='X', type='luxuries', allocated=10)
    with pytest.raises(InvalidInputError):
        BudgetCategory(id='x', name='X', type='food', allocated=-1)


def test_period_end_before_start_is_rejected():
    with pytest.raises(InvalidInputError):
        BudgetPeriod(id='p', start_date='2024-02-01', end_date='2024-01-01', frequency='monthly')


def test_transactions_to_frame_has_stable_columns():
    empty = transactions_to_frame([])
    frame = transactions_to_frame([
        Transaction(id='t', user_id='u', type='income', amount=1, category_id='salary', date='2024-01-01'),
    ])

    assert list(empty.columns) == FRAME_COLUMNS
    assert empty.empty
    assert list(frame.columns) == FRAME_COLUMNS
    assert frame.loc[0, 'amount'] == 1.0
    assert not frame.loc[0, 'deleted']


def test_budget_data_to_dict():
    from dailyowo_core.budgets.calculations import compute_budget_snapshot

    data = compute_budget_snapshot([], None, as_of='2024-01-01')
    payload = data.to_dict()

    assert payload['current_budget'] is None
    assert payload['budget_health']['status'] == 'poor'
    assert payload['as_of'] == datetime(2024, 1, 1)
