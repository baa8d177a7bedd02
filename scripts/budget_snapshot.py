#!/usr/bin/env python3
"""Print a budget snapshot and the unmapped transactions for a JSON export."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import pandas as pd

from dailyowo_core import config
from dailyowo_core.budgets import compute_budget_snapshot
from dailyowo_core.categories import get_unmapped_transactions
from dailyowo_core.duplicates import find_potential_duplicates
from dailyowo_core.models import Budget, Transaction

logger = logging.getLogger(__name__)


def _load_json(path: Path) -> Any:
    with path.open('r', encoding='utf-8') as handle:
        return json.load(handle)


def load_transactions(path: Path) -> List[Transaction]:
    payload = _load_json(path)
    records = payload.get('transactions', []) if isinstance(payload, dict) else payload
    return [Transaction.from_dict(record) for record in records]


def load_budget(path: Optional[Path]) -> Optional[Budget]:
    if path is None:
        return None
    payload = _load_json(path)
    return Budget.from_dict(payload.get('budget', payload))


def main(
    transactions_path: Path,
    budget_path: Optional[Path] = None,
    as_of: Optional[str] = None,
    all_time: bool = False,
    show_duplicates: bool = False,
) -> None:
    transactions = load_transactions(transactions_path)
    budget = load_budget(budget_path)
    logger.info('Loaded %d transactions from %s', len(transactions), transactions_path)

    data = compute_budget_snapshot(transactions, budget, as_of, period_scoped=not all_time)

    totals = pd.Series({
        'Income': data.total_income,
        'Expenses': data.total_expenses,
        'Debt payments': data.total_debt_payments,
        'Savings': data.total_savings,
        'Total spent': data.total_spent,
        'Cash at hand': data.cash_at_hand,
        'Allocated': data.total_allocated,
        'Unallocated': data.unallocated_amount,
    })
    print("Totals:")
    print(totals.to_string(float_format=lambda value: f'{value:,.2f}'))
    print(f"\nHealth: {data.budget_health.score} ({data.budget_health.status})")
    for suggestion in data.budget_health.suggestions:
        print(f"  - {suggestion}")

    if data.current_budget is not None:
        categories = pd.DataFrame([
            {
                'Category': c.name,
                'Allocated': c.allocated,
                'Spent': c.spent,
                'Remaining': c.remaining,
                'Over': c.is_over_budget,
            }
            for c in data.current_budget.categories
        ])
        print("\nCategories:")
        print(categories.to_string(index=False))

        unmapped = get_unmapped_transactions(transactions, data.current_budget, period_scoped=not all_time)
        print(f"\nUnmapped transactions: {len(unmapped)}")
        if unmapped:
            print(pd.DataFrame([
                {'Date': t.date, 'Type': t.type, 'Category': t.category_id, 'Amount': t.amount,
                 'Description': t.description}
                for t in unmapped
            ]).to_string(index=False))

    if data.alerts:
        print("\nAlerts:")
        for alert in data.alerts:
            print(f"  [{alert.severity}] {alert.message}")

    if show_duplicates:
        groups = find_potential_duplicates(transactions)
        print(f"\nPotential duplicates: {len(groups)}")
        for original, matches in groups:
            for match in matches:
                print(f"  {original.id} ~ {match.transaction_id} ({match.score:.0f}): {', '.join(match.reasons)}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Compute a budget snapshot from a JSON export.')
    parser.add_argument('transactions', type=Path, help='JSON file with a list of transactions')
    parser.add_argument('--budget', type=Path, default=None, help='JSON file with the active budget')
    parser.add_argument('--as-of', default=None, help='Moment the snapshot describes')
    parser.add_argument('--all-time', action='store_true', help='Aggregate transactions outside the budget period')
    parser.add_argument('--duplicates', action='store_true', help='Also list potential duplicate transactions')
    args = parser.parse_args()
    logging.basicConfig(level=config.LOG_LEVEL, format='%(levelname)s %(name)s: %(message)s')
    main(args.transactions, args.budget, args.as_of, args.all_time, args.duplicates)
