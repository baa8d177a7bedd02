"""Interfaces to the externally owned transaction and budget stores.

The core never writes to storage itself.  The protocols describe what it
reads; the in-memory implementations back the tests and the scripts.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from .models import Budget, Transaction, coerce_datetime


@runtime_checkable
class TransactionStore(Protocol):
    def list_transactions(
        self,
        user_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        type: Optional[str] = None,
    ) -> List[Transaction]:
        """Return the live (not soft-deleted) transactions of ``user_id``."""
        ...


class BudgetStore(Protocol):
    def get_active_budget(self, user_id: str) -> Optional[Budget]:
        ...

    def save_budget(self, budget: Budget) -> None:
        ...


class InMemoryTransactionStore:
    """Dictionary-backed :class:`TransactionStore`."""

    def __init__(self, transactions: Optional[Iterable[Transaction]] = None) -> None:
        self._transactions: Dict[str, Transaction] = {}
        for transaction in transactions or []:
            self.add(transaction)

    def add(self, transaction: Transaction) -> None:
        self._transactions[transaction.id] = transaction

    def list_transactions(
        self,
        user_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        type: Optional[str] = None,
    ) -> List[Transaction]:
        start = coerce_datetime(start_date, 'start_date') if start_date is not None else None
        end = coerce_datetime(end_date, 'end_date') if end_date is not None else None
        results = []
        for transaction in self._transactions.values():
            if transaction.deleted or transaction.user_id != user_id:
                continue
            if type is not None and transaction.type != type:
                continue
            if start is not None and transaction.date < start:
                continue
            if end is not None and transaction.date > end:
                continue
            results.append(transaction)
        return sorted(results, key=lambda t: (t.date, t.id))


class InMemoryBudgetStore:
    """Keeps the single active budget per user."""

    def __init__(self) -> None:
        self._budgets: Dict[str, Budget] = {}

    def get_active_budget(self, user_id: str) -> Optional[Budget]:
        return self._budgets.get(user_id)

    def save_budget(self, budget: Budget) -> None:
        self._budgets[budget.user_id] = budget
