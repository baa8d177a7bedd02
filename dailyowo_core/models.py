"""Typed entities shared by the budget engine and the duplicate detector.

Each entity validates itself on construction so malformed records are
rejected at the boundary instead of travelling through the calculations as
loosely typed dictionaries.  ``from_dict`` helpers accept the camelCase
documents produced by the document store as well as snake_case keys.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from . import config
from .exceptions import InvalidInputError

TRANSACTION_TYPES = ('income', 'expense', 'asset', 'liability')
PAYMENT_METHODS = ('cash', 'credit', 'debit', 'bank-transfer', 'mobile-payment', 'other')

BUDGET_CATEGORY_TYPES = (
    'income', 'housing', 'utilities', 'food', 'transportation', 'healthcare',
    'insurance', 'entertainment', 'shopping', 'personal-care', 'family',
    'education', 'pets', 'travel', 'subscriptions', 'financial', 'debt',
    'gifts', 'donations', 'savings', 'investments', 'retirement', 'fitness',
    'other',
)
SAVINGS_BUDGET_TYPES = frozenset({'savings', 'investments', 'retirement'})

PERIOD_FREQUENCIES = ('weekly', 'bi-weekly', 'monthly', 'quarterly', 'annual')
BUDGET_METHOD_TYPES = ('50-30-20', 'zero-based', 'custom')

HEALTH_STATUSES = ('excellent', 'good', 'fair', 'poor')

FRAME_COLUMNS = [
    'id', 'user_id', 'type', 'amount', 'category_id', 'currency', 'date',
    'description', 'merchant', 'payment_method', 'location_name',
    'is_recurring', 'deleted',
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def coerce_datetime(value: Any, field_name: str = 'date') -> datetime:
    """Convert ``value`` into a naive ``datetime``.

    Timezone-aware values are converted to UTC first so every comparison in
    the core happens on a single naive timeline.
    """
    if value is None:
        raise InvalidInputError(f"'{field_name}' is required")
    try:
        stamp = pd.Timestamp(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"'{field_name}' is not a valid date: {value!r}") from exc
    if pd.isna(stamp):
        raise InvalidInputError(f"'{field_name}' is not a valid date: {value!r}")
    if stamp.tzinfo is not None:
        stamp = stamp.tz_convert('UTC').tz_localize(None)
    return stamp.to_pydatetime()


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _require_amount(value: Any, field_name: str, *, allow_zero: bool) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"'{field_name}' must be a number, got {value!r}") from exc
    if amount != amount:  # NaN
        raise InvalidInputError(f"'{field_name}' must be a number, got NaN")
    if amount < 0 or (amount == 0 and not allow_zero):
        bound = '>= 0' if allow_zero else '> 0'
        raise InvalidInputError(f"'{field_name}' must be {bound}, got {amount}")
    return amount


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Location:
    name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class Transaction:
    """A single financial fact.  Direction is carried by ``type``, never by sign."""

    id: str
    user_id: str
    type: str
    amount: float
    category_id: str
    date: datetime
    currency: str = config.DEFAULT_CURRENCY
    description: str = ''
    merchant: Optional[str] = None
    payment_method: Optional[str] = None
    location: Optional[Location] = None
    is_recurring: bool = False
    created_by: Optional[str] = None
    deleted: bool = False

    def __post_init__(self) -> None:
        if self.type not in TRANSACTION_TYPES:
            raise InvalidInputError(f"Unknown transaction type {self.type!r} for transaction {self.id!r}")
        object.__setattr__(self, 'amount', _require_amount(self.amount, 'amount', allow_zero=False))
        object.__setattr__(self, 'date', coerce_datetime(self.date))
        if not self.user_id:
            raise InvalidInputError(f"Transaction {self.id!r} has no owner")
        if self.created_by is None:
            object.__setattr__(self, 'created_by', self.user_id)
        if self.description is None:
            object.__setattr__(self, 'description', '')

    @property
    def location_name(self) -> Optional[str]:
        return self.location.name if self.location else None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Transaction':
        location = _pick(data, 'location')
        if isinstance(location, Mapping):
            location = Location(
                name=location.get('name'),
                latitude=location.get('latitude'),
                longitude=location.get('longitude'),
            )
        elif location is not None and not isinstance(location, Location):
            location = Location(name=str(location))
        return cls(
            id=str(_pick(data, 'id', default='')),
            user_id=_pick(data, 'user_id', 'userId', default=''),
            type=_pick(data, 'type', default=''),
            amount=_pick(data, 'amount'),
            category_id=str(_pick(data, 'category_id', 'categoryId', default='')),
            date=_pick(data, 'date'),
            currency=_pick(data, 'currency', default=config.DEFAULT_CURRENCY),
            description=_pick(data, 'description', default=''),
            merchant=_pick(data, 'merchant'),
            payment_method=_pick(data, 'payment_method', 'paymentMethod'),
            location=location,
            is_recurring=bool(_pick(data, 'is_recurring', 'isRecurring', default=False)),
            created_by=_pick(data, 'created_by', 'createdBy'),
            deleted=bool(_pick(data, 'deleted', default=False)),
        )


def transactions_to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Flatten transactions into a DataFrame with one row per transaction.

    The frame always carries :data:`FRAME_COLUMNS` even when empty so callers
    can filter on them without guarding.
    """
    rows = [
        {
            'id': t.id,
            'user_id': t.user_id,
            'type': t.type,
            'amount': t.amount,
            'category_id': t.category_id,
            'currency': t.currency,
            'date': t.date,
            'description': t.description,
            'merchant': t.merchant,
            'payment_method': t.payment_method,
            'location_name': t.location_name,
            'is_recurring': t.is_recurring,
            'deleted': t.deleted,
        }
        for t in transactions
    ]
    frame = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    frame['amount'] = frame['amount'].astype(float)
    frame['date'] = pd.to_datetime(frame['date'])
    frame['deleted'] = frame['deleted'].astype(bool)
    return frame


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------


@dataclass
class BudgetCategory:
    id: str
    name: str
    type: str
    allocated: float
    spent: float = 0.0
    remaining: Optional[float] = None
    is_over_budget: bool = False
    allow_rollover: bool = False
    rollover_amount: float = 0.0
    transaction_categories: Tuple[str, ...] = ()
    description: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type not in BUDGET_CATEGORY_TYPES:
            raise InvalidInputError(f"Unknown budget category type {self.type!r} for category {self.id!r}")
        self.allocated = _require_amount(self.allocated, 'allocated', allow_zero=True)
        self.transaction_categories = tuple(self.transaction_categories or ())
        if self.remaining is None:
            self.remaining = self.allocated - self.spent

    @property
    def is_savings_type(self) -> bool:
        return self.type in SAVINGS_BUDGET_TYPES

    @property
    def effective_allocated(self) -> float:
        """Allocation available this period, including any rolled-over amount."""
        return self.allocated + self.rollover_amount

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'BudgetCategory':
        return cls(
            id=str(_pick(data, 'id', default='')),
            name=_pick(data, 'name', default=''),
            type=_pick(data, 'type', default='other'),
            allocated=_pick(data, 'allocated', default=0.0),
            spent=float(_pick(data, 'spent', default=0.0)),
            remaining=_pick(data, 'remaining'),
            is_over_budget=bool(_pick(data, 'is_over_budget', 'isOverBudget', default=False)),
            allow_rollover=bool(_pick(data, 'allow_rollover', 'allowRollover', default=False)),
            rollover_amount=float(_pick(data, 'rollover_amount', 'rolloverAmount', default=0.0)),
            transaction_categories=tuple(
                _pick(data, 'transaction_categories', 'transactionCategories', default=())
            ),
            description=_pick(data, 'description'),
        )


@dataclass
class BudgetPeriod:
    id: str
    start_date: datetime
    end_date: datetime
    frequency: str
    total_income: float = 0.0
    total_allocated: float = 0.0
    total_spent: float = 0.0
    total_savings: float = 0.0
    total_remaining: float = 0.0
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.frequency not in PERIOD_FREQUENCIES:
            raise InvalidInputError(f"Unknown period frequency {self.frequency!r}")
        self.start_date = coerce_datetime(self.start_date, 'start_date')
        self.end_date = coerce_datetime(self.end_date, 'end_date')
        if self.end_date < self.start_date:
            raise InvalidInputError('Budget period ends before it starts')

    def contains(self, moment: datetime) -> bool:
        return self.start_date <= coerce_datetime(moment) <= self.end_date

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'BudgetPeriod':
        return cls(
            id=str(_pick(data, 'id', default='')),
            start_date=_pick(data, 'start_date', 'startDate'),
            end_date=_pick(data, 'end_date', 'endDate'),
            frequency=_pick(data, 'frequency', default='monthly'),
            total_income=float(_pick(data, 'total_income', 'totalIncome', default=0.0)),
            total_allocated=float(_pick(data, 'total_allocated', 'totalAllocated', default=0.0)),
            total_spent=float(_pick(data, 'total_spent', 'totalSpent', default=0.0)),
            total_savings=float(_pick(data, 'total_savings', 'totalSavings', default=0.0)),
            total_remaining=float(_pick(data, 'total_remaining', 'totalRemaining', default=0.0)),
            is_active=bool(_pick(data, 'is_active', 'isActive', default=True)),
        )


@dataclass
class BudgetMethod:
    type: str
    allocations: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.type not in BUDGET_METHOD_TYPES:
            raise InvalidInputError(f"Unknown budget method {self.type!r}")
        self.allocations = dict(self.allocations or {})


@dataclass
class Budget:
    id: str
    user_id: str
    name: str
    method: BudgetMethod
    period: BudgetPeriod
    categories: List[BudgetCategory] = field(default_factory=list)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.period is None:
            raise InvalidInputError(f"Budget {self.id!r} has no period")
        self.categories = list(self.categories)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Budget':
        period = _pick(data, 'period')
        if period is None:
            raise InvalidInputError(f"Budget {_pick(data, 'id', default='')!r} has no period")
        method = _pick(data, 'method', default={'type': 'custom'})
        created_at = _pick(data, 'created_at', 'createdAt')
        updated_at = _pick(data, 'updated_at', 'updatedAt')
        return cls(
            id=str(_pick(data, 'id', default='')),
            user_id=_pick(data, 'user_id', 'userId', default=''),
            name=_pick(data, 'name', default=''),
            method=BudgetMethod(type=method.get('type', 'custom'), allocations=method.get('allocations', {})),
            period=BudgetPeriod.from_dict(period),
            categories=[BudgetCategory.from_dict(item) for item in _pick(data, 'categories', default=[])],
            is_active=bool(_pick(data, 'is_active', 'isActive', default=True)),
            created_at=coerce_datetime(created_at, 'created_at') if created_at is not None else None,
            updated_at=coerce_datetime(updated_at, 'updated_at') if updated_at is not None else None,
        )


# ---------------------------------------------------------------------------
# Snapshot output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BudgetAlert:
    id: str
    budget_id: str
    category_id: str
    type: str
    message: str
    severity: str
    threshold: float
    current_amount: float
    is_read: bool = False


@dataclass(frozen=True)
class BudgetHealth:
    score: float
    status: str
    suggestions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CategoryPerformance:
    category_id: str
    name: str
    budget_utilization: float
    trend: str = 'stable'


@dataclass
class BudgetData:
    current_budget: Optional[Budget]
    alerts: List[BudgetAlert]
    total_income: float
    total_allocated: float
    total_expense_allocated: float
    total_savings_allocated: float
    total_expenses: float
    total_debt_payments: float
    total_spent: float
    total_savings: float
    cash_at_hand: float
    unallocated_amount: float
    budget_health: BudgetHealth
    category_performance: List[CategoryPerformance]
    as_of: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
