"""Category tables and transaction-to-budget mapping helpers.

The savings allow-list lives here once and is imported by both the budget
engine and the monthly history helpers.  The transaction-category taxonomy is
static configuration: each entry carries a display name, the transaction
type it applies to and a hint for the budget category it usually rolls into.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, NamedTuple, Optional

from .models import Budget, BudgetCategory, Transaction

# Asset categories that count as savings contributions in the totals
SAVINGS_CATEGORIES = frozenset({
    'savings-account',
    'general-savings',
    'emergency-fund',
    'pension',
    'mutual-funds',
    'cryptocurrency',
    'retirement-401k',
    'retirement-ira',
})

# Transaction types that can land in a budget category
CATEGORIZED_TRANSACTION_TYPES = frozenset({'expense', 'asset'})


class TaxonomyEntry(NamedTuple):
    name: str
    type: str
    budget_category: Optional[str]


TRANSACTION_CATEGORIES: Dict[str, TaxonomyEntry] = {
    # Income
    'salary': TaxonomyEntry('Salary', 'income', 'income'),
    'freelance': TaxonomyEntry('Freelance', 'income', 'income'),
    'business-income': TaxonomyEntry('Business Income', 'income', 'income'),
    'investment-income': TaxonomyEntry('Investment Income', 'income', 'income'),
    'rental-income': TaxonomyEntry('Rental Income', 'income', 'income'),
    'bonus': TaxonomyEntry('Bonus', 'income', 'income'),
    'gifts-received': TaxonomyEntry('Gifts Received', 'income', 'income'),
    'refunds': TaxonomyEntry('Refunds', 'income', 'income'),
    'side-hustle': TaxonomyEntry('Side Hustle', 'income', 'income'),
    'other-income': TaxonomyEntry('Other Income', 'income', 'income'),
    # Housing & utilities
    'rent': TaxonomyEntry('Rent', 'expense', 'housing'),
    'mortgage': TaxonomyEntry('Mortgage Payment', 'expense', 'housing'),
    'home-maintenance': TaxonomyEntry('Home Maintenance', 'expense', 'housing'),
    'home-improvement': TaxonomyEntry('Home Improvement', 'expense', 'housing'),
    'electricity': TaxonomyEntry('Electricity', 'expense', 'utilities'),
    'gas': TaxonomyEntry('Gas', 'expense', 'utilities'),
    'water': TaxonomyEntry('Water', 'expense', 'utilities'),
    'internet': TaxonomyEntry('Internet', 'expense', 'utilities'),
    'phone': TaxonomyEntry('Phone', 'expense', 'utilities'),
    'cable-tv': TaxonomyEntry('Cable TV', 'expense', 'utilities'),
    # Food
    'groceries': TaxonomyEntry('Groceries', 'expense', 'food'),
    'dining-out': TaxonomyEntry('Dining Out', 'expense', 'food'),
    'coffee-shops': TaxonomyEntry('Coffee Shops', 'expense', 'food'),
    'fast-food': TaxonomyEntry('Fast Food', 'expense', 'food'),
    'alcohol': TaxonomyEntry('Alcohol', 'expense', 'food'),
    # Transportation
    'fuel': TaxonomyEntry('Fuel', 'expense', 'transportation'),
    'public-transport': TaxonomyEntry('Public Transport', 'expense', 'transportation'),
    'taxi-uber': TaxonomyEntry('Taxi & Rideshare', 'expense', 'transportation'),
    'car-maintenance': TaxonomyEntry('Car Maintenance', 'expense', 'transportation'),
    'parking': TaxonomyEntry('Parking', 'expense', 'transportation'),
    'flights': TaxonomyEntry('Flights', 'expense', 'travel'),
    # Health & insurance
    'medical-visits': TaxonomyEntry('Medical Visits', 'expense', 'healthcare'),
    'prescriptions': TaxonomyEntry('Prescriptions', 'expense', 'healthcare'),
    'dental': TaxonomyEntry('Dental', 'expense', 'healthcare'),
    'vision': TaxonomyEntry('Vision', 'expense', 'healthcare'),
    'car-insurance': TaxonomyEntry('Car Insurance', 'expense', 'insurance'),
    'health-insurance': TaxonomyEntry('Health Insurance', 'expense', 'insurance'),
    'life-insurance': TaxonomyEntry('Life Insurance', 'expense', 'insurance'),
    'home-insurance': TaxonomyEntry('Home Insurance', 'expense', 'insurance'),
    # Lifestyle
    'movies': TaxonomyEntry('Movies', 'expense', 'entertainment'),
    'games': TaxonomyEntry('Games', 'expense', 'entertainment'),
    'music': TaxonomyEntry('Music', 'expense', 'entertainment'),
    'sports': TaxonomyEntry('Sports', 'expense', 'entertainment'),
    'hobbies': TaxonomyEntry('Hobbies', 'expense', 'entertainment'),
    'gym': TaxonomyEntry('Gym', 'expense', 'fitness'),
    'clothing': TaxonomyEntry('Clothing', 'expense', 'shopping'),
    'household-items': TaxonomyEntry('Household Items', 'expense', 'shopping'),
    'electronics': TaxonomyEntry('Electronics', 'expense', 'shopping'),
    'personal-care': TaxonomyEntry('Personal Care', 'expense', 'personal-care'),
    'childcare': TaxonomyEntry('Childcare', 'expense', 'family'),
    'family-activities': TaxonomyEntry('Family Activities', 'expense', 'family'),
    'school-fees': TaxonomyEntry('School Fees', 'expense', 'education'),
    'pet-food': TaxonomyEntry('Pet Food', 'expense', 'pets'),
    'pet-care': TaxonomyEntry('Pet Care', 'expense', 'pets'),
    'vacation': TaxonomyEntry('Vacation', 'expense', 'travel'),
    'hotels': TaxonomyEntry('Hotels', 'expense', 'travel'),
    'bank-fees': TaxonomyEntry('Bank Fees', 'expense', 'financial'),
    'debt-payment': TaxonomyEntry('Debt Payment', 'expense', 'debt'),
    'gifts-given': TaxonomyEntry('Gifts Given', 'expense', 'gifts'),
    'charity': TaxonomyEntry('Charity', 'expense', 'donations'),
    'streaming-services': TaxonomyEntry('Streaming Services', 'expense', 'subscriptions'),
    'software-subscriptions': TaxonomyEntry('Software Subscriptions', 'expense', 'subscriptions'),
    'other-expense': TaxonomyEntry('Other Expense', 'expense', 'other'),
    # Assets
    'cash': TaxonomyEntry('Cash', 'asset', 'savings'),
    'checking-account': TaxonomyEntry('Checking Account', 'asset', 'savings'),
    'savings-account': TaxonomyEntry('Savings Account', 'asset', 'savings'),
    'emergency-fund': TaxonomyEntry('Emergency Fund', 'asset', 'savings'),
    'general-savings': TaxonomyEntry('General Savings', 'asset', 'savings'),
    'pension': TaxonomyEntry('Pension', 'asset', 'savings'),
    'vacation-fund': TaxonomyEntry('Vacation Fund', 'asset', 'savings'),
    'education-fund': TaxonomyEntry('Education Fund', 'asset', 'savings'),
    'house-fund': TaxonomyEntry('House Fund', 'asset', 'savings'),
    'car-fund': TaxonomyEntry('Car Fund', 'asset', 'savings'),
    'stocks': TaxonomyEntry('Stocks', 'asset', 'investments'),
    'etf': TaxonomyEntry('ETF', 'asset', 'investments'),
    'mutual-funds': TaxonomyEntry('Mutual Funds', 'asset', 'investments'),
    'cryptocurrency': TaxonomyEntry('Cryptocurrency', 'asset', 'investments'),
    'real-estate': TaxonomyEntry('Real Estate', 'asset', 'investments'),
    'retirement-401k': TaxonomyEntry('401k', 'asset', 'retirement'),
    'retirement-ira': TaxonomyEntry('IRA', 'asset', 'retirement'),
    'other-asset': TaxonomyEntry('Other Asset', 'asset', 'other'),
    # Liabilities
    'credit-card': TaxonomyEntry('Credit Card', 'liability', 'debt'),
    'personal-loan': TaxonomyEntry('Personal Loan', 'liability', 'debt'),
    'auto-loan': TaxonomyEntry('Auto Loan', 'liability', 'debt'),
    'mortgage-debt': TaxonomyEntry('Mortgage', 'liability', 'debt'),
    'student-loan': TaxonomyEntry('Student Loan', 'liability', 'debt'),
    'other-liability': TaxonomyEntry('Other Debt', 'liability', 'debt'),
}

# Description keywords used when the taxonomy has no hint
DESCRIPTION_KEYWORDS = (
    (('grocery', 'food'), 'food'),
    (('gas', 'fuel'), 'transportation'),
    (('restaurant', 'coffee'), 'food'),
    (('netflix', 'spotify'), 'subscriptions'),
)


def is_savings_contribution(transaction: Transaction) -> bool:
    """Return True when ``transaction`` moves money into a savings vehicle."""
    return transaction.type == 'asset' and transaction.category_id in SAVINGS_CATEGORIES


class CategoryRule(NamedTuple):
    transaction_type: str
    category_ids: FrozenSet[str]


def category_rule(category: BudgetCategory) -> CategoryRule:
    """Return the transaction type and category ids that count toward ``category``.

    Savings-type budget categories collect asset contributions through their
    mapping only.  Every other budget category collects expenses through its
    mapping, falling back to a direct id match.
    """
    if category.is_savings_type:
        return CategoryRule('asset', frozenset(category.transaction_categories))
    return CategoryRule('expense', frozenset(category.transaction_categories) | {category.id})


def category_matches(category: BudgetCategory, transaction_type: str, category_id: str) -> bool:
    """Return True when a transaction of the given type/category counts toward ``category``."""
    rule = category_rule(category)
    return transaction_type == rule.transaction_type and category_id in rule.category_ids


def find_budget_category(transaction: Transaction, budget: Budget) -> Optional[BudgetCategory]:
    """Return the first budget category of ``budget`` that ``transaction`` counts toward."""
    for category in budget.categories:
        if category_matches(category, transaction.type, transaction.category_id):
            return category
    return None


def get_unmapped_transactions(
    transactions: Iterable[Transaction],
    budget: Budget,
    *,
    period_scoped: bool = False,
) -> List[Transaction]:
    """List live expense/asset transactions that match no category of ``budget``.

    Unmapped transactions still count in the top-level totals of a snapshot;
    this filter only exists so a UI can surface them for re-mapping.  With
    ``period_scoped`` only transactions dated inside the budget period are
    listed, matching a period-scoped snapshot.
    """
    return [
        t for t in transactions
        if not t.deleted
        and t.type in CATEGORIZED_TRANSACTION_TYPES
        and (not period_scoped or budget.period.contains(t.date))
        and find_budget_category(t, budget) is None
    ]


def map_transaction_to_budget_category(transaction: Transaction) -> Optional[str]:
    """Return the taxonomy's budget-category hint for ``transaction`` (or None)."""
    entry = TRANSACTION_CATEGORIES.get(transaction.category_id)
    return entry.budget_category if entry else None


def suggest_budget_category_for_transaction(transaction: Transaction) -> List[str]:
    """Suggest budget category types for a transaction.

    Example:
        >>> suggest_budget_category_for_transaction(txn)  # category_id='groceries'
        ['food']
    """
    hint = map_transaction_to_budget_category(transaction)
    if hint:
        return [hint]

    description = (transaction.description or '').lower()
    suggestions: List[str] = []
    for keywords, budget_type in DESCRIPTION_KEYWORDS:
        if any(keyword in description for keyword in keywords):
            suggestions.append(budget_type)
    return suggestions or ['other']
