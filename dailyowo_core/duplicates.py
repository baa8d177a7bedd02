"""Duplicate transaction detection.

A candidate transaction is compared with every transaction in a comparison
pool (same owner, same type, close in time).  Each pair is scored by a fixed
set of independent weighted rules; the best pair decides whether the write
should be blocked, flagged or allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from . import config
from .exceptions import DuplicateDetectionError
from .models import Transaction, transactions_to_frame
from .stores import TransactionStore

logger = logging.getLogger(__name__)

EXACT_AMOUNT_EPSILON = 0.01
STRICT_MODE_CAP = 50
MAX_SCORE = 100
FAIL_OPEN_REASON = 'Error during duplicate detection'

SIMILAR_AMOUNT_TIERS = (
    (1.0, 20, 'Very similar amount (within 1%)'),
    (5.0, 15, 'Similar amount (within 5%)'),
)
DESCRIPTION_TIERS = (
    (0.9, 18, 'Very similar description (90%+)'),
    (0.8, 15, 'Similar description (80%+)'),
    (0.7, 10, 'Somewhat similar description (70%+)'),
)
CLOSE_TIME_TIERS = (
    (5, 10, 'Very close time (within 5 minutes)'),
    (30, 8, 'Close time (within 30 minutes)'),
    (120, 5, 'Somewhat close time (within 2 hours)'),
)


class RuleResult(NamedTuple):
    matches: bool
    score: int
    reason: Optional[str] = None


NO_MATCH = RuleResult(False, 0)


class DuplicateRule(NamedTuple):
    name: str
    weight: int
    check: Callable[[Transaction, Transaction], RuleResult]


@dataclass
class DuplicateDetectionOptions:
    time_window_hours: float = config.DUPLICATE_TIME_WINDOW_HOURS
    amount_tolerance: float = 0.0  # percent, 0 disables the pre-filter
    enable_fuzzy_matching: bool = True
    minimum_score: float = config.DUPLICATE_MINIMUM_SCORE
    strict_mode: bool = False


@dataclass(frozen=True)
class DuplicateMatch:
    transaction_id: str
    score: float
    reasons: Tuple[str, ...]
    transaction: Transaction


@dataclass
class DuplicateDetectionResult:
    is_duplicate: bool
    confidence: float
    matches: List[DuplicateMatch] = field(default_factory=list)
    suggestion: str = 'allow'
    reasons: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# String similarity
# ---------------------------------------------------------------------------


def levenshtein_distance(first: str, second: str) -> int:
    """Edit distance between two strings (insertions, deletions, substitutions)."""
    if first == second:
        return 0
    if not first or not second:
        return max(len(first), len(second))

    second_chars = np.array(list(second))
    offsets = np.arange(len(second) + 1)
    row = offsets.copy()
    for i, char in enumerate(first, start=1):
        candidate = np.empty_like(row)
        candidate[0] = i
        candidate[1:] = np.minimum(row[1:] + 1, row[:-1] + (second_chars != char))
        # Insertions chain left to right: row[j] = min_k candidate[k] + (j - k)
        row = np.minimum.accumulate(candidate - offsets) + offsets
    return int(row[-1])


def string_similarity(first: str, second: str) -> float:
    """Normalized Levenshtein similarity in ``[0, 1]`` of two lower-cased, trimmed strings."""
    a = (first or '').lower().strip()
    b = (second or '').lower().strip()
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    longest = max(len(a), len(b))
    return (longest - levenshtein_distance(a, b)) / longest


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _is_exact_amount(t1: Transaction, t2: Transaction) -> bool:
    return abs(t1.amount - t2.amount) < EXACT_AMOUNT_EPSILON


def _exact_amount(t1: Transaction, t2: Transaction) -> RuleResult:
    if _is_exact_amount(t1, t2):
        return RuleResult(True, 30, 'Exact amount match')
    return NO_MATCH


def _similar_amount(t1: Transaction, t2: Transaction) -> RuleResult:
    average = (t1.amount + t2.amount) / 2
    percent_diff = abs(t1.amount - t2.amount) / average * 100
    for limit, score, reason in SIMILAR_AMOUNT_TIERS:
        if percent_diff <= limit:
            return RuleResult(True, score, reason)
    return NO_MATCH


def _same_category(t1: Transaction, t2: Transaction) -> RuleResult:
    if t1.category_id == t2.category_id:
        return RuleResult(True, 15, 'Same category')
    return NO_MATCH


def _same_merchant(t1: Transaction, t2: Transaction) -> RuleResult:
    if not t1.merchant or not t2.merchant:
        return NO_MATCH
    if t1.merchant.lower() == t2.merchant.lower():
        return RuleResult(True, 25, 'Same merchant')
    return NO_MATCH


def _similar_description(t1: Transaction, t2: Transaction) -> RuleResult:
    first = t1.description.lower().strip()
    second = t2.description.lower().strip()
    if first == second:
        return RuleResult(True, 20, 'Exact description match')
    similarity = string_similarity(first, second)
    for threshold, score, reason in DESCRIPTION_TIERS:
        if similarity >= threshold:
            return RuleResult(True, score, reason)
    return NO_MATCH


def _same_payment_method(t1: Transaction, t2: Transaction) -> RuleResult:
    if not t1.payment_method or not t2.payment_method:
        return NO_MATCH
    if t1.payment_method == t2.payment_method:
        return RuleResult(True, 10, 'Same payment method')
    return NO_MATCH


def _same_location(t1: Transaction, t2: Transaction) -> RuleResult:
    first, second = t1.location_name, t2.location_name
    if not first or not second:
        return NO_MATCH
    if first.lower() == second.lower():
        return RuleResult(True, 15, 'Same location')
    return NO_MATCH


def _close_time(t1: Transaction, t2: Transaction) -> RuleResult:
    minutes = abs((t1.date - t2.date).total_seconds()) / 60
    for limit, score, reason in CLOSE_TIME_TIERS:
        if minutes <= limit:
            return RuleResult(True, score, reason)
    return NO_MATCH


DUPLICATE_RULES: Tuple[DuplicateRule, ...] = (
    DuplicateRule('exact_amount', 30, _exact_amount),
    DuplicateRule('similar_amount', 20, _similar_amount),
    DuplicateRule('same_category', 15, _same_category),
    DuplicateRule('same_merchant', 25, _same_merchant),
    DuplicateRule('similar_description', 20, _similar_description),
    DuplicateRule('same_payment_method', 10, _same_payment_method),
    DuplicateRule('same_location', 15, _same_location),
    DuplicateRule('close_time', 10, _close_time),
)
FUZZY_RULES = {'similar_description'}


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class DuplicateDetector:
    """Scores transactions against each other with :data:`DUPLICATE_RULES`."""

    def __init__(
        self,
        options: Optional[DuplicateDetectionOptions] = None,
        rules: Sequence[DuplicateRule] = DUPLICATE_RULES,
    ) -> None:
        self.options = options or DuplicateDetectionOptions()
        self.rules = tuple(rules)

    # Public API -------------------------------------------------------------

    def evaluate_match(
        self,
        first: Transaction,
        second: Transaction,
        options: Optional[DuplicateDetectionOptions] = None,
    ) -> Tuple[float, List[str]]:
        """Return the clamped pair score and the reasons of every rule that fired."""
        opts = options or self.options
        total = 0
        reasons: List[str] = []
        for rule in self.rules:
            if not opts.enable_fuzzy_matching and rule.name in FUZZY_RULES:
                continue
            result = rule.check(first, second)
            if result.matches:
                total += result.score
                if result.reason:
                    reasons.append(result.reason)

        if opts.strict_mode and not (_is_exact_amount(first, second) and first.category_id == second.category_id):
            total = min(total, STRICT_MODE_CAP)

        return max(0, min(total, MAX_SCORE)), reasons

    def detect(
        self,
        candidate: Transaction,
        pool: Union[TransactionStore, Iterable[Transaction]],
        options: Optional[DuplicateDetectionOptions] = None,
    ) -> DuplicateDetectionResult:
        """Score ``candidate`` against ``pool`` and recommend block, warn or allow.

        Args:
            candidate: Transaction about to be written
            pool: Sequence of existing transactions, or a store exposing
                ``list_transactions(user_id, start_date=, end_date=, type=)``
            options: Overrides for this call only

        Returns:
            DuplicateDetectionResult.  When the pool cannot be fetched the
            result fails open (``allow`` with zero confidence).
        """
        opts = options or self.options
        try:
            existing = self._load_pool(candidate, pool, opts)
        except DuplicateDetectionError:
            logger.exception('Duplicate detection failed for transaction %s; allowing write', candidate.id)
            return DuplicateDetectionResult(
                is_duplicate=False,
                confidence=0,
                matches=[],
                suggestion='allow',
                reasons=[FAIL_OPEN_REASON],
            )

        matches: List[DuplicateMatch] = []
        for other in self._comparable(candidate, existing, opts):
            score, reasons = self.evaluate_match(candidate, other, opts)
            if score >= opts.minimum_score:
                matches.append(DuplicateMatch(other.id, score, tuple(reasons), other))

        matches.sort(key=lambda match: match.score, reverse=True)
        highest = matches[0].score if matches else 0
        suggestion = _suggestion(highest, opts.minimum_score)
        logger.debug(
            'Duplicate check for %s: %d candidates, %d matches, best=%s (%s)',
            candidate.id, len(existing), len(matches), highest, suggestion,
        )
        return DuplicateDetectionResult(
            is_duplicate=highest >= opts.minimum_score,
            confidence=highest,
            matches=matches[:config.DUPLICATE_MAX_MATCHES],
            suggestion=suggestion,
            reasons=list(matches[0].reasons) if matches else [],
        )

    # Internal ----------------------------------------------------------------

    def _load_pool(
        self,
        candidate: Transaction,
        pool: Union[TransactionStore, Iterable[Transaction]],
        opts: DuplicateDetectionOptions,
    ) -> List[Transaction]:
        if pool is None:
            raise DuplicateDetectionError('No comparison pool supplied')
        window = timedelta(hours=opts.time_window_hours)
        try:
            if isinstance(pool, TransactionStore):
                return list(pool.list_transactions(
                    candidate.user_id,
                    start_date=candidate.date - window,
                    end_date=candidate.date + window,
                    type=candidate.type,
                ))
            # Lazy iterables are consumed here
            return list(pool)
        except Exception as exc:
            raise DuplicateDetectionError(f'Could not load comparison pool: {exc}') from exc

    def _comparable(
        self,
        candidate: Transaction,
        existing: Iterable[Transaction],
        opts: DuplicateDetectionOptions,
    ) -> List[Transaction]:
        window_seconds = opts.time_window_hours * 3600
        tolerance = candidate.amount * (opts.amount_tolerance / 100)
        comparable = []
        for other in existing:
            if other.deleted or other.user_id != candidate.user_id or other.type != candidate.type:
                continue
            if candidate.id and other.id == candidate.id:
                continue
            if abs((other.date - candidate.date).total_seconds()) > window_seconds:
                continue
            if opts.amount_tolerance and abs(other.amount - candidate.amount) > tolerance:
                continue
            comparable.append(other)
        return comparable


def _suggestion(score: float, minimum_score: float) -> str:
    if score >= config.DUPLICATE_BLOCK_SCORE:
        return 'block'
    if score >= minimum_score:
        return 'warn'
    return 'allow'


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def detect_duplicates(
    candidate: Transaction,
    pool: Union[TransactionStore, Iterable[Transaction]],
    options: Optional[DuplicateDetectionOptions] = None,
) -> DuplicateDetectionResult:
    """Convenience wrapper around :meth:`DuplicateDetector.detect`."""
    return DuplicateDetector(options).detect(candidate, pool)


def find_potential_duplicates(
    transactions: Iterable[Transaction],
    *,
    window_days: float = 7,
    minimum_score: float = 70,
    options: Optional[DuplicateDetectionOptions] = None,
) -> List[Tuple[Transaction, List[DuplicateMatch]]]:
    """Scan a transaction history for pairs that look like the same event.

    Each live transaction is compared with the later transactions of the
    same owner that fall within ``window_days``.  Returns ``(original,
    matches)`` groups ordered by date, matches sorted by score.
    """
    live = [t for t in transactions if not t.deleted]
    if not live:
        return []

    detector = DuplicateDetector(options)
    by_id: Dict[str, Transaction] = {t.id: t for t in live}
    frame = transactions_to_frame(live).sort_values(['user_id', 'date', 'id'], kind='mergesort')
    window = pd.Timedelta(days=window_days)

    results: List[Tuple[Transaction, List[DuplicateMatch]]] = []
    for _, group in frame.groupby('user_id', sort=True):
        ids = group['id'].tolist()
        dates = group['date'].to_numpy()
        upper = np.searchsorted(dates, dates + window.to_timedelta64(), side='right')
        for i, current_id in enumerate(ids):
            current = by_id[current_id]
            matches = []
            for j in range(i + 1, int(upper[i])):
                other = by_id[ids[j]]
                score, reasons = detector.evaluate_match(current, other)
                if score >= minimum_score:
                    matches.append(DuplicateMatch(other.id, score, tuple(reasons), other))
            if matches:
                matches.sort(key=lambda match: match.score, reverse=True)
                results.append((current, matches))

    results.sort(key=lambda item: (item[0].date, item[0].id))
    logger.debug('Potential duplicate scan found %d groups in %d transactions', len(results), len(live))
    return results
