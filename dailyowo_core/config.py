"""Configuration management for the reconciliation core.

This module centralizes the tunable defaults of the budget engine and the
duplicate detector.  Every value can be overridden through a ``DAILYOWO_*``
environment variable read at import time.
"""

from __future__ import annotations

import os
from typing import Any, Dict


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() in {'1', 'true', 'yes', 'on'}


# Duplicate detection
DUPLICATE_TIME_WINDOW_HOURS = _env_float('DAILYOWO_DUPLICATE_WINDOW_HOURS', 24.0)
DUPLICATE_MINIMUM_SCORE = _env_int('DAILYOWO_DUPLICATE_MINIMUM_SCORE', 75)
DUPLICATE_BLOCK_SCORE = _env_int('DAILYOWO_DUPLICATE_BLOCK_SCORE', 90)
DUPLICATE_MAX_MATCHES = _env_int('DAILYOWO_DUPLICATE_MAX_MATCHES', 5)

# Budget engine
APPROACHING_LIMIT_RATIO = _env_float('DAILYOWO_APPROACHING_LIMIT_RATIO', 0.8)
PERIOD_SCOPED_AGGREGATION = _env_bool('DAILYOWO_PERIOD_SCOPED', True)
DEFAULT_CURRENCY = os.getenv('DAILYOWO_DEFAULT_CURRENCY', 'EUR')

# Logging level used by the scripts/ entry points
LOG_LEVEL = os.getenv('DAILYOWO_LOG_LEVEL', 'WARNING').upper()


def get_duplicate_defaults() -> Dict[str, Any]:
    """Return the default duplicate-detection options as a plain dictionary.

    Returns:
        Mapping of option name to value, suitable for ``DuplicateDetectionOptions(**defaults)``
    """
    return {
        'time_window_hours': DUPLICATE_TIME_WINDOW_HOURS,
        'amount_tolerance': 0.0,
        'enable_fuzzy_matching': True,
        'minimum_score': DUPLICATE_MINIMUM_SCORE,
        'strict_mode': False,
    }
