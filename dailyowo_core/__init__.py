"""Top-level package for the DailyOwo financial reconciliation core.

The core is a set of pure computations over already-fetched data.  The
primary modules are:

* ``budgets`` - the budget aggregation engine, budget creation and periods
* ``duplicates`` - the duplicate transaction scorer
* ``categories`` - the transaction category taxonomy and mapping helpers
* ``models`` - typed transactions, budgets and snapshot results
* ``stores`` - protocols for the externally owned transaction and budget stores

Nothing here performs I/O or configures logging; callers own both.
"""

from . import budgets  # noqa: F401  # re-exported for convenience
from . import categories  # noqa: F401
from . import duplicates  # noqa: F401
from . import models  # noqa: F401
from . import stores  # noqa: F401
from .budgets import compute_budget_snapshot, create_budget_from_method, rollover_budget_amounts
from .duplicates import detect_duplicates
from .exceptions import DuplicateDetectionError, FinanceCoreError, InvalidInputError

__version__ = '0.1.0'

__all__ = [
    'budgets',
    'categories',
    'duplicates',
    'models',
    'stores',
    'compute_budget_snapshot',
    'create_budget_from_method',
    'rollover_budget_amounts',
    'detect_duplicates',
    'FinanceCoreError',
    'InvalidInputError',
    'DuplicateDetectionError',
]
