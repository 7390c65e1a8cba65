"""
Billit bank transaction client.

Provides:
- Paginated retrieval of financial transactions (GET /v1/financialTransactions)
- TTL cache with single-flight fetching for unbounded queries
- Period queries re-filtered client-side to the exact day window
- Credit/debit views, supplier search and statistics
- Supplier learning on every converted transaction

Upstream failures never propagate out of a fetch: they are logged and the
rows fetched so far are returned.
"""

from .cache import CacheEntry, CacheStats, InFlightRegistry, TransactionCache
from .client import (
    BankAPIError,
    BankClient,
    BankConnectionError,
    BankError,
    BankTransaction,
    TransactionStats,
    UpstreamFetchError,
    parse_date,
)

__all__ = [
    "BankClient",
    "BankError",
    "BankAPIError",
    "BankConnectionError",
    "UpstreamFetchError",
    "BankTransaction",
    "TransactionStats",
    "TransactionCache",
    "CacheEntry",
    "CacheStats",
    "InFlightRegistry",
    "parse_date",
]
