"""
CLI runner module.

Provides commands:
- fetch: List bank transactions
- stats: Credit/debit totals
- search: Transactions of one supplier
- learn: Retroactive supplier learning
- unknown: Debits that match no known supplier
- suppliers: Manage the supplier registry
- audit: Report questionable aliases
- init-config: Write a default config file
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
