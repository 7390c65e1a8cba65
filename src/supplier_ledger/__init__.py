"""
Billit bank transactions → canonical suppliers.

Retrieves the bank ledger from the Billit API, resolves each free-text
counterparty description to a known supplier, and learns new suppliers
from descriptions it has not seen before.
"""

__version__ = "0.1.0"
