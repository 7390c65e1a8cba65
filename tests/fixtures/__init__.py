"""
Test fixtures for Billit transactions.

This module provides:
- Raw statement descriptions, one per extraction grammar
- Builders for financialTransactions rows and pages
- Pages with distinct value dates, newest first
"""

from datetime import datetime, timedelta

BASE_URL = "https://billit.test/api"
TRANSACTIONS_URL = f"{BASE_URL}/v1/financialTransactions"

# Raw descriptions as they appear on Belgian bank statements
SAMPLE_DESCRIPTIONS = {
    "leading_name": "Belgian Shell SA -          DEBIT POUR DOMICILIATION 2024-03",
    "transfer_beneficiary": "VIREMENT EN FAVEUR DE mediwet BE91390123456789 Paiement facture",
    "collection_keyword": "RECOUVREMENT EUROPÉEN KBC BANK NV 0001 0001 7781",
    "uppercase_legal_entity": "ACME TRADING SA REF 88",
}


def make_row(
    tx_id: int,
    amount: float = 10.0,
    tx_type: str = "Debit",
    value_date: str = "2024-03-15T00:00:00",
    counterparty: str = "EDENRED BELGIUM SA",
    note: str = "Paiement",
) -> dict:
    """One raw financialTransactions row."""
    return {
        "BankAccountTransactionID": tx_id,
        "BankAccountID": 7,
        "IBAN": "BE68 5390 0754 7034",
        "TotalAmount": amount,
        "TransactionType": tx_type,
        "ValueDate": value_date,
        "NameCounterParty": counterparty,
        "Note": note,
        "Currency": "EUR",
    }


def make_page(start_id: int, count: int, **kwargs) -> dict:
    """A page of ``count`` rows wrapped the way the API returns them."""
    return {"Items": [make_row(start_id + i, **kwargs) for i in range(count)]}


def make_dated_page(
    start_id: int, count: int, newest: datetime = datetime(2024, 3, 31, 12)
) -> dict:
    """A page whose rows are one hour apart, newest first, continuing across pages by id."""
    return {
        "Items": [
            make_row(
                start_id + i,
                value_date=(newest - timedelta(hours=start_id + i)).isoformat(),
            )
            for i in range(count)
        ]
    }
