"""
Shared fixtures for the reconciliation tests.
"""

import random

import pytest
from datetime import date
from decimal import Decimal

from bankrec.models import Transaction, TransactionSource


def make_transaction(source, index, day, amount, description=""):
    """Build a Transaction from an ISO date string and a decimal amount string."""
    source = TransactionSource(source)
    return Transaction(
        id=f"{source.value}-{index}",
        source=source,
        date=date.fromisoformat(day),
        amount_cents=int(Decimal(amount) * 100),
        description=description,
        row_index=index,
    )


def random_ledgers(seed, size=40):
    """Two seeded pseudo-random ledgers spread over February 2024."""
    rng = random.Random(seed)
    bank, cash = [], []
    for i in range(size):
        day = f"2024-02-{rng.randint(1, 28):02d}"
        amount = f"{rng.randint(-5000, 5000) / 100:.2f}"
        bank.append(make_transaction("bank", i, day, amount, rng.choice(["rent", "fee", "INV 1001", ""])))
    for i in range(size):
        day = f"2024-02-{rng.randint(1, 28):02d}"
        amount = f"{rng.randint(-5000, 5000) / 100:.2f}"
        cash.append(make_transaction("cashbook", i, day, amount, rng.choice(["rent paid", "fee", "1001", ""])))
    return bank, cash


@pytest.fixture
def txn():
    """Factory fixture: txn("bank", 0, "2024-01-05", "100.00", "Invoice 123")."""
    return make_transaction


@pytest.fixture
def bank_csv():
    return (
        "Date,Description,Amount\n"
        "2024-01-05,Invoice 123,100.00\n"
        "2024-01-06,Office rent,-1500.00\n"
        "2024-01-09,Card fee,-2.50\n"
    )


@pytest.fixture
def cashbook_csv():
    return (
        "Txn Date,Narration,Withdrawal,Deposit\n"
        "05/01/2024,INV 123 payment,,100.00\n"
        "06/01/2024,Office rent January,1500.00,\n"
        "12/01/2024,Petty cash,40.00,\n"
    )
