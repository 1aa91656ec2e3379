"""
Shared fixtures.

Every test gets its own SQLite file database under tmp_path, so tests
never see each other's rows and threads can share one database.
"""

from datetime import date
from decimal import Decimal

import pytest

from src.config import DatabaseSettings, LedgerSettings
from src.ledger import LedgerEngine
from src.models.ledger import (
    AccountCreate,
    AccountType,
    CategoryCreate,
    CategoryType,
    TransactionCreate,
    TransactionType,
)
from src.services.storage import Database


OWNER = 1
OTHER_OWNER = 2
TODAY = date(2025, 6, 15)


@pytest.fixture
def database(tmp_path):
    db = Database(
        url=f"sqlite:///{tmp_path / 'ledger.db'}",
        settings=DatabaseSettings(url="sqlite://", echo=False, connect_retries=1),
    )
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def ledger_settings():
    return LedgerSettings(
        immutable_after_days=30,
        bulk_limit=5,
        default_currency="PHP",
        balance_tolerance=Decimal("0.01"),
    )


@pytest.fixture
def engine(database, ledger_settings):
    return LedgerEngine(database, settings=ledger_settings, clock=lambda: TODAY)


@pytest.fixture
def make_account(engine):
    """Open an account; balances and limits are given as strings."""

    def _make(
        account_type=AccountType.BANK,
        balance="0",
        credit_limit=None,
        owner_id=OWNER,
        is_active=True,
    ):
        return engine.open_account(
            owner_id,
            AccountCreate(
                name=f"{account_type.value} account",
                type=account_type,
                initial_balance=Decimal(balance),
                credit_limit=Decimal(credit_limit) if credit_limit is not None else None,
                is_active=is_active,
            ),
        )

    return _make


@pytest.fixture
def category(engine):
    return engine.create_category(OWNER, CategoryCreate(name="General", type=CategoryType.EXPENSE))


@pytest.fixture
def new_tx(category):
    """Build a TransactionCreate with sensible defaults."""

    def _build(account_id, amount, tx_type=TransactionType.EXPENSE, **kwargs):
        kwargs.setdefault("category_id", category.id)
        kwargs.setdefault("date", TODAY)
        return TransactionCreate(
            account_id=account_id,
            amount=Decimal(amount),
            type=tx_type,
            **kwargs,
        )

    return _build


@pytest.fixture
def balance_of(engine):
    """Current stored balance of an account."""

    def _balance(account_id, owner_id=OWNER):
        return engine.get_account(owner_id, account_id).balance

    return _balance
