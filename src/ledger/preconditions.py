"""
Ledger Pre-condition Contract

DESIGN DECISION: Every rule about "may this caller touch these rows"
lives here, checked once inside the ledger unit:

- referenced accounts, categories and transactions belong to the caller
- accounts receiving a new effect are active and not deleted
- a transfer names a different, active transfer account (and only a
  transfer names one)
- protected fields of old cleared transactions are frozen

Request validators upstream check types and ranges only; they are not
trusted with any of the above.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.config import LedgerSettings
from src.ledger.errors import ImmutableTransaction, InvalidTransfer, NotFound
from src.models.ledger import TransactionType
from src.services.storage.tables import AccountRow, CategoryRow, TransactionRow


PROTECTED_FIELDS = ("amount", "account_id", "type", "transfer_account_id")


class LedgerPreconditions:
    """
    Pre-condition checks bound to one ledger unit and one owner.

    Args:
        session: Session of the ledger unit the checks run in
        owner_id: The caller; every lookup is scoped to it
        settings: Ledger business rules
        today: Reference date for the edit window
    """

    def __init__(
        self,
        session: Session,
        owner_id: int,
        settings: LedgerSettings,
        today: date,
    ):
        self._session = session
        self.owner_id = owner_id
        self._settings = settings
        self.today = today

    # ------------------------------------------------------------------
    # Row loading
    # ------------------------------------------------------------------

    def lock_accounts(self, account_ids: Iterable[Optional[int]]) -> dict[int, AccountRow]:
        """
        Load and row-lock the caller's accounts, in ascending id order.

        A fixed lock order keeps two units that touch the same pair of
        accounts from deadlocking. Missing or foreign ids are simply
        absent from the result; the require_* methods decide what that means.
        """
        ids = sorted({i for i in account_ids if i is not None})
        if not ids:
            return {}
        stmt = (
            select(AccountRow)
            .where(AccountRow.id.in_(ids), AccountRow.owner_id == self.owner_id)
            .order_by(AccountRow.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {row.id: row for row in self._session.scalars(stmt)}

    def require_account(self, accounts: dict[int, AccountRow], account_id: int) -> AccountRow:
        """An account that may receive a new effect."""
        account = accounts.get(account_id)
        if account is None or account.deleted_at is not None:
            raise NotFound("account", account_id)
        if not account.is_active:
            raise NotFound("account", account_id, "is not active")
        return account

    def require_existing_account(self, accounts: dict[int, AccountRow], account_id: int) -> AccountRow:
        """An account an existing effect is reversed on; status does not matter."""
        account = accounts.get(account_id)
        if account is None:
            raise NotFound("account", account_id)
        return account

    def category(self, category_id: int) -> CategoryRow:
        category = self._session.get(CategoryRow, category_id)
        if (
            category is None
            or category.owner_id != self.owner_id
            or category.deleted_at is not None
        ):
            raise NotFound("category", category_id)
        return category

    def transaction(self, transaction_id: int, lock: bool = True) -> TransactionRow:
        stmt = select(TransactionRow).where(
            TransactionRow.id == transaction_id,
            TransactionRow.owner_id == self.owner_id,
            TransactionRow.deleted_at.is_(None),
        )
        if lock:
            stmt = stmt.with_for_update()
        row = self._session.scalars(stmt.execution_options(populate_existing=True)).first()
        if row is None:
            raise NotFound("transaction", transaction_id)
        return row

    # ------------------------------------------------------------------
    # Transfer consistency
    # ------------------------------------------------------------------

    def transfer_shape(
        self,
        tx_type,
        account_id: int,
        transfer_account_id: Optional[int],
    ) -> None:
        """type=transfer <=> a transfer account different from the source."""
        is_transfer = TransactionType(tx_type) == TransactionType.TRANSFER

        if is_transfer and transfer_account_id is None:
            raise InvalidTransfer("Transfers require a destination account")
        if is_transfer and transfer_account_id == account_id:
            raise InvalidTransfer("Cannot transfer to the same account")
        if not is_transfer and transfer_account_id is not None:
            raise InvalidTransfer(
                "Only transfer transactions may reference a transfer account",
                transfer_account_id=transfer_account_id,
            )

    def require_transfer_account(
        self,
        accounts: dict[int, AccountRow],
        transfer_account_id: int,
    ) -> AccountRow:
        account = accounts.get(transfer_account_id)
        if account is None or account.deleted_at is not None:
            raise InvalidTransfer(
                f"Transfer account {transfer_account_id} does not exist",
                transfer_account_id=transfer_account_id,
            )
        if not account.is_active:
            raise InvalidTransfer(
                f"Transfer account {transfer_account_id} is not active",
                transfer_account_id=transfer_account_id,
            )
        return account

    # ------------------------------------------------------------------
    # Edit window
    # ------------------------------------------------------------------

    def is_locked(self, transaction: TransactionRow) -> bool:
        cutoff = self.today - timedelta(days=self._settings.immutable_after_days)
        return bool(transaction.is_cleared) and transaction.date < cutoff

    def editable(self, transaction: TransactionRow, new_values: dict) -> None:
        """
        Reject changes to the amount, accounts or type of an old cleared transaction.

        A field only counts as changed when its new value differs from
        the stored one, so re-submitting the current values is allowed.
        """
        if not self.is_locked(transaction):
            return

        changed = []
        for field in PROTECTED_FIELDS:
            if field not in new_values:
                continue
            current = getattr(transaction, field)
            new = new_values[field]
            if field == "type":
                new = TransactionType(new).value
            if new != current:
                changed.append(field)

        if changed:
            raise ImmutableTransaction(
                transaction.id, changed, self._settings.immutable_after_days
            )
