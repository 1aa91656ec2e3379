"""
Ledger Mutation Engine

DESIGN DECISION: Every balance-affecting operation is one ledger unit.
A unit is one session and one database transaction in which:
1. The touched account rows are locked (ascending id order)
2. Pre-conditions are checked against the locked rows
3. The transaction row and the account balances are written together

Either all of it commits or none of it does. A refused operation
raises a LedgerError and leaves every row exactly as it was.

The engine never retries. A ConcurrencyConflict is reported to the
caller, who may decide to try again.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Iterator, Optional

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.config import LedgerSettings, get_settings
from src.ledger.effects import apply_legs, legs_for, net_deltas, reverse
from src.ledger.errors import BatchTooLarge, ConcurrencyConflict, LedgerError, NotFound
from src.ledger.schedule import advance, count_occurrences
from src.models.ledger import (
    AccountCreate,
    AccountView,
    BalanceChangeType,
    BalanceDiscrepancy,
    BulkFailure,
    BulkResult,
    CategoryCreate,
    CategoryType,
    CategoryView,
    RecurringTemplateCreate,
    RecurringTemplateView,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
    TransactionView,
    TransferRequest,
)
from src.services.storage import Database, StorageError
from src.services.storage.tables import (
    AccountRow,
    BalanceHistoryRow,
    CategoryRow,
    RecurringTransactionRow,
    TransactionRow,
    utcnow,
)
from src.ledger.preconditions import LedgerPreconditions


logger = structlog.get_logger(__name__)


TRANSFER_CATEGORY = "Transfer"
ADJUSTMENT_CATEGORY = "Balance Adjustment"

# Fields of TransactionUpdate that cannot be cleared by sending None
REQUIRED_FIELDS = ("account_id", "category_id", "amount", "type", "date", "description", "is_cleared")

# PostgreSQL SQLSTATEs for serialization failure, deadlock, lock not available
_LOCK_SQLSTATES = {"40001", "40P01", "55P03"}


def _is_lock_failure(error: OperationalError) -> bool:
    if getattr(error.orig, "pgcode", None) in _LOCK_SQLSTATES:
        return True
    message = str(error.orig).lower()
    return "locked" in message or "deadlock" in message or "could not serialize" in message


@dataclass
class LedgerUnit:
    """The session of one ledger unit and the checks bound to it."""

    session: Session
    checks: LedgerPreconditions

    @property
    def owner_id(self) -> int:
        return self.checks.owner_id


class LedgerEngine:
    """
    Applies transaction mutations and keeps account balances consistent.

    Every public method takes the acting owner_id explicitly and returns
    post-commit read views.

    Args:
        database: Database providing sessions
        settings: Ledger business rules (defaults to the global settings)
        clock: Callable returning "today"; injectable for tests and batch runs
    """

    def __init__(
        self,
        database: Database,
        settings: Optional[LedgerSettings] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self._database = database
        self._settings = settings or get_settings().ledger
        self._clock = clock or date.today

    @property
    def database(self) -> Database:
        return self._database

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    def today(self) -> date:
        return self._clock()

    # =========================================================================
    # LEDGER UNIT
    # =========================================================================

    @contextmanager
    def unit(self, owner_id: int, today: Optional[date] = None) -> Iterator[LedgerUnit]:
        """
        Open one ledger unit for `owner_id`.

        Commits when the block exits normally, rolls back on any error.

        Raises:
            ConcurrencyConflict: Account rows could not be locked or the
                database refused to serialise the unit
            StorageError: Any other database failure
        """
        session = self._database.session()
        checks = LedgerPreconditions(session, owner_id, self._settings, today or self.today())
        try:
            with session.begin():
                yield LedgerUnit(session, checks)
        except OperationalError as e:
            if _is_lock_failure(e):
                logger.warning("ledger_unit_conflict", owner_id=owner_id, error=str(e.orig))
                raise ConcurrencyConflict(
                    "Account is being modified by another operation, try again",
                    owner_id=owner_id,
                ) from e
            logger.error("ledger_unit_failed", owner_id=owner_id, error=str(e))
            raise StorageError(f"Ledger unit failed: {e}") from e
        except LedgerError as e:
            logger.info("ledger_unit_rejected", owner_id=owner_id, code=e.code, error=e.message)
            raise
        except SQLAlchemyError as e:
            logger.error("ledger_unit_failed", owner_id=owner_id, error=str(e))
            raise StorageError(f"Ledger unit failed: {e}") from e
        finally:
            session.close()

    # =========================================================================
    # ACCOUNTS AND CATEGORIES
    # =========================================================================

    def open_account(self, owner_id: int, data: AccountCreate) -> AccountView:
        """Create an account whose balance starts at its initial balance."""
        with self.unit(owner_id) as unit:
            account = AccountRow(
                owner_id=owner_id,
                name=data.name,
                type=data.type.value,
                balance=data.initial_balance,
                initial_balance=data.initial_balance,
                credit_limit=data.credit_limit,
                currency=data.currency or self._settings.default_currency,
                is_active=data.is_active,
                include_in_net_worth=data.include_in_net_worth,
            )
            unit.session.add(account)
            unit.session.flush()
            self._record_history(
                unit,
                {account.id: account},
                {account.id: data.initial_balance},
                BalanceChangeType.INITIAL,
            )

        logger.info("account_opened", owner_id=owner_id, account_id=account.id, type=account.type)
        return AccountView.model_validate(account)

    def create_category(self, owner_id: int, data: CategoryCreate) -> CategoryView:
        with self.unit(owner_id) as unit:
            category = CategoryRow(owner_id=owner_id, name=data.name, type=data.type.value)
            unit.session.add(category)
            unit.session.flush()
        return CategoryView.model_validate(category)

    def get_account(self, owner_id: int, account_id: int) -> AccountView:
        with self._database.session() as session:
            account = session.get(AccountRow, account_id)
            if account is None or account.owner_id != owner_id or account.deleted_at is not None:
                raise NotFound("account", account_id)
            return AccountView.model_validate(account)

    def list_accounts(self, owner_id: int) -> list[AccountView]:
        with self._database.session() as session:
            rows = session.scalars(
                select(AccountRow)
                .where(AccountRow.owner_id == owner_id, AccountRow.deleted_at.is_(None))
                .order_by(AccountRow.id)
            )
            return [AccountView.model_validate(row) for row in rows]

    def get_transaction(self, owner_id: int, transaction_id: int) -> TransactionView:
        with self._database.session() as session:
            row = session.get(TransactionRow, transaction_id)
            if row is None or row.owner_id != owner_id or row.deleted_at is not None:
                raise NotFound("transaction", transaction_id)
            return TransactionView.model_validate(row)

    def list_transactions(
        self,
        owner_id: int,
        account_id: Optional[int] = None,
    ) -> list[TransactionView]:
        """Non-deleted transactions, optionally those touching one account."""
        stmt = select(TransactionRow).where(
            TransactionRow.owner_id == owner_id,
            TransactionRow.deleted_at.is_(None),
        )
        if account_id is not None:
            stmt = stmt.where(
                or_(
                    TransactionRow.account_id == account_id,
                    TransactionRow.transfer_account_id == account_id,
                )
            )
        with self._database.session() as session:
            rows = session.scalars(stmt.order_by(TransactionRow.date, TransactionRow.id))
            return [TransactionView.model_validate(row) for row in rows]

    def balance_history(self, owner_id: int, account_id: int) -> list[BalanceHistoryRow]:
        with self._database.session() as session:
            account = session.get(AccountRow, account_id)
            if account is None or account.owner_id != owner_id:
                raise NotFound("account", account_id)
            return list(account.history)

    # =========================================================================
    # TRANSACTION MUTATIONS
    # =========================================================================

    def create(self, owner_id: int, data: TransactionCreate) -> TransactionView:
        """
        Post a new transaction.

        Raises:
            NotFound: Account or category missing, inactive or foreign
            InvalidTransfer: Transfer account missing, inactive or misplaced
            InsufficientFunds / CreditLimitExceeded: Balance rule broken
        """
        with self.unit(owner_id) as unit:
            row = self.post(unit, data)
            if data.is_recurring:
                template = self._template_from_transaction(unit, row)
                logger.info(
                    "recurring_template_created",
                    owner_id=owner_id,
                    template_id=template.id,
                    next_occurrence=str(template.next_occurrence),
                )

        logger.info(
            "transaction_created",
            owner_id=owner_id,
            transaction_id=row.id,
            type=row.type,
            amount=str(row.amount),
        )
        return TransactionView.model_validate(row)

    def post(
        self,
        unit: LedgerUnit,
        data: TransactionCreate,
        recurring_transaction_id: Optional[int] = None,
        enforce_limits: bool = True,
        change_type: BalanceChangeType = BalanceChangeType.TRANSACTION,
    ) -> TransactionRow:
        """
        Write one transaction and its effect inside an open unit.

        Shared by create, transfer, reconcile and the recurring
        materializer so all of them apply the same checks.
        """
        checks = unit.checks
        checks.transfer_shape(data.type, data.account_id, data.transfer_account_id)
        checks.category(data.category_id)

        accounts = checks.lock_accounts([data.account_id, data.transfer_account_id])
        checks.require_account(accounts, data.account_id)
        if data.transfer_account_id is not None:
            checks.require_transfer_account(accounts, data.transfer_account_id)

        legs = legs_for(data.type, data.account_id, data.amount, data.transfer_account_id)
        apply_legs(accounts, legs, enforce_limits=enforce_limits)

        row = TransactionRow(
            owner_id=unit.owner_id,
            account_id=data.account_id,
            category_id=data.category_id,
            transfer_account_id=data.transfer_account_id,
            recurring_transaction_id=recurring_transaction_id,
            description=data.description,
            amount=data.amount,
            type=data.type.value,
            date=data.date,
            notes=data.notes,
            tags=list(data.tags),
            reference_number=data.reference_number,
            location=data.location,
            attachments=list(data.attachments),
            is_recurring=data.is_recurring,
            recurring_type=data.recurring_type.value if data.recurring_type else None,
            recurring_interval=data.recurring_interval,
            recurring_end_date=data.recurring_end_date,
            is_cleared=data.is_cleared,
            cleared_at=utcnow() if data.is_cleared else None,
        )
        unit.session.add(row)
        unit.session.flush()

        self._record_history(unit, accounts, net_deltas(legs), change_type)
        return row

    def update(
        self,
        owner_id: int,
        transaction_id: int,
        changes: TransactionUpdate,
    ) -> TransactionView:
        """
        Change a transaction and move its balance effect accordingly.

        The stored effect is reversed and the resolved new effect applied
        in the same unit. Fields not sent fall back to the stored values.
        Changing the type away from transfer clears the transfer account.

        Raises:
            NotFound: Transaction, account or category missing or foreign
            ImmutableTransaction: Protected field of an old cleared transaction
            InvalidTransfer: Resolved transfer shape is inconsistent
            InsufficientFunds / CreditLimitExceeded: New effect breaks a rule
        """
        values = {
            field: getattr(changes, field)
            for field in changes.model_fields_set
            if not (field in REQUIRED_FIELDS and getattr(changes, field) is None)
        }

        with self.unit(owner_id) as unit:
            checks = unit.checks
            tx = checks.transaction(transaction_id)
            checks.editable(tx, values)

            new_type = TransactionType(values.get("type", tx.type))
            new_account_id = values.get("account_id", tx.account_id)
            new_amount = values.get("amount", tx.amount)
            if "transfer_account_id" in values:
                new_transfer_id = values["transfer_account_id"]
            elif new_type != TransactionType.TRANSFER:
                new_transfer_id = None
            else:
                new_transfer_id = tx.transfer_account_id

            checks.transfer_shape(new_type, new_account_id, new_transfer_id)
            if "category_id" in values:
                checks.category(values["category_id"])

            old_legs = legs_for(tx.type, tx.account_id, tx.amount, tx.transfer_account_id)
            new_legs = legs_for(new_type, new_account_id, new_amount, new_transfer_id)

            accounts = checks.lock_accounts(
                [tx.account_id, tx.transfer_account_id, new_account_id, new_transfer_id]
            )
            for leg in old_legs:
                checks.require_existing_account(accounts, leg.account_id)
            if new_account_id != tx.account_id:
                checks.require_account(accounts, new_account_id)
            if new_transfer_id is not None and new_transfer_id != tx.transfer_account_id:
                checks.require_transfer_account(accounts, new_transfer_id)

            apply_legs(accounts, reverse(old_legs), enforce_limits=False)
            apply_legs(accounts, new_legs, enforce_limits=new_legs != old_legs)

            changed = self._assign_fields(tx, values, new_type, new_transfer_id)
            unit.session.flush()

            deltas = _combine(net_deltas(reverse(old_legs)), net_deltas(new_legs))
            self._record_history(unit, accounts, deltas, BalanceChangeType.TRANSACTION)

        logger.info(
            "transaction_updated",
            owner_id=owner_id,
            transaction_id=transaction_id,
            changed_fields=changed,
        )
        return TransactionView.model_validate(tx)

    def delete(self, owner_id: int, transaction_id: int) -> TransactionView:
        """Reverse a transaction's effect and soft-delete it."""
        with self.unit(owner_id) as unit:
            checks = unit.checks
            tx = checks.transaction(transaction_id)
            legs = reverse(legs_for(tx.type, tx.account_id, tx.amount, tx.transfer_account_id))

            accounts = checks.lock_accounts(leg.account_id for leg in legs)
            for leg in legs:
                checks.require_existing_account(accounts, leg.account_id)
            apply_legs(accounts, legs, enforce_limits=False)

            tx.deleted_at = utcnow()
            unit.session.flush()
            self._record_history(unit, accounts, net_deltas(legs), BalanceChangeType.REVERSAL)

        logger.info("transaction_deleted", owner_id=owner_id, transaction_id=transaction_id)
        return TransactionView.model_validate(tx)

    def bulk_delete(self, owner_id: int, transaction_ids: list[int]) -> BulkResult:
        """
        Delete many transactions, each in its own unit.

        A failing id, refused or hit by a storage error, does not stop the
        others; it is reported in the result instead.

        Raises:
            BatchTooLarge: More ids than the configured bulk limit
        """
        self._check_batch(len(transaction_ids))
        result = BulkResult()

        for index, transaction_id in enumerate(transaction_ids):
            try:
                self.delete(owner_id, transaction_id)
                result.succeeded.append(transaction_id)
            except (LedgerError, StorageError) as e:
                result.failed.append(
                    BulkFailure(
                        transaction_id=transaction_id,
                        index=index,
                        error_code=_failure_code(e),
                        error=str(e),
                    )
                )

        logger.info(
            "bulk_delete_completed",
            owner_id=owner_id,
            succeeded=result.success_count,
            failed=result.failure_count,
        )
        return result

    def bulk_create(self, owner_id: int, items: list[TransactionCreate]) -> BulkResult:
        """Create many transactions, each in its own unit."""
        self._check_batch(len(items))
        result = BulkResult()

        for index, data in enumerate(items):
            try:
                view = self.create(owner_id, data)
                result.succeeded.append(view.id)
            except (LedgerError, StorageError) as e:
                result.failed.append(
                    BulkFailure(index=index, error_code=_failure_code(e), error=str(e))
                )

        logger.info(
            "bulk_create_completed",
            owner_id=owner_id,
            succeeded=result.success_count,
            failed=result.failure_count,
        )
        return result

    def transfer(self, owner_id: int, request: TransferRequest) -> TransactionView:
        """
        Move money between two of the owner's accounts.

        Writes exactly one transfer transaction in the owner's
        "Transfer" category, creating that category on first use.
        """
        with self.unit(owner_id) as unit:
            category = self._system_category(unit, TRANSFER_CATEGORY, CategoryType.TRANSFER)
            row = self.post(
                unit,
                TransactionCreate(
                    account_id=request.from_account_id,
                    category_id=category.id,
                    transfer_account_id=request.to_account_id,
                    amount=request.amount,
                    type=TransactionType.TRANSFER,
                    date=request.date,
                    description=request.description,
                    notes=request.notes,
                    is_cleared=True,
                ),
            )

        logger.info(
            "transfer_completed",
            owner_id=owner_id,
            transaction_id=row.id,
            from_account_id=request.from_account_id,
            to_account_id=request.to_account_id,
            amount=str(request.amount),
        )
        return TransactionView.model_validate(row)

    def reconcile(
        self,
        owner_id: int,
        account_id: int,
        actual_balance: Decimal,
        reason: str = "Manual sync",
    ) -> Optional[TransactionView]:
        """
        Bring an account's balance to `actual_balance` with an adjustment.

        The adjustment is an ordinary income or expense transaction in the
        "Balance Adjustment" category, so the balance stays derivable from
        transactions. Returns None when the difference is within tolerance.
        """
        actual_balance = Decimal(actual_balance)

        with self.unit(owner_id) as unit:
            accounts = unit.checks.lock_accounts([account_id])
            account = unit.checks.require_account(accounts, account_id)
            difference = actual_balance - Decimal(account.balance)

            if abs(difference) <= self._settings.balance_tolerance:
                logger.info("balance_in_sync", owner_id=owner_id, account_id=account_id)
                return None

            is_increase = difference > 0
            category = self._system_category(
                unit,
                ADJUSTMENT_CATEGORY,
                CategoryType.INCOME if is_increase else CategoryType.EXPENSE,
            )
            row = self.post(
                unit,
                TransactionCreate(
                    account_id=account_id,
                    category_id=category.id,
                    amount=abs(difference).quantize(Decimal("0.01")),
                    type=TransactionType.INCOME if is_increase else TransactionType.EXPENSE,
                    date=unit.checks.today,
                    description=f"Balance Adjustment: {reason}"[:255],
                    notes=f"Adjusted from {account.balance} to {actual_balance}",
                    is_cleared=True,
                ),
                enforce_limits=False,
                change_type=BalanceChangeType.ADJUSTMENT,
            )

        logger.info(
            "balance_reconciled",
            owner_id=owner_id,
            account_id=account_id,
            adjustment=str(difference),
        )
        return TransactionView.model_validate(row)

    # =========================================================================
    # RECURRING TEMPLATES
    # =========================================================================

    def create_template(self, owner_id: int, data: RecurringTemplateCreate) -> RecurringTemplateView:
        """Create a recurring template directly; its first occurrence is start_date."""
        with self.unit(owner_id) as unit:
            accounts = unit.checks.lock_accounts([data.account_id])
            unit.checks.require_account(accounts, data.account_id)
            unit.checks.category(data.category_id)

            max_occurrences = data.max_occurrences
            if max_occurrences is None and data.end_date is not None:
                max_occurrences = count_occurrences(
                    data.start_date, data.end_date, data.frequency, data.interval
                )

            template = RecurringTransactionRow(
                owner_id=owner_id,
                account_id=data.account_id,
                category_id=data.category_id,
                name=data.name,
                description=data.description,
                amount=data.amount,
                type=data.type.value,
                frequency=data.frequency.value,
                interval=data.interval,
                start_date=data.start_date,
                end_date=data.end_date,
                next_occurrence=data.start_date,
                is_active=True,
                occurrences_count=0,
                max_occurrences=max_occurrences,
            )
            unit.session.add(template)
            unit.session.flush()

        return RecurringTemplateView.model_validate(template)

    def get_template(self, owner_id: int, template_id: int) -> RecurringTemplateView:
        with self._database.session() as session:
            template = session.get(RecurringTransactionRow, template_id)
            if template is None or template.owner_id != owner_id or template.deleted_at is not None:
                raise NotFound("recurring template", template_id)
            return RecurringTemplateView.model_validate(template)

    def _template_from_transaction(self, unit: LedgerUnit, row: TransactionRow) -> RecurringTransactionRow:
        """
        Template for a transaction created with is_recurring set.

        The transaction itself is the first occurrence, so the template
        starts one step later with a count of 1.
        """
        interval = row.recurring_interval or 1
        max_occurrences = None
        if row.recurring_end_date is not None:
            max_occurrences = count_occurrences(
                row.date, row.recurring_end_date, row.recurring_type, interval
            )

        template = RecurringTransactionRow(
            owner_id=row.owner_id,
            account_id=row.account_id,
            category_id=row.category_id,
            name=row.description or f"Recurring {row.type}",
            description=row.description,
            amount=row.amount,
            type=row.type,
            frequency=row.recurring_type,
            interval=interval,
            start_date=row.date,
            end_date=row.recurring_end_date,
            next_occurrence=advance(row.date, row.recurring_type, interval),
            is_active=max_occurrences is None or max_occurrences > 1,
            occurrences_count=1,
            max_occurrences=max_occurrences,
        )
        unit.session.add(template)
        unit.session.flush()
        row.recurring_transaction_id = template.id
        return template

    # =========================================================================
    # INVARIANT CHECK
    # =========================================================================

    def verify_balances(self, owner_id: int) -> list[BalanceDiscrepancy]:
        """
        Recompute each account balance from its transactions.

        Returns the accounts whose stored balance differs from
        initial_balance + the sum of every live transaction's legs.
        """
        with self._database.session() as session:
            accounts = list(
                session.scalars(
                    select(AccountRow)
                    .where(AccountRow.owner_id == owner_id, AccountRow.deleted_at.is_(None))
                    .order_by(AccountRow.id)
                )
            )
            transactions = session.scalars(
                select(TransactionRow).where(
                    TransactionRow.owner_id == owner_id,
                    TransactionRow.deleted_at.is_(None),
                )
            )

            expected = {a.id: Decimal(a.initial_balance) for a in accounts}
            for tx in transactions:
                for leg in legs_for(tx.type, tx.account_id, tx.amount, tx.transfer_account_id):
                    if leg.account_id in expected:
                        expected[leg.account_id] += leg.delta

        discrepancies = [
            BalanceDiscrepancy(
                account_id=account.id,
                stored_balance=account.balance,
                expected_balance=expected[account.id],
            )
            for account in accounts
            if Decimal(account.balance) != expected[account.id]
        ]
        if discrepancies:
            logger.error(
                "balance_discrepancies_found",
                owner_id=owner_id,
                account_ids=[d.account_id for d in discrepancies],
            )
        return discrepancies

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _check_batch(self, size: int) -> None:
        if size > self._settings.bulk_limit:
            raise BatchTooLarge(size, self._settings.bulk_limit)

    def _system_category(self, unit: LedgerUnit, name: str, category_type: CategoryType) -> CategoryRow:
        """The owner's category called `name`, created on first use."""
        category = unit.session.scalars(
            select(CategoryRow).where(
                CategoryRow.owner_id == unit.owner_id,
                CategoryRow.name == name,
                CategoryRow.deleted_at.is_(None),
            )
        ).first()
        if category is None:
            category = CategoryRow(owner_id=unit.owner_id, name=name, type=category_type.value)
            unit.session.add(category)
            unit.session.flush()
        return category

    def _assign_fields(
        self,
        tx: TransactionRow,
        values: dict,
        new_type: TransactionType,
        new_transfer_id: Optional[int],
    ) -> list[str]:
        """Write the resolved values onto the row; returns the fields that changed."""
        resolved = dict(values)
        resolved["type"] = new_type.value
        resolved["transfer_account_id"] = new_transfer_id

        changed = []
        for field, value in resolved.items():
            if field == "tags" and value is None:
                value = []
            if getattr(tx, field) != value:
                setattr(tx, field, value)
                changed.append(field)

        if "is_cleared" in changed:
            tx.cleared_at = utcnow() if tx.is_cleared else None
        return changed

    def _record_history(
        self,
        unit: LedgerUnit,
        accounts: dict[int, AccountRow],
        deltas: dict[int, Decimal],
        change_type: BalanceChangeType,
    ) -> None:
        """
        Upsert today's balance history row of every account in `deltas`.

        One row per account per day: later changes on the same day
        overwrite the balance and accumulate the change amount.
        """
        today = unit.checks.today
        for account_id, delta in deltas.items():
            if delta == 0 and change_type != BalanceChangeType.INITIAL:
                continue
            account = accounts[account_id]
            entry = unit.session.scalars(
                select(BalanceHistoryRow).where(
                    BalanceHistoryRow.account_id == account_id,
                    BalanceHistoryRow.date == today,
                )
            ).first()
            if entry is None:
                entry = BalanceHistoryRow(
                    account_id=account_id,
                    date=today,
                    change_amount=Decimal("0"),
                )
                unit.session.add(entry)
            entry.balance = account.balance
            entry.change_type = change_type.value
            entry.change_amount = Decimal(entry.change_amount or 0) + delta


def _combine(*parts: dict[int, Decimal]) -> dict[int, Decimal]:
    totals: dict[int, Decimal] = {}
    for part in parts:
        for account_id, delta in part.items():
            totals[account_id] = totals.get(account_id, Decimal("0")) + delta
    return totals


def _failure_code(error: Exception) -> str:
    return error.code if isinstance(error, LedgerError) else "storage_error"
