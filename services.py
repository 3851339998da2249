import asyncio
from typing import Callable, Dict, Iterable, List
import structlog

from errors import (
    AccountLocked,
    DuplicatedDispute,
    DuplicatedTransaction,
    IncorrectChargeback,
    IncorrectResolve,
    InsufficientFounds,
    InvalidOperationUnderDispute,
    MissingAmount,
    MissingTransaction,
    NegativeAmount,
    Overflow,
    ProcessingError,
    Underflow,
)
from models import (
    AMOUNT_OPERATIONS,
    AccountLedger,
    ClientId,
    OperationType,
    ProcessingSummary,
    ReportRow,
    Transaction,
)
from money import ZERO, checked_add, checked_sub
from repositories import LedgerRepository

logger = structlog.get_logger()


class TransactionService:
    def __init__(self, repository: LedgerRepository):
        self.repository = repository
        self._handlers: Dict[OperationType, Callable[[AccountLedger, Transaction], None]] = {
            OperationType.deposit: self._process_deposit,
            OperationType.withdrawal: self._process_withdrawal,
            OperationType.dispute: self._process_dispute,
            OperationType.resolve: self._process_resolve,
            OperationType.chargeback: self._process_chargeback,
        }

    def apply(self, record: Transaction) -> None:
        """Apply one record to its account.

        Raises a ProcessingError subclass if the record is rejected; the
        account is left exactly as it was in that case.
        """
        account = self.repository.get_or_create(record.client_id)

        # A locked account accepts nothing, disputes included.
        if account.locked:
            raise AccountLocked(record.client_id)

        self._handlers[record.operation](account, record)

        logger.debug(
            "Record applied",
            tx=record.id,
            client=record.client_id,
            operation=record.operation.value,
            available=str(account.available),
            held=str(account.held),
            locked=account.locked
        )

    def process(self, records: Iterable[Transaction]) -> ProcessingSummary:
        """Apply records in order. Rejected records are logged and skipped."""
        summary = ProcessingSummary()
        for record in records:
            self._apply_and_count(record, summary)

        logger.info(
            "Batch processed",
            applied=summary.applied,
            rejected=summary.rejected,
            accounts=self.repository.accounts_count()
        )
        return summary

    async def apply_async(self, record: Transaction) -> None:
        """Apply one record while holding its account's writer lock."""
        async with self.repository.get_lock(record.client_id):
            self.apply(record)

    async def process_async(self, records: Iterable[Transaction]) -> ProcessingSummary:
        """Apply records with one worker per client.

        Records of the same client keep their arrival order; different
        clients proceed independently.
        """
        partitions: Dict[ClientId, List[Transaction]] = {}
        for record in records:
            partitions.setdefault(record.client_id, []).append(record)

        # Open accounts up front so report order is arrival order, not
        # worker completion order.
        for client_id in partitions:
            self.repository.get_or_create(client_id)

        summary = ProcessingSummary()

        async def worker(client_records: List[Transaction]) -> None:
            for record in client_records:
                try:
                    await self.apply_async(record)
                except ProcessingError as e:
                    self._log_rejection(record, e)
                    summary.rejected += 1
                else:
                    summary.applied += 1
                await asyncio.sleep(0)

        await asyncio.gather(*(worker(client_records) for client_records in partitions.values()))

        logger.info(
            "Batch processed",
            applied=summary.applied,
            rejected=summary.rejected,
            accounts=self.repository.accounts_count(),
            workers=len(partitions)
        )
        return summary

    def report(self) -> List[ReportRow]:
        return render_report(self.repository)

    def _apply_and_count(self, record: Transaction, summary: ProcessingSummary) -> None:
        try:
            self.apply(record)
        except ProcessingError as e:
            self._log_rejection(record, e)
            summary.rejected += 1
        else:
            summary.applied += 1

    def _log_rejection(self, record: Transaction, error: ProcessingError) -> None:
        logger.warning(
            "Processing error",
            error=error.message,
            error_code=error.error_code,
            tx=record.id,
            client=record.client_id,
            operation=record.operation.value,
            payload=error.context()
        )

    @staticmethod
    def _require_amount(record: Transaction):
        if record.amount is None:
            raise MissingAmount(record.id)
        if record.amount < ZERO:
            raise NegativeAmount()
        return record.amount

    def _process_deposit(self, account: AccountLedger, record: Transaction) -> None:
        if record.id in account.transactions:
            raise DuplicatedTransaction(record.id, record.client_id)

        amount = self._require_amount(record)

        new_available = checked_add(account.available, amount)
        if new_available is None:
            raise Overflow(record.id)

        account.available = new_available
        account.transactions[record.id] = record

    def _process_withdrawal(self, account: AccountLedger, record: Transaction) -> None:
        if record.id in account.transactions:
            raise DuplicatedTransaction(record.id, record.client_id)

        amount = self._require_amount(record)

        if account.available < amount:
            raise InsufficientFounds(record.id, record.client_id)

        new_available = checked_sub(account.available, amount)
        if new_available is None:
            raise Underflow(record.id)

        account.available = new_available
        account.transactions[record.id] = record

    def _process_dispute(self, account: AccountLedger, record: Transaction) -> None:
        disputed = account.transactions.get(record.id)
        if disputed is None:
            raise MissingTransaction(record.id)

        if disputed.id in account.under_dispute:
            raise DuplicatedDispute(record.id, disputed.id, record.client_id)

        if disputed.amount is None:
            raise MissingAmount(record.id)
        amount = disputed.amount

        if disputed.operation == OperationType.deposit:
            # Both results are computed before either is stored.
            new_available = checked_sub(account.available, amount)
            if new_available is None:
                raise Underflow(record.id)
            new_held = checked_add(account.held, amount)
            if new_held is None:
                raise Overflow(record.id)
            account.available = new_available
            account.held = new_held
        elif disputed.operation == OperationType.withdrawal:
            # Withdrawn funds are presumed not received: they go on hold
            # without leaving the available balance.
            new_held = checked_add(account.held, amount)
            if new_held is None:
                raise Overflow(record.id)
            account.held = new_held
        else:
            raise InvalidOperationUnderDispute(record.operation, record.id)

        account.under_dispute.add(disputed.id)

    def _process_resolve(self, account: AccountLedger, record: Transaction) -> None:
        disputed = account.transactions.get(record.id)
        if disputed is None:
            raise MissingTransaction(record.id)

        if disputed.id not in account.under_dispute:
            raise IncorrectResolve(record.operation, record.id)

        if disputed.amount is None:
            raise MissingAmount(record.id)
        amount = disputed.amount

        if disputed.operation not in AMOUNT_OPERATIONS:
            raise InvalidOperationUnderDispute(record.operation, record.id)

        # Deposit and withdrawal holds are released the same way.
        new_available = checked_add(account.available, amount)
        if new_available is None:
            raise Overflow(record.id)
        new_held = checked_sub(account.held, amount)
        if new_held is None:
            raise Underflow(record.id)

        account.available = new_available
        account.held = new_held
        account.under_dispute.discard(disputed.id)

    def _process_chargeback(self, account: AccountLedger, record: Transaction) -> None:
        disputed = account.transactions.get(record.id)
        if disputed is None:
            raise MissingTransaction(record.id)

        if disputed.id not in account.under_dispute:
            raise IncorrectChargeback(record.operation, record.id)

        if disputed.amount is None:
            raise MissingAmount(record.id)
        amount = disputed.amount

        if disputed.operation not in AMOUNT_OPERATIONS:
            raise InvalidOperationUnderDispute(record.operation, record.id)

        new_held = checked_sub(account.held, amount)
        if new_held is None:
            raise Underflow(record.id)

        account.held = new_held
        account.under_dispute.discard(disputed.id)
        # Terminal: nothing unlocks an account.
        account.locked = True


def render_report(repository: LedgerRepository) -> List[ReportRow]:
    """Fold the ledger map into report rows, in first-reference order."""
    return [
        ReportRow(
            client=client_id,
            available=account.available,
            held=account.held,
            total=account.total,
            locked=account.locked
        )
        for client_id, account in repository.accounts()
    ]


# Factory function for dependency injection
def get_transaction_service(repository: LedgerRepository) -> TransactionService:
    return TransactionService(repository)
