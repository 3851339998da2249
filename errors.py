from typing import Any, Dict

from models import ClientId, OperationType, TransactionId


class ProcessingError(Exception):
    error_code = "PROCESSING_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def context(self) -> Dict[str, Any]:
        """Payload fields for structured logging."""
        return {}

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.context() == other.context()

    def __hash__(self) -> int:
        return hash((type(self), tuple(sorted(self.context().items()))))


class NegativeAmount(ProcessingError):
    error_code = "NEGATIVE_AMOUNT"

    def __init__(self):
        super().__init__("Negative amount")


class Overflow(ProcessingError):
    error_code = "OVERFLOW"

    def __init__(self, tx: TransactionId):
        self.tx = tx
        super().__init__(f"Value overflow detected for transaction id `{tx}`")

    def context(self) -> Dict[str, Any]:
        return {"tx": self.tx}


class Underflow(ProcessingError):
    error_code = "UNDERFLOW"

    def __init__(self, tx: TransactionId):
        self.tx = tx
        super().__init__(f"Value underflow detected for transaction id `{tx}`")

    def context(self) -> Dict[str, Any]:
        return {"tx": self.tx}


class DuplicatedTransaction(ProcessingError):
    error_code = "DUPLICATED_TRANSACTION"

    def __init__(self, tx: TransactionId, client: ClientId):
        self.tx = tx
        self.client = client
        super().__init__(f"Duplicated transaction `{tx}` for account `{client}`")

    def context(self) -> Dict[str, Any]:
        return {"tx": self.tx, "client": self.client}


class DuplicatedDispute(ProcessingError):
    error_code = "DUPLICATED_DISPUTE"

    def __init__(self, tx: TransactionId, ref_tx: TransactionId, client: ClientId):
        self.tx = tx
        self.ref_tx = ref_tx
        self.client = client
        super().__init__(
            f"Duplicated dispute for transaction `{ref_tx}`, "
            f"by transaction `{tx}` for account `{client}`"
        )

    def context(self) -> Dict[str, Any]:
        return {"tx": self.tx, "ref_tx": self.ref_tx, "client": self.client}


class AccountLocked(ProcessingError):
    error_code = "ACCOUNT_LOCKED"

    def __init__(self, client: ClientId):
        self.client = client
        super().__init__(f"Account `{client}` is locked")

    def context(self) -> Dict[str, Any]:
        return {"client": self.client}


class MissingAmount(ProcessingError):
    error_code = "MISSING_AMOUNT"

    def __init__(self, tx: TransactionId):
        self.tx = tx
        super().__init__(f"No amount in transaction `{tx}`")

    def context(self) -> Dict[str, Any]:
        return {"tx": self.tx}


class InsufficientFounds(ProcessingError):
    error_code = "INSUFFICIENT_FUNDS"

    def __init__(self, tx: TransactionId, client: ClientId):
        self.tx = tx
        self.client = client
        super().__init__(f"Insufficient funds for transaction `{tx}`; account: `{client}`")

    def context(self) -> Dict[str, Any]:
        return {"tx": self.tx, "client": self.client}


class MissingTransaction(ProcessingError):
    error_code = "MISSING_TRANSACTION"

    def __init__(self, tx: TransactionId):
        self.tx = tx
        super().__init__(f"Referenced transaction `{tx}` doesn't exist")

    def context(self) -> Dict[str, Any]:
        return {"tx": self.tx}


class InvalidOperationUnderDispute(ProcessingError):
    error_code = "INVALID_OPERATION_UNDER_DISPUTE"

    def __init__(self, operation: OperationType, tx: TransactionId):
        self.operation = operation
        self.tx = tx
        super().__init__(
            f"Invalid operation `{operation.value}` under dispute for transaction `{tx}`"
        )

    def context(self) -> Dict[str, Any]:
        return {"operation": self.operation.value, "tx": self.tx}


class IncorrectResolve(ProcessingError):
    error_code = "INCORRECT_RESOLVE"

    def __init__(self, operation: OperationType, tx: TransactionId):
        self.operation = operation
        self.tx = tx
        super().__init__(
            f"Resolve called on not disputed operation `{operation.value}` for transaction `{tx}`"
        )

    def context(self) -> Dict[str, Any]:
        return {"operation": self.operation.value, "tx": self.tx}


class IncorrectChargeback(ProcessingError):
    error_code = "INCORRECT_CHARGEBACK"

    def __init__(self, operation: OperationType, tx: TransactionId):
        self.operation = operation
        self.tx = tx
        super().__init__(
            f"Chargeback called on not disputed operation `{operation.value}` for transaction `{tx}`"
        )

    def context(self) -> Dict[str, Any]:
        return {"operation": self.operation.value, "tx": self.tx}


PROCESSING_ERRORS = (
    NegativeAmount,
    Overflow,
    Underflow,
    DuplicatedTransaction,
    DuplicatedDispute,
    AccountLocked,
    MissingAmount,
    InsufficientFounds,
    MissingTransaction,
    InvalidOperationUnderDispute,
    IncorrectResolve,
    IncorrectChargeback,
)


class EngineError(Exception):
    error_code = "ENGINE_ERROR"


class ParsingError(EngineError):
    error_code = "PARSING_ERROR"

    def __init__(self, line: int, detail: str):
        self.line = line
        self.detail = detail
        super().__init__(f"Malformed record at line {line}: {detail}")


class ReadingError(EngineError):
    error_code = "READING_ERROR"

    def __init__(self, path: str, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"Could not read `{path}`: {detail}")
