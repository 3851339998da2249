from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum
from typing import Dict, List, Optional, Set
from datetime import datetime
from decimal import Decimal, InvalidOperation

from money import MAX_AMOUNT, exact_add


ClientId = int
TransactionId = int

MAX_CLIENT_ID = 2**16 - 1
MAX_TRANSACTION_ID = 2**32 - 1


class OperationType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"


# Only these carry an amount and are kept for later dispute lookups.
AMOUNT_OPERATIONS = (OperationType.deposit, OperationType.withdrawal)


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: TransactionId = Field(..., ge=0, le=MAX_TRANSACTION_ID, description="Transaction identifier")
    client_id: ClientId = Field(..., ge=0, le=MAX_CLIENT_ID, description="Owning account")
    operation: OperationType = Field(..., description="Operation type")
    amount: Optional[Decimal] = Field(
        default=None,
        description="Amount for deposits and withdrawals, absent for dispute references"
    )


class AccountLedger(BaseModel):
    available: Decimal = Decimal("0")
    held: Decimal = Decimal("0")
    locked: bool = False
    transactions: Dict[TransactionId, Transaction] = Field(default_factory=dict)
    under_dispute: Set[TransactionId] = Field(default_factory=set)

    @property
    def total(self) -> Decimal:
        return exact_add(self.available, self.held)


class TransactionInput(BaseModel):
    """One decoded input row, before it becomes a typed Transaction."""

    type: str = Field(..., min_length=1)
    client: int = Field(..., ge=0, le=MAX_CLIENT_ID)
    tx: int = Field(..., ge=0, le=MAX_TRANSACTION_ID)
    amount: Optional[Decimal] = None

    @field_validator('amount', mode='before')
    @classmethod
    def validate_amount_literal(cls, v):
        if v is None or v == "":
            return None
        try:
            value = Decimal(v)
        except InvalidOperation:
            raise ValueError(f'Amount must be a decimal literal, got {v!r}')
        if not value.is_finite():
            raise ValueError('Amount must be finite')
        if value.copy_abs() > MAX_AMOUNT:
            raise ValueError('Amount is out of range')
        return value


class ReportRow(BaseModel):
    client: ClientId = Field(..., description="Client identifier")
    available: Decimal = Field(..., description="Funds available for withdrawal")
    held: Decimal = Field(..., description="Funds held by open disputes")
    total: Decimal = Field(..., description="available + held")
    locked: bool = Field(..., description="Account frozen by a chargeback")


class ProcessingSummary(BaseModel):
    applied: int = 0
    rejected: int = 0


class ReportResponse(BaseModel):
    accounts: List[ReportRow] = Field(..., description="Final account state, in first-seen order")
    records_applied: int = Field(..., description="Records that changed the ledger")
    records_rejected: int = Field(..., description="Records rejected with a processing error")
    timestamp: datetime = Field(default_factory=datetime.now)


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")
    error_code: str = Field(..., description="Machine-readable error code")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=datetime.now)
    batches_processed: int = Field(..., description="Batches processed since startup")
    records_applied: int = Field(..., description="Records applied since startup")
    records_rejected: int = Field(..., description="Records rejected since startup")
