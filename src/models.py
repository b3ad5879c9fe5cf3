from collections import Counter
from dataclasses import dataclass, field
from decimal import Context, Decimal, Inexact, InvalidOperation, Overflow, localcontext
from enum import Enum
from typing import Dict, NamedTuple, Optional

AMOUNT_PRECISION = 4
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_PRECISION)

# Amounts stay below 10**28; balances are summed with room to spare and
# any rounding raises instead of silently losing digits.
MAX_AMOUNT_DIGITS = 28
MAX_AMOUNT = Decimal(10) ** MAX_AMOUNT_DIGITS
LEDGER_CONTEXT = Context(prec=64, traps=[Inexact, InvalidOperation, Overflow])


class TransactionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    CHARGEBACK = "chargeback"


class DisputeStatus(Enum):
    NORMAL = "normal"
    DISPUTED = "disputed"
    RESOLVED = "resolved"
    CHARGED_BACK = "charged_back"


class OutcomeStatus(Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    REJECTED = "rejected"
    MALFORMED = "malformed"


class LedgerError(Enum):
    UNKNOWN_CLIENT_ON_WITHDRAWAL = "unknown_client_on_withdrawal"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ACCOUNT_LOCKED = "account_locked"
    DUPLICATE_TRANSACTION_ID = "duplicate_transaction_id"
    DANGLING_REFERENCE = "dangling_reference"
    CLIENT_MISMATCH = "client_mismatch"
    INVALID_STATE_TRANSITION = "invalid_state_transition"


@dataclass(frozen=True)
class Outcome:
    """Result of applying one record. Returned, never raised."""

    status: OutcomeStatus
    error: Optional[LedgerError] = None

    @classmethod
    def applied(cls) -> "Outcome":
        return cls(OutcomeStatus.APPLIED)

    @classmethod
    def ignored(cls, error: LedgerError) -> "Outcome":
        return cls(OutcomeStatus.IGNORED, error)

    @classmethod
    def rejected(cls, error: LedgerError) -> "Outcome":
        return cls(OutcomeStatus.REJECTED, error)

    @classmethod
    def malformed(cls) -> "Outcome":
        return cls(OutcomeStatus.MALFORMED)

    @property
    def is_applied(self) -> bool:
        return self.status == OutcomeStatus.APPLIED


@dataclass
class Transaction:
    transaction_type: TransactionType
    client_id: int
    transaction_id: int
    amount: Optional[Decimal] = None

    def __repr__(self) -> str:
        return f"Transaction({self.transaction_type.value}, client={self.client_id}, tx={self.transaction_id}, amount={self.amount})"


@dataclass
class MalformedRecord:
    """An input row that could not be turned into a Transaction."""

    line_number: int
    reason: str
    row: Dict[str, Optional[str]] = field(default_factory=dict)


@dataclass
class RecordedTransaction:
    transaction_id: int
    client_id: int
    kind: TransactionType
    amount: Decimal
    dispute_status: DisputeStatus = DisputeStatus.NORMAL


@dataclass
class ClientAccount:
    client_id: int
    available: Decimal = Decimal("0")
    held: Decimal = Decimal("0")
    locked: bool = False

    @property
    def total(self) -> Decimal:
        with localcontext(LEDGER_CONTEXT):
            return self.available + self.held

    def credit(self, amount: Decimal) -> None:
        with localcontext(LEDGER_CONTEXT):
            self.available += amount

    def debit(self, amount: Decimal) -> None:
        with localcontext(LEDGER_CONTEXT):
            self.available -= amount

    def hold(self, amount: Decimal) -> None:
        with localcontext(LEDGER_CONTEXT):
            self.available -= amount
            self.held += amount

    def release_hold(self, amount: Decimal) -> None:
        with localcontext(LEDGER_CONTEXT):
            self.held -= amount
            self.available += amount

    def remove_held(self, amount: Decimal) -> None:
        with localcontext(LEDGER_CONTEXT):
            self.held -= amount

    def lock(self) -> None:
        self.locked = True


class AccountSnapshot(NamedTuple):
    client_id: int
    available: Decimal
    held: Decimal
    total: Decimal
    locked: bool

    @classmethod
    def from_account(cls, account: ClientAccount) -> "AccountSnapshot":
        with localcontext(LEDGER_CONTEXT):
            return cls(
                client_id=account.client_id,
                available=account.available.quantize(AMOUNT_QUANTUM),
                held=account.held.quantize(AMOUNT_QUANTUM),
                total=account.total.quantize(AMOUNT_QUANTUM),
                locked=account.locked,
            )


class ProcessingStats:
    """Counters for tracking processing statistics."""

    def __init__(self):
        self.applied = 0
        self.ignored = 0
        self.rejected = 0
        self.malformed = 0
        self.errors: Counter = Counter()

    @property
    def processed(self) -> int:
        return self.applied + self.ignored + self.rejected

    def record_outcome(self, outcome: Outcome) -> None:
        if outcome.status == OutcomeStatus.APPLIED:
            self.applied += 1
        elif outcome.status == OutcomeStatus.IGNORED:
            self.ignored += 1
        elif outcome.status == OutcomeStatus.REJECTED:
            self.rejected += 1
        elif outcome.status == OutcomeStatus.MALFORMED:
            self.malformed += 1

        if outcome.error is not None:
            self.errors[outcome.error] += 1

    def summary(self) -> str:
        return (
            f"Processed: {self.processed}, "
            f"Applied: {self.applied}, "
            f"Ignored: {self.ignored}, "
            f"Rejected: {self.rejected}, "
            f"Malformed: {self.malformed}"
        )
