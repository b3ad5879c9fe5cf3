from decimal import Decimal
from typing import Dict, Optional

from models import DisputeStatus, LedgerError, Outcome, RecordedTransaction, TransactionType


class TransactionLog:
    """
    Stores deposits and withdrawals for dispute lookups.
    Owns the dispute status of every recorded transaction; never touches balances.
    """

    def __init__(self):
        self._transactions: Dict[int, RecordedTransaction] = {}

    def __contains__(self, transaction_id: int) -> bool:
        return transaction_id in self._transactions

    def __len__(self) -> int:
        return len(self._transactions)

    def record(self, transaction_id: int, client_id: int, kind: TransactionType, amount: Decimal) -> Outcome:
        """Store a new transaction in NORMAL status. An id that is already taken is rejected."""
        if transaction_id in self._transactions:
            return Outcome.rejected(LedgerError.DUPLICATE_TRANSACTION_ID)

        self._transactions[transaction_id] = RecordedTransaction(
            transaction_id=transaction_id,
            client_id=client_id,
            kind=kind,
            amount=amount,
        )
        return Outcome.applied()

    def lookup(self, transaction_id: int) -> Optional[RecordedTransaction]:
        """Retrieve stored transaction by ID."""
        return self._transactions.get(transaction_id)

    def transition(self, transaction_id: int, expected: DisputeStatus, new: DisputeStatus) -> Outcome:
        """
        Move a transaction from `expected` to `new` dispute status.

        Returns:
            APPLIED: Status updated
            REJECTED/DANGLING_REFERENCE: Transaction was never recorded
            REJECTED/INVALID_STATE_TRANSITION: Current status is not `expected`
        """
        recorded = self._transactions.get(transaction_id)

        if recorded is None:
            return Outcome.rejected(LedgerError.DANGLING_REFERENCE)

        if recorded.dispute_status != expected:
            return Outcome.rejected(LedgerError.INVALID_STATE_TRANSITION)

        recorded.dispute_status = new
        return Outcome.applied()
