import logging
from typing import Dict, Iterator, Optional

from models import (
    AccountSnapshot,
    ClientAccount,
    DisputeStatus,
    LedgerError,
    Outcome,
    Transaction,
    TransactionType,
)
from transaction_log import TransactionLog

logger = logging.getLogger(__name__)


class Ledger:
    """
    Applies transactions to client accounts, one at a time in arrival order.
    Returns an Outcome for every transaction; policy failures are values, not exceptions.
    Accounts are only opened by a successful deposit.
    """

    def __init__(self, transaction_log: TransactionLog):
        self._log = transaction_log
        self._accounts: Dict[int, ClientAccount] = {}

    def __len__(self) -> int:
        return len(self._accounts)

    def get_account(self, client_id: int) -> Optional[ClientAccount]:
        return self._accounts.get(client_id)

    def accounts(self) -> Dict[int, ClientAccount]:
        """Return all accounts (for final output)."""
        return dict(self._accounts)

    def snapshot(self) -> Iterator[AccountSnapshot]:
        for account in self._accounts.values():
            yield AccountSnapshot.from_account(account)

    def apply(self, transaction: Transaction) -> Outcome:
        """
        Apply a single transaction.

        Returns:
            APPLIED: Balances and/or dispute status changed
            IGNORED: No-op, the client has no account or the account is locked
            REJECTED: Policy failure (insufficient funds, bad reference, ...), nothing changed
            MALFORMED: Deposit or withdrawal without an amount, nothing changed
        """
        account = self._accounts.get(transaction.client_id)

        if account is not None and account.locked:
            logger.info(f"{transaction}: account {transaction.client_id} is locked, ignoring")
            return Outcome.ignored(LedgerError.ACCOUNT_LOCKED)

        match transaction.transaction_type:
            case TransactionType.DEPOSIT:
                return self._handle_deposit(transaction)
            case TransactionType.WITHDRAWAL:
                return self._handle_withdrawal(account, transaction)
            case TransactionType.DISPUTE:
                return self._handle_dispute(transaction)
            case TransactionType.RESOLVE:
                return self._handle_resolve(transaction)
            case TransactionType.CHARGEBACK:
                return self._handle_chargeback(transaction)

        raise ValueError(f"Unsupported transaction type: {transaction.transaction_type}")

    def _handle_deposit(self, transaction: Transaction) -> Outcome:
        if transaction.amount is None:
            logger.warning(f"Deposit tx {transaction.transaction_id}: missing amount")
            return Outcome.malformed()

        outcome = self._log.record(
            transaction.transaction_id, transaction.client_id, TransactionType.DEPOSIT, transaction.amount
        )
        if not outcome.is_applied:
            logger.warning(f"Deposit tx {transaction.transaction_id}: transaction id already used, skipping")
            return outcome

        account = self._accounts.get(transaction.client_id)
        if account is None:
            account = ClientAccount(client_id=transaction.client_id)
            self._accounts[transaction.client_id] = account
            logger.debug(f"Opened account for client {transaction.client_id}")

        account.credit(transaction.amount)
        return outcome

    def _handle_withdrawal(self, account: Optional[ClientAccount], transaction: Transaction) -> Outcome:
        if transaction.amount is None:
            logger.warning(f"Withdrawal tx {transaction.transaction_id}: missing amount")
            return Outcome.malformed()

        if account is None:
            logger.info(f"Withdrawal tx {transaction.transaction_id}: client {transaction.client_id} has no account")
            return Outcome.ignored(LedgerError.UNKNOWN_CLIENT_ON_WITHDRAWAL)

        if account.available < transaction.amount:
            logger.warning(
                f"Withdrawal tx {transaction.transaction_id}: insufficient funds "
                f"(available {account.available}, requested {transaction.amount})"
            )
            return Outcome.rejected(LedgerError.INSUFFICIENT_FUNDS)

        outcome = self._log.record(
            transaction.transaction_id, transaction.client_id, TransactionType.WITHDRAWAL, transaction.amount
        )
        if not outcome.is_applied:
            logger.warning(f"Withdrawal tx {transaction.transaction_id}: transaction id already used, skipping")
            return outcome

        account.debit(transaction.amount)
        return outcome

    def _handle_dispute(self, transaction: Transaction) -> Outcome:
        outcome = self._transition(transaction, DisputeStatus.NORMAL, DisputeStatus.DISPUTED)
        if not outcome.is_applied:
            return outcome

        original = self._log.lookup(transaction.transaction_id)
        # Held against the current available balance, which may go negative.
        self._accounts[original.client_id].hold(original.amount)
        return outcome

    def _handle_resolve(self, transaction: Transaction) -> Outcome:
        outcome = self._transition(transaction, DisputeStatus.DISPUTED, DisputeStatus.RESOLVED)
        if not outcome.is_applied:
            return outcome

        original = self._log.lookup(transaction.transaction_id)
        self._accounts[original.client_id].release_hold(original.amount)
        return outcome

    def _handle_chargeback(self, transaction: Transaction) -> Outcome:
        outcome = self._transition(transaction, DisputeStatus.DISPUTED, DisputeStatus.CHARGED_BACK)
        if not outcome.is_applied:
            return outcome

        original = self._log.lookup(transaction.transaction_id)
        account = self._accounts[original.client_id]

        if original.kind == TransactionType.DEPOSIT:
            account.remove_held(original.amount)
        else:
            # Withdrawal reversed: held funds go back and the withdrawn amount is refunded.
            account.release_hold(original.amount)
            account.credit(original.amount)

        account.lock()
        logger.info(f"Chargeback tx {transaction.transaction_id}: account {account.client_id} locked")
        return outcome

    def _transition(self, transaction: Transaction, expected: DisputeStatus, new: DisputeStatus) -> Outcome:
        """Validate the referenced transaction, then move its dispute status."""
        kind = transaction.transaction_type.value.capitalize()
        original = self._log.lookup(transaction.transaction_id)

        if original is None:
            logger.warning(f"{kind} for tx {transaction.transaction_id}: transaction not found")
            return Outcome.rejected(LedgerError.DANGLING_REFERENCE)

        if original.client_id != transaction.client_id:
            logger.warning(
                f"{kind} for tx {transaction.transaction_id}: client mismatch "
                f"(expected {original.client_id}, got {transaction.client_id})"
            )
            return Outcome.rejected(LedgerError.CLIENT_MISMATCH)

        outcome = self._log.transition(transaction.transaction_id, expected, new)
        if not outcome.is_applied:
            logger.warning(
                f"{kind} for tx {transaction.transaction_id}: transaction is "
                f"{original.dispute_status.value}, expected {expected.value}"
            )
        return outcome
