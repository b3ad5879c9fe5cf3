import logging
from typing import Dict, Iterable, Iterator, Union

from ledger import Ledger
from models import AccountSnapshot, ClientAccount, MalformedRecord, Outcome, ProcessingStats, Transaction
from record_source import read_records
from transaction_log import TransactionLog

logger = logging.getLogger(__name__)


class PaymentsEngine:
    """
    Replays a record source against a fresh ledger, strictly in arrival order.
    Each record is fully applied or rejected before the next one is read.
    """

    def __init__(self):
        self._log = TransactionLog()
        self._ledger = Ledger(self._log)
        self._stats = ProcessingStats()

    @property
    def stats(self) -> ProcessingStats:
        return self._stats

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    def process_file(self, filepath: str) -> Dict[int, ClientAccount]:
        """
        Process CSV file and return final account states. Raises OSError if the file cannot be read.
        Undecodable bytes are replaced so the affected row is reported as malformed.
        """
        with open(filepath, "r", newline="", encoding="utf-8", errors="replace") as f:
            logger.info(f"Processing {filepath}")
            return self.process_records(read_records(f))

    def process_records(self, records: Iterable[Union[Transaction, MalformedRecord]]) -> Dict[int, ClientAccount]:
        for record in records:
            if isinstance(record, MalformedRecord):
                outcome = Outcome.malformed()
            else:
                outcome = self._ledger.apply(record)
            self._stats.record_outcome(outcome)

        logger.info(f"Processing complete: {self._stats.summary()}")
        return self._ledger.accounts()

    def snapshot(self) -> Iterator[AccountSnapshot]:
        return self._ledger.snapshot()
