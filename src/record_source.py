import csv
import logging
from decimal import Decimal, Inexact, InvalidOperation, localcontext
from typing import Dict, Iterator, Optional, TextIO, Union

from models import (
    AMOUNT_PRECISION,
    AMOUNT_QUANTUM,
    LEDGER_CONTEXT,
    MAX_AMOUNT,
    MAX_AMOUNT_DIGITS,
    MalformedRecord,
    Transaction,
    TransactionType,
)

logger = logging.getLogger(__name__)

MAX_CLIENT_ID = 2**16 - 1
MAX_TRANSACTION_ID = 2**32 - 1

AMOUNT_TYPES = {TransactionType.DEPOSIT, TransactionType.WITHDRAWAL}


class RecordParseError(ValueError):
    """Raised when an input row cannot be turned into a Transaction."""


def read_records(stream: TextIO) -> Iterator[Union[Transaction, MalformedRecord]]:
    """
    Lazily read CSV rows with a `type, client, tx, amount` header.
    Bad rows are yielded as MalformedRecord so iteration never stops early.
    """
    reader = csv.DictReader(stream, skipinitialspace=True)
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            logger.warning(f"Failed to read line {reader.line_num}: {e}")
            yield MalformedRecord(line_number=reader.line_num, reason=f"unreadable row: {e}")
            continue

        try:
            yield parse_row(row)
        except RecordParseError as e:
            logger.warning(f"Failed to parse line {reader.line_num}: {e}")
            yield MalformedRecord(line_number=reader.line_num, reason=str(e), row=_normalize(row))


def parse_row(row: Dict[Optional[str], object]) -> Transaction:
    """Parse CSV row into Transaction."""
    normalized = _normalize(row)

    type_str = _required(normalized, "type").lower()
    try:
        transaction_type = TransactionType(type_str)
    except ValueError:
        raise RecordParseError(f"unknown transaction type {type_str!r}") from None

    client_id = _parse_id(_required(normalized, "client"), "client", MAX_CLIENT_ID)
    transaction_id = _parse_id(_required(normalized, "tx"), "tx", MAX_TRANSACTION_ID)

    amount = None
    if transaction_type in AMOUNT_TYPES:
        amount = parse_amount(_required(normalized, "amount"))

    return Transaction(
        transaction_type=transaction_type,
        client_id=client_id,
        transaction_id=transaction_id,
        amount=amount,
    )


def parse_amount(amount_str: str) -> Decimal:
    """Parse a non-negative amount that is exact at AMOUNT_PRECISION decimal places."""
    try:
        amount = Decimal(amount_str)
    except InvalidOperation:
        raise RecordParseError(f"unparsable amount {amount_str!r}") from None

    if not amount.is_finite():
        raise RecordParseError(f"non-finite amount {amount_str!r}")
    if amount < 0:
        raise RecordParseError(f"negative amount {amount_str!r}")
    if amount >= MAX_AMOUNT:
        raise RecordParseError(f"amount {amount_str!r} has more than {MAX_AMOUNT_DIGITS} integer digits")

    try:
        with localcontext(LEDGER_CONTEXT):
            return amount.quantize(AMOUNT_QUANTUM)
    except Inexact:
        raise RecordParseError(f"amount {amount_str!r} has more than {AMOUNT_PRECISION} decimal places") from None


def _normalize(row: Dict[Optional[str], object]) -> Dict[str, Optional[str]]:
    # Surplus fields land under the None key; missing trailing fields are None.
    return {
        k.strip(): v.strip() if isinstance(v, str) else None
        for k, v in row.items()
        if k is not None
    }


def _required(normalized: Dict[str, Optional[str]], name: str) -> str:
    value = normalized.get(name)
    if not value:
        raise RecordParseError(f"missing {name!r} field")
    return value


def _parse_id(value: str, name: str, maximum: int) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise RecordParseError(f"invalid {name!r} id {value!r}") from None

    if not 0 <= parsed <= maximum:
        raise RecordParseError(f"{name!r} id {parsed} out of range")
    return parsed
