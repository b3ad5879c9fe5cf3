import csv
import logging
import sys
from decimal import Decimal
from typing import Iterable, TextIO

from models import AccountSnapshot
from payments_engine import PaymentsEngine

logger = logging.getLogger(__name__)

HEADER = ["client", "available", "held", "total", "locked"]


def format_decimal(value: Decimal) -> str:
    """Format an already quantized decimal without exponent notation."""
    return f"{value:f}"


def write_snapshot(snapshots: Iterable[AccountSnapshot], out: TextIO) -> None:
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(HEADER)
    for snapshot in sorted(snapshots, key=lambda s: s.client_id):
        writer.writerow([
            snapshot.client_id,
            format_decimal(snapshot.available),
            format_decimal(snapshot.held),
            format_decimal(snapshot.total),
            str(snapshot.locked).lower(),
        ])


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    logging.basicConfig(
        level=logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    if len(argv) != 1:
        print("Usage: python main.py <input.csv>", file=sys.stderr)
        return 1

    filepath = argv[0]
    engine = PaymentsEngine()
    try:
        engine.process_file(filepath)
    except OSError as e:
        logger.error(f"Cannot read {filepath}: {e}")
        return 1

    write_snapshot(engine.snapshot(), sys.stdout)
    print(engine.stats.summary(), file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
