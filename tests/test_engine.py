import sys
import os
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from models import LedgerError
from payments_engine import PaymentsEngine


def write_csv(tmp_path, *lines):
    csv_file = tmp_path / "test.csv"
    csv_file.write_text('\n'.join(lines))
    return str(csv_file)


class TestPaymentsEngine:
    def test_basic_transactions(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 1.0",
            "deposit, 2, 2, 2.0",
            "deposit, 1, 3, 2.0",
            "withdrawal, 1, 4, 1.5",
            "withdrawal, 2, 5, 3.0",
        )

        engine = PaymentsEngine()
        accounts = engine.process_file(csv_file)

        assert accounts[1].available == Decimal("1.5")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].total == Decimal("1.5")

        assert accounts[2].available == Decimal("2.0")
        assert accounts[2].held == Decimal("0")
        assert accounts[2].total == Decimal("2.0")

        assert engine.stats.applied == 4
        assert engine.stats.errors[LedgerError.INSUFFICIENT_FUNDS] == 1

    def test_dispute_resolve(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "dispute, 1, 1,",
            "resolve, 1, 1,",
        )

        accounts = PaymentsEngine().process_file(csv_file)

        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].locked is False

    def test_chargeback(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 5.0",
            "dispute, 1, 1,",
            "chargeback, 1, 1,",
        )

        accounts = PaymentsEngine().process_file(csv_file)

        assert accounts[1].available == Decimal("0")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].total == Decimal("0")
        assert accounts[1].locked is True

    def test_out_of_order_dispute_is_dangling(self, tmp_path):
        """Dispute before deposit is not retried later."""
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "dispute, 1, 1,",
            "deposit, 1, 1, 100.0",
        )

        engine = PaymentsEngine()
        accounts = engine.process_file(csv_file)

        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert engine.stats.errors[LedgerError.DANGLING_REFERENCE] == 1

    def test_withdrawal_unknown_client_creates_no_account(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "withdrawal, 2, 9, 10.0",
        )

        engine = PaymentsEngine()
        accounts = engine.process_file(csv_file)

        assert accounts == {}
        assert engine.stats.ignored == 1
        assert engine.stats.errors[LedgerError.UNKNOWN_CLIENT_ON_WITHDRAWAL] == 1

    def test_decimal_precision(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 1.2345",
            "deposit, 1, 2, 0.0001",
            "withdrawal, 1, 3, 0.2346",
        )

        accounts = PaymentsEngine().process_file(csv_file)

        # 1.2345 + 0.0001 - 0.2346 = 1.0000
        assert accounts[1].available == Decimal("1.0000")

    def test_dispute_withdrawal_then_chargeback(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "withdrawal, 1, 2, 50.0",
            "dispute, 1, 2,",
            "chargeback, 1, 2,",
        )

        accounts = PaymentsEngine().process_file(csv_file)

        # Withdrawal refunded: back to the original 100
        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].total == Decimal("100")
        assert accounts[1].locked is True

    def test_duplicate_dispute_ignored(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "dispute, 1, 1,",
            "dispute, 1, 1,",
        )

        engine = PaymentsEngine()
        accounts = engine.process_file(csv_file)

        assert accounts[1].available == Decimal("0")
        assert accounts[1].held == Decimal("100")
        assert engine.stats.errors[LedgerError.INVALID_STATE_TRANSITION] == 1

    def test_frozen_account_rejects_operations(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "dispute, 1, 1,",
            "chargeback, 1, 1,",
            "deposit, 1, 2, 50.0",
            "withdrawal, 1, 3, 10.0",
        )

        engine = PaymentsEngine()
        accounts = engine.process_file(csv_file)

        assert accounts[1].available == Decimal("0")
        assert accounts[1].total == Decimal("0")
        assert accounts[1].locked is True
        assert engine.stats.errors[LedgerError.ACCOUNT_LOCKED] == 2

    def test_wrong_client_dispute_ignored(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "dispute, 2, 1,",
        )

        accounts = PaymentsEngine().process_file(csv_file)

        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert 2 not in accounts

    def test_chargeback_after_resolve_ignored(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "dispute, 1, 1,",
            "resolve, 1, 1,",
            "chargeback, 1, 1,",
        )

        accounts = PaymentsEngine().process_file(csv_file)

        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].locked is False

    def test_no_redispute_after_resolve(self, tmp_path):
        """Resolved is terminal, so a second dispute and chargeback do nothing."""
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "dispute, 1, 1,",
            "resolve, 1, 1,",
            "dispute, 1, 1,",
            "chargeback, 1, 1,",
        )

        accounts = PaymentsEngine().process_file(csv_file)

        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].locked is False

    def test_multiple_disputes_same_client(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "deposit, 1, 2, 50.0",
            "dispute, 1, 1,",
            "dispute, 1, 2,",
            "resolve, 1, 1,",
            "chargeback, 1, 2,",
        )

        accounts = PaymentsEngine().process_file(csv_file)

        # After resolve tx1: available=100, held=50
        # After chargeback tx2: available=100, held=0, locked
        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].total == Decimal("100")
        assert accounts[1].locked is True

    def test_malformed_rows_skipped(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, -100.0",
            "deposit, 1, 2, abc",
            "transfer, 1, 3, 5",
            "deposit, 1, 4, 50.0",
        )

        engine = PaymentsEngine()
        accounts = engine.process_file(csv_file)

        assert accounts[1].available == Decimal("50")
        assert engine.stats.malformed == 3
        assert engine.stats.applied == 1

    def test_duplicate_deposit_rejected(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "deposit, 1, 1, 100.0",
            "deposit, 1, 1, 100.0",
        )

        engine = PaymentsEngine()
        accounts = engine.process_file(csv_file)

        assert accounts[1].available == Decimal("100")
        assert engine.stats.errors[LedgerError.DUPLICATE_TRANSACTION_ID] == 2

    def test_missing_file_is_fatal(self, tmp_path):
        engine = PaymentsEngine()
        with pytest.raises(OSError):
            engine.process_file(str(tmp_path / "missing.csv"))

    def test_undecodable_bytes_reported_as_malformed(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_bytes(
            b"type, client, tx, amount\n"
            b"deposit, 1, 1, 1.0\n"
            b"deposit,1,2,\xff\xfe\n"
            b"deposit, 1, 3, 2.0\n"
        )

        engine = PaymentsEngine()
        accounts = engine.process_file(str(csv_file))

        assert accounts[1].available == Decimal("3.0")
        assert engine.stats.malformed == 1
        assert engine.stats.applied == 2

    def test_large_amounts_stay_exact(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 1000000000000000000000000",
            "deposit, 1, 2, 0.0001",
        )

        accounts = PaymentsEngine().process_file(csv_file)

        assert accounts[1].available == Decimal("1000000000000000000000000.0001")

    def test_amount_above_bound_is_malformed(self, tmp_path):
        csv_file = write_csv(
            tmp_path,
            "type, client, tx, amount",
            "deposit, 1, 1, 100000000000000000000000000000",
            "deposit, 2, 2, 1.0",
        )

        engine = PaymentsEngine()
        accounts = engine.process_file(csv_file)

        assert 1 not in accounts
        assert accounts[2].available == Decimal("1.0")
        assert engine.stats.malformed == 1
