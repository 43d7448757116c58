from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from marketplace.domain.errors import InsufficientFunds, InvalidTransition, ValidationError
from marketplace.domain.statuses import TransactionType


def test_locked_credit_goes_to_locked_balance(services, db):
    ledger = services.ledger
    unlock_at = datetime.now(timezone.utc) + timedelta(days=3)

    tx = ledger.credit_wallet("vendor-1", "80.50", TransactionType.VENDOR_EARNING, locked=True, unlock_at=unlock_at)
    db.commit()

    assert tx.status == "locked"
    assert tx.destination_user_id == "vendor-1"
    balance = ledger.get_balance("vendor-1")
    assert balance.available == Decimal("0.00")
    assert balance.locked == Decimal("80.50")


def test_locked_credit_defaults_to_the_hold_period(services, make, db):
    make.setting("fund_hold_days", 7)
    before = datetime.now(timezone.utc)

    tx = services.ledger.credit_wallet("vendor-1", 10, TransactionType.VENDOR_EARNING, locked=True)

    assert before + timedelta(days=7) <= tx.unlock_at <= datetime.now(timezone.utc) + timedelta(days=7)


def test_legacy_return_period_setting_is_the_hold_fallback(services, make):
    make.setting("product_return_period", 14)

    assert services.settings.fund_hold_days() == 14


def test_debit_cannot_touch_locked_funds(services, db):
    ledger = services.ledger
    ledger.credit_wallet("vendor-1", 100, TransactionType.VENDOR_EARNING, locked=True)
    ledger.credit_wallet("vendor-1", 30, TransactionType.ADJUSTMENT)
    db.commit()

    with pytest.raises(InsufficientFunds) as excinfo:
        ledger.debit_wallet("vendor-1", 50, TransactionType.PAYOUT)
    db.rollback()

    assert excinfo.value.available == Decimal("30.00")
    assert ledger.get_balance("vendor-1").available == Decimal("30.00")


def test_debit_moves_available_balance(services, db):
    ledger = services.ledger
    ledger.credit_wallet("vendor-1", 30, TransactionType.ADJUSTMENT)
    tx = ledger.debit_wallet("vendor-1", "12.25", TransactionType.PAYOUT)
    db.commit()

    assert tx.source_user_id == "vendor-1"
    assert tx.status == "completed"
    assert ledger.get_balance("vendor-1").available == Decimal("17.75")


@pytest.mark.parametrize("amount", [0, "-5", "0.001"])
def test_amount_must_be_positive(services, amount):
    with pytest.raises(ValidationError):
        services.ledger.credit_wallet("vendor-1", amount, TransactionType.ADJUSTMENT)


def test_credit_and_debit_types_are_separate(services):
    with pytest.raises(ValidationError):
        services.ledger.credit_wallet("vendor-1", 10, TransactionType.PAYOUT)
    with pytest.raises(ValidationError):
        services.ledger.debit_wallet("vendor-1", 10, TransactionType.COMMISSION)


def test_reversing_a_locked_credit(services, db):
    ledger = services.ledger
    original = ledger.credit_wallet(
        "vendor-1", 40, TransactionType.VENDOR_EARNING, locked=True, source_user_id="buyer-1"
    )
    db.commit()

    reversal = ledger.reverse_locked_credit(original.id, "Order cancelled")
    db.commit()

    assert original.status == "refunded"
    assert reversal.type == "refund"
    assert reversal.reversal_of_id == original.id
    assert reversal.destination_user_id == "buyer-1"
    assert reversal.amount == Decimal("40.00")
    assert ledger.get_balance("vendor-1").locked == Decimal("0.00")

    with pytest.raises(InvalidTransition):
        ledger.reverse_locked_credit(original.id, "again")


def test_completed_credit_cannot_be_reversed(services, db):
    tx = services.ledger.credit_wallet("vendor-1", 40, TransactionType.ADJUSTMENT)
    db.commit()

    with pytest.raises(InvalidTransition):
        services.ledger.reverse_locked_credit(tx.id, "nope")


def test_history_lists_every_side_of_a_transaction(services, db):
    ledger = services.ledger
    ledger.credit_wallet("vendor-1", 10, TransactionType.VENDOR_EARNING, source_user_id="buyer-1")
    ledger.credit_wallet("vendor-2", 20, TransactionType.VENDOR_EARNING, source_user_id="buyer-1")
    ledger.credit_wallet("vendor-1", 5, TransactionType.ADJUSTMENT)
    db.commit()

    rows, total = ledger.history("buyer-1")
    assert total == 2
    assert {r.wallet_user_id for r in rows} == {"vendor-1", "vendor-2"}

    rows, total = ledger.history("vendor-1", limit=1)
    assert total == 2
    assert len(rows) == 1


def test_unknown_wallet_has_zero_balance(services):
    balance = services.ledger.get_balance("nobody")

    assert balance.available == Decimal("0")
    assert balance.locked == Decimal("0")
