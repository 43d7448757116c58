from decimal import Decimal

import pytest

from marketplace.domain.errors import InsufficientFunds, InvalidTransition, NotFoundError
from marketplace.domain.statuses import TransactionType


@pytest.fixture
def funded(services, db):
    services.ledger.credit_wallet("vendor-1", 100, TransactionType.VENDOR_EARNING)
    services.ledger.credit_wallet("vendor-1", 500, TransactionType.VENDOR_EARNING, locked=True)
    db.commit()
    return "vendor-1"


def test_request_is_limited_by_available_balance(services, funded):
    with pytest.raises(InsufficientFunds):
        services.payouts.request_payout(funded, "150")

    payout = services.payouts.request_payout(funded, "60")

    assert payout.status == "pending"
    # nothing is debited until the payout is paid
    assert services.ledger.get_balance(funded).available == Decimal("100.00")


def test_paid_payout_debits_once(services, funded):
    payout = services.payouts.request_payout(funded, "60")
    services.payouts.approve(payout.id, "admin-1", note="checked")

    paid = services.payouts.mark_paid(payout.id, "admin-1", reference="WIRE-1")

    assert paid.status == "paid"
    assert paid.transaction_reference == "WIRE-1"
    assert services.ledger.get_balance(funded).available == Decimal("40.00")
    rows, _ = services.ledger.history(funded)
    debit = next(r for r in rows if r.type == "payout")
    assert debit.payout_request_id == payout.id

    with pytest.raises(InvalidTransition):
        services.payouts.mark_paid(payout.id, "admin-1")
    assert services.ledger.get_balance(funded).available == Decimal("40.00")


def test_pending_payout_can_be_paid_directly(services, funded):
    payout = services.payouts.request_payout(funded, "10")

    paid = services.payouts.mark_paid(payout.id, "admin-2")

    assert paid.approved_by == "admin-2"


def test_balance_is_rechecked_when_paying(services, funded):
    first = services.payouts.request_payout(funded, "80")
    second = services.payouts.request_payout(funded, "80")
    services.payouts.mark_paid(first.id, "admin-1")

    with pytest.raises(InsufficientFunds):
        services.payouts.mark_paid(second.id, "admin-1")

    [still_pending] = services.payouts.list_payouts(funded, status="pending")
    assert still_pending.id == second.id


def test_rejected_payout_is_final(services, funded):
    payout = services.payouts.request_payout(funded, "10")
    services.payouts.reject(payout.id, "admin-1", note="bank details missing")

    with pytest.raises(InvalidTransition):
        services.payouts.approve(payout.id, "admin-1")


def test_unknown_payout(services):
    with pytest.raises(NotFoundError):
        services.payouts.approve("missing", "admin-1")
