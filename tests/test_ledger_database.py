from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from wallets.ledger import INSUFFICIENT_FUNDS, DatabaseLedger, ReferralEntry
from wallets.models import Balance, BalanceTier, WalletTransaction
from referrals.models import ReferralLedgerEntry

from .conftest import TOKEN_ID

pytestmark = pytest.mark.django_db


@pytest.fixture
def db_ledger():
    return DatabaseLedger()


def amount_of(user, tier=BalanceTier.MAIN):
    return Balance.objects.get(user=user, token_id=TOKEN_ID, tier=tier).amount


def test_deduct_decrements_and_logs_transaction(db_ledger, user, fund):
    fund(user, "50")

    result = db_ledger.deduct(user.id, Decimal("20"), TOKEN_ID, BalanceTier.MAIN, "plinko:r1:bet")

    assert result.success
    assert result.new_balance == Decimal("30")
    assert amount_of(user) == Decimal("30")
    tx = WalletTransaction.objects.get(reference="plinko:r1:bet")
    assert tx.tx_type == WalletTransaction.DEBIT
    assert tx.balance_after == Decimal("30")


def test_deduct_refuses_to_overdraw(db_ledger, user, fund):
    fund(user, "5")

    result = db_ledger.deduct(user.id, Decimal("5.00000001"), TOKEN_ID, BalanceTier.MAIN, "plinko:r2:bet")

    assert not result.success
    assert result.code == INSUFFICIENT_FUNDS
    assert amount_of(user) == Decimal("5")
    assert not WalletTransaction.objects.filter(reference="plinko:r2:bet").exists()


def test_deduct_without_balance_row_is_insufficient(db_ledger, user):
    result = db_ledger.deduct(user.id, Decimal("1"), TOKEN_ID, BalanceTier.BONUS, "plinko:r3:bet")
    assert result.code == INSUFFICIENT_FUNDS


def test_deduct_only_touches_the_requested_tier(db_ledger, user, fund):
    fund(user, "10", BalanceTier.MAIN)
    fund(user, "10", BalanceTier.BONUS)

    db_ledger.deduct(user.id, Decimal("4"), TOKEN_ID, BalanceTier.BONUS, "plinko:r4:bet")

    assert amount_of(user, BalanceTier.MAIN) == Decimal("10")
    assert amount_of(user, BalanceTier.BONUS) == Decimal("6")


def test_repeated_reference_is_applied_once(db_ledger, user, fund):
    fund(user, "50")

    first = db_ledger.deduct(user.id, Decimal("20"), TOKEN_ID, BalanceTier.MAIN, "plinko:r5:bet")
    second = db_ledger.deduct(user.id, Decimal("20"), TOKEN_ID, BalanceTier.MAIN, "plinko:r5:bet")

    assert first.success and second.success
    assert second.new_balance == Decimal("30")
    assert amount_of(user) == Decimal("30")


def test_credit_creates_missing_row_and_is_idempotent(db_ledger, user):
    for _ in range(2):
        result = db_ledger.credit(user.id, Decimal("28"), TOKEN_ID, BalanceTier.BONUS, "plinko:r6:credit")
        assert result.success

    assert amount_of(user, BalanceTier.BONUS) == Decimal("28")
    assert WalletTransaction.objects.filter(reference="plinko:r6:credit").count() == 1


@pytest.mark.parametrize("amount", ["0", "-5"])
def test_non_positive_amounts_are_rejected(db_ledger, user, fund, amount):
    fund(user, "10")

    assert not db_ledger.deduct(user.id, Decimal(amount), TOKEN_ID, BalanceTier.MAIN, "x:bet").success
    assert not db_ledger.credit(user.id, Decimal(amount), TOKEN_ID, BalanceTier.MAIN, "x:credit").success
    assert amount_of(user) == Decimal("10")


def test_has_reference_only_sees_applied_movements(db_ledger, user, fund):
    fund(user, "1")

    db_ledger.deduct(user.id, Decimal("5"), TOKEN_ID, BalanceTier.MAIN, "plinko:r7:bet")
    assert not db_ledger.has_reference("plinko:r7:bet")

    db_ledger.deduct(user.id, Decimal("1"), TOKEN_ID, BalanceTier.MAIN, "plinko:r8:bet")
    assert db_ledger.has_reference("plinko:r8:bet")

def test_get_balance_defaults_to_zero(db_ledger, user):
    assert db_ledger.get_balance(user.id, TOKEN_ID, BalanceTier.MAIN) == Decimal("0")


def test_active_bonus_only_returns_live_bonus(db_ledger, user, bonus):
    bonus(user, expires_at=timezone.now() - timedelta(minutes=1))
    assert db_ledger.get_active_bonus(user.id, TOKEN_ID) is None

    live = bonus(user)
    active = db_ledger.get_active_bonus(user.id, TOKEN_ID)

    assert active.bonus_id == live.id
    assert active.is_valid(timezone.now())


def test_record_referral_appends_entry(db_ledger, user):
    db_ledger.record_referral(
        ReferralEntry(user_id=user.id, bet_amount=Decimal("3"), token_id=TOKEN_ID, balance_tier=BalanceTier.MAIN)
    )

    entry = ReferralLedgerEntry.objects.get(user=user)
    assert entry.bet_amount == Decimal("3")
    assert entry.commission_paid is False
