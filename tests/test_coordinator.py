from dataclasses import replace
from decimal import Decimal

import pytest

from core.exceptions import (
    FairnessMismatch,
    InsufficientFunds,
    InvalidParameters,
    InvalidSeed,
    LedgerTimeout,
    LedgerUnavailable,
)
from plinko import provably_fair
from plinko.conf import PlinkoConfig
from plinko.history import InMemoryHistoryStore
from plinko.payouts import get_table
from plinko.rounds import (
    CREDIT_FAILED,
    CREDIT_NOT_REQUIRED,
    CREDIT_OK,
    STAKE_REFUND_PENDING,
    STAKE_UNKNOWN,
    RoundState,
    SeedPair,
    WagerRequest,
)
from plinko.services import WagerCoordinator, verify_stored_round
from wallets.ledger import LedgerResult
from wallets.models import BalanceTier

from .conftest import TOKEN_ID

USER = 1


def wager(bet, risk="medium", rows=8, user_id=USER):
    return WagerRequest(user_id=user_id, bet_amount=Decimal(str(bet)), token_id=TOKEN_ID, risk=risk, rows=rows)


def broken_draw(digest):
    raise RuntimeError("draw failed")


@pytest.fixture
def fixed_draw(monkeypatch):
    def set_draw(value):
        monkeypatch.setattr("plinko.services.draw_from_digest", lambda digest: value)
    return set_draw


def test_losing_round_deducts_and_never_credits(coordinator, ledger, history, fixed_draw):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "100")
    fixed_draw(4)

    game = coordinator.play(wager(10, "high", 8))

    assert game.state == RoundState.DONE
    assert game.multiplier == Decimal("0.2")
    assert game.result == "loss"
    assert game.win_amount == 0
    assert game.credit_status == CREDIT_NOT_REQUIRED
    assert ledger.calls_to("credit") == []
    assert ledger.balances[(USER, TOKEN_ID, BalanceTier.MAIN)] == Decimal("90")
    assert history.get_by_id(game.round_id) is game


def test_winning_round_credits_the_deducted_tier(coordinator, ledger, fixed_draw, live_bonus):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.BONUS, "5")
    ledger.set_bonus(live_bonus(USER))
    fixed_draw(0)

    game = coordinator.play(wager(5, "low", 9))

    assert game.balance_tier == BalanceTier.BONUS
    assert game.result == "win"
    assert game.multiplier == Decimal("5.6")
    assert game.win_amount == Decimal("28")
    assert game.credit_status == CREDIT_OK

    deduct = ledger.calls_to("deduct")
    credit = ledger.calls_to("credit")
    assert deduct == [(USER, Decimal("5"), TOKEN_ID, BalanceTier.BONUS, f"plinko:{game.round_id}:bet")]
    assert credit == [(USER, Decimal("28"), TOKEN_ID, BalanceTier.BONUS, f"plinko:{game.round_id}:credit")]
    assert ledger.balances[(USER, TOKEN_ID, BalanceTier.BONUS)] == Decimal("28")


def test_even_multiplier_is_a_draw_without_credit(coordinator, ledger, fixed_draw):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    fixed_draw(3)

    game = coordinator.play(wager(10, "low", 8))

    assert game.result == "draw"
    assert game.win_amount == 0
    assert ledger.calls_to("credit") == []


def test_unconfigured_risk_settles_on_default_table(coordinator, ledger):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")

    game = coordinator.play(wager(1, "ultra", 16))

    assert (game.risk, game.rows) == ("medium", 8)
    assert len(game.result_path) == 9
    assert game.multiplier == get_table("medium", 8)[game.slot]


def test_deduct_timeout_aborts_before_any_outcome(coordinator, ledger, history, stakes):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "100")
    ledger.fail_with["deduct"] = LedgerTimeout()

    with pytest.raises(LedgerTimeout) as excinfo:
        coordinator.play(wager(10))

    game = excinfo.value.game
    assert game.state == RoundState.ABORTED
    assert game.slot is None
    assert game.multiplier is None
    assert history.rounds == {}
    assert ledger.referrals == []
    assert ledger.calls_to("credit") == []
    assert stakes.entries[game.round_id] == (game, STAKE_UNKNOWN)


def test_insufficient_funds_aborts(coordinator, ledger, history):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "9.99")

    with pytest.raises(InsufficientFunds) as excinfo:
        coordinator.play(wager(10))

    assert excinfo.value.game.state == RoundState.ABORTED
    assert ledger.balances[(USER, TOKEN_ID, BalanceTier.MAIN)] == Decimal("9.99")
    assert history.rounds == {}


def test_unreachable_ledger_during_tier_selection_aborts(coordinator, ledger):
    ledger.fail_with["get_balance"] = LedgerUnavailable()

    with pytest.raises(LedgerUnavailable) as excinfo:
        coordinator.play(wager(10))

    assert excinfo.value.game.state == RoundState.ABORTED
    assert ledger.calls_to("deduct") == []


@pytest.mark.parametrize("bet", ["0", "-1", "0.001", "1000000.01"])
def test_bets_outside_limits_are_rejected(coordinator, ledger, bet):
    with pytest.raises(InvalidParameters):
        coordinator.play(wager(bet))
    assert ledger.calls == []


@pytest.mark.parametrize("risk, rows", [("", 8), (None, 8), ("low", 7), ("low", 17)])
def test_bad_parameters_are_rejected(coordinator, ledger, risk, rows):
    with pytest.raises(InvalidParameters):
        coordinator.play(wager(1, risk, rows))
    assert ledger.calls == []


def test_malformed_seed_is_rejected_before_deduction(coordinator, ledger):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    seeds = SeedPair("nothex", "x", "player", 0)

    with pytest.raises(InvalidSeed):
        coordinator.play(wager(1), seeds)
    assert ledger.calls_to("deduct") == []


def test_credit_failure_still_settles_as_win(coordinator, ledger, history, fixed_draw):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    ledger.fail_with["credit"] = LedgerUnavailable()
    fixed_draw(0)

    game = coordinator.play(wager(10, "high", 8))

    assert game.state == RoundState.DONE
    assert game.result == "win"
    assert game.win_amount == Decimal("290")
    assert game.credit_status == CREDIT_FAILED
    assert history.get_by_id(game.round_id).credit_status == CREDIT_FAILED
    assert ledger.balances[(USER, TOKEN_ID, BalanceTier.MAIN)] == Decimal("0")


def test_outcome_failure_refunds_the_stake(coordinator, ledger, stakes, monkeypatch):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    monkeypatch.setattr("plinko.services.draw_from_digest", broken_draw)

    with pytest.raises(RuntimeError):
        coordinator.play(wager(4))

    [(_, _, _, _, reference)] = ledger.calls_to("credit")
    assert reference.endswith(":refund")
    assert ledger.balances[(USER, TOKEN_ID, BalanceTier.MAIN)] == Decimal("10")
    assert stakes.entries == {}


def test_failed_refund_is_journalled(coordinator, ledger, stakes, monkeypatch):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    ledger.fail_with["credit"] = LedgerUnavailable()
    monkeypatch.setattr("plinko.services.draw_from_digest", broken_draw)

    with pytest.raises(RuntimeError):
        coordinator.play(wager(4))

    [(game, status)] = stakes.entries.values()
    assert status == STAKE_REFUND_PENDING
    assert game.bet_amount == Decimal("4")
    assert ledger.balances[(USER, TOKEN_ID, BalanceTier.MAIN)] == Decimal("6")


def test_rejected_refund_is_journalled(coordinator, ledger, stakes, monkeypatch, caplog):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    monkeypatch.setattr("plinko.services.draw_from_digest", broken_draw)
    monkeypatch.setattr(ledger, "credit", lambda *args: LedgerResult(False, error="account frozen"))

    with pytest.raises(RuntimeError):
        coordinator.play(wager(4))

    [(_, status)] = stakes.entries.values()
    assert status == STAKE_REFUND_PENDING
    assert "account frozen" in caplog.text


def test_unreachable_ledger_on_deduct_leaves_nothing_to_refund(coordinator, ledger, stakes):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    ledger.fail_with["deduct"] = LedgerUnavailable()

    with pytest.raises(LedgerUnavailable):
        coordinator.play(wager(1))

    assert stakes.entries == {}

def test_referral_failure_does_not_affect_settlement(coordinator, ledger):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    ledger.fail_with["record_referral"] = RuntimeError("referral store down")

    game = coordinator.play(wager(1))

    assert game.state == RoundState.DONE
    assert ledger.referrals == []


def test_referral_is_recorded_with_the_tier(coordinator, ledger):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")

    game = coordinator.play(wager(2))

    [entry] = ledger.referrals
    assert entry.user_id == USER
    assert entry.bet_amount == Decimal("2")
    assert entry.balance_tier == BalanceTier.MAIN
    assert entry.reference == game.bet_reference


def test_history_failure_is_absorbed(coordinator, ledger, history, caplog):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    history.fail_next_save = True

    game = coordinator.play(wager(1))

    assert game.state == RoundState.DONE
    assert history.rounds == {}
    assert "not stored" in caplog.text


def test_history_tracking_can_be_disabled(ledger):
    history = InMemoryHistoryStore()
    coordinator = WagerCoordinator(ledger, history=history, config=PlinkoConfig(history_tracking=False))
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")

    coordinator.play(wager(1))

    assert history.rounds == {}


def test_draw_is_reproducible_from_the_stored_seeds(coordinator, ledger):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    server_seed, server_seed_hash = provably_fair.commit()
    seeds = SeedPair(server_seed, server_seed_hash, "my-seed", 4)

    game = coordinator.play(wager(1, "high", 10), seeds)

    assert game.slot == provably_fair.draw(server_seed, "my-seed", 4, 11)
    assert game.result_path[-1] == game.slot
    report = verify_stored_round(game)
    assert report["valid"] is True
    assert report["multiplier"] == float(game.multiplier)


def test_tampered_round_fails_verification(coordinator, ledger):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    game = coordinator.play(wager(1, "high", 10))

    game.slot = (game.slot + 1) % 11
    with pytest.raises(FairnessMismatch):
        verify_stored_round(game)


def test_swapped_seed_fails_verification(coordinator, ledger):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "10")
    game = coordinator.play(wager(1))

    other_seed, _ = provably_fair.commit()
    game.seeds = replace(game.seeds, server_seed=other_seed)
    with pytest.raises(FairnessMismatch):
        verify_stored_round(game)


def test_balance_never_goes_negative(coordinator, ledger, fixed_draw):
    ledger.set_balance(USER, TOKEN_ID, BalanceTier.MAIN, "3")
    fixed_draw(4)

    for _ in range(3):
        coordinator.play(wager(1, "high", 8))

    with pytest.raises(InsufficientFunds):
        coordinator.play(wager(1, "high", 8))

    assert ledger.balances[(USER, TOKEN_ID, BalanceTier.MAIN)] == Decimal("0")
    assert len(ledger.calls_to("deduct")) == 4
