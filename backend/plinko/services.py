# plinko/services.py
"""
Plinko wager settlement.

``WagerCoordinator.play`` walks one round through

    INIT -> DEDUCTED -> RESULT_COMPUTED -> CREDITED | NO_CREDIT
         -> HISTORY_RECORDED -> DONE

or ends in ABORTED when the stake could not be taken. Every ledger
movement carries a per-round reference (``plinko:<round_id>:bet``,
``:credit`` or ``:refund``) so retries never move funds twice.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from core.exceptions import (
    FairnessMismatch,
    InsufficientFunds,
    InvalidParameters,
    InvalidSeed,
    HistoryWriteFailed,
    LedgerTimeout,
    LedgerUnavailable,
    PlinkoError,
)
from referrals.tracker import ReferralTracker
from wallets.ledger import INSUFFICIENT_FUNDS, get_ledger
from wallets.models import BalanceTier
from .balance import BalanceSelector
from .conf import PlinkoConfig
from .engine import Parameters, resolve
from .history import DatabaseHistoryStore, NullHistoryStore
from .models import PlinkoRound, RoundCommitment, UnsettledStake
from .payouts import DEFAULT_RISK, DEFAULT_ROWS
from .provably_fair import (
    commit,
    draw_from_digest,
    generate_client_seed,
    round_digest,
    validate_client_seed,
    validate_seed_triple,
    verify,
)
from .rounds import (
    CREDIT_FAILED,
    CREDIT_NOT_REQUIRED,
    CREDIT_OK,
    GameRound,
    RoundState,
    STAKE_REFUND_PENDING,
    STAKE_UNKNOWN,
    SeedPair,
    WagerRequest,
)
from .stakes import DatabaseStakeJournal

logger = logging.getLogger(__name__)

Q8 = Decimal("0.00000001")
ONE = Decimal("1")
FEED_GROUP = "plinko_feed"


# ======================================================
# COORDINATOR
# ======================================================
class WagerCoordinator:

    def __init__(self, ledger, history=None, tracker=None, selector=None, config=None,
                 stakes=None, clock=timezone.now):
        self.ledger = ledger
        self.stakes = stakes if stakes is not None else DatabaseStakeJournal()
        self.config = config or PlinkoConfig.from_settings()
        self.history = history if history is not None else NullHistoryStore()
        self.tracker = tracker or ReferralTracker(ledger)
        self.selector = selector or BalanceSelector(ledger, clock=clock)
        self.clock = clock

    def validate(self, request: WagerRequest):
        """Return ``(bet_amount, parameters)`` or raise InvalidParameters."""
        try:
            bet = Decimal(str(request.bet_amount))
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidParameters("bet_amount must be a number")
        if not bet.is_finite():
            raise InvalidParameters("bet_amount must be a number")
        if bet < self.config.min_bet or bet > self.config.max_bet:
            raise InvalidParameters(
                f"bet_amount must be between {self.config.min_bet} and {self.config.max_bet}"
            )
        parameters = Parameters.from_input(
            request.risk, request.rows, self.config.min_rows, self.config.max_rows,
        )
        return bet, parameters

    def play(self, request: WagerRequest, seeds: SeedPair = None) -> GameRound:
        bet, parameters = self.validate(request)

        if seeds is None:
            server_seed, server_seed_hash = commit()
            seeds = SeedPair(server_seed, server_seed_hash, generate_client_seed(), 0)
        validate_seed_triple(seeds.server_seed, seeds.client_seed, seeds.nonce)

        game = GameRound(
            user_id=request.user_id,
            bet_amount=bet,
            token_id=request.token_id,
            risk=parameters.risk,
            rows=parameters.rows,
            seeds=seeds,
            created_at=self.clock(),
        )

        # INIT -> DEDUCTED
        try:
            game.balance_tier = self.selector.select_tier(game.user_id, bet, game.token_id)
        except LedgerUnavailable as e:
            self._abort(game, e)
            raise

        try:
            result = self.ledger.deduct(
                game.user_id, bet, game.token_id, game.balance_tier, game.bet_reference,
            )
        except LedgerTimeout as e:
            # The ledger may have applied the deduct before the timeout
            self._abort(game, e)
            self._journal(game, STAKE_UNKNOWN)
            raise
        except LedgerUnavailable as e:
            self._abort(game, e)
            raise

        if not result.success:
            if result.code == INSUFFICIENT_FUNDS:
                error = InsufficientFunds(result.error or "")
            else:
                error = InvalidParameters(result.error or "Bet rejected by ledger")
            raise self._abort(game, error)

        game.state = RoundState.DEDUCTED
        logger.info(
            "Round %s: user %s staked %s from %s",
            game.round_id, game.user_id, bet, game.balance_tier,
        )

        # DEDUCTED -> RESULT_COMPUTED
        try:
            digest = round_digest(seeds.server_seed, seeds.client_seed, seeds.nonce)
            outcome = resolve(parameters, draw_from_digest(digest), digest)
        except Exception:
            logger.exception("Round %s: outcome failed after deduction, refunding", game.round_id)
            self._refund(game)
            game.state = RoundState.ABORTED
            raise

        game.risk = outcome.risk
        game.rows = outcome.rows
        game.slot = outcome.slot
        game.multiplier = outcome.multiplier
        game.result = outcome.result
        game.result_path = outcome.result_path
        game.directions = outcome.directions
        game.state = RoundState.RESULT_COMPUTED

        # RESULT_COMPUTED -> CREDITED | NO_CREDIT
        if outcome.multiplier > ONE:
            game.win_amount = (bet * outcome.multiplier).quantize(Q8)
            game.credit_status = self._credit(game)
            game.state = RoundState.CREDITED
        else:
            game.win_amount = Decimal("0")
            game.credit_status = CREDIT_NOT_REQUIRED
            game.state = RoundState.NO_CREDIT

        # Wagering progress may close a bonus and sweep BONUS into MAIN,
        # so it is only reported once the winnings have landed.
        self.tracker.track(
            game.user_id, bet, game.token_id, game.balance_tier, reference=game.bet_reference,
        )

        game.settled_at = self.clock()

        # -> HISTORY_RECORDED
        if self.config.history_tracking:
            try:
                self.history.save(game)
            except HistoryWriteFailed as e:
                logger.warning("Round %s: %s", game.round_id, e.message)
            except Exception:
                logger.exception("Round %s: history write failed", game.round_id)
        game.state = RoundState.HISTORY_RECORDED

        game.state = RoundState.DONE
        logger.info(
            "Round %s settled: %s x%s win=%s",
            game.round_id, game.result, game.multiplier, game.win_amount,
        )
        return game

    def _abort(self, game, error: PlinkoError) -> PlinkoError:
        game.state = RoundState.ABORTED
        error.game = game
        logger.warning(
            "Round %s aborted for user %s: %s (%s)",
            game.round_id, game.user_id, error.message, error.code,
        )
        return error

    def _credit(self, game) -> str:
        try:
            result = self.ledger.credit(
                game.user_id, game.win_amount, game.token_id, game.balance_tier, game.credit_reference,
            )
        except LedgerUnavailable as e:
            logger.warning(
                "Round %s: credit of %s failed (%s), left for reconciliation",
                game.round_id, game.win_amount, e.message,
            )
            return CREDIT_FAILED

        if not result.success:
            logger.warning(
                "Round %s: credit of %s rejected: %s",
                game.round_id, game.win_amount, result.error,
            )
            return CREDIT_FAILED
        return CREDIT_OK

    def _refund(self, game):
        try:
            result = self.ledger.credit(
                game.user_id, game.bet_amount, game.token_id, game.balance_tier, game.refund_reference,
            )
        except LedgerUnavailable as e:
            logger.warning(
                "Round %s: refund of %s failed (%s), left for reconciliation",
                game.round_id, game.bet_amount, e.message,
            )
            self._journal(game, STAKE_REFUND_PENDING)
            return

        if not result.success:
            logger.warning(
                "Round %s: refund of %s rejected: %s",
                game.round_id, game.bet_amount, result.error,
            )
            self._journal(game, STAKE_REFUND_PENDING)

    def _journal(self, game, status):
        try:
            self.stakes.record(game, status)
        except Exception:
            logger.exception("Round %s: could not journal %s stake of %s", game.round_id, status, game.bet_amount)


def history_store(config=None):
    config = config or PlinkoConfig.from_settings()
    return DatabaseHistoryStore() if config.history_tracking else NullHistoryStore()


def build_coordinator(config=None):
    config = config or PlinkoConfig.from_settings()
    ledger = get_ledger()
    return WagerCoordinator(
        ledger,
        history=history_store(config),
        tracker=ReferralTracker(ledger),
        config=config,
    )


# ======================================================
# COMMIT / REVEAL
# ======================================================
@transaction.atomic
def commit_round(user_id, client_seed=None, status=RoundCommitment.OPEN) -> RoundCommitment:
    client_seed = client_seed or generate_client_seed()
    validate_client_seed(client_seed)

    # Serialise nonce allocation per player
    get_user_model().objects.select_for_update().filter(pk=user_id).first()
    last = RoundCommitment.objects.filter(user_id=user_id).aggregate(n=Max("nonce"))["n"]

    server_seed, server_seed_hash = commit()
    return RoundCommitment.objects.create(
        user_id=user_id,
        server_seed=server_seed,
        server_seed_hash=server_seed_hash,
        client_seed=client_seed,
        nonce=0 if last is None else last + 1,
        status=status,
        used_at=timezone.now() if status == RoundCommitment.USED else None,
    )


def _seed_pair(commitment):
    return SeedPair(
        server_seed=commitment.server_seed,
        server_seed_hash=commitment.server_seed_hash,
        client_seed=commitment.client_seed,
        nonce=commitment.nonce,
        commitment_id=commitment.id,
    )


@transaction.atomic
def consume_commitment(user_id, commitment_id) -> SeedPair:
    updated = RoundCommitment.objects.filter(
        pk=commitment_id,
        user_id=user_id,
        status=RoundCommitment.OPEN,
    ).update(status=RoundCommitment.USED, used_at=timezone.now())
    if not updated:
        raise InvalidSeed("Commitment not found or already used")
    return _seed_pair(RoundCommitment.objects.get(pk=commitment_id))


def release_commitment(seeds: SeedPair):
    """Reopen a commitment whose round never took the stake."""
    if seeds.commitment_id is None:
        return
    RoundCommitment.objects.filter(pk=seeds.commitment_id).update(
        status=RoundCommitment.OPEN,
        used_at=None,
    )


def settle_wager(user_id, bet_amount, token_id, risk, rows,
                 client_seed=None, commitment_id=None, coordinator=None) -> GameRound:
    """
    Play one round for a player: consume their open commitment (or commit
    inline) and run it through the coordinator.
    """
    coordinator = coordinator or build_coordinator()
    request = WagerRequest(
        user_id=user_id,
        bet_amount=bet_amount,
        token_id=token_id,
        risk=risk,
        rows=rows,
    )
    coordinator.validate(request)

    if commitment_id:
        seeds = consume_commitment(user_id, commitment_id)
    else:
        seeds = _seed_pair(commit_round(user_id, client_seed, status=RoundCommitment.USED))

    try:
        return coordinator.play(request, seeds)
    except LedgerTimeout:
        # The stake may be gone; the round stays journalled against these seeds
        raise
    except PlinkoError:
        if commitment_id:
            release_commitment(seeds)
        raise


def publish_round(game: GameRound):
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(
            FEED_GROUP,
            {"type": "round.settled", "data": game.to_feed_payload()},
        )
    except Exception:
        logger.exception("Could not broadcast round %s", game.round_id)


# ======================================================
# VERIFICATION
# ======================================================
def _recompute(server_seed, client_seed, nonce, server_seed_hash, risk, rows):
    check = verify(server_seed, client_seed, nonce, server_seed_hash)
    outcome = resolve(Parameters(risk=risk or DEFAULT_RISK, rows=rows or DEFAULT_ROWS), check.draw, check.digest)
    return check, outcome


def verify_game(server_seed, client_seed, nonce, server_seed_hash, risk=DEFAULT_RISK, rows=DEFAULT_ROWS) -> dict:
    check, outcome = _recompute(server_seed, client_seed, nonce, server_seed_hash, risk, rows)
    return {
        "valid": bool(check),
        "commitment": check.commitment,
        "server_seed_hash": server_seed_hash,
        "draw": outcome.slot,
        "slot": outcome.slot,
        "multiplier": float(outcome.multiplier),
        "result": outcome.result,
        "result_path": outcome.result_path,
        "risk": outcome.risk,
        "rows": outcome.rows,
    }


def verify_stored_round(game: GameRound) -> dict:
    seeds = game.seeds
    check, outcome = _recompute(
        seeds.server_seed, seeds.client_seed, seeds.nonce, seeds.server_seed_hash, game.risk, game.rows,
    )

    mismatches = []
    if not check:
        mismatches.append("commitment")
    if outcome.slot != game.slot:
        mismatches.append("slot")
    if outcome.multiplier != game.multiplier:
        mismatches.append("multiplier")
    if outcome.result_path != list(game.result_path):
        mismatches.append("result_path")

    if mismatches:
        logger.error("Round %s failed verification: %s", game.round_id, ", ".join(mismatches))
        raise FairnessMismatch(
            f"Round {game.round_id} does not match its seeds ({', '.join(mismatches)})",
            game=game,
        )

    return {
        "valid": True,
        "round_id": game.round_id,
        "commitment": check.commitment,
        "server_seed": seeds.server_seed,
        "server_seed_hash": seeds.server_seed_hash,
        "client_seed": seeds.client_seed,
        "nonce": seeds.nonce,
        "draw": outcome.slot,
        "slot": outcome.slot,
        "multiplier": float(outcome.multiplier),
        "result": outcome.result,
        "result_path": outcome.result_path,
        "risk": outcome.risk,
        "rows": outcome.rows,
    }


# ======================================================
# RECONCILIATION
# ======================================================
@dataclass
class ReconcileSummary:
    retried: int = 0
    fixed: int = 0
    failed: int = 0


@dataclass
class StakeSummary:
    checked: int = 0
    refunded: int = 0
    not_taken: int = 0
    failed: int = 0


def payout_tier(ledger, user_id, token_id, tier):
    """BONUS money paid after its bonus has closed goes to MAIN instead."""
    if tier != BalanceTier.BONUS:
        return tier
    bonus = ledger.get_active_bonus(user_id, token_id)
    if bonus is not None and bonus.is_valid(timezone.now()):
        return tier
    return BalanceTier.MAIN


def reconcile_failed_credits(ledger, limit=100) -> ReconcileSummary:
    """
    Retry winnings whose credit failed at settlement. The credit reference
    is the one used at settlement, so a credit the ledger already applied
    is replayed rather than paid twice.
    """
    summary = ReconcileSummary()
    store = DatabaseHistoryStore()
    pending = PlinkoRound.objects.filter(credit_status=PlinkoRound.CREDIT_FAILED).order_by("created_at")[:limit]

    for row in pending:
        summary.retried += 1
        reference = f"plinko:{row.round_id}:credit"
        try:
            tier = payout_tier(ledger, row.user_id, row.token_id, row.balance_tier)
            result = ledger.credit(row.user_id, row.win_amount, row.token_id, tier, reference)
        except LedgerUnavailable as e:
            logger.warning("Reconcile %s: ledger unavailable (%s)", row.round_id, e.message)
            summary.failed += 1
            continue

        if not result.success:
            logger.warning("Reconcile %s: credit rejected: %s", row.round_id, result.error)
            summary.failed += 1
            continue

        store.mark_credit(row.round_id, CREDIT_OK)
        summary.fixed += 1
        logger.info("Reconcile %s: credited %s to %s", row.round_id, row.win_amount, tier)

    return summary


def reconcile_unsettled_stakes(ledger, limit=100, grace=None) -> StakeSummary:
    """
    Hand back stakes of aborted rounds. A deduct that timed out is only
    refunded once the ledger confirms it holds the bet reference; stakes
    younger than ``grace`` are skipped so in-flight deducts can land first.
    """
    if grace is None:
        grace = PlinkoConfig.from_settings().unsettled_grace
    summary = StakeSummary()
    pending = UnsettledStake.objects.filter(
        status__in=UnsettledStake.OPEN_STATUSES,
        created_at__lte=timezone.now() - grace,
    )[:limit]

    for stake in pending:
        summary.checked += 1
        try:
            if stake.status == UnsettledStake.DEDUCT_UNKNOWN and not ledger.has_reference(stake.bet_reference):
                stake.status = UnsettledStake.NOT_TAKEN
                stake.resolved_at = timezone.now()
                stake.save(update_fields=["status", "resolved_at"])
                summary.not_taken += 1
                logger.info("Stake %s: deduct never reached the ledger", stake.round_id)
                continue

            tier = payout_tier(ledger, stake.user_id, stake.token_id, stake.balance_tier)
            result = ledger.credit(stake.user_id, stake.bet_amount, stake.token_id, tier, stake.refund_reference)
        except LedgerUnavailable as e:
            logger.warning("Stake %s: ledger unavailable (%s)", stake.round_id, e.message)
            summary.failed += 1
            continue

        if not result.success:
            logger.warning("Stake %s: refund rejected: %s", stake.round_id, result.error)
            summary.failed += 1
            continue

        stake.status = UnsettledStake.REFUNDED
        stake.resolved_at = timezone.now()
        stake.save(update_fields=["status", "resolved_at"])
        summary.refunded += 1
        logger.info("Stake %s: refunded %s to %s", stake.round_id, stake.bet_amount, tier)

    return summary
