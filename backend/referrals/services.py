# referrals/services.py
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN

from django.conf import settings
from django.db import transaction
from django.db.models import F, Max, Sum
from django.utils import timezone

from core.exceptions import LedgerUnavailable
from wallets.models import BalanceTier, UserBonus
from wallets.services import convert_bonus_to_main
from .models import ReferralLedgerEntry

logger = logging.getLogger(__name__)

Q8 = Decimal("0.00000001")


# ======================================================
# BET RECORDING (ledger side of ReferralTracker.track)
# ======================================================
@transaction.atomic
def record_bet(entry):
    """
    Append the wager to the referral ledger and, for BONUS-tier bets,
    advance the active bonus' wagering requirement.
    """
    ReferralLedgerEntry.objects.create(
        user_id=entry.user_id,
        bet_amount=entry.bet_amount,
        token_id=entry.token_id,
        balance_tier=entry.balance_tier,
        reference=entry.reference,
        created_at=entry.created_at,
    )

    if entry.balance_tier != BalanceTier.BONUS:
        return

    bonus = (
        UserBonus.objects
        .select_for_update()
        .filter(
            user_id=entry.user_id,
            token_id=entry.token_id,
            is_active=True,
            is_completed=False,
        )
        .order_by("-created_at")
        .first()
    )
    if bonus is None:
        return

    UserBonus.objects.filter(pk=bonus.pk).update(
        wagered_amount=F("wagered_amount") + entry.bet_amount
    )
    bonus.refresh_from_db(fields=["wagered_amount"])

    if bonus.wagered_amount >= bonus.required_wager:
        logger.info(
            "Bonus %s wagering complete (%s >= %s)",
            bonus.id, bonus.wagered_amount, bonus.required_wager,
        )
        convert_bonus_to_main(bonus)


# ======================================================
# COMMISSION PAYOUT
# ======================================================
@dataclass
class CommissionSummary:
    processed: int = 0
    paid: int = 0
    failed: int = 0
    total_paid: Decimal = Decimal("0")


def commission_for(turnover: Decimal) -> Decimal:
    """
    REGULAR commission: (house edge x turnover / 2) x rate%.
    """
    house_edge = settings.REFERRAL_HOUSE_EDGE
    rate = settings.REFERRAL_COMMISSION_RATE
    raw = house_edge * turnover / 2 * rate / 100
    return raw.quantize(Q8, rounding=ROUND_DOWN)


def pay_pending_commissions(ledger, token_id=None, dry_run=False) -> CommissionSummary:
    summary = CommissionSummary()

    pending = ReferralLedgerEntry.objects.filter(
        commission_paid=False,
        user__referred_by__isnull=False,
    )
    if token_id is not None:
        pending = pending.filter(token_id=token_id)

    groups = (
        pending
        .values("user__referred_by", "token_id")
        .annotate(turnover=Sum("bet_amount"), last_id=Max("id"))
        .order_by("user__referred_by", "token_id")
    )

    for group in groups:
        summary.processed += 1
        referrer_id = group["user__referred_by"]
        group_token = group["token_id"]
        commission = commission_for(group["turnover"])

        if dry_run:
            summary.total_paid += commission
            continue

        batch = pending.filter(
            user__referred_by=referrer_id,
            token_id=group_token,
            id__lte=group["last_id"],
        )

        if commission > 0:
            reference = f"referral:{referrer_id}:{group_token}:{group['last_id']}"
            try:
                result = ledger.credit(referrer_id, commission, group_token, BalanceTier.MAIN, reference)
            except LedgerUnavailable as e:
                logger.warning("Commission for referrer %s not paid: %s", referrer_id, e)
                summary.failed += 1
                continue

            if not result.success:
                logger.warning("Commission for referrer %s rejected: %s", referrer_id, result.error)
                summary.failed += 1
                continue

        ReferralLedgerEntry.objects.filter(pk__in=batch.values("pk")).update(
            commission_paid=True,
            paid_at=timezone.now(),
        )
        summary.paid += 1
        summary.total_paid += commission

    return summary
