import logging
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .models import Balance, BalanceTier, UserBonus, WalletTransaction

logger = logging.getLogger(__name__)

DEPOSIT_BONUS_PERCENT = Decimal("100")
MAX_BONUS_AMOUNT = Decimal("1500")
MIN_DEPOSIT_AMOUNT = Decimal("10")
WAGERING_MULTIPLIER = Decimal("10")
BONUS_EXPIRY_DAYS = 7


class WalletError(Exception):
    pass


# ======================================================
# BALANCES
# ======================================================
def balances_for(user_id, token_id):
    rows = dict(
        Balance.objects
        .filter(user_id=user_id, token_id=token_id)
        .values_list("tier", "amount")
    )
    main = rows.get(BalanceTier.MAIN, Decimal("0"))
    bonus = rows.get(BalanceTier.BONUS, Decimal("0"))
    return {"main": main, "bonus": bonus, "total": main + bonus}


# ======================================================
# DEPOSIT BONUS
# ======================================================
@transaction.atomic
def grant_deposit_bonus(user, deposit_amount: Decimal, token_id: int, reference: str):
    """
    Match a deposit into the BONUS tier.

    The deposit itself moves into BONUS together with the matched
    amount; both must be wagered WAGERING_MULTIPLIER times before the
    remainder converts to MAIN.
    """
    if deposit_amount < MIN_DEPOSIT_AMOUNT:
        raise WalletError(f"Minimum deposit for a bonus is {MIN_DEPOSIT_AMOUNT}")

    active = UserBonus.objects.select_for_update().filter(
        user=user,
        token_id=token_id,
        is_active=True,
        is_completed=False,
        expires_at__gt=timezone.now(),
    )
    if active.exists():
        raise WalletError("User already has an active bonus")

    bonus_amount = min(deposit_amount * DEPOSIT_BONUS_PERCENT / 100, MAX_BONUS_AMOUNT)
    total_amount = deposit_amount + bonus_amount

    bonus = UserBonus.objects.create(
        user=user,
        token_id=token_id,
        granted_amount=bonus_amount,
        required_wager=total_amount * WAGERING_MULTIPLIER,
        expires_at=timezone.now() + timedelta(days=BONUS_EXPIRY_DAYS),
    )

    balance, _ = Balance.objects.select_for_update().get_or_create(
        user=user, token_id=token_id, tier=BalanceTier.BONUS
    )
    balance.amount = F("amount") + total_amount
    balance.save(update_fields=["amount", "updated_at"])
    balance.refresh_from_db(fields=["amount"])

    WalletTransaction.objects.create(
        user=user,
        token_id=token_id,
        tier=BalanceTier.BONUS,
        amount=total_amount,
        tx_type=WalletTransaction.CREDIT,
        reference=reference,
        balance_after=balance.amount,
        meta={"reason": "deposit_bonus", "bonus_id": bonus.id},
    )

    logger.info("Granted bonus %s to user %s (%s)", bonus.id, user.pk, bonus_amount)
    return bonus


# ======================================================
# BONUS -> MAIN CONVERSION
# ======================================================
@transaction.atomic
def convert_bonus_to_main(bonus: UserBonus) -> Decimal:
    """
    Move the WHOLE remaining BONUS balance into MAIN and close the bonus.
    Returns the converted amount.
    """
    user_id, token_id = bonus.user_id, bonus.token_id

    bonus_balance = Balance.objects.select_for_update().filter(
        user_id=user_id, token_id=token_id, tier=BalanceTier.BONUS
    ).first()
    remaining = bonus_balance.amount if bonus_balance else Decimal("0")

    if remaining > 0:
        bonus_balance.amount = Decimal("0")
        bonus_balance.save(update_fields=["amount", "updated_at"])

        main, _ = Balance.objects.select_for_update().get_or_create(
            user_id=user_id, token_id=token_id, tier=BalanceTier.MAIN
        )
        main.amount = F("amount") + remaining
        main.save(update_fields=["amount", "updated_at"])
        main.refresh_from_db(fields=["amount"])

        WalletTransaction.objects.create(
            user_id=user_id,
            token_id=token_id,
            tier=BalanceTier.MAIN,
            amount=remaining,
            tx_type=WalletTransaction.CREDIT,
            reference=f"bonus:{bonus.id}:convert",
            balance_after=main.amount,
            meta={"reason": "bonus_conversion", "bonus_id": bonus.id},
        )

    bonus.is_active = False
    bonus.is_completed = True
    bonus.completed_at = timezone.now()
    bonus.save(update_fields=["is_active", "is_completed", "completed_at"])

    logger.info("Bonus %s completed, converted %s BONUS -> MAIN", bonus.id, remaining)
    return remaining
