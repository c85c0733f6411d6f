from decimal import Decimal

from django.utils import timezone

from wallets.models import BalanceTier


class BalanceSelector:
    """
    Picks the balance tier a wager is paid from.

    BONUS is used only while it covers the whole bet and the player holds
    a live bonus; everything else plays from MAIN, even when MAIN itself
    is short (the deduction then reports insufficient funds).
    """

    def __init__(self, ledger, clock=timezone.now):
        self.ledger = ledger
        self.clock = clock

    def select_tier(self, user_id, bet_amount: Decimal, token_id: int) -> str:
        bonus_balance = self.ledger.get_balance(user_id, token_id, BalanceTier.BONUS)
        if bonus_balance >= bet_amount:
            bonus = self.ledger.get_active_bonus(user_id, token_id)
            if bonus is not None and bonus.is_valid(self.clock()):
                return BalanceTier.BONUS
        return BalanceTier.MAIN
