from django.conf import settings
from django.db import models
from django.utils import timezone

from wallets.models import BalanceTier


class ReferralLedgerEntry(models.Model):
    """
    Append-only record of a wager, written after the stake was deducted.
    Commission payout only flips ``commission_paid`` / ``paid_at``.
    """
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="referral_entries",
    )
    bet_amount = models.DecimalField(max_digits=28, decimal_places=8)
    token_id = models.PositiveIntegerField()
    balance_tier = models.CharField(max_length=5, choices=BalanceTier.choices)
    reference = models.CharField(max_length=96, blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    commission_paid = models.BooleanField(default=False)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-id"]
        indexes = [
            models.Index(fields=["user", "commission_paid"], name="refentry_user_paid"),
            models.Index(fields=["created_at"], name="refentry_created"),
        ]

    def __str__(self):
        return f"{self.user_id} bet {self.bet_amount} ({self.balance_tier})"
