from decimal import Decimal
from django.conf import settings
from django.db import models


class BalanceTier(models.TextChoices):
    MAIN = "MAIN", "Main"
    BONUS = "BONUS", "Bonus"


class Balance(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="balances",
    )
    token_id = models.PositiveIntegerField()
    tier = models.CharField(max_length=5, choices=BalanceTier.choices)
    amount = models.DecimalField(max_digits=28, decimal_places=8, default=Decimal("0"))

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "token_id", "tier"], name="unique_balance_per_tier"
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gte=0), name="balance_amount_non_negative"
            ),
        ]

    def __str__(self):
        return f"Balance({self.user_id}, {self.token_id}, {self.tier})"


class UserBonus(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bonuses",
    )
    token_id = models.PositiveIntegerField()
    granted_amount = models.DecimalField(max_digits=28, decimal_places=8)
    required_wager = models.DecimalField(max_digits=28, decimal_places=8)
    wagered_amount = models.DecimalField(max_digits=28, decimal_places=8, default=Decimal("0"))

    is_active = models.BooleanField(default=True)
    is_completed = models.BooleanField(default=False)
    expires_at = models.DateTimeField()
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["user", "token_id", "is_active"], name="userbonus_user_token_active"),
        ]

    def __str__(self):
        return f"Bonus {self.id} for {self.user_id} ({self.wagered_amount}/{self.required_wager})"


class WalletTransaction(models.Model):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"
    TX_TYPE_CHOICES = [
        (DEBIT, "Debit"),
        (CREDIT, "Credit"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="wallet_txs"
    )
    token_id = models.PositiveIntegerField()
    tier = models.CharField(max_length=5, choices=BalanceTier.choices)
    amount = models.DecimalField(max_digits=28, decimal_places=8)
    tx_type = models.CharField(max_length=6, choices=TX_TYPE_CHOICES)
    # Idempotency key, e.g. "plinko:<round_id>:credit"
    reference = models.CharField(max_length=96, unique=True)
    balance_after = models.DecimalField(max_digits=28, decimal_places=8)
    meta = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["user", "created_at"], name="wallettx_user_created"),
        ]

    def __str__(self):
        return f"{self.tx_type} {self.amount} {self.tier} for {self.user_id}"
