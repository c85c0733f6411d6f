import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from wallets.models import BalanceTier


class RoundCommitment(models.Model):
    """
    Server seed committed to a player before the round is played.
    Only ``server_seed_hash`` is shown until the round settles.
    """
    OPEN = "OPEN"
    USED = "USED"
    STATUS = [
        (OPEN, "Open"),
        (USED, "Used"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="plinko_commitments",
    )
    server_seed = models.CharField(max_length=64)
    server_seed_hash = models.CharField(max_length=64)
    client_seed = models.CharField(max_length=64)
    nonce = models.PositiveBigIntegerField()
    status = models.CharField(max_length=8, choices=STATUS, default=OPEN)
    created_at = models.DateTimeField(auto_now_add=True)
    used_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-id"]
        constraints = [
            models.UniqueConstraint(fields=["user", "nonce"], name="unique_commitment_nonce"),
        ]

    def __str__(self):
        return f"Commitment {self.id} ({self.user_id}#{self.nonce})"


class PlinkoRound(models.Model):
    CREDIT_NOT_REQUIRED = "NOT_REQUIRED"
    CREDIT_OK = "CREDITED"
    CREDIT_FAILED = "FAILED"
    CREDIT_STATUS = [
        (CREDIT_NOT_REQUIRED, "Not required"),
        (CREDIT_OK, "Credited"),
        (CREDIT_FAILED, "Failed"),
    ]

    round_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="plinko_rounds",
    )
    token_id = models.PositiveIntegerField()
    balance_tier = models.CharField(max_length=5, choices=BalanceTier.choices)
    bet_amount = models.DecimalField(max_digits=28, decimal_places=8)
    win_amount = models.DecimalField(max_digits=28, decimal_places=8, default=0)

    risk = models.CharField(max_length=16)
    rows = models.PositiveSmallIntegerField()
    slot = models.PositiveSmallIntegerField()
    multiplier = models.DecimalField(max_digits=12, decimal_places=4)
    result = models.CharField(max_length=8)
    result_path = models.JSONField(default=list)
    directions = models.JSONField(default=list)

    server_seed = models.CharField(max_length=64)
    server_seed_hash = models.CharField(max_length=64)
    client_seed = models.CharField(max_length=64)
    nonce = models.PositiveBigIntegerField()

    credit_status = models.CharField(max_length=16, choices=CREDIT_STATUS, default=CREDIT_NOT_REQUIRED)
    created_at = models.DateTimeField()
    settled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="plinkoround_user_created"),
            models.Index(fields=["credit_status"], name="plinkoround_credit_status"),
        ]

    def __str__(self):
        return f"Round {self.round_id} @ {self.multiplier}x"


class UnsettledStake(models.Model):
    """
    A stake the coordinator could not settle or hand back: the deduct timed
    out (the ledger may or may not have applied it) or the refund failed.
    ``reconcile_credits`` refunds it once the ledger shows the bet.
    """
    DEDUCT_UNKNOWN = "DEDUCT_UNKNOWN"
    REFUND_PENDING = "REFUND_PENDING"
    REFUNDED = "REFUNDED"
    NOT_TAKEN = "NOT_TAKEN"
    STATUS = [
        (DEDUCT_UNKNOWN, "Deduct unknown"),
        (REFUND_PENDING, "Refund pending"),
        (REFUNDED, "Refunded"),
        (NOT_TAKEN, "Not taken"),
    ]
    OPEN_STATUSES = (DEDUCT_UNKNOWN, REFUND_PENDING)

    round_id = models.UUIDField(unique=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="plinko_unsettled_stakes",
    )
    token_id = models.PositiveIntegerField()
    balance_tier = models.CharField(max_length=5, choices=BalanceTier.choices)
    bet_amount = models.DecimalField(max_digits=28, decimal_places=8)
    status = models.CharField(max_length=16, choices=STATUS, default=DEDUCT_UNKNOWN)
    created_at = models.DateTimeField(default=timezone.now)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="unsettled_status_created"),
        ]

    @property
    def bet_reference(self):
        return f"plinko:{self.round_id}:bet"

    @property
    def refund_reference(self):
        return f"plinko:{self.round_id}:refund"

    def __str__(self):
        return f"Stake {self.round_id} ({self.status})"
