from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.conf import settings


@dataclass(frozen=True)
class PlinkoConfig:
    min_bet: Decimal = Decimal("0.01")
    max_bet: Decimal = Decimal("1000000")
    min_rows: int = 8
    max_rows: int = 16
    history_limit: int = 20
    max_history_limit: int = 100
    default_token_id: int = 2
    fairness_verification: bool = True
    history_tracking: bool = True
    stats_tracking: bool = True
    # Age before reconciliation looks at a stake whose deduct timed out
    unsettled_grace: timedelta = timedelta(seconds=60)

    @classmethod
    def from_settings(cls):
        features = getattr(settings, "PLINKO_FEATURES", {})
        return cls(
            min_bet=settings.PLINKO_MIN_BET,
            max_bet=settings.PLINKO_MAX_BET,
            min_rows=settings.PLINKO_MIN_ROWS,
            max_rows=settings.PLINKO_MAX_ROWS,
            history_limit=settings.PLINKO_HISTORY_LIMIT,
            default_token_id=settings.PLINKO_DEFAULT_TOKEN_ID,
            fairness_verification=features.get("fairness_verification", True),
            history_tracking=features.get("history_tracking", True),
            stats_tracking=features.get("stats_tracking", True),
            unsettled_grace=timedelta(seconds=settings.PLINKO_UNSETTLED_GRACE_SECONDS),
        )
