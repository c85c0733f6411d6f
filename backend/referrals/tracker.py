# referrals/tracker.py
"""
Referral tracking for settled wagers.

``track`` hands the write to a dispatcher and returns immediately. A
failing ledger shows up in the logs as ReferralTrackingFailed and never
reaches gameplay code.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache

from django.conf import settings

from core.dispatch import BackgroundDispatcher, InlineDispatcher
from core.exceptions import ReferralTrackingFailed
from wallets.ledger import ReferralEntry

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _background_dispatcher():
    return BackgroundDispatcher(max_workers=settings.REFERRAL_WORKERS, name="referrals")


def default_dispatcher():
    if settings.REFERRAL_ASYNC:
        return _background_dispatcher()
    return InlineDispatcher()


class ReferralTracker:

    def __init__(self, ledger, dispatcher=None):
        self.ledger = ledger
        self.dispatcher = dispatcher or default_dispatcher()

    def track(self, user_id, bet_amount: Decimal, token_id: int, tier: str, reference: str = "") -> None:
        entry = ReferralEntry(
            user_id=user_id,
            bet_amount=bet_amount,
            token_id=token_id,
            balance_tier=tier,
            reference=reference,
        )
        try:
            self.dispatcher.submit(self._record, entry)
        except Exception:
            logger.exception("Could not schedule referral tracking for user %s", user_id)

    def _record(self, entry: ReferralEntry) -> None:
        try:
            self.ledger.record_referral(entry)
        except Exception as e:
            failure = ReferralTrackingFailed(
                f"user={entry.user_id} amount={entry.bet_amount} tier={entry.balance_tier}: {e}"
            )
            logger.warning("%s: %s", failure.code, failure.message)
