# plinko/stakes.py
"""
Journal of stakes left in doubt by an aborted round.

Written independently of history tracking: a stake that may have left the
player's balance must stay findable by ``reconcile_credits``.
"""
import logging
import uuid
from abc import ABC, abstractmethod

from .models import UnsettledStake
from .rounds import GameRound

logger = logging.getLogger(__name__)


class StakeJournal(ABC):

    @abstractmethod
    def record(self, game: GameRound, status: str) -> None:
        ...


class InMemoryStakeJournal(StakeJournal):

    def __init__(self):
        self.entries = {}

    def record(self, game, status):
        self.entries[game.round_id] = (game, status)


class DatabaseStakeJournal(StakeJournal):

    def record(self, game, status):
        UnsettledStake.objects.update_or_create(
            round_id=uuid.UUID(str(game.round_id)),
            defaults={
                "user_id": game.user_id,
                "token_id": game.token_id,
                "balance_tier": game.balance_tier,
                "bet_amount": game.bet_amount,
                "status": status,
            },
        )
        logger.info("Round %s: stake of %s journalled as %s", game.round_id, game.bet_amount, status)
