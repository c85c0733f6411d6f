# plinko/history.py
"""
Round history stores.

The coordinator writes settled rounds here on a best-effort basis.
``NullHistoryStore`` keeps settlement stateless: writes are dropped and
every read comes back empty.
"""
import threading
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP

from django.db import DatabaseError, transaction
from django.db.models import Count, Sum

from core.exceptions import HistoryWriteFailed
from .models import PlinkoRound
from .rounds import GameRound, RoundState, SeedPair

ZERO = Decimal("0")


def build_stats(total_games, total_bet, total_win):
    total_bet = total_bet or ZERO
    total_win = total_win or ZERO
    profit = total_win - total_bet
    roi = (profit / total_bet * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) if total_bet else ZERO
    return {
        "total_games": total_games,
        "total_bet": str(total_bet),
        "total_win": str(total_win),
        "profit": str(profit),
        "roi": float(roi),
    }


class HistoryStore(ABC):

    @abstractmethod
    def save(self, game: GameRound) -> None:
        ...

    @abstractmethod
    def list_by_user(self, user_id, limit=20):
        ...

    @abstractmethod
    def get_by_id(self, round_id, user_id=None):
        ...

    @abstractmethod
    def mark_credit(self, round_id, credit_status) -> None:
        ...

    @abstractmethod
    def stats(self, user_id) -> dict:
        ...


class NullHistoryStore(HistoryStore):

    def save(self, game):
        pass

    def list_by_user(self, user_id, limit=20):
        return []

    def get_by_id(self, round_id, user_id=None):
        return None

    def mark_credit(self, round_id, credit_status):
        pass

    def stats(self, user_id):
        return build_stats(0, ZERO, ZERO)


class InMemoryHistoryStore(HistoryStore):

    def __init__(self):
        self.rounds = {}
        self.fail_next_save = False
        self._lock = threading.Lock()

    def save(self, game):
        with self._lock:
            if self.fail_next_save:
                self.fail_next_save = False
                raise HistoryWriteFailed(f"round {game.round_id} not stored")
            self.rounds[game.round_id] = game

    def list_by_user(self, user_id, limit=20):
        rounds = [r for r in self.rounds.values() if r.user_id == user_id]
        rounds.sort(key=lambda r: r.created_at, reverse=True)
        return rounds[:limit]

    def get_by_id(self, round_id, user_id=None):
        game = self.rounds.get(str(round_id))
        if game is None or (user_id is not None and game.user_id != user_id):
            return None
        return game

    def mark_credit(self, round_id, credit_status):
        game = self.rounds.get(str(round_id))
        if game is not None:
            game.credit_status = credit_status

    def stats(self, user_id):
        rounds = [r for r in self.rounds.values() if r.user_id == user_id]
        return build_stats(
            len(rounds),
            sum((r.bet_amount for r in rounds), ZERO),
            sum((r.win_amount for r in rounds), ZERO),
        )


class DatabaseHistoryStore(HistoryStore):

    def save(self, game):
        try:
            with transaction.atomic():
                PlinkoRound.objects.create(
                    round_id=game.round_id,
                    user_id=game.user_id,
                    token_id=game.token_id,
                    balance_tier=game.balance_tier,
                    bet_amount=game.bet_amount,
                    win_amount=game.win_amount,
                    risk=game.risk,
                    rows=game.rows,
                    slot=game.slot,
                    multiplier=game.multiplier,
                    result=game.result,
                    result_path=game.result_path,
                    directions=game.directions,
                    server_seed=game.seeds.server_seed,
                    server_seed_hash=game.seeds.server_seed_hash,
                    client_seed=game.seeds.client_seed,
                    nonce=game.seeds.nonce,
                    credit_status=game.credit_status,
                    created_at=game.created_at,
                    settled_at=game.settled_at,
                )
        except DatabaseError as e:
            raise HistoryWriteFailed(f"round {game.round_id} not stored: {e}")

    def list_by_user(self, user_id, limit=20):
        qs = PlinkoRound.objects.filter(user_id=user_id).order_by("-created_at", "-id")[:limit]
        return [to_game_round(row) for row in qs]

    def get_by_id(self, round_id, user_id=None):
        try:
            round_uuid = uuid.UUID(str(round_id))
        except ValueError:
            return None
        qs = PlinkoRound.objects.filter(round_id=round_uuid)
        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        row = qs.first()
        return to_game_round(row) if row else None

    def mark_credit(self, round_id, credit_status):
        PlinkoRound.objects.filter(round_id=round_id).update(credit_status=credit_status)

    def stats(self, user_id):
        agg = PlinkoRound.objects.filter(user_id=user_id).aggregate(
            games=Count("id"),
            bet=Sum("bet_amount"),
            win=Sum("win_amount"),
        )
        return build_stats(agg["games"], agg["bet"], agg["win"])


def to_game_round(row: PlinkoRound) -> GameRound:
    return GameRound(
        round_id=str(row.round_id),
        user_id=row.user_id,
        bet_amount=row.bet_amount,
        token_id=row.token_id,
        risk=row.risk,
        rows=row.rows,
        seeds=SeedPair(
            server_seed=row.server_seed,
            server_seed_hash=row.server_seed_hash,
            client_seed=row.client_seed,
            nonce=row.nonce,
        ),
        state=RoundState.DONE,
        balance_tier=row.balance_tier,
        slot=row.slot,
        multiplier=row.multiplier,
        result=row.result,
        win_amount=row.win_amount,
        result_path=list(row.result_path),
        directions=list(row.directions),
        credit_status=row.credit_status,
        created_at=row.created_at,
        settled_at=row.settled_at,
    )
