# plinko/rounds.py
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional


class RoundState(str, enum.Enum):
    INIT = "INIT"
    DEDUCTED = "DEDUCTED"
    RESULT_COMPUTED = "RESULT_COMPUTED"
    CREDITED = "CREDITED"
    NO_CREDIT = "NO_CREDIT"
    HISTORY_RECORDED = "HISTORY_RECORDED"
    DONE = "DONE"
    ABORTED = "ABORTED"


CREDIT_NOT_REQUIRED = "NOT_REQUIRED"
CREDIT_OK = "CREDITED"
CREDIT_FAILED = "FAILED"

# Stakes the coordinator could not settle or return
STAKE_UNKNOWN = "DEDUCT_UNKNOWN"
STAKE_REFUND_PENDING = "REFUND_PENDING"


@dataclass(frozen=True)
class SeedPair:
    server_seed: str
    server_seed_hash: str
    client_seed: str
    nonce: int = 0
    commitment_id: Optional[int] = None


@dataclass(frozen=True)
class WagerRequest:
    user_id: int
    bet_amount: Decimal
    token_id: int
    risk: Optional[str]
    rows: Optional[int]


@dataclass
class GameRound:
    user_id: int
    bet_amount: Decimal
    token_id: int
    risk: str
    rows: int
    seeds: SeedPair
    round_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: RoundState = RoundState.INIT
    balance_tier: Optional[str] = None
    slot: Optional[int] = None
    multiplier: Optional[Decimal] = None
    result: Optional[str] = None
    win_amount: Decimal = Decimal("0")
    result_path: List[int] = field(default_factory=list)
    directions: List[int] = field(default_factory=list)
    credit_status: str = CREDIT_NOT_REQUIRED
    created_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    @property
    def bet_reference(self):
        return f"plinko:{self.round_id}:bet"

    @property
    def credit_reference(self):
        return f"plinko:{self.round_id}:credit"

    @property
    def refund_reference(self):
        return f"plinko:{self.round_id}:refund"

    @property
    def settled(self):
        return self.state in (RoundState.HISTORY_RECORDED, RoundState.DONE)

    def to_payload(self, reveal=True):
        payload = {
            "success": True,
            "round_id": self.round_id,
            "result": self.result,
            "multiplier": float(self.multiplier) if self.multiplier is not None else None,
            "bet_amount": str(self.bet_amount),
            "win_amount": str(self.win_amount),
            "result_path": list(self.result_path),
            "directions": list(self.directions),
            "slot": self.slot,
            "risk": self.risk,
            "rows": self.rows,
            "token_id": self.token_id,
            "balance_tier": str(self.balance_tier) if self.balance_tier else None,
            "credit_status": self.credit_status,
            "server_seed_hash": self.seeds.server_seed_hash,
            "client_seed": self.seeds.client_seed,
            "nonce": self.seeds.nonce,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if reveal:
            payload["server_seed"] = self.seeds.server_seed
        return payload

    def to_feed_payload(self):
        return {
            "round_id": self.round_id,
            "user_id": self.user_id,
            "bet_amount": str(self.bet_amount),
            "multiplier": float(self.multiplier) if self.multiplier is not None else None,
            "win_amount": str(self.win_amount),
            "result": self.result,
        }
