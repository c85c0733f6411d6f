# plinko/engine.py
"""
Outcome engine: maps a provably-fair draw onto a payout slot and the
ball path that ends there.

Everything here is a pure function of (parameters, draw, digest). The
path is steered by the bits of the round digest that follow the draw
digits, so replaying the seed triple replays the animation too.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from core.exceptions import InvalidParameters
from .payouts import DEFAULT_RISK, DEFAULT_ROWS, RISKS, get_table
from .provably_fair import DRAW_HEX_DIGITS

logger = logging.getLogger(__name__)

WIN = "win"
DRAW = "draw"
LOSS = "loss"

ONE = Decimal("1")


@dataclass(frozen=True)
class Parameters:
    risk: str
    rows: int

    @classmethod
    def from_input(cls, risk, rows, min_rows=8, max_rows=16):
        if risk is None or not str(risk).strip():
            raise InvalidParameters("risk is required")
        try:
            rows = int(rows)
        except (TypeError, ValueError):
            raise InvalidParameters("rows must be an integer")
        if not min_rows <= rows <= max_rows:
            raise InvalidParameters(f"rows must be between {min_rows} and {max_rows}")
        return cls(risk=str(risk).strip().lower(), rows=rows)


@dataclass(frozen=True)
class Outcome:
    risk: str
    rows: int
    slot: int
    multiplier: Decimal
    result: str
    result_path: List[int] = field(default_factory=list)
    directions: List[int] = field(default_factory=list)
    fallback: bool = False


def lookup(parameters: Parameters):
    """
    Return ``(risk, rows, table, fallback)`` for the requested parameters.
    Unknown combinations resolve to the medium/8 table.
    """
    table = get_table(parameters.risk, parameters.rows)
    if table is not None:
        return parameters.risk, parameters.rows, table, False

    logger.warning(
        "No payout table for risk=%s rows=%s, using %s/%s",
        parameters.risk, parameters.rows, DEFAULT_RISK, DEFAULT_ROWS,
    )
    table = get_table(DEFAULT_RISK, DEFAULT_ROWS)
    return DEFAULT_RISK, len(table) - 1, table, True


def classify(multiplier: Decimal) -> str:
    if multiplier > ONE:
        return WIN
    if multiplier == ONE:
        return DRAW
    return LOSS


def _clamp(position, rows):
    return max(0, min(rows, position))


def _steering_bits(digest: Optional[str]):
    tail = (digest or "")[DRAW_HEX_DIGITS:]
    for char in tail:
        nibble = int(char, 16)
        for shift in (3, 2, 1, 0):
            yield (nibble >> shift) & 1
    while True:
        yield 0


def build_path(rows: int, slot: int, digest: Optional[str] = None):
    """
    ``rows + 1`` positions from the centre peg to ``slot``, one bounce
    (-1 or +1, clamped to the board) per row.

    Returns ``(path, directions)`` where ``directions`` holds the bounce
    taken at each row.
    """
    if not 0 <= slot <= rows:
        raise ValueError(f"slot {slot} outside board of {rows} rows")

    # reachable[k]: positions from which ``slot`` is reachable in rows - k bounces
    reachable = [set() for _ in range(rows + 1)]
    reachable[rows] = {slot}
    for k in range(rows - 1, -1, -1):
        reachable[k] = {
            p for p in range(rows + 1)
            if _clamp(p - 1, rows) in reachable[k + 1] or _clamp(p + 1, rows) in reachable[k + 1]
        }

    position = (rows + 1) // 2
    if position not in reachable[0]:
        raise RuntimeError(f"slot {slot} is unreachable on a {rows}-row board")

    bits = _steering_bits(digest)
    path = [position]
    directions = []
    for k in range(rows):
        preferred = 1 if next(bits) else -1
        step = preferred if _clamp(position + preferred, rows) in reachable[k + 1] else -preferred
        position = _clamp(position + step, rows)
        path.append(position)
        directions.append(step)

    return path, directions


def resolve(parameters: Parameters, draw: int, digest: Optional[str] = None) -> Outcome:
    risk, rows, table, fallback = lookup(parameters)
    slot = draw % len(table)
    multiplier = table[slot]
    path, directions = build_path(rows, slot, digest)

    return Outcome(
        risk=risk,
        rows=rows,
        slot=slot,
        multiplier=multiplier,
        result=classify(multiplier),
        result_path=path,
        directions=directions,
        fallback=fallback,
    )


__all__ = ["Outcome", "Parameters", "RISKS", "WIN", "DRAW", "LOSS", "lookup", "resolve", "build_path", "classify"]
