# plinko/payouts.py
# Payout multipliers per (risk, rows). Each row list has rows + 1 slots.
from decimal import Decimal

RISKS = ("low", "medium", "high")

DEFAULT_RISK = "medium"
DEFAULT_ROWS = 8

_SIXTEEN = [110, 41, 10, 5, 3, 1.5, 1, 0.5, 0.3, 0.5, 1, 1.5, 3, 5, 10, 41, 110]

_RAW_TABLES = {
    "low": {
        8: [5.6, 2.1, 1.1, 1, 0.5, 1, 1.1, 2.1, 5.6],
        9: [5.6, 2, 1.6, 1, 0.7, 0.7, 1, 1.6, 2, 5.6],
        10: [8.9, 3, 1.4, 1.1, 1, 0.5, 1, 1.1, 1.4, 3, 8.9],
        16: _SIXTEEN,
    },
    "medium": {
        8: [13, 3, 1.3, 0.7, 0.4, 0.7, 1.3, 3, 13],
        9: [18, 4, 1.7, 0.9, 0.5, 0.5, 0.9, 1.7, 4, 18],
        10: [22, 5, 2, 1.4, 0.6, 0.4, 0.6, 1.4, 2, 5, 22],
        16: _SIXTEEN,
    },
    "high": {
        8: [29, 4, 1.5, 0.3, 0.2, 0.3, 1.5, 4, 29],
        9: [43, 7, 2, 0.6, 0.2, 0.2, 0.6, 2, 7, 43],
        10: [76, 10, 3, 0.9, 0.3, 0.2, 0.3, 0.9, 3, 10, 76],
        16: _SIXTEEN,
    },
}

PAYOUT_TABLES = {
    risk: {rows: tuple(Decimal(str(m)) for m in values) for rows, values in by_rows.items()}
    for risk, by_rows in _RAW_TABLES.items()
}


def get_table(risk, rows):
    """Return the multipliers for (risk, rows), or None if there is no such table."""
    return PAYOUT_TABLES.get(risk, {}).get(rows)


def as_json():
    return {
        risk: {str(rows): [float(m) for m in table] for rows, table in by_rows.items()}
        for risk, by_rows in PAYOUT_TABLES.items()
    }
