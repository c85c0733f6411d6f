# core/exceptions.py
"""
Error taxonomy shared by the ledger, the Plinko settlement flow and
the referral tracker.

Every error carries a stable ``code`` (sent to clients) and the HTTP
status the API layer answers with.
"""
from __future__ import annotations


class PlinkoError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str = "", *, game=None):
        super().__init__(message or self.default_message())
        self.message = message or self.default_message()
        # GameRound snapshot at the moment the error was raised (if any)
        self.game = game

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__

    def as_payload(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class InvalidParameters(PlinkoError):
    code = "invalid_parameters"


class InsufficientFunds(PlinkoError):
    code = "insufficient_funds"

    @classmethod
    def default_message(cls) -> str:
        return "Insufficient balance"


class LedgerUnavailable(PlinkoError):
    code = "ledger_unavailable"
    status_code = 503

    @classmethod
    def default_message(cls) -> str:
        return "Ledger service unavailable"


class LedgerTimeout(LedgerUnavailable):
    code = "ledger_timeout"
    status_code = 504

    @classmethod
    def default_message(cls) -> str:
        return "Ledger service timed out"


class InvalidSeed(PlinkoError):
    code = "invalid_seed"


class FairnessMismatch(PlinkoError):
    code = "fairness_mismatch"
    status_code = 409


# Non-fatal: logged by the components that absorb them, never surfaced.

class ReferralTrackingFailed(PlinkoError):
    code = "referral_tracking_failed"
    status_code = 500


class HistoryWriteFailed(PlinkoError):
    code = "history_write_failed"
    status_code = 500
