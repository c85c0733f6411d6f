# wallets/ledger.py
"""
Ledger collaborator used by game settlement.

The ledger owns every Balance row. Games never touch balances directly;
they call ``deduct`` / ``credit`` with an idempotency ``reference`` and
read back a ``LedgerResult``.

Three implementations share the ``Ledger`` contract:

- ``DatabaseLedger``: this project's own wallets tables (Django ORM).
- ``HttpLedger``: a remote wallets service reached over HTTP with a bearer
  token and explicit (connect, read) timeouts. Timeouts raise
  ``LedgerTimeout``, transport failures raise ``LedgerUnavailable``.
- ``InMemoryLedger``: dict-backed double for unit tests.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Optional

import requests
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.module_loading import import_string
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from core.exceptions import LedgerTimeout, LedgerUnavailable
from .models import Balance, BalanceTier, UserBonus, WalletTransaction

logger = logging.getLogger(__name__)

INSUFFICIENT_FUNDS = "insufficient_funds"
INVALID_AMOUNT = "invalid_amount"


@dataclass(frozen=True)
class LedgerResult:
    success: bool
    new_balance: Optional[Decimal] = None
    error: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "LedgerResult":
        balance = payload.get("new_balance")
        return cls(
            success=bool(payload.get("success")),
            new_balance=_to_decimal(balance) if balance is not None else None,
            error=payload.get("error"),
            code=payload.get("code"),
        )

    def as_payload(self) -> dict:
        return {
            "success": self.success,
            "new_balance": str(self.new_balance) if self.new_balance is not None else None,
            "error": self.error,
            "code": self.code,
        }


@dataclass(frozen=True)
class ActiveBonus:
    user_id: int
    token_id: int
    is_active: bool
    is_completed: bool
    expires_at: datetime
    bonus_id: Optional[int] = None

    def is_valid(self, now: datetime) -> bool:
        return self.is_active and not self.is_completed and self.expires_at > now


@dataclass(frozen=True)
class ReferralEntry:
    user_id: int
    bet_amount: Decimal
    token_id: int
    balance_tier: str
    created_at: datetime = field(default_factory=timezone.now)
    reference: str = ""


class Ledger(ABC):

    @abstractmethod
    def deduct(self, user_id, amount: Decimal, token_id: int, tier: str, reference: str) -> LedgerResult:
        ...

    @abstractmethod
    def credit(self, user_id, amount: Decimal, token_id: int, tier: str, reference: str) -> LedgerResult:
        ...

    @abstractmethod
    def get_balance(self, user_id, token_id: int, tier: str) -> Decimal:
        ...

    @abstractmethod
    def get_active_bonus(self, user_id, token_id: int) -> Optional[ActiveBonus]:
        ...

    @abstractmethod
    def record_referral(self, entry: ReferralEntry) -> None:
        ...

    @abstractmethod
    def has_reference(self, reference: str) -> bool:
        """Whether a movement with this idempotency reference was applied."""
        ...


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise LedgerUnavailable(f"Ledger returned a malformed amount: {value!r}")


# ======================================================
# DATABASE LEDGER
# ======================================================
class DatabaseLedger(Ledger):

    def deduct(self, user_id, amount, token_id, tier, reference):
        if amount <= 0:
            return LedgerResult(False, error="Invalid bet amount", code=INVALID_AMOUNT)

        try:
            with transaction.atomic():
                replay = self._replayed(reference)
                if replay:
                    return replay

                # Compare-and-decrement: the row only changes while it still covers the bet.
                updated = Balance.objects.filter(
                    user_id=user_id,
                    token_id=token_id,
                    tier=tier,
                    amount__gte=amount,
                ).update(amount=F("amount") - amount, updated_at=timezone.now())

                if not updated:
                    return LedgerResult(
                        False,
                        error=f"Insufficient {tier} balance",
                        code=INSUFFICIENT_FUNDS,
                    )

                new_balance = self.get_balance(user_id, token_id, tier)
                WalletTransaction.objects.create(
                    user_id=user_id,
                    token_id=token_id,
                    tier=tier,
                    amount=amount,
                    tx_type=WalletTransaction.DEBIT,
                    reference=reference,
                    balance_after=new_balance,
                    meta={"reason": "bet"},
                )
        except IntegrityError:
            # Same reference committed concurrently
            return self._replayed(reference) or LedgerResult(False, error="Duplicate reference")

        return LedgerResult(True, new_balance=new_balance)

    def credit(self, user_id, amount, token_id, tier, reference):
        if amount <= 0:
            return LedgerResult(False, error="Invalid payout amount", code=INVALID_AMOUNT)

        try:
            with transaction.atomic():
                replay = self._replayed(reference)
                if replay:
                    return replay

                balance, _ = Balance.objects.select_for_update().get_or_create(
                    user_id=user_id,
                    token_id=token_id,
                    tier=tier,
                )
                balance.amount = F("amount") + amount
                balance.save(update_fields=["amount", "updated_at"])
                balance.refresh_from_db(fields=["amount"])

                WalletTransaction.objects.create(
                    user_id=user_id,
                    token_id=token_id,
                    tier=tier,
                    amount=amount,
                    tx_type=WalletTransaction.CREDIT,
                    reference=reference,
                    balance_after=balance.amount,
                    meta={"reason": "payout"},
                )
        except IntegrityError:
            return self._replayed(reference) or LedgerResult(False, error="Duplicate reference")

        return LedgerResult(True, new_balance=balance.amount)

    def get_balance(self, user_id, token_id, tier):
        amount = (
            Balance.objects
            .filter(user_id=user_id, token_id=token_id, tier=tier)
            .values_list("amount", flat=True)
            .first()
        )
        return amount if amount is not None else Decimal("0")

    def get_active_bonus(self, user_id, token_id):
        bonus = (
            UserBonus.objects
            .filter(
                user_id=user_id,
                token_id=token_id,
                is_active=True,
                is_completed=False,
                expires_at__gt=timezone.now(),
            )
            .order_by("-created_at")
            .first()
        )
        if bonus is None:
            return None
        return ActiveBonus(
            user_id=bonus.user_id,
            token_id=bonus.token_id,
            is_active=bonus.is_active,
            is_completed=bonus.is_completed,
            expires_at=bonus.expires_at,
            bonus_id=bonus.id,
        )

    def record_referral(self, entry):
        from referrals.services import record_bet

        record_bet(entry)

    def has_reference(self, reference):
        return WalletTransaction.objects.filter(reference=reference).exists()

    @staticmethod
    def _replayed(reference) -> Optional[LedgerResult]:
        tx = WalletTransaction.objects.filter(reference=reference).first()
        if tx is None:
            return None
        logger.info("Ledger reference %s already applied, replaying result", reference)
        return LedgerResult(True, new_balance=tx.balance_after)


# ======================================================
# HTTP LEDGER
# ======================================================
class HttpLedger(Ledger):
    """
    Client for the wallets ledger API (see wallets/views/ledger.py).
    """

    def __init__(self, base_url=None, token=None, connect_timeout=None,
                 read_timeout=None, max_retries=None, session=None):
        self.base_url = (base_url or settings.LEDGER_API_URL).rstrip("/")
        self.token = token or settings.LEDGER_API_TOKEN
        self.connect_timeout = connect_timeout or settings.LEDGER_CONNECT_TIMEOUT
        self.read_timeout = read_timeout or settings.LEDGER_READ_TIMEOUT
        self.max_retries = settings.LEDGER_MAX_RETRIES if max_retries is None else max_retries

        if not self.token:
            raise RuntimeError("LEDGER_API_TOKEN is not set")

        self.session = session or self._create_session()

    def _create_session(self):
        session = requests.Session()

        # Only connection failures are retried; a read timeout is reported
        # as-is because the ledger may already have applied the request.
        retry_strategy = Retry(
            total=self.max_retries,
            connect=self.max_retries,
            read=False,
            status=self.max_retries,
            status_forcelist=[502, 503, 504],
            allowed_methods=["GET", "POST"],
            backoff_factor=0.2,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=10, pool_maxsize=20)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(self, method, endpoint, **kwargs) -> dict:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        kwargs.setdefault("timeout", (self.connect_timeout, self.read_timeout))

        try:
            response = self.session.request(method, url, headers=self._headers(), **kwargs)
        except requests.exceptions.Timeout as e:
            logger.error("Ledger %s %s timed out: %s", method, url, e)
            raise LedgerTimeout(f"Ledger request timed out: {endpoint}")
        except requests.exceptions.RequestException as e:
            logger.error("Ledger %s %s failed: %s", method, url, e)
            raise LedgerUnavailable(f"Ledger request failed: {endpoint}")

        if response.status_code in (401, 403):
            logger.error("Ledger rejected credentials (%s)", response.status_code)
            raise LedgerUnavailable("Ledger rejected service credentials")
        if response.status_code >= 500:
            logger.error("Ledger %s %s answered %s", method, url, response.status_code)
            raise LedgerUnavailable(f"Ledger error {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            logger.error("Ledger returned non-JSON body: %s", response.text[:200])
            raise LedgerUnavailable("Invalid response from ledger")

        if not isinstance(payload, dict):
            raise LedgerUnavailable("Invalid response from ledger")
        return payload

    def _movement(self, endpoint, user_id, amount, token_id, tier, reference):
        payload = self._request(
            "POST",
            endpoint,
            json={
                "user_id": user_id,
                "amount": str(amount),
                "token_id": token_id,
                "tier": tier,
                "reference": reference,
            },
        )
        return LedgerResult.from_payload(payload)

    def deduct(self, user_id, amount, token_id, tier, reference):
        return self._movement("deduct/", user_id, amount, token_id, tier, reference)

    def credit(self, user_id, amount, token_id, tier, reference):
        return self._movement("credit/", user_id, amount, token_id, tier, reference)

    def get_balance(self, user_id, token_id, tier):
        payload = self._request(
            "GET",
            "balance/",
            params={"user_id": user_id, "token_id": token_id, "tier": tier},
        )
        if not payload.get("success"):
            raise LedgerUnavailable(payload.get("error") or "Balance lookup failed")
        return _to_decimal(payload.get("amount", "0"))

    def get_active_bonus(self, user_id, token_id):
        payload = self._request(
            "GET",
            "active-bonus/",
            params={"user_id": user_id, "token_id": token_id},
        )
        if not payload.get("success"):
            raise LedgerUnavailable(payload.get("error") or "Bonus lookup failed")

        bonus = payload.get("bonus")
        if not bonus:
            return None
        expires_at = datetime.fromisoformat(bonus["expires_at"].replace("Z", "+00:00"))
        return ActiveBonus(
            user_id=user_id,
            token_id=token_id,
            is_active=bool(bonus.get("is_active")),
            is_completed=bool(bonus.get("is_completed")),
            expires_at=expires_at,
            bonus_id=bonus.get("id"),
        )

    def record_referral(self, entry):
        payload = self._request(
            "POST",
            "referrals/",
            json={
                "user_id": entry.user_id,
                "bet_amount": str(entry.bet_amount),
                "token_id": entry.token_id,
                "balance_tier": entry.balance_tier,
                "reference": entry.reference,
                "created_at": entry.created_at.isoformat(),
            },
        )
        if not payload.get("success"):
            raise LedgerUnavailable(payload.get("error") or "Referral entry rejected")

    def has_reference(self, reference):
        payload = self._request("GET", "transactions/", params={"reference": reference})
        if not payload.get("success"):
            raise LedgerUnavailable(payload.get("error") or "Reference lookup failed")
        return bool(payload.get("exists"))


# ======================================================
# IN-MEMORY LEDGER (tests)
# ======================================================
class InMemoryLedger(Ledger):
    """
    Dict-backed ledger with the same semantics as DatabaseLedger.

    ``fail_with["deduct"] = LedgerTimeout()`` makes the next deduct raise;
    every call is appended to ``calls`` as ``(operation, args)``.
    """

    def __init__(self):
        self.balances = {}
        self.bonuses = {}
        self.referrals = []
        self.calls = []
        self.fail_with = {}
        self._references = {}
        self._lock = threading.Lock()

    def set_balance(self, user_id, token_id, tier, amount):
        self.balances[(user_id, token_id, tier)] = Decimal(str(amount))

    def set_bonus(self, bonus: ActiveBonus):
        self.bonuses[(bonus.user_id, bonus.token_id)] = bonus

    def calls_to(self, operation):
        return [args for op, args in self.calls if op == operation]

    def _maybe_fail(self, operation):
        error = self.fail_with.pop(operation, None)
        if error is not None:
            raise error

    def deduct(self, user_id, amount, token_id, tier, reference):
        with self._lock:
            self.calls.append(("deduct", (user_id, amount, token_id, tier, reference)))
            self._maybe_fail("deduct")
            if reference in self._references:
                return self._references[reference]
            key = (user_id, token_id, tier)
            current = self.balances.get(key, Decimal("0"))
            if amount <= 0:
                return LedgerResult(False, error="Invalid bet amount", code=INVALID_AMOUNT)
            if current < amount:
                return LedgerResult(False, error=f"Insufficient {tier} balance", code=INSUFFICIENT_FUNDS)
            self.balances[key] = current - amount
            result = LedgerResult(True, new_balance=self.balances[key])
            self._references[reference] = result
            return result

    def credit(self, user_id, amount, token_id, tier, reference):
        with self._lock:
            self.calls.append(("credit", (user_id, amount, token_id, tier, reference)))
            self._maybe_fail("credit")
            if reference in self._references:
                return self._references[reference]
            if amount <= 0:
                return LedgerResult(False, error="Invalid payout amount", code=INVALID_AMOUNT)
            key = (user_id, token_id, tier)
            self.balances[key] = self.balances.get(key, Decimal("0")) + amount
            result = LedgerResult(True, new_balance=self.balances[key])
            self._references[reference] = result
            return result

    def get_balance(self, user_id, token_id, tier):
        self.calls.append(("get_balance", (user_id, token_id, tier)))
        self._maybe_fail("get_balance")
        return self.balances.get((user_id, token_id, tier), Decimal("0"))

    def get_active_bonus(self, user_id, token_id):
        self.calls.append(("get_active_bonus", (user_id, token_id)))
        self._maybe_fail("get_active_bonus")
        return self.bonuses.get((user_id, token_id))

    def record_referral(self, entry):
        self.calls.append(("record_referral", (entry,)))
        self._maybe_fail("record_referral")
        self.referrals.append(entry)

    def has_reference(self, reference):
        self.calls.append(("has_reference", (reference,)))
        self._maybe_fail("has_reference")
        return reference in self._references


@lru_cache(maxsize=None)
def get_ledger() -> Ledger:
    ledger_class = import_string(settings.LEDGER_BACKEND)
    return ledger_class()


__all__ = [
    "ActiveBonus",
    "BalanceTier",
    "DatabaseLedger",
    "HttpLedger",
    "InMemoryLedger",
    "Ledger",
    "LedgerResult",
    "ReferralEntry",
    "get_ledger",
]
