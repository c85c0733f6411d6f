from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from core.dispatch import InlineDispatcher
from plinko.conf import PlinkoConfig
from plinko.history import InMemoryHistoryStore
from plinko.services import WagerCoordinator
from plinko.stakes import InMemoryStakeJournal
from referrals.tracker import ReferralTracker
from wallets.ledger import ActiveBonus, InMemoryLedger
from wallets.models import Balance, BalanceTier, UserBonus

TOKEN_ID = 2


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def history():
    return InMemoryHistoryStore()


@pytest.fixture
def stakes():
    return InMemoryStakeJournal()


@pytest.fixture
def coordinator(ledger, history, stakes):
    return WagerCoordinator(
        ledger,
        history=history,
        stakes=stakes,
        tracker=ReferralTracker(ledger, dispatcher=InlineDispatcher()),
        config=PlinkoConfig(),
    )


@pytest.fixture
def live_bonus():
    def make(user_id, token_id=TOKEN_ID, **overrides):
        values = {
            "user_id": user_id,
            "token_id": token_id,
            "is_active": True,
            "is_completed": False,
            "expires_at": timezone.now() + timedelta(days=1),
            "bonus_id": 1,
        }
        values.update(overrides)
        return ActiveBonus(**values)
    return make


@pytest.fixture
def user(db):
    return get_user_model().objects.create_user(
        username="player",
        email="player@example.com",
        password="secret123",
    )


@pytest.fixture
def referrer(db):
    return get_user_model().objects.create_user(
        username="referrer",
        email="referrer@example.com",
        password="secret123",
    )


@pytest.fixture
def referred_user(db, referrer):
    return get_user_model().objects.create_user(
        username="referred",
        email="referred@example.com",
        password="secret123",
        referred_by=referrer,
    )


@pytest.fixture
def fund(db):
    def make(user, amount, tier=BalanceTier.MAIN, token_id=TOKEN_ID):
        balance, _ = Balance.objects.update_or_create(
            user=user,
            token_id=token_id,
            tier=tier,
            defaults={"amount": Decimal(str(amount))},
        )
        return balance
    return make


@pytest.fixture
def bonus(db):
    def make(user, required_wager="100", token_id=TOKEN_ID, **overrides):
        values = {
            "user": user,
            "token_id": token_id,
            "granted_amount": Decimal("50"),
            "required_wager": Decimal(str(required_wager)),
            "expires_at": timezone.now() + timedelta(days=7),
        }
        values.update(overrides)
        return UserBonus.objects.create(**values)
    return make


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def auth_client(api_client, user):
    api_client.force_authenticate(user=user)
    return api_client
