from decimal import Decimal

import pytest
from django.urls import reverse

from referrals.models import ReferralLedgerEntry
from wallets.models import Balance, BalanceTier

from .conftest import TOKEN_ID

pytestmark = pytest.mark.django_db

AUTH = {"HTTP_AUTHORIZATION": "Bearer test-ledger-token"}


def movement(user, amount, reference, tier="MAIN"):
    return {
        "user_id": user.id,
        "amount": str(amount),
        "token_id": TOKEN_ID,
        "tier": tier,
        "reference": reference,
    }


@pytest.mark.parametrize("header", [{}, {"HTTP_AUTHORIZATION": "Bearer wrong"}, {"HTTP_AUTHORIZATION": "test-ledger-token"}])
def test_ledger_requires_service_token(api_client, user, header):
    resp = api_client.post(reverse("ledger-deduct"), movement(user, 1, "r"), format="json", **header)
    assert resp.status_code in (401, 403)


def test_deduct_and_credit(api_client, user, fund):
    fund(user, "10")

    resp = api_client.post(reverse("ledger-deduct"), movement(user, 4, "plinko:a:bet"), format="json", **AUTH)
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert Decimal(resp.json()["new_balance"]) == Decimal("6")

    resp = api_client.post(reverse("ledger-credit"), movement(user, "2.5", "plinko:a:credit"), format="json", **AUTH)
    assert resp.status_code == 200
    assert Decimal(resp.json()["new_balance"]) == Decimal("8.5")


def test_insufficient_deduct_answers_400_with_code(api_client, user, fund):
    fund(user, "1")

    resp = api_client.post(reverse("ledger-deduct"), movement(user, 4, "plinko:b:bet"), format="json", **AUTH)

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert resp.json()["code"] == "insufficient_funds"


def test_invalid_movement_payload(api_client, user):
    resp = api_client.post(reverse("ledger-deduct"), {"user_id": user.id}, format="json", **AUTH)

    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_balance_lookup(api_client, user, fund):
    fund(user, "7", BalanceTier.BONUS)

    resp = api_client.get(
        reverse("ledger-balance"),
        {"user_id": user.id, "token_id": TOKEN_ID, "tier": "BONUS"},
        **AUTH,
    )

    assert resp.status_code == 200
    assert Decimal(resp.json()["amount"]) == Decimal("7")


def test_active_bonus_lookup(api_client, user, bonus):
    resp = api_client.get(reverse("ledger-active-bonus"), {"user_id": user.id, "token_id": TOKEN_ID}, **AUTH)
    assert resp.json() == {"success": True, "bonus": None}

    live = bonus(user)
    resp = api_client.get(reverse("ledger-active-bonus"), {"user_id": user.id, "token_id": TOKEN_ID}, **AUTH)

    assert resp.json()["bonus"]["id"] == live.id
    assert resp.json()["bonus"]["is_active"] is True


def test_referral_entry_is_recorded(api_client, user):
    resp = api_client.post(
        reverse("ledger-referrals"),
        {
            "user_id": user.id,
            "bet_amount": "2.5",
            "token_id": TOKEN_ID,
            "balance_tier": "MAIN",
            "reference": "plinko:c:bet",
        },
        format="json",
        **AUTH,
    )

    assert resp.status_code == 201
    assert ReferralLedgerEntry.objects.get(user=user).bet_amount == Decimal("2.5")


def test_transaction_lookup_by_reference(api_client, user, fund):
    fund(user, "10")
    api_client.post(reverse("ledger-deduct"), movement(user, 4, "plinko:d:bet"), format="json", **AUTH)

    found = api_client.get(reverse("ledger-transactions"), {"reference": "plinko:d:bet"}, **AUTH)
    missing = api_client.get(reverse("ledger-transactions"), {"reference": "plinko:e:bet"}, **AUTH)

    assert found.json() == {"success": True, "exists": True}
    assert missing.json() == {"success": True, "exists": False}


def test_transaction_lookup_needs_a_reference(api_client):
    resp = api_client.get(reverse("ledger-transactions"), **AUTH)

    assert resp.status_code == 400
    assert resp.json()["success"] is False

def test_ledger_never_overdraws_through_the_api(api_client, user, fund):
    fund(user, "3")

    statuses = [
        api_client.post(reverse("ledger-deduct"), movement(user, 1, f"plinko:{i}:bet"), format="json", **AUTH).status_code
        for i in range(5)
    ]

    assert statuses == [200, 200, 200, 400, 400]
    assert Balance.objects.get(user=user, tier=BalanceTier.MAIN).amount == Decimal("0")


def test_player_wallet_views(auth_client, user, fund):
    fund(user, "10", BalanceTier.MAIN)
    fund(user, "3", BalanceTier.BONUS)
    auth_client.post(
        reverse("plinko-play"),
        {"bet_amount": "1", "risk": "low", "rows": 8},
        format="json",
    )

    balance = auth_client.get(reverse("wallet-balance")).json()
    rows = auth_client.get(reverse("wallet-balances")).json()
    txs = auth_client.get(reverse("wallet-transactions")).json()

    assert balance["token_id"] == TOKEN_ID
    assert {r["tier"] for r in rows} == {"MAIN", "BONUS"}
    bet = [t for t in txs if t["reference"].endswith(":bet")]
    assert len(bet) == 1
    assert bet[0]["tier"] == "MAIN"
    assert Decimal(bet[0]["amount"]) == Decimal("1")
