from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
import requests
from django.utils import timezone

from core.exceptions import LedgerTimeout, LedgerUnavailable
from wallets.ledger import HttpLedger, ReferralEntry
from wallets.models import BalanceTier

BASE_URL = "http://ledger.test/api/wallet/ledger"


def response(status=200, payload=None, text=""):
    resp = mock.Mock()
    resp.status_code = status
    resp.text = text
    if payload is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    return mock.Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    return HttpLedger(
        base_url=BASE_URL,
        token="service-token",
        connect_timeout=0.5,
        read_timeout=2,
        session=session,
    )


def test_deduct_posts_movement_with_bearer_and_timeouts(client, session):
    session.request.return_value = response(payload={"success": True, "new_balance": "90"})

    result = client.deduct(7, Decimal("10"), 2, BalanceTier.MAIN, "plinko:r:bet")

    assert result.success
    assert result.new_balance == Decimal("90")
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("POST", f"{BASE_URL}/deduct/")
    assert kwargs["headers"]["Authorization"] == "Bearer service-token"
    assert kwargs["timeout"] == (0.5, 2)
    assert kwargs["json"] == {
        "user_id": 7,
        "amount": "10",
        "token_id": 2,
        "tier": "MAIN",
        "reference": "plinko:r:bet",
    }


def test_business_failure_is_returned_not_raised(client, session):
    session.request.return_value = response(
        status=400,
        payload={"success": False, "error": "Insufficient MAIN balance", "code": "insufficient_funds"},
    )

    result = client.deduct(7, Decimal("10"), 2, BalanceTier.MAIN, "plinko:r:bet")

    assert not result.success
    assert result.code == "insufficient_funds"


def test_read_timeout_raises_ledger_timeout(client, session):
    session.request.side_effect = requests.exceptions.ReadTimeout("slow")

    with pytest.raises(LedgerTimeout):
        client.deduct(7, Decimal("10"), 2, BalanceTier.MAIN, "plinko:r:bet")


def test_connect_timeout_raises_ledger_timeout(client, session):
    session.request.side_effect = requests.exceptions.ConnectTimeout("no route")

    with pytest.raises(LedgerTimeout):
        client.credit(7, Decimal("10"), 2, BalanceTier.MAIN, "plinko:r:credit")


def test_connection_error_raises_ledger_unavailable(client, session):
    session.request.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(LedgerUnavailable) as excinfo:
        client.get_balance(7, 2, BalanceTier.MAIN)
    assert not isinstance(excinfo.value, LedgerTimeout)


@pytest.mark.parametrize("status", [401, 403, 500, 503])
def test_auth_and_server_errors_raise_ledger_unavailable(client, session, status):
    session.request.return_value = response(status=status, payload={"success": False})

    with pytest.raises(LedgerUnavailable):
        client.get_balance(7, 2, BalanceTier.MAIN)


def test_non_json_body_raises_ledger_unavailable(client, session):
    session.request.return_value = response(text="<html>")

    with pytest.raises(LedgerUnavailable):
        client.get_balance(7, 2, BalanceTier.MAIN)


def test_get_balance_parses_amount(client, session):
    session.request.return_value = response(payload={"success": True, "amount": "12.5"})

    assert client.get_balance(7, 2, BalanceTier.BONUS) == Decimal("12.5")
    assert session.request.call_args.kwargs["params"] == {"user_id": 7, "token_id": 2, "tier": "BONUS"}


def test_get_active_bonus(client, session):
    expires = (timezone.now() + timedelta(days=1)).replace(microsecond=0)
    session.request.return_value = response(payload={
        "success": True,
        "bonus": {"id": 3, "is_active": True, "is_completed": False, "expires_at": expires.isoformat()},
    })

    bonus = client.get_active_bonus(7, 2)

    assert bonus.bonus_id == 3
    assert bonus.expires_at == expires
    assert bonus.is_valid(timezone.now())


def test_get_active_bonus_none(client, session):
    session.request.return_value = response(payload={"success": True, "bonus": None})
    assert client.get_active_bonus(7, 2) is None


def test_record_referral_rejected_raises(client, session):
    session.request.return_value = response(status=400, payload={"success": False, "error": "bad"})

    with pytest.raises(LedgerUnavailable):
        client.record_referral(
            ReferralEntry(user_id=7, bet_amount=Decimal("1"), token_id=2, balance_tier="MAIN")
        )


def test_has_reference_looks_up_the_transaction(client, session):
    session.request.return_value = response(payload={"success": True, "exists": True})

    assert client.has_reference("plinko:r:bet") is True
    method, url = session.request.call_args.args
    assert (method, url) == ("GET", f"{BASE_URL}/transactions/")
    assert session.request.call_args.kwargs["params"] == {"reference": "plinko:r:bet"}


def test_has_reference_rejected_raises(client, session):
    session.request.return_value = response(status=400, payload={"success": False, "error": "bad"})

    with pytest.raises(LedgerUnavailable):
        client.has_reference("")

def test_missing_token_is_a_configuration_error(settings):
    settings.LEDGER_API_TOKEN = None
    with pytest.raises(RuntimeError):
        HttpLedger(base_url=BASE_URL)


def test_session_does_not_retry_reads(settings):
    ledger = HttpLedger(base_url=BASE_URL, token="t", max_retries=2)
    retry = ledger.session.get_adapter("http://ledger.test").max_retries

    assert retry.read is False
    assert retry.connect == 2
