# wallets/views/ledger.py
"""
Service-to-service ledger API consumed by ``wallets.ledger.HttpLedger``.

Every endpoint answers ``{"success": bool, ...payload | "error"}`` and
requires ``Authorization: Bearer <LEDGER_API_TOKEN>``.
"""
import hmac
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import BasePermission
from rest_framework.response import Response

from ..ledger import DatabaseLedger, ReferralEntry
from ..wallet import (
    LedgerLookupSerializer,
    LedgerMovementSerializer,
    LedgerReferenceSerializer,
    ReferralEntrySerializer,
)

logger = logging.getLogger(__name__)

ledger = DatabaseLedger()


class HasLedgerToken(BasePermission):
    message = "Invalid ledger credentials"

    def has_permission(self, request, view):
        expected = settings.LEDGER_API_TOKEN
        header = request.headers.get("Authorization", "")
        if not expected or not header.startswith("Bearer "):
            return False
        return hmac.compare_digest(header[len("Bearer "):], expected)


def _invalid(serializer):
    return Response(
        {"success": False, "error": "Invalid request", "details": serializer.errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


def _movement(request, operation):
    serializer = LedgerMovementSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    data = serializer.validated_data
    result = operation(
        data["user_id"], data["amount"], data["token_id"], data["tier"], data["reference"]
    )
    logger.info(
        "Ledger %s user=%s amount=%s tier=%s ref=%s success=%s",
        operation.__name__, data["user_id"], data["amount"], data["tier"],
        data["reference"], result.success,
    )
    return Response(
        result.as_payload(),
        status=status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST,
    )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([HasLedgerToken])
def deduct(request):
    return _movement(request, ledger.deduct)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([HasLedgerToken])
def credit(request):
    return _movement(request, ledger.credit)


@api_view(["GET"])
@authentication_classes([])
@permission_classes([HasLedgerToken])
def balance(request):
    serializer = LedgerLookupSerializer(data=request.query_params)
    if not serializer.is_valid() or "tier" not in serializer.validated_data:
        return Response(
            {"success": False, "error": "user_id, token_id and tier are required"},
            status=status.HTTP_400_BAD_REQUEST,
        )

    data = serializer.validated_data
    amount = ledger.get_balance(data["user_id"], data["token_id"], data["tier"])
    return Response({"success": True, "amount": str(amount)})


@api_view(["GET"])
@authentication_classes([])
@permission_classes([HasLedgerToken])
def active_bonus(request):
    serializer = LedgerLookupSerializer(data=request.query_params)
    if not serializer.is_valid():
        return _invalid(serializer)

    data = serializer.validated_data
    bonus = ledger.get_active_bonus(data["user_id"], data["token_id"])
    if bonus is None:
        return Response({"success": True, "bonus": None})

    return Response({
        "success": True,
        "bonus": {
            "id": bonus.bonus_id,
            "is_active": bonus.is_active,
            "is_completed": bonus.is_completed,
            "expires_at": bonus.expires_at.isoformat(),
        },
    })


@api_view(["POST"])
@authentication_classes([])
@permission_classes([HasLedgerToken])
def referrals(request):
    serializer = ReferralEntrySerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    data = serializer.validated_data
    entry_kwargs = {
        "user_id": data["user_id"],
        "bet_amount": data["bet_amount"],
        "token_id": data["token_id"],
        "balance_tier": data["balance_tier"],
        "reference": data.get("reference", ""),
    }
    if data.get("created_at"):
        entry_kwargs["created_at"] = data["created_at"]

    ledger.record_referral(ReferralEntry(**entry_kwargs))
    return Response({"success": True}, status=status.HTTP_201_CREATED)


@api_view(["GET"])
@authentication_classes([])
@permission_classes([HasLedgerToken])
def transactions(request):
    serializer = LedgerReferenceSerializer(data=request.query_params)
    if not serializer.is_valid():
        return _invalid(serializer)

    return Response({
        "success": True,
        "exists": ledger.has_reference(serializer.validated_data["reference"]),
    })
