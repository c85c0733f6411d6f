from django.conf import settings
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Balance, WalletTransaction
from ..services import balances_for
from ..wallet import BalanceSerializer, WalletTransactionSerializer


class WalletViewSet(viewsets.GenericViewSet):
    """
    Wallet API for the logged-in player:
    - balance (MAIN + BONUS for one token)
    - balances (every tier row)
    - transactions
    """

    permission_classes = [IsAuthenticated]
    serializer_class = BalanceSerializer

    def get_queryset(self):
        return Balance.objects.filter(user=self.request.user)

    # ---------------------------------------------------
    # BALANCE
    # ---------------------------------------------------
    @action(detail=False, methods=["get"])
    def balance(self, request):
        try:
            token_id = int(request.query_params.get("token_id", settings.PLINKO_DEFAULT_TOKEN_ID))
        except (TypeError, ValueError):
            return Response({"success": False, "error": "token_id must be an integer"}, status=400)

        amounts = balances_for(request.user.id, token_id)
        return Response({
            "success": True,
            "token_id": token_id,
            "main_balance": str(amounts["main"]),
            "bonus_balance": str(amounts["bonus"]),
            "balance": str(amounts["total"]),
        })

    @action(detail=False, methods=["get"])
    def balances(self, request):
        return Response(self.get_serializer(self.get_queryset(), many=True).data)

    # ---------------------------------------------------
    # TRANSACTIONS
    # ---------------------------------------------------
    @action(detail=False, methods=["get"])
    def transactions(self, request):
        txs = WalletTransaction.objects.filter(user=request.user).order_by("-created_at")[:100]
        return Response(WalletTransactionSerializer(txs, many=True).data)
