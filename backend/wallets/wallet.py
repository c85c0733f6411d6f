from rest_framework import serializers
from decimal import Decimal
from .models import Balance, BalanceTier, WalletTransaction


class LedgerMovementSerializer(serializers.Serializer):
    user_id = serializers.IntegerField(min_value=1)
    amount = serializers.DecimalField(max_digits=28, decimal_places=8, min_value=Decimal("0.00000001"))
    token_id = serializers.IntegerField(min_value=1)
    tier = serializers.ChoiceField(choices=BalanceTier.choices)
    reference = serializers.CharField(max_length=96)


class LedgerLookupSerializer(serializers.Serializer):
    user_id = serializers.IntegerField(min_value=1)
    token_id = serializers.IntegerField(min_value=1)
    tier = serializers.ChoiceField(choices=BalanceTier.choices, required=False)


class LedgerReferenceSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=96)


class ReferralEntrySerializer(serializers.Serializer):
    user_id = serializers.IntegerField(min_value=1)
    bet_amount = serializers.DecimalField(max_digits=28, decimal_places=8, min_value=Decimal("0.00000001"))
    token_id = serializers.IntegerField(min_value=1)
    balance_tier = serializers.ChoiceField(choices=BalanceTier.choices)
    reference = serializers.CharField(max_length=96, required=False, allow_blank=True)
    created_at = serializers.DateTimeField(required=False)


class BalanceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Balance
        fields = ['token_id', 'tier', 'amount', 'updated_at']


class WalletTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = WalletTransaction
        fields = ['id', 'token_id', 'tier', 'amount', 'tx_type', 'reference', 'balance_after', 'meta', 'created_at']
