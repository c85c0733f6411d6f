from rest_framework import serializers

from .models import RoundCommitment


class RoundCommitmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = RoundCommitment
        fields = [
            "id",
            "server_seed_hash",
            "client_seed",
            "nonce",
            "status",
            "created_at",
        ]


class CommitSerializer(serializers.Serializer):
    client_seed = serializers.CharField(required=False, allow_blank=True, max_length=64, trim_whitespace=False)


class PlaySerializer(serializers.Serializer):
    bet_amount = serializers.DecimalField(max_digits=28, decimal_places=8)
    risk = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=16)
    rows = serializers.IntegerField()
    token_id = serializers.IntegerField(required=False, min_value=1)
    client_seed = serializers.CharField(required=False, allow_blank=True, max_length=64, trim_whitespace=False)
    commitment_id = serializers.IntegerField(required=False, min_value=1)


class VerifySerializer(serializers.Serializer):
    round_id = serializers.UUIDField(required=False)
    server_seed = serializers.CharField(required=False, max_length=64)
    client_seed = serializers.CharField(required=False, max_length=64, trim_whitespace=False)
    nonce = serializers.IntegerField(required=False, min_value=0)
    server_seed_hash = serializers.CharField(required=False, max_length=64)
    risk = serializers.CharField(required=False, max_length=16)
    rows = serializers.IntegerField(required=False)

    def validate(self, attrs):
        if attrs.get("round_id"):
            return attrs
        missing = [
            name for name in ("server_seed", "client_seed", "nonce", "server_seed_hash")
            if attrs.get(name) in (None, "")
        ]
        if missing:
            raise serializers.ValidationError(
                f"Provide round_id or the full seed triple (missing: {', '.join(missing)})"
            )
        return attrs


def first_error(errors):
    """Flatten a DRF error dict into one readable message."""
    if isinstance(errors, dict):
        for field, messages in errors.items():
            message = first_error(messages)
            return message if field == "non_field_errors" else f"{field}: {message}"
    if isinstance(errors, (list, tuple)) and errors:
        return first_error(errors[0])
    return str(errors)
