from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import InvalidParameters, PlinkoError
from wallets.services import balances_for
from . import payouts
from .conf import PlinkoConfig
from .serializers import (
    CommitSerializer,
    PlaySerializer,
    RoundCommitmentSerializer,
    VerifySerializer,
    first_error,
)
from .services import (
    commit_round,
    history_store,
    publish_round,
    settle_wager,
    verify_game,
    verify_stored_round,
)


def error_response(exc: PlinkoError):
    return Response(exc.as_payload(), status=exc.status_code)


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise InvalidParameters(first_error(serializer.errors))
    return serializer.validated_data


def _token_id(request, config):
    try:
        return int(request.query_params.get("token_id", config.default_token_id))
    except (TypeError, ValueError):
        raise InvalidParameters("token_id must be an integer")


# ======================================================
# COMMIT
# ======================================================
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def commit(request):
    """
    Publish the server seed hash for the player's next round.
    """
    try:
        data = _validated(CommitSerializer, request.data)
        commitment = commit_round(request.user.id, data.get("client_seed") or None)
    except PlinkoError as e:
        return error_response(e)

    return Response(
        {"success": True, "commitment": RoundCommitmentSerializer(commitment).data},
        status=status.HTTP_201_CREATED,
    )


# ======================================================
# PLAY
# ======================================================
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def play(request):
    config = PlinkoConfig.from_settings()
    try:
        data = _validated(PlaySerializer, request.data)
        game = settle_wager(
            user_id=request.user.id,
            bet_amount=data["bet_amount"],
            token_id=data.get("token_id") or config.default_token_id,
            risk=data.get("risk"),
            rows=data["rows"],
            client_seed=data.get("client_seed") or None,
            commitment_id=data.get("commitment_id"),
        )
    except PlinkoError as e:
        return error_response(e)

    publish_round(game)
    return Response(game.to_payload())


# ======================================================
# HISTORY / STATS
# ======================================================
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def history(request):
    config = PlinkoConfig.from_settings()
    try:
        limit = int(request.query_params.get("limit", config.history_limit))
    except (TypeError, ValueError):
        return error_response(InvalidParameters("limit must be an integer"))
    limit = max(1, min(limit, config.max_history_limit))

    rounds = history_store(config).list_by_user(request.user.id, limit)
    return Response({
        "success": True,
        "count": len(rounds),
        "games": [r.to_payload() for r in rounds],
    })


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def round_detail(request, round_id):
    game = history_store().get_by_id(round_id, user_id=request.user.id)
    if game is None:
        return Response(
            {"success": False, "error": "Game not found", "code": "not_found"},
            status=status.HTTP_404_NOT_FOUND,
        )
    return Response({"success": True, "game": game.to_payload()})


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def stats(request):
    config = PlinkoConfig.from_settings()
    if not config.stats_tracking:
        return Response(
            {"success": False, "error": "Stats tracking is disabled", "code": "feature_disabled"},
            status=status.HTTP_404_NOT_FOUND,
        )
    return Response({"success": True, "stats": history_store(config).stats(request.user.id)})


# ======================================================
# FAIRNESS
# ======================================================
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def verify(request):
    config = PlinkoConfig.from_settings()
    if not config.fairness_verification:
        return Response(
            {"success": False, "error": "Fairness verification is disabled", "code": "feature_disabled"},
            status=status.HTTP_404_NOT_FOUND,
        )

    try:
        data = _validated(VerifySerializer, request.data)
        if data.get("round_id"):
            game = history_store(config).get_by_id(data["round_id"], user_id=request.user.id)
            if game is None:
                return Response(
                    {"success": False, "error": "Game not found", "code": "not_found"},
                    status=status.HTTP_404_NOT_FOUND,
                )
            report = verify_stored_round(game)
        else:
            report = verify_game(
                data["server_seed"],
                data["client_seed"],
                data["nonce"],
                data["server_seed_hash"],
                risk=data.get("risk") or payouts.DEFAULT_RISK,
                rows=data.get("rows") or payouts.DEFAULT_ROWS,
            )
    except PlinkoError as e:
        return error_response(e)

    return Response({"success": True, **report})


# ======================================================
# CONFIG / BALANCE
# ======================================================
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def game_config(request):
    config = PlinkoConfig.from_settings()
    return Response({
        "success": True,
        "config": {
            "name": "plinko",
            "min_bet": str(config.min_bet),
            "max_bet": str(config.max_bet),
            "min_rows": config.min_rows,
            "max_rows": config.max_rows,
            "risks": list(payouts.RISKS),
            "default_risk": payouts.DEFAULT_RISK,
            "default_rows": payouts.DEFAULT_ROWS,
            "payout_table": payouts.as_json(),
            "features": dict(settings.PLINKO_FEATURES),
        },
    })


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def balance(request):
    config = PlinkoConfig.from_settings()
    try:
        token_id = _token_id(request, config)
    except PlinkoError as e:
        return error_response(e)

    amounts = balances_for(request.user.id, token_id)
    return Response({
        "success": True,
        "token_id": token_id,
        "main_balance": str(amounts["main"]),
        "bonus_balance": str(amounts["bonus"]),
        "balance": str(amounts["total"]),
    })
