from decimal import Decimal

from django.contrib.auth import authenticate, get_user_model, login, logout
from django.db.models import Count, Q, Sum
from rest_framework.authtoken.models import Token
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from referrals.models import ReferralLedgerEntry
from referrals.services import commission_for
from .serializers import ProfileSerializer, RegisterSerializer

ZERO = Decimal("0")


def _session_payload(request, user):
    login(request, user)
    token, _ = Token.objects.get_or_create(user=user)
    return {"user": ProfileSerializer(user).data, "token": token.key}


@api_view(['POST'])
@permission_classes([AllowAny])
def register_view(request):
    serializer = RegisterSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=400)

    user = serializer.save()
    return Response(_session_payload(request, user), status=201)


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    user = authenticate(
        username=request.data.get('username'),
        password=request.data.get('password'),
    )
    if user is None:
        return Response({'error': 'Invalid credentials'}, status=400)

    return Response(_session_payload(request, user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    Token.objects.filter(user=request.user).delete()
    logout(request)
    return Response({'message': 'Logged out successfully'})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def profile_view(request):
    return Response(ProfileSerializer(request.user).data)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def referral_dashboard(request):
    """
    Turnover of everyone the player referred, plus the commission the
    unpaid part of it would earn at the next payout run.
    """
    user = request.user
    referrals = (
        get_user_model().objects
        .filter(referred_by=user)
        .annotate(turnover=Sum("referral_entries__bet_amount"), bets=Count("referral_entries"))
        .order_by("username")
    )
    totals = ReferralLedgerEntry.objects.filter(user__referred_by=user).aggregate(
        turnover=Sum("bet_amount"),
        unpaid=Sum("bet_amount", filter=Q(commission_paid=False)),
    )

    return Response({
        "referral_code": user.referral_code,
        "referred_by": user.referred_by.username if user.referred_by else None,
        "referrals_count": len(referrals),
        "total_turnover": str(totals["turnover"] or ZERO),
        "potential_commission": str(commission_for(totals["unpaid"] or ZERO)),
        "referrals": [
            {
                "username": r.username,
                "turnover": str(r.turnover or ZERO),
                "bets": r.bets,
            }
            for r in referrals
        ],
    })
