from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import ledger
from .views.wallet import WalletViewSet

router = DefaultRouter()
router.register(r'', WalletViewSet, basename='wallet')  # /api/wallet/balance/, /api/wallet/transactions/

ledger_patterns = [
    path("deduct/", ledger.deduct, name="ledger-deduct"),
    path("credit/", ledger.credit, name="ledger-credit"),
    path("balance/", ledger.balance, name="ledger-balance"),
    path("active-bonus/", ledger.active_bonus, name="ledger-active-bonus"),
    path("referrals/", ledger.referrals, name="ledger-referrals"),
    path("transactions/", ledger.transactions, name="ledger-transactions"),
]

urlpatterns = [
    path('ledger/', include(ledger_patterns)),
    path('', include(router.urls)),
]
