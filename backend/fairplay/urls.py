from django.contrib import admin
from django.urls import path, include


urlpatterns = [
    path('admin-panel/', admin.site.urls),

    # Core / Accounts
    path('api/accounts/', include('accounts.urls')),

    # Ledger + balances
    path('api/wallet/', include('wallets.urls')),

    # Games
    path('api/plinko/', include('plinko.urls')),
]
