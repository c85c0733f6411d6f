from django.urls import path
from . import views

urlpatterns = [
    path("commit/", views.commit, name="plinko-commit"),
    path("play/", views.play, name="plinko-play"),
    path("history/", views.history, name="plinko-history"),
    path("history/<str:round_id>/", views.round_detail, name="plinko-round"),
    path("stats/", views.stats, name="plinko-stats"),
    path("verify/", views.verify, name="plinko-verify"),
    path("config/", views.game_config, name="plinko-config"),
    path("balance/", views.balance, name="plinko-balance"),
]
