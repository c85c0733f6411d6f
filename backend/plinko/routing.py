from django.urls import path
from .consumers import PlinkoConsumer

websocket_urlpatterns = [
    path("ws/plinko/", PlinkoConsumer.as_asgi()),
]
