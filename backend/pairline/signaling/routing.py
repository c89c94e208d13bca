# pairline/signaling/routing.py
from django.urls import re_path
from .consumers import BrokerConsumer

websocket_urlpatterns = [
    re_path(r"^ws/broker/?$", BrokerConsumer.as_asgi()),
]
