from django.urls import re_path
from .consumers import OrderAdminConsumer

websocket_urlpatterns = [
    re_path(r"ws/orders/$", OrderAdminConsumer.as_asgi()),
]
