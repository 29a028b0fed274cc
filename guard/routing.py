from django.urls import path

from .consumers import SiteEventConsumer

websocket_urlpatterns = [
    path("ws/events/", SiteEventConsumer.as_asgi()),
]
