"""
ASGI config for the blood bank project.

Serves HTTP through Django and WebSocket through Channels.
Django must be configured before any Django-dependent module is imported.
"""
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "bloodbank.settings")

import django  # noqa: E402
django.setup()  # noqa: E402

from django.core.asgi import get_asgi_application  # noqa: E402
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.auth import AuthMiddlewareStack  # noqa: E402
from django.urls import path  # noqa: E402

from core.realtime.consumers import BloodRequestUpdatesConsumer  # noqa: E402
from core.realtime.rejection_consumers import RejectionFormConsumer  # noqa: E402

django_asgi_app = get_asgi_application()

websocket_urlpatterns = [
    path("ws/blood-requests/updates/", BloodRequestUpdatesConsumer.as_asgi()),
    path("ws/blood-requests/<int:request_id>/reject/", RejectionFormConsumer.as_asgi()),
]

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AuthMiddlewareStack(URLRouter(websocket_urlpatterns)),
})
