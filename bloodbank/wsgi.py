"""
WSGI config for the blood bank project.

Exposes the WSGI callable as a module-level variable named
``application`` for servers that do not need WebSocket support.
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'bloodbank.settings')

application = get_wsgi_application()
