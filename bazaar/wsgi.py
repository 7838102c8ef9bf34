"""
WSGI config for the bazaar project.

Serves the HTTP API only; real-time chat needs the ASGI application.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'bazaar.settings')

application = get_wsgi_application()
