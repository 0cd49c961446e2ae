"""
ASGI config for the ColorGarb portal.

Served by Uvicorn/Daphne directly, or by AWS Lambda through Mangum
(see lambda_handlers.api_handler).
"""
import os

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

from django.core.asgi import get_asgi_application

# Initialized at import so Lambda pays the setup cost once per container
application = get_asgi_application()
