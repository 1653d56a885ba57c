from __future__ import annotations

from .server import app as _server_app
from .services.background import celery_app as _celery_app


def create_app():
    return _server_app


app = create_app()
celery_app = _celery_app
