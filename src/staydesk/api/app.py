"""ASGI entry point: ``uvicorn staydesk.api.app:app``."""

from .factory import create_app

app = create_app()
