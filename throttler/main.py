"""ASGI entrypoint: ``uvicorn throttler.main:app``."""

from throttler.core.app_factory import create_app

app = create_app()
