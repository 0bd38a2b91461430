"""ASGI entry point: ``uvicorn server:app``.

Settings come from the environment (and ``.env`` / ``.env.local``), see
``personal_digest.config``.
"""
from personal_digest.api import create_app

app = create_app()
