"""ASGI entrypoint, served with ``uvicorn rising_stars.api.asgi:app``."""

from rising_stars.api.app import create_app
from rising_stars.config import Settings
from rising_stars.containers import build_container

settings = Settings()
app = create_app(build_container(settings))
