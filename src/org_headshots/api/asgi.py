"""ASGI entrypoint for the headshots API."""

from org_headshots.api.app import create_app
from org_headshots.containers import build_container

app = create_app(build_container())
