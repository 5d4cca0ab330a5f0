"""ASGI entrypoint for the feedback relay API."""

from feedback_relay.api.app import create_app
from feedback_relay.containers import build_container

app = create_app(build_container())
