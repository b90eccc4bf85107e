"""ASGI entrypoint for the replay pipeline API."""

from replay_pipeline.api.app import create_app
from replay_pipeline.containers import build_container

app = create_app(build_container())
