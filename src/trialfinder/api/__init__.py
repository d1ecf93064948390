"""API module: FastAPI surface over SearchEngine.

Public API:
  create_app() — app around an injected engine (tests, embedding)
  build_app()  — app wired from Settings (production entry point)
"""

from __future__ import annotations

from fastapi import FastAPI

from trialfinder.api.app import create_app
from trialfinder.api.profiles import InMemoryProfileStore, Profile
from trialfinder.config import Settings, load_settings
from trialfinder.runtime import create_client, create_engine


def build_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    client = create_client(settings)
    engine = create_engine(settings, client=client)
    profiles = (
        InMemoryProfileStore.from_file(settings.profiles.path)
        if settings.profiles.path
        else InMemoryProfileStore()
    )
    return create_app(
        engine,
        profiles=profiles,
        cors_origins=settings.server.cors_origins,
        client=client,
    )


__all__ = [
    "InMemoryProfileStore",
    "Profile",
    "build_app",
    "create_app",
]
