"""Shared FastAPI dependencies.

The stores and the dispatch engine are composed once in the lifespan and
kept on app.state; handlers only ever reach them through these accessors.
"""

from fastapi import Request

from .notifications.engine import DispatchEngine
from .preferences.store import PreferenceStore


def get_preference_store(request: Request) -> PreferenceStore:
    return request.app.state.preference_store


def get_dispatch_engine(request: Request) -> DispatchEngine:
    return request.app.state.dispatch_engine
