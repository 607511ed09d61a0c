"""Request-scoped access to the objects create_app() puts on app.state."""

from fastapi import Request

from backend.sessions import SessionRegistry
from progress_engine.engine import ProgressEngine


def get_engine(request: Request) -> ProgressEngine:
    return request.app.state.engine


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions
