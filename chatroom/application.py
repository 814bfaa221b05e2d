"""Application factory that serves both the JSON API and the HTML pages."""
from __future__ import annotations

import time
from typing import Callable, Optional

from fastapi import FastAPI

from .api import register_api_routes
from .config import Settings, load_settings
from .database import Database
from .messages import MessageBoard
from .registration import RegistrationFlow
from .sessions import SessionManager
from .web import register_page_routes


def create_app(
    *,
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
    session_secret: Optional[str] = None,
    sessions: Optional[SessionManager] = None,
    clock: Optional[Callable[[], float]] = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Create the chatroom ASGI application.

    Collaborators are injected so tests can substitute a temporary database, a
    failing session store, or a controllable clock for the registration window.
    """

    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
    if initialize_database:
        database.initialize()

    secret = session_secret or settings.require_secret()

    if sessions is None:
        sessions = SessionManager(ttl=settings.session_ttl)

    registration = RegistrationFlow(
        database,
        secret=secret,
        timeout=settings.register_window,
        clock=clock or time.time,
    )

    app = FastAPI(
        title="Chatroom",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.sessions = sessions
    app.state.registration = registration
    app.state.board = MessageBoard(database)
    app.state.session_cookie_secure = settings.session_cookie_secure

    register_api_routes(app)
    register_page_routes(app)

    return app


__all__ = ["create_app"]
