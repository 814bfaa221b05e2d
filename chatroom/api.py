"""JSON API for registration, login and the message board."""
from __future__ import annotations

import logging
import sqlite3
from typing import Dict, Mapping, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .database import Database
from .errors import (
    AuthRequiredError,
    ChatroomError,
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    ServerError,
)
from .messages import MessageBoard
from .models import format_timestamp
from .registration import REGISTRATION_COOKIES, RegistrationFlow
from .sessions import SESSION_COOKIE_NAME, SessionManager, SessionRecord
from .validators import normalize_email, validate_email, validate_password

logger = logging.getLogger("chatroom.api")


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RegistrationStep1Request(_Payload):
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")


class RegistrationStep2Request(_Payload):
    password: Optional[str] = None
    confirm_password: Optional[str] = Field(default=None, alias="confirmPassword")


class LoginRequest(_Payload):
    email: Optional[str] = None
    password: Optional[str] = None


class MessageContentRequest(_Payload):
    content: Optional[str] = None


# ----------------------------------------------------------------------
# Shared helpers, also used by the HTML pages
# ----------------------------------------------------------------------
def error_response(exc: ChatroomError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def get_registration(request: Request) -> RegistrationFlow:
    return request.app.state.registration


def get_board(request: Request) -> MessageBoard:
    return request.app.state.board


def current_session(request: Request) -> Optional[SessionRecord]:
    return get_sessions(request).resolve(request.cookies.get(SESSION_COOKIE_NAME))


def require_session(request: Request) -> SessionRecord:
    record = current_session(request)
    if record is None:
        raise AuthRequiredError()
    return record


def _secure_cookies(request: Request) -> bool:
    return bool(getattr(request.app.state, "session_cookie_secure", False))


def issue_session_cookie(request: Request, response, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=get_sessions(request).cookie_max_age,
        httponly=True,
        secure=_secure_cookies(request),
        samesite="lax",
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, httponly=True, samesite="lax")


def _stage_registration_cookies(request: Request, response, values: Mapping[str, str]) -> None:
    max_age = get_registration(request).cookie_max_age
    for name, value in values.items():
        response.set_cookie(
            name,
            value,
            max_age=max_age,
            httponly=True,
            secure=_secure_cookies(request),
            samesite="lax",
        )


def _clear_registration_cookies(response) -> None:
    for name in REGISTRATION_COOKIES:
        response.delete_cookie(name, httponly=True, samesite="lax")


def login_user(request: Request, email: object, password: object):
    """Validate credentials and open a session; returns ``(user, token)``."""

    validate_email(email)
    cleaned_password = validate_password(password)
    normalized = normalize_email(email)

    user = get_database(request).authenticate_user(normalized, cleaned_password)
    if user is None:
        logger.warning("Failed login attempt for %s", normalized)
        raise InvalidCredentialsError()

    sessions = get_sessions(request)
    sessions.destroy(request.cookies.get(SESSION_COOKIE_NAME))
    token = sessions.create(user)
    logger.info("User %s signed in", user.id)
    return user, token


def logout_user(request: Request) -> None:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    try:
        get_sessions(request).destroy(token)
    except Exception as exc:
        logger.exception("Failed to destroy session")
        raise ServerError("Logout failed") from exc


# ----------------------------------------------------------------------
# Routes
# ----------------------------------------------------------------------
def _build_auth_router() -> APIRouter:
    router = APIRouter(prefix="/api/auth")

    @router.get("/register/step1")
    async def get_registration_step1(request: Request):
        staged = get_registration(request).resume(request.cookies)
        if staged is not None:
            return {"success": True, "data": staged.to_dict()}
        response = JSONResponse({"success": True, "data": None})
        _clear_registration_cookies(response)
        return response

    @router.post("/register/step1")
    async def post_registration_step1(request: Request, payload: RegistrationStep1Request):
        values = get_registration(request).submit_step1(
            payload.email,
            payload.first_name,
            payload.last_name,
        )
        response = JSONResponse({"success": True, "message": "Proceed to step 2"})
        _stage_registration_cookies(request, response, values)
        return response

    @router.get("/register/step2")
    async def get_registration_step2(request: Request):
        flow = get_registration(request)
        staged = flow.require_staged(request.cookies)
        return {"success": True, "data": staged.to_dict(), "timeout": flow.timeout_seconds}

    @router.post("/register/step2")
    async def post_registration_step2(request: Request, payload: RegistrationStep2Request):
        try:
            get_registration(request).complete(
                request.cookies,
                payload.password,
                payload.confirm_password,
            )
        except ConflictError as exc:
            response = error_response(exc)
            _clear_registration_cookies(response)
            return response

        response = JSONResponse({"success": True, "message": "Registration completed successfully"})
        _clear_registration_cookies(response)
        return response

    @router.delete("/register")
    async def cancel_registration():
        response = JSONResponse({"success": True, "message": "Registration cancelled"})
        _clear_registration_cookies(response)
        return response

    @router.post("/login")
    async def login(request: Request, payload: LoginRequest):
        user, token = login_user(request, payload.email, payload.password)
        response = JSONResponse({"success": True, "user": user.to_public_dict()})
        issue_session_cookie(request, response, token)
        return response

    @router.post("/logout")
    async def logout(request: Request):
        logout_user(request)
        response = JSONResponse({"success": True, "message": "Logged out successfully"})
        clear_session_cookie(response)
        return response

    @router.get("/me")
    async def me(request: Request):
        record = current_session(request)
        if record is None:
            raise AuthRequiredError("Not authenticated")
        user = get_database(request).get_user(record.user_id)
        if user is None:
            raise NotFoundError("User not found")
        return {"success": True, "user": user.to_public_dict()}

    return router


def _build_messages_router() -> APIRouter:
    router = APIRouter(prefix="/api/messages")

    @router.get("")
    async def list_messages(request: Request, session: SessionRecord = Depends(require_session)):
        return get_board(request).list_messages().to_payload()

    @router.get("/last-update")
    async def last_update(request: Request, session: SessionRecord = Depends(require_session)):
        return {
            "success": True,
            "lastUpdateAt": format_timestamp(get_board(request).last_update_at()),
        }

    @router.get("/search")
    async def search_messages(
        request: Request,
        q: Optional[str] = None,
        session: SessionRecord = Depends(require_session),
    ):
        return get_board(request).search(q).to_payload()

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def create_message(
        request: Request,
        payload: MessageContentRequest,
        session: SessionRecord = Depends(require_session),
    ):
        message = get_board(request).create(session.user_id, payload.content)
        return {"success": True, "message": message.to_dict()}

    @router.put("/{message_id}")
    async def update_message(
        request: Request,
        message_id: str,
        payload: MessageContentRequest,
        session: SessionRecord = Depends(require_session),
    ):
        board = get_board(request)
        message = board.update(session.user_id, message_id, payload.content)
        return {
            "success": True,
            "message": message.to_dict(),
            "lastUpdateAt": format_timestamp(board.last_update_at()),
        }

    @router.delete("/{message_id}")
    async def delete_message(
        request: Request,
        message_id: str,
        session: SessionRecord = Depends(require_session),
    ):
        get_board(request).delete(session.user_id, message_id)
        return {"success": True, "message": "Message deleted successfully"}

    return router


def register_api_routes(app: FastAPI) -> None:
    """Attach the JSON routes and error translation to ``app``."""

    app.include_router(_build_auth_router())
    app.include_router(_build_messages_router())

    @app.exception_handler(ChatroomError)
    async def handle_chatroom_error(_: Request, exc: ChatroomError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(_: Request, exc: RequestValidationError):
        payload: Dict[str, object] = {"success": False, "error": "Invalid request payload"}
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=payload)

    @app.exception_handler(sqlite3.Error)
    async def handle_store_error(request: Request, exc: sqlite3.Error):
        logger.error(
            "Store failure while handling %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return error_response(ServerError())

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "Unhandled error while handling %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return error_response(ServerError())


__all__ = [
    "clear_session_cookie",
    "current_session",
    "error_response",
    "issue_session_cookie",
    "login_user",
    "logout_user",
    "register_api_routes",
    "require_session",
]
