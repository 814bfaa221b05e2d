"""HTML pages for the chatroom, driven by classic form posts and redirects."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, FastAPI, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from .api import (
    clear_session_cookie,
    current_session,
    get_board,
    issue_session_cookie,
    login_user,
    logout_user,
)
from .errors import ChatroomError, ForbiddenError, InvalidCredentialsError, NotFoundError, ValidationError
from .validators import MESSAGE_MAX_LENGTH

logger = logging.getLogger("chatroom.web")

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

_STATUS_MESSAGES = {
    "created": "Message sent successfully",
    "deleted": "Message deleted successfully",
}


def _template_environment() -> Jinja2Templates:
    return Jinja2Templates(directory=str(TEMPLATE_DIR))


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


def _chatroom_redirect(*, status_flag: Optional[str] = None, error: Optional[str] = None) -> RedirectResponse:
    if error:
        return _redirect(f"/chatroom?error={quote(error)}")
    if status_flag:
        return _redirect(f"/chatroom?status={status_flag}")
    return _redirect("/chatroom")


def register_page_routes(app: FastAPI, templates: Optional[Jinja2Templates] = None) -> None:
    templates = templates or _template_environment()
    router = APIRouter()

    def _render_landing(request: Request, *, mode: str) -> HTMLResponse:
        return templates.TemplateResponse(
            request,
            "index.html",
            {"mode": mode, "error": request.query_params.get("error")},
        )

    @router.get("/", response_class=HTMLResponse, name="home")
    async def home(request: Request):
        if current_session(request) is not None:
            return _redirect("/chatroom")
        return _render_landing(request, mode="login")

    @router.get("/register", response_class=HTMLResponse, name="register")
    async def register(request: Request):
        if current_session(request) is not None:
            return _redirect("/chatroom")
        return _render_landing(request, mode="register")

    @router.post("/login", name="login_submit")
    async def login_submit(request: Request, email: str = Form(""), password: str = Form("")):
        try:
            _, token = login_user(request, email, password)
        except (ValidationError, InvalidCredentialsError) as exc:
            return _redirect(f"/?error={quote(exc.message)}")

        response = _redirect("/chatroom")
        issue_session_cookie(request, response, token)
        return response

    @router.get("/logout", name="logout")
    async def logout(request: Request):
        logout_user(request)
        response = _redirect("/")
        clear_session_cookie(response)
        return response

    @router.get("/chatroom", response_class=HTMLResponse, name="chatroom")
    async def chatroom(request: Request):
        record = current_session(request)
        if record is None:
            return _redirect("/")

        listing = get_board(request).list_messages()
        error = request.query_params.get("error")
        flash = _STATUS_MESSAGES.get(request.query_params.get("status") or "")
        return templates.TemplateResponse(
            request,
            "chatroom.html",
            {
                "session": record,
                "messages": listing.messages,
                "last_update_at": listing.last_update_at,
                "flash": flash,
                "error": error,
                "max_length": MESSAGE_MAX_LENGTH,
            },
        )

    @router.post("/messages", name="post_message")
    async def post_message(request: Request, content: str = Form("")):
        record = current_session(request)
        if record is None:
            return _redirect("/")
        try:
            get_board(request).create(record.user_id, content)
        except ValidationError as exc:
            return _chatroom_redirect(error=exc.message)
        return _chatroom_redirect(status_flag="created")

    @router.get("/messages/{message_id}/delete", response_class=HTMLResponse, name="confirm_delete")
    async def confirm_delete(request: Request, message_id: str):
        record = current_session(request)
        if record is None:
            return _redirect("/")
        try:
            message = get_board(request).get_owned(record.user_id, message_id)
        except (ValidationError, NotFoundError, ForbiddenError):
            return _chatroom_redirect()
        return templates.TemplateResponse(request, "delete_confirm.html", {"message": message})

    @router.post("/messages/{message_id}/delete", name="delete_message")
    async def delete_message(request: Request, message_id: str):
        record = current_session(request)
        if record is None:
            return _redirect("/")
        try:
            get_board(request).delete(record.user_id, message_id)
        except ChatroomError as exc:
            logger.info("Rejected page delete of message %s: %s", message_id, exc.message)
            return _chatroom_redirect()
        return _chatroom_redirect(status_flag="deleted")

    app.include_router(router)


__all__ = ["register_page_routes"]
