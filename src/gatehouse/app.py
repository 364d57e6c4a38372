# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import random
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from gatehouse.auth.passwords import DUMMY_HASH, hash_password, verify_password
from gatehouse.auth.session import Session, SessionStore, sign_session_id
from gatehouse.auth.users import USERS_COLLECTION, DuplicateUserError, UserRecord, UserStore
from gatehouse.auth.validation import CredentialsError, validate_login, validate_signup
from gatehouse.config import Settings
from gatehouse.infra.mongo import connect
from gatehouse.permissions import NotAuthenticated, cookie_settings, load_session_from_request, require_member

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

MEMBER_IMAGES = ("001.avif", "002.avif", "003.avif")

INVALID_CREDENTIALS = "Invalid email or password"

router = APIRouter()


def _render(request: Request, template_name: str, ctx: Optional[dict] = None, status_code: int = 200):
    """TemplateResponse wrapper injecting the current session."""
    base_ctx = {"session": getattr(request.state, "session", None) or Session()}
    merged = {**base_ctx, **(ctx or {})}
    return templates.TemplateResponse(request, template_name, merged, status_code=status_code)


def _retry(message: str, retry_url: str, status_code: int = 400) -> HTMLResponse:
    return HTMLResponse(
        f'{message} <br><button><a href="{retry_url}">Try Again</a></button>',
        status_code=status_code,
    )


async def _read_fields(request: Request) -> Dict[str, Any]:
    """Request body as a flat dict, from a form or a JSON object."""
    ctype = request.headers.get("content-type", "")
    if ctype.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


# ------------------ Routes ------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request):
    return _render(request, "index.html")


@router.get("/signUp", response_class=HTMLResponse)
def sign_up_get(request: Request):
    return _render(request, "signUp.html")


@router.post("/signUp", response_class=HTMLResponse)
async def sign_up_post(request: Request):
    payload = await _read_fields(request)
    try:
        form = validate_signup(payload)
    except CredentialsError as e:
        logger.info("Sign-up rejected: %s", e)
        return _retry(". <br>".join(e.messages), "/signUp")

    hashed = await run_in_threadpool(hash_password, form.password)
    record = UserRecord(username=form.username, password=hashed, email=form.email)
    try:
        await run_in_threadpool(request.app.state.users.create, record)
    except DuplicateUserError as e:
        logger.info("Sign-up rejected for %s: duplicate", form.username)
        return _retry(str(e), "/signUp")

    return HTMLResponse('User created successfully<br> <button><a href="/login">Log In</a></button>')


@router.get("/login", response_class=HTMLResponse)
def login_get(request: Request):
    return _render(request, "login.html")


@router.post("/login")
async def login_post(request: Request):
    settings: Settings = request.app.state.settings
    sessions: SessionStore = request.app.state.sessions

    payload = await _read_fields(request)
    try:
        form = validate_login(payload)
    except CredentialsError as e:
        return _retry(e.messages[0] if e.messages else INVALID_CREDENTIALS, "/login")

    user = await run_in_threadpool(request.app.state.users.find_one, email=form.email)
    hash_value = user.password if user else DUMMY_HASH
    ok = await run_in_threadpool(verify_password, hash_value, form.password) and user is not None
    if not ok:
        logger.info("Failed login for %s", form.email)
        return _retry(INVALID_CREDENTIALS, "/login", status_code=200)

    previous = request.state.session
    if previous.sid:
        await run_in_threadpool(sessions.destroy, previous.sid)
    sess = await run_in_threadpool(
        sessions.create,
        {"authenticated": True, "username": user.username, "email": user.email},
    )
    logger.info("User logged in: %s", user.username)

    resp = RedirectResponse(url="/loggedIn", status_code=303)
    resp.set_cookie(
        settings.cookie_name,
        sign_session_id(sess.sid, settings.secret_key),
        max_age=settings.session_max_age,
        **cookie_settings(settings),
    )
    return resp


@router.get("/loggedIn", response_class=HTMLResponse)
def logged_in(request: Request):
    return _render(request, "loggedIn.html", {"username": request.state.session.username})


@router.get("/members", response_class=HTMLResponse)
def members(request: Request, user: UserRecord = Depends(require_member)):
    image = random.choice(MEMBER_IMAGES)
    return _render(request, "members.html", {"username": user.username, "image": image})


@router.get("/logout")
async def logout(request: Request):
    settings: Settings = request.app.state.settings
    sess = request.state.session
    if await run_in_threadpool(request.app.state.sessions.destroy, sess.sid):
        logger.info("User logged out: %s", sess.username)
    resp = RedirectResponse(url="/", status_code=303)
    resp.delete_cookie(settings.cookie_name)
    return resp


# ------------------ Error handlers ------------------


async def _not_authenticated(request: Request, exc: NotAuthenticated):
    return JSONResponse({"error": str(exc)}, status_code=401)


async def _http_error(request: Request, exc: StarletteHTTPException):
    # Unknown paths and unsupported methods both get the 404 page.
    if exc.status_code in (404, 405):
        return _render(request, "404.html", status_code=404)
    return await http_exception_handler(request, exc)


async def _internal_error(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return PlainTextResponse("Internal Server Error", status_code=500)


# ------------------ Factory ------------------


def create_app(
    settings: Optional[Settings] = None,
    *,
    users: Optional[UserStore] = None,
    sessions: Optional[SessionStore] = None,
) -> FastAPI:
    """Build the application. Stores default to the configured MongoDB database."""
    settings = settings or Settings.from_env()
    if users is None or sessions is None:
        db = connect(settings.mongodb_uri, settings.database)
        users = users or UserStore(db[USERS_COLLECTION])
        sessions = sessions or SessionStore(db[settings.session_collection], max_age=settings.session_max_age)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(users.ensure_indexes)
        await run_in_threadpool(sessions.ensure_indexes)
        logger.info("Indexes ready on database %s", settings.database)
        yield

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.users = users
    app.state.sessions = sessions

    @app.middleware("http")
    async def _session_middleware(request: Request, call_next):
        request.state.session = await run_in_threadpool(load_session_from_request, request)
        return await call_next(request)

    app.add_exception_handler(NotAuthenticated, _not_authenticated)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(Exception, _internal_error)

    app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
    app.include_router(router)
    return app
