# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging

from fastapi import Request
from starlette.concurrency import run_in_threadpool

from gatehouse.auth.session import Session, unsign_session_id
from gatehouse.auth.users import UserRecord
from gatehouse.config import Settings

logger = logging.getLogger(__name__)

MEMBERS_ONLY_MESSAGE = "You must log in to view this page."


class NotAuthenticated(Exception):
    """The request's session does not resolve to an existing user."""


def load_session_from_request(request: Request) -> Session:
    """Resolve the session cookie; anything invalid yields an empty session."""
    settings: Settings = request.app.state.settings
    token = request.cookies.get(settings.cookie_name, "")
    sid = unsign_session_id(token, settings.secret_key, max_age=settings.session_max_age)
    if not sid:
        return Session()
    sess = request.app.state.sessions.load(sid)
    return sess or Session()


def current_session(request: Request) -> Session:
    sess = getattr(request.state, "session", None)
    if sess is not None:
        return sess
    return load_session_from_request(request)


async def require_member(request: Request) -> UserRecord:
    """Access gate: the session's username must still exist in the user store.

    The ``authenticated`` flag is not trusted on its own; the user is looked up
    again on every request so that deleted accounts lose access immediately.
    """
    sess = current_session(request)
    user = await run_in_threadpool(request.app.state.users.find_one, username=sess.username)
    if not user:
        logger.debug("Members-only request rejected (session user=%r)", sess.username)
        raise NotAuthenticated(MEMBERS_ONLY_MESSAGE)
    return user


def cookie_settings(settings: Settings) -> dict:
    return {"httponly": True, "samesite": "lax", "secure": settings.cookie_secure}
