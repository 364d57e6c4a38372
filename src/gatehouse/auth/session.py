# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 60 * 60  # 1 hour
SESSION_SALT = "gatehouse.session.v1"


class SessionStoreError(RuntimeError):
    """The session collection could not be updated."""


def _utcnow() -> datetime:
    # pymongo hands back naive UTC datetimes
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _serializer(secret: str) -> URLSafeTimedSerializer:
    if not secret:
        raise RuntimeError("Missing SECRET_KEY (or GATEHOUSE_SECRET_KEY) in environment")
    return URLSafeTimedSerializer(secret_key=secret, salt=SESSION_SALT)


def sign_session_id(sid: str, secret: str) -> str:
    return _serializer(secret).dumps(sid)


def unsign_session_id(token: str, secret: str, *, max_age: int = DEFAULT_MAX_AGE_SECONDS) -> Optional[str]:
    if not token:
        return None
    try:
        sid = _serializer(secret).loads(token, max_age=max_age)
    except (BadSignature, BadTimeSignature):
        return None
    sid = str(sid or "").strip()
    return sid or None


@dataclass
class Session:
    """Server-side state of one browser. ``sid`` is empty until persisted."""

    sid: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def authenticated(self) -> bool:
        return bool(self.data.get("authenticated"))

    @property
    def username(self) -> str:
        return str(self.data.get("username") or "")

    @property
    def email(self) -> str:
        return str(self.data.get("email") or "")


class SessionStore:
    """Sessions kept in a MongoDB collection as ``{_id, session, expires}``."""

    def __init__(self, collection: Collection, *, max_age: int = DEFAULT_MAX_AGE_SECONDS):
        self.collection = collection
        self.max_age = int(max_age)

    def ensure_indexes(self) -> None:
        # MongoDB drops documents once ``expires`` is in the past.
        self.collection.create_index("expires", expireAfterSeconds=0)

    def create(self, data: Dict[str, Any]) -> Session:
        sid = secrets.token_urlsafe(24)
        doc = {
            "_id": sid,
            "session": dict(data),
            "expires": _utcnow() + timedelta(seconds=self.max_age),
        }
        self.collection.insert_one(doc)
        return Session(sid=sid, data=dict(data))

    def load(self, sid: str) -> Optional[Session]:
        if not sid:
            return None
        doc = self.collection.find_one({"_id": sid})
        if not doc:
            return None
        # The TTL monitor only runs once a minute.
        expires = doc.get("expires")
        if expires is not None and expires <= _utcnow():
            return None
        return Session(sid=sid, data=dict(doc.get("session") or {}))

    def destroy(self, sid: str) -> bool:
        """Delete a session. Returns whether a stored session was removed."""
        if not sid:
            return False
        try:
            res = self.collection.delete_one({"_id": sid})
        except PyMongoError as e:
            raise SessionStoreError(f"Could not destroy session: {e}") from e
        return res.deleted_count > 0
