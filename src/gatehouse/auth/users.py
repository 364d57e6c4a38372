# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from pymongo import ASCENDING
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


class DuplicateUserError(ValueError):
    """Username or email already taken."""


@dataclass(frozen=True)
class UserRecord:
    username: str
    password: str  # bcrypt digest, never the plain password
    email: str
    type: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        doc = asdict(self)
        if doc["type"] is None:
            del doc["type"]
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserRecord":
        t = doc.get("type")
        return cls(
            username=str(doc.get("username") or ""),
            password=str(doc.get("password") or ""),
            email=str(doc.get("email") or ""),
            type=str(t) if t is not None else None,
        )


class UserStore:
    """The ``users`` collection: create-one and find-one-by-filter."""

    def __init__(self, collection: Collection):
        self.collection = collection

    def ensure_indexes(self) -> None:
        self.collection.create_index([("username", ASCENDING)], unique=True)
        self.collection.create_index([("email", ASCENDING)], unique=True)

    def create(self, record: UserRecord) -> UserRecord:
        try:
            self.collection.insert_one(record.to_document())
        except DuplicateKeyError as e:
            raise DuplicateUserError("Username or email is already registered") from e
        logger.info("User created: %s", record.username)
        return record

    def find_one(self, **criteria: str) -> Optional[UserRecord]:
        # Empty values never identify a user.
        if not criteria or any(not v for v in criteria.values()):
            return None
        doc = self.collection.find_one(criteria)
        if doc is None:
            return None
        return UserRecord.from_document(doc)
