# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from urllib.parse import quote_plus

from pymongo import MongoClient
from pymongo.database import Database


def build_atlas_uri(*, user: str, password: str, host: str, database: str = "") -> str:
    """Assemble a ``mongodb+srv`` connection string for an Atlas cluster."""
    creds = ""
    if user:
        creds = quote_plus(user)
        if password:
            creds += ":" + quote_plus(password)
        creds += "@"
    return f"mongodb+srv://{creds}{host}/{database}?retryWrites=true&w=majority"


def connect(uri: str, database: str) -> Database:
    """Return a database handle. The client connects lazily on first use."""
    client: MongoClient = MongoClient(uri)
    return client[database]
