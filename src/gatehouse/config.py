# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from gatehouse.auth.session import DEFAULT_MAX_AGE_SECONDS
from gatehouse.infra.mongo import build_atlas_uri

DEFAULT_MONGODB_URI = "mongodb://localhost:27017"
DEFAULT_PORT = 3030

_TRUTHY = {"1", "true", "yes", "y"}


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    secret_key: str
    mongodb_uri: str = DEFAULT_MONGODB_URI
    database: str = "gatehouse"
    session_collection: str = "sessions"
    session_max_age: int = DEFAULT_MAX_AGE_SECONDS
    cookie_name: str = "gatehouse_session"
    cookie_secure: bool = False
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    reload: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        secret = env.get("SECRET_KEY") or env.get("GATEHOUSE_SECRET_KEY")
        if not secret:
            raise RuntimeError("Missing SECRET_KEY (or GATEHOUSE_SECRET_KEY) in environment")

        uri = env.get("GATEHOUSE_MONGODB_URI") or ""
        if not uri and env.get("ATLAS_HOST"):
            uri = build_atlas_uri(
                user=env.get("ATLAS_DB_USER", ""),
                password=env.get("ATLAS_DB_PASSWORD", ""),
                host=env["ATLAS_HOST"],
                database=env.get("ATLAS_DATABASE", ""),
            )

        return cls(
            secret_key=secret,
            mongodb_uri=uri or DEFAULT_MONGODB_URI,
            database=env.get("GATEHOUSE_DATABASE") or env.get("ATLAS_DATABASE") or "gatehouse",
            session_collection=env.get("GATEHOUSE_SESSION_COLLECTION", "sessions"),
            session_max_age=int(env.get("GATEHOUSE_SESSION_MAX_AGE", str(DEFAULT_MAX_AGE_SECONDS))),
            cookie_name=env.get("GATEHOUSE_COOKIE_NAME", "gatehouse_session"),
            cookie_secure=_flag(env.get("GATEHOUSE_COOKIE_SECURE")),
            host=env.get("GATEHOUSE_HOST", "0.0.0.0"),
            port=int(env.get("GATEHOUSE_PORT") or env.get("PORT") or DEFAULT_PORT),
            reload=_flag(env.get("GATEHOUSE_RELOAD")),
            log_level=env.get("GATEHOUSE_LOG_LEVEL", "INFO").upper(),
        )
