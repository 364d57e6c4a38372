# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import secrets

import bcrypt

BCRYPT_ROUNDS = 10

# bcrypt only looks at the first 72 bytes of the password.
_MAX_PASSWORD_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_MAX_PASSWORD_BYTES]


def hash_password(plain: str) -> str:
    if not plain:
        raise ValueError("Empty password")
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(_encode(plain), salt).decode("utf-8")


def verify_password(hash_value: str, plain: str) -> bool:
    if not hash_value or not plain:
        return False
    try:
        return bcrypt.checkpw(_encode(plain), hash_value.encode("utf-8"))
    except ValueError:
        # Malformed digest
        return False


# Verified against when no account matches the login email.
DUMMY_HASH = hash_password(secrets.token_urlsafe(16))
