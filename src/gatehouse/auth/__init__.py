# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Authentication helpers.

This package provides:
- Password hashing/verification (bcrypt)
- Registration/login input validation (pydantic)
- User store backed by the MongoDB ``users`` collection
- Server-side sessions in MongoDB, referenced by a signed cookie (itsdangerous)
"""
