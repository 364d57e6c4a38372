#!/usr/bin/env python3
from __future__ import annotations

from getpass import getpass

from dotenv import load_dotenv

from gatehouse.auth.passwords import hash_password
from gatehouse.auth.users import USERS_COLLECTION, DuplicateUserError, UserRecord, UserStore
from gatehouse.auth.validation import CredentialsError, validate_signup
from gatehouse.config import Settings
from gatehouse.infra.mongo import connect


def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    store = UserStore(connect(settings.mongodb_uri, settings.database)[USERS_COLLECTION])
    store.ensure_indexes()

    username = input("Username: ").strip()
    email = input("Email: ").strip()
    user_type = input("Type (optional): ").strip() or None

    pw1 = getpass("Password: ")
    pw2 = getpass("Repeat password: ")
    if pw1 != pw2:
        raise SystemExit("Passwords do not match")

    try:
        form = validate_signup({"username": username, "password": pw1, "email": email})
    except CredentialsError as e:
        raise SystemExit("\n".join(e.messages))

    record = UserRecord(
        username=form.username,
        password=hash_password(form.password),
        email=form.email,
        type=user_type,
    )
    try:
        store.create(record)
    except DuplicateUserError as e:
        raise SystemExit(str(e))
    print(f"OK -> {settings.database}.{USERS_COLLECTION}: {record.username}")


if __name__ == "__main__":
    main()
