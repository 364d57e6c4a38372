# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Validation of the sign-up and login forms.

Each form is a pydantic model. A field runs all of its rules at once and
raises a single ``string_rules`` error listing every rule it broke, so one
message per broken rule can be reported. Rule codes and pydantic error types
are mapped to user-facing messages through one table per form.

Sign-up reports every broken rule of every field and rejects unknown keys;
login only reports the first message.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Callable, Dict, List, Mapping, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, ValidationError
from pydantic_core import PydanticCustomError

ALLOWED_TLDS = ("com", "net")
MIN_DOMAIN_SEGMENTS = 2

LOGIN_PASSWORD_RE = re.compile(r"^[a-zA-Z0-9]{3,30}$")

# Fallback key used when an error type has no dedicated entry.
ANY_RULE = "*"


class CredentialsError(ValueError):
    """Raised when a submitted form breaks one or more rules."""

    def __init__(self, messages: List[str]):
        self.messages = list(messages)
        super().__init__("; ".join(self.messages))


# ------------------ Rules ------------------


def _required(value: Any) -> Any:
    if value is None or value == "":
        raise PydanticCustomError("string_empty", "Value is empty")
    return value


def _alphanum(value: str) -> Optional[str]:
    if not (value.isascii() and value.isalnum()):
        return "string_alphanum"
    return None


def _length(lo: int, hi: int) -> Callable[[str], Optional[str]]:
    def _check(value: str) -> Optional[str]:
        if len(value) < lo:
            return "string_min"
        if len(value) > hi:
            return "string_max"
        return None

    return _check


def _every_rule(*rules: Callable[[str], Optional[str]]) -> Callable[[str], str]:
    """Run every rule and report all that fail in a single error."""

    def _check(value: str) -> str:
        failed = [code for code in (rule(value) for rule in rules) if code]
        if failed:
            raise PydanticCustomError("string_rules", "Value breaks {rules}", {"rules": failed})
        return value

    return _check


def _email(value: str) -> str:
    try:
        info = validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise PydanticCustomError("string_email", "Invalid email address")
    labels = info.ascii_domain.split(".")
    if len(labels) < MIN_DOMAIN_SEGMENTS or labels[-1].lower() not in ALLOWED_TLDS:
        raise PydanticCustomError("string_email", "Top level domain not allowed")
    # Stored and looked up exactly as typed.
    return value


def _login_password(value: str) -> str:
    if not LOGIN_PASSWORD_RE.match(value):
        raise PydanticCustomError("string_pattern", "Value does not match the password pattern")
    return value


Required = BeforeValidator(_required)

Username = Annotated[str, Required, AfterValidator(_every_rule(_alphanum, _length(3, 15)))]
SignUpPassword = Annotated[str, Required, AfterValidator(_every_rule(_length(6, 30)))]
Email = Annotated[str, Required, AfterValidator(_email)]
LoginPassword = Annotated[str, Required, AfterValidator(_login_password)]


# ------------------ Forms ------------------


class SignUpForm(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: Username
    password: SignUpPassword
    email: Email


class LoginForm(BaseModel):
    email: Email
    password: LoginPassword


SIGNUP_MESSAGES: Dict[str, Dict[str, str]] = {
    "username": {
        "string_alphanum": "Username must only contain alpha-numeric characters",
        "string_min": "Username must be between 3 to 15 characters long",
        "string_max": "Username must be between 3 to 15 characters long",
        "string_empty": "Username is a required field",
        "missing": "Username is a required field",
        ANY_RULE: "Username must only contain alpha-numeric characters",
    },
    "password": {
        "string_min": "Password must be between 6 to 30 characters long",
        "string_max": "Password must be between 6 to 30 characters long",
        "string_empty": "Password is a required field",
        "missing": "Password is a required field",
        ANY_RULE: "Password must be between 6 to 30 characters long",
    },
    "email": {
        "string_email": "Please provide a valid email address",
        "string_empty": "Email is a required field",
        "missing": "Email is a required field",
        ANY_RULE: "Please provide a valid email address",
    },
}

_LOGIN_FIELD_MESSAGES = {
    "string_empty": "One or more fields are empty",
    "missing": "One or more fields are empty",
    ANY_RULE: "Incorrect email or password format",
}

LOGIN_MESSAGES: Dict[str, Dict[str, str]] = {
    "email": dict(_LOGIN_FIELD_MESSAGES),
    "password": dict(_LOGIN_FIELD_MESSAGES),
}


def error_messages(exc: ValidationError, table: Mapping[str, Mapping[str, str]]) -> List[str]:
    """Translate pydantic errors into messages, keeping field and rule order."""
    out: List[str] = []
    for err in exc.errors():
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else ""
        etype = err.get("type", "")
        if etype == "extra_forbidden":
            out.append(f'"{field}" is not allowed')
            continue
        rules = table.get(field, {})
        codes = (err.get("ctx") or {}).get("rules") if etype == "string_rules" else None
        for code in codes or [etype]:
            msg = rules.get(code) or rules.get(ANY_RULE)
            if msg:
                out.append(msg)
    return out


def validate_signup(payload: Mapping[str, Any]) -> SignUpForm:
    try:
        return SignUpForm.model_validate(dict(payload))
    except ValidationError as e:
        raise CredentialsError(error_messages(e, SIGNUP_MESSAGES)) from e


def validate_login(payload: Mapping[str, Any]) -> LoginForm:
    data = {"email": payload.get("email"), "password": payload.get("password")}
    try:
        return LoginForm.model_validate(data)
    except ValidationError as e:
        raise CredentialsError(error_messages(e, LOGIN_MESSAGES)[:1]) from e
