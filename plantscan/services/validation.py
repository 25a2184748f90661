"""Signup form validators shared by the API and the frontend contract."""
from __future__ import annotations

import re
from typing import NamedTuple

from pydantic import BaseModel

_NAME_RE = re.compile(r"[a-zA-Z\s\-']+")
_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"[0-9]")
_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 8
MIN_CLASS_COUNT = 2


class NameValidation(NamedTuple):
    valid: bool
    error: str


class PasswordRequirements(BaseModel):
    has_min_length: bool
    has_uppercase: bool
    has_lowercase: bool
    has_numbers: bool
    has_special_char: bool
    meets_all: bool


def validate_name(name: str) -> NameValidation:
    """Check a display name: letters, spaces, hyphens and apostrophes only."""
    if not name.strip():
        return NameValidation(False, "Name is required")
    if len(name) < MIN_NAME_LENGTH:
        return NameValidation(False, "Name must be at least 2 characters")
    if not _NAME_RE.fullmatch(name):
        return NameValidation(
            False, "Name can only contain letters, spaces, and hyphens"
        )
    return NameValidation(True, "")


def _count(pattern: re.Pattern[str], value: str) -> int:
    return len(pattern.findall(value))


def validate_password(password: str) -> PasswordRequirements:
    """Evaluate each password rule independently.

    Length must be strictly greater than 8, and each character class
    (uppercase, lowercase, digits, punctuation) must appear at least twice.
    """
    checks = {
        "has_min_length": len(password) > MIN_PASSWORD_LENGTH,
        "has_uppercase": _count(_UPPER_RE, password) >= MIN_CLASS_COUNT,
        "has_lowercase": _count(_LOWER_RE, password) >= MIN_CLASS_COUNT,
        "has_numbers": _count(_DIGIT_RE, password) >= MIN_CLASS_COUNT,
        "has_special_char": _count(_SPECIAL_RE, password) >= MIN_CLASS_COUNT,
    }
    return PasswordRequirements(**checks, meets_all=all(checks.values()))


__all__ = [
    "NameValidation",
    "PasswordRequirements",
    "validate_name",
    "validate_password",
]
