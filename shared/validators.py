"""
Input validators: framework-agnostic, pure functions.
"""

from __future__ import annotations

import re
from typing import List, Tuple

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")

_SPECIAL_CHARS = r'!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>\/?~`'


def validate_phone(phone: str) -> bool:
    """Return True for an optional leading ``+`` followed by up to 16 digits."""
    return bool(PHONE_PATTERN.match(phone))


def validate_password(password: str) -> Tuple[bool, List[str]]:
    """
    Validate a user-chosen password.

    Temporary passwords are generated, not chosen, and never pass through
    here.

    Returns:
        Tuple[bool, List[str]]: (is_valid, missing_requirements)
    """
    if not password:
        return False, ["Password is required"]

    missing = []

    if len(password) < 8:
        missing.append("At least 8 characters")

    if len(password) > 128:
        missing.append("Maximum 128 characters")

    if not re.search(r"[A-Z]", password):
        missing.append("At least one uppercase letter")

    if not re.search(r"[a-z]", password):
        missing.append("At least one lowercase letter")

    if not re.search(r"[0-9]", password):
        missing.append("At least one number")

    if not re.search(f"[{_SPECIAL_CHARS}]", password):
        missing.append("At least one special character")

    # Only allow safe characters
    if not re.match(f"^[a-zA-Z0-9{_SPECIAL_CHARS}\\s]+$", password):
        missing.append("Contains invalid characters")

    return len(missing) == 0, missing


def get_password_requirements() -> List[str]:
    """Get list of all password requirements."""
    return [
        "At least 8 characters",
        "Maximum 128 characters",
        "At least one uppercase letter",
        "At least one lowercase letter",
        "At least one number",
        "At least one special character",
        "Only safe characters allowed",
    ]
