"""
Random credential generators: pure, side-effect-free functions.

All generators draw from the ``secrets`` module.
"""

from __future__ import annotations

import secrets
import string

_UPPERCASE = string.ascii_uppercase
_LOWERCASE = string.ascii_lowercase
_DIGITS = string.digits
_TEMPORARY_PASSWORD_ALPHABET = _UPPERCASE + _LOWERCASE + _DIGITS

_system_random = secrets.SystemRandom()


def generate_temporary_password(length: int = 12) -> str:
    """Generate a temporary password with at least one upper, lower and digit.

    One character is drawn from each required class, the remaining
    ``length - 3`` uniformly from the combined alphabet, and the result is
    shuffled so the guaranteed characters do not sit at fixed positions.

    Args:
        length: Total number of characters (default 12, minimum 3).

    Returns:
        Alphanumeric password string.
    """
    if length < 3:
        raise ValueError("temporary password length must be at least 3")

    chars = [
        secrets.choice(_UPPERCASE),
        secrets.choice(_LOWERCASE),
        secrets.choice(_DIGITS),
    ]
    chars.extend(
        secrets.choice(_TEMPORARY_PASSWORD_ALPHABET) for _ in range(length - 3)
    )
    _system_random.shuffle(chars)
    return "".join(chars)


def generate_reset_token(num_bytes: int = 32) -> str:
    """Generate a hex-encoded password reset token (64 chars by default)."""
    return secrets.token_hex(num_bytes)


def generate_token_id() -> str:
    """Generate a unique JWT ID (``jti``) so tokens issued together still differ."""
    return secrets.token_hex(16)
