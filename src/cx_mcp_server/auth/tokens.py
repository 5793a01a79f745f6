"""Opaque session token generation.

Tokens look like ``sess_<epoch-millis>_<rand><rand>``.  The random parts use
a lowercase base-36 alphabet so a token never needs escaping and always
splits cleanly on ``_`` into three parts (see ``redact_token``).
"""

from __future__ import annotations

import secrets
import string
import time

TOKEN_PREFIX = "sess"

_ALPHABET = string.digits + string.ascii_lowercase
_RANDOM_PART_LENGTH = 13


def _random_part() -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(_RANDOM_PART_LENGTH))


def generate_session_token() -> str:
    timestamp = str(int(time.time() * 1000))
    return f"{TOKEN_PREFIX}_{timestamp}_{_random_part()}{_random_part()}"


def redact_token(token: str) -> str:
    """Return a display-safe form of *token*.

    ``sess_1700000000000_abcdef...`` becomes ``sess_1700000000000_abc...``;
    anything without three ``_``-separated parts is cut to 8 characters.
    """
    parts = token.split("_")
    if len(parts) >= 3:
        return f"{parts[0]}_{parts[1]}_{parts[2][:3]}..."
    return token[:8] + "..."
