"""Token gate for the document mutation endpoints."""

from __future__ import annotations

import hmac
import secrets
from typing import Optional

from fpt.errors import InvalidToken, WriteDisabled
from fpt.models import WriteCredential

WRITE_TOKEN_HEADER = "X-FPT-Write-Token"


def generate_write_token() -> str:
    return secrets.token_urlsafe(24)


def assert_write_allowed(credential: WriteCredential, provided_token: Optional[str]) -> None:
    """Raise unless writes are enabled and ``provided_token`` matches exactly."""
    if not credential.enabled or not credential.token:
        raise WriteDisabled("Write mode is disabled. Enable it with `fpt setup`.")

    if not provided_token or not hmac.compare_digest(
        provided_token.encode("utf-8"), credential.token.encode("utf-8")
    ):
        raise InvalidToken(f"Missing or invalid {WRITE_TOKEN_HEADER} header.")
