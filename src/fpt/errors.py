"""Error taxonomy shared by the core and the HTTP layer."""

from __future__ import annotations


class FptError(Exception):
    """Base error carrying the HTTP status the request layer should use."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class ValidationError(FptError):
    """Malformed or out-of-range input."""

    status_code = 400
    code = "invalid_argument"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class NotFound(FptError):
    status_code = 404
    code = "not_found"


class WriteDisabled(FptError):
    status_code = 403
    code = "write_disabled"


class InvalidToken(FptError):
    status_code = 401
    code = "invalid_write_token"


class StoreUnavailable(FptError):
    """Transient failure talking to the backing store. Never retried here."""

    status_code = 503
    code = "store_unavailable"
