"""Request-scoped credential propagation for system-of-record calls."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

_erp_credential: ContextVar[str | None] = ContextVar("erp_credential", default=None)


def get_request_credential() -> str | None:
    """Return the credential bound to the current request, if any."""
    return _erp_credential.get()


def set_request_credential(credential: str | None) -> Token[str | None]:
    """Bind the caller credential in current context and return reset token."""
    return _erp_credential.set(credential)


def reset_request_credential(token: Token[str | None]) -> None:
    """Reset the credential to prior context state."""
    _erp_credential.reset(token)


@contextmanager
def credential_scope(credential: str | None) -> Iterator[None]:
    """Bind a credential for the duration of a with-block."""
    token = set_request_credential(credential)
    try:
        yield
    finally:
        reset_request_credential(token)
