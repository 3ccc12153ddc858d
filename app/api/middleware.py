"""ASGI middleware binding the caller's system-of-record credential."""
import logging
from typing import Optional
from starlette.types import ASGIApp, Receive, Scope, Send
from app.erp.credentials import reset_request_credential, set_request_credential

logger = logging.getLogger(__name__)


def extract_credential(scope: Scope) -> Optional[str]:
    """Bearer token from Authorization, else the X-ERP-Token header."""
    headers = {key.lower(): value for key, value in scope.get("headers") or []}
    authorization = headers.get(b"authorization", b"").decode("latin-1").strip()
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    explicit = headers.get(b"x-erp-token", b"").decode("latin-1").strip()
    return explicit or None


class CredentialContextMiddleware:
    """
    Bind the request credential for the whole call tree of an HTTP request.

    Pure ASGI so the binding lives in the same context as the endpoint and
    every task it starts.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        credential = extract_credential(scope)
        logger.debug(
            f"CREDENTIALS: {scope.get('method')} {scope.get('path')} "
            f"{'with request credential' if credential else 'without credential'}"
        )
        token = set_request_credential(credential)
        try:
            await self.app(scope, receive, send)
        finally:
            reset_request_credential(token)
