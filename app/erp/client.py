"""HTTP client for the system of record (customers, products, sales orders).

Every call carries the credential bound to the current request (see
app.erp.credentials), falling back to the service-level default token.
Transport and HTTP problems are never raised: each call returns an
ERPResult the tool handlers turn into status strings.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx
from langsmith import traceable
from pydantic import BaseModel

from app.config import settings
from app.erp.credentials import get_request_credential

logger = logging.getLogger(__name__)


class ERPErrorKind(str, Enum):
    """Failure classes of a system-of-record call."""
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    AUTH = "AUTH"
    NOT_FOUND = "NOT_FOUND"
    HTTP = "HTTP"
    MALFORMED = "MALFORMED"


class ERPResult(BaseModel):
    """Outcome of one system-of-record call."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[ERPErrorKind] = None

    @classmethod
    def ok(cls, data: Any) -> "ERPResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ERPErrorKind, error: str) -> "ERPResult":
        return cls(success=False, error=error, error_kind=kind)

    @property
    def is_connection_error(self) -> bool:
        return self.error_kind in (ERPErrorKind.NETWORK, ERPErrorKind.TIMEOUT)

    @property
    def is_auth_error(self) -> bool:
        return self.error_kind == ERPErrorKind.AUTH

    def technical_error(self, context: str) -> str:
        """Labelled status string for a failed call."""
        if self.is_connection_error:
            return (
                f"Technical error (connection): {context}: the order-management system "
                f"could not be reached ({self.error}). Try again shortly."
            )
        if self.is_auth_error:
            return (
                f"Technical error (authorization): {context}: access was denied "
                f"({self.error}). Contact the administrator."
            )
        return f"Technical error: {context}: {self.error}"


class ERPClient:
    """Async client for the order-management REST API.

    Example usage:
        client = ERPClient()
        result = await client.search_parties("Rossi", limit=10)
        if result.success:
            for customer in result.data:
                ...
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        default_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API root, defaults to settings.erp_base_url
            default_token: Service-level credential used when no request
                credential is bound, defaults to settings.erp_api_token
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or settings.erp_base_url).rstrip("/")
        self.default_token = default_token if default_token is not None else settings.erp_api_token
        self.timeout = timeout if timeout is not None else settings.erp_timeout_seconds
        self._transport = transport

    def _resolve_token(self) -> Optional[str]:
        token = get_request_credential()
        if token:
            logger.debug("ERP_CLIENT: Using request-bound credential")
            return token
        if self.default_token:
            logger.debug("ERP_CLIENT: Using service default credential")
            return self.default_token
        return None

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> ERPResult:
        """Perform one authenticated request and classify its outcome.

        Args:
            method: HTTP method
            path: Path relative to the API root
            params: Query parameters
            json_body: JSON request body

        Returns:
            ERPResult with the decoded JSON body on success
        """
        token = self._resolve_token()
        if not token:
            logger.warning(f"ERP_CLIENT: No credential available for {method} {path}")
            return ERPResult.fail(ERPErrorKind.AUTH, "no credential available for the system of record")

        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

        logger.info(f"ERP_CLIENT: {method} {path} params={params}")
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    path,
                    params=params,
                    json=json_body,
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            logger.error(f"ERP_CLIENT: Timeout on {method} {path}: {e}")
            return ERPResult.fail(ERPErrorKind.TIMEOUT, f"timeout after {self.timeout}s")
        except httpx.TransportError as e:
            logger.error(f"ERP_CLIENT: Connection failure on {method} {path}: {e}")
            return ERPResult.fail(ERPErrorKind.NETWORK, f"connection failed: {e}")

        if response.status_code in (401, 403):
            logger.warning(f"ERP_CLIENT: {method} {path} rejected with {response.status_code}")
            return ERPResult.fail(
                ERPErrorKind.AUTH,
                f"{response.status_code} - {self._error_message(response)}",
            )
        if response.status_code == 404:
            return ERPResult.fail(
                ERPErrorKind.NOT_FOUND,
                f"404 - {self._error_message(response)}",
            )
        if response.status_code >= 400:
            logger.error(f"ERP_CLIENT: {method} {path} failed with {response.status_code}")
            return ERPResult.fail(
                ERPErrorKind.HTTP,
                f"{response.status_code} - {self._error_message(response)}",
            )

        if not response.content:
            return ERPResult.ok(None)
        try:
            data = response.json()
        except ValueError:
            logger.error(f"ERP_CLIENT: Non-JSON body from {method} {path}")
            return ERPResult.fail(ERPErrorKind.MALFORMED, "response body is not valid JSON")

        logger.info(f"ERP_CLIENT: {method} {path} -> {response.status_code}")
        return ERPResult.ok(data)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.reason_phrase or "request failed"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("detail") or body)
        return str(body)

    @staticmethod
    def _expect_list(result: ERPResult) -> ERPResult:
        if result.success and not isinstance(result.data, list):
            return ERPResult.fail(ERPErrorKind.MALFORMED, "expected a list of records")
        return result

    @staticmethod
    def _expect_record(result: ERPResult) -> ERPResult:
        if result.success and not (isinstance(result.data, dict) and result.data.get("id")):
            return ERPResult.fail(ERPErrorKind.MALFORMED, "expected a record with an id")
        return result

    @traceable(name="erp_search_parties")
    async def search_parties(self, query: str, limit: int) -> ERPResult:
        """Search customers by free text."""
        result = await self._request("GET", "/sales/customer", params={"search": query, "limit": limit})
        return self._expect_list(result)

    @traceable(name="erp_get_party")
    async def get_party(self, party_id: str) -> ERPResult:
        """Fetch a full customer record by id."""
        result = await self._request("GET", f"/sales/customer/{party_id}")
        return self._expect_record(result)

    @traceable(name="erp_search_items")
    async def search_items(self, query: str, limit: int) -> ERPResult:
        """Search catalog products by free text."""
        result = await self._request("GET", "/product/product", params={"search": query, "limit": limit})
        return self._expect_list(result)

    @traceable(name="erp_get_item")
    async def get_item(self, item_id: str) -> ERPResult:
        """Fetch a catalog product by id."""
        result = await self._request("GET", f"/product/product/{item_id}")
        return self._expect_record(result)

    @traceable(name="erp_create_sales_order")
    async def create_sales_order(self, payload: Dict[str, Any]) -> ERPResult:
        """Create a sales order in non-final (draft) status.

        Args:
            payload: Order body as produced by SalesOrderPayload.model_dump()

        Returns:
            ERPResult with the created order record
        """
        for line in payload.get("products") or []:
            if not line.get("extra_id") or not line.get("name") or not line.get("uom"):
                return ERPResult.fail(
                    ERPErrorKind.MALFORMED,
                    f"order line {line.get('id')} is missing code, name or unit of measure",
                )
        logger.info(
            f"ERP_CLIENT: Creating sales order for customer {payload.get('customer_id')} "
            f"with {len(payload.get('products') or [])} lines"
        )
        return await self._request("PUT", "/sales/order", json_body=payload)
