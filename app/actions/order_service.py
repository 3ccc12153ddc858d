"""Sales order submission: hydrate, compute, submit, clear."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from langsmith import traceable

from app.config import settings
from app.drafts.store import DraftStore
from app.drafts.views import payload_projection
from app.erp.client import ERPClient
from app.models.domain import (
    CatalogItem,
    CustomerAttr,
    OrderLinePayload,
    OrderLinePrices,
    PartySnapshot,
    SalesOrderPayload,
)
from app.tools.dates import to_iso

logger = logging.getLogger(__name__)

DEFAULT_SHIPPING_DAYS = 14


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SalesOrderSubmissionService:
    """Commit a conversation's draft as a draft-status sales order."""

    def __init__(
        self,
        draft_store: DraftStore,
        erp_client: ERPClient,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize submission service.

        Args:
            draft_store: Store holding the conversation's draft
            erp_client: Client for the system of record
            clock: Source of the current time
        """
        self.draft_store = draft_store
        self.erp_client = erp_client
        self.clock = clock

    @traceable(name="submit_sales_order")
    async def submit(self, conversation_id: str) -> Dict[str, Any]:
        """
        Submit the draft of a conversation.

        Preconditions are checked against the stored draft. Party and items
        are re-fetched before the payload is built; only the stored
        quantities are used verbatim. The draft is cleared only after the
        system of record confirmed the order.

        Args:
            conversation_id: Conversation ID

        Returns:
            Execution status dictionary with "success" and "message" or "error"
        """
        draft = await self.draft_store.get_or_create(conversation_id)

        missing: List[str] = []
        guidance: List[str] = []
        if draft.party is None:
            missing.append("party")
            guidance.append("Use search_party and set_party before confirming.")
        if not draft.line_items:
            missing.append("items")
            guidance.append("The cart is empty, add at least one product with add_item.")
        if missing:
            logger.info(f"SUBMIT: {conversation_id} not submittable, missing {', '.join(missing)}")
            return {
                "success": False,
                "error": f"NOT SUBMITTABLE: missing {' and '.join(missing)}. {' '.join(guidance)}",
                "missing": missing,
            }

        projection = payload_projection(draft)

        party_result = await self.erp_client.get_party(draft.party.id)
        if not party_result.success:
            logger.error(f"SUBMIT: Party hydration failed for {conversation_id}: {party_result.error}")
            return {
                "success": False,
                "error": party_result.technical_error(
                    f"could not verify party {draft.party.id}"
                ) + " The cart was NOT emptied.",
            }
        party = PartySnapshot.from_erp(party_result.data)

        lines: List[OrderLinePayload] = []
        for stored in projection["products"]:
            fresh = await self._hydrate_item(stored["code"])
            if isinstance(fresh, str):
                return {"success": False, "error": fresh}
            lines.append(
                OrderLinePayload(
                    id=fresh.id,
                    extra_id=fresh.code,
                    name=fresh.name,
                    quantity=stored["quantity"],
                    uom=fresh.uom,
                    prices=OrderLinePrices(
                        currency=fresh.currency,
                        unit=fresh.unit_price,
                        vat=fresh.vat,
                        base_price=fresh.unit_price,
                        discount_percent=0.0,
                    ),
                )
            )

        payload = self._build_payload(party, projection, lines)

        order_result = await self.erp_client.create_sales_order(payload.model_dump(mode="json"))
        if not order_result.success:
            logger.error(f"SUBMIT: Order creation failed for {conversation_id}: {order_result.error}")
            return {
                "success": False,
                "error": order_result.technical_error("order submission failed")
                + " The cart was NOT emptied, the user can retry.",
            }

        order_id = self._order_id(order_result.data)
        await self.draft_store.clear(conversation_id)
        logger.info(f"SUBMIT: Order {order_id} created for {conversation_id}, draft cleared")

        return {
            "success": True,
            "message": (
                f"ORDER CREATED in draft status. Order ID: {order_id}. "
                f"Total: €{payload.total:.2f} (VAT incl. €{payload.total_vat_incl:.2f}). "
                "It must be confirmed in the order-management system."
            ),
            "order_id": order_id,
            "total": payload.total,
            "total_vat_incl": payload.total_vat_incl,
        }

    async def _hydrate_item(self, code: str) -> Union[CatalogItem, str]:
        """Fresh catalog record for a stored code, or an error string."""
        result = await self.erp_client.search_items(code, limit=settings.hydration_search_limit)
        if not result.success:
            logger.error(f"SUBMIT: Item hydration failed for {code}: {result.error}")
            return result.technical_error(f'could not verify item "{code}"') + " The cart was NOT emptied."
        records = [r for r in result.data if isinstance(r, dict) and r.get("id")]
        if not records:
            return f'Item "{code}" was not found in the catalog. Remove it and retry.'
        wanted = code.lower()
        match = next(
            (r for r in records if str(r.get("internal_id") or "").lower() == wanted),
            records[0],
        )
        return CatalogItem.from_erp(match)

    def _build_payload(
        self,
        party: PartySnapshot,
        projection: Dict[str, Any],
        lines: List[OrderLinePayload],
    ) -> SalesOrderPayload:
        now = self.clock()
        total = sum(line.prices.unit * line.quantity for line in lines)
        total_vat_incl = sum(
            line.prices.unit * line.quantity * (1 + line.prices.vat / 100) for line in lines
        )
        shipping_address = projection["shipping_address"] or (
            f"{party.address} - {party.country}" if party.country else party.address
        )
        return SalesOrderPayload(
            customer_id=party.id,
            customer_attr=CustomerAttr(
                id=party.id,
                name=party.name,
                address=party.address,
                country=party.country,
                vat=party.tax_id if party.tax_id != "n/a" else "",
            ),
            default_currency=party.currency,
            expected_shipping_time=(
                projection["expected_shipping_time"]
                or to_iso(now + timedelta(days=DEFAULT_SHIPPING_DAYS))
            ),
            shipping_address=shipping_address,
            products=lines,
            status="draft",
            notes=projection["notes"],
            version=1,
            total=round(total, 2),
            total_vat_incl=round(total_vat_incl, 2),
            priority=3,
            time=to_iso(now),
        )

    @staticmethod
    def _order_id(data: Optional[Any]) -> str:
        if isinstance(data, dict):
            return str(data.get("internal_id") or data.get("id") or "n/a")
        return "n/a"
