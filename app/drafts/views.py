"""Read-only projections of an OrderDraft."""
from typing import Any, Dict, List, Optional

from app.models.domain import DraftReadiness, OrderDraft


def _money(value: float) -> str:
    return f"€{value:.2f}"


def _qty(value: float) -> str:
    return f"{value:g}"


def readiness(draft: OrderDraft) -> DraftReadiness:
    """Completeness check: party, shipping address, shipping date and items."""
    missing: List[str] = []
    if draft.party is None:
        missing.append("party")
    if not draft.shipping_address:
        missing.append("shipping address")
    if not draft.expected_shipping_time:
        missing.append("shipping date")
    if not draft.line_items:
        missing.append("items")
    return DraftReadiness(ready=not missing, missing=missing)


def state_block(draft: OrderDraft) -> str:
    """Short machine-rendered status block injected into the planner instructions."""
    party = f"{draft.party.name} (ID: {draft.party.id})" if draft.party else "not set"
    lines = [
        "[ORDER STATE]",
        f"Phase: {draft.phase.value}",
        f"Party: {party}",
        f"Shipping address: {draft.shipping_address or 'not set'}",
        f"Shipping date: {draft.expected_shipping_time or 'not set'}",
        f"Items: {len(draft.line_items)}",
    ]
    for line in draft.line_items:
        lines.append(f"  - {line.code} x {_qty(line.quantity)} {line.uom}")
    if draft.notes:
        lines.append(f"Notes: {draft.notes}")
    lines.append(f"Missing: {', '.join(readiness(draft).missing) or 'nothing'}")
    lines.append("[/ORDER STATE]")
    return "\n".join(lines)


def summary(draft: OrderDraft) -> str:
    """Human-readable order summary with line totals and missing fields."""
    if draft.is_empty:
        return "Draft is empty. No party and no items selected."

    lines = ["ORDER SUMMARY:"]
    if draft.party:
        lines.append(f"- Party: {draft.party.name}")
        lines.append(f"- Party ID: {draft.party.id}")
    else:
        lines.append("- Party: not selected")
    if draft.shipping_address:
        lines.append(f"- Shipping address: {draft.shipping_address}")
    if draft.expected_shipping_time:
        lines.append(f"- Shipping date: {draft.expected_shipping_time}")
    if draft.notes:
        lines.append(f"- Notes: {draft.notes}")

    if not draft.line_items:
        lines.append("- Items: none")
    else:
        lines.append("- Items:")
        for line in draft.line_items:
            lines.append(
                f"  • {line.code} - {line.name} x {_qty(line.quantity)} {line.uom} "
                f"@ {_money(line.unit_price)} = {_money(line.line_total)}"
            )
        lines.append(f"- TOTAL: {_money(draft.total)}")

    check = readiness(draft)
    if check.ready:
        lines.append("")
        lines.append("All data is complete. Ask the user to confirm to create the order.")
    else:
        lines.append("")
        lines.append(f"Missing: {', '.join(check.missing)}")
    return "\n".join(lines)


def context_summary(draft: OrderDraft) -> str:
    """One-paragraph state description."""
    if draft.is_empty:
        return "CURRENT ORDER STATE: Empty. No party and no items selected."

    parts = ["CURRENT ORDER STATE:"]
    if draft.party:
        parts.append(f"Party: {draft.party.name} (ID: {draft.party.id}).")
    else:
        parts.append("No party.")
    if draft.line_items:
        parts.append(f"{len(draft.line_items)} item(s) in the cart. Total: {_money(draft.total)}.")
    else:
        parts.append("Cart empty.")
    if draft.shipping_address:
        parts.append(f"Shipping: {draft.shipping_address}.")
    if draft.expected_shipping_time:
        parts.append(f"Shipping date: {draft.expected_shipping_time}.")
    parts.append(f"Phase: {draft.phase.value}.")
    missing = readiness(draft).missing
    if missing:
        parts.append(f"Missing: {', '.join(missing)}.")
    return " ".join(parts)


def payload_projection(draft: OrderDraft) -> Optional[Dict[str, Any]]:
    """
    Payload-shaped view of the draft for the commit step.

    Returns None when there is no party or no line item. Prices in the
    projection are the cached draft values and must be re-fetched before
    anything is submitted.
    """
    if draft.party is None or not draft.line_items:
        return None
    return {
        "customer_id": draft.party.id,
        "customer_attr": {
            "id": draft.party.id,
            "name": draft.party.name,
            "address": draft.party.address,
            "country": draft.party.country,
            "vat": draft.party.tax_id,
        },
        "default_currency": draft.party.currency,
        "expected_shipping_time": draft.expected_shipping_time,
        "shipping_address": draft.shipping_address,
        "products": [
            {"code": line.code, "catalog_item_id": line.catalog_item_id, "quantity": line.quantity}
            for line in draft.line_items
        ],
        "notes": draft.notes or "",
    }
