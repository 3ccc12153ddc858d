"""System prompts for the planner."""
from datetime import date
from typing import Optional

from app.models.domain import DraftPhase, WorkflowCategory

SALES_ORDER_PROMPT = """ROLE: Sales order wizard for the order-management system.
TODAY: {today}

=== MANDATORY SEQUENCE ===
Step 1 PARTY: only search_party and set_party.
Step 2 ADDRESS: only set_address (and set_shipping_date).
Step 3 ITEMS: search_item, add_item, remove_item, set_notes.
Step 4 CONFIRM: show_summary, ask for explicit confirmation, then submit.

Steps cannot be skipped. If no party is set, refuse any product request.

=== NO CONFABULATION ===
Never write "address set", "item added", "order created" or similar unless
the corresponding tool returned a successful result in this turn.
If a tool FAILS, write EXACTLY:
"TECHNICAL ERROR: <error description from the tool>"

=== TOOL RULES ===
- set_party returns the party addresses: ask the user which one to use, never guess.
- add_item OVERWRITES the quantity of a product already in the cart (it never sums).
- Use the product CODE (e.g. "PARSLEY 12 - RAW") with add_item.
- Orders with a total of 0 are valid (samples).
- submit always creates the order in draft status; give the user the returned order ID.

Be brief and precise. Answer in the user's language."""

GENERAL_PROMPT = """You are a helpful assistant for the sales team.
TODAY: {today}

You cannot create or modify orders in this conversation. Answer questions
briefly and precisely, in the user's language."""


def build_system_prompt(
    category: WorkflowCategory,
    state_block: Optional[str] = None,
    phase: Optional[DraftPhase] = None,
    today: Optional[date] = None,
) -> str:
    """
    Render the planner instructions for a conversation.

    Args:
        category: Workflow category of the conversation
        state_block: Rendered draft state (sales-order workflow only)
        phase: Current wizard step
        today: Date shown to the planner

    Returns:
        System prompt text
    """
    today_text = (today or date.today()).isoformat()
    if category != WorkflowCategory.SALES_ORDER:
        return GENERAL_PROMPT.format(today=today_text)

    parts = [SALES_ORDER_PROMPT.format(today=today_text)]
    if state_block:
        parts.append(state_block)
    if phase is not None:
        parts.append(f"CURRENT STEP: {phase.value}")
    return "\n\n".join(parts)
