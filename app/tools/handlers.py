"""Sales-order tool handlers and the name-based dispatcher.

Handlers are the only code that reports draft mutations to the planner:
every status string is derived from a completed store write or a live
system-of-record lookup.
"""
import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from langsmith import traceable
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.actions.order_service import SalesOrderSubmissionService
from app.audit.repository import ToolCallAuditRepository
from app.config import settings
from app.drafts.store import DraftConflictError, DraftStore
from app.drafts.views import context_summary, readiness, summary
from app.erp.client import ERPClient, ERPErrorKind, ERPResult
from app.guardrails.validator import ToolArgumentError, ToolArgumentValidator
from app.models.domain import (
    CatalogItem,
    DraftPhase,
    LineItem,
    PartySnapshot,
    ToolCallRecord,
    ToolResult,
    WorkflowCategory,
)
from app.tools.dates import parse_shipping_date, to_display, to_iso
from app.tools.definitions import (
    AddItemArgs,
    NoArgs,
    RemoveItemArgs,
    SearchItemArgs,
    SearchPartyArgs,
    SetAddressArgs,
    SetNotesArgs,
    SetPartyArgs,
    SetShippingDateArgs,
    ToolName,
    allowed_tools,
)

logger = logging.getLogger(__name__)

_QUOTES = re.compile(r"[\"'“”‘’]")
_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def normalize_code(code: str) -> str:
    """Strip quotes and collapse whitespace in a planner-supplied code."""
    return re.sub(r"\s+", " ", _QUOTES.sub("", code or "")).strip()


def looks_like_catalog_id(value: str) -> bool:
    return bool(_UUID.match(value))


def _money(value: float) -> str:
    return f"€{value:.2f}"


def _qty(value: float) -> str:
    return f"{value:g}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderToolHandlers:
    """Handlers for the sales-order tools, one method per tool."""

    def __init__(
        self,
        draft_store: DraftStore,
        erp_client: ERPClient,
        submission_service: Optional[SalesOrderSubmissionService] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize tool handlers.

        Args:
            draft_store: Conversation draft store
            erp_client: System-of-record client
            submission_service: Commit step for submit, built from the
                store and client when omitted
            clock: Source of the current time (shipping date reference)
        """
        self.draft_store = draft_store
        self.erp_client = erp_client
        self.submission_service = submission_service or SalesOrderSubmissionService(
            draft_store, erp_client, clock=clock
        )
        self.clock = clock

    async def search_party(self, conversation_id: str, args: SearchPartyArgs) -> ToolResult:
        result = await self.erp_client.search_parties(args.query, limit=settings.party_search_limit)
        if not result.success:
            return ToolResult(success=False, content=result.technical_error("party search failed"))

        parties = [p for p in result.data if isinstance(p, dict) and p.get("id")]
        if not parties:
            return ToolResult(
                success=True,
                content=f'No party found for "{args.query}". Try a shorter or different name.',
            )

        shown = parties[: settings.party_search_limit]
        lines = [f"Found {len(shown)} parties:"]
        for i, party in enumerate(shown, start=1):
            addresses = party.get("addresses") or []
            first = addresses[0] if addresses and isinstance(addresses[0], dict) else {}
            location = first.get("country") or first.get("address") or ""
            lines.append(f"{i}. {party.get('name', '')}{f' - {location}' if location else ''}")
            lines.append(f"   ID: {party['id']}")
        return ToolResult(success=True, content="\n".join(lines))

    async def search_item(self, conversation_id: str, args: SearchItemArgs) -> ToolResult:
        """
        Catalog search with a fallback chain.

        Tries the query as given, then with dashes and underscores turned
        into spaces, then only its first word (when at least 3 characters).
        """
        query = args.query.strip()
        limit = settings.item_search_limit
        used_term = query

        result = await self.erp_client.search_items(query, limit=limit)
        if result.success and not result.data:
            normalized = re.sub(r"\s+", " ", re.sub(r"[-_]", " ", query)).strip()
            if normalized and normalized != query:
                result = await self.erp_client.search_items(normalized, limit=limit)
                if result.success and result.data:
                    used_term = normalized

        if result.success and not result.data:
            first_word = re.split(r"[\s\-_]+", query)[0]
            if len(first_word) >= 3 and first_word != query:
                result = await self.erp_client.search_items(first_word, limit=limit)
                if result.success and result.data:
                    used_term = first_word

        if not result.success:
            return ToolResult(success=False, content=result.technical_error("item search failed"))

        items = [CatalogItem.from_erp(r) for r in result.data if isinstance(r, dict) and r.get("id")][:limit]
        if not items:
            return ToolResult(
                success=True,
                content=(
                    f'No product found for "{query}".\n\nSuggestions:\n'
                    "- Try a more generic term (e.g. only the product name)\n"
                    "- Check the spelling\n"
                    "- Use the product code if known"
                ),
            )

        if used_term != query:
            header = (
                f'No exact result for "{query}", but found {len(items)} similar products '
                f'searching "{used_term}":'
            )
        else:
            header = f"Found {len(items)} products:"
        lines = [header, ""]
        for i, item in enumerate(items, start=1):
            lines.append(
                f'{i}. [ID: {item.id}] - CODE: "{item.code}" - NAME: {item.name} - '
                f"PRICE: {item.currency} {item.unit_price:g}/{item.uom}"
            )
        lines.append("")
        lines.append(f'To add one: call add_item with the CODE (e.g. "{items[0].code}") and the quantity.')
        return ToolResult(success=True, content="\n".join(lines))

    async def set_party(self, conversation_id: str, args: SetPartyArgs) -> ToolResult:
        party_id = args.party_id.strip()
        result = await self.erp_client.get_party(party_id)
        if not result.success:
            if result.error_kind == ERPErrorKind.NOT_FOUND:
                return ToolResult(
                    success=False,
                    content=f"Party {party_id} not found. Use search_party to get a valid ID.",
                )
            return ToolResult(success=False, content=result.technical_error(f"could not load party {party_id}"))

        party = PartySnapshot.from_erp(result.data)
        await self.draft_store.set_party(conversation_id, party)

        lines = [f'Party "{party.name}" set (ID: {party.id}).', ""]
        if not party.addresses:
            lines.append("No address on file for this party. Ask the user for the shipping address.")
        elif len(party.addresses) == 1:
            only = party.addresses[0]
            lines.append("Available address:")
            lines.append(f"1. {only.address} - {only.country}")
            lines.append("")
            lines.append("Ask the user to confirm this address, then call set_address.")
        else:
            lines.append("Available addresses:")
            for i, address in enumerate(party.addresses, start=1):
                lines.append(f"{i}. {address.address} - {address.country}")
            lines.append("")
            lines.append(
                'ASK THE USER: "Which address should be used for shipping?" '
                "then call set_address. Do not pick one yourself."
            )
        return ToolResult(success=True, content="\n".join(lines))

    async def set_address(self, conversation_id: str, args: SetAddressArgs) -> ToolResult:
        address = args.address.strip()
        await self.draft_store.set_shipping_address(conversation_id, address)
        return ToolResult(success=True, content=f'SAVED: shipping address = "{address}"')

    async def set_shipping_date(self, conversation_id: str, args: SetShippingDateArgs) -> ToolResult:
        when = parse_shipping_date(args.date, self.clock())
        iso = to_iso(when)
        await self.draft_store.set_shipping_time(conversation_id, iso)
        logger.info(f"TOOL_DISPATCH: Shipping date '{args.date}' -> {iso}")
        return ToolResult(success=True, content=f'SAVED: shipping date = "{to_display(when)}" ({iso})')

    async def set_notes(self, conversation_id: str, args: SetNotesArgs) -> ToolResult:
        notes = args.notes.strip()
        await self.draft_store.set_notes(conversation_id, notes)
        if not notes:
            return ToolResult(success=True, content="SAVED: order notes cleared")
        return ToolResult(success=True, content=f'SAVED: order notes = "{notes}"')

    async def add_item(self, conversation_id: str, args: AddItemArgs) -> ToolResult:
        """
        Resolve a code against the catalog and upsert it into the cart.

        Catalog IDs are fetched directly; anything else is searched and the
        case-insensitive code match (or the first hit) is used.
        """
        code = normalize_code(args.code)
        if not code:
            return ToolResult(success=False, content="Invalid product code: it is empty after removing quotes and spaces.")

        by_id = looks_like_catalog_id(code)
        if by_id:
            result = await self.erp_client.get_item(code)
            if result.success:
                result = ERPResult.ok([result.data])
            elif result.error_kind == ERPErrorKind.NOT_FOUND:
                result = ERPResult.ok([])
        else:
            result = await self.erp_client.search_items(code, limit=settings.add_item_search_limit)

        if not result.success:
            return ToolResult(success=False, content=result.technical_error(f'could not look up item "{code}"'))

        records = [r for r in result.data if isinstance(r, dict) and r.get("id")]
        if not records:
            return ToolResult(
                success=False,
                content=(
                    f'Item "{code}" not found in the catalog. Verify the code or use '
                    "search_item to find it."
                ),
            )

        wanted = code.lower()
        record = next(
            (
                r for r in records
                if str(r.get("internal_id") or "").lower() == wanted or str(r["id"]) == code
            ),
            None,
        )
        if record is None:
            record = records[0]
            logger.info(f"TOOL_DISPATCH: No exact match for '{code}', using first result {record.get('internal_id')}")

        item = CatalogItem.from_erp(record)
        outcome = await self.draft_store.upsert_line_item(
            conversation_id, LineItem.from_catalog(item, args.quantity)
        )

        line = outcome.line
        if outcome.inserted:
            text = (
                f"Item added: {line.code} - {line.name} x {_qty(line.quantity)} {line.uom} "
                f"@ {_money(line.unit_price)}"
            )
        else:
            text = (
                f"Quantity updated: {line.code} from {_qty(outcome.previous_quantity)} to "
                f"{_qty(line.quantity)} {line.uom} (overwritten, not summed)"
            )
        return ToolResult(success=True, content=f"{text}\n\nUse show_summary to review the order.")

    async def remove_item(self, conversation_id: str, args: RemoveItemArgs) -> ToolResult:
        code = normalize_code(args.code)
        removed = await self.draft_store.remove_line_item(conversation_id, code)
        if removed is None:
            return ToolResult(success=False, content=f'Item "{code}" not found in the cart. Verify the code.')
        return ToolResult(
            success=True,
            content=(
                f"REMOVED FROM CART: {removed.code} - {removed.name} "
                f"({_qty(removed.quantity)} {removed.uom})"
            ),
        )

    async def show_summary(self, conversation_id: str, args: NoArgs) -> ToolResult:
        """Order summary; a complete draft moves to the confirmation step."""
        draft = await self.draft_store.get_or_create(conversation_id)
        if readiness(draft).ready and draft.phase != DraftPhase.CONFIRM:
            draft = await self.draft_store.set_phase(conversation_id, DraftPhase.CONFIRM)
        return ToolResult(success=True, content=summary(draft))

    async def get_context(self, conversation_id: str, args: NoArgs) -> ToolResult:
        draft = await self.draft_store.get_or_create(conversation_id)
        return ToolResult(success=True, content=context_summary(draft))

    async def abort(self, conversation_id: str, args: NoArgs) -> ToolResult:
        await self.draft_store.clear(conversation_id)
        return ToolResult(success=True, content="Session reset. The draft was discarded, a new order can be started.")

    async def submit(self, conversation_id: str, args: NoArgs) -> ToolResult:
        outcome = await self.submission_service.submit(conversation_id)
        if outcome["success"]:
            return ToolResult(success=True, content=outcome["message"])
        return ToolResult(success=False, content=outcome["error"])


Handler = Callable[[str, BaseModel], Awaitable[ToolResult]]


class ToolDispatcher:
    """
    Route planner tool requests to handlers by name.

    Unknown names, tools not offered to the conversation's workflow and
    malformed arguments are answered with explicit status strings. Every
    call, rejected or not, is written to the audit table.
    """

    def __init__(
        self,
        handlers: OrderToolHandlers,
        session_factory: async_sessionmaker[AsyncSession],
        validator: Optional[ToolArgumentValidator] = None,
    ):
        self.handlers = handlers
        self.session_factory = session_factory
        self.validator = validator or ToolArgumentValidator()
        self._routes: Dict[ToolName, Handler] = {
            ToolName.SEARCH_PARTY: handlers.search_party,
            ToolName.SEARCH_ITEM: handlers.search_item,
            ToolName.SET_PARTY: handlers.set_party,
            ToolName.SET_ADDRESS: handlers.set_address,
            ToolName.SET_SHIPPING_DATE: handlers.set_shipping_date,
            ToolName.SET_NOTES: handlers.set_notes,
            ToolName.ADD_ITEM: handlers.add_item,
            ToolName.REMOVE_ITEM: handlers.remove_item,
            ToolName.SHOW_SUMMARY: handlers.show_summary,
            ToolName.GET_CONTEXT: handlers.get_context,
            ToolName.ABORT: handlers.abort,
            ToolName.SUBMIT: handlers.submit,
        }
        unrouted = set(ToolName) - set(self._routes)
        if unrouted:
            raise RuntimeError(f"No handler for tools: {sorted(t.value for t in unrouted)}")

    @traceable(name="dispatch_tool")
    async def dispatch(
        self,
        conversation_id: str,
        category: WorkflowCategory,
        name: str,
        raw_arguments: Optional[str],
    ) -> ToolResult:
        """
        Execute one tool call.

        Args:
            conversation_id: Conversation the call belongs to
            category: Workflow category of the conversation
            name: Tool name as requested by the planner
            raw_arguments: JSON argument string as requested by the planner

        Returns:
            ToolResult with the planner-facing status string

        Raises:
            SQLAlchemyError: Storage failures abort the turn
        """
        started = time.monotonic()
        logger.info(f"TOOL_DISPATCH: {conversation_id} -> {name}({raw_arguments})")

        result = await self._execute(conversation_id, category, name, raw_arguments)

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"TOOL_DISPATCH: {name} finished in {duration_ms}ms success={result.success}"
        )
        await self._audit(conversation_id, name, raw_arguments, result, duration_ms)
        return result

    async def _execute(
        self,
        conversation_id: str,
        category: WorkflowCategory,
        name: str,
        raw_arguments: Optional[str],
    ) -> ToolResult:
        tool, rejection = self._resolve(name, category)
        if rejection is not None:
            logger.warning(f"TOOL_DISPATCH: Rejected tool '{name}' for {conversation_id}")
            return rejection

        try:
            args = self.validator.validate(tool, raw_arguments)
        except ToolArgumentError as e:
            return ToolResult(success=False, content=f"Invalid arguments for {tool.value}: {e}")

        try:
            return await self._routes[tool](conversation_id, args)
        except SQLAlchemyError:
            logger.error(f"TOOL_DISPATCH: Storage failure in {tool.value}", exc_info=True)
            raise
        except DraftConflictError as e:
            logger.warning(f"TOOL_DISPATCH: {e}")
            return ToolResult(
                success=False,
                content=f"Technical error: the order was modified concurrently, {tool.value} was not applied. Retry.",
            )
        except Exception as e:
            logger.error(f"TOOL_DISPATCH: Unexpected error in {tool.value}: {e}", exc_info=True)
            return ToolResult(success=False, content=f"Technical error: {tool.value} failed unexpectedly ({e}).")

    def _resolve(self, name: str, category: WorkflowCategory) -> Tuple[Optional[ToolName], Optional[ToolResult]]:
        try:
            tool = ToolName(name)
        except ValueError:
            known = ", ".join(t.value for t in allowed_tools(category)) or "none"
            return None, ToolResult(
                success=False,
                content=f"Unknown tool '{name}'. Available tools: {known}.",
            )
        if tool not in allowed_tools(category):
            return None, ToolResult(
                success=False,
                content=f"Tool '{name}' is not available in the {category.value} workflow.",
            )
        return tool, None

    async def _audit(
        self,
        conversation_id: str,
        name: str,
        raw_arguments: Optional[str],
        result: ToolResult,
        duration_ms: int,
    ) -> None:
        async with self.session_factory() as session:
            await ToolCallAuditRepository(session).record(
                ToolCallRecord(
                    conversation_id=conversation_id,
                    tool_name=name,
                    arguments=self._arguments_for_audit(raw_arguments),
                    success=result.success,
                    result=result.content,
                    duration_ms=duration_ms,
                )
            )

    @staticmethod
    def _arguments_for_audit(raw_arguments: Optional[str]) -> Dict[str, Any]:
        if not raw_arguments:
            return {}
        try:
            parsed = json.loads(raw_arguments)
        except json.JSONDecodeError:
            return {"raw": raw_arguments}
        return parsed if isinstance(parsed, dict) else {"raw": raw_arguments}
