"""Tests for name-based tool dispatch, argument validation and auditing."""
import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.audit.repository import ToolCallAuditRepository
from app.drafts.store import DraftConflictError
from app.models.domain import DraftPhase, WorkflowCategory
from app.tools.handlers import OrderToolHandlers, ToolDispatcher

CID = "conv-dispatch"
SALES = WorkflowCategory.SALES_ORDER


@pytest.fixture
def dispatcher(draft_store, fake_erp, clock, session_factory):
    return ToolDispatcher(OrderToolHandlers(draft_store, fake_erp, clock=clock), session_factory)


async def _audit_rows(session_factory):
    async with session_factory() as session:
        return await ToolCallAuditRepository(session).list_for_conversation(CID)


async def test_valid_call_reaches_handler_and_is_audited(dispatcher, draft_store, session_factory):
    result = await dispatcher.dispatch(CID, SALES, "set_party", '{"party_id": "cust-001"}')

    assert result.success
    assert (await draft_store.get_or_create(CID)).party.id == "cust-001"

    rows = await _audit_rows(session_factory)
    assert len(rows) == 1
    assert rows[0].tool_name == "set_party"
    assert rows[0].arguments == {"party_id": "cust-001"}
    assert rows[0].success is True
    assert rows[0].result == result.content


async def test_unknown_tool_is_rejected(dispatcher, fake_erp, session_factory):
    result = await dispatcher.dispatch(CID, SALES, "delete_everything", "{}")

    assert not result.success
    assert result.content.startswith("Unknown tool 'delete_everything'. Available tools: search_party, ")
    assert fake_erp.total_calls == 0
    rows = await _audit_rows(session_factory)
    assert [(r.tool_name, r.success) for r in rows] == [("delete_everything", False)]


async def test_tools_outside_the_workflow_are_rejected(dispatcher, draft_store):
    result = await dispatcher.dispatch(
        CID, WorkflowCategory.GENERAL, "add_item", '{"code": "PARSLEY 12 - RAW", "quantity": 1}'
    )

    assert not result.success
    assert result.content == "Tool 'add_item' is not available in the GENERAL workflow."
    assert (await draft_store.get_or_create(CID)).line_items == []


async def test_unknown_tool_in_general_workflow_lists_no_tools(dispatcher):
    result = await dispatcher.dispatch(CID, WorkflowCategory.GENERAL, "nope", "{}")

    assert result.content == "Unknown tool 'nope'. Available tools: none."


async def test_malformed_json_arguments(dispatcher):
    result = await dispatcher.dispatch(CID, SALES, "search_party", "{query: acme")

    assert not result.success
    assert result.content.startswith("Invalid arguments for search_party: arguments are not valid JSON")


async def test_schema_violations_are_reported(dispatcher, draft_store):
    result = await dispatcher.dispatch(CID, SALES, "add_item", '{"code": "PARSLEY 12 - RAW", "quantity": 0}')

    assert not result.success
    assert result.content.startswith("Invalid arguments for add_item:")
    assert "quantity" in result.content
    assert (await draft_store.get_or_create(CID)).line_items == []


async def test_missing_required_argument(dispatcher):
    result = await dispatcher.dispatch(CID, SALES, "set_address", "{}")

    assert not result.success
    assert "address" in result.content


@pytest.mark.parametrize(
    "tool, arguments, field",
    [
        ("set_address", '{"address": "   "}', "address"),
        ("set_party", '{"party_id": "  "}', "party_id"),
        ("search_item", '{"query": " "}', "query"),
        ("search_party", '{"query": "\\t"}', "query"),
        ("add_item", '{"code": "  ", "quantity": 1}', "code"),
    ],
)
async def test_blank_arguments_are_rejected(dispatcher, draft_store, fake_erp, tool, arguments, field):
    result = await dispatcher.dispatch(CID, SALES, tool, arguments)

    assert not result.success
    assert result.content.startswith(f"Invalid arguments for {tool}:")
    assert field in result.content
    assert fake_erp.total_calls == 0

    draft = await draft_store.get_or_create(CID)
    assert draft.shipping_address is None
    assert draft.phase == DraftPhase.PARTY


async def test_empty_arguments_for_argumentless_tool(dispatcher):
    result = await dispatcher.dispatch(CID, SALES, "show_summary", "")

    assert result.success
    assert result.content == "Draft is empty. No party and no items selected."


async def test_unexpected_handler_error_becomes_status(dispatcher, fake_erp):
    async def explode(query, limit):
        raise RuntimeError("boom")

    fake_erp.search_parties = explode

    result = await dispatcher.dispatch(CID, SALES, "search_party", '{"query": "acme"}')

    assert not result.success
    assert result.content == "Technical error: search_party failed unexpectedly (boom)."


async def test_draft_conflict_becomes_status(dispatcher, draft_store):
    async def conflicted(conversation_id, notes):
        raise DraftConflictError("changed concurrently")

    draft_store.set_notes = conflicted

    result = await dispatcher.dispatch(CID, SALES, "set_notes", '{"notes": "urgent"}')

    assert not result.success
    assert "modified concurrently" in result.content


async def test_storage_failure_aborts_the_call(dispatcher, draft_store, session_factory):
    async def broken(conversation_id):
        raise SQLAlchemyError("database is gone")

    draft_store.get_or_create = broken

    with pytest.raises(SQLAlchemyError):
        await dispatcher.dispatch(CID, SALES, "get_context", "{}")

    assert await _audit_rows(session_factory) == []
