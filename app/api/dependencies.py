"""Service wiring and FastAPI dependencies."""
import logging
from typing import Optional
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from app.drafts.store import DraftStore
from app.erp.client import ERPClient
from app.graph.runner import ConversationTurnRunner
from app.llm.client import LLMClient
from app.models.database import AsyncSessionLocal
from app.tools.handlers import OrderToolHandlers, ToolDispatcher

logger = logging.getLogger(__name__)


def build_turn_runner(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    erp_client: Optional[ERPClient] = None,
    planner=None,
) -> ConversationTurnRunner:
    """
    Wire store, handlers, dispatcher, planner and graph into a turn runner.

    Args:
        session_factory: Factory producing async database sessions
        erp_client: System-of-record client (from settings when omitted)
        planner: Planner client (LLMClient when omitted)

    Returns:
        ConversationTurnRunner
    """
    draft_store = DraftStore(session_factory)
    handlers = OrderToolHandlers(draft_store, erp_client or ERPClient())
    dispatcher = ToolDispatcher(handlers, session_factory)
    return ConversationTurnRunner(
        session_factory=session_factory,
        draft_store=draft_store,
        dispatcher=dispatcher,
        planner=planner or LLMClient(),
    )


def get_turn_runner(request: Request) -> ConversationTurnRunner:
    """Application-wide turn runner (created at startup)."""
    runner = getattr(request.app.state, "turn_runner", None)
    if runner is None:
        logger.info("Building turn runner on first use...")
        runner = build_turn_runner()
        request.app.state.turn_runner = runner
    return runner


def get_draft_store(request: Request) -> DraftStore:
    return get_turn_runner(request).draft_store
