"""Conversation turn runner: history, prompt, graph, persistence, streaming."""
import asyncio
import logging
import weakref
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from langsmith import traceable
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.conversations.service import ConversationService
from app.drafts.store import DraftStore
from app.drafts.views import state_block
from app.graph.graph import build_turn_graph, recursion_limit_for
from app.llm.prompts import build_system_prompt
from app.models.domain import MessageRole, WorkflowCategory
from app.tools.definitions import tools_for_category
from app.tools.handlers import ToolDispatcher

logger = logging.getLogger(__name__)

Emitter = Callable[[Dict[str, Any]], Awaitable[None]]

STREAM_ERROR_MESSAGE = "Message processing failed"


class ConversationNotFoundError(LookupError):
    """The conversation of a turn does not exist."""
    pass


async def _discard(event: Dict[str, Any]) -> None:
    return None


class ConversationTurnRunner:
    """Run one user turn of a conversation to completion."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        draft_store: DraftStore,
        dispatcher: ToolDispatcher,
        planner,
        graph=None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize turn runner.

        Args:
            session_factory: Factory producing async database sessions
            draft_store: Draft store used for the state block
            dispatcher: Tool dispatcher
            planner: Planner client (LLMClient or compatible)
            graph: Compiled tool dispatch graph, built when omitted
            today: Source of the date shown to the planner
        """
        self.session_factory = session_factory
        self.draft_store = draft_store
        self.dispatcher = dispatcher
        self.planner = planner
        self.graph = graph or build_turn_graph()
        self.today = today or date.today
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._tasks: Set[asyncio.Task] = set()

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    def start_turn(
        self,
        conversation_id: str,
        content: str,
        emit: Emitter,
    ) -> asyncio.Task:
        """
        Run a turn as a detached task.

        The task outlives a disconnecting caller, so dispatched tool calls
        always complete. It runs in a copy of the current context and
        therefore sees the caller's bound credential.
        """
        task = asyncio.create_task(self.run_turn(conversation_id, content, emit))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @traceable(name="run_turn")
    async def run_turn(
        self,
        conversation_id: str,
        content: str,
        emit: Optional[Emitter] = None,
    ) -> Optional[str]:
        """
        Process one inbound message.

        Turns of the same conversation are serialized. On failure an error
        event is emitted and no assistant turn is stored.

        Args:
            conversation_id: Conversation ID
            content: User message
            emit: Async callable receiving tool_call, content, done and error events

        Returns:
            Final answer, or None when the turn failed
        """
        emit = _discard if emit is None else emit
        lock = self._lock_for(conversation_id)
        async with lock:
            try:
                answer = await self._run_locked(conversation_id, content, emit)
            except Exception as e:
                logger.error(f"TOOL_DISPATCH: Turn failed for {conversation_id}: {e}", exc_info=True)
                await emit({"type": "error", "error": STREAM_ERROR_MESSAGE})
                return None

        await self._stream(answer, emit)
        await emit({"type": "done"})
        return answer

    async def _run_locked(self, conversation_id: str, content: str, emit: Emitter) -> str:
        async with self.session_factory() as session:
            conversations = ConversationService(session)
            conversation = await conversations.get_conversation(conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(conversation_id)

            await conversations.append_message(conversation_id, MessageRole.USER, content)
            history = await conversations.recent_messages(conversation_id, settings.history_window)

        category = conversation.category
        if category == WorkflowCategory.SALES_ORDER:
            draft = await self.draft_store.get_or_create(conversation_id)
            system_prompt = build_system_prompt(category, state_block(draft), draft.phase, self.today())
        else:
            system_prompt = build_system_prompt(category, today=self.today())

        rounds = settings.max_tool_rounds
        result = await self.graph.ainvoke(
            {
                "conversation_id": conversation_id,
                "category": category.value,
                "system_prompt": system_prompt,
                "messages": [{"role": m.role.value, "content": m.content} for m in history],
                "tools": tools_for_category(category),
                "pending_reply": None,
                "rounds": 0,
                "final_answer": None,
                "round_cap_reached": False,
            },
            config={
                "configurable": {
                    "planner": self.planner,
                    "dispatcher": self.dispatcher,
                    "emit": emit,
                    "max_tool_rounds": rounds,
                },
                "recursion_limit": recursion_limit_for(rounds),
            },
        )

        answer = result.get("final_answer") or ""
        async with self.session_factory() as session:
            await ConversationService(session).append_message(
                conversation_id, MessageRole.ASSISTANT, answer
            )
        logger.info(
            f"TOOL_DISPATCH: Turn completed for {conversation_id} after {result.get('rounds', 0)} tool rounds"
        )
        return answer

    async def _stream(self, answer: str, emit: Emitter) -> None:
        size = max(1, settings.stream_chunk_size)
        for start in range(0, len(answer), size):
            await emit({"type": "content", "content": answer[start:start + size]})
            if settings.stream_chunk_delay_seconds:
                await asyncio.sleep(settings.stream_chunk_delay_seconds)

    async def drain(self) -> None:
        """Wait for detached turns (used on shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
