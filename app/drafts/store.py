"""Durable, conversation-scoped order draft store."""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.models.database import AsyncSessionLocal, OrderDraftDB
from app.models.domain import (
    DraftPhase,
    LineItem,
    OrderDraft,
    PartySnapshot,
    UpsertOutcome,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DraftConflictError(Exception):
    """Raised when a draft write keeps losing against concurrent writers."""
    pass


class DraftStore:
    """
    Read-modify-write access to the one OrderDraft row of a conversation.

    Every operation opens its own session, loads the current row (creating it
    when missing), applies one change and persists it with a version check.
    A write that lost against a concurrent writer is retried on fresh state.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        max_retries: Optional[int] = None,
    ):
        """
        Initialize draft store.

        Args:
            session_factory: Factory producing async database sessions
            max_retries: Attempts per write before giving up on conflicts
        """
        self.session_factory = session_factory
        self.max_retries = max_retries or settings.draft_write_retries

    async def get_or_create(self, conversation_id: str) -> OrderDraft:
        """
        Load the draft of a conversation, creating an empty one on first access.

        Args:
            conversation_id: Conversation ID

        Returns:
            Current OrderDraft
        """
        async with self.session_factory() as session:
            row = await self._load_or_create(session, conversation_id)
            return self._row_to_domain(row)

    async def set_phase(self, conversation_id: str, phase: DraftPhase) -> OrderDraft:
        def apply(draft: OrderDraft) -> None:
            draft.phase = phase

        draft, _ = await self._mutate(conversation_id, "set_phase", apply)
        return draft

    async def set_party(self, conversation_id: str, party: PartySnapshot) -> OrderDraft:
        """
        Replace the party snapshot and move to address selection.

        A different party also drops the shipping address chosen for the
        previous one.
        """
        def apply(draft: OrderDraft) -> None:
            if draft.party is not None and draft.party.id != party.id:
                draft.shipping_address = None
            draft.party = party.model_copy(deep=True)
            draft.phase = DraftPhase.ADDRESS

        draft, _ = await self._mutate(conversation_id, "set_party", apply)
        return draft

    async def set_shipping_address(self, conversation_id: str, address: str) -> OrderDraft:
        def apply(draft: OrderDraft) -> None:
            draft.shipping_address = address
            self._advance(draft, DraftPhase.ITEMS)

        draft, _ = await self._mutate(conversation_id, "set_shipping_address", apply)
        return draft

    async def set_shipping_time(self, conversation_id: str, iso_timestamp: str) -> OrderDraft:
        def apply(draft: OrderDraft) -> None:
            draft.expected_shipping_time = iso_timestamp
            self._advance(draft, DraftPhase.ITEMS)

        draft, _ = await self._mutate(conversation_id, "set_shipping_time", apply)
        return draft

    async def set_notes(self, conversation_id: str, notes: Optional[str]) -> OrderDraft:
        def apply(draft: OrderDraft) -> None:
            draft.notes = notes or None

        draft, _ = await self._mutate(conversation_id, "set_notes", apply)
        return draft

    async def upsert_line_item(self, conversation_id: str, line: LineItem) -> UpsertOutcome:
        """
        Insert a line item or overwrite the one with the same code.

        Overwrite replaces quantity and pricing; quantities are never summed.

        Args:
            conversation_id: Conversation ID
            line: Line item to store

        Returns:
            UpsertOutcome telling whether the line was inserted or overwritten
        """
        def apply(draft: OrderDraft) -> UpsertOutcome:
            index = draft.find_line(line.code)
            self._reopen(draft)
            if index is None:
                draft.line_items.append(line)
                return UpsertOutcome(line=line, inserted=True)
            previous = draft.line_items[index]
            draft.line_items[index] = line
            return UpsertOutcome(
                line=line,
                inserted=False,
                previous_quantity=previous.quantity,
            )

        _, outcome = await self._mutate(conversation_id, "upsert_line_item", apply)
        return outcome

    async def remove_line_item(self, conversation_id: str, code: str) -> Optional[LineItem]:
        """
        Remove the line item whose code matches case-insensitively.

        Returns:
            The removed LineItem, or None when no line matches
        """
        def apply(draft: OrderDraft) -> Optional[LineItem]:
            index = draft.find_line(code)
            if index is None:
                return None
            self._reopen(draft)
            return draft.line_items.pop(index)

        _, removed = await self._mutate(conversation_id, "remove_line_item", apply)
        return removed

    async def clear(self, conversation_id: str) -> bool:
        """
        Delete the draft row of a conversation.

        Returns:
            True if a row was deleted
        """
        async with self.session_factory() as session:
            result = await session.execute(
                delete(OrderDraftDB).where(OrderDraftDB.conversation_id == conversation_id)
            )
            await session.commit()
        logger.info(f"DRAFT_STORE: Cleared draft for {conversation_id} (deleted={result.rowcount > 0})")
        return result.rowcount > 0

    async def _mutate(
        self,
        conversation_id: str,
        operation: str,
        apply: Callable[[OrderDraft], T],
    ) -> Tuple[OrderDraft, T]:
        for attempt in range(1, self.max_retries + 1):
            async with self.session_factory() as session:
                row = await self._load_or_create(session, conversation_id)
                draft = self._row_to_domain(row)
                expected_version = draft.version
                outcome = apply(draft)

                result = await session.execute(
                    update(OrderDraftDB)
                    .where(
                        OrderDraftDB.conversation_id == conversation_id,
                        OrderDraftDB.version == expected_version,
                    )
                    .values(
                        **self._domain_to_values(draft),
                        version=expected_version + 1,
                        updated_at=datetime.utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()

            if result.rowcount == 1:
                draft.version = expected_version + 1
                logger.info(
                    f"DRAFT_STORE: {operation} on {conversation_id} "
                    f"(version={draft.version}, phase={draft.phase.value})"
                )
                return draft, outcome

            logger.warning(
                f"DRAFT_STORE: Version conflict on {operation} for {conversation_id} "
                f"(attempt {attempt}/{self.max_retries})"
            )

        raise DraftConflictError(
            f"Draft for {conversation_id} changed concurrently; {operation} not applied"
        )

    async def _load_or_create(self, session: AsyncSession, conversation_id: str) -> OrderDraftDB:
        row = await self._select(session, conversation_id)
        if row is not None:
            return row

        now = datetime.utcnow()
        session.add(
            OrderDraftDB(
                conversation_id=conversation_id,
                phase=DraftPhase.PARTY.value,
                line_items=[],
                version=0,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            await session.commit()
            logger.info(f"DRAFT_STORE: Created draft for {conversation_id}")
        except IntegrityError:
            # another writer created the row first
            await session.rollback()
        row = await self._select(session, conversation_id)
        return row

    @staticmethod
    async def _select(session: AsyncSession, conversation_id: str) -> Optional[OrderDraftDB]:
        result = await session.execute(
            select(OrderDraftDB)
            .where(OrderDraftDB.conversation_id == conversation_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _advance(draft: OrderDraft, phase: DraftPhase) -> None:
        if draft.phase.rank < phase.rank:
            draft.phase = phase

    @staticmethod
    def _reopen(draft: OrderDraft) -> None:
        # item changes invalidate a confirmed summary
        if draft.phase == DraftPhase.CONFIRM:
            draft.phase = DraftPhase.ITEMS

    @staticmethod
    def _row_to_domain(row: OrderDraftDB) -> OrderDraft:
        return OrderDraft(
            conversation_id=row.conversation_id,
            phase=DraftPhase(row.phase),
            party=PartySnapshot.model_validate(row.party_data) if row.party_data else None,
            line_items=[LineItem.model_validate(item) for item in (row.line_items or [])],
            shipping_address=row.shipping_address,
            expected_shipping_time=row.expected_shipping_time,
            notes=row.notes,
            version=row.version,
        )

    @staticmethod
    def _domain_to_values(draft: OrderDraft) -> Dict[str, Any]:
        return {
            "phase": draft.phase.value,
            "party_id": draft.party.id if draft.party else None,
            "party_name": draft.party.name if draft.party else None,
            "party_data": draft.party.model_dump(mode="json") if draft.party else None,
            "line_items": [line.model_dump(mode="json") for line in draft.line_items],
            "shipping_address": draft.shipping_address,
            "expected_shipping_time": draft.expected_shipping_time,
            "notes": draft.notes,
        }
