"""Tool call audit repository."""
import logging
from datetime import datetime
from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.database import ToolCallAuditDB
from app.models.domain import ToolCallRecord

logger = logging.getLogger(__name__)


class ToolCallAuditRepository:
    """Append-only store of structured tool call records."""

    def __init__(self, session: AsyncSession):
        """
        Initialize audit repository.

        Args:
            session: Database session
        """
        self.session = session

    async def record(self, entry: ToolCallRecord) -> ToolCallRecord:
        """
        Persist one tool call record.

        Args:
            entry: Tool call outcome

        Returns:
            Stored record with its timestamp
        """
        row = ToolCallAuditDB(
            conversation_id=entry.conversation_id,
            tool_name=entry.tool_name,
            arguments=entry.arguments,
            success=entry.success,
            result=entry.result,
            duration_ms=entry.duration_ms,
            created_at=entry.created_at or datetime.utcnow(),
        )
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        logger.debug(f"AUDIT: {entry.tool_name} on {entry.conversation_id} success={entry.success}")
        return self._db_to_domain(row)

    async def list_for_conversation(self, conversation_id: str) -> List[ToolCallRecord]:
        """All tool calls of a conversation, oldest first."""
        result = await self.session.execute(
            select(ToolCallAuditDB)
            .where(ToolCallAuditDB.conversation_id == conversation_id)
            .order_by(ToolCallAuditDB.id)
        )
        return [self._db_to_domain(row) for row in result.scalars().all()]

    def _db_to_domain(self, row: ToolCallAuditDB) -> ToolCallRecord:
        return ToolCallRecord(
            conversation_id=row.conversation_id,
            tool_name=row.tool_name,
            arguments=row.arguments or {},
            success=row.success,
            result=row.result,
            duration_ms=row.duration_ms,
            created_at=row.created_at,
        )
