"""Conversation repository for database operations."""
import uuid
from datetime import datetime
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, desc
from app.models.database import ConversationDB, MessageDB, OrderDraftDB
from app.models.domain import Conversation, Message, MessageRole, WorkflowCategory

LAST_MESSAGE_PREVIEW = 500


class ConversationRepository:
    """Repository for conversation and message database operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize conversation repository.

        Args:
            session: Database session
        """
        self.session = session

    async def create_conversation(
        self,
        title: Optional[str] = None,
        category: WorkflowCategory = WorkflowCategory.SALES_ORDER,
    ) -> Conversation:
        """
        Create a new conversation with a generated id.

        Args:
            title: Conversation title (optional)
            category: Workflow category the conversation is scoped to

        Returns:
            Created Conversation
        """
        conversation_id = f"conv-{uuid.uuid4().hex[:16]}"
        now = datetime.utcnow()
        conversation_db = ConversationDB(
            conversation_id=conversation_id,
            title=title or f"Conversation {conversation_id[5:13]}",
            category=category.value,
            created_at=now,
            updated_at=now,
        )

        self.session.add(conversation_db)
        await self.session.commit()
        await self.session.refresh(conversation_db)

        return self._db_to_domain(conversation_db)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """
        Get conversation by ID.

        Args:
            conversation_id: Conversation ID

        Returns:
            Conversation if found, None otherwise
        """
        result = await self.session.execute(
            select(ConversationDB).where(ConversationDB.conversation_id == conversation_id)
        )
        conversation_db = result.scalar_one_or_none()

        if not conversation_db:
            return None

        return self._db_to_domain(conversation_db)

    async def list_conversations(
        self,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Conversation]:
        """
        List all conversations sorted by updated_at descending.

        Args:
            limit: Maximum number of conversations to return
            offset: Number of conversations to skip

        Returns:
            List of Conversations
        """
        result = await self.session.execute(
            select(ConversationDB)
            .order_by(desc(ConversationDB.updated_at))
            .limit(limit)
            .offset(offset)
        )
        conversations_db = result.scalars().all()

        return [self._db_to_domain(conv_db) for conv_db in conversations_db]

    async def append_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
    ) -> Message:
        """
        Append a turn and refresh the conversation preview.

        Args:
            conversation_id: Conversation ID
            role: Turn author
            content: Message text

        Returns:
            Stored Message
        """
        now = datetime.utcnow()
        message_db = MessageDB(
            conversation_id=conversation_id,
            role=role.value,
            content=content,
            created_at=now,
        )
        self.session.add(message_db)
        await self.session.execute(
            update(ConversationDB)
            .where(ConversationDB.conversation_id == conversation_id)
            .values(last_message=content[:LAST_MESSAGE_PREVIEW], updated_at=now)
        )
        await self.session.commit()
        await self.session.refresh(message_db)

        return self._message_to_domain(message_db)

    async def list_messages(self, conversation_id: str) -> List[Message]:
        """All turns of a conversation in chronological order."""
        result = await self.session.execute(
            select(MessageDB)
            .where(MessageDB.conversation_id == conversation_id)
            .order_by(MessageDB.id)
        )
        return [self._message_to_domain(m) for m in result.scalars().all()]

    async def recent_messages(self, conversation_id: str, n: int) -> List[Message]:
        """
        Most recent N turns, returned oldest first.

        Args:
            conversation_id: Conversation ID
            n: Window size

        Returns:
            List of Messages in chronological order
        """
        result = await self.session.execute(
            select(MessageDB)
            .where(MessageDB.conversation_id == conversation_id)
            .order_by(desc(MessageDB.id))
            .limit(n)
        )
        messages = [self._message_to_domain(m) for m in result.scalars().all()]
        messages.reverse()
        return messages

    async def delete_conversation(self, conversation_id: str) -> bool:
        """
        Delete a conversation together with its messages and draft.

        Args:
            conversation_id: Conversation ID

        Returns:
            True if deleted, False if not found
        """
        await self.session.execute(
            delete(MessageDB).where(MessageDB.conversation_id == conversation_id)
        )
        await self.session.execute(
            delete(OrderDraftDB).where(OrderDraftDB.conversation_id == conversation_id)
        )
        result = await self.session.execute(
            delete(ConversationDB).where(ConversationDB.conversation_id == conversation_id)
        )
        await self.session.commit()

        return result.rowcount > 0

    def _db_to_domain(self, conversation_db: ConversationDB) -> Conversation:
        """Convert database model to domain model."""
        return Conversation(
            conversation_id=conversation_db.conversation_id,
            title=conversation_db.title,
            category=WorkflowCategory(conversation_db.category),
            last_message=conversation_db.last_message,
            created_at=conversation_db.created_at,
            updated_at=conversation_db.updated_at,
        )

    def _message_to_domain(self, message_db: MessageDB) -> Message:
        return Message(
            id=message_db.id,
            conversation_id=message_db.conversation_id,
            role=MessageRole(message_db.role),
            content=message_db.content,
            created_at=message_db.created_at,
        )
