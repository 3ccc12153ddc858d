"""Conversation service for managing conversations and their turns."""
import logging
from typing import Optional, List
from langsmith import traceable
from app.models.domain import Conversation, Message, MessageRole, WorkflowCategory
from app.conversations.repository import ConversationRepository
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class ConversationService:
    """Service for conversation management."""

    def __init__(self, session: AsyncSession):
        """
        Initialize conversation service.

        Args:
            session: Database session
        """
        self.repository = ConversationRepository(session)

    @traceable(name="create_conversation")
    async def create_conversation(
        self,
        title: Optional[str] = None,
        category: WorkflowCategory = WorkflowCategory.SALES_ORDER,
    ) -> Conversation:
        """
        Create a new conversation.

        Args:
            title: Conversation title (optional)
            category: Workflow category

        Returns:
            Conversation
        """
        conversation = await self.repository.create_conversation(title=title, category=category)
        logger.info(
            f"CONVERSATIONS: Created {conversation.conversation_id} "
            f"(category={conversation.category.value})"
        )
        return conversation

    @traceable(name="get_conversation")
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """
        Get conversation by ID.

        Args:
            conversation_id: Conversation ID

        Returns:
            Conversation if found, None otherwise
        """
        return await self.repository.get_conversation(conversation_id)

    @traceable(name="list_conversations")
    async def list_conversations(
        self,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Conversation]:
        """List conversations, most recently updated first."""
        return await self.repository.list_conversations(limit=limit, offset=offset)

    async def append_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
    ) -> Message:
        """Append a user or assistant turn."""
        return await self.repository.append_message(conversation_id, role, content)

    async def list_messages(self, conversation_id: str) -> List[Message]:
        return await self.repository.list_messages(conversation_id)

    async def recent_messages(self, conversation_id: str, n: int) -> List[Message]:
        """
        Bounded history window for the planner.

        Args:
            conversation_id: Conversation ID
            n: Number of most recent turns

        Returns:
            Messages in chronological order
        """
        return await self.repository.recent_messages(conversation_id, n)

    @traceable(name="delete_conversation")
    async def delete_conversation(self, conversation_id: str) -> bool:
        """
        Delete a conversation, its messages and its draft.

        Args:
            conversation_id: Conversation ID

        Returns:
            True if deleted, False if not found
        """
        deleted = await self.repository.delete_conversation(conversation_id)
        if deleted:
            logger.info(f"CONVERSATIONS: Deleted {conversation_id}")
        return deleted
