"""FastAPI request/response schemas."""
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
from app.models.domain import WorkflowCategory


class CreateConversationRequest(BaseModel):
    """Create conversation request schema."""
    title: Optional[str] = Field(None, description="Conversation title")
    category: WorkflowCategory = Field(WorkflowCategory.SALES_ORDER, description="Workflow category")


class ConversationListItem(BaseModel):
    """Conversation list item schema."""
    conversation_id: str = Field(..., description="Conversation ID")
    title: str = Field(..., description="Conversation title")
    category: WorkflowCategory = Field(..., description="Workflow category")
    last_message: Optional[str] = Field(None, description="Last message preview")
    created_at: str = Field(..., description="Creation timestamp")
    updated_at: str = Field(..., description="Last update timestamp")


class ConversationListResponse(BaseModel):
    """Conversation list response schema."""
    conversations: list[ConversationListItem] = Field(..., description="List of conversations")


class ConversationHistoryItem(BaseModel):
    """Conversation history item schema."""
    role: str = Field(..., description="Message role: 'user' or 'assistant'")
    content: str = Field(..., description="Message content")
    created_at: str = Field(..., description="Creation timestamp")


class ConversationHistoryResponse(BaseModel):
    """Conversation history response schema."""
    conversation_id: str = Field(..., description="Conversation ID")
    messages: list[ConversationHistoryItem] = Field(..., description="List of conversation messages")


class SendMessageRequest(BaseModel):
    """Inbound user message schema."""
    message: str = Field(..., min_length=1, description="User message")


class DraftResponse(BaseModel):
    """Order draft snapshot schema."""
    conversation_id: str = Field(..., description="Conversation ID")
    draft: Dict[str, Any] = Field(..., description="Stored draft state")
    summary: str = Field(..., description="Human-readable summary")
    ready: bool = Field(..., description="Whether the draft can be submitted")
    missing: list[str] = Field(..., description="Missing required fields")
