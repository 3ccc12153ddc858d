"""Export domain and database models."""
from app.models.domain import (
    CatalogItem,
    Conversation,
    DraftPhase,
    DraftReadiness,
    LineItem,
    Message,
    MessageRole,
    OrderDraft,
    PartyAddress,
    PartySnapshot,
    SalesOrderPayload,
    ToolCallRecord,
    ToolResult,
    UpsertOutcome,
    WorkflowCategory,
)
from app.models.database import (
    Base,
    ConversationDB,
    MessageDB,
    OrderDraftDB,
    ToolCallAuditDB,
    get_db,
    init_db,
    AsyncSessionLocal,
)

__all__ = [
    "CatalogItem",
    "Conversation",
    "DraftPhase",
    "DraftReadiness",
    "LineItem",
    "Message",
    "MessageRole",
    "OrderDraft",
    "PartyAddress",
    "PartySnapshot",
    "SalesOrderPayload",
    "ToolCallRecord",
    "ToolResult",
    "UpsertOutcome",
    "WorkflowCategory",
    "Base",
    "ConversationDB",
    "MessageDB",
    "OrderDraftDB",
    "ToolCallAuditDB",
    "get_db",
    "init_db",
    "AsyncSessionLocal",
]
