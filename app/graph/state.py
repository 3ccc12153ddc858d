"""LangGraph state definition."""
from typing import TypedDict, List, Dict, Any, Optional


class TurnState(TypedDict):
    """State of one conversational turn in the tool dispatch graph."""
    # Conversation
    conversation_id: str
    category: str

    # Planner request
    system_prompt: str
    messages: List[Dict[str, Any]]
    tools: List[Dict[str, Any]]

    # Last planner reply (PlannerReply.model_dump())
    pending_reply: Optional[Dict[str, Any]]

    # Control flow
    rounds: int

    # Final output
    final_answer: Optional[str]
    round_cap_reached: bool
