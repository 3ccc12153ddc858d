"""LangGraph node implementations.

Collaborators are passed per invocation through config["configurable"]:
    planner: object with an async plan(system_prompt, messages, tools)
    dispatcher: ToolDispatcher
    emit: async callable receiving stream events
    max_tool_rounds: round cap for the turn
"""
import logging
from typing import Dict, Any
from langchain_core.runnables import RunnableConfig
from langsmith import traceable
from app.config import settings
from app.graph.state import TurnState
from app.llm.client import PlannerReply
from app.models.domain import WorkflowCategory

logger = logging.getLogger(__name__)

ROUND_CAP_MESSAGE = (
    "I stopped because this request needed too many tool steps. "
    "Nothing else was changed; please check the order summary and tell me how to continue."
)


def _configurable(config: RunnableConfig) -> Dict[str, Any]:
    return (config or {}).get("configurable", {})


def max_rounds(config: RunnableConfig) -> int:
    return _configurable(config).get("max_tool_rounds", settings.max_tool_rounds)


@traceable(name="call_planner")
async def call_planner(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Send the conversation to the planner.

    Args:
        state: Current turn state
        config: Run config carrying the planner

    Returns:
        Updated state with the planner reply
    """
    planner = _configurable(config)["planner"]
    logger.info(
        f"TOOL_DISPATCH: Planner round {state.get('rounds', 0) + 1} for {state['conversation_id']} "
        f"({len(state['messages'])} messages, {len(state['tools'])} tools)"
    )
    reply = await planner.plan(
        system_prompt=state["system_prompt"],
        messages=state["messages"],
        tools=state["tools"],
    )
    return {"pending_reply": reply.model_dump()}


@traceable(name="execute_tools")
async def execute_tools(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Run every requested tool sequentially, in the order received.

    A tool_call notification is emitted before each call; each result is
    appended to the conversation as a tool message.

    Args:
        state: Current turn state
        config: Run config carrying the dispatcher and emitter

    Returns:
        Updated state with tool results appended
    """
    options = _configurable(config)
    dispatcher = options["dispatcher"]
    emit = options.get("emit")

    reply = PlannerReply.model_validate(state["pending_reply"])
    category = WorkflowCategory(state["category"])
    messages = list(state["messages"])
    messages.append(reply.as_message())

    for call in reply.tool_calls:
        if emit is not None:
            await emit({"type": "tool_call", "tool": call.name})
        result = await dispatcher.dispatch(
            state["conversation_id"],
            category,
            call.name,
            call.arguments,
        )
        messages.append({
            "role": "tool",
            "tool_call_id": call.id,
            "content": result.content,
        })

    return {
        "messages": messages,
        "rounds": state.get("rounds", 0) + 1,
        "pending_reply": None,
    }


@traceable(name="finalize")
def finalize(state: TurnState) -> Dict[str, Any]:
    """
    Settle the final answer of the turn.

    Args:
        state: Current turn state

    Returns:
        Updated state with final answer
    """
    reply = PlannerReply.model_validate(state["pending_reply"] or {})
    if reply.wants_tools:
        logger.warning(
            f"TOOL_DISPATCH: Round cap reached for {state['conversation_id']} "
            f"after {state.get('rounds', 0)} rounds"
        )
        return {"final_answer": ROUND_CAP_MESSAGE, "round_cap_reached": True}

    return {"final_answer": reply.content or "", "round_cap_reached": False}
