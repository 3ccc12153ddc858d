"""LangGraph tool dispatch graph construction."""
import logging
from typing import Literal
from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, END
from langsmith import traceable
from app.graph.state import TurnState
from app.graph.nodes import (
    call_planner,
    execute_tools,
    finalize,
    max_rounds,
)

logger = logging.getLogger(__name__)


def route_after_planner(state: TurnState, config: RunnableConfig) -> Literal["execute_tools", "finalize"]:
    """Conditional routing: run the requested tools or finish the turn?"""
    reply = state.get("pending_reply") or {}
    rounds = state.get("rounds", 0)
    logger.debug(f"ROUTING: route_after_planner - tool_calls: {len(reply.get('tool_calls') or [])}, rounds: {rounds}")

    if not reply.get("tool_calls"):
        logger.info("ROUTING: -> finalize (plain answer)")
        return "finalize"

    # Prevent runaway loops
    if rounds >= max_rounds(config):
        logger.warning(f"ROUTING: -> finalize (max tool rounds reached: {rounds})")
        return "finalize"

    logger.info("ROUTING: -> execute_tools")
    return "execute_tools"


def recursion_limit_for(rounds: int) -> int:
    """Graph step budget for a round cap: planner + tools per round, final planner + finalize."""
    return 2 * rounds + 3


@traceable(name="build_turn_graph")
def build_turn_graph():
    """
    Build the tool dispatch graph.

    Returns:
        Compiled graph
    """
    logger.info("Building tool dispatch graph...")
    workflow = StateGraph(TurnState)

    workflow.add_node("call_planner", call_planner)
    workflow.add_node("execute_tools", execute_tools)
    workflow.add_node("finalize", finalize)

    workflow.set_entry_point("call_planner")

    workflow.add_conditional_edges(
        "call_planner",
        route_after_planner,
        {
            "execute_tools": "execute_tools",
            "finalize": "finalize",
        }
    )

    # After tools, ask the planner again with the results
    workflow.add_edge("execute_tools", "call_planner")
    workflow.add_edge("finalize", END)

    app = workflow.compile()
    logger.info("Tool dispatch graph built successfully")
    return app
