"""Tool names, argument models and planner function schemas."""
from enum import Enum
from typing import Any, Dict, List, Type

from pydantic import BaseModel, Field

from app.models.domain import WorkflowCategory


class ToolName(str, Enum):
    """Closed set of operations the planner may request."""
    SEARCH_PARTY = "search_party"
    SEARCH_ITEM = "search_item"
    SET_PARTY = "set_party"
    SET_ADDRESS = "set_address"
    SET_SHIPPING_DATE = "set_shipping_date"
    SET_NOTES = "set_notes"
    ADD_ITEM = "add_item"
    REMOVE_ITEM = "remove_item"
    SHOW_SUMMARY = "show_summary"
    GET_CONTEXT = "get_context"
    ABORT = "abort"
    SUBMIT = "submit"


class SearchPartyArgs(BaseModel):
    query: str = Field(..., min_length=1, description="Customer name or part of it")

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class SearchItemArgs(BaseModel):
    query: str = Field(..., min_length=1, description="Product code, name or part of it")

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class SetPartyArgs(BaseModel):
    party_id: str = Field(..., min_length=1, description="Customer ID returned by search_party")

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class SetAddressArgs(BaseModel):
    address: str = Field(..., min_length=1, description="Shipping address chosen by the user, verbatim")

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class SetShippingDateArgs(BaseModel):
    date: str = Field(
        ...,
        min_length=1,
        description="Shipping date as said by the user, e.g. 'tra 2 settimane', 'tomorrow', '2026-02-01', '01/02/2026'",
    )

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class SetNotesArgs(BaseModel):
    notes: str = Field(..., description="Free-text order notes (empty string clears them)")

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class AddItemArgs(BaseModel):
    code: str = Field(..., min_length=1, description="Product code (or catalog ID) returned by search_item")
    quantity: float = Field(..., gt=0, description="Quantity in the product's unit of measure")

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class RemoveItemArgs(BaseModel):
    code: str = Field(..., min_length=1, description="Code of the product to remove from the cart")

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class NoArgs(BaseModel):
    model_config = {"extra": "forbid", "str_strip_whitespace": True}


TOOL_ARGUMENTS: Dict[ToolName, Type[BaseModel]] = {
    ToolName.SEARCH_PARTY: SearchPartyArgs,
    ToolName.SEARCH_ITEM: SearchItemArgs,
    ToolName.SET_PARTY: SetPartyArgs,
    ToolName.SET_ADDRESS: SetAddressArgs,
    ToolName.SET_SHIPPING_DATE: SetShippingDateArgs,
    ToolName.SET_NOTES: SetNotesArgs,
    ToolName.ADD_ITEM: AddItemArgs,
    ToolName.REMOVE_ITEM: RemoveItemArgs,
    ToolName.SHOW_SUMMARY: NoArgs,
    ToolName.GET_CONTEXT: NoArgs,
    ToolName.ABORT: NoArgs,
    ToolName.SUBMIT: NoArgs,
}

TOOL_DESCRIPTIONS: Dict[ToolName, str] = {
    ToolName.SEARCH_PARTY: "Search customers by name. Returns a numbered list with IDs. Does not change the order.",
    ToolName.SEARCH_ITEM: "Search catalog products by code or name. Returns ID, code, name and price.",
    ToolName.SET_PARTY: "Select the customer for the order by ID. Returns the customer's addresses; ask the user which one to use.",
    ToolName.SET_ADDRESS: "Save the shipping address chosen by the user.",
    ToolName.SET_SHIPPING_DATE: "Save the expected shipping date. Accepts relative expressions and common date formats.",
    ToolName.SET_NOTES: "Save free-text notes for the order.",
    ToolName.ADD_ITEM: (
        "Add a product to the cart. If the code is already in the cart its quantity is "
        "OVERWRITTEN with the new value, never summed."
    ),
    ToolName.REMOVE_ITEM: "Remove a product from the cart by code.",
    ToolName.SHOW_SUMMARY: "Show the full order summary with totals and missing fields.",
    ToolName.GET_CONTEXT: "Get a short description of the current order state.",
    ToolName.ABORT: "Discard the current order and start over.",
    ToolName.SUBMIT: (
        "Create the order in the order-management system as a draft. Only call after the "
        "user explicitly confirmed the summary."
    ),
}

TOOLS_BY_CATEGORY: Dict[WorkflowCategory, List[ToolName]] = {
    WorkflowCategory.SALES_ORDER: list(ToolName),
    WorkflowCategory.GENERAL: [],
}


def _parameters_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    schema = model.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    schema.setdefault("properties", {})
    schema["additionalProperties"] = False
    return schema


def function_schema(tool: ToolName) -> Dict[str, Any]:
    """OpenAI function-calling schema of a tool."""
    return {
        "type": "function",
        "function": {
            "name": tool.value,
            "description": TOOL_DESCRIPTIONS[tool],
            "parameters": _parameters_schema(TOOL_ARGUMENTS[tool]),
        },
    }


def allowed_tools(category: WorkflowCategory) -> List[ToolName]:
    return TOOLS_BY_CATEGORY.get(category, [])


def tools_for_category(category: WorkflowCategory) -> List[Dict[str, Any]]:
    """
    Function schemas offered to the planner for a conversation.

    Args:
        category: Workflow category of the conversation

    Returns:
        List of OpenAI tool definitions (empty when the workflow has no tools)
    """
    return [function_schema(tool) for tool in allowed_tools(category)]
