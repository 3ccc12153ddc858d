"""Guardrails AI validation of planner tool arguments."""
import json
import logging
from typing import Any, Dict, Optional
from guardrails import Guard
from langsmith import traceable
from pydantic import BaseModel, ValidationError
from app.tools.definitions import TOOL_ARGUMENTS, ToolName

logger = logging.getLogger(__name__)


class ToolArgumentError(ValueError):
    """Planner-supplied arguments that cannot be used for a tool call."""
    pass


class ToolArgumentValidator:
    """Guardrails AI validator for planner tool-call arguments."""

    def __init__(self):
        """Initialize with one Guard per tool, built lazily from its argument model."""
        self._guards: Dict[ToolName, Guard] = {}

    def _guard_for(self, tool: ToolName) -> Guard:
        guard = self._guards.get(tool)
        if guard is None:
            guard = Guard.from_pydantic(output_class=TOOL_ARGUMENTS[tool])
            self._guards[tool] = guard
        return guard

    @traceable(name="guardrails_validate_tool_arguments")
    def validate(self, tool: ToolName, raw_arguments: Optional[str]) -> BaseModel:
        """
        Validate the raw JSON argument string of a tool call.

        Args:
            tool: Requested tool
            raw_arguments: JSON string exactly as produced by the planner

        Returns:
            Instance of the tool's argument model

        Raises:
            ToolArgumentError: If arguments are not valid JSON or violate the schema
        """
        try:
            payload = json.loads(raw_arguments) if raw_arguments and raw_arguments.strip() else {}
        except json.JSONDecodeError as e:
            raise ToolArgumentError(f"arguments are not valid JSON ({e.msg})") from e

        if not isinstance(payload, dict):
            raise ToolArgumentError("arguments must be a JSON object")

        payload = self._apply_guard(tool, payload)

        try:
            return TOOL_ARGUMENTS[tool].model_validate(payload)
        except ValidationError as e:
            reasons = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise ToolArgumentError(reasons) from e

    def _apply_guard(self, tool: ToolName, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run the Guard over the payload.

        The Guard output replaces the payload only when validation passed;
        otherwise the pydantic model reports the precise reason.
        """
        try:
            outcome = self._guard_for(tool).parse(llm_output=json.dumps(payload))
        except Exception as e:
            logger.warning(f"GUARDRAILS: Guard failed for {tool.value}: {e}")
            return payload

        if outcome.validation_passed and isinstance(outcome.validated_output, dict):
            return outcome.validated_output

        logger.info(f"GUARDRAILS: {tool.value} arguments rejected by guard: {outcome.error}")
        return payload
