"""OpenAI planner client wrapper with tool-calling support."""
import logging
from typing import Optional, Dict, Any, List
from openai import AsyncOpenAI, OpenAIError
from langsmith import traceable
from pydantic import BaseModel, Field
from app.config import settings

logger = logging.getLogger(__name__)


class PlannerError(RuntimeError):
    """The planner could not produce a usable reply."""
    pass


class PlannerToolCall(BaseModel):
    """One structured tool request from the planner."""
    id: str
    name: str
    arguments: str = Field("{}", description="Raw JSON argument string")


class PlannerReply(BaseModel):
    """Planner response: plain text, tool requests, or both."""
    content: Optional[str] = None
    tool_calls: List[PlannerToolCall] = Field(default_factory=list)

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)

    def as_message(self) -> Dict[str, Any]:
        """Assistant message to append to the conversation before tool results."""
        message: Dict[str, Any] = {"role": "assistant", "content": self.content or ""}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        return message


class LLMClient:
    """OpenAI client wrapper with LangSmith tracing."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        """
        Initialize OpenAI client.

        Args:
            client: Preconfigured AsyncOpenAI instance (built from settings when omitted)
        """
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        )
        self.model = settings.planner_model

    @traceable(name="llm_plan")
    async def plan(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
    ) -> PlannerReply:
        """
        Ask the planner for the next step of the turn.

        Args:
            system_prompt: Workflow instructions including the draft state block
            messages: Conversation so far in chat-completions format
            tools: Function schemas the planner may request

        Returns:
            PlannerReply with text content and/or tool calls

        Raises:
            PlannerError: If the request fails or the reply is empty
        """
        request_params: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "max_tokens": settings.planner_max_tokens,
        }
        # Only include tools when the workflow offers some
        if tools:
            request_params["tools"] = tools
            request_params["tool_choice"] = "auto"

        try:
            response = await self.client.chat.completions.create(**request_params)
        except OpenAIError as e:
            logger.error(f"LLM: Planner request failed: {e}")
            raise PlannerError(f"Planner request failed: {e}") from e

        if not response.choices:
            raise PlannerError("Planner returned no choices")

        message = response.choices[0].message
        tool_calls = [
            PlannerToolCall(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
            for call in (message.tool_calls or [])
        ]

        if not tool_calls and not message.content:
            raise PlannerError("Planner returned neither text nor tool calls")

        logger.debug(
            f"LLM: Planner reply - tool_calls: {[c.name for c in tool_calls]}, "
            f"content length: {len(message.content or '')}"
        )
        return PlannerReply(content=message.content, tool_calls=tool_calls)
