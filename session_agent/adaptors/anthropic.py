"""Anthropic API adaptor for session-agent."""

import json
import logging
import os
from typing import AsyncIterator, Optional

import anthropic
from anthropic import AsyncAnthropic

from session_agent.exceptions import ModelEndpointError
from session_agent.execution import Message, TextPart, ToolCallPart, ToolResultPart
from session_agent.model import (
    ModelAdaptor,
    ModelDone,
    ModelEvent,
    TextDelta,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)


class AnthropicAdaptor(ModelAdaptor):
    """Anthropic model adaptor using the official SDK.

    Args:
        api_key: Anthropic API key. Falls back to ANTHROPIC_API_KEY environment variable.
        model: Model name (default: claude-sonnet-4-5-20250929).
        max_tokens: Maximum tokens in the response (default: 1024).
        system_prompt: Optional system prompt sent with every request.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 1024,
        system_prompt: Optional[str] = None,
    ):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Anthropic API key not provided. "
                "Pass api_key argument or set ANTHROPIC_API_KEY environment variable."
            )

        self.model = model
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt
        self.client = AsyncAnthropic(api_key=self.api_key)

    async def stream(
        self,
        messages: list[Message],
        tools: list[dict],
        step_limit_hint: Optional[int] = None,
        **kwargs,
    ) -> AsyncIterator[ModelEvent]:
        create_kwargs = {
            "model": self.model,
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
            "messages": self._convert_messages(messages),
            "stream": True,
        }
        if self.system_prompt:
            create_kwargs["system"] = self.system_prompt
        if tools:
            create_kwargs["tools"] = [self._convert_tool(tool) for tool in tools]

        blocks: dict[int, dict] = {}
        stop_reason = None
        try:
            response = await self.client.messages.create(**create_kwargs)
            async for event in response:
                if event.type == "content_block_start":
                    block = event.content_block
                    if block.type == "tool_use":
                        blocks[event.index] = {"id": block.id, "name": block.name, "json": ""}
                elif event.type == "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta":
                        yield TextDelta(delta.text)
                    elif delta.type == "input_json_delta" and event.index in blocks:
                        blocks[event.index]["json"] += delta.partial_json
                elif event.type == "content_block_stop" and event.index in blocks:
                    yield self._build_tool_call(blocks.pop(event.index))
                elif event.type == "message_delta":
                    stop_reason = getattr(event.delta, "stop_reason", None) or stop_reason
        except anthropic.APIError as e:
            raise ModelEndpointError(f"Anthropic API error: {e}") from e

        yield ModelDone(stop_reason=stop_reason)

    def _build_tool_call(self, block: dict) -> ToolCallRequest:
        try:
            arguments = json.loads(block["json"]) if block["json"] else {}
        except json.JSONDecodeError:
            logger.warning(f"Unparseable input for tool '{block['name']}': {block['json']!r}")
            arguments = {}
        if not isinstance(arguments, dict):
            logger.warning(f"Non-object input for tool '{block['name']}': {arguments!r}")
            arguments = {}
        return ToolCallRequest(call_id=block["id"], tool_name=block["name"], arguments=arguments)

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        """Tool results travel as user content; consecutive same-role turns are merged."""
        anthropic_messages: list[dict] = []
        for msg in messages:
            blocks = []
            for part in msg.parts:
                if isinstance(part, TextPart):
                    if part.text:
                        blocks.append({"type": "text", "text": part.text})
                elif isinstance(part, ToolCallPart):
                    blocks.append({
                        "type": "tool_use",
                        "id": part.call_id,
                        "name": part.tool_name,
                        "input": part.arguments,
                    })
                elif isinstance(part, ToolResultPart):
                    blocks.append({
                        "type": "tool_result",
                        "tool_use_id": part.call_id,
                        "content": part.output,
                        "is_error": part.is_error,
                    })
            if not blocks:
                continue

            role = "assistant" if msg.role == "assistant" else "user"
            if anthropic_messages and anthropic_messages[-1]["role"] == role:
                anthropic_messages[-1]["content"].extend(blocks)
            else:
                anthropic_messages.append({"role": role, "content": blocks})
        return anthropic_messages

    def _convert_tool(self, tool: dict) -> dict:
        return {
            "name": tool["name"],
            "description": tool["description"],
            "input_schema": tool["input_schema"],
        }
