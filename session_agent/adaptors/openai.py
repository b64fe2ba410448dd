"""OpenAI-compatible streaming adaptor for session-agent."""

import json
import logging
import os
from typing import AsyncIterator, Optional

import httpx

from session_agent.exceptions import ModelEndpointError
from session_agent.execution import (
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    new_id,
)
from session_agent.model import (
    ModelAdaptor,
    ModelDone,
    ModelEvent,
    TextDelta,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)


class OpenAIAdaptor(ModelAdaptor):
    """OpenAI-compatible model adaptor using chat-completions streaming.

    Supports OpenAI API and compatible endpoints (local models, proxies, etc.).

    Args:
        api_key: OpenAI API key. Falls back to OPENAI_API_KEY environment variable.
        model: Model name (default: gpt-5-mini).
        base_url: Base URL for the API (default: https://api.openai.com/v1).
        system_prompt: Optional system message prepended to every request.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-5-mini",
        base_url: Optional[str] = None,
        system_prompt: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OpenAI API key not provided. "
                "Pass api_key argument or set OPENAI_API_KEY environment variable."
            )

        self.model = model
        self.base_url = base_url or "https://api.openai.com/v1"
        self.system_prompt = system_prompt
        self.timeout = timeout

    async def stream(
        self,
        messages: list[Message],
        tools: list[dict],
        step_limit_hint: Optional[int] = None,
        **kwargs,
    ) -> AsyncIterator[ModelEvent]:
        """Stream a chat completion as session-agent model events.

        Raises:
            ModelEndpointError: If the request fails or the API returns an error.
        """
        payload = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "stream": True,
        }
        if tools:
            payload["tools"] = [self._convert_tool(tool) for tool in tools]
            payload["tool_choice"] = kwargs.get("tool_choice", "auto")

        try:
            async with httpx.AsyncClient(timeout=kwargs.get("timeout", self.timeout)) as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                ) as response:
                    if response.status_code != 200:
                        body = await response.aread()
                        raise ModelEndpointError(
                            f"OpenAI API error ({response.status_code}): "
                            f"{self._error_message(body)}"
                        )

                    pending: dict[int, dict] = {}
                    finish_reason = None
                    async for line in response.aiter_lines():
                        chunk = self._parse_line(line)
                        if chunk is None:
                            continue
                        if chunk == "[DONE]":
                            break
                        for choice in chunk.get("choices", []):
                            delta = choice.get("delta") or {}
                            if delta.get("content"):
                                yield TextDelta(delta["content"])
                            for tc in delta.get("tool_calls") or []:
                                self._accumulate_tool_call(pending, tc)
                            if choice.get("finish_reason"):
                                finish_reason = choice["finish_reason"]
        except httpx.HTTPError as e:
            raise ModelEndpointError(f"OpenAI request failed: {e}") from e

        for index in sorted(pending):
            yield self._build_tool_call(pending[index])
        yield ModelDone(stop_reason=finish_reason)

    def _parse_line(self, line: str):
        line = line.strip()
        if not line.startswith("data:"):
            return None
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return data
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            raise ModelEndpointError(f"Malformed stream chunk from OpenAI: {data!r}") from e

    def _error_message(self, body: bytes) -> str:
        try:
            return json.loads(body).get("error", {}).get("message", "Unknown error")
        except (ValueError, AttributeError):
            return body.decode("utf-8", errors="replace") or "Unknown error"

    def _accumulate_tool_call(self, pending: dict[int, dict], tc: dict) -> None:
        """Merge one streamed tool_call fragment into ``pending`` by index."""
        entry = pending.setdefault(tc.get("index", 0), {"id": "", "name": "", "arguments": ""})
        if tc.get("id"):
            entry["id"] = tc["id"]
        function = tc.get("function") or {}
        if function.get("name"):
            entry["name"] += function["name"]
        if function.get("arguments"):
            entry["arguments"] += function["arguments"]

    def _build_tool_call(self, entry: dict) -> ToolCallRequest:
        raw = entry["arguments"] or "{}"
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Unparseable arguments for tool '{entry['name']}': {raw!r}")
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        return ToolCallRequest(
            call_id=entry["id"] or new_id("call_"),
            tool_name=entry["name"],
            arguments=arguments,
        )

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        """Convert session-agent Message objects to OpenAI format.

        Tool results become one ``tool`` message per result.
        """
        openai_messages = []
        if self.system_prompt:
            openai_messages.append({"role": "system", "content": self.system_prompt})
        for msg in messages:
            text = "".join(p.text for p in msg.parts if isinstance(p, TextPart))
            calls = [p for p in msg.parts if isinstance(p, ToolCallPart)]
            results = [p for p in msg.parts if isinstance(p, ToolResultPart)]

            if msg.role == "assistant":
                openai_msg = {"role": "assistant", "content": text or None}
                if calls:
                    openai_msg["tool_calls"] = self._format_tool_calls(calls)
                openai_messages.append(openai_msg)
            elif msg.role == "user" and text:
                openai_messages.append({"role": "user", "content": text})

            for result in results:
                openai_messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.call_id,
                        "content": result.output,
                    }
                )
        return openai_messages

    def _format_tool_calls(self, tool_calls: list[ToolCallPart]) -> list[dict]:
        return [
            {
                "id": call.call_id,
                "type": "function",
                "function": {
                    "name": call.tool_name,
                    "arguments": json.dumps(call.arguments),
                },
            }
            for call in tool_calls
        ]

    def _convert_tool(self, tool: dict) -> dict:
        """Convert a catalog tool descriptor to OpenAI tool format."""
        return {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["input_schema"],
            },
        }
