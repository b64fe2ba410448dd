"""Caller-facing event stream.

Turns the loop's events into ``StreamEvent`` records of type text,
tool_start, tool_result, final or error, in exactly the order the loop
produced them.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Literal, Optional

from session_agent.agent import (
    AgentEvent,
    ConfirmationRequested,
    FinalAnswer,
    LoopError,
    TextChunk,
    ToolFinished,
    ToolStarted,
)

StreamEventType = Literal["text", "tool_start", "tool_result", "final", "error"]


@dataclass
class StreamEvent:
    type: StreamEventType
    payload: Any
    sequence: int = 0

    def to_dict(self) -> dict:
        return {"type": self.type, "payload": self.payload, "sequence": self.sequence}

    def to_sse(self) -> str:
        """Encode as a server-sent event frame."""
        return f"event: {self.type}\ndata: {json.dumps(self.to_dict(), default=str)}\n\n"


def to_stream_event(event: AgentEvent) -> StreamEvent:
    if isinstance(event, TextChunk):
        return StreamEvent("text", event.text)
    if isinstance(event, ToolStarted):
        return StreamEvent(
            "tool_start",
            {
                "call_id": event.call_id,
                "tool_name": event.tool_name,
                "arguments": event.arguments,
                "requires_confirmation": False,
            },
        )
    if isinstance(event, ConfirmationRequested):
        return StreamEvent(
            "tool_start",
            {
                "call_id": event.call_id,
                "tool_name": event.tool_name,
                "arguments": event.arguments,
                "requires_confirmation": True,
            },
        )
    if isinstance(event, ToolFinished):
        return StreamEvent(
            "tool_result",
            {
                "call_id": event.call_id,
                "tool_name": event.tool_name,
                "ok": event.outcome.ok,
                "output": event.outcome.as_text(),
            },
        )
    if isinstance(event, FinalAnswer):
        return StreamEvent(
            "final",
            {
                "text": event.text,
                "state": event.state,
                "pending_confirmations": list(event.pending_confirmations),
            },
        )
    if isinstance(event, LoopError):
        return StreamEvent(
            "error",
            {"message": event.message, "kind": type(event.error).__name__},
        )
    raise TypeError(f"Unknown loop event {event!r}")


class StreamResponder:
    """Forwards loop events to the caller until the stream ends or is cancelled.

    On cancellation nothing further is forwarded and no ``final`` event
    is sent; events already delivered stay delivered.
    """

    def __init__(self, cancel: Optional[asyncio.Event] = None):
        self.cancel = cancel
        self._sequence = 0

    async def respond(self, events: AsyncIterator[AgentEvent]) -> AsyncIterator[StreamEvent]:
        try:
            async for event in events:
                if self.cancel is not None and self.cancel.is_set():
                    return
                out = to_stream_event(event)
                self._sequence += 1
                out.sequence = self._sequence
                yield out
                if out.type in ("final", "error"):
                    return
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()
