from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Union

from session_agent.execution import Message


@dataclass
class TextDelta:
    text: str


@dataclass
class ToolCallRequest:
    call_id: str
    tool_name: str
    arguments: dict = field(default_factory=dict)


@dataclass
class ModelDone:
    stop_reason: Optional[str] = None


ModelEvent = Union[TextDelta, ToolCallRequest, ModelDone]


class ModelAdaptor:
    def stream(
        self,
        messages: list[Message],
        tools: list[dict],
        step_limit_hint: Optional[int] = None,
        **kwargs,
    ) -> AsyncIterator[ModelEvent]:
        """Stream the model's reply to ``messages`` given tool descriptors.

        Implementations are async generators yielding text deltas and
        complete tool-call requests, ending with ``ModelDone``. Endpoint
        failures are raised as ``ModelEndpointError``.
        """
        raise NotImplementedError
