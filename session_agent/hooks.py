"""Hook points around loop runs, steps, model calls and tool calls.

Handlers are async callables taking one event dataclass. A handler on a
tool hook may return a dict (or ``HookResponse``) to steer the executor:

- ``before_tool_call``: ``{"action": "skip", "cached_result": ...}``
- ``on_tool_error``: ``{"action": "retry", "delay_ms": ..., "arguments": ...}``

``Middleware`` subclasses are unpacked into the same ``HookRegistry``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class HookEvent(str, Enum):
    """Available hook points in a loop invocation."""

    BEFORE_RUN = "before_run"
    AFTER_RUN = "after_run"

    BEFORE_STEP = "before_step"
    AFTER_STEP = "after_step"

    BEFORE_MODEL_CALL = "before_model_call"
    AFTER_MODEL_CALL = "after_model_call"

    BEFORE_TOOL_CALL = "before_tool_call"
    AFTER_TOOL_CALL = "after_tool_call"
    ON_TOOL_ERROR = "on_tool_error"


# ============================================================================
# Hook Event Data Classes
# ============================================================================


@dataclass
class BeforeRunEventData:
    """Called before a loop invocation starts."""

    agent: Any  # Agent instance
    session_id: Optional[str]
    messages: List[Any]
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class AfterRunEventData:
    """Called after a loop invocation ends, whatever its outcome."""

    execution: Any  # Execution instance
    total_time_ms: float
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class BeforeStepEventData:
    """Called before each model-then-tools round."""

    execution: Any
    step: int
    remaining_budget: int


@dataclass
class AfterStepEventData:
    """Called after each round that executed tools."""

    execution: Any
    step: int
    elapsed_time_ms: float


@dataclass
class BeforeModelCallEventData:
    """Called before submitting history to the model."""

    execution: Any
    messages: List[Any]  # sanitized Message objects
    tools: List[Any]  # tool descriptors; empty for the forced final call


@dataclass
class AfterModelCallEventData:
    """Called after the model stream is drained."""

    execution: Any
    text: str
    tool_calls: List[Any]  # ToolCallPart objects
    response_time_ms: float


@dataclass
class BeforeToolCallEventData:
    """Called before executing a tool."""

    session_id: Optional[str]
    tool_name: str
    arguments: Dict[str, Any]
    call_id: Optional[str] = None


@dataclass
class AfterToolCallEventData:
    """Called after a tool produced an outcome."""

    session_id: Optional[str]
    tool_name: str
    arguments: Dict[str, Any]
    outcome: Any  # ToolOutcome
    result: str
    execution_time_ms: float


@dataclass
class OnToolErrorEventData:
    """Called when validation or the tool handler fails."""

    session_id: Optional[str]
    tool_name: str
    arguments: Dict[str, Any]
    error: Exception
    error_message: str
    attempt: int


# ============================================================================
# Hook Response
# ============================================================================

RESPONSE_ACTIONS = ("retry", "skip")


@dataclass
class HookResponse:
    """Instruction returned by a tool hook."""

    action: Optional[str] = None
    cached_result: Optional[str] = None  # skip: stands in for the tool output
    arguments: Optional[Dict[str, Any]] = None  # retry: replacement input
    delay_ms: Optional[int] = None  # retry: pause before the next attempt

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["HookResponse"]:
        if data is None:
            return None
        if isinstance(data, HookResponse):
            return data
        response = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        if response.action is not None and response.action not in RESPONSE_ACTIONS:
            logger.warning(f"Ignoring unknown hook action '{response.action}'")
            response.action = None
        return response

    @property
    def wants_skip(self) -> bool:
        return self.action == "skip" and self.cached_result is not None

    @property
    def wants_retry(self) -> bool:
        return self.action == "retry"


# ============================================================================
# Hook Registry
# ============================================================================


class HookRegistry:
    """Handlers per hook point, run in registration order.

    ``trigger`` stops at the first handler that returns something and
    hands that back as a ``HookResponse``. A handler that raises is logged
    and skipped; it never fails the tool call or the loop.

        hooks = HookRegistry()

        @hooks.on("after_tool_call")
        async def log_tool(event):
            print(event.tool_name, event.result)
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {event.value: [] for event in HookEvent}

    def on(self, hook_name: str):
        def decorator(func: Callable) -> Callable:
            self.register_handler(hook_name, func)
            return func

        return decorator

    def register_handler(self, hook_name: str, handler: Callable) -> None:
        """Raises ValueError for a name that is not a ``HookEvent`` value."""
        if hook_name not in self._handlers:
            valid_hooks = [e.value for e in HookEvent]
            raise ValueError(f"Invalid hook name '{hook_name}'. Valid hooks: {valid_hooks}")
        self._handlers[hook_name].append(handler)

    async def trigger(self, hook_name: str, event_data: Any) -> Optional[HookResponse]:
        for handler in self._handlers.get(hook_name, []):
            try:
                result = await handler(event_data)
            except Exception as e:
                name = getattr(handler, "__qualname__", repr(handler))
                logger.warning(f"Hook '{hook_name}' handler {name} raised: {e}")
                continue
            if result is not None:
                return HookResponse.from_dict(result)
        return None

    def has_handlers(self, hook_name: str) -> bool:
        return bool(self._handlers.get(hook_name))

    def clear(self) -> None:
        for hook_name in self._handlers:
            self._handlers[hook_name] = []


# ============================================================================
# Middleware
# ============================================================================


class Middleware:
    """Stateful handler set: override the methods named after hook points.

        class Timing(Middleware):
            async def after_step(self, event):
                print(event.step, event.elapsed_time_ms)

        Agent(model=model, catalog=catalog, middlewares=[Timing()])
    """

    async def before_run(self, event: BeforeRunEventData) -> Optional[Dict]:
        pass

    async def after_run(self, event: AfterRunEventData) -> Optional[Dict]:
        pass

    async def before_step(self, event: BeforeStepEventData) -> Optional[Dict]:
        pass

    async def after_step(self, event: AfterStepEventData) -> Optional[Dict]:
        pass

    async def before_model_call(self, event: BeforeModelCallEventData) -> Optional[Dict]:
        pass

    async def after_model_call(self, event: AfterModelCallEventData) -> Optional[Dict]:
        pass

    async def before_tool_call(self, event: BeforeToolCallEventData) -> Optional[Dict]:
        pass

    async def after_tool_call(self, event: AfterToolCallEventData) -> Optional[Dict]:
        pass

    async def on_tool_error(self, event: OnToolErrorEventData) -> Optional[Dict]:
        pass
