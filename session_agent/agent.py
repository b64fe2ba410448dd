import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional, Union

from session_agent.exceptions import ModelEndpointError, ToolNotFound
from session_agent.execution import (
    Execution,
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)
from session_agent.executor import ToolExecutor, ToolOutcome
from session_agent.model import ModelAdaptor, ModelDone, TextDelta, ToolCallRequest
from session_agent.sanitizer import sanitize_messages
from session_agent.tools import ToolCatalog

if TYPE_CHECKING:
    from session_agent.hooks import HookRegistry, Middleware
    from session_agent.session import SessionContext

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    SUBMITTING = "submitting"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    FINALIZING = "finalizing"


# ============================================================================
# Loop events
# ============================================================================


@dataclass
class TextChunk:
    text: str


@dataclass
class ToolStarted:
    call_id: str
    tool_name: str
    arguments: dict


@dataclass
class ToolFinished:
    call_id: str
    tool_name: str
    outcome: ToolOutcome


@dataclass
class ConfirmationRequested:
    call_id: str
    tool_name: str
    arguments: dict


@dataclass
class FinalAnswer:
    text: str
    state: str
    pending_confirmations: list[str] = field(default_factory=list)


@dataclass
class LoopError:
    message: str
    error: Exception


AgentEvent = Union[
    TextChunk, ToolStarted, ToolFinished, ConfirmationRequested, FinalAnswer, LoopError
]


def _cancelled(cancel: Optional[asyncio.Event]) -> bool:
    return cancel is not None and cancel.is_set()


class Agent:
    def __init__(
        self,
        model: ModelAdaptor,
        catalog: ToolCatalog,
        max_steps: int = 10,
        name: str = "Agent",
        hooks: Optional["HookRegistry"] = None,
        middlewares: Optional[list["Middleware"]] = None,
        max_tool_attempts: int = 3,
    ):
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.model = model
        self.catalog = catalog
        self.max_steps = max_steps
        self.name = name

        # ALWAYS use HookRegistry as the foundation
        # User can pass one, or we create an internal one
        if hooks is None:
            from session_agent.hooks import HookRegistry

            hooks = HookRegistry()
        self.hooks = hooks

        # Middleware is syntactic sugar over the same HookRegistry
        if middlewares:
            self._register_middlewares(middlewares)

        self.executor = ToolExecutor(
            catalog, hooks=self.hooks, max_tool_attempts=max_tool_attempts
        )

    def _register_middlewares(self, middlewares: list["Middleware"]) -> None:
        """Convert middleware instances to HookRegistry handlers."""
        from session_agent.hooks import HookEvent

        hook_names = [e.value for e in HookEvent]
        for middleware in middlewares:
            for hook_name in hook_names:
                handler = getattr(middleware, hook_name, None)
                if handler is not None and asyncio.iscoroutinefunction(handler):
                    self.hooks.register_handler(hook_name, handler)

    def hook(self, hook_name: str):
        """Decorator for registering hooks directly on agent.

        Usage:
            @agent.hook('after_tool_call')
            async def log_tool(event):
                print(f"Tool: {event.tool_name}")
        """
        return self.hooks.on(hook_name)

    def run(
        self,
        messages: list[Message],
        context: "SessionContext",
        cancel: Optional[asyncio.Event] = None,
    ) -> Execution:
        """Run agent synchronously."""
        return asyncio.run(self.run_async(messages, context, cancel))

    async def run_async(
        self,
        messages: list[Message],
        context: "SessionContext",
        cancel: Optional[asyncio.Event] = None,
    ) -> Execution:
        """Drain the loop and return its execution record."""
        execution = Execution(messages=list(messages))
        async for _ in self.stream(messages, context, cancel, execution=execution):
            pass
        return execution

    async def stream(
        self,
        messages: list[Message],
        context: "SessionContext",
        cancel: Optional[asyncio.Event] = None,
        execution: Optional[Execution] = None,
    ) -> AsyncIterator[AgentEvent]:
        """Run the step-bounded tool loop, yielding events as they happen.

        The caller's ``messages`` are never mutated; everything the loop
        produces is collected in ``execution.new_messages``.
        """
        from session_agent.hooks import AfterRunEventData, BeforeRunEventData

        if execution is None:
            execution = Execution(messages=list(messages))
        start_time = time.time()

        await self.hooks.trigger(
            "before_run",
            BeforeRunEventData(
                agent=self,
                session_id=getattr(context, "session_id", None),
                messages=list(messages),
            ),
        )
        loop = self._loop(execution, context, cancel)
        try:
            async for event in loop:
                yield event
        finally:
            await loop.aclose()
            if execution.state == "running":
                execution.state = "cancelled"
            await self.hooks.trigger(
                "after_run",
                AfterRunEventData(
                    execution=execution,
                    total_time_ms=(time.time() - start_time) * 1000,
                ),
            )

    def _enter(self, execution: Execution, state: LoopState) -> None:
        execution.metadata["loop_state"] = state.value
        logger.debug(f"{self.name}: step {execution.steps + 1} -> {state.value}")

    def _append(self, execution: Execution, message: Message) -> None:
        execution.messages.append(message)
        execution.new_messages.append(message)

    async def _loop(
        self,
        execution: Execution,
        context: "SessionContext",
        cancel: Optional[asyncio.Event],
    ) -> AsyncIterator[AgentEvent]:
        from session_agent.hooks import (
            AfterModelCallEventData,
            AfterStepEventData,
            BeforeModelCallEventData,
            BeforeStepEventData,
        )

        budget = self.max_steps
        self._enter(execution, LoopState.SUBMITTING)

        while True:
            if _cancelled(cancel):
                execution.state = "cancelled"
                return

            step_start = time.time()
            forced = budget <= 0
            await self.hooks.trigger(
                "before_step",
                BeforeStepEventData(
                    execution=execution,
                    step=execution.steps + 1,
                    remaining_budget=budget,
                ),
            )

            # The forced closing call advertises no tools.
            descriptors = [] if forced else self.catalog.descriptors()
            history = sanitize_messages(execution.messages)
            await self.hooks.trigger(
                "before_model_call",
                BeforeModelCallEventData(
                    execution=execution, messages=history, tools=descriptors
                ),
            )

            self._enter(execution, LoopState.AWAITING_MODEL)
            model_start = time.time()
            text_parts: list[str] = []
            calls: list[ToolCallPart] = []
            stream = self.model.stream(history, descriptors, step_limit_hint=budget)
            try:
                async for model_event in stream:
                    if _cancelled(cancel):
                        execution.state = "cancelled"
                        return
                    if isinstance(model_event, TextDelta):
                        if model_event.text:
                            text_parts.append(model_event.text)
                            yield TextChunk(model_event.text)
                    elif isinstance(model_event, ToolCallRequest):
                        if forced:
                            logger.warning(
                                f"{self.name}: ignoring tool call '{model_event.tool_name}' "
                                "after step budget was exhausted"
                            )
                            continue
                        arguments = model_event.arguments
                        if not isinstance(arguments, dict):
                            if arguments is not None:
                                logger.warning(
                                    f"{self.name}: non-object arguments for "
                                    f"'{model_event.tool_name}': {arguments!r}"
                                )
                            arguments = {}
                        calls.append(
                            ToolCallPart(
                                call_id=model_event.call_id,
                                tool_name=model_event.tool_name,
                                arguments=arguments,
                            )
                        )
                    elif isinstance(model_event, ModelDone):
                        break
            except ModelEndpointError as e:
                execution.state = "failed"
                execution.error = str(e)
                logger.error(f"{self.name}: model endpoint failed: {e}")
                yield LoopError(str(e), e)
                return
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

            execution.model_calls += 1
            execution.steps += 1
            text = "".join(text_parts)
            await self.hooks.trigger(
                "after_model_call",
                AfterModelCallEventData(
                    execution=execution,
                    text=text,
                    tool_calls=list(calls),
                    response_time_ms=(time.time() - model_start) * 1000,
                ),
            )

            if not calls:
                self._enter(execution, LoopState.FINALIZING)
                if text:
                    self._append(execution, Message.assistant(text))
                execution.response = text
                execution.state = "max_steps" if forced else "completed"
                yield FinalAnswer(text=text, state=execution.state)
                return

            # ExecutingTools
            self._enter(execution, LoopState.EXECUTING_TOOLS)
            try:
                for call in calls:
                    self.catalog.get(call.tool_name)
            except ToolNotFound as e:
                self._append(
                    execution, Message(role="assistant", parts=_text_parts(text) + calls)
                )
                execution.state = "failed"
                execution.error = str(e)
                logger.error(f"{self.name}: {e}")
                yield LoopError(str(e), e)
                return

            auto_calls = [c for c in calls if not self.catalog.requires_confirmation(c.tool_name)]
            confirm_calls = [c for c in calls if self.catalog.requires_confirmation(c.tool_name)]

            leading = _text_parts(text) + auto_calls
            if leading:
                self._append(execution, Message(role="assistant", parts=leading))
            results: list[ToolResultPart] = []
            round_events = self._execute_round(auto_calls, context, cancel, results)
            try:
                async for event in round_events:
                    yield event
            finally:
                await round_events.aclose()
                if results:
                    self._append(execution, Message(role="tool", parts=list(results)))

            if _cancelled(cancel):
                execution.state = "cancelled"
                return

            if confirm_calls:
                # In-flight calls stay as the tail of the history until resolved.
                self._append(execution, Message(role="assistant", parts=list(confirm_calls)))
                for call in confirm_calls:
                    yield ConfirmationRequested(call.call_id, call.tool_name, call.arguments)
                execution.response = text
                execution.state = "awaiting_confirmation"
                yield FinalAnswer(
                    text=text,
                    state=execution.state,
                    pending_confirmations=[c.call_id for c in confirm_calls],
                )
                return

            budget -= 1
            await self.hooks.trigger(
                "after_step",
                AfterStepEventData(
                    execution=execution,
                    step=execution.steps,
                    elapsed_time_ms=(time.time() - step_start) * 1000,
                ),
            )
            self._enter(execution, LoopState.SUBMITTING)

    async def _execute_round(
        self,
        calls: list[ToolCallPart],
        context: "SessionContext",
        cancel: Optional[asyncio.Event],
        results: list[ToolResultPart],
    ) -> AsyncIterator[AgentEvent]:
        """Execute one round of auto tool calls, collecting into ``results``.

        Calls run concurrently unless a tool in the round mutates session
        state or the schedule table, in which case they run in request
        order. Events are always emitted in request order.
        """
        if not calls:
            return

        sequential = len(calls) == 1 or any(
            self.catalog.get(c.tool_name).mutates_state for c in calls
        )

        if sequential:
            for call in calls:
                if _cancelled(cancel):
                    return
                yield ToolStarted(call.call_id, call.tool_name, call.arguments)
                outcome = await self.executor.execute(
                    call.tool_name, call.arguments, context, call_id=call.call_id
                )
                results.append(_result_part(call, outcome))
                yield ToolFinished(call.call_id, call.tool_name, outcome)
            return

        if _cancelled(cancel):
            return
        for call in calls:
            yield ToolStarted(call.call_id, call.tool_name, call.arguments)
        outcomes = await asyncio.gather(
            *(
                self.executor.execute(
                    c.tool_name, c.arguments, context, call_id=c.call_id
                )
                for c in calls
            )
        )
        for call, outcome in zip(calls, outcomes):
            results.append(_result_part(call, outcome))
            yield ToolFinished(call.call_id, call.tool_name, outcome)


def _text_parts(text: str) -> list[Any]:
    return [TextPart(text)] if text else []


def _result_part(call: ToolCallPart, outcome: ToolOutcome) -> ToolResultPart:
    return ToolResultPart(
        call_id=call.call_id,
        tool_name=call.tool_name,
        output=outcome.as_text(),
        is_error=not outcome.ok,
    )
