import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from session_agent.agent import Agent, FinalAnswer, ToolFinished
from session_agent.exceptions import ConfirmationNotFound, SessionBusy
from session_agent.execution import Execution, Message, ToolCallPart, ToolResultPart
from session_agent.executor import DECLINED_MESSAGE, Failure
from session_agent.scheduler import ScheduledTask, SchedulerStore
from session_agent.state import SessionStateStore
from session_agent.storage import KeyValueStore
from session_agent.streaming import StreamEvent, StreamResponder

logger = logging.getLogger(__name__)

TaskHandler = Callable[[ScheduledTask], Awaitable[Any]]


@dataclass
class SessionContext:
    """Everything a tool handler may touch, passed explicitly."""

    session_id: str
    state: SessionStateStore
    scheduler: SchedulerStore


@dataclass
class PendingConfirmation:
    call_id: str
    tool_name: str
    arguments: dict


class Session:
    """One conversation: its message log, state, schedule and active loop.

    At most one loop runs per session; a second ``send`` or
    ``resolve_confirmation`` while one is streaming raises ``SessionBusy``
    when iteration starts.
    """

    def __init__(
        self,
        session_id: str,
        agent: Agent,
        store: KeyValueStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_id = session_id
        self.agent = agent
        self.store = store
        self.state = SessionStateStore(store, session_id)
        self.scheduler = SchedulerStore(store, session_id, clock=clock)
        self.context = SessionContext(session_id, self.state, self.scheduler)
        self.log_key = f"session:{session_id}:messages"
        self.task_handlers: dict[str, TaskHandler] = {
            "execute_task": self.execute_task,
        }
        self._active = False
        self._deferred: list[Message] = []

    @property
    def busy(self) -> bool:
        return self._active

    def register_task_handler(self, name: str, handler: TaskHandler) -> None:
        self.task_handlers[name] = handler

    async def history(self) -> list[Message]:
        rows = await self.store.get(self.log_key) or []
        return [Message.from_dict(row) for row in rows]

    async def append(self, message: Message) -> None:
        await self.store.append(self.log_key, message.to_dict())

    def _acquire(self) -> None:
        if self._active:
            raise SessionBusy(f"Session '{self.session_id}' already has an active request")
        self._active = True

    async def _release(self) -> None:
        self._active = False
        deferred, self._deferred = self._deferred, []
        for message in deferred:
            await self.append(message)

    async def send(
        self,
        message: Union[str, Message],
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Append a user message and stream the agent's reply."""
        self._acquire()
        try:
            if isinstance(message, str):
                message = Message.user(message)
            await self.append(message)
            history = await self.history()
            async for event in self._stream(history, [], cancel):
                yield event
        finally:
            await self._release()

    async def _stream(
        self,
        history: list[Message],
        preamble: list,
        cancel: Optional[asyncio.Event],
    ) -> AsyncIterator[StreamEvent]:
        execution = Execution(messages=list(history))

        async def events():
            for event in preamble:
                yield event
                if isinstance(event, FinalAnswer):
                    return
            async for event in self.agent.stream(
                history, self.context, cancel, execution=execution
            ):
                yield event

        responder = StreamResponder(cancel)
        try:
            async for event in responder.respond(events()):
                yield event
        finally:
            for produced in execution.new_messages:
                await self.append(produced)

    def _pending(self, history: list[Message]) -> list[ToolCallPart]:
        # Only calls issued since the last user message can still be confirmed.
        answered = set()
        calls: list[ToolCallPart] = []
        for msg in reversed(history):
            if msg.role == "user":
                break
            answered.update(p.call_id for p in msg.tool_results)
            calls[:0] = msg.tool_calls
        return [
            c
            for c in calls
            if c.call_id not in answered
            and c.tool_name in self.agent.catalog
            and self.agent.catalog.requires_confirmation(c.tool_name)
        ]

    async def pending_confirmations(self) -> list[PendingConfirmation]:
        return [
            PendingConfirmation(c.call_id, c.tool_name, dict(c.arguments))
            for c in self._pending(await self.history())
        ]

    async def resolve_confirmation(
        self,
        call_id: str,
        approved: bool,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run or decline a confirm-kind call, then resume the loop.

        While other confirmations remain open the stream ends with a
        ``final`` event listing them instead of resuming.
        """
        self._acquire()
        try:
            history = await self.history()
            pending = self._pending(history)
            call = next((c for c in pending if c.call_id == call_id), None)
            if call is None:
                raise ConfirmationNotFound(f"No pending confirmation for call '{call_id}'")

            if approved:
                outcome = await self.agent.executor.execute_confirmed(
                    call.tool_name, call.arguments, self.context, call_id=call.call_id
                )
            else:
                logger.info(f"Session {self.session_id}: user declined {call.tool_name}")
                outcome = Failure(DECLINED_MESSAGE, kind="declined")

            result = Message(
                role="tool",
                parts=[
                    ToolResultPart(
                        call_id=call.call_id,
                        tool_name=call.tool_name,
                        output=outcome.as_text(),
                        is_error=not outcome.ok,
                    )
                ],
            )
            await self.append(result)
            history.append(result)

            preamble: list = [ToolFinished(call.call_id, call.tool_name, outcome)]
            remaining = [c.call_id for c in pending if c.call_id != call_id]
            if remaining:
                preamble.append(
                    FinalAnswer(
                        text="",
                        state="awaiting_confirmation",
                        pending_confirmations=remaining,
                    )
                )
            async for event in self._stream(history, preamble, cancel):
                yield event
        finally:
            await self._release()

    async def execute_task(self, task: ScheduledTask) -> None:
        """Default scheduled-task handler: post the task into the conversation."""
        payload = task.payload
        if isinstance(payload, dict):
            description = payload.get("description") or task.handler_name
        else:
            description = str(payload) if payload is not None else task.handler_name
        message = Message.user(f"Running scheduled task: {description}")
        if self._active:
            # Keep the in-flight turn contiguous; posted when it finishes.
            self._deferred.append(message)
        else:
            await self.append(message)

    async def _dispatch(self, task: ScheduledTask) -> None:
        handler = self.task_handlers.get(task.handler_name)
        if handler is None:
            raise LookupError(f"No handler registered for '{task.handler_name}'")
        await handler(task)

    async def fire_due_tasks(self, now: Optional[datetime] = None) -> list[ScheduledTask]:
        """Entry point for the external timer: dispatch everything due."""
        return await self.scheduler.fire_due(self._dispatch, now)
