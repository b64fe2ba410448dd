import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Optional, Union

from pydantic import ValidationError

from session_agent.exceptions import ToolValidationError
from session_agent.tools import ToolCatalog

if TYPE_CHECKING:
    from session_agent.hooks import HookRegistry
    from session_agent.session import SessionContext

logger = logging.getLogger(__name__)

DECLINED_MESSAGE = "User declined to run this tool."


@dataclass(frozen=True)
class Success:
    value: Any
    ok: bool = True

    def as_text(self) -> str:
        if isinstance(self.value, str):
            return self.value
        return json.dumps(self.value, default=str)


@dataclass(frozen=True)
class Failure:
    message: str
    kind: Literal["validation", "execution", "declined"] = "execution"
    ok: bool = False

    def as_text(self) -> str:
        return self.message


ToolOutcome = Union[Success, Failure]


class ToolExecutor:
    """Runs catalog tools against validated input.

    Handler errors never propagate: they come back as ``Failure`` so the
    model sees them as text. Only an unknown tool name raises.
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        hooks: Optional["HookRegistry"] = None,
        max_tool_attempts: int = 3,
    ):
        if hooks is None:
            from session_agent.hooks import HookRegistry

            hooks = HookRegistry()
        self.catalog = catalog
        self.hooks = hooks
        self.max_tool_attempts = max_tool_attempts

    async def execute(
        self,
        tool_name: str,
        arguments: dict,
        context: "SessionContext",
        call_id: Optional[str] = None,
    ) -> ToolOutcome:
        """Run an auto-kind tool. Raises ToolNotFound for unknown names."""
        tool = self.catalog.get(tool_name)
        if tool.execution_kind != "auto":
            return Failure(
                f"Tool '{tool_name}' requires user confirmation before it can run",
                kind="execution",
            )
        return await self._run(tool_name, arguments, context, call_id, tool.execute)

    async def execute_confirmed(
        self,
        tool_name: str,
        arguments: dict,
        context: "SessionContext",
        call_id: Optional[str] = None,
    ) -> ToolOutcome:
        """Run the confirmation implementation of an approved confirm-kind tool."""
        handler = self.catalog.confirmation_for(tool_name)
        return await self._run(tool_name, arguments, context, call_id, handler)

    async def _run(self, tool_name, arguments, context, call_id, handler) -> ToolOutcome:
        from session_agent.hooks import (
            AfterToolCallEventData,
            BeforeToolCallEventData,
            OnToolErrorEventData,
        )

        tool = self.catalog.get(tool_name)
        session_id = getattr(context, "session_id", None)
        start = time.time()

        before = await self.hooks.trigger(
            "before_tool_call",
            BeforeToolCallEventData(
                session_id=session_id,
                tool_name=tool_name,
                arguments=arguments,
                call_id=call_id,
            ),
        )

        if before and before.wants_skip:
            outcome: ToolOutcome = Success(before.cached_result)
        else:
            attempt = 0
            while True:
                attempt += 1
                try:
                    validated = tool.input_model.model_validate(arguments)
                except ValidationError as e:
                    error: Exception = ToolValidationError(
                        tool_name,
                        [{"loc": err["loc"], "msg": err["msg"]} for err in e.errors()],
                    )
                    outcome = Failure(str(error), kind="validation")
                else:
                    try:
                        value = await handler(context, **validated.model_dump())
                        outcome = Success(value)
                        break
                    except Exception as e:
                        error = e
                        outcome = Failure(f"Error: {e}", kind="execution")

                logger.warning(
                    f"Tool '{tool_name}' failed (attempt {attempt}): {outcome.message}"
                )
                hook_response = await self.hooks.trigger(
                    "on_tool_error",
                    OnToolErrorEventData(
                        session_id=session_id,
                        tool_name=tool_name,
                        arguments=arguments,
                        error=error,
                        error_message=str(error),
                        attempt=attempt,
                    ),
                )
                if (
                    hook_response
                    and hook_response.wants_retry
                    and attempt < self.max_tool_attempts
                    and (outcome.kind != "validation" or hook_response.arguments)
                ):
                    if hook_response.delay_ms:
                        await asyncio.sleep(hook_response.delay_ms / 1000)
                    if hook_response.arguments:
                        arguments = hook_response.arguments
                    continue
                break

        await self.hooks.trigger(
            "after_tool_call",
            AfterToolCallEventData(
                session_id=session_id,
                tool_name=tool_name,
                arguments=arguments,
                outcome=outcome,
                result=outcome.as_text(),
                execution_time_ms=(time.time() - start) * 1000,
            ),
        )
        return outcome
