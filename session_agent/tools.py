from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal, Optional

from pydantic import BaseModel

from session_agent.exceptions import ToolNotFound

if TYPE_CHECKING:
    from session_agent.session import SessionContext


ExecutionKind = Literal["auto", "confirm"]

# Implementation run by the confirmation flow after a human approves the call.
ConfirmationHandler = Callable[..., Awaitable[Any]]


class ToolInput(BaseModel):
    """Subclass this for tool-specific input validation."""


class Tool:
    name: str
    description: str
    input_model: type[BaseModel]
    execution_kind: ExecutionKind = "auto"
    # Set when the handler writes session state or the schedule table;
    # rounds containing such a tool run their calls one at a time.
    mutates_state: bool = False

    def schema(self) -> dict:
        """Return JSON schema from Pydantic model."""
        return self.input_model.model_json_schema()

    def descriptor(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.schema(),
        }

    async def execute(self, context: "SessionContext", **kwargs) -> Any:
        """Execute tool. Always async; sync tools wrap sync code.

        Pydantic validates inputs before this is called. Confirm-kind tools
        leave this unimplemented; their logic lives in the catalog's
        confirmation table.
        """
        raise NotImplementedError


class ToolCatalog:
    """Immutable registry of the tools advertised to the model."""

    def __init__(
        self,
        tools: list[Tool],
        confirmations: Optional[dict[str, ConfirmationHandler]] = None,
    ):
        by_name: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in by_name:
                raise ValueError(f"Duplicate tool name '{tool.name}'")
            by_name[tool.name] = tool
        confirmations = dict(confirmations or {})

        for name, tool in by_name.items():
            if tool.execution_kind == "confirm" and name not in confirmations:
                raise ValueError(
                    f"Tool '{name}' requires confirmation but has no confirmation handler"
                )
        for name in confirmations:
            if name not in by_name or by_name[name].execution_kind != "confirm":
                raise ValueError(
                    f"Confirmation handler '{name}' does not match a confirm-kind tool"
                )

        self._tools = by_name
        self._confirmations = confirmations

    def __iter__(self):
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFound(f"Tool '{name}' not found") from None

    def requires_confirmation(self, name: str) -> bool:
        return self.get(name).execution_kind == "confirm"

    def confirmation_for(self, name: str) -> ConfirmationHandler:
        self.get(name)
        try:
            return self._confirmations[name]
        except KeyError:
            raise ToolNotFound(f"Tool '{name}' has no confirmation handler") from None

    def descriptors(self) -> list[dict]:
        return [tool.descriptor() for tool in self._tools.values()]
