class AgentRuntimeError(Exception):
    """Base exception for session-agent errors."""


class ToolValidationError(AgentRuntimeError):
    """Raised when tool input fails Pydantic validation."""

    def __init__(self, tool_name: str, errors: list[dict]):
        self.tool_name = tool_name
        self.errors = errors
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or '<input>'}: {err.get('msg')}"
            for err in errors
        )
        super().__init__(f"Invalid input for tool '{tool_name}': {details}")


class ToolNotFound(AgentRuntimeError):
    """Raised when model calls a tool that doesn't exist."""


class SchedulerError(AgentRuntimeError):
    """Base class for scheduled-task errors."""


class TaskNotFound(SchedulerError):
    """Raised when a task id is unknown for the session."""


class TaskAlreadyTerminal(SchedulerError):
    """Raised when a task is no longer pending."""


class InvalidTrigger(SchedulerError):
    """Raised when a trigger is in the past, negative or unparseable."""


class ModelEndpointError(AgentRuntimeError):
    """Raised when the model endpoint fails (network, timeout, 5xx)."""


class SessionBusy(AgentRuntimeError):
    """Raised when a session already has an active loop."""


class ConfirmationNotFound(AgentRuntimeError):
    """Raised when resolving a confirmation that is not pending."""
