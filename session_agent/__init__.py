from session_agent.adaptors.openai import OpenAIAdaptor
from session_agent.agent import (
    Agent,
    ConfirmationRequested,
    FinalAnswer,
    LoopError,
    LoopState,
    TextChunk,
    ToolFinished,
    ToolStarted,
)
from session_agent.builtin_tools import default_catalog
from session_agent.exceptions import (
    AgentRuntimeError,
    ConfirmationNotFound,
    InvalidTrigger,
    ModelEndpointError,
    SchedulerError,
    SessionBusy,
    TaskAlreadyTerminal,
    TaskNotFound,
    ToolNotFound,
    ToolValidationError,
)
from session_agent.execution import (
    Execution,
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)
from session_agent.executor import Failure, Success, ToolExecutor, ToolOutcome
from session_agent.hooks import (
    AfterModelCallEventData,
    AfterRunEventData,
    AfterStepEventData,
    AfterToolCallEventData,
    BeforeModelCallEventData,
    BeforeRunEventData,
    BeforeStepEventData,
    BeforeToolCallEventData,
    HookEvent,
    HookRegistry,
    HookResponse,
    Middleware,
    OnToolErrorEventData,
)
from session_agent.model import (
    ModelAdaptor,
    ModelDone,
    ModelEvent,
    TextDelta,
    ToolCallRequest,
)
from session_agent.sanitizer import sanitize_messages
from session_agent.scheduler import (
    AfterTrigger,
    AtTrigger,
    CronTrigger,
    ScheduledTask,
    SchedulerStore,
    Trigger,
)
from session_agent.session import PendingConfirmation, Session, SessionContext
from session_agent.state import SessionStateStore
from session_agent.storage import InMemoryStore, JsonFileStore, KeyValueStore
from session_agent.streaming import StreamEvent, StreamResponder
from session_agent.tools import Tool, ToolCatalog, ToolInput

__all__ = [
    # Core
    "Agent",
    "Session",
    "SessionContext",
    "PendingConfirmation",
    "Execution",
    "LoopState",
    "Message",
    "TextPart",
    "ToolCallPart",
    "ToolResultPart",
    "sanitize_messages",
    # Model boundary
    "ModelAdaptor",
    "ModelEvent",
    "ModelDone",
    "TextDelta",
    "ToolCallRequest",
    "OpenAIAdaptor",
    # Tools
    "Tool",
    "ToolInput",
    "ToolCatalog",
    "ToolExecutor",
    "ToolOutcome",
    "Success",
    "Failure",
    "default_catalog",
    # Stores
    "KeyValueStore",
    "InMemoryStore",
    "JsonFileStore",
    "SessionStateStore",
    "SchedulerStore",
    "ScheduledTask",
    "Trigger",
    "AtTrigger",
    "AfterTrigger",
    "CronTrigger",
    # Streaming
    "StreamEvent",
    "StreamResponder",
    "TextChunk",
    "ToolStarted",
    "ToolFinished",
    "ConfirmationRequested",
    "FinalAnswer",
    "LoopError",
    # Hooks
    "HookRegistry",
    "HookEvent",
    "HookResponse",
    "Middleware",
    # Hook Event Data
    "BeforeRunEventData",
    "AfterRunEventData",
    "BeforeStepEventData",
    "AfterStepEventData",
    "BeforeModelCallEventData",
    "AfterModelCallEventData",
    "BeforeToolCallEventData",
    "AfterToolCallEventData",
    "OnToolErrorEventData",
    # Exceptions
    "AgentRuntimeError",
    "ConfirmationNotFound",
    "InvalidTrigger",
    "ModelEndpointError",
    "SchedulerError",
    "SessionBusy",
    "TaskAlreadyTerminal",
    "TaskNotFound",
    "ToolNotFound",
    "ToolValidationError",
]

# Conditional import for the optional SDK-based adaptor
try:
    from session_agent.adaptors.anthropic import AnthropicAdaptor

    __all__.append("AnthropicAdaptor")
except ImportError:
    pass
