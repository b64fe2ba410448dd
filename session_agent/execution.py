import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Union


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex[:16]}"


@dataclass
class TextPart:
    text: str
    type: str = field(default="text", init=False)


@dataclass
class ToolCallPart:
    call_id: str
    tool_name: str
    arguments: dict
    type: str = field(default="tool_call", init=False)


@dataclass
class ToolResultPart:
    call_id: str
    tool_name: str
    output: str
    is_error: bool = False
    type: str = field(default="tool_result", init=False)


Part = Union[TextPart, ToolCallPart, ToolResultPart]


def part_to_dict(part: Part) -> dict:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ToolCallPart):
        return {
            "type": "tool_call",
            "call_id": part.call_id,
            "tool_name": part.tool_name,
            "arguments": part.arguments,
        }
    return {
        "type": "tool_result",
        "call_id": part.call_id,
        "tool_name": part.tool_name,
        "output": part.output,
        "is_error": part.is_error,
    }


def part_from_dict(data: dict) -> Part:
    kind = data.get("type")
    if kind == "text":
        return TextPart(text=data.get("text", ""))
    if kind == "tool_call":
        return ToolCallPart(
            call_id=data["call_id"],
            tool_name=data["tool_name"],
            arguments=data.get("arguments") or {},
        )
    if kind == "tool_result":
        return ToolResultPart(
            call_id=data["call_id"],
            tool_name=data.get("tool_name", ""),
            output=data.get("output", ""),
            is_error=data.get("is_error", False),
        )
    raise ValueError(f"Unknown message part type: {kind!r}")


@dataclass
class Message:
    role: str  # "user" | "assistant" | "tool"
    parts: list[Part] = field(default_factory=list)
    id: str = field(default_factory=lambda: new_id("msg_"))
    created_at: float = field(default_factory=time.time)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", parts=[TextPart(text)])

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role="assistant", parts=[TextPart(text)] if text else [])

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        return [p for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def tool_results(self) -> list[ToolResultPart]:
        return [p for p in self.parts if isinstance(p, ToolResultPart)]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "parts": [part_to_dict(p) for p in self.parts],
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            id=data["id"],
            role=data["role"],
            parts=[part_from_dict(p) for p in data.get("parts", [])],
            created_at=data.get("created_at", time.time()),
        )


@dataclass
class Execution:
    messages: list[Message] = field(default_factory=list)
    new_messages: list[Message] = field(default_factory=list)
    response: str = ""
    steps: int = 0
    model_calls: int = 0
    # "running" | "completed" | "max_steps" | "awaiting_confirmation" | "cancelled" | "failed"
    state: str = "running"
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
