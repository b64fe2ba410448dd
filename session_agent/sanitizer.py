"""Repair a message history before it is submitted to a model.

A turn interrupted after the model asked for a tool but before the tool
ran leaves a ToolCall with no ToolResult. Endpoints reject such
transcripts, so the sanitizer drops unanswered calls (and results whose
call was never issued), removing messages left empty.
"""

import logging
from dataclasses import replace

from session_agent.execution import Message, ToolCallPart, ToolResultPart

logger = logging.getLogger(__name__)


def sanitize_messages(messages: list[Message]) -> list[Message]:
    """Return a cleaned copy of ``messages``; the input is never mutated.

    Pure and idempotent: sanitizing a clean history yields an equal list.
    """
    answered: set[str] = set()
    issued: set[str] = set()
    for msg in messages:
        for part in msg.parts:
            if isinstance(part, ToolResultPart):
                answered.add(part.call_id)
            elif isinstance(part, ToolCallPart):
                issued.add(part.call_id)

    cleaned: list[Message] = []
    # Walk newest first: interrupted calls are almost always at the tail.
    for msg in reversed(messages):
        kept = []
        for part in msg.parts:
            if isinstance(part, ToolCallPart) and part.call_id not in answered:
                logger.warning(
                    "sanitizer: dropped orphaned tool call %s (%s)",
                    part.call_id,
                    part.tool_name,
                )
                continue
            if isinstance(part, ToolResultPart) and part.call_id not in issued:
                logger.warning(
                    "sanitizer: dropped tool result %s with no matching call",
                    part.call_id,
                )
                continue
            kept.append(part)

        if not kept:
            if msg.parts:
                logger.info("sanitizer: dropped empty %s message %s", msg.role, msg.id)
            continue
        if len(kept) == len(msg.parts):
            cleaned.append(msg)
        else:
            cleaned.append(replace(msg, parts=kept))

    cleaned.reverse()
    return cleaned


def find_orphaned_calls(messages: list[Message]) -> list[ToolCallPart]:
    """Tool calls with no recorded result, in history order."""
    answered = {
        part.call_id
        for msg in messages
        for part in msg.parts
        if isinstance(part, ToolResultPart)
    }
    return [
        part
        for msg in messages
        for part in msg.parts
        if isinstance(part, ToolCallPart) and part.call_id not in answered
    ]
