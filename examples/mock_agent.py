#!/usr/bin/env python3
"""Offline walkthrough of a session-agent conversation with a scripted model.

No API key needed. The scripted model shows:
- a streamed tool round (getLocalTime)
- a tool that waits for user confirmation (getWeatherInformation)
- scheduling a task and firing it with the session's clock

Run:
    python examples/mock_agent.py
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone

from session_agent import (
    Agent,
    InMemoryStore,
    ModelAdaptor,
    ModelDone,
    Session,
    TextDelta,
    ToolCallRequest,
    default_catalog,
)


class ScriptedModelAdaptor(ModelAdaptor):
    """Replays one scripted turn per model call.

    Shows how to implement a custom ModelAdaptor: an async generator that
    yields text deltas and tool-call requests, then ModelDone.
    """

    def __init__(self, turns):
        self.turns = list(turns)

    async def stream(self, messages, tools, step_limit_hint=None, **kwargs):
        events = self.turns.pop(0) if self.turns else [TextDelta("(script finished)")]
        for event in events:
            if isinstance(event, TextDelta):
                # Split into words to look like a live stream
                for word in event.text.split(" "):
                    yield TextDelta(word + " ")
            else:
                yield event
        yield ModelDone(stop_reason="stop")


class Clock:
    def __init__(self):
        self.now = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


SCRIPT = [
    [ToolCallRequest("call-001", "getLocalTime", {"location": "Fontainebleau"})],
    [TextDelta("It is 10am in Fontainebleau, perfect bouldering time.")],
    [ToolCallRequest("call-002", "getWeatherInformation", {"city": "Fontainebleau"})],
    [TextDelta("Sunny skies, go climb!")],
    [
        ToolCallRequest(
            "call-003",
            "scheduleTask",
            {"description": "Stretch forearms", "when": {"kind": "after", "seconds": 3600}},
        )
    ],
    [TextDelta("Reminder set for one hour from now.")],
]


def print_header(text: str, width: int = 70) -> None:
    print(f"\n{'=' * width}")
    print(f"  {text}")
    print(f"{'=' * width}\n")


async def show(stream) -> list:
    events = []
    async for event in stream:
        events.append(event)
        if event.type == "text":
            print(event.payload, end="", flush=True)
        elif event.type == "tool_start":
            marker = " (needs confirmation)" if event.payload["requires_confirmation"] else ""
            print(f"\n  -> {event.payload['tool_name']}({event.payload['arguments']}){marker}")
        elif event.type == "tool_result":
            print(f"  <- {event.payload['output']}")
        elif event.type == "final":
            print(f"\n  [final: {event.payload['state']}]")
        elif event.type == "error":
            print(f"\n  [error: {event.payload['message']}]")
    return events


async def main() -> int:
    print_header("session-agent walkthrough (scripted model)")

    clock = Clock()
    agent = Agent(model=ScriptedModelAdaptor(SCRIPT), catalog=default_catalog(), max_steps=5)
    session = Session("demo", agent, InMemoryStore(), clock=clock)

    print("User: What time is it in Fontainebleau?")
    await show(session.send("What time is it in Fontainebleau?"))

    print("\nUser: And the weather?")
    await show(session.send("And the weather?"))
    for pending in await session.pending_confirmations():
        print(f"\n  Approving {pending.tool_name} {pending.arguments}")
        await show(session.resolve_confirmation(pending.call_id, approved=True))

    print("\nUser: Remind me to stretch in an hour")
    await show(session.send("Remind me to stretch in an hour"))

    clock.now += timedelta(hours=1)
    fired = await session.fire_due_tasks()
    print(f"\nFired {len(fired)} scheduled task(s)")

    print_header("Message history")
    for i, msg in enumerate(await session.history(), 1):
        summary = msg.text or ", ".join(
            [f"call {c.tool_name}" for c in msg.tool_calls]
            + [f"result {r.output}" for r in msg.tool_results]
        )
        print(f"  {i}. {msg.role.upper()}: {summary[:80]}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
