"""Interactive climbing-coach chat. Requires SESSION_AGENT_API_KEY (or OPENAI_API_KEY).

    SESSION_AGENT_STORAGE_DIR=.sessions python examples/quick_start.py
"""

import asyncio

from session_agent import Session
from session_agent.config import Settings, build_agent, build_store, configure_logging


async def chat() -> None:
    settings = Settings()
    configure_logging(settings.LOG_LEVEL)
    agent = build_agent(settings)
    session = Session("quick-start", agent, build_store(settings))

    @agent.hook("after_tool_call")
    async def on_tool_call(event):
        print(f"\n[hook] {event.tool_name}({event.arguments}) -> {event.result}")

    while True:
        text = input("\nyou> ").strip()
        if text in ("", "exit", "quit"):
            return
        stream = session.send(text)
        while stream is not None:
            pending = []
            async for event in stream:
                if event.type == "text":
                    print(event.payload, end="", flush=True)
                elif event.type == "final":
                    pending = event.payload["pending_confirmations"]
                elif event.type == "error":
                    print(f"\n[error] {event.payload['message']}")
            stream = None
            if pending:
                call_id = pending[0]
                answer = input(f"\nRun {call_id}? [y/N] ").strip().lower()
                stream = session.resolve_confirmation(call_id, approved=answer == "y")


if __name__ == "__main__":
    asyncio.run(chat())
