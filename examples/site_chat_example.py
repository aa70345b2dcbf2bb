"""Terminal chat over a small in-memory site index.

Demonstrates:
- Configuring the widget with ChatSettings.from_env
- Shipping the bundled search tools through ChatSettings.tools
- Streaming a turn with ChatSession.iter and rendering the transcript

Usage:
    uv run --env-file=.env examples/site_chat_example.py --provider openai --model gpt-4.1-mini
    uv run examples/site_chat_example.py --provider ollama --model llama3.1 --trace
"""

import argparse
import asyncio
import logging
import uuid

from chatbubble import (
    ChatSession,
    ChatSettings,
    InMemoryRateLimiter,
    InMemorySessionStore,
    ToolRegistry,
    create_provider,
)
from chatbubble.search import InMemorySearchBackend, SearchIndex, default_tools
from chatbubble.sse import render_transcript

PAGES = [
    {"id": 1, "title": "Opening hours", "content": "We are open Monday to Friday, 9am to 5pm."},
    {"id": 2, "title": "Shipping", "content": "Orders ship within two business days."},
    {"id": 3, "title": "Returns", "content": "Items can be returned within 30 days."},
]


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

    from chatbubble import instrument

    tracer_provider = TracerProvider(resource=Resource({SERVICE_NAME: service_name}))
    tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tracer_provider)
    instrument()


async def main():
    parser = argparse.ArgumentParser(description="Site chat")
    parser.add_argument("--provider", default=None)
    parser.add_argument("--model", default=None)
    parser.add_argument("--trace", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    if args.trace:
        setup_tracing("site-chat")

    settings = ChatSettings.from_env()
    if args.provider:
        settings.provider = args.provider
    if args.model:
        settings.model = args.model

    backend = InMemorySearchBackend([SearchIndex(name="default", documents=PAGES)])
    settings.tools = default_tools(backend)

    chat = ChatSession(
        session_id=uuid.uuid4().hex,
        settings=settings,
        provider=create_provider(settings.provider),
        registry=ToolRegistry(settings),
        store=InMemorySessionStore(),
        rate_limiter=InMemoryRateLimiter(),
    )

    print(f"{settings.ui.title} ({settings.provider}/{settings.model})\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if user_input.strip() == "/reset":
            chat.reset()
            continue
        if user_input.strip() == "/history":
            print(render_transcript(chat.messages) + "\n")
            continue

        if not chat.submit(user_input):
            for error in chat.errors.get("message", []):
                print(f"! {error.message}")
            continue

        shown = 0
        print("Assistant: ", end="", flush=True)
        async for snapshot in chat.iter():
            text = snapshot.data.text
            print(text[shown:], end="", flush=True)
            shown = len(text)
        print("\n")


if __name__ == "__main__":
    asyncio.run(main())
