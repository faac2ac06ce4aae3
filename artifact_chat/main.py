"""
Terminal chat loop.

Runs turns against the configured provider and prints the output channel:
plain text inline, artifact events as short status lines.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from artifact_chat.agent_config import AgentConfigRegistry, create_config_backend
from artifact_chat.artifacts import create_artifact_store
from artifact_chat.chat.models import OutputEvent
from artifact_chat.chat.output_channel import OutputChannel
from artifact_chat.chat_service import ChatService
from artifact_chat.clients import LLMClient
from artifact_chat.config import Configuration
from artifact_chat.logging_setup import configure_logging, on_logging_config_change

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


def _render(event: OutputEvent) -> str | None:
    if event.type == "text":
        return event.payload
    if event.type == "metadata":
        payload = event.payload
        return f"\n[{payload['kind']} {payload['operation']}: {payload['title']} ({payload['id']})]\n"
    if event.type == "finish":
        return f"\n[saved version {event.payload['version']}]\n"
    if event.type == "tool_call":
        return f"\n[calling {event.payload['name']}]\n"
    if event.type == "error":
        return f"\n[error: {event.payload['message']}]\n"
    return None


async def _print_events(channel: OutputChannel) -> None:
    async for event in channel:
        text = _render(event)
        if text:
            print(text, end="", flush=True)


async def main() -> None:
    configuration = Configuration()
    configure_logging(configuration.get_logging_config())
    configuration.subscribe_to_changes(on_logging_config_change)

    registry = AgentConfigRegistry(create_config_backend(configuration.get_agent_config_backend_config()))
    registry.watch_configuration(configuration)
    store = create_artifact_store(configuration.get_artifact_storage_config())

    chat_id = str(uuid.uuid4())
    history: list[dict[str, str]] = []

    async with LLMClient(configuration) as llm_client:
        service = ChatService(
            ChatService.ChatServiceConfig(
                provider=llm_client,
                registry=registry,
                store=store,
                configuration=configuration,
            )
        )
        await configuration.start_watching()
        try:
            while True:
                try:
                    user_msg = await asyncio.to_thread(input, "\n> ")
                except EOFError:
                    break
                if not user_msg.strip():
                    continue

                history.append({"role": "user", "content": user_msg})
                channel = service.open_channel()
                printer = asyncio.create_task(_print_events(channel))
                turn = await service.run_turn(history, channel, user_id="local", chat_id=chat_id)
                await printer
                print()
                if turn.content:
                    history.append({"role": "assistant", "content": turn.content})
        finally:
            await configuration.stop_watching()
            await store.close()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Interrupted, exiting")


if __name__ == "__main__":
    run()
