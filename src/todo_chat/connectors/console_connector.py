# src/todo_chat/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..client.chat_stream import ChatClient
from ..client.reconciler import TodoReconciler
from ..client.transport import Backoff, ConnectionStatus, ReconnectingTransport
from ..config import Settings

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


@dataclass
class ConsoleSession:
    """One terminal peer: sync socket + optimistic list + chat client."""

    settings: Settings
    transport: ReconnectingTransport
    reconciler: TodoReconciler
    chat: ChatClient

    @classmethod
    def create(cls, settings: Settings) -> ConsoleSession:
        def on_status(status: ConnectionStatus) -> None:
            _print_ts(f"[SYNC] {status}")

        # The transport is bound below; send is only called once the loop runs.
        reconciler = TodoReconciler(lambda msg: transport.send(msg))
        transport = ReconnectingTransport(
            settings.client_ws_url,
            on_message=reconciler.apply,
            on_status=on_status,
            origin=settings.client_origin,
            backoff=Backoff(
                initial=settings.client_backoff_initial_seconds,
                maximum=settings.client_backoff_max_seconds,
            ),
        )

        return cls(
            settings=settings,
            transport=transport,
            reconciler=reconciler,
            chat=ChatClient(settings.client_http_url),
        )

    async def close(self) -> None:
        await self.transport.disconnect()
        await self.chat.aclose()


async def _read_line(prompt: str) -> str:
    # input() blocks; keep the event loop (socket, heartbeat pongs) running meanwhile.
    return await asyncio.to_thread(input, prompt)


async def _chat_turn(session: ConsoleSession, text: str) -> None:
    assistant_printed = False

    async for event in session.chat.send_message(text):
        etype = event.get("type")
        if etype == "chunk":
            if not assistant_printed:
                print(f"[{_ts_local()}] <<< assistant: ", end="", flush=True)
                assistant_printed = True
            print(event.get("content", ""), end="", flush=True)
        elif etype == "suggestions":
            for item in event.get("items") or []:
                print(f"\n  -> suggested todo #{item['id']}: {item['title']} (/accept {item['id']})", end="")
        elif etype == "error":
            print()
            _print_ts(f"[CHAT] {event.get('message')}")
            return

    if not assistant_printed:
        _print_ts("[CHAT] No output (model produced no content).")
        return
    print("\n")


async def run_console(settings: Settings) -> None:
    session = ConsoleSession.create(settings)
    session.transport.start()

    logger.info("Console client started (ws=%s http=%s).", settings.client_ws_url, settings.client_http_url)
    _print_ts("[CONSOLE] Type a message to chat. Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    try:
        while True:
            try:
                user_input = (await _read_line(">>> You: ")).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                cmd_response = await command_registry.handle(session, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response is not None:
                _print_ts(cmd_response)
                continue

            try:
                await _chat_turn(session, user_input)
            except Exception:
                logger.exception("Console chat handler crashed.")
                _print_ts("Internal error while talking to the assistant.")
    finally:
        await session.close()
        sys.stdout.flush()
        logger.info("Console client finished.")
