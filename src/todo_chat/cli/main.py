# src/todo_chat/cli/main.py

"""
CLI entrypoints.

todo-chat-server: HTTP app (uvicorn) + WebSocket sync server + heartbeat in one event loop.
todo-chat-console: interactive terminal client for a running server.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

import uvicorn

from ..cli.bootstrap import create_initial_state
from ..config import Settings, get_settings
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..server.http_app import create_app
from ..server.registry import run_heartbeat
from ..server.ws_endpoint import serve_sync

logger = logging.getLogger(__name__)


def _setup_logging(settings: Settings) -> None:
    # choose console log level from settings.log_level
    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    aclose = getattr(state.llm, "aclose", None)
    if aclose is not None:
        try:
            await aclose()
        except Exception:
            logger.debug("LLM client close failed.", exc_info=True)
    state.store.close()


async def run_server(state: AppState) -> None:
    s = state.settings

    ws_server = await serve_sync(
        state.registry,
        state.hub,
        host=s.ws_host,
        port=s.ws_port,
        path=s.ws_path,
        allowed_origins=s.allowed_origins,
    )
    heartbeat = asyncio.create_task(
        run_heartbeat(state.registry, s.heartbeat_interval_seconds), name="heartbeat"
    )

    # uvicorn installs the SIGINT/SIGTERM handlers; serve() returns once it has stopped.
    config = uvicorn.Config(
        create_app(state),
        host=s.http_host,
        port=s.http_port,
        log_config=None,
        lifespan="off",
    )
    http_server = uvicorn.Server(config)

    try:
        await http_server.serve()
    finally:
        heartbeat.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await heartbeat
        ws_server.close()
        await ws_server.wait_closed()
        await _shutdown(state)


def main() -> None:
    settings = get_settings()
    _setup_logging(settings)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(run_server(state))
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Bye.")


def console() -> None:
    from ..connectors.console_connector import run_console

    settings = get_settings()
    _setup_logging(settings)

    try:
        asyncio.run(run_console(settings))
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
