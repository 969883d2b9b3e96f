# src/todo_chat/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (server and console client share it).
- No secrets required at import time.
- Every knob has a safe local-development default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "TODO_CHAT"

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3001",
]


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Local .env never overrides variables already set in the environment.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- HTTP server (REST + SSE chat) ----
    http_host: str
    http_port: int

    # ---- WebSocket sync server ----
    ws_host: str
    ws_port: int
    ws_path: str
    allowed_origins: List[str]
    heartbeat_interval_seconds: float
    broadcast_send_timeout_seconds: float

    # ---- Validation limits ----
    title_max_chars: int
    chat_max_chars: int

    # ---- Chat ----
    chat_history_limit: int
    chat_rate_limit_requests: int
    chat_rate_limit_window_seconds: float

    # ---- LLM / OpenRouter ----
    openrouter_api_key: Optional[str]
    openrouter_base_url: str
    llm_models: List[str]
    extra_headers: Dict[str, str]
    llm_max_tokens: int
    llm_first_token_timeout_seconds: float
    llm_read_timeout_seconds: float
    llm_connect_timeout_seconds: float

    # ---- Console client ----
    client_ws_url: str
    client_http_url: str
    client_origin: str
    client_backoff_initial_seconds: float
    client_backoff_max_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "todo-chat") or "todo-chat"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/todo_chat"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "todo-chat.sqlite3")

        http_host = _env(_k("HTTP_HOST"), "127.0.0.1")
        http_port = _env_int(_k("HTTP_PORT"), 3001)

        ws_host = _env(_k("WS_HOST"), http_host)
        ws_port = _env_int(_k("WS_PORT"), 3002)
        ws_path = _env(_k("WS_PATH"), "/ws") or "/ws"
        allowed_origins = _env_list(_k("ALLOWED_ORIGINS"), DEFAULT_ALLOWED_ORIGINS)
        heartbeat_interval_seconds = _env_float(_k("HEARTBEAT_INTERVAL_SECONDS"), 30.0)
        broadcast_send_timeout_seconds = _env_float(_k("BROADCAST_SEND_TIMEOUT_SECONDS"), 1.0)

        title_max_chars = _env_int(_k("TITLE_MAX_CHARS"), 500)
        chat_max_chars = _env_int(_k("CHAT_MAX_CHARS"), 4000)

        chat_history_limit = _env_int(_k("CHAT_HISTORY_LIMIT"), 80)
        chat_rate_limit_requests = _env_int(_k("CHAT_RATE_LIMIT_REQUESTS"), 10)
        chat_rate_limit_window_seconds = _env_float(_k("CHAT_RATE_LIMIT_WINDOW_SECONDS"), 60.0)

        openrouter_api_key = _first_env(_k("OPENROUTER_API_KEY"), "OPENROUTER_API_KEY", default=None)
        openrouter_base_url = _env(_k("OPENROUTER_BASE_URL"), "https://openrouter.ai/api/v1")

        http_referer = _env(_k("HTTP_REFERER"), "https://example.com")
        title = _env(_k("APP_TITLE"), app_name)
        extra_headers = {
            "HTTP-Referer": http_referer,
            "X-Title": title,
        }

        llm_models = _env_list(
            _k("LLM_MODELS"),
            [
                "anthropic/claude-sonnet-4.5",
                "qwen/qwen-2.5-72b-instruct:free",
                "deepseek/deepseek-chat-v3-0324:free",
            ],
        )
        llm_max_tokens = _env_int(_k("LLM_MAX_TOKENS"), 1024)

        first_token = _env_float(_k("LLM_FIRST_TOKEN_TIMEOUT_SECONDS"), 20.0)
        # keep read >= first_token as a sane baseline
        read_timeout = max(_env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 25.0), first_token)
        connect_timeout = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0)

        client_ws_url = _env(_k("CLIENT_WS_URL"), f"ws://localhost:{ws_port}{ws_path}")
        client_http_url = _env(_k("CLIENT_HTTP_URL"), f"http://localhost:{http_port}")
        client_origin = _env(_k("CLIENT_ORIGIN"), f"http://localhost:{http_port}")
        client_backoff_initial_seconds = _env_float(_k("CLIENT_BACKOFF_INITIAL_SECONDS"), 1.0)
        client_backoff_max_seconds = _env_float(_k("CLIENT_BACKOFF_MAX_SECONDS"), 30.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            http_host=http_host,
            http_port=http_port,
            ws_host=ws_host,
            ws_port=ws_port,
            ws_path=ws_path,
            allowed_origins=allowed_origins,
            heartbeat_interval_seconds=heartbeat_interval_seconds,
            broadcast_send_timeout_seconds=broadcast_send_timeout_seconds,
            title_max_chars=title_max_chars,
            chat_max_chars=chat_max_chars,
            chat_history_limit=chat_history_limit,
            chat_rate_limit_requests=chat_rate_limit_requests,
            chat_rate_limit_window_seconds=chat_rate_limit_window_seconds,
            openrouter_api_key=openrouter_api_key,
            openrouter_base_url=openrouter_base_url,
            llm_models=llm_models,
            extra_headers=extra_headers,
            llm_max_tokens=llm_max_tokens,
            llm_first_token_timeout_seconds=first_token,
            llm_read_timeout_seconds=read_timeout,
            llm_connect_timeout_seconds=connect_timeout,
            client_ws_url=client_ws_url,
            client_http_url=client_http_url,
            client_origin=client_origin,
            client_backoff_initial_seconds=client_backoff_initial_seconds,
            client_backoff_max_seconds=client_backoff_max_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
