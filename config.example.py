# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "TODO_CHAT_APP_NAME": "App display name (default: todo-chat).",
    "TODO_CHAT_LOG_LEVEL": "Console logging level (default: INFO).",
    # Paths (gitignored)
    "TODO_CHAT_DATA_DIR": "Local data directory, also holds todo_chat.log (default: .local/todo_chat).",
    "TODO_CHAT_DB_PATH": "SQLite database path (default: <data_dir>/todo-chat.sqlite3).",
    # HTTP server (REST + SSE chat)
    "TODO_CHAT_HTTP_HOST": "HTTP bind host (default: 127.0.0.1).",
    "TODO_CHAT_HTTP_PORT": "HTTP port (default: 3001).",
    # WebSocket sync server
    "TODO_CHAT_WS_HOST": "WebSocket bind host (default: same as HTTP host).",
    "TODO_CHAT_WS_PORT": "WebSocket port (default: 3002).",
    "TODO_CHAT_WS_PATH": "WebSocket path (default: /ws).",
    "TODO_CHAT_ALLOWED_ORIGINS": (
        "Comma/space separated Origin allow-list for the socket handshake and CORS "
        "(default: http://localhost:5173 http://localhost:3001)."
    ),
    "TODO_CHAT_HEARTBEAT_INTERVAL_SECONDS": "Ping interval; a silent peer is dropped after about one interval (default: 30).",
    "TODO_CHAT_BROADCAST_SEND_TIMEOUT_SECONDS": "Per-peer broadcast send timeout before the peer is dropped (default: 1).",
    # Limits
    "TODO_CHAT_TITLE_MAX_CHARS": "Max todo title length (default: 500).",
    "TODO_CHAT_CHAT_MAX_CHARS": "Max chat message length (default: 4000).",
    "TODO_CHAT_CHAT_HISTORY_LIMIT": "Chat messages sent to the model as history (default: 80).",
    "TODO_CHAT_CHAT_RATE_LIMIT_REQUESTS": "Chat requests allowed per window and client (default: 10).",
    "TODO_CHAT_CHAT_RATE_LIMIT_WINDOW_SECONDS": "Chat rate limit window (default: 60).",
    # LLM / OpenRouter
    "TODO_CHAT_OPENROUTER_API_KEY": "OpenRouter API key (without it the offline demo provider is used).",
    "TODO_CHAT_OPENROUTER_BASE_URL": "OpenRouter base URL (default: https://openrouter.ai/api/v1).",
    "TODO_CHAT_LLM_MODELS": "Comma/space separated list of models to try in order.",
    "TODO_CHAT_LLM_MAX_TOKENS": "Max tokens per reply (default: 1024).",
    "TODO_CHAT_LLM_FIRST_TOKEN_TIMEOUT_SECONDS": "Move on to the next model if no token arrives in time (default: 20).",
    "TODO_CHAT_LLM_READ_TIMEOUT_SECONDS": "HTTP read timeout (default: 25, never below the first-token timeout).",
    "TODO_CHAT_LLM_CONNECT_TIMEOUT_SECONDS": "HTTP connect timeout (default: 5).",
    "TODO_CHAT_HTTP_REFERER": "Optional OpenRouter metadata header.",
    "TODO_CHAT_APP_TITLE": "Optional OpenRouter metadata header title.",
    # Console client
    "TODO_CHAT_CLIENT_WS_URL": "Sync socket URL (default: ws://localhost:<ws_port><ws_path>).",
    "TODO_CHAT_CLIENT_HTTP_URL": "Server base URL for chat (default: http://localhost:<http_port>).",
    "TODO_CHAT_CLIENT_ORIGIN": "Origin header sent by the console client (default: http://localhost:<http_port>).",
    "TODO_CHAT_CLIENT_BACKOFF_INITIAL_SECONDS": "First reconnect delay (default: 1).",
    "TODO_CHAT_CLIENT_BACKOFF_MAX_SECONDS": "Reconnect delay cap (default: 30).",
}
