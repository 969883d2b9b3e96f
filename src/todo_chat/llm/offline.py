# src/todo_chat/llm/offline.py

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from ..core.ports import ChatTurn


class OfflineCompletionProvider:
    """
    Offline deterministic provider used for demos when no external API is configured.

    Echoes the last user message and proposes it as a todo, so the whole
    chunk -> suggestions -> accept flow can be tried without a key.
    """

    def __init__(self, chunk_size: int = 24, delay_seconds: float = 0.0) -> None:
        self._chunk_size = max(1, int(chunk_size))
        self._delay = float(delay_seconds)

    async def stream_completion(
        self, system_context: str, history: list[ChatTurn]
    ) -> AsyncIterator[str]:
        user_text = ""
        for m in reversed(history):
            if m["role"] == "user":
                user_text = m["content"]
                break

        title = " ".join(user_text.split())[:80].replace("\\", "").replace('"', '\\"')
        title = title or "Try the chat assistant"
        text = (
            "Offline demo mode: no external AI service is configured.\n"
            "Set TODO_CHAT_OPENROUTER_API_KEY to enable real responses.\n\n"
            f"You said: {user_text}\n"
            f'[SUGGEST_TODO: "{title}"]'
        )

        for i in range(0, len(text), self._chunk_size):
            if self._delay:
                await asyncio.sleep(self._delay)
            yield text[i : i + self._chunk_size]
