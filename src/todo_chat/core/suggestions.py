# src/todo_chat/core/suggestions.py

"""
Suggestion markers embedded in assistant text.

The model proposes todos inline as  [SUGGEST_TODO: "title"]  (\" escapes a quote).

Two passes over the same text:
- MarkerStripper hides markers from the visible stream while chunks arrive.
  It never extracts anything; it only holds back text that could still turn into a marker.
- extract_suggestions() runs once on the complete buffer after the stream ended and is
  the only place titles come from (a marker can span any number of chunks).
"""

from __future__ import annotations

import re

from .messages import TITLE_MAX_CHARS

MARKER_PREFIX = "[SUGGEST_TODO:"

SUGGEST_TODO_RE = re.compile(r'\[SUGGEST_TODO:\s*"((?:[^"\\]|\\.)*)"\]')

# A string that is a proper prefix of some marker (may still complete with more input).
_PARTIAL_MARKER_RE = re.compile(r'\[SUGGEST_TODO:\s*(?:"(?:[^"\\]|\\.)*(?:\\|")?)?\Z')

# Title limit plus syntax overhead; anything longer is plain text.
_MAX_HELD_CHARS = 700


def _unescape(title: str) -> str:
    return title.replace('\\"', '"')


def extract_suggestions(text: str) -> tuple[str, list[str]]:
    """
    Return (text with every marker removed, suggested titles in order).

    Empty titles and titles over TITLE_MAX_CHARS are dropped from the list,
    but their markers are still removed.
    """
    titles: list[str] = []

    def _collect(m: re.Match[str]) -> str:
        title = _unescape(m.group(1)).strip()
        if title and len(title) <= TITLE_MAX_CHARS:
            titles.append(title)
        return ""

    cleaned = SUGGEST_TODO_RE.sub(_collect, text or "")
    return cleaned, titles


def _prefix_overlap(buf: str) -> int:
    """Length of the longest suffix of buf that is a proper prefix of MARKER_PREFIX."""
    for n in range(min(len(buf), len(MARKER_PREFIX) - 1), 0, -1):
        if MARKER_PREFIX.startswith(buf[-n:]):
            return n
    return 0


class MarkerStripper:
    """
    Streaming-safe remover for [SUGGEST_TODO: "..."] markers.
    Works across chunk boundaries.

    feed() returns the visible part of what has been received so far;
    flush() releases anything still held back once the stream is over.
    """

    def __init__(self) -> None:
        self._buf = ""

    def feed(self, chunk: str) -> str:
        if not chunk:
            return ""

        self._buf += chunk
        out_parts: list[str] = []

        while self._buf:
            i = self._buf.find(MARKER_PREFIX)
            if i == -1:
                # Keep a tail that might be the start of a marker prefix.
                keep = _prefix_overlap(self._buf)
                cut = len(self._buf) - keep
                out_parts.append(self._buf[:cut])
                self._buf = self._buf[cut:]
                break

            if i:
                out_parts.append(self._buf[:i])
                self._buf = self._buf[i:]

            m = SUGGEST_TODO_RE.match(self._buf)
            if m:
                self._buf = self._buf[m.end() :]
                continue

            if _PARTIAL_MARKER_RE.match(self._buf) and len(self._buf) <= _MAX_HELD_CHARS:
                # Wait for the rest of the marker.
                break

            # Not a marker after all: release the bracket and keep scanning.
            out_parts.append(self._buf[0])
            self._buf = self._buf[1:]

        return "".join(out_parts)

    def flush(self) -> str:
        out = self._buf
        self._buf = ""
        return out
