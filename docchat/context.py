from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from docchat.config import settings


TRUNCATION_MARKER = "... [truncated]"
HISTORY_HEADER = "Previous conversation:"


@dataclass
class DocumentContext:
    document_name: str
    text: str
    error: bool = False


@dataclass(frozen=True)
class HistoryMessage:
    sender: str
    text: str

    @classmethod
    def from_row(cls, row: Any) -> "HistoryMessage":
        return cls(sender=str(row["sender"]), text=str(row["text"] or ""))


def reduce_relevant_text(full_text: str, query: str, max_length: int | None = None) -> str:
    """Keep the lines of ``full_text`` that mention any word of ``query``.

    Returns an empty string when nothing matches. Output longer than
    ``max_length`` is cut and suffixed with ``TRUNCATION_MARKER``.
    """
    limit = settings.context_max_chars if max_length is None else max_length
    terms = [t for t in (query or "").lower().split() if t]
    if not terms or not full_text:
        return ""

    kept = [line for line in full_text.split("\n") if any(t in line.lower() for t in terms)]
    text = "\n".join(kept)
    if len(text) > limit:
        return text[:limit] + TRUNCATION_MARKER
    return text


def summarize_history(prior_messages: Iterable[HistoryMessage], window: int | None = None) -> str:
    messages = list(prior_messages)
    size = settings.history_window if window is None else window
    if len(messages) < 2 or size <= 0:
        return ""

    lines = [HISTORY_HEADER]
    for msg in messages[-size:]:
        speaker = "User" if msg.sender == "user" else "Assistant"
        lines.append(f"{speaker}: {msg.text}")
    return "\n".join(lines)
