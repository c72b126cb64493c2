"""Heuristic choice of which uploaded documents a chat message is about.

Matching is plain substring and regex work over the message text. It is a
best guess, not a guarantee: a display name that happens to be an everyday
phrase will match whenever that phrase is typed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any


FILE_KEYWORDS = (
    "document",
    "file",
    "pdf",
    "upload",
    "handbook",
    "manual",
    "report",
    "policy",
    "procedure",
    "guideline",
    "attachment",
    "doc",
    "sheet",
)

ORDINAL_PATTERN = re.compile(r"(?:file|document|doc)\s*(\d+)")

# Stripped names at or below this length are too generic to count as a reference.
MIN_STRIPPED_NAME_CHARS = 4


@dataclass(frozen=True)
class DocumentDescriptor:
    id: int
    stored_file_name: str
    display_name: str
    uploaded_at: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "DocumentDescriptor":
        return cls(
            id=int(row["id"]),
            stored_file_name=str(row["filename"]),
            display_name=str(row["original_name"]),
            uploaded_at=row["upload_date"],
        )


def _name_referenced(message_lower: str, display_name: str) -> bool:
    name = display_name.lower()
    if name and name in message_lower:
        return True
    stem = Path(display_name).stem.lower()
    return len(stem) > MIN_STRIPPED_NAME_CHARS and stem in message_lower


def find_referenced_documents(message: str, catalog: list[DocumentDescriptor]) -> list[DocumentDescriptor]:
    message_lower = (message or "").lower()
    chosen: set[int] = set()

    for idx, doc in enumerate(catalog):
        if _name_referenced(message_lower, doc.display_name):
            chosen.add(idx)

    for match in ORDINAL_PATTERN.finditer(message_lower):
        idx = int(match.group(1)) - 1
        if 0 <= idx < len(catalog):
            chosen.add(idx)

    return [doc for idx, doc in enumerate(catalog) if idx in chosen]


def is_file_related_query(message: str) -> bool:
    message_lower = (message or "").lower()
    return any(keyword in message_lower for keyword in FILE_KEYWORDS)


def select_documents(message: str, catalog: list[DocumentDescriptor]) -> list[DocumentDescriptor]:
    if not catalog:
        return []
    referenced = find_referenced_documents(message, catalog)
    if referenced:
        return referenced
    if is_file_related_query(message):
        return list(catalog)
    return []
