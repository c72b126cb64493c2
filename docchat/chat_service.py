from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from docchat.config import settings
from docchat.context import DocumentContext, HistoryMessage, reduce_relevant_text, summarize_history
from docchat.database import Database
from docchat.errors import DocumentReadError, EmptyGeneration, EmptyInput
from docchat.parsers import read_document, read_error_text
from docchat.prompting import compose_prompt
from docchat.selection import DocumentDescriptor, select_documents


def _build_chat_logger() -> logging.Logger:
    logger = logging.getLogger("docchat.chat")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    if logger.handlers:
        return logger
    log_path = Path(settings.log_dir) / "log.txt"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(message)s"))
    logger.addHandler(handler)
    return logger


CHAT_LOGGER = _build_chat_logger()

MISSING_FILE_TEXT = "[File not found on server]"
TOPIC_MAX_CHARS = 50


class TextGenerator(Protocol):
    async def invoke(self, prompt: str, max_tokens: int) -> str: ...


@dataclass
class TurnResult:
    response_text: str
    documents_used: list[dict[str, Any]] = field(default_factory=list)
    response_metadata: dict[str, int] = field(default_factory=dict)


def generate_chat_topic(message: str) -> str:
    text = message.strip()
    if len(text) > TOPIC_MAX_CHARS:
        return text[:TOPIC_MAX_CHARS] + "..."
    return text


async def build_document_context(doc: DocumentDescriptor, message: str, upload_dir: Path) -> DocumentContext:
    path = upload_dir / doc.stored_file_name
    if not path.is_file():
        CHAT_LOGGER.warning("document %s missing on disk at %s", doc.id, path)
        return DocumentContext(document_name=doc.display_name, text=MISSING_FILE_TEXT, error=True)
    try:
        content = await read_document(path, doc.display_name)
    except DocumentReadError as exc:
        CHAT_LOGGER.warning("document %s could not be read (%s): %s", doc.id, doc.display_name, exc)
        return DocumentContext(document_name=doc.display_name, text=read_error_text(exc), error=True)
    return DocumentContext(document_name=doc.display_name, text=reduce_relevant_text(content, message))


async def answer_turn(
    message: str,
    prior_messages: list[HistoryMessage],
    catalog: list[DocumentDescriptor],
    *,
    llm: TextGenerator,
    upload_dir: str | Path,
) -> TurnResult:
    """Run one chat turn: select documents, build the prompt and call the model.

    ``prior_messages`` must not include ``message`` itself. Document reads run
    concurrently and come back in catalog order; a read failure only affects
    that document's context entry.
    """
    question = (message or "").strip()
    if not question:
        raise EmptyInput()

    selected = select_documents(question, catalog)
    contexts = list(
        await asyncio.gather(*(build_document_context(doc, question, Path(upload_dir)) for doc in selected))
    )
    transcript = summarize_history(prior_messages)
    plan = compose_prompt(selected, contexts, transcript, question)

    CHAT_LOGGER.info(
        "turn | docs_selected=%d | history=%d | prompt_chars=%d | max_tokens=%d",
        len(selected),
        len(prior_messages),
        len(plan.prompt),
        plan.max_tokens,
    )

    text = await llm.invoke(plan.prompt, plan.max_tokens)
    if not text or not text.strip():
        CHAT_LOGGER.warning("turn | empty generation for question of %d chars", len(question))
        raise EmptyGeneration()

    return TurnResult(
        response_text=text,
        documents_used=[{"id": doc.id, "name": doc.display_name} for doc in selected],
        response_metadata={
            "documents_analyzed": len(selected),
            "response_length": len(text),
            "max_tokens_used": plan.max_tokens,
        },
    )


class ChatService:
    def __init__(self, db: Database, llm: TextGenerator, upload_dir: str | Path) -> None:
        self.db = db
        self.llm = llm
        self.upload_dir = Path(upload_dir)

    def load_catalog(self) -> list[DocumentDescriptor]:
        return [DocumentDescriptor.from_row(row) for row in self.db.list_documents()]

    async def chat(self, message: str, topic: str | None = None) -> dict[str, Any]:
        question = (message or "").strip()
        if not question:
            raise EmptyInput()

        chat_topic = (topic or "").strip() or generate_chat_topic(question)
        chat = await asyncio.to_thread(self.db.get_or_create_chat, chat_topic)
        chat_id = int(chat["id"])

        prior = [HistoryMessage.from_row(row) for row in await asyncio.to_thread(self.db.list_messages, chat_id)]
        await asyncio.to_thread(self.db.add_message, chat_id, "user", question)
        catalog = await asyncio.to_thread(self.load_catalog)

        result = await answer_turn(
            question,
            prior,
            catalog,
            llm=self.llm,
            upload_dir=self.upload_dir,
        )

        bot_row = await asyncio.to_thread(
            self.db.add_message, chat_id, "bot", result.response_text, result.documents_used
        )
        return {
            "chat_id": chat_id,
            "topic": chat_topic,
            "message_id": int(bot_row["id"]),
            "result": result,
        }
