from __future__ import annotations

from dataclasses import dataclass

from docchat.config import settings
from docchat.context import DocumentContext
from docchat.selection import DocumentDescriptor


NO_DOCUMENTS_CONTEXT = "No documents available."
NO_EXCERPT_TEXT = "[No relevant excerpt found in this document]"

SYSTEM_INSTRUCTIONS = (
    "You are a helpful AI assistant. Follow these guidelines:\n\n"
    "RESPONSE LENGTH: Keep responses concise and to the point. Aim for 2-4 paragraphs maximum "
    "unless the user specifically asks for detailed information."
)

ANSWER_RULES = (
    "INSTRUCTIONS:\n"
    "1. Answer directly and concisely\n"
    "2. If using document information, cite the document name\n"
    "3. If information isn't in the provided context, clearly state this\n"
    "4. Don't repeat information unnecessarily\n"
    "5. Focus on the specific question asked"
)


@dataclass(frozen=True)
class PromptPlan:
    prompt: str
    max_tokens: int


def choose_max_tokens(has_documents: bool, question: str) -> int:
    if has_documents or len(question) > settings.long_question_chars:
        return settings.max_tokens_extended
    return settings.max_tokens_default


def _document_usage_clause(selected: list[DocumentDescriptor]) -> str:
    if selected:
        names = ", ".join(doc.display_name for doc in selected)
        return (
            "The user has access to specific documents. Use ONLY the provided document content "
            f"to answer questions about those documents. Documents available: {names}"
        )
    return "Only use documents if the user specifically mentions them or asks about uploaded files."


def _document_context_block(contexts: list[DocumentContext]) -> str:
    if not contexts:
        return NO_DOCUMENTS_CONTEXT
    parts = ["Available documents:"]
    for ctx in contexts:
        parts.append(f"\nDocument: {ctx.document_name}")
        parts.append(f"Content: {ctx.text or NO_EXCERPT_TEXT}")
        parts.append("---")
    used = ", ".join(ctx.document_name for ctx in contexts)
    parts.append(f"\nDocuments used in this response: {used}")
    return "\n".join(parts)


def compose_prompt(
    selected: list[DocumentDescriptor],
    contexts: list[DocumentContext],
    transcript: str,
    question: str,
) -> PromptPlan:
    sections = [
        SYSTEM_INSTRUCTIONS,
        f"DOCUMENT USAGE: {_document_usage_clause(selected)}",
        ANSWER_RULES,
        f"Document Context:\n{_document_context_block(contexts)}",
        f"Conversation History:\n{transcript}",
        f"Current User Question: {question}",
        "Provide a helpful, concise response:",
    ]
    return PromptPlan(prompt="\n\n".join(sections), max_tokens=choose_max_tokens(bool(selected), question))
