import asyncio
import time

import pytest
from conftest import FakeLLM, make_doc

from docchat.chat_service import (
    MISSING_FILE_TEXT,
    ChatService,
    answer_turn,
    build_document_context,
    generate_chat_topic,
)
from docchat.context import HistoryMessage
from docchat.errors import BackendInvocationFailed, EmptyGeneration, EmptyInput


def run_turn(message, prior, catalog, llm, upload_dir):
    return asyncio.run(answer_turn(message, prior, catalog, llm=llm, upload_dir=upload_dir))


def test_named_document_is_selected_and_named_in_prompt(upload_dir):
    llm = FakeLLM()
    catalog = [make_doc(1, "Staff Handbook.pdf")]

    result = run_turn("What does the Staff Handbook say about leave?", [], catalog, llm, upload_dir)

    assert result.documents_used == [{"id": 1, "name": "Staff Handbook.pdf"}]
    assert result.response_metadata["documents_analyzed"] == 1
    assert "Documents available: Staff Handbook.pdf" in llm.last_prompt
    assert MISSING_FILE_TEXT in llm.last_prompt


def test_general_question_with_empty_catalog(upload_dir):
    llm = FakeLLM(replies=["I'm well, thanks!"])

    result = run_turn("Hello, how are you?", [], [], llm, upload_dir)

    assert result.response_text == "I'm well, thanks!"
    assert result.documents_used == []
    assert result.response_metadata == {
        "documents_analyzed": 0,
        "response_length": len("I'm well, thanks!"),
        "max_tokens_used": 800,
    }


def test_document_text_is_reduced_to_relevant_lines(upload_dir):
    (upload_dir / "policy-v2.txt").write_text(
        "Annual leave is 20 days.\nParking is free.\nSick leave needs a note.\n", encoding="utf-8"
    )
    llm = FakeLLM()
    catalog = [make_doc(7, "Leave Policy.txt", stored="policy-v2.txt")]

    run_turn("leave policy question", [], catalog, llm, upload_dir)

    prompt = llm.last_prompt
    assert "Annual leave is 20 days.\nSick leave needs a note." in prompt
    assert "Parking" not in prompt


def test_contexts_follow_catalog_order(upload_dir):
    for name in ("a.txt", "b.txt", "c.txt"):
        (upload_dir / name).write_text(f"{name} mentions the report\n", encoding="utf-8")
    llm = FakeLLM()
    catalog = [make_doc(1, "a.txt"), make_doc(2, "b.txt"), make_doc(3, "c.txt")]

    run_turn("summarise the report", [], catalog, llm, upload_dir)

    prompt = llm.last_prompt
    assert prompt.index("Document: a.txt") < prompt.index("Document: b.txt") < prompt.index("Document: c.txt")


def test_history_is_included_when_present(upload_dir):
    llm = FakeLLM()
    prior = [HistoryMessage("user", "Who are you?"), HistoryMessage("bot", "An assistant.")]

    run_turn("And what can you do?", prior, [], llm, upload_dir)

    assert "Previous conversation:\nUser: Who are you?\nAssistant: An assistant." in llm.last_prompt


def test_blank_message_is_rejected_before_any_call(upload_dir):
    llm = FakeLLM()
    with pytest.raises(EmptyInput):
        run_turn("   ", [], [], llm, upload_dir)
    assert llm.calls == []


def test_blank_generation_is_reported(upload_dir):
    with pytest.raises(EmptyGeneration):
        run_turn("hi", [], [], FakeLLM(replies=["  "]), upload_dir)


def test_backend_failure_propagates(upload_dir):
    with pytest.raises(BackendInvocationFailed):
        run_turn("hi", [], [], FakeLLM(error=BackendInvocationFailed()), upload_dir)


def test_topic_is_first_fifty_characters():
    assert generate_chat_topic("short one") == "short one"
    long_message = "x" * 60
    assert generate_chat_topic(long_message) == "x" * 50 + "..."


def test_service_persists_both_sides_and_reuses_topic(db, upload_dir):
    llm = FakeLLM(replies=["first answer", "second answer"])
    service = ChatService(db, llm, upload_dir)

    first = asyncio.run(service.chat("Who are you?", topic="intro"))
    second = asyncio.run(service.chat("What can you do?", topic="intro"))

    assert first["chat_id"] == second["chat_id"]
    rows = db.list_messages(first["chat_id"])
    assert [(r["sender"], r["text"]) for r in rows] == [
        ("user", "Who are you?"),
        ("bot", "first answer"),
        ("user", "What can you do?"),
        ("bot", "second answer"),
    ]
    assert "User: Who are you?\nAssistant: first answer" in llm.last_prompt
    assert "User: What can you do?" not in llm.last_prompt.split("Current User Question:")[0]


def test_text_that_looks_like_a_read_error_is_still_reduced(upload_dir):
    (upload_dir / "odd.txt").write_text(
        "[Error reading file: not really]\nleave is 20 days\nparking is free\n", encoding="utf-8"
    )

    ctx = asyncio.run(build_document_context(make_doc(1, "odd.txt"), "leave", upload_dir))

    assert ctx.error is False
    assert ctx.text == "leave is 20 days"


def test_unreadable_document_gets_error_context(upload_dir):
    (upload_dir / "broken.pdf").write_bytes(b"this is not a pdf")

    ctx = asyncio.run(build_document_context(make_doc(1, "broken.pdf"), "anything", upload_dir))

    assert ctx.error is True
    assert ctx.text.startswith("[Error reading file:")


class SlowDatabase:
    """Wraps a Database so every call blocks its thread for ``delay`` seconds."""

    def __init__(self, db, delay):
        self._db = db
        self._delay = delay

    def __getattr__(self, name):
        attr = getattr(self._db, name)
        if not callable(attr):
            return attr

        def slow(*args, **kwargs):
            time.sleep(self._delay)
            return attr(*args, **kwargs)

        return slow


def test_database_work_does_not_stall_the_event_loop(db, upload_dir):
    service = ChatService(SlowDatabase(db, 0.1), FakeLLM(), upload_dir)

    async def scenario():
        gaps = []
        done = asyncio.Event()

        async def ticker():
            last = time.perf_counter()
            while not done.is_set():
                await asyncio.sleep(0.01)
                now = time.perf_counter()
                gaps.append(now - last)
                last = now

        task = asyncio.create_task(ticker())
        await service.chat("hello there")
        done.set()
        await task
        return gaps

    gaps = asyncio.run(scenario())

    assert len(gaps) > 10
    assert max(gaps) < 0.09
