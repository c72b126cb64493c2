from docchat.context import (
    HISTORY_HEADER,
    TRUNCATION_MARKER,
    HistoryMessage,
    reduce_relevant_text,
    summarize_history,
)


HANDBOOK = "\n".join(
    [
        "1. Working hours",
        "Staff work 9am to 5pm.",
        "2. Leave",
        "Annual leave is 20 days per year.",
        "Sick leave requires a certificate.",
        "3. Parking",
    ]
)


def test_reducer_keeps_only_matching_lines():
    reduced = reduce_relevant_text(HANDBOOK, "LEAVE allowance")
    assert reduced == "2. Leave\nAnnual leave is 20 days per year.\nSick leave requires a certificate."


def test_reducer_returns_empty_when_nothing_matches():
    assert reduce_relevant_text("alpha\nbeta", "zzz") == ""


def test_reducer_is_idempotent_on_a_miss():
    first = reduce_relevant_text("alpha\nbeta", "zzz")
    assert reduce_relevant_text(first, "zzz") == first == ""


def test_reducer_ignores_blank_query():
    assert reduce_relevant_text(HANDBOOK, "   ") == ""


def test_reducer_truncates_to_max_length():
    text = "\n".join(f"leave rule number {i}" for i in range(2000))
    reduced = reduce_relevant_text(text, "leave", max_length=2000)
    assert reduced.endswith(TRUNCATION_MARKER)
    assert len(reduced) == 2000 + len(TRUNCATION_MARKER)


def test_reducer_never_exceeds_default_bound():
    text = "leave " * 5000
    reduced = reduce_relevant_text(text, "leave")
    assert len(reduced) <= 5000 + len(TRUNCATION_MARKER)


def _messages(n):
    return [HistoryMessage(sender="user" if i % 2 == 0 else "bot", text=f"msg {i}") for i in range(n)]


def test_history_needs_at_least_two_messages():
    assert summarize_history([]) == ""
    assert summarize_history(_messages(1)) == ""


def test_history_renders_speakers_in_order():
    transcript = summarize_history(_messages(2))
    assert transcript == f"{HISTORY_HEADER}\nUser: msg 0\nAssistant: msg 1"


def test_history_keeps_last_five_chronologically():
    lines = summarize_history(_messages(9)).split("\n")
    assert lines[0] == HISTORY_HEADER
    assert lines[1:] == [
        "User: msg 4",
        "Assistant: msg 5",
        "User: msg 6",
        "Assistant: msg 7",
        "User: msg 8",
    ]
