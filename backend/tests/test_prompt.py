"""Tests for prompt assembly."""

from app.core.prompt import HISTORY_WINDOW, build_context_section, build_messages, build_system_prompt
from app.models.domain import Snippet


def test_system_prompt_is_personalised_when_name_given():
    assert build_system_prompt("Acme Bakery").startswith("You're a helpful assistant for Acme Bakery.")
    assert build_system_prompt().startswith("You're a helpful assistant.")


def test_context_lists_snippets_between_delimiters():
    section = build_context_section(
        [Snippet(title="Hours", content="9-5 daily"), Snippet(title="Prices", content="From $10")]
    )
    assert "RELEVANT INFORMATION:\n\nHours\n9-5 daily\n\nPrices\nFrom $10\n\n---" in section
    assert "say you don't have that information" in section


def test_empty_context_reports_nothing_found():
    section = build_context_section([])
    assert "No relevant information found in the knowledge base" in section
    assert "trained" not in section


def test_prompt_shape_without_history():
    messages = build_messages("Hi there", [], [])
    assert [m.role for m in messages] == ["system", "user"]
    assert messages[-1].content == "Hi there"


def test_history_is_capped_and_keeps_order(make_message):
    history = [
        make_message("user" if i % 2 == 0 else "assistant", f"turn {i}") for i in range(12)
    ]

    messages = build_messages("latest", [Snippet(title="T", content="C")], history, "Acme")

    middle = messages[1:-1]
    assert len(middle) == HISTORY_WINDOW
    assert [m.content for m in middle] == [f"turn {i}" for i in range(4, 12)]
    assert [m.role for m in middle] == ["user", "assistant"] * 4
    assert sum(1 for m in messages if m.role == "system") == 1
    assert messages[0].role == "system"
    assert messages[-1].role == "user" and messages[-1].content == "latest"


def test_duplicate_history_entries_are_kept(make_message):
    history = [make_message("user", "same"), make_message("user", "same")]
    messages = build_messages("same", [], history)
    assert [m.content for m in messages[1:]] == ["same", "same", "same"]


def test_legacy_human_rows_are_not_forwarded(make_message):
    history = [
        make_message("user", "question"),
        make_message("human", "operator reply"),
        make_message("assistant", "bot reply"),
    ]
    messages = build_messages("next", [], history)
    assert [m.content for m in messages[1:-1]] == ["question", "bot reply"]
