"""Tests for the session transcript reader."""

from __future__ import annotations

import json

import pytest

from sessiondoc.errors import CollectionError
from sessiondoc.models import SessionSource, ToolCallType
from sessiondoc.sessions.reader import SessionStore


def _store(builder) -> SessionStore:
    return SessionStore(builder.project_id, claude_dir=builder.claude_dir, codex_dir=builder.codex_dir)


def test_reads_claude_messages_and_tool_calls(session_builder) -> None:
    session_builder.user("s1", "Add a settings page")
    session_builder.write("s1", "src/settings.py", "VALUE = 1\n")
    session_builder.edit("s1", "src/settings.py", "VALUE = 1", "VALUE = 2")
    session_builder.save()

    record = _store(session_builder).load("s1")

    assert record.source is SessionSource.CODE
    assert record.cwd == str(session_builder.project_root)
    kinds = [event.tool_call_type for event in record.events]
    assert kinds == [ToolCallType.MESSAGE, ToolCallType.WRITE, ToolCallType.EDIT]
    write, edit = record.events[1], record.events[2]
    assert write.path == str(session_builder.project_root / "src/settings.py")
    assert write.content == "VALUE = 1\n"
    assert (edit.old_text, edit.new_text) == ("VALUE = 1", "VALUE = 2")
    assert [event.sequence for event in record.events] == [0, 1, 2]


def test_multi_edit_and_text_blocks(session_builder) -> None:
    entries = [
        {
            "type": "user",
            "timestamp": "2024-05-01T09:00:00Z",
            "message": {"role": "user", "content": [{"type": "text", "text": "Rename things"}]},
        },
        {"type": "user", "isMeta": True, "message": {"role": "user", "content": "caveat"}},
        {
            "type": "assistant",
            "timestamp": "2024-05-01T09:01:00Z",
            "message": {
                "role": "assistant",
                "content": [
                    {"type": "text", "text": "Sure."},
                    {
                        "type": "tool_use",
                        "name": "MultiEdit",
                        "input": {
                            "file_path": "/w/a.py",
                            "edits": [
                                {"old_string": "a", "new_string": "b"},
                                {"old_string": "c", "new_string": "d"},
                            ],
                        },
                    },
                    {"type": "tool_use", "name": "Bash", "input": {"command": "ls"}},
                ],
            },
        },
    ]
    session_builder.write_raw("s1", "\n".join(json.dumps(entry) for entry in entries) + "\n")

    record = _store(session_builder).load("s1")

    assert [event.message_text for event in record.events if event.message_text] == ["Rename things"]
    edits = [event for event in record.events if event.tool_call_type is ToolCallType.EDIT]
    assert [(event.old_text, event.new_text) for event in edits] == [("a", "b"), ("c", "d")]


def test_partial_trailing_line_is_tolerated(session_builder) -> None:
    good = json.dumps({"type": "user", "timestamp": "t", "message": {"role": "user", "content": "hello there"}})
    session_builder.write_raw("s1", good + "\n" + '{"type": "assist')

    record = _store(session_builder).load("s1")

    assert [event.message_text for event in record.events] == ["hello there"]


def test_corrupt_line_in_the_middle_raises(session_builder) -> None:
    good = json.dumps({"type": "user", "timestamp": "t", "message": {"role": "user", "content": "hello"}})
    session_builder.write_raw("s1", "\n".join([good, "{not json", good]) + "\n")

    with pytest.raises(CollectionError, match="line 2"):
        _store(session_builder).load("s1")


def test_missing_session_raises(session_builder) -> None:
    session_builder.save()

    with pytest.raises(CollectionError, match="not found"):
        _store(session_builder).load("ghost")


def test_list_sessions_sorted(session_builder) -> None:
    session_builder.user("b-session", "one")
    session_builder.user("a-session", "two")
    session_builder.save()

    assert _store(session_builder).list_sessions() == ["a-session", "b-session"]


def test_list_sessions_without_project_dir(session_builder) -> None:
    assert _store(session_builder).list_sessions() == []


def test_loads_are_memoised(session_builder) -> None:
    session_builder.user("s1", "hello")
    session_builder.save()
    store = _store(session_builder)

    first = store.load("s1")
    (session_builder.project_dir / "s1.jsonl").unlink()

    assert store.load_many(["s1"]) == [first]


def test_codex_sessions(session_builder) -> None:
    day_dir = session_builder.codex_dir / "2024" / "05" / "01"
    day_dir.mkdir(parents=True)
    other = [{"type": "session_meta", "payload": {"id": "other", "cwd": "/elsewhere"}}]
    wanted = [
        {"type": "session_meta", "timestamp": "t0", "payload": {"id": "abc", "cwd": "/work/app"}},
        {
            "type": "response_item",
            "timestamp": "t1",
            "payload": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": "Build an exporter"}],
            },
        },
        {
            "type": "response_item",
            "timestamp": "t2",
            "payload": {"type": "message", "role": "assistant", "content": [{"type": "output_text", "text": "ok"}]},
        },
    ]
    (day_dir / "rollout-1.jsonl").write_text("\n".join(json.dumps(e) for e in other), encoding="utf-8")
    (day_dir / "rollout-2.jsonl").write_text("\n".join(json.dumps(e) for e in wanted), encoding="utf-8")

    record = _store(session_builder).load("codex:abc")

    assert record.session_id == "codex:abc"
    assert record.source is SessionSource.CODEX
    assert record.cwd == "/work/app"
    assert [event.message_text for event in record.events] == ["Build an exporter"]


def test_unknown_codex_session_raises(session_builder) -> None:
    with pytest.raises(CollectionError):
        _store(session_builder).load("codex:missing")
