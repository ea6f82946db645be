import dataclasses

import pytest

from sahayak.core.session import ConversationLog, Speaker


def test_append_assigns_increasing_sequences():
    log = ConversationLog()

    first = log.append(Speaker.USER, "Hello")
    second = log.append(Speaker.AGENT, "Hi there!")

    assert (first.sequence, second.sequence) == (1, 2)
    assert [r.text for r in log.snapshot()] == ["Hello", "Hi there!"]
    assert len(log) == 2


def test_snapshot_is_a_read_only_copy():
    log = ConversationLog()
    log.append(Speaker.USER, "Hello")

    snapshot = log.snapshot()
    log.append(Speaker.AGENT, "Hi!")

    assert isinstance(snapshot, tuple)
    assert len(snapshot) == 1
    with pytest.raises(dataclasses.FrozenInstanceError):
        snapshot[0].text = "edited"  # type: ignore[misc]


def test_before_returns_earlier_records():
    log = ConversationLog()
    log.append(Speaker.USER, "Hello")
    log.append(Speaker.AGENT, "Hi!")
    pending = log.append(Speaker.USER, "How are you?")

    assert [r.text for r in log.before(pending.sequence)] == ["Hello", "Hi!"]


def test_speaker_labels_and_kinds():
    assert [s.label for s in Speaker] == ["You", "Sahayak", "System", "System"]
    assert [s.kind for s in Speaker] == ["user", "bot", "system", "error"]
