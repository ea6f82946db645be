"""Append-only conversation log."""

from __future__ import annotations

from sahayak.core.session.api import ConversationRecord, Speaker


class ConversationLog:
    def __init__(self) -> None:
        self._records: list[ConversationRecord] = []
        self._next_sequence = 1

    def __len__(self) -> int:
        return len(self._records)

    def append(self, speaker: Speaker, text: str) -> ConversationRecord:
        record = ConversationRecord(
            speaker=speaker, text=text, sequence=self._next_sequence
        )
        self._next_sequence += 1
        self._records.append(record)
        return record

    def snapshot(self) -> tuple[ConversationRecord, ...]:
        return tuple(self._records)

    def before(self, sequence: int) -> tuple[ConversationRecord, ...]:
        """Records appended before the one with `sequence`."""
        return tuple(r for r in self._records if r.sequence < sequence)
