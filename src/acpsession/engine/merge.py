"""Streaming text merge.

Agents stream message and thought text as fragments that may be deltas,
cumulative snapshots, or repeats of what was already sent. Fragments are
folded into the tail entry of the log when it is an open entry of the same
kind; anything else starts a new entry.
"""

from __future__ import annotations

from acpsession.logging import TRACE, get_logger
from acpsession.session.entries import Entry, MessageEntry, Role, ThoughtEntry
from acpsession.session.registry import SessionLog

log = get_logger("merge")


def extract_new_content(current: str, fragment: str) -> str | None:
    """Return the part of ``fragment`` not already present in ``current``.

    - duplicate: ``current`` already ends with ``fragment`` -> None
    - cumulative: ``fragment`` extends ``current`` -> the extension
    - delta: anything else -> ``fragment`` in full
    """
    if not fragment:
        return None
    if len(fragment) <= len(current) and current.endswith(fragment):
        return None
    if fragment.startswith(current):
        return fragment[len(current):] or None
    return fragment


def _open_tail(slog: SessionLog, role: Role | None) -> MessageEntry | ThoughtEntry | None:
    """The tail entry a fragment with this role continues, if any."""
    if slog.tail_sealed:
        return None
    tail = slog.last()
    if role is None:
        return tail if isinstance(tail, ThoughtEntry) else None
    if isinstance(tail, MessageEntry) and tail.role is role:
        return tail
    return None


def merge_fragment(slog: SessionLog, fragment: str, *, role: Role | None) -> Entry | None:
    """Fold a fragment into the log.

    Args:
        slog: The session log, inside a registry transaction.
        fragment: The incoming text.
        role: Message role, or None for a thought.

    Returns:
        The appended or continued entry, or None if nothing changed.
    """
    if not fragment:
        return None

    tail = _open_tail(slog, role)
    if tail is not None:
        new_text = extract_new_content(tail.text, fragment)
        if new_text is None:
            log.log(TRACE, "Dropped duplicate fragment in %s", slog.session_id)
            return None
        tail.text += new_text
        slog.touch(tail)
        return tail

    entry: Entry
    if role is None:
        entry = ThoughtEntry(text=fragment)
    else:
        entry = MessageEntry(role=role, text=fragment)
    return slog.append(entry)


def merge_message(slog: SessionLog, fragment: str) -> Entry | None:
    return merge_fragment(slog, fragment, role=Role.ASSISTANT)


def merge_thought(slog: SessionLog, fragment: str) -> Entry | None:
    return merge_fragment(slog, fragment, role=None)


def merge_user_message(slog: SessionLog, fragment: str) -> Entry | None:
    """Fold user text replayed by the agent (``session/load``)."""
    return merge_fragment(slog, fragment, role=Role.USER)
