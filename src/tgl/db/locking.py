"""Row locks for read-modify-write paths.

Every write path locks with ``FOR NO KEY UPDATE`` rather than ``FOR UPDATE``.
Inserting a ledger or reward row takes ``FOR KEY SHARE`` on the referenced
tournament and user rows; a plain ``FOR UPDATE`` held by another transaction
blocks that, which closes a lock cycle between the gift writer and the reward
evaluator. ``FOR NO KEY UPDATE`` still serialises writers of the same row.
SQLite ignores row locks.
"""

from __future__ import annotations

from typing import TypeVar

from sqlalchemy import Select

SelectT = TypeVar("SelectT", bound=Select)


def for_update(query: SelectT) -> SelectT:
    """Lock the selected rows until the end of the transaction."""
    return query.with_for_update(key_share=True)
