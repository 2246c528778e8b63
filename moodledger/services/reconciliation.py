"""Merge ledger records with the local plaintext cache into one view per day."""
from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence

from moodledger.schemas.mood import LocalMoodEntry, MoodRecord, MoodView, ViewSource

ENCRYPTED_MESSAGE = "Encrypted message"


def _emoji_at(catalogue: Sequence[str], index: Optional[int]) -> Optional[str]:
    if index is None or not 0 <= index < len(catalogue):
        return None
    return catalogue[index]


def reconcile_day(
    day_index: int,
    record: Optional[MoodRecord],
    local: Optional[LocalMoodEntry],
    catalogue: Sequence[str] = (),
) -> MoodView:
    exists = bool(record and record.exists)
    if local is not None:
        return MoodView(
            day_index=day_index,
            source=ViewSource.LOCAL,
            exists_on_ledger=exists,
            emoji_index=local.emoji,
            emoji=_emoji_at(catalogue, local.emoji),
            message=local.message,
        )
    if record is not None and record.is_decrypted:
        return MoodView(
            day_index=day_index,
            source=ViewSource.DECRYPTED,
            exists_on_ledger=exists,
            emoji_index=record.clear_emoji_index,
            emoji=record.clear_emoji or _emoji_at(catalogue, record.clear_emoji_index),
            message=record.clear_message,
        )
    return MoodView(
        day_index=day_index,
        source=ViewSource.ENCRYPTED,
        exists_on_ledger=exists,
        message=ENCRYPTED_MESSAGE,
    )


def reconcile(
    records: Mapping[int, MoodRecord],
    local_entries: Mapping[int, LocalMoodEntry],
    catalogue: Sequence[str] = (),
) -> Dict[int, MoodView]:
    """One row per day index, newest first.

    Priority: local entry > decrypted record > encrypted placeholder.
    """
    days = sorted(set(records) | set(local_entries), reverse=True)
    return {day: reconcile_day(day, records.get(day), local_entries.get(day), catalogue) for day in days}
