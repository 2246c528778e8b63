"""Ledger client: encrypted submissions and reads against the mood ledger."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from pydantic import ValidationError

from moodledger.core.config import Settings, settings as default_settings
from moodledger.core.errors import (
    ExecutionError,
    InvalidFieldRange,
    NetworkFailure,
    TransactionReverted,
    decode_execution_error,
)
from moodledger.repositories.contract import MoodLedgerContract, normalize_address
from moodledger.schemas.mood import MoodFields, MoodRecord, RecordReceipt, day_index_from_timestamp
from moodledger.services.input_encryptor import InputEncryptor, fingerprint_message
from moodledger.session import MoodSession

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerClient:
    """Owns the authoritative MoodRecord map for every user it has loaded."""

    def __init__(
        self,
        session: MoodSession,
        contract: MoodLedgerContract,
        settings: Settings = default_settings,
    ) -> None:
        self.session = session
        self.contract = contract
        self.settings = settings
        self.encryptor = InputEncryptor(self.emoji_count)
        self._records: Dict[str, Dict[int, MoodRecord]] = {}
        self._emoji_count: Optional[int] = None
        self._catalogue: Optional[List[str]] = None

    # ------------------------------------------------------------------
    # Execution-layer boundary
    # ------------------------------------------------------------------
    async def _call(self, description: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except ExecutionError as exc:
            error = decode_execution_error(exc)
            LOGGER.info("%s reverted: %s", description, error.__class__.__name__)
            raise error from exc
        except OSError as exc:
            raise NetworkFailure(f"{description} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Emoji catalogue (static on the contract)
    # ------------------------------------------------------------------
    async def emoji_count(self) -> int:
        if self._emoji_count is None:
            self._emoji_count = int(await self._call("getEmojiCount", self.contract.get_emoji_count()))
        return self._emoji_count

    async def emoji_catalogue(self) -> List[str]:
        if self._catalogue is None:
            count = await self.emoji_count()
            self._catalogue = list(
                await asyncio.gather(*(self._call("getEmoji", self.contract.get_emoji(i)) for i in range(count)))
            )
        return list(self._catalogue)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def record_mood(self, emoji_index: int, message: str) -> RecordReceipt:
        if not message or not message.strip():
            raise InvalidFieldRange("message must not be empty")
        try:
            fields = MoodFields(emoji_index=emoji_index, message_fingerprint=fingerprint_message(message))
        except ValidationError as exc:
            raise InvalidFieldRange(f"emoji index must be an integer, got {emoji_index!r}") from exc
        await self.encryptor.validate(fields)

        user = self.session.user_address
        contract_address = self.contract.address
        instance = await self.session.instance()
        encrypted = await self.encryptor.encrypt_inputs(instance, contract_address, user, fields)

        LOGGER.info("📤 Submitting mood for %s (emoji=%s)", user, emoji_index)
        tx = await self._call(
            "recordMood",
            self.contract.record_mood(
                user,
                encrypted.emoji_handle,
                encrypted.message_handle,
                encrypted.input_proof,
                encrypted.input_proof,
            ),
        )
        receipt = await self._call("recordMood confirmation", tx.wait())
        if receipt.status != 1:
            raise TransactionReverted(f"recordMood transaction {receipt.tx_hash} failed")

        day = day_index_from_timestamp(receipt.block_timestamp)
        LOGGER.info("✅ Mood recorded for %s on day %s (tx=%s)", user, day, receipt.tx_hash)
        return RecordReceipt(
            day_index=day,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            emoji_index=emoji_index,
            message=message,
            message_fingerprint=fields.message_fingerprint,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def today(self) -> int:
        return int(await self._call("getTodayTimestamp", self.contract.get_today_timestamp()))

    async def has_recorded_today(self) -> bool:
        return bool(
            await self._call("hasRecordedToday", self.contract.has_recorded_today(self.session.user_address))
        )

    async def load_user_moods(self, user_address: Optional[str] = None, days: Optional[int] = None) -> Dict[int, MoodRecord]:
        """Scan the last ``days`` day indices (ending at the ledger's today)."""
        user = normalize_address(user_address or self.session.user_address)
        window = days if days is not None else self.settings.MOOD_HISTORY_DAYS
        if window < 0:
            raise InvalidFieldRange(f"history window must not be negative, got {window}")
        today = await self.today()
        candidates = list(range(max(0, today - window + 1), today + 1))

        flags = await asyncio.gather(*(self._call("hasMood", self.contract.has_mood(user, day)) for day in candidates))
        hits = [day for day, present in zip(candidates, flags) if present]
        moods = await asyncio.gather(*(self._call("getMood", self.contract.get_mood(user, day)) for day in hits))

        previous = self._records.get(user, {})
        loaded: Dict[int, MoodRecord] = {}
        for day, (timestamp_handle, emoji_handle, message_handle, exists) in zip(hits, moods):
            if not exists:
                continue
            record = MoodRecord(
                user_address=user,
                day_index=day,
                timestamp_handle=timestamp_handle,
                emoji_handle=emoji_handle,
                message_handle=message_handle,
            )
            known = previous.get(day)
            if known is not None and known.is_decrypted and known.same_ciphertexts(record):
                record = known
            loaded[day] = record

        window_days = set(candidates)
        merged = {day: record for day, record in previous.items() if day not in window_days}
        merged.update(loaded)
        self._records[user] = merged
        LOGGER.info("📚 Loaded %d mood record(s) for %s over %d day(s)", len(loaded), user, window)
        return dict(loaded)

    async def mood_count_handle(self, user_address: Optional[str] = None) -> str:
        user = normalize_address(user_address or self.session.user_address)
        return await self._call("getUserMoodCount", self.contract.get_user_mood_count(user))

    # ------------------------------------------------------------------
    # Record map
    # ------------------------------------------------------------------
    def records(self, user_address: Optional[str] = None) -> Dict[int, MoodRecord]:
        user = normalize_address(user_address or self.session.user_address)
        return dict(self._records.get(user, {}))

    def get_record(self, day_index: int, user_address: Optional[str] = None) -> Optional[MoodRecord]:
        user = normalize_address(user_address or self.session.user_address)
        return self._records.get(user, {}).get(day_index)

    def mark_decrypted(self, record: MoodRecord, **cleartext: Any) -> MoodRecord:
        """Replace ``record`` with its decrypted copy, if it is still current."""
        user_records = self._records.setdefault(record.user_address, {})
        current = user_records.get(record.day_index)
        if current is not None and not current.same_ciphertexts(record):
            LOGGER.warning("Record for day %s changed during decryption; keeping ledger copy", record.day_index)
            return current
        decrypted = record.model_copy(update={"is_decrypted": True, **cleartext})
        user_records[record.day_index] = decrypted
        return decrypted
