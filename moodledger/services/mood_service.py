"""Domain service orchestrating encrypted mood submission, history and decryption."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from moodledger.core.config import Settings, settings as default_settings
from moodledger.core.errors import AlreadyRecordedToday
from moodledger.repositories.contract import MoodLedgerContract
from moodledger.repositories.local_cache import LocalMoodCache
from moodledger.schemas.mood import MoodRecord, MoodView, RecordReceipt
from moodledger.services.decryption_authorizer import DecryptionAuthorizer
from moodledger.services.ledger_client import LedgerClient
from moodledger.services.reconciliation import reconcile
from moodledger.session import MoodSession

LOGGER = logging.getLogger(__name__)


class MoodTrackerService:
    def __init__(
        self,
        session: MoodSession,
        contract: MoodLedgerContract,
        local_cache: Optional[LocalMoodCache] = None,
        settings: Settings = default_settings,
    ) -> None:
        self.session = session
        self.ledger = LedgerClient(session, contract, settings)
        self.authorizer = DecryptionAuthorizer(session, self.ledger, settings)
        self.local_cache = local_cache or LocalMoodCache()

    async def record_mood(self, emoji_index: int, message: str) -> RecordReceipt:
        try:
            receipt = await self.ledger.record_mood(emoji_index, message)
        except AlreadyRecordedToday:
            LOGGER.info("Mood already recorded today for %s", self.session.user_address)
            raise
        except Exception as e:
            LOGGER.error("❌ Error in record_mood: %s", str(e))
            raise
        # Keyed by the day the ledger confirmed, not the local clock
        try:
            self.local_cache.put(receipt.day_index, emoji_index, message)
        except OSError as e:
            # The record is already on the ledger; only the local plaintext is lost
            LOGGER.warning("⚠️ Failed to save mood history for day %s: %s", receipt.day_index, e)
        return receipt

    async def has_recorded_today(self) -> bool:
        return await self.ledger.has_recorded_today()

    async def load_user_moods(self, user_address: Optional[str] = None, days: Optional[int] = None) -> Dict[int, MoodRecord]:
        return await self.ledger.load_user_moods(user_address, days)

    async def decrypt_mood(self, day_index: int) -> Optional[MoodRecord]:
        return await self.authorizer.decrypt_mood(day_index)

    async def decrypt_many(self, day_indices: List[int]) -> List[Optional[MoodRecord]]:
        return await self.authorizer.decrypt_many(day_indices)

    async def history(self) -> Dict[int, MoodView]:
        """Merged view of loaded ledger records and this device's plaintext."""
        catalogue = await self.ledger.emoji_catalogue()
        return reconcile(self.ledger.records(), self.local_cache.load(), catalogue)
