"""End-to-end mood flow through the service facade on the development chain."""
from __future__ import annotations

import pytest

from moodledger.core.errors import AlreadyRecordedToday
from moodledger.repositories.local_cache import LocalMoodCache, MemoryStorage
from moodledger.repositories.mock_ledger import EMOJIS
from moodledger.schemas.mood import ViewSource
from moodledger.services.input_encryptor import fingerprint_message
from moodledger.services.mood_service import MoodTrackerService

from .conftest import START_DAY


@pytest.mark.asyncio
async def test_record_load_decrypt_scenario(service, signer, local_cache):
    assert await service.has_recorded_today() is False

    receipt = await service.record_mood(1, "feeling good")
    assert receipt.day_index == START_DAY
    assert await service.has_recorded_today() is True

    with pytest.raises(AlreadyRecordedToday):
        await service.record_mood(3, "again")

    moods = await service.load_user_moods()
    assert list(moods) == [START_DAY]
    assert not moods[START_DAY].is_decrypted

    record = await service.decrypt_mood(START_DAY)
    assert record.clear_emoji == EMOJIS[1]
    assert record.clear_message_fingerprint == fingerprint_message("feeling good")
    assert len(signer.prompts) == 1

    entry = local_cache.get(START_DAY)
    assert entry.emoji == 1
    assert entry.message == "feeling good"


@pytest.mark.asyncio
async def test_history_prefers_local_plaintext(service):
    await service.record_mood(4, "local words")
    await service.load_user_moods()

    view = (await service.history())[START_DAY]

    assert view.source is ViewSource.LOCAL
    assert view.message == "local words"
    assert view.emoji == EMOJIS[4]
    assert view.exists_on_ledger is True


@pytest.mark.asyncio
async def test_record_without_local_copy_shows_encrypted_until_decrypted(service):
    # Written through the ledger directly, as another device would
    await service.ledger.record_mood(6, "no local copy")
    await service.load_user_moods()
    assert (await service.history())[START_DAY].source is ViewSource.ENCRYPTED

    await service.decrypt_many([START_DAY])

    view = (await service.history())[START_DAY]
    assert view.source is ViewSource.DECRYPTED
    assert view.emoji == EMOJIS[6]


class FullDiskStorage(MemoryStorage):
    def set_item(self, key: str, value: str) -> None:
        raise OSError("disk full")


@pytest.mark.asyncio
async def test_local_save_failure_still_reports_confirmed_record(session, ledger, test_settings):
    service = MoodTrackerService(session, ledger, LocalMoodCache(FullDiskStorage()), settings=test_settings)

    receipt = await service.record_mood(2, "kept on ledger")

    assert receipt.day_index == START_DAY
    assert await service.has_recorded_today() is True
    assert service.local_cache.load() == {}
