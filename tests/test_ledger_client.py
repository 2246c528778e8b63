"""Ledger writes and reads against the development chain."""
from __future__ import annotations

import pytest

from moodledger.core.errors import AlreadyRecordedToday, InvalidFieldRange, NetworkFailure
from moodledger.repositories.mock_ledger import EMOJIS
from moodledger.services.ledger_client import LedgerClient

from .conftest import START_DAY


@pytest.fixture
def client(session, ledger, test_settings) -> LedgerClient:
    return LedgerClient(session, ledger, test_settings)


@pytest.mark.asyncio
async def test_record_then_has_recorded_today(client):
    assert await client.has_recorded_today() is False

    receipt = await client.record_mood(1, "feeling good")

    assert receipt.day_index == START_DAY
    assert receipt.emoji_index == 1
    assert await client.has_recorded_today() is True


@pytest.mark.asyncio
@pytest.mark.parametrize("revert_style", ["reason", "args", "data"])
async def test_second_same_day_submission_fails_and_leaves_state(chain, session, test_settings, revert_style):
    ledger = chain.deploy_mood_ledger(revert_style=revert_style)
    client = LedgerClient(session, ledger, test_settings)
    await client.record_mood(1, "feeling good")
    first = await ledger.get_mood(session.user_address, START_DAY)

    with pytest.raises(AlreadyRecordedToday):
        await client.record_mood(3, "again")

    assert await ledger.get_mood(session.user_address, START_DAY) == first
    moods = await client.load_user_moods()
    assert list(moods) == [START_DAY]


@pytest.mark.asyncio
async def test_emoji_count_is_one_past_valid_range(client, backend, chain):
    count = await client.emoji_count()
    assert count == len(EMOJIS)

    with pytest.raises(InvalidFieldRange):
        await client.record_mood(count, "too far")
    assert backend.encrypt_calls == 0
    assert chain.block_number == 0


@pytest.mark.asyncio
async def test_empty_message_rejected(client, chain):
    with pytest.raises(InvalidFieldRange):
        await client.record_mood(0, "   ")
    assert chain.block_number == 0


@pytest.mark.asyncio
async def test_load_user_moods_scans_window(client, clock, session):
    await client.record_mood(0, "day one")
    clock.advance(86400)
    await client.record_mood(4, "day two")
    clock.advance(86400 * 2)

    moods = await client.load_user_moods()

    assert sorted(moods) == [START_DAY, START_DAY + 1]
    record = moods[START_DAY + 1]
    assert record.exists and not record.is_decrypted
    assert record.user_address == session.user_address
    assert record.emoji_handle != record.message_handle

    narrow = await client.load_user_moods(days=1)
    assert narrow == {}


@pytest.mark.asyncio
async def test_other_user_records_are_separate(client, chain):
    await client.record_mood(2, "mine")
    assert await client.load_user_moods("0x00000000000000000000000000000000000000b2") == {}


@pytest.mark.asyncio
async def test_reload_keeps_decrypted_copy_when_handles_unchanged(client):
    await client.record_mood(2, "hi")
    record = (await client.load_user_moods())[START_DAY]
    client.mark_decrypted(record, clear_emoji_index=2, clear_emoji=EMOJIS[2], clear_message_fingerprint=7)

    reloaded = await client.load_user_moods()

    assert reloaded[START_DAY].is_decrypted
    assert reloaded[START_DAY].clear_emoji_index == 2


@pytest.mark.asyncio
async def test_transport_error_is_network_failure(client, ledger, monkeypatch):
    async def unreachable():
        raise ConnectionError("node unreachable")

    monkeypatch.setattr(ledger, "get_today_timestamp", unreachable)
    with pytest.raises(NetworkFailure):
        await client.load_user_moods()


@pytest.mark.asyncio
async def test_emoji_catalogue(client):
    assert await client.emoji_catalogue() == EMOJIS


@pytest.mark.asyncio
@pytest.mark.parametrize("emoji_index", [1.5, "happy", None])
async def test_non_integer_emoji_index_is_a_range_error(client, chain, backend, emoji_index):
    with pytest.raises(InvalidFieldRange):
        await client.record_mood(emoji_index, "hmm")
    assert backend.encrypt_calls == 0
    assert chain.block_number == 0


@pytest.mark.asyncio
async def test_zero_day_window_loads_nothing(client):
    await client.record_mood(1, "today")

    assert await client.load_user_moods(days=0) == {}
    assert list(await client.load_user_moods()) == [START_DAY]
    with pytest.raises(InvalidFieldRange):
        await client.load_user_moods(days=-1)
