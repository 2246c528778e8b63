"""End-to-end walk through the encrypted mood workflow on a local development chain."""
from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict

from moodledger.core.config import settings
from moodledger.core.errors import AlreadyRecordedToday
from moodledger.repositories.local_cache import JsonFileStorage, LocalMoodCache
from moodledger.repositories.mock_ledger import MockChain
from moodledger.services.mood_service import MoodTrackerService
from moodledger.session import DevSigner, MoodSession

LOGGER = logging.getLogger(__name__)


async def run_demo(storage_path: Path | None = None) -> Dict[str, Any]:
    chain = MockChain()
    ledger = chain.deploy_mood_ledger()
    signer = DevSigner()
    chain.register_account(signer.address, signer.verify_key)
    session = MoodSession(
        chain_id=chain.chain_id,
        provider=chain,
        signer=signer,
        contract_address=ledger.address,
        clock=chain.clock.now,
    )
    storage_path = storage_path or Path(tempfile.mkdtemp()) / "storage.json"
    service = MoodTrackerService(session, ledger, LocalMoodCache(JsonFileStorage(storage_path)))

    before = await service.has_recorded_today()
    receipt = await service.record_mood(1, "feeling good")
    after = await service.has_recorded_today()

    duplicate_rejected = False
    try:
        await service.record_mood(3, "again")
    except AlreadyRecordedToday:
        duplicate_rejected = True
        LOGGER.info("Second submission rejected: already recorded today")

    records = await service.load_user_moods()
    decrypted = await service.decrypt_mood(receipt.day_index)
    history = await service.history()

    LOGGER.info(
        "Recorded before=%s after=%s | records=%d | decrypted emoji=%s",
        before,
        after,
        len(records),
        decrypted.clear_emoji if decrypted else None,
    )
    return {
        "recorded_before": before,
        "recorded_after": after,
        "duplicate_rejected": duplicate_rejected,
        "day_index": receipt.day_index,
        "records": records,
        "decrypted": decrypted,
        "history": history,
        "signature_prompts": service.authorizer.prompt_count,
    }


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
