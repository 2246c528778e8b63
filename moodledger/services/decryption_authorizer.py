"""Signature-authorized decryption of the user's own mood records."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence

from moodledger.core.config import Settings, settings as default_settings
from moodledger.core.errors import (
    DecryptionAuthorizationDenied,
    MoodLedgerError,
    NetworkFailure,
    is_user_rejection,
)
from moodledger.core.typed_data import build_typed_data
from moodledger.fhe_core.user_keys import generate_keypair
from moodledger.repositories.contract import ZERO_HANDLE
from moodledger.schemas.mood import DecryptionSignature, HandleContractPair, MoodRecord
from moodledger.services.ledger_client import LedgerClient
from moodledger.services.signature_store import SignatureKey, signature_key
from moodledger.session import MoodSession

LOGGER = logging.getLogger(__name__)


class DecryptionAuthorizer:
    def __init__(
        self,
        session: MoodSession,
        ledger: LedgerClient,
        settings: Settings = default_settings,
    ) -> None:
        self.session = session
        self.ledger = ledger
        self.settings = settings
        self._in_flight: Dict[tuple, asyncio.Task] = {}
        self.prompt_count = 0

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------
    def _signature_key(self, contract_addresses: Sequence[str]) -> SignatureKey:
        return signature_key(self.session.chain_id, self.session.user_address, contract_addresses)

    async def authorize(self, contract_addresses: Sequence[str]) -> DecryptionSignature:
        """Return a valid signature for the contract set, prompting at most once."""
        key = self._signature_key(contract_addresses)
        return await self.session.signatures.load_or_sign(key, lambda: self._request_signature(key))

    async def _request_signature(self, key: SignatureKey) -> DecryptionSignature:
        chain_id, user_address, contract_addresses = key
        public_key, private_key = generate_keypair()
        start = int(self.session.clock())
        duration = self.settings.DECRYPTION_SIGNATURE_DURATION_DAYS
        typed = build_typed_data(chain_id, public_key, contract_addresses, start, duration)
        self.prompt_count += 1
        LOGGER.info("✍️ Requesting decryption signature from %s on chain %s", user_address, chain_id)
        try:
            signature = await self.session.signer.sign_typed_data(typed["domain"], typed["types"], typed["message"])
        except Exception as exc:  # noqa: BLE001
            if is_user_rejection(exc):
                raise DecryptionAuthorizationDenied("User declined the decryption signature") from exc
            if isinstance(exc, OSError):
                raise NetworkFailure(f"Signer unreachable: {exc}") from exc
            raise
        if not signature:
            raise DecryptionAuthorizationDenied("Signer returned an empty signature")
        return DecryptionSignature(
            chain_id=chain_id,
            user_address=user_address,
            contract_addresses=contract_addresses,
            public_key=public_key,
            private_key=private_key,
            signature=signature,
            start_timestamp=start,
            duration_days=duration,
        )

    # ------------------------------------------------------------------
    # Decryption
    # ------------------------------------------------------------------
    async def decrypt_handles(self, handles: Sequence[str]) -> Dict[str, int]:
        contract_address = self.ledger.contract.address
        instance = await self.session.instance()
        key = self._signature_key([contract_address])
        signature = await self.authorize([contract_address])
        pairs = [HandleContractPair(handle=h, contract_address=contract_address) for h in handles]
        try:
            return await instance.backend.user_decrypt(pairs, signature)
        except DecryptionAuthorizationDenied:
            # Refused by the decryption service; the next attempt signs again
            self.session.signatures.invalidate(key)
            raise
        except MoodLedgerError:
            raise
        except OSError as exc:
            raise NetworkFailure(f"Decryption service unreachable: {exc}") from exc

    def _on_decrypted(self, key: tuple, task: asyncio.Task) -> None:
        self._in_flight.pop(key, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning("Decryption for day %s failed: %s", key[1], exc)

    async def decrypt_mood(self, day_index: int) -> Optional[MoodRecord]:
        record = self.ledger.get_record(day_index)
        if record is None or record.is_decrypted:
            return record
        key = (record.user_address, day_index, record.emoji_handle, record.message_handle)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._decrypt_record(record))
            task.add_done_callback(lambda t, k=key: self._on_decrypted(k, t))
            self._in_flight[key] = task
        return await asyncio.shield(task)

    async def _decrypt_record(self, record: MoodRecord) -> MoodRecord:
        start = time.perf_counter()
        values = await self.decrypt_handles([record.emoji_handle, record.message_handle])
        emoji_index = values[record.emoji_handle]
        catalogue = await self.ledger.emoji_catalogue()
        emoji = catalogue[emoji_index] if 0 <= emoji_index < len(catalogue) else None
        decrypted = self.ledger.mark_decrypted(
            record,
            clear_emoji_index=emoji_index,
            clear_emoji=emoji,
            clear_message_fingerprint=values[record.message_handle],
        )
        elapsed = (time.perf_counter() - start) * 1000
        LOGGER.info("🔓 Decrypted mood for day %s (%.1f ms)", record.day_index, elapsed)
        return decrypted

    async def decrypt_many(self, day_indices: Sequence[int]) -> List[Optional[MoodRecord]]:
        return list(await asyncio.gather(*(self.decrypt_mood(day) for day in day_indices)))

    async def decrypt_mood_count(self) -> int:
        handle = await self.ledger.mood_count_handle()
        if handle == ZERO_HANDLE:
            return 0
        values = await self.decrypt_handles([handle])
        return values[handle]
