"""Builds encrypted ledger inputs (handles + proof) from plaintext mood fields."""
from __future__ import annotations

import hashlib
import logging
import time
from typing import Awaitable, Callable, Optional

from moodledger.core.errors import EncryptionFailure, InstanceNotReady, InvalidFieldRange, MoodLedgerError
from moodledger.schemas.mood import UINT256_MAX, UINT8_MAX, EncryptedMoodInput, MoodFields
from moodledger.services.instance_manager import EncryptionInstance

LOGGER = logging.getLogger(__name__)

EMOJI_BITS = 8
MESSAGE_BITS = 256


def fingerprint_message(message: str) -> int:
    """sha256 of the UTF-8 message as an unsigned 256-bit integer."""
    return int.from_bytes(hashlib.sha256(message.encode("utf-8")).digest(), "big")


class InputEncryptor:
    def __init__(self, emoji_count: Callable[[], Awaitable[int]]) -> None:
        self._emoji_count = emoji_count

    async def validate(self, fields: MoodFields) -> None:
        count = min(await self._emoji_count(), UINT8_MAX + 1)
        if not 0 <= fields.emoji_index < count:
            raise InvalidFieldRange(f"emoji index {fields.emoji_index} outside [0, {count})")
        if not 0 <= fields.message_fingerprint <= UINT256_MAX:
            raise InvalidFieldRange("message fingerprint does not fit in 256 bits")

    async def encrypt_inputs(
        self,
        instance: Optional[EncryptionInstance],
        contract_address: str,
        user_address: str,
        fields: MoodFields,
    ) -> EncryptedMoodInput:
        # Range checks come first so invalid input never costs a proof
        await self.validate(fields)
        if instance is None:
            raise InstanceNotReady("Encryption instance not initialized")

        start = time.perf_counter()
        values = [(EMOJI_BITS, fields.emoji_index), (MESSAGE_BITS, fields.message_fingerprint)]
        try:
            encrypted = await instance.backend.encrypt_inputs(contract_address, user_address, values)
        except MoodLedgerError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise EncryptionFailure(f"Proof generation failed: {exc}") from exc
        if len(encrypted.handles) != len(values):
            raise EncryptionFailure(f"Expected {len(values)} handles, got {len(encrypted.handles)}")

        elapsed = (time.perf_counter() - start) * 1000
        LOGGER.info("🔐 Encrypted mood inputs for %s (%.1f ms)", user_address, elapsed)
        emoji_handle, message_handle = encrypted.handles
        return EncryptedMoodInput(
            emoji_handle=emoji_handle,
            message_handle=message_handle,
            input_proof=encrypted.input_proof,
        )
