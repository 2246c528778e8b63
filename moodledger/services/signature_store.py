"""Decryption signature cache with a pending-request registry."""
from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, Optional, Tuple

from moodledger.repositories.contract import normalize_address
from moodledger.schemas.mood import DecryptionSignature

LOGGER = logging.getLogger(__name__)

# (chain id, user, sorted contract set)
SignatureKey = Tuple[int, str, Tuple[str, ...]]


class SignatureState(str, Enum):
    UNCACHED = "uncached"
    REQUESTING = "requesting-signature"
    CACHED = "cached"
    EXPIRED = "expired"


def signature_key(chain_id: int, user_address: str, contract_addresses: Iterable[str]) -> SignatureKey:
    contracts = tuple(sorted({normalize_address(c) for c in contract_addresses}))
    return int(chain_id), normalize_address(user_address), contracts


class DecryptionSignatureStore:
    """In-memory signatures keyed by (chain, user, contract set).

    At most one signature request is in flight per key. Callers arriving
    while it is pending attach to the same task, so the user sees a single
    prompt. The task itself writes the cache on success; failed requests
    leave the key uncached.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._signatures: Dict[SignatureKey, DecryptionSignature] = {}
        self._pending: Dict[SignatureKey, asyncio.Task] = {}

    def state(self, key: SignatureKey) -> SignatureState:
        if key in self._pending:
            return SignatureState.REQUESTING
        cached = self._signatures.get(key)
        if cached is None:
            return SignatureState.UNCACHED
        if cached.is_valid_at(self._clock()):
            return SignatureState.CACHED
        return SignatureState.EXPIRED

    def get_valid(self, key: SignatureKey) -> Optional[DecryptionSignature]:
        cached = self._signatures.get(key)
        if cached is None:
            return None
        if not cached.is_valid_at(self._clock()) or not cached.covers(key[0], key[2]):
            return None
        return cached

    async def load_or_sign(
        self, key: SignatureKey, request: Callable[[], Awaitable[DecryptionSignature]]
    ) -> DecryptionSignature:
        cached = self.get_valid(key)
        if cached is not None:
            return cached
        task = self._pending.get(key)
        if task is None:
            if key in self._signatures:
                LOGGER.info("Decryption signature for %s expired; requesting a new one", key[1])
            task = asyncio.ensure_future(request())
            task.add_done_callback(lambda t, k=key: self._on_signed(k, t))
            self._pending[key] = task
        return await asyncio.shield(task)

    def _on_signed(self, key: SignatureKey, task: asyncio.Task) -> None:
        self._pending.pop(key, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning("Signature request for %s failed: %s", key[1], exc)
            return
        self._signatures[key] = task.result()

    def invalidate(self, key: SignatureKey) -> None:
        """Drop a signature the decryption service refused."""
        if self._signatures.pop(key, None) is not None:
            LOGGER.info("Discarded decryption signature for %s on chain %s", key[1], key[0])
