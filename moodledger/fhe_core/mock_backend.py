"""Backend for local development chains backed by the in-process coprocessor."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

from moodledger.core.errors import DecryptionAuthorizationDenied, EncryptionFailure, InstanceNotReady
from moodledger.fhe_core.backend import EncryptedInput, TypedValues
from moodledger.fhe_core.user_keys import open_values
from moodledger.schemas.mood import BackendMode, DecryptionSignature, HandleContractPair

LOGGER = logging.getLogger(__name__)


class MockBackend:
    """Encrypts inputs locally with the chain's public BFV context."""

    mode = BackendMode.MOCK

    def __init__(self, chain: Any) -> None:
        coprocessor = getattr(chain, "coprocessor", None)
        if coprocessor is None:
            raise InstanceNotReady("Provider is not a local development chain")
        self._coprocessor = coprocessor
        self._public_context: Optional[Any] = None
        self._ts = None

    async def load_public_params(self) -> bytes:
        try:
            from moodledger.fhe_core import tenseal_context

            public_params = self._coprocessor.public_params()
            self._public_context = await asyncio.to_thread(tenseal_context.load_context, public_params)
            self._ts = tenseal_context
        except Exception as exc:  # noqa: BLE001
            raise InstanceNotReady(f"Failed to load public parameters: {exc}") from exc
        LOGGER.info("🔑 Loaded mock public context (%d bytes)", len(public_params))
        return public_params

    async def encrypt_inputs(
        self, contract_address: str, user_address: str, values: TypedValues
    ) -> EncryptedInput:
        if self._public_context is None or self._ts is None:
            raise InstanceNotReady("Mock backend used before initialization")
        try:
            ciphertexts = [
                (bits, await asyncio.to_thread(self._ts.encrypt_uint, self._public_context, value, bits))
                for bits, value in values
            ]
            handles, proof = self._coprocessor.register_inputs(contract_address, user_address, ciphertexts)
        except Exception as exc:  # noqa: BLE001
            raise EncryptionFailure(f"Input encryption failed: {exc}") from exc
        return EncryptedInput(handles, proof)

    async def user_decrypt(
        self, pairs: Sequence[HandleContractPair], signature: DecryptionSignature
    ) -> Dict[str, int]:
        try:
            sealed = await asyncio.to_thread(self._coprocessor.user_decrypt, pairs, signature)
        except PermissionError as exc:
            raise DecryptionAuthorizationDenied(str(exc)) from exc
        return open_values(sealed, signature.private_key)
