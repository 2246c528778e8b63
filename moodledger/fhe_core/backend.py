"""Encryption backend contract and backend selection per chain."""
from __future__ import annotations

from typing import Any, Dict, Protocol, Sequence, Tuple

from moodledger.core.config import Settings
from moodledger.core.errors import InstanceNotReady
from moodledger.schemas.mood import BackendMode, DecryptionSignature, HandleContractPair

# (bit width, plaintext value) pairs, in handle order
TypedValues = Sequence[Tuple[int, int]]


class EncryptedInput:
    """Handles for a batch of encrypted inputs and the proof covering them."""

    def __init__(self, handles: Sequence[str], input_proof: str) -> None:
        self.handles = list(handles)
        self.input_proof = input_proof

    def __repr__(self) -> str:
        return f"EncryptedInput(handles={self.handles!r})"


class EncryptionBackend(Protocol):
    mode: BackendMode

    async def load_public_params(self) -> bytes:
        ...

    async def encrypt_inputs(
        self, contract_address: str, user_address: str, values: TypedValues
    ) -> EncryptedInput:
        ...

    async def user_decrypt(
        self, pairs: Sequence[HandleContractPair], signature: DecryptionSignature
    ) -> Dict[str, int]:
        """Cleartexts by handle, opened with the signature's private reencryption key."""
        ...


def select_backend(chain_id: int, provider: Any, settings: Settings) -> EncryptionBackend:
    """Pick the mock backend for local chains and the relayer otherwise."""
    if provider is None:
        raise InstanceNotReady(f"No provider available for chain {chain_id}")
    if settings.is_mock_chain(chain_id):
        from moodledger.fhe_core.mock_backend import MockBackend

        return MockBackend(provider)
    from moodledger.clients.relayer_client import RelayerClient
    from moodledger.fhe_core.relayer_backend import RelayerBackend

    client = RelayerClient(
        base_url=settings.RELAYER_URL,
        timeout=settings.RELAYER_TIMEOUT_SECONDS,
        max_retries=settings.RELAYER_MAX_RETRIES,
        backoff_seconds=settings.RELAYER_RETRY_BACKOFF_SECONDS,
    )
    return RelayerBackend(client, chain_id)


__all__ = ["EncryptedInput", "EncryptionBackend", "TypedValues", "select_backend"]
