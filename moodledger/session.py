"""Session context shared by the ledger, encryption and decryption components."""
from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from nacl.signing import SigningKey

from moodledger.core.typed_data import sign_typed_data
from moodledger.repositories.contract import normalize_address
from moodledger.services.instance_manager import EncryptionInstance, InstanceManager
from moodledger.services.signature_store import DecryptionSignatureStore


class Signer(Protocol):
    """Wallet account able to sign EIP-712 typed data.

    Raises ``UserRejectedRequest`` (or any error with ``code == 4001``) when
    the user declines.
    """

    address: str

    async def sign_typed_data(
        self, domain: Dict[str, Any], types: Dict[str, List[Dict[str, str]]], message: Dict[str, Any]
    ) -> str:
        ...


class DevSigner:
    """Ed25519 signer for local development chains.

    Register ``verify_key`` for ``address`` on the chain so its decryption
    service can check the signatures.
    """

    def __init__(self, signing_key: Optional[SigningKey] = None, address: Optional[str] = None) -> None:
        self._signing_key = signing_key or SigningKey.generate()
        raw_verify_key = bytes(self._signing_key.verify_key)
        self.verify_key = "0x" + raw_verify_key.hex()
        self.address = address or "0x" + hashlib.sha256(raw_verify_key).hexdigest()[:40]

    async def sign_typed_data(
        self, domain: Dict[str, Any], types: Dict[str, List[Dict[str, str]]], message: Dict[str, Any]
    ) -> str:
        return sign_typed_data(self._signing_key, domain, types, message)


@dataclass
class MoodSession:
    """Everything a component needs about the connected wallet and chain."""

    chain_id: int
    provider: Any
    signer: Signer
    contract_address: str
    instance_manager: InstanceManager = field(default_factory=InstanceManager)
    clock: Callable[[], float] = time.time
    signatures: Optional[DecryptionSignatureStore] = None

    def __post_init__(self) -> None:
        if self.signatures is None:
            self.signatures = DecryptionSignatureStore(clock=self.clock)

    @property
    def user_address(self) -> str:
        return normalize_address(self.signer.address)

    async def instance(self) -> EncryptionInstance:
        return await self.instance_manager.get_instance(self.chain_id, self.provider)

    def switch_chain(self, chain_id: int, provider: Any, contract_address: str) -> None:
        """Point the session at another chain; the next instance() call re-initializes.

        Cached decryption signatures are keyed by chain id, so signatures for
        the previous chain are never offered on the new one.
        """
        self.chain_id = chain_id
        self.provider = provider
        self.contract_address = contract_address
