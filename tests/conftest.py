"""Shared fixtures: a development chain with a plaintext keyset and scripted wallet."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from moodledger.core.config import Settings
from moodledger.core.errors import DecryptionAuthorizationDenied, UserRejectedRequest
from moodledger.fhe_core.backend import EncryptedInput
from moodledger.fhe_core.user_keys import open_values
from moodledger.repositories.local_cache import JsonFileStorage, LocalMoodCache
from moodledger.repositories.mock_ledger import MockChain, MockClock
from moodledger.schemas.mood import BackendMode
from moodledger.services.instance_manager import InstanceManager
from moodledger.services.mood_service import MoodTrackerService
from moodledger.session import DevSigner, MoodSession

# 2023-11-14T22:13:20Z, day index 19675
START_TIME = 1_700_000_000.0
START_DAY = 19675


class PlainKeyset:
    """Reversible stand-in for the BFV keyset so tests do not need TenSEAL."""

    def public_params(self) -> bytes:
        return b"plain-public-params"

    def encrypt_uint(self, value: int, bits: int) -> bytes:
        return f"{bits}:{value}".encode()

    def decrypt_uint(self, payload: bytes, bits: int) -> int:
        return int(payload.decode().split(":")[1])


class PlainBackend:
    mode = BackendMode.MOCK

    def __init__(self, chain: MockChain, keyset: PlainKeyset) -> None:
        self.chain = chain
        self.keyset = keyset
        self.encrypt_calls = 0
        self.decrypt_calls = 0
        self.fail_encrypt: Optional[Exception] = None
        self.fail_decrypt: Optional[Exception] = None

    async def load_public_params(self) -> bytes:
        return self.chain.coprocessor.public_params()

    async def encrypt_inputs(self, contract_address: str, user_address: str, values) -> EncryptedInput:
        self.encrypt_calls += 1
        if self.fail_encrypt is not None:
            raise self.fail_encrypt
        ciphertexts = [(bits, self.keyset.encrypt_uint(value, bits)) for bits, value in values]
        handles, proof = self.chain.coprocessor.register_inputs(contract_address, user_address, ciphertexts)
        return EncryptedInput(handles, proof)

    async def user_decrypt(self, pairs, signature) -> Dict[str, int]:
        self.decrypt_calls += 1
        await asyncio.sleep(0)
        if self.fail_decrypt is not None:
            raise self.fail_decrypt
        try:
            sealed = self.chain.coprocessor.user_decrypt(pairs, signature)
        except PermissionError as exc:
            raise DecryptionAuthorizationDenied(str(exc)) from exc
        return open_values(sealed, signature.private_key)


class ScriptedSigner:
    """Wallet that records every prompt; can reject or hold the prompt open."""

    def __init__(self, address: str = "0x00000000000000000000000000000000000000A1") -> None:
        self._key = DevSigner(address=address)
        self.address = address
        self.verify_key = self._key.verify_key
        self.prompts: List[Dict[str, Any]] = []
        self.domains: List[Dict[str, Any]] = []
        self.reject = False
        self.gate: Optional[asyncio.Event] = None

    async def sign_typed_data(self, domain, types, message) -> str:
        self.prompts.append(message)
        self.domains.append(domain)
        if self.gate is not None:
            await self.gate.wait()
        if self.reject:
            raise UserRejectedRequest("User rejected the request.")
        return await self._key.sign_typed_data(domain, types, message)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(MOOD_HISTORY_DAYS=7, DECRYPTION_SIGNATURE_DURATION_DAYS=1)


@pytest.fixture
def clock() -> MockClock:
    return MockClock(start=START_TIME)


@pytest.fixture
def keyset() -> PlainKeyset:
    return PlainKeyset()


@pytest.fixture
def chain(clock: MockClock, keyset: PlainKeyset) -> MockChain:
    return MockChain(clock=clock, keyset=keyset)


@pytest.fixture
def ledger(chain: MockChain):
    return chain.deploy_mood_ledger()


@pytest.fixture
def backend(chain: MockChain, keyset: PlainKeyset) -> PlainBackend:
    return PlainBackend(chain, keyset)


@pytest.fixture
def instance_manager(backend: PlainBackend, test_settings: Settings) -> InstanceManager:
    return InstanceManager(backend_factory=lambda chain_id, provider, s: backend, settings=test_settings)


@pytest.fixture
def signer(chain: MockChain) -> ScriptedSigner:
    signer = ScriptedSigner()
    chain.register_account(signer.address, signer.verify_key)
    return signer


@pytest.fixture
def session(chain, ledger, signer, instance_manager, clock) -> MoodSession:
    return MoodSession(
        chain_id=chain.chain_id,
        provider=chain,
        signer=signer,
        contract_address=ledger.address,
        instance_manager=instance_manager,
        clock=clock.now,
    )


@pytest.fixture
def local_cache(tmp_path) -> LocalMoodCache:
    return LocalMoodCache(JsonFileStorage(tmp_path / "storage.json"))


@pytest.fixture
def service(session, ledger, local_cache, test_settings) -> MoodTrackerService:
    return MoodTrackerService(session, ledger, local_cache, settings=test_settings)
