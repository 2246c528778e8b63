"""In-process development chain: coprocessor, clock and mood ledger contract.

Stands in for a local node running the mood ledger with the mock FHE
coprocessor. Ciphertexts are real TenSEAL BFV vectors unless another keyset
is injected; the coprocessor keeps the secret keyset and the access list for
every handle it issued. User decryption checks the Ed25519 signature registered
for the account and seals each cleartext to the requester's reencryption key.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from nacl.exceptions import CryptoError

from moodledger.core.errors import ALREADY_RECORDED_REASON, ExecutionError, encode_error_string
from moodledger.core.typed_data import build_typed_data, verify_typed_data
from moodledger.fhe_core.user_keys import seal_value
from moodledger.repositories.contract import (
    ZERO_HANDLE,
    MoodTuple,
    TransactionReceipt,
    normalize_address,
)
from moodledger.schemas.mood import DecryptionSignature, HandleContractPair, day_index_from_timestamp

LOGGER = logging.getLogger(__name__)

DEFAULT_MOCK_CHAIN_ID = 31337

EMOJIS = ["😊", "😢", "😡", "😴", "🤔", "😍", "😎", "🤯", "😰", "🥳"]

REVERT_STYLES = ("reason", "args", "data")


class MockClock:
    """Block clock. Wall time unless pinned, and advanceable in tests."""

    def __init__(self, start: Optional[float] = None) -> None:
        self._offset = 0.0
        self._pinned = start

    def now(self) -> float:
        base = self._pinned if self._pinned is not None else time.time()
        return base + self._offset

    def advance(self, seconds: float) -> None:
        self._offset += seconds


class MockCoprocessor:
    """Issues ciphertext handles, checks input proofs and serves user decryption."""

    def __init__(self, chain_id: int, clock: MockClock, keyset: Any = None) -> None:
        if keyset is None:
            from moodledger.fhe_core.tenseal_context import BfvKeyset

            keyset = BfvKeyset()
        self.chain_id = chain_id
        self.clock = clock
        self.keyset = keyset
        self._signing_key = secrets.token_bytes(32)
        self._ciphertexts: Dict[str, Tuple[int, bytes]] = {}
        self._acl: Dict[str, Set[str]] = {}
        self._accounts: Dict[str, str] = {}
        self._nonce = 0

    def public_params(self) -> bytes:
        return self.keyset.public_params()

    def _new_handle(self, payload: bytes, *parts: str) -> str:
        self._nonce += 1
        digest = hashlib.sha256()
        digest.update(str(self.chain_id).encode())
        for part in parts:
            digest.update(part.encode())
        digest.update(self._nonce.to_bytes(8, "big"))
        digest.update(payload)
        return "0x" + digest.hexdigest()

    def _proof_for(self, handles: Sequence[str], contract: str, user: str) -> str:
        message = "|".join([normalize_address(contract), normalize_address(user), *handles]).encode()
        return "0x" + hmac.new(self._signing_key, message, hashlib.sha256).hexdigest()

    def register_inputs(
        self, contract: str, user: str, ciphertexts: Sequence[Tuple[int, bytes]]
    ) -> Tuple[List[str], str]:
        handles = []
        for index, (bits, payload) in enumerate(ciphertexts):
            handle = self._new_handle(payload, normalize_address(contract), normalize_address(user), str(index))
            self._ciphertexts[handle] = (bits, payload)
            handles.append(handle)
        return handles, self._proof_for(handles, contract, user)

    def verify_input_proof(self, handles: Sequence[str], proof: str, contract: str, user: str) -> bool:
        if any(handle not in self._ciphertexts for handle in handles):
            return False
        return hmac.compare_digest(proof, self._proof_for(handles, contract, user))

    def trivial_encrypt(self, value: int, bits: int) -> str:
        payload = self.keyset.encrypt_uint(value, bits)
        handle = self._new_handle(payload, "trivial")
        self._ciphertexts[handle] = (bits, payload)
        return handle

    def allow(self, handle: str, address: str) -> None:
        self._acl.setdefault(handle, set()).add(normalize_address(address))

    def is_allowed(self, handle: str, address: str) -> bool:
        return normalize_address(address) in self._acl.get(handle, set())

    def register_account(self, address: str, verify_key: str) -> None:
        """Record the Ed25519 verify key that signs for ``address``."""
        self._accounts[normalize_address(address)] = verify_key

    def _check_signature(self, signature: DecryptionSignature) -> None:
        verify_key = self._accounts.get(normalize_address(signature.user_address))
        if verify_key is None:
            raise PermissionError(f"no signing key registered for {signature.user_address}")
        typed = build_typed_data(
            self.chain_id,
            signature.public_key,
            signature.contract_addresses,
            signature.start_timestamp,
            signature.duration_days,
        )
        if not verify_typed_data(verify_key, typed, signature.signature):
            raise PermissionError(f"decryption signature not made by {signature.user_address}")

    def user_decrypt(
        self, pairs: Sequence[HandleContractPair], signature: DecryptionSignature
    ) -> Dict[str, str]:
        """Cleartexts sealed to the signature's reencryption key, by handle."""
        self._check_signature(signature)
        if not signature.is_valid_at(self.clock.now()):
            raise PermissionError("decryption signature outside its validity window")
        user = signature.user_address
        authorized = {normalize_address(c) for c in signature.contract_addresses}
        results: Dict[str, str] = {}
        for pair in pairs:
            if normalize_address(pair.contract_address) not in authorized:
                raise PermissionError(f"contract {pair.contract_address} not covered by signature")
            if not self.is_allowed(pair.handle, user) or not self.is_allowed(pair.handle, pair.contract_address):
                raise PermissionError(f"handle {pair.handle} not decryptable by {user}")
            bits, payload = self._ciphertexts[pair.handle]
            value = self.keyset.decrypt_uint(payload, bits)
            try:
                results[pair.handle] = seal_value(value, signature.public_key)
            except (CryptoError, ValueError) as exc:
                raise PermissionError(f"invalid reencryption key: {exc}") from exc
        return results


class MockTransaction:
    def __init__(self, tx_hash: str, mine: Callable[[], TransactionReceipt]) -> None:
        self.tx_hash = tx_hash
        self._mine = mine
        self._receipt: Optional[TransactionReceipt] = None

    async def wait(self) -> TransactionReceipt:
        if self._receipt is None:
            self._receipt = self._mine()
        return self._receipt


class MockChain:
    """A single-node chain: clock, block counter and the FHE coprocessor."""

    def __init__(
        self,
        chain_id: int = DEFAULT_MOCK_CHAIN_ID,
        clock: Optional[MockClock] = None,
        keyset: Any = None,
    ) -> None:
        self.chain_id = chain_id
        self.clock = clock or MockClock()
        self.coprocessor = MockCoprocessor(chain_id, self.clock, keyset=keyset)
        self.block_number = 0

    def next_block(self) -> Tuple[int, int]:
        self.block_number += 1
        return self.block_number, int(self.clock.now())

    def register_account(self, address: str, verify_key: str) -> None:
        self.coprocessor.register_account(address, verify_key)

    def deploy_mood_ledger(self, revert_style: str = "reason") -> "MockMoodLedger":
        ledger = MockMoodLedger(self, revert_style=revert_style)
        LOGGER.info("MoodLedger deployed at %s on chain %s", ledger.address, self.chain_id)
        return ledger


class MockMoodLedger:
    """Mood ledger contract emulation. Writes apply when a transaction is mined."""

    def __init__(self, chain: MockChain, address: Optional[str] = None, revert_style: str = "reason") -> None:
        if revert_style not in REVERT_STYLES:
            raise ValueError(f"revert_style must be one of {REVERT_STYLES}")
        self.chain = chain
        self.address = address or "0x" + secrets.token_hex(20)
        self.revert_style = revert_style
        self._moods: Dict[Tuple[str, int], MoodTuple] = {}
        self._counts: Dict[str, int] = {}
        self._count_handles: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Reverts
    # ------------------------------------------------------------------
    def _revert(self, reason: str) -> ExecutionError:
        if self.revert_style == "args":
            return ExecutionError("execution reverted", revert_args=[reason])
        if self.revert_style == "data":
            return ExecutionError("execution reverted", data=encode_error_string(reason))
        return ExecutionError(f"execution reverted: {reason}", reason=reason)

    def _today(self) -> int:
        return day_index_from_timestamp(int(self.chain.clock.now()))

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    async def get_emoji_count(self) -> int:
        return len(EMOJIS)

    async def get_emoji(self, index: int) -> str:
        if not 0 <= index < len(EMOJIS):
            raise self._revert("Invalid emoji index")
        return EMOJIS[index]

    async def get_today_timestamp(self) -> int:
        return self._today()

    async def has_mood(self, user: str, day_timestamp: int) -> bool:
        return (normalize_address(user), day_timestamp) in self._moods

    async def get_mood(self, user: str, day_timestamp: int) -> MoodTuple:
        return self._moods.get((normalize_address(user), day_timestamp), (ZERO_HANDLE, ZERO_HANDLE, ZERO_HANDLE, False))

    async def has_recorded_today(self, caller: str) -> bool:
        return (normalize_address(caller), self._today()) in self._moods

    async def get_user_mood_count(self, user: str) -> str:
        return self._count_handles.get(normalize_address(user), ZERO_HANDLE)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def record_mood(
        self,
        caller: str,
        emoji_handle: str,
        message_handle: str,
        proof_emoji: str,
        proof_message: str,
    ) -> MockTransaction:
        sender = normalize_address(caller)
        coprocessor = self.chain.coprocessor
        handles = [emoji_handle, message_handle]
        # Mirrors gas estimation: checks run at submission and again at mining
        self._check_record(sender, handles, proof_emoji, proof_message)
        tx_hash = "0x" + secrets.token_hex(32)

        def mine() -> TransactionReceipt:
            self._check_record(sender, handles, proof_emoji, proof_message)
            block_number, block_timestamp = self.chain.next_block()
            day = day_index_from_timestamp(block_timestamp)
            timestamp_handle = coprocessor.trivial_encrypt(day, 32)
            count = self._counts.get(sender, 0) + 1
            count_handle = coprocessor.trivial_encrypt(count, 32)
            for handle in (timestamp_handle, emoji_handle, message_handle, count_handle):
                coprocessor.allow(handle, self.address)
                coprocessor.allow(handle, sender)
            self._moods[(sender, day)] = (timestamp_handle, emoji_handle, message_handle, True)
            self._counts[sender] = count
            self._count_handles[sender] = count_handle
            LOGGER.info("⛏️ Mined %s in block %s (day=%s)", tx_hash, block_number, day)
            return TransactionReceipt(tx_hash=tx_hash, block_number=block_number, block_timestamp=block_timestamp)

        return MockTransaction(tx_hash, mine)

    def _check_record(self, sender: str, handles: List[str], proof_emoji: str, proof_message: str) -> None:
        if (sender, self._today()) in self._moods:
            raise self._revert(ALREADY_RECORDED_REASON)
        coprocessor = self.chain.coprocessor
        for proof in (proof_emoji, proof_message):
            if not coprocessor.verify_input_proof(handles, proof, self.address, sender):
                raise self._revert("Invalid input proof")


__all__ = ["EMOJIS", "MockChain", "MockClock", "MockCoprocessor", "MockMoodLedger", "MockTransaction"]
