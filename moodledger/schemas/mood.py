"""Pydantic schemas for encrypted mood records, signatures and merged views."""
from __future__ import annotations

from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

SECONDS_PER_DAY = 86400
UINT8_MAX = 2**8 - 1
UINT256_MAX = 2**256 - 1


def day_index_from_timestamp(timestamp: int) -> int:
    """Whole UTC days since the Unix epoch for a timestamp in seconds."""
    return int(timestamp) // SECONDS_PER_DAY


class MoodRecord(BaseModel):
    """One ledger entry for (user, day). Handles never change once written."""

    model_config = ConfigDict(frozen=True)

    user_address: str
    day_index: int
    timestamp_handle: str
    emoji_handle: str
    message_handle: str
    exists: bool = True
    is_decrypted: bool = False
    clear_emoji_index: Optional[int] = None
    clear_emoji: Optional[str] = None
    clear_message_fingerprint: Optional[int] = None

    def same_ciphertexts(self, other: "MoodRecord") -> bool:
        return (
            self.timestamp_handle == other.timestamp_handle
            and self.emoji_handle == other.emoji_handle
            and self.message_handle == other.message_handle
        )

    @property
    def clear_message(self) -> Optional[str]:
        if self.clear_message_fingerprint is None:
            return None
        return f"0x{self.clear_message_fingerprint:064x}"


class DecryptionSignature(BaseModel):
    """User authorization for decrypting handles of ``contract_addresses`` on one chain."""

    model_config = ConfigDict(frozen=True)

    chain_id: int
    user_address: str
    contract_addresses: Tuple[str, ...]
    public_key: str
    private_key: str = Field(repr=False)
    signature: str
    start_timestamp: int
    duration_days: int

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def is_valid_at(self, now: float) -> bool:
        return self.start_timestamp <= now < self.expires_at

    def covers(self, chain_id: int, contract_addresses: Tuple[str, ...]) -> bool:
        return chain_id == self.chain_id and tuple(sorted(contract_addresses)) == self.contract_addresses


class LocalMoodEntry(BaseModel):
    """Plaintext written on the submitting device. Advisory only."""

    day_index: int
    emoji: int
    message: str
    timestamp: int


class BackendMode(str, Enum):
    MOCK = "mock"
    RELAYER = "relayer"


class MoodFields(BaseModel):
    emoji_index: int
    message_fingerprint: int


class RecordReceipt(BaseModel):
    day_index: int
    tx_hash: str
    block_number: int
    emoji_index: int
    message: str
    message_fingerprint: int


class ViewSource(str, Enum):
    LOCAL = "local"
    DECRYPTED = "decrypted"
    ENCRYPTED = "encrypted"


class MoodView(BaseModel):
    """Merged row shown for one day index."""

    day_index: int
    source: ViewSource
    exists_on_ledger: bool
    emoji_index: Optional[int] = None
    emoji: Optional[str] = None
    message: Optional[str] = None


class HandleContractPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    handle: str
    contract_address: str


class EncryptedMoodInput(BaseModel):
    emoji_handle: str
    message_handle: str
    input_proof: str

    @property
    def handles(self) -> List[str]:
        return [self.emoji_handle, self.message_handle]
