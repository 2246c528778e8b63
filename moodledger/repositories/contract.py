"""Contract-shaped interface of the mood ledger as consumed by the client."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Tuple

ZERO_HANDLE = "0x" + "00" * 32

# (timestamp handle, emoji handle, message handle, exists)
MoodTuple = Tuple[str, str, str, bool]


def normalize_address(address: str) -> str:
    return address.strip().lower()


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    block_number: int
    block_timestamp: int
    status: int = 1


class PendingTransaction(Protocol):
    tx_hash: str

    async def wait(self) -> TransactionReceipt:
        ...


class MoodLedgerContract(Protocol):
    """Read/write surface of the deployed mood ledger.

    Implementations raise ``ExecutionError`` for reverts and ``OSError``
    (or subclasses) for transport failures.
    """

    address: str

    async def record_mood(
        self,
        caller: str,
        emoji_handle: str,
        message_handle: str,
        proof_emoji: str,
        proof_message: str,
    ) -> PendingTransaction:
        ...

    async def get_mood(self, user: str, day_timestamp: int) -> MoodTuple:
        ...

    async def has_mood(self, user: str, day_timestamp: int) -> bool:
        ...

    async def has_recorded_today(self, caller: str) -> bool:
        ...

    async def get_today_timestamp(self) -> int:
        ...

    async def get_emoji(self, index: int) -> str:
        ...

    async def get_emoji_count(self) -> int:
        ...

    async def get_user_mood_count(self, user: str) -> str:
        ...
