"""Error taxonomy for the mood ledger client and the revert decoder.

Every failure that crosses a component boundary is one of the
``MoodLedgerError`` kinds below. Failures raised by the execution layer
(contract calls, transaction mining) arrive as ``ExecutionError`` and are
normalized in exactly one place, ``decode_execution_error``, which consults
``KNOWN_REVERTS``. Supporting a new revert reason means adding a row to that
table.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type

LOGGER = logging.getLogger(__name__)

ALREADY_RECORDED_REASON = "Already recorded mood today"

# Error(string) selector used by solidity require/revert messages
ERROR_STRING_SELECTOR = "08c379a0"

# EIP-1193 "user rejected request"
USER_REJECTED_CODE = 4001


class MoodLedgerError(Exception):
    """Base class for all normalized client errors."""

    retryable: bool = False

    def __init__(self, message: str = "", *, detail: Any = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.detail = detail


class InstanceNotReady(MoodLedgerError):
    retryable = True


class InvalidFieldRange(MoodLedgerError):
    pass


class EncryptionFailure(MoodLedgerError):
    retryable = True


class AlreadyRecordedToday(MoodLedgerError):
    """The ledger already holds a record for the caller's current day."""


class NetworkFailure(MoodLedgerError):
    retryable = True


class DecryptionAuthorizationDenied(MoodLedgerError):
    pass


class StorageCorruption(MoodLedgerError):
    pass


class TransactionReverted(MoodLedgerError):
    """A revert whose reason is not in ``KNOWN_REVERTS``."""


class ExecutionError(Exception):
    """Raw failure reported by the execution layer.

    Depending on the node and the call path a revert reason shows up as a
    plain ``reason`` string, as the first entry of ``revert_args`` or only
    inside the ABI-encoded hex ``data`` payload.
    """

    def __init__(
        self,
        message: str = "execution reverted",
        *,
        reason: Optional[str] = None,
        revert_args: Sequence[Any] = (),
        data: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.revert_args = tuple(revert_args)
        self.data = data


class UserRejectedRequest(Exception):
    """Raised by a signer when the user declines to sign."""

    code = USER_REJECTED_CODE


KNOWN_REVERTS: Dict[str, Type[MoodLedgerError]] = {
    ALREADY_RECORDED_REASON: AlreadyRecordedToday,
}


def _strip_hex(data: str) -> str:
    data = data.strip().lower()
    return data[2:] if data.startswith("0x") else data


def decode_error_string(data: Optional[str]) -> Optional[str]:
    """Decode an ABI ``Error(string)`` payload, or return None."""
    if not data or not isinstance(data, str):
        return None
    payload = _strip_hex(data)
    if not payload.startswith(ERROR_STRING_SELECTOR):
        return None
    body = payload[len(ERROR_STRING_SELECTOR):]
    try:
        offset = int(body[0:64], 16) * 2
        length = int(body[offset:offset + 64], 16) * 2
        start = offset + 64
        raw = bytes.fromhex(body[start:start + length])
        return raw.decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return None


def encode_error_string(reason: str) -> str:
    """ABI-encode ``reason`` as ``Error(string)`` revert data."""
    raw = reason.encode("utf-8")
    padded = raw.hex().ljust(((len(raw) + 31) // 32) * 64, "0")
    return "0x" + ERROR_STRING_SELECTOR + f"{32:064x}" + f"{len(raw):064x}" + padded


def _candidate_reasons(exc: ExecutionError) -> List[str]:
    candidates: List[str] = []
    if exc.reason:
        candidates.append(str(exc.reason))
    candidates.extend(str(arg) for arg in exc.revert_args if isinstance(arg, str))
    decoded = decode_error_string(exc.data)
    if decoded:
        candidates.append(decoded)
    message = str(exc)
    if message:
        candidates.append(message)
    return candidates


def _match_table(candidates: Iterable[str], data: Optional[str]) -> Optional[MoodLedgerError]:
    hex_payload = _strip_hex(data) if isinstance(data, str) else ""
    for reason, kind in KNOWN_REVERTS.items():
        if any(reason in candidate for candidate in candidates):
            return kind(reason)
        if hex_payload and reason.encode("utf-8").hex() in hex_payload:
            return kind(reason)
    return None


def decode_execution_error(exc: ExecutionError) -> MoodLedgerError:
    """Normalize an execution-layer failure into one error kind."""
    candidates = _candidate_reasons(exc)
    known = _match_table(candidates, exc.data)
    if known is not None:
        return known
    reason = exc.reason or decode_error_string(exc.data) or str(exc)
    LOGGER.warning("Unrecognized revert: %s", reason)
    return TransactionReverted(reason, detail=exc.data)


def is_user_rejection(exc: BaseException) -> bool:
    return isinstance(exc, UserRejectedRequest) or getattr(exc, "code", None) == USER_REJECTED_CODE


__all__ = [
    "ALREADY_RECORDED_REASON",
    "AlreadyRecordedToday",
    "DecryptionAuthorizationDenied",
    "EncryptionFailure",
    "ExecutionError",
    "InstanceNotReady",
    "InvalidFieldRange",
    "KNOWN_REVERTS",
    "MoodLedgerError",
    "NetworkFailure",
    "StorageCorruption",
    "TransactionReverted",
    "UserRejectedRequest",
    "decode_error_string",
    "decode_execution_error",
    "encode_error_string",
    "is_user_rejection",
]
