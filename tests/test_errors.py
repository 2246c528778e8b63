"""Revert normalization across the encodings the execution layer produces."""
from __future__ import annotations

import pytest

from moodledger.core.errors import (
    ALREADY_RECORDED_REASON,
    AlreadyRecordedToday,
    ExecutionError,
    TransactionReverted,
    UserRejectedRequest,
    decode_error_string,
    decode_execution_error,
    encode_error_string,
    is_user_rejection,
)

ALREADY_RECORDED_HEX = "416c7265616479207265636f72646564206d6f6f6420746f646179"


@pytest.mark.parametrize(
    "exc",
    [
        ExecutionError("execution reverted", reason=ALREADY_RECORDED_REASON),
        ExecutionError("execution reverted", revert_args=[ALREADY_RECORDED_REASON]),
        ExecutionError("execution reverted", data=encode_error_string(ALREADY_RECORDED_REASON)),
        ExecutionError("execution reverted", data="0xdeadbeef" + ALREADY_RECORDED_HEX + "00"),
        ExecutionError(f'execution reverted: "{ALREADY_RECORDED_REASON}"'),
    ],
    ids=["reason", "revert-args", "abi-data", "raw-hex-fragment", "message"],
)
def test_already_recorded_is_recognized_in_every_encoding(exc):
    error = decode_execution_error(exc)
    assert isinstance(error, AlreadyRecordedToday)
    assert error.retryable is False


def test_hex_fragment_matches_reason_bytes():
    assert ALREADY_RECORDED_REASON.encode().hex() == ALREADY_RECORDED_HEX


def test_error_string_abi_roundtrip_and_garbage():
    data = encode_error_string("Invalid input proof")
    assert data.startswith("0x08c379a0")
    assert decode_error_string(data) == "Invalid input proof"
    assert decode_error_string("0x1234") is None
    assert decode_error_string(None) is None


def test_unknown_revert_becomes_transaction_reverted():
    error = decode_execution_error(ExecutionError("execution reverted", reason="Invalid input proof"))
    assert isinstance(error, TransactionReverted)
    assert "Invalid input proof" in str(error)


def test_user_rejection_detection():
    assert is_user_rejection(UserRejectedRequest("no"))

    class ProviderError(Exception):
        code = 4001

    assert is_user_rejection(ProviderError())
    assert not is_user_rejection(RuntimeError("boom"))
