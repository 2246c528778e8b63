"""Typed-data payload a user signs to authorize decryption, and its Ed25519 signature."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey

DECRYPTION_TYPES: Dict[str, List[Dict[str, str]]] = {
    "UserDecryptRequestVerification": [
        {"name": "publicKey", "type": "bytes"},
        {"name": "contractAddresses", "type": "address[]"},
        {"name": "startTimestamp", "type": "uint256"},
        {"name": "durationDays", "type": "uint256"},
    ]
}


def _from_hex(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def build_typed_data(
    chain_id: int, public_key: str, contract_addresses: Sequence[str], start_timestamp: int, duration_days: int
) -> Dict[str, Any]:
    """EIP-712 shaped payload binding the reencryption key to a chain, contracts and window."""
    return {
        "domain": {"name": "Decryption", "version": "1", "chainId": chain_id},
        "types": DECRYPTION_TYPES,
        "message": {
            "publicKey": public_key,
            "contractAddresses": list(contract_addresses),
            "startTimestamp": start_timestamp,
            "durationDays": duration_days,
        },
    }


def encode_typed_data(domain: Dict[str, Any], types: Dict[str, Any], message: Dict[str, Any]) -> bytes:
    return json.dumps(
        {"domain": domain, "types": types, "message": message}, sort_keys=True, separators=(",", ":")
    ).encode("utf-8")


def sign_typed_data(
    signing_key: SigningKey, domain: Dict[str, Any], types: Dict[str, Any], message: Dict[str, Any]
) -> str:
    signed = signing_key.sign(encode_typed_data(domain, types, message))
    return "0x" + signed.signature.hex()


def verify_typed_data(verify_key: str, typed: Dict[str, Any], signature: str) -> bool:
    """True if ``signature`` was made over ``typed`` by the holder of ``verify_key``."""
    try:
        key = VerifyKey(_from_hex(verify_key))
        key.verify(encode_typed_data(typed["domain"], typed["types"], typed["message"]), _from_hex(signature))
    except (CryptoError, ValueError, TypeError):
        return False
    return True
