"""Ephemeral reencryption keys: decrypted values are sealed to the requesting user."""
from __future__ import annotations

from typing import Dict, Mapping, Tuple

from nacl.exceptions import CryptoError
from nacl.public import PrivateKey, PublicKey, SealedBox

from moodledger.core.errors import DecryptionAuthorizationDenied


def _from_hex(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def generate_keypair() -> Tuple[str, str]:
    """Fresh X25519 (public, private) pair, hex encoded, bound to one decryption signature."""
    private_key = PrivateKey.generate()
    return "0x" + bytes(private_key.public_key).hex(), "0x" + bytes(private_key).hex()


def seal_value(value: int, public_key: str) -> str:
    box = SealedBox(PublicKey(_from_hex(public_key)))
    return "0x" + box.encrypt(str(int(value)).encode("ascii")).hex()


def open_value(sealed: str, private_key: str) -> int:
    box = SealedBox(PrivateKey(_from_hex(private_key)))
    return int(box.decrypt(_from_hex(sealed)).decode("ascii"))


def open_values(sealed: Mapping[str, str], private_key: str) -> Dict[str, int]:
    """Open every sealed cleartext; a value sealed to another key is a denial."""
    try:
        return {handle: open_value(value, private_key) for handle, value in sealed.items()}
    except CryptoError as exc:
        raise DecryptionAuthorizationDenied("Decryption result was not sealed to this session's key") from exc


__all__ = ["generate_keypair", "open_value", "open_values", "seal_value"]
