"""Utilities for building and using TenSEAL BFV contexts for ledger inputs."""
from __future__ import annotations

from typing import List, Sequence

import tenseal as ts


# 128-bit security with poly_modulus_degree=4096.
# plain_modulus is a prime > 2**17 so 16-bit limbs decrypt without wraparound.
DEFAULT_POLY_MODULUS_DEGREE = 4096
DEFAULT_PLAIN_MODULUS = 1032193
LIMB_BITS = 16
SUPPORTED_BIT_WIDTHS = (8, 32, 256)


def create_context(
    poly_modulus_degree: int = DEFAULT_POLY_MODULUS_DEGREE,
    plain_modulus: int = DEFAULT_PLAIN_MODULUS,
) -> ts.Context:
    """Instantiate a BFV context holding a secret key."""
    return ts.context(
        ts.SCHEME_TYPE.BFV,
        poly_modulus_degree=poly_modulus_degree,
        plain_modulus=plain_modulus,
    )


def serialize_public_context(context: ts.Context) -> bytes:
    """Serialize the context without its secret key."""
    return context.serialize(
        save_public_key=True,
        save_secret_key=False,
        save_galois_keys=False,
        save_relin_keys=False,
    )


def load_context(data: bytes) -> ts.Context:
    """Load a previously serialized TenSEAL context."""
    return ts.context_from(data)


def limb_count(bits: int) -> int:
    if bits not in SUPPORTED_BIT_WIDTHS:
        raise ValueError(f"unsupported bit width {bits}")
    return max(1, bits // LIMB_BITS)


def to_limbs(value: int, bits: int) -> List[int]:
    """Split an unsigned integer into big-endian 16-bit limbs."""
    if value < 0 or value >= 2**bits:
        raise ValueError(f"value does not fit in uint{bits}")
    count = limb_count(bits)
    mask = 2**LIMB_BITS - 1
    return [(value >> (LIMB_BITS * (count - 1 - i))) & mask for i in range(count)]


def from_limbs(limbs: Sequence[int], bits: int) -> int:
    value = 0
    for limb in limbs[: limb_count(bits)]:
        value = (value << LIMB_BITS) | (int(limb) % 2**LIMB_BITS)
    return value


def encrypt_uint(public_context: ts.Context, value: int, bits: int) -> bytes:
    """Encrypt an unsigned integer as a serialized BFV vector of limbs."""
    vector = ts.bfv_vector(public_context, to_limbs(value, bits))
    return vector.serialize()


class BfvKeyset:
    """Secret side of the scheme. Only the decryption service holds one."""

    def __init__(self, context: ts.Context | None = None) -> None:
        self._context = context or create_context()

    def public_params(self) -> bytes:
        return serialize_public_context(self._context)

    def encrypt_uint(self, value: int, bits: int) -> bytes:
        return encrypt_uint(self._context, value, bits)

    def decrypt_uint(self, payload: bytes, bits: int) -> int:
        vector = ts.bfv_vector_from(self._context, payload)
        return from_limbs(vector.decrypt(), bits)


__all__ = [
    "BfvKeyset",
    "DEFAULT_PLAIN_MODULUS",
    "DEFAULT_POLY_MODULUS_DEGREE",
    "create_context",
    "encrypt_uint",
    "from_limbs",
    "limb_count",
    "load_context",
    "serialize_public_context",
    "to_limbs",
]
