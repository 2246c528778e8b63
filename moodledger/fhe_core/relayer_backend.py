"""Relayer-backed backend: client-side encryption, remote proofs and decryption."""
from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Dict, Optional, Sequence

import requests

from moodledger.clients.relayer_client import RelayerClient
from moodledger.core.errors import (
    DecryptionAuthorizationDenied,
    EncryptionFailure,
    InstanceNotReady,
    NetworkFailure,
)
from moodledger.fhe_core.backend import EncryptedInput, TypedValues
from moodledger.fhe_core.user_keys import open_values
from moodledger.schemas.mood import BackendMode, DecryptionSignature, HandleContractPair

LOGGER = logging.getLogger(__name__)

_DENIED_STATUSES = {401, 403}


def _status_of(exc: requests.RequestException) -> Optional[int]:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)


class RelayerBackend:
    mode = BackendMode.RELAYER

    def __init__(self, client: RelayerClient, chain_id: int) -> None:
        self.client = client
        self.chain_id = chain_id
        self._public_context: Optional[Any] = None
        self._ts = None

    async def load_public_params(self) -> bytes:
        try:
            from moodledger.fhe_core import tenseal_context

            res = await asyncio.to_thread(self.client.fetch_public_params, self.chain_id)
            public_params = base64.b64decode(res["response"]["publicContext"])
            self._public_context = await asyncio.to_thread(tenseal_context.load_context, public_params)
            self._ts = tenseal_context
        except requests.RequestException as exc:
            raise InstanceNotReady(f"Relayer unreachable: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise InstanceNotReady(f"Invalid public parameters from relayer: {exc}") from exc
        LOGGER.info("🔑 Loaded relayer public context for chain %s", self.chain_id)
        return public_params

    async def encrypt_inputs(
        self, contract_address: str, user_address: str, values: TypedValues
    ) -> EncryptedInput:
        if self._public_context is None or self._ts is None:
            raise InstanceNotReady("Relayer backend used before initialization")
        try:
            ciphertexts = []
            for bits, value in values:
                payload = await asyncio.to_thread(self._ts.encrypt_uint, self._public_context, value, bits)
                ciphertexts.append({"bits": bits, "ciphertext": base64.b64encode(payload).decode("utf-8")})
            res = await asyncio.to_thread(
                self.client.input_proof, self.chain_id, contract_address, user_address, ciphertexts
            )
            body = res["response"]
            return EncryptedInput(body["handles"], body["proof"])
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise NetworkFailure(f"Relayer input-proof transport error: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise EncryptionFailure(f"Input proof generation failed: {exc}") from exc

    async def user_decrypt(
        self, pairs: Sequence[HandleContractPair], signature: DecryptionSignature
    ) -> Dict[str, int]:
        payload = {
            "handleContractPairs": [
                {"handle": pair.handle, "contractAddress": pair.contract_address} for pair in pairs
            ],
            "publicKey": signature.public_key,
            "signature": signature.signature,
            "contractAddresses": list(signature.contract_addresses),
            "userAddress": signature.user_address,
            "startTimestamp": signature.start_timestamp,
            "durationDays": signature.duration_days,
        }
        try:
            res = await asyncio.to_thread(self.client.user_decrypt, payload)
        except requests.RequestException as exc:
            if _status_of(exc) in _DENIED_STATUSES:
                raise DecryptionAuthorizationDenied(str(exc)) from exc
            raise NetworkFailure(f"Decryption service error: {exc}") from exc
        # Values come back sealed to the signature's public key
        try:
            return open_values(res["response"], signature.private_key)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise NetworkFailure(f"Malformed decryption response: {exc}") from exc
