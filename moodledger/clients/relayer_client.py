"""HTTP client for the relayer / decryption service."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List

import requests

from moodledger.core.config import settings

LOGGER = logging.getLogger(__name__)


class RelayerClient:
    def __init__(
        self,
        base_url: str = settings.RELAYER_URL,
        timeout: int = settings.RELAYER_TIMEOUT_SECONDS,
        max_retries: int = settings.RELAYER_MAX_RETRIES,
        backoff_seconds: float = settings.RELAYER_RETRY_BACKOFF_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_seconds = backoff_seconds

    # -------------------- Public parameters --------------------
    def fetch_public_params(self, chain_id: int) -> Dict[str, Any]:
        return self._get("/v1/keyurl", params={"chainId": chain_id})

    # -------------------- Inputs --------------------
    def input_proof(
        self, chain_id: int, contract_address: str, user_address: str, ciphertexts: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        payload = {
            "chainId": chain_id,
            "contractAddress": contract_address,
            "userAddress": user_address,
            "ciphertexts": ciphertexts,
        }
        # Not retried: a replayed request would register a second set of handles
        return self._post("/v1/input-proof", json=payload, retry=False)

    # -------------------- Decryption --------------------
    def user_decrypt(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._post("/v1/user-decrypt", json=payload)

    # -------------------- Internal helpers --------------------
    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _with_retry(self, description: str, send, retry: bool = True) -> requests.Response:
        attempts = self.max_retries if retry else 1
        attempt = 0
        while True:
            try:
                return send()
            except (requests.ConnectionError, requests.Timeout) as exc:
                attempt += 1
                if attempt >= attempts:
                    raise
                wait = self.backoff_seconds * (2 ** (attempt - 1))
                LOGGER.warning(
                    "🔄 %s failed (attempt %d/%d): %s; retrying in %.1fs", description, attempt, attempts, exc, wait
                )
                time.sleep(wait)

    def _post(self, path: str, json: Dict[str, Any] | None = None, retry: bool = True) -> Dict[str, Any]:
        res = self._with_retry(
            f"POST {path}",
            lambda: requests.post(f"{self.base_url}{path}", json=json or {}, headers=self._headers(), timeout=self.timeout),
            retry=retry,
        )
        try:
            res.raise_for_status()
        except requests.HTTPError as exc:
            detail = f"POST {path} -> {res.status_code} {res.reason}; body={res.text}"
            raise requests.HTTPError(detail, response=res) from exc
        return res.json() if res.text else {}

    def _get(self, path: str, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        res = self._with_retry(
            f"GET {path}",
            lambda: requests.get(f"{self.base_url}{path}", params=params or {}, headers=self._headers(), timeout=self.timeout),
        )
        try:
            res.raise_for_status()
        except requests.HTTPError as exc:
            detail = f"GET {path} -> {res.status_code} {res.reason}; body={res.text}"
            raise requests.HTTPError(detail, response=res) from exc
        return res.json() if res.text else {}
