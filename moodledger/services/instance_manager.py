"""Lazily created, per-chain encryption instances with single-flight setup."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from moodledger.core.config import Settings, settings as default_settings
from moodledger.core.errors import InstanceNotReady
from moodledger.fhe_core.backend import EncryptionBackend, select_backend
from moodledger.schemas.mood import BackendMode

LOGGER = logging.getLogger(__name__)

BackendFactory = Callable[[int, Any, Settings], EncryptionBackend]


class InstanceStatus(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class EncryptionInstance:
    chain_id: int
    mode: BackendMode
    public_params: bytes
    backend: EncryptionBackend


class InstanceManager:
    """Owns the encryption instance for the active chain.

    Only one chain is active at a time. Asking for a different chain id
    abandons the previous instance (it is dropped, never mutated) and starts a
    fresh initialization. Concurrent callers for the same chain share one
    initialization task; a caller that gets cancelled does not cancel it.
    """

    def __init__(
        self,
        backend_factory: BackendFactory = select_backend,
        settings: Settings = default_settings,
    ) -> None:
        self._backend_factory = backend_factory
        self._settings = settings
        self._chain_id: Optional[int] = None
        self._instance: Optional[EncryptionInstance] = None
        self._pending: Dict[int, asyncio.Task] = {}
        self._status = InstanceStatus.IDLE
        self._last_error: Optional[BaseException] = None

    @property
    def status(self) -> InstanceStatus:
        return self._status

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    @property
    def chain_id(self) -> Optional[int]:
        return self._chain_id

    def current(self) -> Optional[EncryptionInstance]:
        return self._instance

    async def get_instance(self, chain_id: int, provider: Any) -> EncryptionInstance:
        if provider is None:
            raise InstanceNotReady("Wallet provider not available")
        if chain_id != self._chain_id:
            self._switch_chain(chain_id)
        if self._instance is not None:
            return self._instance
        task = self._pending.get(chain_id)
        if task is None:
            self._status = InstanceStatus.INITIALIZING
            task = asyncio.ensure_future(self._initialize(chain_id, provider))
            task.add_done_callback(lambda t, cid=chain_id: self._on_initialized(cid, t))
            self._pending[chain_id] = task
        return await asyncio.shield(task)

    def _switch_chain(self, chain_id: int) -> None:
        if self._chain_id is not None:
            LOGGER.info("Chain changed %s -> %s; superseding encryption instance", self._chain_id, chain_id)
        self._chain_id = chain_id
        self._instance = None
        self._status = InstanceStatus.IDLE
        self._last_error = None

    async def _initialize(self, chain_id: int, provider: Any) -> EncryptionInstance:
        try:
            backend = self._backend_factory(chain_id, provider, self._settings)
            public_params = await backend.load_public_params()
        except InstanceNotReady:
            raise
        except Exception as exc:  # noqa: BLE001
            raise InstanceNotReady(f"Failed to initialize encryption backend: {exc}") from exc
        return EncryptionInstance(chain_id=chain_id, mode=backend.mode, public_params=public_params, backend=backend)

    def _on_initialized(self, chain_id: int, task: asyncio.Task) -> None:
        self._pending.pop(chain_id, None)
        if chain_id != self._chain_id:
            # Superseded while in flight; result is discarded
            return
        if task.cancelled():
            self._status = InstanceStatus.ERROR
            self._last_error = asyncio.CancelledError()
            return
        exc = task.exception()
        if exc is not None:
            self._status = InstanceStatus.ERROR
            self._last_error = exc
            LOGGER.error("❌ Encryption instance for chain %s failed: %s", chain_id, exc)
            return
        self._instance = task.result()
        self._status = InstanceStatus.READY
        LOGGER.info("✅ Encryption instance ready for chain %s (mode=%s)", chain_id, self._instance.mode.value)
