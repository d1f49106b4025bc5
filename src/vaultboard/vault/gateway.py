# Vaultboard - Backend Gateway
#
# Defines the VaultGateway contract the store talks to, plus a concrete
# JSON-RPC implementation for the node's parity_* vault methods.
#
# Supports:
#   - Async HTTP via httpx (one pooled client per gateway)
#   - Retry with exponential backoff on transport errors and 5xx
#   - JSON-RPC error objects mapped to GatewayError

import asyncio
import itertools
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError as PydanticValidationError

from .exceptions import GatewayError
from .models import VaultMeta

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
INITIAL_BACKOFF_SEC = 0.5
BACKOFF_MULTIPLIER = 2.0
REQUEST_TIMEOUT_SEC = 30.0


class VaultGateway(ABC):
    """Abstract backend for vault persistence and account reassignment.

    Every method is a coroutine and raises ``GatewayError`` on failure.
    """

    @abstractmethod
    async def list_vaults(self) -> List[str]:
        """Names of every vault the backend knows."""

    @abstractmethod
    async def list_opened_vaults(self) -> List[str]:
        """Names of the vaults that are currently open."""

    @abstractmethod
    async def get_vault_meta(self, name: str) -> VaultMeta:
        """Metadata for ``name``. Fails when none has been set yet."""

    @abstractmethod
    async def new_vault(self, name: str, password: str) -> bool:
        """Create a vault protected by ``password``."""

    @abstractmethod
    async def set_vault_meta(self, name: str, meta: VaultMeta) -> bool:
        """Replace the metadata stored for ``name``."""

    @abstractmethod
    async def open_vault(self, name: str, password: str) -> bool:
        """Unlock ``name``."""

    @abstractmethod
    async def close_vault(self, name: str) -> bool:
        """Lock ``name``."""

    @abstractmethod
    async def change_vault(self, address: str, vault_name: str) -> bool:
        """Move ``address`` into ``vault_name``; ``""`` moves it out of any vault."""


# ── JSON-RPC envelope ────────────────────────────────────────────────


class RpcErrorBody(BaseModel):
    code: int
    message: str
    data: Any = None


class RpcResponse(BaseModel):
    jsonrpc: str = "2.0"
    id: Optional[int] = None
    result: Any = None
    error: Optional[RpcErrorBody] = None


_NAME_LIST = TypeAdapter(List[str])


# ── JSON-RPC Gateway ─────────────────────────────────────────────────


class RpcVaultGateway(VaultGateway):
    """VaultGateway backed by a node's JSON-RPC endpoint.

    Usage::

        async with RpcVaultGateway("http://127.0.0.1:8545") as gateway:
            names = await gateway.list_vaults()
    """

    def __init__(
        self,
        url: str,
        timeout: float = REQUEST_TIMEOUT_SEC,
        max_retries: int = MAX_RETRIES,
        backoff: float = INITIAL_BACKOFF_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._backoff = backoff
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    # ── Session Management ───────────────────────────────────────────

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client. Call on shutdown."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "RpcVaultGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Transport ────────────────────────────────────────────────────

    async def _post(self, method: str, payload: Dict[str, Any]) -> httpx.Response:
        """POST with retry + exponential backoff.

        Retries on network errors and 5xx. Other HTTP errors fail fast.
        """
        backoff = self._backoff
        last_exc: Optional[Exception] = None

        for attempt in range(1, self._max_retries + 1):
            try:
                resp = await self._get_client().post(self._url, json=payload)
            except httpx.TransportError as exc:
                last_exc = exc
                if attempt < self._max_retries:
                    logger.warning(
                        "%s request failed (%s), retrying in %.1fs "
                        "(attempt %d/%d)",
                        method, exc, backoff, attempt, self._max_retries,
                    )
                    await asyncio.sleep(backoff)
                    backoff *= BACKOFF_MULTIPLIER
                continue

            if resp.status_code >= 500:
                last_exc = GatewayError(
                    f"HTTP {resp.status_code}", method=method, code=resp.status_code
                )
                if attempt < self._max_retries:
                    logger.warning(
                        "%s server error %d, retrying in %.1fs "
                        "(attempt %d/%d)",
                        method, resp.status_code, backoff, attempt, self._max_retries,
                    )
                    await asyncio.sleep(backoff)
                    backoff *= BACKOFF_MULTIPLIER
                continue

            if resp.status_code >= 400:
                raise GatewayError(
                    f"{method} rejected with HTTP {resp.status_code}",
                    method=method,
                    code=resp.status_code,
                )

            return resp

        raise GatewayError(
            f"{method} failed after {self._max_retries} attempts: {last_exc}",
            method=method,
        )

    async def _call(self, method: str, *params: Any) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        resp = await self._post(method, payload)

        try:
            envelope = RpcResponse.model_validate(resp.json())
        except ValueError as exc:
            raise GatewayError(f"{method} returned a malformed response: {exc}", method=method) from exc

        if envelope.error is not None:
            raise GatewayError(
                f"{method}: {envelope.error.message}",
                method=method,
                code=envelope.error.code,
            )
        return envelope.result

    # ── Vault operations ─────────────────────────────────────────────

    async def _call_name_list(self, method: str) -> List[str]:
        raw = await self._call(method)
        if raw is None:
            return []
        try:
            return _NAME_LIST.validate_python(raw, strict=True)
        except PydanticValidationError as exc:
            raise GatewayError(
                f"{method} returned an unexpected result: {raw!r}", method=method
            ) from exc

    async def list_vaults(self) -> List[str]:
        return await self._call_name_list("parity_listVaults")

    async def list_opened_vaults(self) -> List[str]:
        return await self._call_name_list("parity_listOpenedVaults")

    async def get_vault_meta(self, name: str) -> VaultMeta:
        raw = await self._call("parity_getVaultMeta", name)
        if isinstance(raw, str):
            try:
                raw = json.loads(raw) if raw else {}
            except ValueError as exc:
                raise GatewayError(
                    f"parity_getVaultMeta: unreadable metadata for {name!r}",
                    method="parity_getVaultMeta",
                ) from exc
        if raw is not None and not isinstance(raw, dict):
            raise GatewayError(
                f"parity_getVaultMeta: unexpected metadata type {type(raw).__name__}",
                method="parity_getVaultMeta",
            )
        return VaultMeta.from_dict(raw)

    async def new_vault(self, name: str, password: str) -> bool:
        return bool(await self._call("parity_newVault", name, password))

    async def set_vault_meta(self, name: str, meta: VaultMeta) -> bool:
        return bool(await self._call("parity_setVaultMeta", name, json.dumps(meta.to_dict())))

    async def open_vault(self, name: str, password: str) -> bool:
        return bool(await self._call("parity_openVault", name, password))

    async def close_vault(self, name: str) -> bool:
        return bool(await self._call("parity_closeVault", name))

    async def change_vault(self, address: str, vault_name: str) -> bool:
        return bool(await self._call("parity_changeVault", address, vault_name))
