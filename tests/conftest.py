"""
Shared pytest fixtures for the Vaultboard test suite.

Autouse fixtures below isolate tests from the live application data:
  - Audit logger -> temp directory (prevents test events in ./audit_logs)
"""

import asyncio
from typing import Dict, List, Optional, Set, Tuple

import pytest

from vaultboard.vault import GatewayError, VaultGateway, VaultMeta


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Point the global AuditLogger at a temp directory for every test."""
    import vaultboard.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = audit_mod.AuditLogger(log_dir=tmp_path / "audit_logs")

    yield audit_mod._audit_logger

    audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


class FakeGateway(VaultGateway):
    """In-memory backend that records every call it receives.

    ``fail`` maps a method name to the exception it should raise;
    ``meta_failures`` lists vault names whose metadata lookup fails.
    ``hold`` pauses ``change_vault`` until the event is set.
    """

    def __init__(self, vaults: Optional[List[str]] = None, opened: Optional[List[str]] = None):
        self.vaults: List[str] = list(vaults or [])
        self.opened: Set[str] = set(opened or [])
        self.meta: Dict[str, VaultMeta] = {}
        self.passwords: Dict[str, str] = {}
        self.accounts: Dict[str, str] = {}
        self.calls: List[Tuple] = []
        self.fail: Dict[str, Exception] = {}
        self.meta_failures: Set[str] = set()
        self.hold: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    def _record(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        if method in self.fail:
            raise self.fail[method]

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    async def list_vaults(self) -> List[str]:
        self._record("list_vaults")
        return list(self.vaults)

    async def list_opened_vaults(self) -> List[str]:
        self._record("list_opened_vaults")
        return sorted(self.opened)

    async def get_vault_meta(self, name: str) -> VaultMeta:
        self._record("get_vault_meta", name)
        if name in self.meta_failures or name not in self.meta:
            raise GatewayError("no metadata", method="parity_getVaultMeta")
        return self.meta[name]

    async def new_vault(self, name: str, password: str) -> bool:
        self._record("new_vault", name, password)
        self.vaults.append(name)
        self.passwords[name] = password
        self.opened.add(name)
        return True

    async def set_vault_meta(self, name: str, meta: VaultMeta) -> bool:
        self._record("set_vault_meta", name, meta)
        self.meta[name] = meta
        return True

    async def open_vault(self, name: str, password: str) -> bool:
        self._record("open_vault", name, password)
        if self.passwords.get(name, password) != password:
            raise GatewayError("invalid password", method="parity_openVault", code=-32020)
        self.opened.add(name)
        return True

    async def close_vault(self, name: str) -> bool:
        self._record("close_vault", name)
        self.opened.discard(name)
        return True

    async def change_vault(self, address: str, vault_name: str) -> bool:
        self._record("change_vault", address, vault_name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.hold is not None:
                await self.hold.wait()
            else:
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1
        self.accounts[address] = vault_name
        return True


@pytest.fixture
def gateway():
    return FakeGateway(vaults=["Savings", "Trading"], opened=["Trading"])


@pytest.fixture
def store(gateway, _isolate_audit_logs):
    from vaultboard.vault import VaultStore

    return VaultStore(gateway, audit_logger=_isolate_audit_logs)
