"""Vault store: shared state and lifecycle orchestration for the vault view.

The store owns one immutable ``VaultState`` snapshot. Every write goes
through a setter or action below, is merged into a pending change set,
and is published as a single snapshot swap. Subscribers therefore see
multi-field transitions (e.g. "apply a freshly loaded vault list") as
one indivisible update.

Lifecycle operations follow guard -> call -> settle: raise the busy
flag, await the gateway, then always lower the flag. The backend is the
only source of truth for vault existence and open state, so every
mutating workflow ends with ``load_vaults()`` instead of patching local
state.
"""

import asyncio
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..core import AuditLogger, EventSeverity, EventType, get_audit_logger
from .exceptions import GatewayError, VaultValidationFailed
from .gateway import VaultGateway
from .models import VaultMeta, VaultRecord
from .state import VaultState, find_vault
from .validation import ValidationError, validate_name

logger = logging.getLogger(__name__)

StateCallback = Callable[[VaultState, VaultState], None]


class VaultStore:
    """Observable vault state plus the actions that mutate it.

    Construct one per session and hand it to every consumer::

        store = VaultStore(RpcVaultGateway(settings.rpc_url))
        store.subscribe(lambda old, new: render(new))
        await store.load_vaults()

    Commits are serialized by an RLock; callbacks fire outside it.
    """

    def __init__(
        self,
        gateway: VaultGateway,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._gateway = gateway
        self._audit = audit_logger
        self._state = VaultState()
        self._lock = threading.RLock()
        self._pending: Optional[Dict[str, Any]] = None
        self._depth = 0
        self._callbacks: List[StateCallback] = []

    # ── Reading ──────────────────────────────────────────────────────

    @property
    def state(self) -> VaultState:
        """Current snapshot. Safe to hold on to; it never changes."""
        return self._state

    def __getattr__(self, name: str) -> Any:
        # Read-through to snapshot fields: store.vault_name, store.is_busy_load, ...
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return getattr(self._state, name)
        except AttributeError:
            raise AttributeError(
                f"{type(self).__name__!r} object has no attribute {name!r}"
            ) from None

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Register ``callback(old_state, new_state)``; returns an unsubscriber."""
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def _notify(self, old: VaultState, new: VaultState) -> None:
        """Best-effort delivery to all subscribers."""
        with self._lock:
            callbacks = list(self._callbacks)
        for cb in callbacks:
            try:
                cb(old, new)
            except Exception:
                logger.debug("Vault state subscriber failed", exc_info=True)

    # ── Transactions ─────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Batch every write made inside the block into one commit.

        Nested blocks merge into the outermost one. If the block raises,
        all of its pending writes are discarded.
        """
        transition: Optional[Tuple[VaultState, VaultState]] = None
        with self._lock:
            if self._depth == 0:
                self._pending = {}
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._pending = None
                raise
            self._depth -= 1
            if self._depth == 0:
                changes, self._pending = self._pending or {}, None
                transition = self._swap(changes)

        if transition is not None:
            self._notify(*transition)

    def _swap(self, changes: Dict[str, Any]) -> Optional[Tuple[VaultState, VaultState]]:
        if not changes:
            return None
        old = self._state
        new = replace(old, **changes)
        if new == old and new.selected_accounts is old.selected_accounts:
            return None
        self._state = new
        return old, new

    def _update(self, **changes: Any) -> None:
        with self.transaction():
            self._pending.update(changes)

    def _peek(self, name: str) -> Any:
        """Field value as the current transaction would leave it."""
        if self._pending and name in self._pending:
            return self._pending[name]
        return getattr(self._state, name)

    # ── Field mutators ───────────────────────────────────────────────

    def clear_vault_fields(self) -> None:
        self._update(
            selected_vault=None,
            vault_description="",
            vault_name="",
            vault_name_error=ValidationError.NO_NAME,
            vault_password="",
            vault_password_hint="",
            vault_password_repeat="",
        )

    def set_busy_accounts(self, is_busy: bool) -> None:
        self._update(is_busy_accounts=is_busy)

    def set_busy_create(self, is_busy: bool) -> None:
        self._update(is_busy_create=is_busy)

    def set_busy_load(self, is_busy: bool) -> None:
        self._update(is_busy_load=is_busy)

    def set_busy_lock(self, is_busy: bool) -> None:
        self._update(is_busy_lock=is_busy)

    def set_busy_unlock(self, is_busy: bool) -> None:
        self._update(is_busy_unlock=is_busy)

    def set_modal_accounts_open(self, is_open: bool) -> None:
        self._update(is_modal_accounts_open=is_open)

    def set_modal_create_open(self, is_open: bool) -> None:
        self._update(is_modal_create_open=is_open)

    def set_modal_lock_open(self, is_open: bool) -> None:
        self._update(is_modal_lock_open=is_open)

    def set_modal_unlock_open(self, is_open: bool) -> None:
        self._update(is_modal_unlock_open=is_open)

    def set_selected_accounts(self, selected_accounts: Mapping[str, bool]) -> None:
        self._update(selected_accounts=MappingProxyType(dict(selected_accounts)))

    def toggle_selected_account(self, address: str) -> None:
        with self.transaction():
            current = self._peek("selected_accounts")
            toggled = dict(current)
            toggled[address] = not current.get(address, False)
            self._pending["selected_accounts"] = MappingProxyType(toggled)

    def set_vaults(
        self,
        all_vaults: Sequence[str],
        opened_vaults: Sequence[str],
        meta_data: Sequence[Optional[VaultMeta]],
    ) -> None:
        """Replace the vault list and its name index in one commit."""
        opened = set(opened_vaults)
        vaults = tuple(
            VaultRecord(
                name=name,
                meta=(meta_data[index] if index < len(meta_data) else None) or VaultMeta(),
                is_open=name in opened,
            )
            for index, name in enumerate(all_vaults)
        )
        vault_names = frozenset(name.lower() for name in all_vaults)

        with self.transaction():
            name = self._peek("vault_name")
            self._pending.update(
                vaults=vaults,
                vault_names=vault_names,
                selected_vault=find_vault(vaults, name),
                vault_name_error=validate_name(name, vault_names),
            )

    def set_vault_description(self, description: str) -> None:
        self._update(vault_description=description)

    def set_vault_name(self, name: str) -> None:
        with self.transaction():
            self._pending.update(
                selected_vault=find_vault(self._peek("vaults"), name),
                vault_name=name,
                vault_name_error=validate_name(name, self._peek("vault_names")),
            )

    def set_vault_password(self, password: str) -> None:
        self._update(vault_password=password)

    def set_vault_password_hint(self, hint: str) -> None:
        self._update(vault_password_hint=hint)

    def set_vault_password_repeat(self, password: str) -> None:
        self._update(vault_password_repeat=password)

    # ── Modal workflows ──────────────────────────────────────────────

    def close_accounts_modal(self) -> None:
        self.set_modal_accounts_open(False)

    def close_create_modal(self) -> None:
        self.set_modal_create_open(False)

    def close_lock_modal(self) -> None:
        self.set_modal_lock_open(False)

    def close_unlock_modal(self) -> None:
        self.set_modal_unlock_open(False)

    def open_accounts_modal(self, name: str) -> None:
        with self.transaction():
            self.set_vault_name(name)
            self.set_selected_accounts({})
            self.set_modal_accounts_open(True)

    def open_create_modal(self) -> None:
        with self.transaction():
            self.clear_vault_fields()
            self.set_modal_create_open(True)

    def open_lock_modal(self, name: str) -> None:
        with self.transaction():
            self.set_vault_name(name)
            self.set_modal_lock_open(True)

    def open_unlock_modal(self, name: str) -> None:
        with self.transaction():
            self.set_vault_name(name)
            # never pre-fill the unlock password
            self.set_vault_password("")
            self.set_modal_unlock_open(True)

    # ── Lifecycle operations ─────────────────────────────────────────

    async def load_vaults(self) -> Tuple[VaultRecord, ...]:
        """Refresh the vault list from the backend.

        A vault without metadata yet gets an empty ``VaultMeta``. A failed
        refresh is logged and absorbed so that the workflow that
        triggered it is not aborted.
        """
        self.set_busy_load(True)

        try:
            all_vaults, opened_vaults = await asyncio.gather(
                self._gateway.list_vaults(),
                self._gateway.list_opened_vaults(),
            )
            meta_data = await asyncio.gather(
                *(self._fetch_meta(name) for name in all_vaults)
            )
            with self.transaction():
                self.set_vaults(all_vaults, opened_vaults, meta_data)
                self.set_busy_load(False)
        except GatewayError as exc:
            logger.warning("load_vaults failed: %s", exc)
            self._audit_event(
                EventType.VAULT_LIST_REFRESH_FAILED,
                "vault list refresh failed",
                {"error": str(exc)},
                EventSeverity.ALERT,
            )
        finally:
            self.set_busy_load(False)

        return self._state.vaults

    async def _fetch_meta(self, name: str) -> VaultMeta:
        try:
            return await self._gateway.get_vault_meta(name)
        except GatewayError:
            # the backend errors until metadata has been set at least once
            logger.debug("No metadata for vault %s", name)
            return VaultMeta()

    async def create_vault(self) -> None:
        """Create the vault described by the form fields.

        Raises:
            VaultValidationFailed: the form is invalid (nothing was sent)
            GatewayError: the backend rejected a step
        """
        errors = [
            error
            for error in (self.vault_name_error, self.vault_password_repeat_error)
            if error is not None
        ]
        if errors:
            raise VaultValidationFailed(errors)

        name = self.vault_name
        password = self.vault_password
        meta = VaultMeta(
            description=self.vault_description,
            password_hint=self.vault_password_hint,
        )

        self.set_busy_create(True)
        try:
            await self._gateway.new_vault(name, password)
            await self._gateway.set_vault_meta(name, meta)
            await self.load_vaults()
        except Exception as exc:
            self._fail("create_vault", name, exc)
            raise
        finally:
            self.set_busy_create(False)

        self._audit_event(EventType.VAULT_CREATED, f"created {name}", {"vault": name})

    async def open_vault(self) -> None:
        """Unlock the vault named in the form with the form's password."""
        name = self.vault_name
        self.set_busy_unlock(True)
        try:
            await self._gateway.open_vault(name, self.vault_password)
            await self.load_vaults()
        except Exception as exc:
            self._fail("open_vault", name, exc)
            raise
        finally:
            self.set_busy_unlock(False)

        self._audit_event(EventType.VAULT_UNLOCKED, f"opened {name}", {"vault": name})

    async def close_vault(self) -> None:
        name = self.vault_name
        self.set_busy_lock(True)
        try:
            await self._gateway.close_vault(name)
            await self.load_vaults()
        except Exception as exc:
            self._fail("close_vault", name, exc)
            raise
        finally:
            self.set_busy_lock(False)

        self._audit_event(EventType.VAULT_LOCKED, f"closed {name}", {"vault": name})

    async def move_accounts(
        self,
        vault_name: str,
        in_accounts: Sequence[str],
        out_accounts: Sequence[str],
    ) -> None:
        """Move ``in_accounts`` into ``vault_name`` and ``out_accounts`` out of any vault.

        All change calls run concurrently; the list is reloaded once
        every one of them has settled.
        """
        self.set_busy_accounts(True)
        try:
            moves = [
                self._gateway.change_vault(address, vault_name) for address in in_accounts
            ] + [
                self._gateway.change_vault(address, "") for address in out_accounts
            ]
            results = await asyncio.gather(*moves, return_exceptions=True)
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                raise failures[0]
            await self.load_vaults()
        except Exception as exc:
            self._fail("move_accounts", vault_name, exc)
            raise
        finally:
            self.set_busy_accounts(False)

        self._audit_event(
            EventType.VAULT_ACCOUNTS_MOVED,
            f"moved accounts for {vault_name}",
            {"vault": vault_name, "in": list(in_accounts), "out": list(out_accounts)},
        )

    # ── Audit helpers ────────────────────────────────────────────────

    def _fail(self, operation: str, vault_name: str, exc: Exception) -> None:
        logger.error("%s failed for %s: %s", operation, vault_name, exc)
        self._audit_event(
            EventType.VAULT_ERROR,
            f"{operation} failed",
            {"vault": vault_name, "error": str(exc)},
            EventSeverity.ALERT,
        )

    def _audit_event(
        self,
        event_type: EventType,
        message: str,
        details: Dict[str, Any],
        severity: EventSeverity = EventSeverity.INFO,
    ) -> None:
        audit = self._audit or get_audit_logger()
        try:
            audit.log_vault_event(event_type, message, details=details, severity=severity)
        except Exception:
            logger.debug("Audit logging failed for %s", event_type.value, exc_info=True)
