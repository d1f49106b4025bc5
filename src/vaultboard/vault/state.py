"""Immutable snapshot of everything the vault view renders.

A ``VaultState`` is never modified; the store builds the next snapshot
with ``dataclasses.replace`` and swaps it in as one step.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from .models import VaultRecord
from .validation import ValidationError, validate_password_repeat


@dataclass(frozen=True)
class VaultState:
    # Backend mirror
    vaults: Tuple[VaultRecord, ...] = ()
    vault_names: FrozenSet[str] = frozenset()
    selected_vault: Optional[VaultRecord] = None
    selected_accounts: Mapping[str, bool] = field(
        default_factory=lambda: MappingProxyType({})
    )

    # Busy flags, one per class of in-flight operation
    is_busy_accounts: bool = False
    is_busy_create: bool = False
    is_busy_load: bool = False
    is_busy_lock: bool = False
    is_busy_unlock: bool = False

    # Modal visibility, one per workflow
    is_modal_accounts_open: bool = False
    is_modal_create_open: bool = False
    is_modal_lock_open: bool = False
    is_modal_unlock_open: bool = False

    # Form fields
    vault_name: str = ""
    vault_name_error: Optional[ValidationError] = ValidationError.NO_NAME
    vault_description: str = ""
    vault_password: str = ""
    vault_password_hint: str = ""
    vault_password_repeat: str = ""

    @property
    def vault_password_repeat_error(self) -> Optional[ValidationError]:
        """Derived on every read, never stored."""
        return validate_password_repeat(self.vault_password, self.vault_password_repeat)


def find_vault(vaults: Tuple[VaultRecord, ...], name: str) -> Optional[VaultRecord]:
    """Exact (case-sensitive) lookup by display name."""
    for vault in vaults:
        if vault.name == name:
            return vault
    return None
