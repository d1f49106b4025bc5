"""Vault data model: backend-reported vaults and their metadata."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class VaultMeta:
    """Free-form metadata the backend stores next to a vault.

    The backend speaks camelCase (``passwordHint``); attributes are
    snake_case. An empty instance means no metadata was set yet.
    """

    description: Optional[str] = None
    password_hint: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        data: Dict[str, str] = {}
        if self.description is not None:
            data["description"] = self.description
        if self.password_hint is not None:
            data["passwordHint"] = self.password_hint
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "VaultMeta":
        data = data or {}
        return cls(
            description=data.get("description"),
            password_hint=data.get("passwordHint"),
        )

    @property
    def is_empty(self) -> bool:
        return self.description is None and self.password_hint is None


@dataclass(frozen=True)
class VaultRecord:
    """One vault as last reported by the backend.

    Records are rebuilt on every reload, never edited in place.
    """

    name: str
    meta: VaultMeta = field(default_factory=VaultMeta)
    is_open: bool = False
