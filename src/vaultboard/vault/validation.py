"""Form validation rules for the vault create/unlock workflows.

Errors are returned as values, never raised: the presentation layer
renders them inline next to the offending field.
"""

from enum import Enum
from typing import AbstractSet, Optional


class ValidationError(str, Enum):
    """Field-level validation errors for the vault forms."""

    NO_NAME = "noName"
    DUPLICATE_NAME = "duplicateName"
    NO_MATCH_PASSWORD = "noMatchPassword"

    @property
    def message(self) -> str:
        """User-facing description of the error."""
        return _MESSAGES[self.value]


_MESSAGES = {
    "noName": "you need to specify a valid name for the vault",
    "duplicateName": "a vault with this name already exists",
    "noMatchPassword": "the supplied passwords do not match",
}


def validate_name(
    name: Optional[str], existing_lower_names: AbstractSet[str]
) -> Optional[ValidationError]:
    """Check a vault name against blankness and case-insensitive duplicates."""
    if not name or not name.strip():
        return ValidationError.NO_NAME
    if name.lower() in existing_lower_names:
        return ValidationError.DUPLICATE_NAME
    return None


def validate_password_repeat(password: str, repeat: str) -> Optional[ValidationError]:
    if password != repeat:
        return ValidationError.NO_MATCH_PASSWORD
    return None
