# Vaultboard - Vault Module
#
# Client-side state for the vaults view: the observable store, its
# snapshot type, form validation, and the backend gateway contract.

from .exceptions import GatewayError, VaultException, VaultValidationFailed
from .gateway import RpcVaultGateway, VaultGateway
from .models import VaultMeta, VaultRecord
from .state import VaultState
from .store import VaultStore
from .validation import ValidationError, validate_name, validate_password_repeat

__all__ = [
    "GatewayError",
    "RpcVaultGateway",
    "ValidationError",
    "VaultException",
    "VaultGateway",
    "VaultMeta",
    "VaultRecord",
    "VaultState",
    "VaultStore",
    "VaultValidationFailed",
    "validate_name",
    "validate_password_repeat",
]
