"""
Vault Exception Classes
"""

from typing import List, Optional


class VaultException(Exception):
    """Base exception for vault operations"""
    pass


class GatewayError(VaultException):
    """Raised when a backend call fails (transport, HTTP, or RPC error)"""

    def __init__(self, message: str, method: str = "", code: Optional[int] = None):
        super().__init__(message)
        self.method = method
        self.code = code


class VaultValidationFailed(VaultException):
    """Raised when a vault cannot be created because the form is invalid"""

    def __init__(self, errors: List):
        self.errors = list(errors)
        super().__init__(
            "; ".join(error.message for error in self.errors) or "Invalid vault form"
        )
