"""Vaultboard - client-side state controller for account vaults."""

__version__ = "0.1.0"
