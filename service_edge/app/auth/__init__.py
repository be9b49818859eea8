"""Service-identity authentication utilities for the edge gateway."""

from .token_minter import CredentialMinter

__all__ = ["CredentialMinter"]
