"""
Error taxonomy shared by every provenance component.
"""

from typing import Optional

__all__ = [
    "ProvenanceError",
    "ValidationError",
    "InvalidAmountError",
    "WalletNotConnectedError",
    "StorageUploadError",
    "FetchError",
    "LedgerError",
    "PersistenceWarning",
]


class ProvenanceError(Exception):
    """Base exception for provenance operations."""
    pass


class ValidationError(ProvenanceError):
    """Missing or invalid caller input, raised before any I/O."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidAmountError(ValidationError):
    """License mint amount is not a positive integer."""

    def __init__(self, message: str):
        super().__init__(message, field="amount")


class WalletNotConnectedError(ProvenanceError):
    """No signing context available."""

    def __init__(self, message: str = "Wallet not connected"):
        super().__init__(message)


class StorageUploadError(ProvenanceError):
    """Pinning service rejected the upload or was unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FetchError(ProvenanceError):
    """Remote resource could not be fetched."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class LedgerError(ProvenanceError):
    """The ledger rejected or reverted a call. Message is passed through verbatim."""
    pass


class PersistenceWarning(ProvenanceError):
    """Off-chain index write failed after a successful on-chain action."""
    pass
