"""
Error taxonomy for provider calls and key store access.

Provider adapters translate every third-party failure into exactly one of
QuotaExceededError, ProviderValidationError or TransientProviderError, so the
rotating client never inspects raw HTTP errors or message strings.
"""
from typing import Optional


class ProviderError(Exception):
    """Base exception for third-party provider failures."""

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class QuotaExceededError(ProviderError):
    """Provider signalled rate limiting, capacity exhaustion or overload."""
    pass


class ProviderValidationError(ProviderError):
    """Provider rejected the request or returned an unusable response."""
    pass


class TransientProviderError(ProviderError):
    """Timeout, connection failure or other temporary provider fault."""
    pass


class KeyStoreError(Exception):
    """Raised when the key store cannot be read or written."""
    pass


class KeyNotFoundError(KeyStoreError):
    """Raised when a key id does not exist in the store."""
    pass
