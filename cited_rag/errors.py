"""Exceptions raised by the external provider boundary."""

from typing import Optional


class ProviderError(RuntimeError):
    """An embedding or generation provider failed or sent a malformed response."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider

    def __str__(self) -> str:
        message = super().__str__()
        if self.provider:
            return f"[{self.provider}] {message}"
        return message
