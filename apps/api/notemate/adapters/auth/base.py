"""Authentication provider interfaces."""

from abc import ABC, abstractmethod

from notemate.schemas.auth import AuthPrincipal


class AuthVerificationError(Exception):
    """Raised when a bearer token cannot be verified or normalized."""


class TokenVerifier(ABC):
    @abstractmethod
    def verify_token(self, token: str) -> AuthPrincipal:
        """Verify an ID token and return the principal that owns conversations."""


__all__ = ["AuthVerificationError", "TokenVerifier"]
