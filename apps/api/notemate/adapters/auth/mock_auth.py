"""Mock auth verifier for local development and tests."""

from notemate.adapters.auth.base import AuthVerificationError, TokenVerifier
from notemate.schemas.auth import AuthPrincipal


class MockTokenVerifier(TokenVerifier):
    """Accepts deterministic test tokens only.

    Expected token format:
    - ``test:<user_id>``
    - ``test:<user_id>:<email>``
    """

    def verify_token(self, token: str) -> AuthPrincipal:
        parts = token.split(":", 2)
        if len(parts) not in (2, 3) or parts[0] != "test":
            raise AuthVerificationError("Invalid bearer token")

        user_id = parts[1].strip()
        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")

        email = parts[2].strip() if len(parts) == 3 else None
        return AuthPrincipal(user_id=user_id, email=email or None)


__all__ = ["MockTokenVerifier"]
