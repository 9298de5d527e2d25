"""Firebase Auth ID token verifier."""

from __future__ import annotations

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions

from notemate.adapters.auth.base import AuthVerificationError, TokenVerifier
from notemate.schemas.auth import AuthPrincipal


def ensure_firebase_app(project_id: str | None = None) -> None:
    """Initialize the default Firebase app once per process."""
    if firebase_admin._apps:
        return
    options = {"projectId": project_id} if project_id else None
    firebase_admin.initialize_app(options=options)


class FirebaseTokenVerifier(TokenVerifier):
    """Verifies Firebase ID tokens issued to the mobile client."""

    def __init__(self, project_id: str | None, audience: str | None) -> None:
        self._project_id = project_id
        self._audience = audience

    def verify_token(self, token: str) -> AuthPrincipal:
        ensure_firebase_app(self._project_id)

        try:
            decoded = firebase_auth.verify_id_token(token, check_revoked=True)
        except (ValueError, firebase_exceptions.FirebaseError) as exc:  # pragma: no cover - provider exception surface
            raise AuthVerificationError("Invalid bearer token") from exc

        if self._audience and decoded.get("aud") != self._audience:
            raise AuthVerificationError("Invalid bearer token audience")

        user_id = str(decoded.get("uid") or decoded.get("sub") or "").strip()
        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")

        email = decoded.get("email")
        return AuthPrincipal(user_id=user_id, email=str(email) if email else None)


__all__ = ["FirebaseTokenVerifier", "ensure_firebase_app"]
