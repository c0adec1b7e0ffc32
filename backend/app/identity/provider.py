"""Identity provider contract and a self-hosted implementation."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Dict, Optional, Protocol, Tuple
from uuid import uuid4

from jose import JWTError, jwt
from passlib.hash import bcrypt

from .models import IdentityClaims

JWT_ALGORITHM = "HS256"


class AuthenticationError(Exception):
    """Expected sign-in failure such as bad credentials or a dismissed popup."""


class IdentityProvider(Protocol):
    """Authenticates accounts and reports who they are."""

    def sign_in_with_password(self, email: str, password: str) -> IdentityClaims:
        ...

    def register(self, name: str, email: str, password: str) -> IdentityClaims:
        ...

    def sign_in_with_oauth(self, id_token: str) -> IdentityClaims:
        ...

    def sign_out(self) -> None:
        ...


class LocalIdentityProvider:
    """In-process provider with bcrypt password hashes and JWT tokens.

    Federated sign-in is represented by an ID token signed with the same
    secret; it carries ``sub``, ``email`` and optionally ``name``,
    ``picture`` and ``role`` claims.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        token_ttl: timedelta = timedelta(hours=24),
        bcrypt_rounds: int = 12,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must be provided")
        self._secret_key = secret_key
        self._token_ttl = token_ttl
        self._hasher = bcrypt.using(rounds=bcrypt_rounds)
        # email -> (uid, password_hash, display_name)
        self._accounts: Dict[str, Tuple[str, str, str]] = {}
        self._lock = Lock()

    def register(self, name: str, email: str, password: str) -> IdentityClaims:
        email = email.strip()
        if not email or "@" not in email:
            raise AuthenticationError("A valid email address is required")
        if len(password) < 6:
            raise AuthenticationError("Password must be at least 6 characters")
        with self._lock:
            if email in self._accounts:
                raise AuthenticationError("Email already registered")
            uid = uuid4().hex
            self._accounts[email] = (uid, self._hasher.hash(password), name)
        return IdentityClaims(uid=uid, email=email, display_name=name or None)

    def sign_in_with_password(self, email: str, password: str) -> IdentityClaims:
        with self._lock:
            account = self._accounts.get(email.strip())
        if account is None or not self._hasher.verify(password, account[1]):
            raise AuthenticationError("Invalid email or password")
        uid, _, display_name = account
        return IdentityClaims(uid=uid, email=email.strip(), display_name=display_name or None)

    def sign_in_with_oauth(self, id_token: str) -> IdentityClaims:
        if not id_token:
            raise AuthenticationError("Sign-in was cancelled")
        try:
            claims = jwt.decode(id_token, self._secret_key, algorithms=[JWT_ALGORITHM])
        except JWTError as exc:
            raise AuthenticationError("Invalid identity token") from exc
        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("Identity token has no subject")
        return IdentityClaims(
            uid=str(subject),
            email=str(claims.get("email") or ""),
            display_name=claims.get("name"),
            avatar=claims.get("picture"),
            role_claim=claims.get("role"),
        )

    def sign_out(self) -> None:
        # Tokens are stateless; nothing to revoke locally.
        return None

    def issue_session_token(self, principal_id: str, *, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {"sub": principal_id, "exp": issued_at + self._token_ttl}
        return jwt.encode(payload, self._secret_key, algorithm=JWT_ALGORITHM)

    def resolve_session_token(self, token: str) -> Optional[str]:
        """Return the principal id encoded in ``token`` or ``None`` when invalid."""

        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[JWT_ALGORITHM])
        except JWTError:
            return None
        subject = payload.get("sub")
        return str(subject) if subject else None


__all__ = ["AuthenticationError", "IdentityProvider", "JWT_ALGORITHM", "LocalIdentityProvider"]
