"""Session store tracking the signed-in principal."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Iterable, List, Optional

from .models import IdentityClaims, Principal, PrincipalRole
from .provider import AuthenticationError, IdentityProvider
from .repository import ProfileRepository

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[Principal]], None]


def derive_role(claims: IdentityClaims, admin_emails: Iterable[str]) -> PrincipalRole:
    """Role assigned when a profile is first created.

    A provider-issued ``admin`` role claim wins; otherwise the email must match
    an allow-list entry exactly (case-sensitive).
    """

    if claims.role_claim == PrincipalRole.ADMIN.value:
        return PrincipalRole.ADMIN
    if claims.email and claims.email in set(admin_emails):
        return PrincipalRole.ADMIN
    return PrincipalRole.USER


class SessionStore:
    """Holds the current principal and notifies observers of sign-in/out."""

    def __init__(
        self,
        provider: IdentityProvider,
        profiles: ProfileRepository,
        *,
        admin_emails: Iterable[str] = (),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._provider = provider
        self._profiles = profiles
        self._admin_emails = tuple(admin_emails)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._principal: Optional[Principal] = None
        self._listeners: List[SessionListener] = []
        self._lock = Lock()

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def is_authenticated(self) -> bool:
        return self._principal is not None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def handle_auth_state(
        self,
        claims: Optional[IdentityClaims],
        *,
        name: Optional[str] = None,
    ) -> Optional[Principal]:
        """Resolve the profile for ``claims`` (creating it once) and publish it."""

        if claims is None:
            self._set_principal(None)
            return None

        principal = self._profiles.get_profile(claims.uid)
        if principal is None:
            candidate = Principal(
                id=claims.uid,
                email=claims.email,
                name=name or claims.display_name or claims.email.split("@")[0],
                role=derive_role(claims, self._admin_emails),
                avatar=claims.avatar,
                created_at=self._clock(),
            )
            principal = self._profiles.create_profile(candidate)
            logger.info("Created profile id=%s role=%s", principal.id, principal.role.value)
        self._set_principal(principal)
        return principal

    def login(self, email: str, password: str) -> bool:
        try:
            claims = self._provider.sign_in_with_password(email, password)
        except AuthenticationError as exc:
            logger.info("Login failed for %s: %s", email, exc)
            return False
        self.handle_auth_state(claims)
        return True

    def login_with_oauth(self, id_token: str) -> bool:
        try:
            claims = self._provider.sign_in_with_oauth(id_token)
        except AuthenticationError as exc:
            logger.info("Federated login failed: %s", exc)
            return False
        self.handle_auth_state(claims)
        return True

    def register(self, name: str, email: str, password: str) -> bool:
        try:
            claims = self._provider.register(name, email, password)
        except AuthenticationError as exc:
            logger.info("Registration failed for %s: %s", email, exc)
            return False
        self.handle_auth_state(claims, name=name)
        return True

    def logout(self) -> None:
        try:
            self._provider.sign_out()
        finally:
            self._set_principal(None)

    def reload(self) -> Optional[Principal]:
        """Re-read the current profile, e.g. after an admin changed its role."""

        if self._principal is None:
            return None
        self._set_principal(self._profiles.get_profile(self._principal.id))
        return self._principal

    def _set_principal(self, principal: Optional[Principal]) -> None:
        self._principal = principal
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(principal)


__all__ = ["SessionListener", "SessionStore", "derive_role"]
