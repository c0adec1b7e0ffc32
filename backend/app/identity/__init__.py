"""Identity provider integration and the signed-in session."""

from .models import IdentityClaims, Principal, PrincipalRole
from .provider import AuthenticationError, IdentityProvider, LocalIdentityProvider
from .repository import DocumentProfileRepository, ProfileRepository
from .session import SessionListener, SessionStore, derive_role

__all__ = [
    "AuthenticationError",
    "DocumentProfileRepository",
    "IdentityClaims",
    "IdentityProvider",
    "LocalIdentityProvider",
    "Principal",
    "PrincipalRole",
    "ProfileRepository",
    "SessionListener",
    "SessionStore",
    "derive_role",
]
