from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from jose import jwt

from backend.app.identity import (
    AuthenticationError,
    DocumentProfileRepository,
    IdentityClaims,
    LocalIdentityProvider,
    Principal,
    PrincipalRole,
    SessionStore,
    derive_role,
)
from backend.app.ledger import USERS, InMemoryDocumentStore

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
SECRET = "test-secret"


@pytest.fixture
def provider() -> LocalIdentityProvider:
    return LocalIdentityProvider(secret_key=SECRET, bcrypt_rounds=4)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def profiles(store: InMemoryDocumentStore) -> DocumentProfileRepository:
    return DocumentProfileRepository(store)


def _session(provider, profiles, *admin_emails: str) -> SessionStore:
    return SessionStore(provider, profiles, admin_emails=admin_emails, clock=lambda: NOW)


def test_allow_list_match_is_exact_and_case_sensitive() -> None:
    allow_list = ["boss@example.com"]

    assert derive_role(IdentityClaims(uid="1", email="boss@example.com"), allow_list) == PrincipalRole.ADMIN
    assert derive_role(IdentityClaims(uid="2", email="Boss@example.com"), allow_list) == PrincipalRole.USER
    assert derive_role(IdentityClaims(uid="3", email="boss@example.co"), allow_list) == PrincipalRole.USER
    assert derive_role(IdentityClaims(uid="4", email=""), [""]) == PrincipalRole.USER


def test_provider_role_claim_grants_admin() -> None:
    claims = IdentityClaims(uid="1", email="someone@example.com", role_claim="admin")

    assert derive_role(claims, []) == PrincipalRole.ADMIN


def test_register_creates_profile_once(provider, profiles, store) -> None:
    session = _session(provider, profiles)

    assert session.register("Ada", "ada@example.com", "secret1") is True
    principal = session.principal
    assert principal is not None
    assert principal.name == "Ada"
    assert principal.role == PrincipalRole.USER
    assert principal.created_at == NOW

    session.logout()
    assert session.login("ada@example.com", "secret1") is True
    assert session.principal == principal
    assert list(store.list(USERS)) == [principal.id]


def test_allow_listed_email_becomes_admin_on_first_sign_in(provider, profiles) -> None:
    session = _session(provider, profiles, "boss@example.com")

    assert session.register("Boss", "boss@example.com", "secret1") is True
    assert session.principal is not None
    assert session.principal.is_admin


def test_existing_profile_is_never_promoted(provider, profiles) -> None:
    _session(provider, profiles).register("Late", "late@example.com", "secret1")

    promoted_later = _session(provider, profiles, "late@example.com")
    assert promoted_later.login("late@example.com", "secret1") is True
    assert promoted_later.principal is not None
    assert promoted_later.principal.role == PrincipalRole.USER


def test_name_falls_back_to_email_local_part(provider, profiles) -> None:
    session = _session(provider, profiles)

    principal = session.handle_auth_state(IdentityClaims(uid="u-1", email="grace@example.com"))

    assert principal is not None
    assert principal.name == "grace"


def test_failed_login_returns_false_and_keeps_session_empty(provider, profiles) -> None:
    session = _session(provider, profiles)
    provider.register("Ada", "ada@example.com", "secret1")

    assert session.login("ada@example.com", "wrong-password") is False
    assert session.login("nobody@example.com", "secret1") is False
    assert session.principal is None


def test_registration_validates_input(provider) -> None:
    with pytest.raises(AuthenticationError):
        provider.register("Ada", "not-an-email", "secret1")
    with pytest.raises(AuthenticationError):
        provider.register("Ada", "ada@example.com", "123")

    provider.register("Ada", "ada@example.com", "secret1")
    with pytest.raises(AuthenticationError):
        provider.register("Ada again", "ada@example.com", "secret2")


def test_federated_sign_in_reads_token_claims(provider, profiles) -> None:
    token = jwt.encode(
        {"sub": "google-42", "email": "fed@example.com", "name": "Fed", "picture": "https://img/fed.png"},
        SECRET,
        algorithm="HS256",
    )
    session = _session(provider, profiles)

    assert session.login_with_oauth(token) is True
    assert session.principal is not None
    assert session.principal.id == "google-42"
    assert session.principal.avatar == "https://img/fed.png"


def test_cancelled_federated_sign_in_returns_false(provider, profiles) -> None:
    session = _session(provider, profiles)

    assert session.login_with_oauth("") is False
    assert session.login_with_oauth("garbage") is False
    assert session.principal is None


def test_session_tokens_round_trip_and_expire(provider) -> None:
    token = provider.issue_session_token("user-1")
    expired = provider.issue_session_token("user-1", now=datetime.now(timezone.utc) - timedelta(days=2))

    assert provider.resolve_session_token(token) == "user-1"
    assert provider.resolve_session_token(expired) is None
    assert provider.resolve_session_token("not-a-token") is None


def test_observers_see_sign_in_and_sign_out(provider, profiles) -> None:
    session = _session(provider, profiles)
    seen: List[Optional[str]] = []
    unsubscribe = session.subscribe(lambda principal: seen.append(principal.id if principal else None))

    session.register("Ada", "ada@example.com", "secret1")
    session.logout()
    unsubscribe()
    session.login("ada@example.com", "secret1")

    assert len(seen) == 2
    assert seen[0] is not None
    assert seen[1] is None


def test_reload_picks_up_role_changes(provider, profiles) -> None:
    session = _session(provider, profiles)
    session.register("Ada", "ada@example.com", "secret1")
    principal_id = session.principal.id

    profiles.update_profile(principal_id, {"role": PrincipalRole.ADMIN})

    reloaded = session.reload()
    assert isinstance(reloaded, Principal)
    assert reloaded.is_admin
