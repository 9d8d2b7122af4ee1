"""
directorio/core/auth.py — Authentication dependencies
Clients send the Firebase id token as `Authorization: Bearer <token>`.
Collaborators (document store, image storage, identity provider) are built
in the lifespan and read from app.state, so tests can swap in fakes.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from directorio.core.errors import AuthenticationRequiredError
from directorio.models import AuthSession, AuthUser

bearer = HTTPBearer(auto_error=False)


class IdentityProvider(Protocol):
    async def sign_up(self, email: str, password: str, name: str = "") -> AuthSession: ...

    async def sign_in(self, email: str, password: str) -> AuthSession: ...

    async def sign_in_with_provider(
        self, provider_id_token: str, provider_id: str = "google.com",
    ) -> AuthSession: ...

    async def send_verification_email(self, id_token: str) -> None: ...

    async def sign_out(self, uid: str) -> None: ...

    async def verify_id_token(self, id_token: str) -> Optional[AuthUser]: ...


# ──────────────────────────────────────────────────────────────────────────────
# Collaborators from app.state
# ──────────────────────────────────────────────────────────────────────────────

def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


def get_store(request: Request) -> Any:
    return request.app.state.store


def get_storage(request: Request) -> Any:
    return request.app.state.storage


# ──────────────────────────────────────────────────────────────────────────────
# Current user
# ──────────────────────────────────────────────────────────────────────────────

async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    identity: IdentityProvider = Depends(get_identity),
) -> Optional[AuthUser]:
    """Signed-in user, or None for anonymous requests and invalid tokens."""
    if credentials is None or not credentials.credentials:
        return None
    return await identity.verify_id_token(credentials.credentials)


async def get_current_user(
    user: Optional[AuthUser] = Depends(get_optional_user),
) -> AuthUser:
    """Require a valid bearer token. 401 otherwise."""
    if user is None:
        raise AuthenticationRequiredError()
    return user
