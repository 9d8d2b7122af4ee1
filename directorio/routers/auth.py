"""
directorio/routers/auth.py — Sign-up, sign-in and session endpoints
Endpoints: /api/auth/signup, /signin, /provider, /signout, /verify-email, /me
Rate limited under the "auth" bucket by the middleware in main.py.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status

from directorio.core.auth import (
    IdentityProvider,
    get_current_user,
    get_identity,
    get_optional_user,
    get_store,
)
from directorio.models import (
    AuthSession,
    AuthUser,
    ProviderSignInRequest,
    SignInRequest,
    SignUpRequest,
    VerificationEmailRequest,
)
from directorio.services import subscriptions

router = APIRouter()


async def _ensure_profile(store, session: AuthSession) -> None:
    await subscriptions.get_or_create_profile(
        store,
        AuthUser(
            uid=session.uid,
            email=session.email,
            name=session.display_name,
            email_verified=session.email_verified,
        ),
    )


@router.post("/signup", response_model=AuthSession, status_code=status.HTTP_201_CREATED)
async def sign_up(
    body: SignUpRequest,
    identity: IdentityProvider = Depends(get_identity),
    store=Depends(get_store),
) -> AuthSession:
    """Create the account and its free profile."""
    session = await identity.sign_up(body.email.strip(), body.password, body.name.strip())
    await _ensure_profile(store, session)
    return session


@router.post("/signin", response_model=AuthSession)
async def sign_in(
    body: SignInRequest,
    identity: IdentityProvider = Depends(get_identity),
) -> AuthSession:
    return await identity.sign_in(body.email.strip(), body.password)


@router.post("/provider", response_model=AuthSession)
async def sign_in_with_provider(
    body: ProviderSignInRequest,
    identity: IdentityProvider = Depends(get_identity),
    store=Depends(get_store),
) -> AuthSession:
    """First provider sign-in also creates the profile."""
    session = await identity.sign_in_with_provider(body.id_token, body.provider_id)
    await _ensure_profile(store, session)
    return session


@router.post("/signout")
async def sign_out(
    user: AuthUser = Depends(get_current_user),
    identity: IdentityProvider = Depends(get_identity),
) -> dict:
    await identity.sign_out(user.uid)
    return {"status": "signed_out"}


@router.post("/verify-email", status_code=status.HTTP_202_ACCEPTED)
async def send_verification_email(
    body: VerificationEmailRequest,
    identity: IdentityProvider = Depends(get_identity),
) -> dict:
    await identity.send_verification_email(body.id_token)
    return {"status": "sent"}


@router.get("/me", response_model=Optional[AuthUser])
async def current_user(
    user: Optional[AuthUser] = Depends(get_optional_user),
) -> Optional[AuthUser]:
    """The signed-in user, or null."""
    return user
