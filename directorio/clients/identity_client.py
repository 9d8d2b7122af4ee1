"""
directorio/clients/identity_client.py — Firebase Authentication
Password and provider sign-in go through the Identity Toolkit REST API
(the same endpoints the web SDK calls); token verification and sign-out
(refresh-token revocation) go through the Admin SDK.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
from fastapi.concurrency import run_in_threadpool
from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions
from loguru import logger

from directorio.config import get_settings
from directorio.core import logging as app_logging
from directorio.core.errors import (
    AuthenticationRequiredError,
    DirectoryError,
    RateLimitedError,
    UpstreamUnavailableError,
    ValidationError,
)
from directorio.models import AuthSession, AuthUser

# Identity Toolkit error codes → user-facing errors
_ERROR_MAP: dict[str, tuple[type[DirectoryError], str]] = {
    "EMAIL_EXISTS": (ValidationError, "Este correo ya está registrado"),
    "INVALID_EMAIL": (ValidationError, "El email no es válido"),
    "WEAK_PASSWORD": (ValidationError, "La contraseña debe tener al menos 6 caracteres"),
    "MISSING_PASSWORD": (ValidationError, "La contraseña es requerida"),
    "EMAIL_NOT_FOUND": (AuthenticationRequiredError, "Correo o contraseña incorrectos"),
    "INVALID_PASSWORD": (AuthenticationRequiredError, "Correo o contraseña incorrectos"),
    "INVALID_LOGIN_CREDENTIALS": (AuthenticationRequiredError, "Correo o contraseña incorrectos"),
    "INVALID_ID_TOKEN": (AuthenticationRequiredError, "Tu sesión ha expirado. Inicia sesión de nuevo"),
    "INVALID_IDP_RESPONSE": (AuthenticationRequiredError, "No se pudo iniciar sesión con el proveedor"),
    "USER_DISABLED": (AuthenticationRequiredError, "Esta cuenta ha sido deshabilitada"),
    "USER_NOT_FOUND": (AuthenticationRequiredError, "Usuario no encontrado"),
    "TOO_MANY_ATTEMPTS_TRY_LATER": (RateLimitedError, "Demasiados intentos. Por favor, espere un momento."),
}


def _error_code(payload: dict[str, Any]) -> str:
    # "WEAK_PASSWORD : Password should be at least 6 characters"
    message = (payload.get("error") or {}).get("message", "")
    return message.split(":", 1)[0].strip()


def translate_identity_error(payload: dict[str, Any]) -> DirectoryError:
    code = _error_code(payload)
    error_cls, message = _ERROR_MAP.get(code, (UpstreamUnavailableError, ""))
    return error_cls(message or None)


class FirebaseIdentityProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.firebase_web_api_key
        self._base_url = (base_url or settings.identity_toolkit_url).rstrip("/")
        self._http = http_client or httpx.AsyncClient(timeout=settings.identity_timeout_seconds)

    async def close(self) -> None:
        await self._http.aclose()

    async def _call(self, method: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/accounts:{method}"
        try:
            response = await self._http.post(url, params={"key": self._api_key}, json=body)
        except httpx.HTTPError as exc:
            logger.warning(f"Identity Toolkit {method} transport error: {exc}")
            raise UpstreamUnavailableError() from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError() from exc

        if response.status_code >= 400:
            raise translate_identity_error(payload)
        return payload

    @staticmethod
    def _session(payload: dict[str, Any]) -> AuthSession:
        return AuthSession(
            uid=payload["localId"],
            email=payload.get("email"),
            display_name=payload.get("displayName") or None,
            id_token=payload["idToken"],
            refresh_token=payload["refreshToken"],
            expires_in=int(payload.get("expiresIn", 3600)),
            email_verified=bool(payload.get("emailVerified", False)),
        )

    # ── Sign-in flows ─────────────────────────────────────────────────────────

    async def sign_up(self, email: str, password: str, name: str = "") -> AuthSession:
        try:
            payload = await self._call("signUp", {
                "email": email, "password": password, "returnSecureToken": True,
            })
            if name:
                updated = await self._call("update", {
                    "idToken": payload["idToken"],
                    "displayName": name,
                    "returnSecureToken": True,
                })
                payload = {**payload, **updated}
        except DirectoryError as exc:
            app_logging.log_auth_event("sign_up", False, error=type(exc).__name__)
            raise
        session = self._session(payload)
        app_logging.log_auth_event("sign_up", True, uid=session.uid)
        return session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            payload = await self._call("signInWithPassword", {
                "email": email, "password": password, "returnSecureToken": True,
            })
        except DirectoryError as exc:
            app_logging.log_auth_event("sign_in", False, error=type(exc).__name__)
            raise
        session = self._session(payload)
        app_logging.log_auth_event("sign_in", True, uid=session.uid)
        return session

    async def sign_in_with_provider(
        self,
        provider_id_token: str,
        provider_id: str = "google.com",
        request_uri: str = "http://localhost",
    ) -> AuthSession:
        try:
            payload = await self._call("signInWithIdp", {
                "postBody": f"id_token={provider_id_token}&providerId={provider_id}",
                "requestUri": request_uri,
                "returnIdpCredential": True,
                "returnSecureToken": True,
            })
        except DirectoryError as exc:
            app_logging.log_auth_event("provider", False, error=type(exc).__name__)
            raise
        session = self._session(payload)
        app_logging.log_auth_event("provider", True, uid=session.uid)
        return session

    async def send_verification_email(self, id_token: str) -> None:
        try:
            await self._call("sendOobCode", {"requestType": "VERIFY_EMAIL", "idToken": id_token})
        except DirectoryError as exc:
            app_logging.log_auth_event("verify_email", False, error=type(exc).__name__)
            raise
        app_logging.log_auth_event("verify_email", True)

    async def sign_out(self, uid: str) -> None:
        """Revoke every refresh token; existing id tokens fail check_revoked."""
        try:
            await run_in_threadpool(firebase_auth.revoke_refresh_tokens, uid)
        except firebase_exceptions.FirebaseError as exc:
            app_logging.log_auth_event("sign_out", False, uid=uid, error=str(exc))
            raise UpstreamUnavailableError() from exc
        app_logging.log_auth_event("sign_out", True, uid=uid)

    # ── Auth state ────────────────────────────────────────────────────────────

    async def verify_id_token(self, id_token: str) -> Optional[AuthUser]:
        """Current user for a bearer token, or None when it is not valid."""
        try:
            decoded = await run_in_threadpool(
                firebase_auth.verify_id_token, id_token, None, True,
            )
        except (
            firebase_auth.InvalidIdTokenError,
            firebase_auth.ExpiredIdTokenError,
            firebase_auth.RevokedIdTokenError,
            firebase_auth.UserDisabledError,
            ValueError,
        ) as exc:
            logger.debug(f"Rejected id token: {type(exc).__name__}")
            return None
        except firebase_auth.CertificateFetchError as exc:
            raise UpstreamUnavailableError() from exc

        return AuthUser(
            uid=decoded["uid"],
            email=decoded.get("email"),
            name=decoded.get("name"),
            email_verified=bool(decoded.get("email_verified", False)),
        )
