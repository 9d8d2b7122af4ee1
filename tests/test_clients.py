"""
tests/test_clients.py — Storage helpers, upload error translation and the Identity Toolkit client
HTTP is served by httpx.MockTransport; nothing leaves the process.
"""
from __future__ import annotations

import json

import httpx
import pytest
from google.auth import exceptions as auth_exceptions

from directorio.clients.identity_client import FirebaseIdentityProvider, translate_identity_error
from directorio.clients.storage_client import (
    FirebaseImageStorage,
    build_image_path,
    download_url,
    path_from_url,
)
from directorio.core.errors import (
    AuthenticationRequiredError,
    RateLimitedError,
    UpstreamUnavailableError,
    ValidationError,
)


# ── Storage paths ─────────────────────────────────────────────────────────────

def test_image_path_layout():
    assert build_image_path("b1", "foto.jpg", now_ms=1700000000000) == "businesses/b1/1700000000000_foto.jpg"


def test_image_path_sanitises_filename():
    path = build_image_path("b1", "C:\\fotos\\mi local (1).png", now_ms=1)
    assert path == "businesses/b1/1_mi_local_1_.png"


def test_download_url_round_trip():
    url = download_url("demo.appspot.com", "businesses/b1/1_a.jpg", "tok")
    assert url.startswith("https://firebasestorage.googleapis.com/v0/b/demo.appspot.com/o/businesses%2Fb1%2F1_a.jpg")
    assert path_from_url(url) == "businesses/b1/1_a.jpg"


def test_path_from_gs_and_bare_paths():
    assert path_from_url("gs://demo.appspot.com/businesses/b1/x.jpg") == "businesses/b1/x.jpg"
    assert path_from_url("/businesses/b1/x.jpg") == "businesses/b1/x.jpg"
    with pytest.raises(ValueError):
        path_from_url("https://example.com/x.jpg")


class _FailingBlob:
    metadata = None

    def upload_from_file(self, *args, **kwargs):
        raise auth_exceptions.TransportError("connection aborted")


class _FailingBucket:
    name = "demo.appspot.com"

    def blob(self, path):
        return _FailingBlob()


@pytest.mark.asyncio
async def test_upload_transport_error_is_upstream_unavailable():
    storage = FirebaseImageStorage(bucket=_FailingBucket())
    with pytest.raises(UpstreamUnavailableError):
        await storage.upload(b"jpeg", "businesses/b1/1_a.jpg", "image/jpeg")


# ── Identity Toolkit ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("code,error_cls", [
    ("EMAIL_EXISTS", ValidationError),
    ("INVALID_LOGIN_CREDENTIALS", AuthenticationRequiredError),
    ("TOO_MANY_ATTEMPTS_TRY_LATER : Too many unsuccessful login attempts", RateLimitedError),
    ("SOMETHING_NEW", UpstreamUnavailableError),
])
def test_translate_identity_error(code, error_cls):
    assert isinstance(translate_identity_error({"error": {"message": code}}), error_cls)


def _provider(handler) -> FirebaseIdentityProvider:
    return FirebaseIdentityProvider(
        api_key="test-key",
        base_url="https://identity.test/v1",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_sign_up_sets_display_name():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        calls.append((request.url.path, request.url.params["key"], body))
        if request.url.path.endswith("accounts:signUp"):
            return httpx.Response(200, json={
                "localId": "uid-1", "email": body["email"],
                "idToken": "id-1", "refreshToken": "r-1", "expiresIn": "3600",
            })
        return httpx.Response(200, json={"displayName": body["displayName"], "idToken": "id-2"})

    provider = _provider(handler)
    session = await provider.sign_up("ana@example.com", "secreta", "Ana")
    await provider.close()

    assert [c[0] for c in calls] == ["/v1/accounts:signUp", "/v1/accounts:update"]
    assert all(c[1] == "test-key" for c in calls)
    assert session.uid == "uid-1"
    assert session.display_name == "Ana"
    assert session.id_token == "id-2"


@pytest.mark.asyncio
async def test_sign_in_bad_password():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": 400, "message": "INVALID_PASSWORD"}})

    provider = _provider(handler)
    with pytest.raises(AuthenticationRequiredError) as exc_info:
        await provider.sign_in("ana@example.com", "mala")
    await provider.close()
    assert exc_info.value.message == "Correo o contraseña incorrectos"


@pytest.mark.asyncio
async def test_transport_error_is_upstream_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    provider = _provider(handler)
    with pytest.raises(UpstreamUnavailableError):
        await provider.send_verification_email("id-1")
    await provider.close()
