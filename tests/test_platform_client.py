import base64
import json

import httpx
import pytest

from socialsync.db.base import SessionLocal
from socialsync.errors import AuthenticationError, ConfigurationError, PlatformRequestError, TransientPlatformError
from socialsync.services import platform_client
from socialsync.services.platform_client import (
    HttpPlatformClient, PlatformClient, extract_sub_from_id_token, raise_for_platform_status,
)
from socialsync.services.sync_orchestrator import SyncOrchestrator

from conftest import make_account, make_post


@pytest.fixture
def transport(monkeypatch):
    """Route every httpx.Client through a scripted list of responses."""
    calls = []
    script = []

    def handler(request):
        calls.append(request)
        return script.pop(0)

    real_client = httpx.Client
    monkeypatch.setattr(httpx, "Client", lambda **kw: real_client(transport=httpx.MockTransport(handler), **kw))
    monkeypatch.setattr(platform_client.time, "sleep", lambda s: None)
    return calls, script


def test_status_classification():
    req = httpx.Request("GET", "https://example.test")
    raise_for_platform_status(httpx.Response(200, request=req))
    with pytest.raises(AuthenticationError):
        raise_for_platform_status(httpx.Response(401, request=req))
    with pytest.raises(TransientPlatformError) as exc:
        raise_for_platform_status(httpx.Response(429, headers={"Retry-After": "12"}, request=req))
    assert exc.value.retry_after == 12.0
    with pytest.raises(PlatformRequestError) as exc:
        raise_for_platform_status(httpx.Response(422, text="bad field", request=req))
    assert exc.value.status_code == 422


def test_exchange_code_retries_then_succeeds(transport):
    calls, script = transport
    script.extend([
        httpx.Response(503),
        httpx.Response(200, json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600, "user_id": 42}),
    ])
    tokens = HttpPlatformClient().exchange_code("instagram", "code-1", "http://cb", "cid", "secret")

    assert len(calls) == 2
    assert b"grant_type=authorization_code" in calls[1].content
    assert tokens.access_token == "at"
    assert tokens.external_account_id == "42"
    assert tokens.expires_in == 3600


def test_rejected_grant_is_authentication_error(transport):
    _calls, script = transport
    script.append(httpx.Response(400, json={"error": "invalid_grant"}))
    with pytest.raises(AuthenticationError):
        HttpPlatformClient().refresh_access_token("tiktok", "rt", "cid", "secret")


def test_persistent_outage_is_transient(transport):
    _calls, script = transport
    script.extend([httpx.Response(502)] * 3)
    with pytest.raises(TransientPlatformError):
        HttpPlatformClient().exchange_code("youtube", "c", "http://cb", "cid", "secret")


def test_id_token_subject_identifies_account(transport):
    _calls, script = transport
    claims = base64.urlsafe_b64encode(json.dumps({"sub": "li-member-9"}).encode()).decode().rstrip("=")
    script.append(httpx.Response(200, json={"access_token": "at", "id_token": f"h.{claims}.s"}))
    tokens = HttpPlatformClient().exchange_code("linkedin", "c", "http://cb", "cid", "secret")
    assert tokens.external_account_id == "li-member-9"


def test_extract_sub_tolerates_garbage():
    assert extract_sub_from_id_token("nodots") == ""
    assert extract_sub_from_id_token("a.!!!.c") == ""


def test_platform_client_is_abstract():
    with pytest.raises(TypeError):
        PlatformClient()

    class TokensOnly(PlatformClient):
        def exchange_code(self, platform, code, redirect_uri, client_id, client_secret):
            return None

        def refresh_access_token(self, platform, refresh_token, client_id, client_secret):
            return None

    with pytest.raises(TypeError):
        TokensOnly()


def test_http_client_data_calls_name_the_platform():
    client = HttpPlatformClient()
    with pytest.raises(ConfigurationError, match="tiktok"):
        client.fetch_account_metrics("tiktok", "token", "ext-1")
    with pytest.raises(ConfigurationError, match="instagram"):
        client.fetch_post_metrics("instagram", "token", "post-1")
    with pytest.raises(ConfigurationError, match="facebook"):
        client.fetch_catalog("facebook", "token", "cat-1")


def test_unwired_platform_is_a_configuration_error_in_sync(db):
    acc = make_account(db, platform="youtube")
    make_post(db, acc.id)
    orch = SyncOrchestrator(SessionLocal, HttpPlatformClient(), deadline_seconds=5)

    result = orch.sync_account_analytics(acc.id)
    assert [e.kind for e in result.errors] == ["configuration_error"]
    assert "youtube" in result.errors[0].message

    (post_result,) = orch.sync_recent_posts_analytics("ws-1").values()
    assert post_result.errors[0].kind == "configuration_error"
