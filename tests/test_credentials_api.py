import base64

from socialsync.db import crud_accounts
from socialsync.db.models import WorkspaceCredential

from conftest import WS_HEADERS


def by_platform(resp):
    return {c["platform"]: c for c in resp.json()["credentials"]}


def test_list_shows_every_key_unconfigured(api):
    creds = by_platform(api.get("/api/settings/platform-credentials", headers=WS_HEADERS))
    assert "meta" in creds
    assert "instagram" not in creds and "facebook" not in creds
    assert creds["tiktok"]["client_secret_masked"] == "(not set)"
    assert creds["tiktok"]["is_configured"] is False


def test_save_masks_and_encrypts(api, db):
    r = api.put("/api/settings/platform-credentials", headers=WS_HEADERS,
                json={"platform": "instagram", "client_id": "app-1", "client_secret": "supersecret99"})
    assert r.status_code == 200
    assert r.json()["platform"] == "meta"
    assert r.json()["client_secret_masked"] == "****et99"

    row = db.query(WorkspaceCredential).one()
    assert row.client_secret_encrypted != "supersecret99"
    assert crud_accounts.get_decrypted_credentials(db, "ws-1", "meta") == ("app-1", "supersecret99")

    creds = by_platform(api.get("/api/settings/platform-credentials", headers=WS_HEADERS))
    assert creds["meta"]["client_id"] == "app-1"
    assert creds["meta"]["client_secret_masked"] == "****et99"


def test_update_client_id_keeps_secret(api, db):
    api.put("/api/settings/platform-credentials", headers=WS_HEADERS,
            json={"platform": "tiktok", "client_id": "old", "client_secret": "s3cr3t-value"})
    r = api.put("/api/settings/platform-credentials", headers=WS_HEADERS,
                json={"platform": "tiktok", "client_id": "new"})
    assert r.status_code == 200
    assert crud_accounts.get_decrypted_credentials(db, "ws-1", "tiktok") == ("new", "s3cr3t-value")


def test_validation(api):
    url = "/api/settings/platform-credentials"
    assert api.put(url, headers=WS_HEADERS, json={"platform": "myspace", "client_id": "x", "client_secret": "y"}).status_code == 400
    assert api.put(url, headers=WS_HEADERS, json={"platform": "tiktok", "client_id": "  ", "client_secret": "y"}).status_code == 400
    assert api.put(url, headers=WS_HEADERS, json={"platform": "tiktok", "client_id": "x"}).status_code == 400


def test_credentials_are_scoped_to_workspace(api):
    api.put("/api/settings/platform-credentials", headers=WS_HEADERS,
            json={"platform": "youtube", "client_id": "yt", "client_secret": "secret"})
    other = by_platform(api.get("/api/settings/platform-credentials", headers={"X-Workspace-Id": "ws-2"}))
    assert other["youtube"]["is_configured"] is False


def test_undecryptable_secret_is_not_set(api, db):
    crud_accounts.upsert_credential(db, "ws-1", "linkedin", "li", base64.b64encode(b"\0" * 48).decode())
    creds = by_platform(api.get("/api/settings/platform-credentials", headers=WS_HEADERS))
    assert creds["linkedin"]["client_secret_masked"] == "(not set)"
