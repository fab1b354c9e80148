from datetime import datetime, timedelta

from socialsync.db import crud, crud_accounts
from socialsync.db.base import SessionLocal
from socialsync.db.models import ACCOUNT_EXPIRED, PostAnalytics
from socialsync.services.sync_guard import SyncGuard, account_key
from socialsync.services.sync_orchestrator import SyncOrchestrator
from socialsync.services.sync_types import PostMetrics

from conftest import WS_HEADERS, make_account, make_post


def orchestrator(client, **kw):
    kw.setdefault("deadline_seconds", 5)
    return SyncOrchestrator(SessionLocal, client, **kw)


def test_only_recent_published_posts_are_synced(db, fake_client):
    acc = make_account(db)
    recent = make_post(db, acc.id, "post-recent")
    make_post(db, acc.id, "post-old", published_at=datetime.utcnow() - timedelta(days=40))
    make_post(db, acc.id, platform_post_id=None)
    other = make_account(db, workspace_id="ws-2", external_id="ext-2")
    make_post(db, other.id, "post-elsewhere")
    fake_client.post_metrics["post-recent"] = PostMetrics(impressions=900, likes=42, engagement_rate=4.7)

    results = orchestrator(fake_client).sync_recent_posts_analytics("ws-1")

    assert list(results) == [recent.id]
    assert results[recent.id].success
    assert results[recent.id].records_upserted == 1
    row = crud.get_post_analytics(db, recent.id)
    assert (row.impressions, row.likes, row.engagement_rate) == (900, 42, 4.7)
    assert row.synced_at is not None


def test_rerun_overwrites_the_same_row(db, fake_client):
    acc = make_account(db)
    post = make_post(db, acc.id)
    orch = orchestrator(fake_client)

    orch.sync_recent_posts_analytics("ws-1")
    fake_client.post_metrics["post-1"] = PostMetrics(impressions=77, video_views=12)
    orch.sync_recent_posts_analytics("ws-1")

    assert db.query(PostAnalytics).count() == 1
    row = crud.get_post_analytics(db, post.id)
    assert (row.impressions, row.video_views) == (77, 12)


def test_one_failing_post_does_not_stop_the_rest(db, fake_client):
    acc = make_account(db)
    posts = [make_post(db, acc.id, f"post-{i}") for i in range(1, 4)]
    fake_client.fail_posts.add("post-2")

    results = orchestrator(fake_client).sync_recent_posts_analytics("ws-1")

    assert results[posts[0].id].success and results[posts[2].id].success
    assert [e.item_id for e in results[posts[1].id].errors] == ["post-2"]
    assert db.query(PostAnalytics).count() == 2


def test_revoked_token_fails_only_that_account(db, fake_client):
    dead = make_account(db, external_id="dead", access_token="tok-dead")
    alive = make_account(db, external_id="alive", access_token="tok-alive", platform="tiktok")
    lost = [make_post(db, dead.id, "d-1"), make_post(db, dead.id, "d-2")]
    kept = make_post(db, alive.id, "a-1")
    fake_client.revoked.add("tok-dead")

    results = orchestrator(fake_client).sync_recent_posts_analytics("ws-1")

    assert all(results[p.id].errors[0].kind == "authentication_error" for p in lost)
    assert results[kept.id].success
    db.expire_all()
    assert crud_accounts.get_account(db, dead.id).status == ACCOUNT_EXPIRED


def test_account_busy_with_another_sync(db, fake_client):
    acc = make_account(db)
    post = make_post(db, acc.id)
    guard = SyncGuard()
    with guard.hold(account_key(acc.id)):
        results = orchestrator(fake_client, guard=guard).sync_recent_posts_analytics("ws-1")
    assert results[post.id].errors[0].kind == "already_in_progress"
    assert crud.get_post_analytics(db, post.id) is None


def test_deadline_marks_remaining_posts_partial(db, fake_client):
    acc = make_account(db)
    posts = [make_post(db, acc.id, f"post-{i}") for i in range(1, 3)]

    results = orchestrator(fake_client, deadline_seconds=-1).sync_recent_posts_analytics("ws-1")

    for p in posts:
        assert results[p.id].partial
        assert results[p.id].errors[0].kind == "deadline_exceeded"
    assert db.query(PostAnalytics).count() == 0


def test_post_analytics_endpoint(api, db):
    acc = make_account(db)
    post = make_post(db, acc.id)

    r = api.post("/api/sync/analytics/posts", headers=WS_HEADERS)
    assert r.status_code == 200
    assert r.json()["posts"][str(post.id)]["success"] is True
    assert api.post("/api/sync/analytics/posts", headers={"X-Workspace-Id": "ws-2"}).json() == {"posts": {}}
