from datetime import datetime

from socialsync.services.sync_types import CommentPage, PlatformComment, PostMetrics

from conftest import WS_HEADERS, make_account, make_post

OTHER = {"X-Workspace-Id": "ws-2"}


def test_account_analytics_after_sync(api, db):
    acc = make_account(db)
    api.post(f"/api/sync/analytics/accounts/{acc.id}", headers=WS_HEADERS)

    r = api.get(f"/api/accounts/{acc.id}/analytics", headers=WS_HEADERS)
    assert r.status_code == 200
    (row,) = r.json()["analytics"]
    assert (row["followers"], row["impressions"]) == (100, 5)

    assert api.get(f"/api/accounts/{acc.id}/analytics", headers=OTHER).status_code == 404


def test_post_comments_after_sync(api, db, fake_client):
    acc = make_account(db)
    post = make_post(db, acc.id)
    fake_client.comment_pages = [CommentPage(comments=[
        PlatformComment(platform_comment_id="c1", text="first", created_at=datetime(2024, 1, 1, 10)),
        PlatformComment(platform_comment_id="c2", text="second", created_at=datetime(2024, 1, 1, 11)),
    ])]
    api.post(f"/api/sync/comments/{post.id}", headers=WS_HEADERS)

    r = api.get(f"/api/posts/{post.id}/comments", headers=WS_HEADERS)
    assert [c["text"] for c in r.json()["comments"]] == ["first", "second"]
    assert api.get(f"/api/posts/{post.id}/comments", headers=OTHER).status_code == 404
    assert api.get("/api/posts/9999/comments", headers=WS_HEADERS).status_code == 404


def test_post_analytics_after_sync(api, db, fake_client):
    acc = make_account(db)
    post = make_post(db, acc.id)
    assert api.get(f"/api/posts/{post.id}/analytics", headers=WS_HEADERS).json() == {"analytics": None}

    fake_client.post_metrics["post-1"] = PostMetrics(impressions=300, shares=4)
    api.post("/api/sync/analytics/posts", headers=WS_HEADERS)

    body = api.get(f"/api/posts/{post.id}/analytics", headers=WS_HEADERS).json()["analytics"]
    assert (body["impressions"], body["shares"]) == (300, 4)
    assert body["synced_at"] is not None


def test_products_create_and_list(api, db):
    product = {"external_id": "sku-1", "name": "Mug", "price": 12.5}
    r = api.post("/api/products", json=product, headers=WS_HEADERS)
    assert r.status_code == 201
    assert r.json()["currency"] == "USD"

    assert api.post("/api/products", json=product, headers=WS_HEADERS).status_code == 409
    assert api.post("/api/products", json={**product, "price": -1}, headers=WS_HEADERS).status_code == 422

    assert [p["external_id"] for p in api.get("/api/products", headers=WS_HEADERS).json()["products"]] == ["sku-1"]
    assert api.get("/api/products", headers=OTHER).json() == {"products": []}
    assert api.get("/api/products").status_code == 401
