import base64
import os
import sys
import tempfile
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest

# configure before anything imports socialsync.config
_TMP = tempfile.mkdtemp(prefix="socialsync-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["ENCRYPTION_KEY"] = base64.b64encode(b"k" * 32).decode()
os.environ["APP_BASE_URL"] = "http://testserver"
os.environ["LOG_JSON"] = "false"

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from socialsync.db.base import Base, SessionLocal, engine  # noqa: E402
from socialsync.db import crud_accounts, token_crypto  # noqa: E402
from socialsync.db.models import PostPlatform, Product, ShopConnection  # noqa: E402
from socialsync.errors import AuthenticationError  # noqa: E402
from socialsync.services.platform_client import PlatformClient  # noqa: E402
from socialsync.services.sync_types import (  # noqa: E402
    AccountMetrics, CatalogItem, CommentPage, PostMetrics, TokenSet,
)


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakePlatformClient(PlatformClient):
    """In-memory platform: tokens listed in ``revoked`` are rejected."""

    def __init__(self):
        self.revoked = set()
        self.metrics: Dict[str, List[AccountMetrics]] = {}
        self.post_metrics: Dict[str, PostMetrics] = {}
        self.fail_posts = set()
        self.comment_pages: List[CommentPage] = []
        self.comment_calls = []
        self.catalog: List[CatalogItem] = []
        self.fail_products = set()
        self.created = []
        self.updated = []
        self.exchanges = []
        self.refreshes = []
        self.next_tokens = TokenSet(access_token="access-1", refresh_token="refresh-1",
                                    expires_in=3600, external_account_id="ext-1", name="Shop Page")

    def _check(self, token: str) -> None:
        if token in self.revoked:
            raise AuthenticationError("token revoked by platform")

    def exchange_code(self, platform, code, redirect_uri, client_id, client_secret):
        self.exchanges.append((platform, code, redirect_uri, client_id, client_secret))
        return self.next_tokens

    def refresh_access_token(self, platform, refresh_token, client_id, client_secret):
        self._check(refresh_token)
        self.refreshes.append(refresh_token)
        return TokenSet(access_token="access-refreshed", expires_in=3600)

    def fetch_account_metrics(self, platform, access_token, external_account_id):
        self._check(access_token)
        return self.metrics.get(external_account_id, [AccountMetrics(followers=100, impressions=5)])

    def fetch_post_metrics(self, platform, access_token, platform_post_id):
        self._check(access_token)
        if platform_post_id in self.fail_posts:
            raise RuntimeError(f"platform lost {platform_post_id}")
        return self.post_metrics.get(platform_post_id, PostMetrics(impressions=50, likes=5))

    def fetch_comments(self, platform, access_token, platform_post_id, since=None, page_token=None):
        self._check(access_token)
        self.comment_calls.append((since, page_token))
        index = int(page_token) if page_token else 0
        if index >= len(self.comment_pages):
            return CommentPage()
        return self.comment_pages[index]

    def fetch_catalog(self, platform, access_token, catalog_id):
        self._check(access_token)
        return list(self.catalog)

    def create_product(self, platform, access_token, catalog_id, product):
        if product.external_id in self.fail_products:
            raise RuntimeError(f"platform refused {product.external_id}")
        self.created.append(product.external_id)
        return f"pp-{product.external_id}"

    def update_product(self, platform, access_token, catalog_id, platform_product_id, product):
        if product.external_id in self.fail_products:
            raise RuntimeError(f"platform refused {product.external_id}")
        self.updated.append(product.external_id)


@pytest.fixture
def fake_client():
    return FakePlatformClient()


@pytest.fixture
def api(fake_client):
    """TestClient with startup/shutdown run and the platform client swapped for the fake."""
    from fastapi.testclient import TestClient
    from socialsync import deps
    from socialsync.main import app
    from socialsync.services.sync_orchestrator import SyncOrchestrator

    orchestrator = SyncOrchestrator(SessionLocal, fake_client, deadline_seconds=5)
    app.dependency_overrides[deps.get_platform_client] = lambda: fake_client
    app.dependency_overrides[deps.get_orchestrator] = lambda: orchestrator
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


WS_HEADERS = {"X-Workspace-Id": "ws-1"}


def make_account(db, workspace_id="ws-1", platform="instagram", external_id="ext-1",
                 access_token="access-1", refresh_token: Optional[str] = None, expires_in: Optional[int] = 3600):
    acc, _ = crud_accounts.upsert_account(
        db, workspace_id, platform, external_id,
        token_crypto.encrypt(access_token),
        token_crypto.encrypt_optional(refresh_token),
        expires_in,
    )
    return acc


def make_post(db, account_id, platform_post_id="post-1", published_at: Optional[datetime] = None):
    post = PostPlatform(social_account_id=account_id, platform_post_id=platform_post_id,
                        published_at=published_at or datetime.utcnow() - timedelta(days=1))
    db.add(post)
    db.commit()
    db.refresh(post)
    return post


def make_shop(db, account_id, workspace_id="ws-1", platform="instagram", catalog_id="cat-1"):
    shop = ShopConnection(workspace_id=workspace_id, platform=platform, social_account_id=account_id, catalog_id=catalog_id)
    db.add(shop)
    db.commit()
    db.refresh(shop)
    return shop


def make_products(db, n, workspace_id="ws-1"):
    rows = []
    for i in range(1, n + 1):
        p = Product(workspace_id=workspace_id, external_id=f"sku-{i}", name=f"Item {i}", price=10.0 * i, currency="USD")
        db.add(p)
        rows.append(p)
    db.commit()
    return rows
