# socialsync/services/sync_orchestrator.py
"""Reconciles analytics, comments and catalog data with each platform.

Every entry point returns a structured report. Failures are isolated to the
smallest unit (one catalog item, one account) and never abort the batch;
progress that was already committed is kept when a later step fails or the
deadline passes.
"""
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import timedelta
from typing import Callable, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session, sessionmaker

from socialsync import platforms
from socialsync.config import settings
from socialsync.db import crud, crud_accounts, token_crypto
from socialsync.db.models import (
    ACCOUNT_ACTIVE, ACCOUNT_EXPIRED, ACCOUNT_REVOKED, SHOP_FAILED, SHOP_SYNCED, SHOP_SYNCING, SocialAccount,
)
from socialsync.errors import (
    AlreadyInProgress, AuthenticationError, ConfigurationError, ConfigurationMissing, DataIntegrityError,
    DeadlineExceeded, NotFound, SocialSyncError, TokenRevoked, TransientPlatformError,
)
from socialsync.services import analytics_sync, catalog_sync, comment_sync
from socialsync.services.platform_client import PlatformClient
from socialsync.services.sync_guard import SyncGuard, account_key, catalog_key
from socialsync.services.sync_types import CatalogSyncResult, SyncResult

logger = structlog.get_logger(__name__)

RECENT_POST_DAYS = 30


class SyncOrchestrator:
    def __init__(
        self,
        session_factory: sessionmaker,
        client: PlatformClient,
        guard: Optional[SyncGuard] = None,
        max_workers: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.client = client
        self.guard = guard or SyncGuard()
        self.max_workers = max_workers or settings.sync_max_workers
        self.deadline_seconds = deadline_seconds if deadline_seconds is not None else settings.sync_deadline_seconds
        self.clock = clock

    # --- tokens and failure bookkeeping ---

    def _access_token(self, db: Session, account: SocialAccount) -> str:
        if account.status != ACCOUNT_ACTIVE:
            raise AuthenticationError(f"Account {account.id} is {account.status}; reconnect required")
        if crud_accounts.is_token_expiring(account):
            if account.refresh_token_encrypted:
                creds = crud_accounts.get_decrypted_credentials(
                    db, account.workspace_id, platforms.credential_key(account.platform))
                if not creds:
                    raise ConfigurationMissing(account.platform)
                refreshed = self.client.refresh_access_token(
                    account.platform, token_crypto.decrypt(account.refresh_token_encrypted), creds[0], creds[1])
                crud_accounts.update_tokens(db, account, refreshed.access_token, refreshed.refresh_token, refreshed.expires_in)
                logger.info("token_refreshed", account_id=account.id, platform=account.platform)
                return refreshed.access_token
            if account.token_expires_at <= crud_accounts.utcnow():
                raise AuthenticationError(f"Access token for account {account.id} has expired")
        return token_crypto.decrypt(account.access_token_encrypted)

    def _record_failure(self, db: Session, account: Optional[SocialAccount], exc: Exception, event: str) -> None:
        db.rollback()
        account_id = account.id if account is not None else None
        if isinstance(exc, AuthenticationError) and account is not None:
            status = account.status
            # an expired or revoked account keeps the state that disabled it
            if status == ACCOUNT_ACTIVE:
                status = ACCOUNT_REVOKED if isinstance(exc, TokenRevoked) else ACCOUNT_EXPIRED
                crud_accounts.set_account_status(db, account.id, status, str(exc))
            logger.warning(event, account_id=account_id, kind=exc.kind, status=status)
        elif isinstance(exc, TransientPlatformError):
            logger.warning(event, account_id=account_id, kind=exc.kind, retry_after=exc.retry_after)
        elif isinstance(exc, DataIntegrityError):
            logger.error(event, account_id=account_id, kind=exc.kind)
        elif isinstance(exc, SocialSyncError):
            logger.warning(event, account_id=account_id, kind=exc.kind, error=str(exc))
        else:
            logger.exception(event, account_id=account_id)
        if account is not None and not isinstance(exc, AuthenticationError):
            acc = crud_accounts.get_account(db, account.id)
            if acc:
                crud_accounts.mark_synced(db, acc, error=str(exc))

    # --- analytics ---

    def sync_account_analytics(self, account_id: int) -> SyncResult:
        result = SyncResult(account_id=account_id)
        try:
            with self.guard.hold(account_key(account_id)):
                self._sync_account_analytics(account_id, result)
        except AlreadyInProgress as exc:
            logger.info("sync_skipped_in_progress", account_id=account_id)
            result.add_error(exc)
        return result

    def _sync_account_analytics(self, account_id: int, result: SyncResult) -> None:
        db = self.session_factory()
        account = None
        try:
            account = crud_accounts.get_account(db, account_id)
            if not account:
                result.add_error(NotFound(f"Account {account_id} not found"))
                return
            token = self._access_token(db, account)
            metrics = self.client.fetch_account_metrics(account.platform, token, account.external_account_id)
            result.records_upserted = analytics_sync.store_metrics(db, account, metrics, crud_accounts.utcnow().date())
            crud_accounts.mark_synced(db, account)
            logger.info("analytics_synced", account_id=account_id, records=result.records_upserted)
        except Exception as exc:
            self._record_failure(db, account, exc, "analytics_sync_failed")
            result.add_error(exc)
        finally:
            db.close()

    def sync_workspace_analytics(self, workspace_id: str) -> Dict[int, SyncResult]:
        db = self.session_factory()
        try:
            account_ids = [a.id for a in crud_accounts.list_accounts(db, workspace_id, active_only=True)]
        finally:
            db.close()
        if not account_ids:
            return {}

        results: Dict[int, SyncResult] = {}
        results_lock = threading.Lock()
        closed = False

        def _collect(aid: int, fut) -> None:
            if fut.cancelled():
                # never started; reported below as past the deadline
                return
            try:
                res = fut.result()
            except Exception as exc:
                # sync_account_analytics reports its own failures; this is a bug guard
                logger.exception("analytics_worker_crashed", account_id=aid)
                res = SyncResult(account_id=aid)
                res.add_error(exc)
            with results_lock:
                if not closed:
                    results[aid] = res

        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(account_ids)),
                                      thread_name_prefix="analytics-sync")
        futures = []
        for aid in account_ids:
            fut = executor.submit(self.sync_account_analytics, aid)
            fut.add_done_callback(lambda f, aid=aid: _collect(aid, f))
            futures.append(fut)
        wait(futures, timeout=self.deadline_seconds)
        executor.shutdown(wait=False, cancel_futures=True)

        with results_lock:
            for aid in account_ids:
                if aid not in results:
                    res = SyncResult(account_id=aid, partial=True)
                    res.add_error(DeadlineExceeded(f"Account {aid} did not finish within {self.deadline_seconds}s"))
                    results[aid] = res
            closed = True
            snapshot = dict(results)
        failed = sum(1 for r in snapshot.values() if r.errors)
        logger.info("workspace_analytics_synced", workspace_id=workspace_id, accounts=len(snapshot), failed=failed)
        return snapshot

    def sync_recent_posts_analytics(self, workspace_id: str, days: int = RECENT_POST_DAYS) -> Dict[int, SyncResult]:
        """Per-post metrics for posts published in the last ``days`` days, keyed by post_platform id."""
        db = self.session_factory()
        try:
            since = crud_accounts.utcnow() - timedelta(days=days)
            by_account: Dict[int, List[int]] = {}
            for post in crud.list_recent_published_posts(db, workspace_id, since):
                by_account.setdefault(post.social_account_id, []).append(post.id)
        finally:
            db.close()

        results: Dict[int, SyncResult] = {}
        for account_id, post_ids in by_account.items():
            try:
                with self.guard.hold(account_key(account_id)):
                    self._sync_posts_analytics(account_id, post_ids, results)
            except AlreadyInProgress as exc:
                logger.info("sync_skipped_in_progress", account_id=account_id)
                for pid in post_ids:
                    results[pid] = SyncResult(account_id=account_id)
                    results[pid].add_error(exc)
        failed = sum(1 for r in results.values() if r.errors)
        logger.info("post_analytics_synced", workspace_id=workspace_id, posts=len(results), failed=failed)
        return results

    def _sync_posts_analytics(self, account_id: int, post_ids: List[int], results: Dict[int, SyncResult]) -> None:
        deadline = self.clock() + self.deadline_seconds
        db = self.session_factory()
        account = None
        pending = list(post_ids)
        try:
            account = crud_accounts.get_account(db, account_id)
            if not account:
                raise NotFound(f"Account {account_id} not found")
            token = self._access_token(db, account)
            while pending:
                pid = pending[0]
                result = results[pid] = SyncResult(account_id=account_id)
                if self.clock() > deadline:
                    result.partial = True
                    result.add_error(DeadlineExceeded(f"Post {pid} was not reached before the deadline"))
                    pending.pop(0)
                    continue
                post = crud.get_post_platform(db, pid)
                if post is None:
                    result.add_error(NotFound(f"Post {pid} was removed during the sync"))
                    pending.pop(0)
                    continue
                try:
                    metrics = self.client.fetch_post_metrics(account.platform, token, post.platform_post_id)
                    crud.upsert_post_analytics(db, post, metrics.model_dump())
                    db.commit()
                    result.records_upserted = 1
                except (AuthenticationError, ConfigurationError):
                    raise
                except Exception as exc:
                    db.rollback()
                    result.add_error(exc, item_id=post.platform_post_id)
                    logger.warning("post_analytics_failed", post_platform_id=pid, error=str(exc))
                pending.pop(0)
        except Exception as exc:
            self._record_failure(db, account, exc, "post_analytics_sync_failed")
            for pid in pending:
                results[pid] = SyncResult(account_id=account_id)
                results[pid].add_error(exc)
        finally:
            db.close()

    # --- comments ---

    def sync_post_comments(self, post_platform_id: int) -> SyncResult:
        result = SyncResult()
        db = self.session_factory()
        try:
            post = crud.get_post_platform(db, post_platform_id)
            if not post or not post.platform_post_id:
                result.add_error(NotFound(f"Post {post_platform_id} not found or not published"))
                return result
            result.account_id = post.social_account_id
        finally:
            db.close()
        try:
            with self.guard.hold(account_key(result.account_id)):
                self._sync_post_comments(post_platform_id, result)
        except AlreadyInProgress as exc:
            logger.info("sync_skipped_in_progress", account_id=result.account_id)
            result.add_error(exc)
        return result

    def _sync_post_comments(self, post_platform_id: int, result: SyncResult) -> None:
        deadline = self.clock() + self.deadline_seconds
        db = self.session_factory()
        account = None
        try:
            post = crud.get_post_platform(db, post_platform_id)
            account = crud_accounts.get_account(db, post.social_account_id)
            token = self._access_token(db, account)

            cur = crud.get_cursor(db, post.id)
            position = (cur.last_comment_at, cur.last_comment_id or "") if cur and cur.last_comment_at else None
            page_token = None
            while True:
                if self.clock() > deadline:
                    result.partial = True
                    result.add_error(DeadlineExceeded(f"Comment sync for post {post.id} stopped at the deadline"))
                    break
                page = self.client.fetch_comments(
                    account.platform, token, post.platform_post_id,
                    since=position[0] if position else None, page_token=page_token,
                )
                fresh = comment_sync.newer_than(page.comments, position)
                newest = comment_sync.store_comment_page(db, account, post, fresh)
                result.records_upserted += len(fresh)
                if newest:
                    # the page is committed; only now may the cursor move
                    crud.advance_cursor(db, post.id, newest[0], newest[1])
                    position = newest
                page_token = page.next_page_token
                if not page_token:
                    break
            crud_accounts.mark_synced(db, account)
            logger.info("comments_synced", post_platform_id=post_platform_id, records=result.records_upserted,
                        partial=result.partial)
        except Exception as exc:
            self._record_failure(db, account, exc, "comment_sync_failed")
            result.add_error(exc)
        finally:
            db.close()

    # --- catalog ---

    def sync_catalog_to_platform(self, workspace_id: str, platform: str) -> CatalogSyncResult:
        result = CatalogSyncResult(workspace_id=workspace_id, platform=platform)
        try:
            with self.guard.hold(catalog_key(workspace_id, platform)):
                self._sync_catalog(workspace_id, platform, result)
        except AlreadyInProgress as exc:
            logger.info("catalog_sync_skipped_in_progress", workspace_id=workspace_id, platform=platform)
            result.add_error(exc)
        return result

    def _sync_catalog(self, workspace_id: str, platform: str, result: CatalogSyncResult) -> None:
        deadline = self.clock() + self.deadline_seconds
        db = self.session_factory()
        account = None
        shop = None
        busy = False
        try:
            shop = crud.get_shop_connection(db, workspace_id, platform)
            if not shop or not shop.is_active:
                result.add_error(ConfigurationMissing(platform, f"No {platform} shop connection for this workspace"))
                return
            account = crud_accounts.get_account(db, shop.social_account_id) if shop.social_account_id else None
            if not account:
                raise AuthenticationError(f"No connected {platform} account for the shop")
            # lock order: catalog key (held by the caller), then the account
            with self.guard.hold(account_key(account.id)):
                crud.set_shop_status(db, shop, SHOP_SYNCING)
                self._push_catalog(db, shop, account, deadline, result)
        except AlreadyInProgress as exc:
            busy = True
            logger.info("catalog_sync_skipped_in_progress", workspace_id=workspace_id, platform=platform,
                        account_id=account.id if account is not None else None)
            result.add_error(exc)
        except Exception as exc:
            self._record_failure(db, account, exc, "catalog_sync_failed")
            result.add_error(exc)
        finally:
            if shop is not None and not busy:
                status = SHOP_SYNCED if not result.errors else SHOP_FAILED
                summary = "; ".join(e.message for e in result.errors[:5]) or None
                crud.set_shop_status(db, shop, status, summary, finished=True)
            logger.info("catalog_synced", workspace_id=workspace_id, platform=platform, created=result.created,
                        updated=result.updated, unchanged=result.unchanged, failed=result.failed)
            db.close()

    def _push_catalog(self, db: Session, shop, account: SocialAccount, deadline: float,
                      result: CatalogSyncResult) -> None:
        token = self._access_token(db, account)
        remote = {i.external_id: i for i in self.client.fetch_catalog(shop.platform, token, shop.catalog_id)}

        for product in crud.list_active_products(db, shop.workspace_id):
            if self.clock() > deadline:
                result.partial = True
                result.add_error(DeadlineExceeded("Catalog sync stopped at the deadline"))
                break
            try:
                outcome = catalog_sync.push_product(db, self.client, shop, token, product, remote)
            except AuthenticationError:
                raise
            except Exception as exc:
                db.rollback()
                result.failed += 1
                result.add_error(exc, item_id=product.external_id)
                logger.warning("catalog_item_failed", workspace_id=shop.workspace_id, platform=shop.platform,
                               product=product.external_id, error=str(exc))
                continue
            if outcome == catalog_sync.CREATED:
                result.created += 1
            elif outcome == catalog_sync.UPDATED:
                result.updated += 1
            else:
                result.unchanged += 1

    def sync_all_catalogs(self, workspace_id: str) -> Dict[str, CatalogSyncResult]:
        db = self.session_factory()
        try:
            shop_platforms = [s.platform for s in crud.list_shop_connections(db, workspace_id)]
        finally:
            db.close()
        return {p: self.sync_catalog_to_platform(workspace_id, p) for p in shop_platforms}
