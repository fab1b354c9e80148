# socialsync/services/undo_ledger.py
"""Time-boxed reversible actions for destructive UI operations.

Each action leaves ``pending`` exactly once, through a compare-and-set on its
state held under the ledger lock: to ``undone`` when the user clicks undo, to
``expired`` when its grace window runs out (the deferred execute fires then),
or it disappears via ``clear``. A click racing the timer has one winner.
"""
import threading
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from socialsync.config import settings
from socialsync.errors import NotFound

logger = structlog.get_logger(__name__)

PENDING = "pending"
EXECUTED = "executed"
UNDONE = "undone"
EXPIRED = "expired"

DEFERRED = "deferred"    # execute when the grace window closes without an undo
IMMEDIATE = "immediate"  # execute at push time; undo compensates

Operation = Callable[[], Any]

CLEANUP_INTERVAL_SECONDS = 60


class UndoableAction:
    def __init__(self, id: str, type: str, description: str, undo: Operation,
                 execute: Optional[Operation], mode: str, created_at: float, ttl_ms: int,
                 workspace_id: Optional[str] = None):
        self.id = id
        self.type = type
        self.description = description
        self.undo = undo
        self.execute = execute
        self.mode = mode
        self.state = PENDING
        self.created_at = created_at
        self.ttl_ms = ttl_ms
        self.workspace_id = workspace_id
        self.resolved_at: Optional[float] = None

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl_ms / 1000.0

    def to_dict(self, now: float) -> Dict[str, Any]:
        remaining = max(0, int((self.expires_at - now) * 1000)) if self.state == PENDING else 0
        return {
            "id": self.id,
            "type": self.type,
            "description": self.description,
            "state": self.state,
            "mode": self.mode,
            "ttl_ms": self.ttl_ms,
            "workspace_id": self.workspace_id,
            "remaining_ms": remaining,
        }


class ActionRegistry:
    """Maps an action type to its handlers so actions can be described by (type, params)."""

    def __init__(self):
        self._handlers: Dict[str, Dict[str, Any]] = {}

    def register(self, action_type: str, undo: Callable[[Dict[str, Any]], Any],
                 execute: Optional[Callable[[Dict[str, Any]], Any]] = None, mode: str = DEFERRED) -> None:
        if mode not in (DEFERRED, IMMEDIATE):
            raise ValueError(f"unknown execution mode: {mode}")
        self._handlers[action_type] = {"undo": undo, "execute": execute, "mode": mode}

    def get(self, action_type: str) -> Dict[str, Any]:
        try:
            return self._handlers[action_type]
        except KeyError:
            raise NotFound(f"No handler registered for action type {action_type}")

    def types(self) -> List[str]:
        return sorted(self._handlers)


class UndoLedger:
    def __init__(self, ttl_ms: Optional[int] = None, scheduler: Optional[BackgroundScheduler] = None,
                 clock: Callable[[], float] = time.monotonic, registry: Optional[ActionRegistry] = None,
                 retention_ms: Optional[int] = None):
        self.ttl_ms = ttl_ms if ttl_ms is not None else settings.undo_ttl_ms
        # resolved actions stay visible this long, then cleanup drops them
        self.retention_ms = retention_ms if retention_ms is not None else settings.undo_retention_ms
        self.scheduler = scheduler
        self.clock = clock
        self.registry = registry or ActionRegistry()
        self._lock = threading.Lock()
        self._actions: Dict[str, UndoableAction] = {}

    # --- state transitions ---

    def _transition(self, action_id: str, to_state: str) -> Optional[UndoableAction]:
        with self._lock:
            action = self._actions.get(action_id)
            if action is None or action.state != PENDING:
                return None
            action.state = to_state
            action.resolved_at = self.clock()
            return action

    def _unschedule(self, action_id: str) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.remove_job(f"undo:{action_id}")
        except JobLookupError:
            pass

    # --- public API ---

    def push(self, type: str, description: str, undo: Operation, execute: Optional[Operation] = None,
             mode: str = DEFERRED, ttl_ms: Optional[int] = None, workspace_id: Optional[str] = None) -> str:
        ttl = ttl_ms if ttl_ms is not None else self.ttl_ms
        self.cleanup()
        action = UndoableAction(
            id=f"undo-{uuid.uuid4().hex[:12]}",
            type=type,
            description=description,
            undo=undo,
            execute=execute,
            mode=mode,
            created_at=self.clock(),
            ttl_ms=ttl,
            workspace_id=workspace_id,
        )
        if execute is not None and mode == IMMEDIATE:
            # runs before registration: a failed optimistic execute leaves nothing to undo
            execute()
        with self._lock:
            self._actions[action.id] = action
        if self.scheduler is not None:
            self.scheduler.add_job(
                self._expire,
                "date",
                run_date=datetime.now(timezone.utc) + timedelta(milliseconds=ttl),
                args=[action.id],
                id=f"undo:{action.id}",
                misfire_grace_time=None,
            )
        logger.info("undo_action_pushed", action_id=action.id, type=type, mode=mode, ttl_ms=ttl)
        return action.id

    def push_descriptor(self, action_type: str, params: Dict[str, Any], description: str,
                        ttl_ms: Optional[int] = None, workspace_id: Optional[str] = None) -> str:
        handlers = self.registry.get(action_type)
        undo_handler = handlers["undo"]
        execute_handler = handlers["execute"]
        return self.push(
            type=action_type,
            description=description,
            undo=lambda: undo_handler(params),
            execute=(lambda: execute_handler(params)) if execute_handler else None,
            mode=handlers["mode"],
            ttl_ms=ttl_ms,
            workspace_id=workspace_id,
        )

    def undo(self, action_id: str) -> bool:
        """True only for the caller that moved the action out of pending.

        The transition is final; an exception from the undo operation itself
        propagates to that caller.
        """
        current = self.get(action_id)
        if current is not None and current.state == PENDING and current.expires_at <= self.clock():
            # the window closed before the timer got to it
            self._expire(action_id)
            return False
        action = self._transition(action_id, UNDONE)
        if action is None:
            return False
        self._unschedule(action_id)
        logger.info("undo_action_undone", action_id=action_id, type=action.type)
        action.undo()
        return True

    def _expire(self, action_id: str) -> bool:
        action = self._transition(action_id, EXPIRED)
        if action is None:
            return False
        if action.execute is not None and action.mode == DEFERRED:
            try:
                action.execute()
            except Exception:
                # the grace window is over either way; nothing is retried here
                logger.exception("undo_action_execute_failed", action_id=action_id, type=action.type)
                return True
            with self._lock:
                action.state = EXECUTED
        logger.info("undo_action_expired", action_id=action_id, type=action.type, state=action.state)
        return True

    def expire_due(self) -> int:
        """Expire every pending action whose window has closed, then prune old resolved ones.

        Returns how many were expired.
        """
        now = self.clock()
        with self._lock:
            due = [a.id for a in self._actions.values() if a.state == PENDING and a.expires_at <= now]
        expired = sum(1 for action_id in due if self._expire(action_id))
        self.cleanup()
        return expired

    def clear(self, action_id: str) -> None:
        with self._lock:
            self._actions.pop(action_id, None)
        self._unschedule(action_id)

    def get(self, action_id: str) -> Optional[UndoableAction]:
        with self._lock:
            return self._actions.get(action_id)

    def can_undo(self, action_id: str) -> bool:
        action = self.get(action_id)
        return bool(action and action.state == PENDING and action.expires_at > self.clock())

    def remaining_ms(self, action_id: str) -> int:
        action = self.get(action_id)
        if not action or action.state != PENDING:
            return 0
        return max(0, int((action.expires_at - self.clock()) * 1000))

    def most_recent(self, workspace_id: Optional[str] = None) -> Optional[UndoableAction]:
        with self._lock:
            pending = [a for a in self._actions.values()
                       if a.state == PENDING and (workspace_id is None or a.workspace_id == workspace_id)]
        return max(pending, key=lambda a: a.created_at) if pending else None

    def cleanup(self, max_age_ms: Optional[int] = None) -> int:
        """Drop actions resolved at least ``max_age_ms`` ago (default: the retention window)."""
        age = (self.retention_ms if max_age_ms is None else max_age_ms) / 1000.0
        now = self.clock()
        with self._lock:
            done = [k for k, a in self._actions.items()
                    if a.state != PENDING and a.resolved_at is not None and now - a.resolved_at >= age]
            for k in done:
                del self._actions[k]
        if done:
            logger.debug("undo_actions_pruned", count=len(done))
        return len(done)

    def __len__(self) -> int:
        with self._lock:
            return len(self._actions)

    def shutdown(self) -> None:
        with self._lock:
            ids = list(self._actions)
            self._actions.clear()
        for action_id in ids:
            self._unschedule(action_id)


# Process-wide ledger with an explicit lifecycle (see main.py startup/shutdown)
_ledger: Optional[UndoLedger] = None
_scheduler: Optional[BackgroundScheduler] = None


def init_ledger(registry: Optional[ActionRegistry] = None) -> UndoLedger:
    global _ledger, _scheduler
    if _ledger is not None:
        return _ledger
    _scheduler = BackgroundScheduler(timezone="UTC")
    _scheduler.start()
    _ledger = UndoLedger(scheduler=_scheduler, registry=registry)
    # sweeps actions whose timer was lost and prunes resolved ones
    _scheduler.add_job(_ledger.expire_due, "interval", seconds=CLEANUP_INTERVAL_SECONDS,
                       id="undo-ledger-cleanup", max_instances=1, coalesce=True)
    return _ledger


def get_ledger() -> UndoLedger:
    if _ledger is None:
        raise RuntimeError("Undo ledger is not initialized; call init_ledger() at startup")
    return _ledger


def shutdown_ledger() -> None:
    global _ledger, _scheduler
    if _ledger is not None:
        _ledger.shutdown()
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
    _ledger = None
    _scheduler = None
