"""
Timeflow Process Tracking
Dependency Engine — single-predecessor graph over ProcessActivity.

Each activity has at most one predecessor (``depends_on_id``) inside the same
process, so the graph is a forest whose edges point toward the roots. A cycle
can only appear by attaching a node below one of its own descendants, which a
backward walk from the proposed predecessor detects.

Concurrency:
    Edge writes for one process are serialised by ``process_lock``: an
    in-process lock keyed by process id plus ``SELECT ... FOR UPDATE`` on the
    process row. After the edge is flushed the chain from the written node is
    walked again inside the same transaction before commit.

Completion hook:
    Functions registered with ``@on_activity_completed`` are called with
    ``(activity, successors)`` after a status change to ``completed`` has been
    committed. No listener ships by default; successors are never advanced
    automatically.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from timeflow.core.exceptions import (
    ConcurrencyConflictError,
    InvalidDependencyError,
    NotFoundError,
    ValidationError,
)
from timeflow.models import db
from timeflow.models.process import ACTIVITY_STATUSES, Process, ProcessActivity

logger = logging.getLogger(__name__)

DEFAULT_MAX_HOPS = 500
DEFAULT_LOCK_TIMEOUT = 10.0

COMPLETED = "completed"


# ── Completion listeners ────────────────────────────────────────────────────

_completion_listeners: list[Callable] = []


def on_activity_completed(fn: Callable) -> Callable:
    """Decorator to register a completion listener.

    Usage:
        @on_activity_completed
        def notify_successors(activity, successors):
            ...
    """
    _completion_listeners.append(fn)
    return fn


def remove_completion_listener(fn: Callable) -> None:
    if fn in _completion_listeners:
        _completion_listeners.remove(fn)


def get_completion_listeners() -> list[Callable]:
    """Return all registered completion listeners."""
    return list(_completion_listeners)


# ── Per-process lock ────────────────────────────────────────────────────────

# entries disappear once no caller holds a reference to the lock
_process_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
_registry_lock = threading.Lock()


def _lock_for(process_id: int) -> threading.Lock:
    with _registry_lock:
        lock = _process_locks.get(process_id)
        if lock is None:
            lock = _process_locks[process_id] = threading.Lock()
        return lock


@contextmanager
def process_lock(session, process_id: int, timeout: float = DEFAULT_LOCK_TIMEOUT):
    """Serialise dependency writes for one process.

    Yields the locked, non-deleted Process row. Raises NotFoundError if the
    process is missing and ConcurrencyConflictError if the lock cannot be
    taken within ``timeout`` seconds or the row lock fails.
    """
    lock = _lock_for(process_id)
    if not lock.acquire(timeout=timeout):
        logger.warning("Timed out waiting for process lock process_id=%s", process_id)
        raise ConcurrencyConflictError(
            f"Process {process_id} is being modified by another request"
        )
    try:
        try:
            process = session.execute(
                select(Process)
                .where(Process.id == process_id, Process.deleted_at.is_(None))
                .with_for_update()
            ).scalar_one_or_none()
        except OperationalError as exc:
            session.rollback()
            logger.warning("Row lock failed for process_id=%s: %s", process_id, exc.orig)
            raise ConcurrencyConflictError(
                f"Process {process_id} is locked by another transaction"
            ) from exc
        if process is None:
            raise NotFoundError("Process", process_id)
        yield process
    finally:
        lock.release()


# ── Results ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CanStartResult:
    can_start: bool
    reason: str
    depends_on: ProcessActivity | None = None

    def __bool__(self) -> bool:
        return self.can_start

    def to_dict(self) -> dict:
        return {
            "can_start": self.can_start,
            "reason": self.reason,
            "depends_on": (
                self.depends_on.to_dict(include_dependency=False)
                if self.depends_on is not None else None
            ),
        }


# ── Engine ──────────────────────────────────────────────────────────────────

class DependencyEngine:
    """Cycle checks, chain traversal and start eligibility for one session.

    Args:
        session: SQLAlchemy session used for every read and write.
        max_hops: Upper bound on any chain walk. A walk that reaches it is
            treated as a cycle by validation and truncated by traversal.
        lock_timeout: Seconds to wait for the per-process lock.
    """

    def __init__(self, session, max_hops: int = DEFAULT_MAX_HOPS,
                 lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self.session = session
        self.max_hops = max_hops
        self.lock_timeout = lock_timeout

    def lock(self, process_id: int):
        return process_lock(self.session, process_id, timeout=self.lock_timeout)

    # ── Lookups ──────────────────────────────────────────────────────────

    def _get_activity(self, activity_id: int | None) -> ProcessActivity | None:
        if activity_id is None:
            return None
        return self.session.execute(
            select(ProcessActivity).where(
                ProcessActivity.id == activity_id,
                ProcessActivity.deleted_at.is_(None),
            )
        ).scalar_one_or_none()

    def get_activity(self, activity_id: int) -> ProcessActivity:
        activity = self._get_activity(activity_id)
        if activity is None:
            raise NotFoundError("ProcessActivity", activity_id)
        return activity

    def _predecessor_of(self, activity_id: int) -> int | None:
        row = self.session.execute(
            select(ProcessActivity.depends_on_id).where(
                ProcessActivity.id == activity_id,
                ProcessActivity.deleted_at.is_(None),
            )
        ).first()
        return row[0] if row else None

    # ── Validation ───────────────────────────────────────────────────────

    def would_create_cycle(self, activity_id: int, depends_on_id: int) -> bool:
        """Return True if the edge activity → depends_on would close a cycle.

        Walks backward from ``depends_on_id``. Reaching ``activity_id``, a
        revisited node or the hop bound all count as a cycle.
        """
        visited: set[int] = set()
        current: int | None = depends_on_id
        while current is not None:
            if current == activity_id:
                return True
            if current in visited:
                logger.warning(
                    "Existing cycle found while walking from activity_id=%s at node=%s",
                    depends_on_id, current,
                )
                return True
            if len(visited) >= self.max_hops:
                logger.warning(
                    "Dependency walk from activity_id=%s exceeded %d hops",
                    depends_on_id, self.max_hops,
                )
                return True
            visited.add(current)
            current = self._predecessor_of(current)
        return False

    def validate_new_dependency(self, activity_id: int, depends_on_id: int, process_id: int) -> None:
        """Check that ``activity_id`` may depend on ``depends_on_id`` in ``process_id``.

        Checks run in order: self-dependency, both activities exist, both
        belong to the process, no cycle. Raises InvalidDependencyError with
        the matching reason; returns None on acceptance. Read-only.
        """
        if activity_id == depends_on_id:
            raise InvalidDependencyError(
                InvalidDependencyError.SELF_DEPENDENCY, activity_id, depends_on_id,
            )

        activity = self._get_activity(activity_id)
        depends_on = self._get_activity(depends_on_id)
        if activity is None or depends_on is None:
            raise InvalidDependencyError(
                InvalidDependencyError.NOT_FOUND, activity_id, depends_on_id,
            )

        if activity.process_id != process_id or depends_on.process_id != process_id:
            logger.info(
                "Rejected cross-process dependency %s → %s (process %s)",
                activity_id, depends_on_id, process_id,
            )
            raise InvalidDependencyError(
                InvalidDependencyError.CROSS_PROCESS, activity_id, depends_on_id,
            )

        if self.would_create_cycle(activity_id, depends_on_id):
            logger.info(
                "Rejected cyclic dependency %s → %s (process %s)",
                activity_id, depends_on_id, process_id,
            )
            raise InvalidDependencyError(
                InvalidDependencyError.CYCLE, activity_id, depends_on_id,
            )

    def is_valid_dependency(self, activity_id: int, depends_on_id: int, process_id: int) -> bool:
        try:
            self.validate_new_dependency(activity_id, depends_on_id, process_id)
        except InvalidDependencyError:
            return False
        return True

    def verify_acyclic_from(self, activity_id: int) -> None:
        """Post-write check: the chain above ``activity_id`` must terminate."""
        visited: set[int] = set()
        current: int | None = activity_id
        while current is not None:
            if current in visited or len(visited) >= self.max_hops:
                logger.error("Cycle detected after write at activity_id=%s", activity_id)
                raise InvalidDependencyError(
                    InvalidDependencyError.CYCLE, activity_id, self._predecessor_of(activity_id),
                )
            visited.add(current)
            current = self._predecessor_of(current)

    def set_dependency(self, activity: ProcessActivity, depends_on_id: int | None) -> ProcessActivity:
        """Validate and stage a new predecessor for ``activity``.

        The caller must hold ``process_lock`` for the activity's process and
        owns the commit. Clearing the dependency (``None``) is always allowed.
        """
        if depends_on_id == activity.depends_on_id:
            return activity
        if depends_on_id is not None:
            self.validate_new_dependency(activity.id, depends_on_id, activity.process_id)
        previous = activity.depends_on_id
        activity.depends_on_id = depends_on_id
        self.session.flush()
        self.verify_acyclic_from(activity.id)
        logger.info(
            "Dependency of activity_id=%s changed %s → %s",
            activity.id, previous, depends_on_id,
        )
        return activity

    # ── Queries ──────────────────────────────────────────────────────────

    def can_start(self, activity_id: int) -> CanStartResult:
        activity = self.get_activity(activity_id)
        if activity.depends_on_id is None:
            return CanStartResult(True, "No dependencies")

        depends_on = self._get_activity(activity.depends_on_id)
        if depends_on is None:
            return CanStartResult(False, "Dependency not found")
        if depends_on.status != COMPLETED:
            return CanStartResult(False, f"Dependency not completed: {depends_on.name}", depends_on)
        return CanStartResult(True, "All dependencies met", depends_on)

    def iter_predecessors(self, activity_id: int) -> Iterator[ProcessActivity]:
        """Yield predecessors nearest-first, stopping at a root or a dangling link.

        Bounded by ``max_hops``; a revisited node ends the walk with a warning.
        """
        activity = self.get_activity(activity_id)
        visited = {activity.id}
        current_id = activity.depends_on_id
        hops = 0
        while current_id is not None:
            if current_id in visited:
                logger.warning("Cycle in dependency chain of activity_id=%s at node=%s", activity_id, current_id)
                return
            if hops >= self.max_hops:
                logger.warning("Dependency chain of activity_id=%s truncated at %d hops", activity_id, self.max_hops)
                return
            node = self._get_activity(current_id)
            if node is None:
                return
            yield node
            visited.add(node.id)
            current_id = node.depends_on_id
            hops += 1

    def get_dependency_chain(self, activity_id: int) -> list[ProcessActivity]:
        """Return activities from the root predecessor down to ``activity_id``."""
        activity = self.get_activity(activity_id)
        chain = list(self.iter_predecessors(activity_id))
        chain.reverse()
        chain.append(activity)
        return chain

    def get_blocked_activities(self, activity_id: int) -> list[ProcessActivity]:
        """Direct successors of ``activity_id`` (not transitive)."""
        return list(
            self.session.execute(
                select(ProcessActivity)
                .where(
                    ProcessActivity.depends_on_id == activity_id,
                    ProcessActivity.deleted_at.is_(None),
                )
                .order_by(ProcessActivity.order_number, ProcessActivity.id)
            ).scalars()
        )

    # ── Status ───────────────────────────────────────────────────────────

    def apply_status(self, activity: ProcessActivity, new_status: str) -> list[ProcessActivity]:
        """Stage a status change; return direct successors when completing.

        Does not commit. Use ``update_activity_status`` unless the change is
        part of a larger transaction.
        """
        if new_status not in ACTIVITY_STATUSES:
            raise ValidationError(
                f"Invalid activity status: {new_status}",
                details={"status": f"must be one of {sorted(ACTIVITY_STATUSES)}"},
            )
        previous = activity.status
        activity.status = new_status
        if previous != new_status:
            logger.info(
                "Activity %s status %s → %s", activity.id, previous, new_status,
            )
        if new_status == COMPLETED:
            return self.get_blocked_activities(activity.id)
        return []

    def update_activity_status(self, activity_id: int, new_status: str):
        """Persist a status change and fire completion listeners.

        Returns ``(activity, successors)``; ``successors`` is empty unless the
        new status is ``completed``. Listeners fire only on a transition into
        ``completed``.
        """
        activity = self.get_activity(activity_id)
        previous = activity.status
        successors = self.apply_status(activity, new_status)
        self.commit()
        if new_status == COMPLETED and previous != COMPLETED:
            self.notify_completed(activity, successors)
        return activity, successors

    def notify_completed(self, activity: ProcessActivity, successors: list[ProcessActivity]) -> None:
        for listener in get_completion_listeners():
            try:
                listener(activity, successors)
            except Exception:
                logger.exception(
                    "Completion listener %s failed for activity_id=%s",
                    getattr(listener, "__name__", listener), activity.id,
                )

    def commit(self) -> None:
        try:
            self.session.commit()
        except OperationalError as exc:
            self.session.rollback()
            logger.warning("Commit failed with operational error: %s", exc.orig)
            raise ConcurrencyConflictError() from exc


# ── Request-scoped helpers ──────────────────────────────────────────────────

def get_engine() -> DependencyEngine:
    """Engine bound to ``db.session`` and the app's configured bounds."""
    cfg = current_app.config
    return DependencyEngine(
        db.session,
        max_hops=cfg.get("DEPENDENCY_CHAIN_MAX_HOPS", DEFAULT_MAX_HOPS),
        lock_timeout=cfg.get("PROCESS_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT),
    )


def validate_new_dependency(activity_id: int, depends_on_id: int, process_id: int) -> None:
    get_engine().validate_new_dependency(activity_id, depends_on_id, process_id)


def can_start(activity_id: int) -> CanStartResult:
    return get_engine().can_start(activity_id)


def get_dependency_chain(activity_id: int) -> list[ProcessActivity]:
    return get_engine().get_dependency_chain(activity_id)


def get_blocked_activities(activity_id: int) -> list[ProcessActivity]:
    return get_engine().get_blocked_activities(activity_id)


def update_activity_status(activity_id: int, new_status: str):
    return get_engine().update_activity_status(activity_id, new_status)
