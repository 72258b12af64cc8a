"""ViewModel orchestrating review sessions, statistics and deletion commits."""

from __future__ import annotations

from collections.abc import Callable, Iterable
import threading

from loguru import logger

from app.deletion_tasks import DeletionTaskRunner
from core.models import GroupCompletionState, GroupKey, GroupSummary
from core.services.interfaces import (
    DeletionOutcome,
    DeletionStatus,
    IItemStore,
    IStatePersistence,
)
from core.services.review_session import CompleteCallback, DecisionCallback, ReviewSession
from core.services.statistics_service import StatisticsCache

CommitCallback = Callable[[DeletionOutcome], None]


class LibraryVM:
    """Library-level view-model.

    Owns the shared statistics cache and hands it, together with the item
    store and persistence, to every review session it creates.
    """

    def __init__(
        self,
        item_store: IItemStore,
        persistence: IStatePersistence,
        statistics: StatisticsCache | None = None,
        deletion_runner: DeletionTaskRunner | None = None,
    ) -> None:
        """Create a LibraryVM.

        Args:
            item_store: Source collection and exclusion set.
            persistence: Durable review state.
            statistics: Shared statistics cache (created when omitted).
            deletion_runner: Background runner for physical deletes; when
                omitted deletes run synchronously on the caller's thread.
        """
        self._store = item_store
        self._persistence = persistence
        self._statistics = statistics or StatisticsCache(item_store, persistence)
        self._runner = deletion_runner
        self._sessions: dict[GroupKey, ReviewSession] = {}
        self._lock = threading.RLock()

    @property
    def statistics(self) -> StatisticsCache:
        return self._statistics

    def load(self) -> list[GroupSummary]:
        """Rescan the library, drop cached state and rebuild all statistics."""
        self._store.reload()
        self._persistence.invalidate()
        summaries = self._statistics.rebuild_all()
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            session.load()
        logger.info("Library loaded: {} groups, {} items", len(summaries), self.total_item_count)
        return summaries

    def resume(self) -> list[GroupSummary]:
        """Reconcile after persisted state may have changed out of band."""
        self._persistence.invalidate()
        summaries = self._statistics.rebuild_all()
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            session.refresh()
        return summaries

    @property
    def summaries(self) -> list[GroupSummary]:
        return self._statistics.summaries()

    @property
    def total_item_count(self) -> int:
        return self._statistics.total_item_count()

    def completion_state(self, key: GroupKey) -> GroupCompletionState | None:
        return self._persistence.get_group_completion(key)

    def pending_deletion_ids(self) -> set[str]:
        return self._persistence.pending_deletion_ids()

    # -- sessions

    def open_session(
        self,
        key: GroupKey,
        on_decision: DecisionCallback | None = None,
        on_complete: CompleteCallback | None = None,
    ) -> ReviewSession:
        """Return the live session for `key`, creating it on first access."""
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                session = ReviewSession(
                    key,
                    self._store,
                    self._persistence,
                    self._statistics,
                    on_decision=on_decision,
                    on_complete=on_complete,
                )
                self._sessions[key] = session
            else:
                if on_decision is not None:
                    session.on_decision = on_decision
                if on_complete is not None:
                    session.on_complete = on_complete
            return session

    def get_session(self, key: GroupKey) -> ReviewSession | None:
        with self._lock:
            return self._sessions.get(key)

    def release_session(self, key: GroupKey) -> None:
        with self._lock:
            self._sessions.pop(key, None)

    def reset_group(self, key: GroupKey) -> None:
        """Forget every decision made in `key` and start its review over."""
        ids = [it.id for it in self._store.fetch_group(key)]
        self._persistence.remove_review_states(ids)
        self._persistence.remove_pending_deletions(ids)
        self._persistence.clear_review_progress(key)
        self._persistence.clear_group_completion(key)
        session = self.get_session(key)
        if session is not None:
            session.load()
        self._statistics.invalidate(key)
        logger.info("Group {} reset ({} items)", key, len(ids))

    # -- deletion commit

    def commit_deletion(
        self, key: GroupKey, ids: Iterable[str], completion: CommitCallback | None = None
    ) -> None:
        """Physically delete staged `ids` of group `key`.

        The ids are hidden from group views while the delete is in flight.
        Bookkeeping happens in `handle_deletion_outcome` once the store
        reports back; items are matched by id, not position.
        """
        ids = list(dict.fromkeys(ids))
        if not ids:
            if completion is not None:
                completion(DeletionOutcome.confirmed([]))
            return
        self._store.apply_exclusion(ids)

        def _done(done_ids: list[str], outcome: DeletionOutcome) -> None:
            self.handle_deletion_outcome(key, done_ids, outcome)
            if completion is not None:
                completion(outcome)

        logger.info("Committing deletion of {} items in {}", len(ids), key)
        if self._runner is None:
            try:
                outcome = self._store.physical_delete(ids)
            except Exception as ex:  # pylint: disable=broad-exception-caught
                logger.error("Physical delete failed: {}", ex)
                outcome = DeletionOutcome.failed(str(ex))
            _done(ids, outcome)
        else:
            self._runner.submit(ids, _done)

    def handle_deletion_outcome(
        self, key: GroupKey, ids: list[str], outcome: DeletionOutcome
    ) -> list[str]:
        """Apply post-commit bookkeeping; returns the ids that are gone.

        Cancelled requests change nothing. Failed requests only process the
        ids the store reports as actually deleted.
        """
        requested = set(ids)
        if outcome.status is DeletionStatus.CANCELLED:
            deleted: list[str] = []
        elif outcome.status is DeletionStatus.CONFIRMED and not outcome.deleted_ids:
            deleted = list(ids)
        else:
            deleted = [i for i in outcome.deleted_ids if i in requested]
        gone = set(deleted)
        survivors = [i for i in ids if i not in gone]
        if survivors:
            self._store.remove_exclusion(survivors)

        if outcome.status is DeletionStatus.FAILED:
            logger.error("Physical delete failed for {}: {}", key, outcome.reason)
        elif outcome.status is DeletionStatus.CANCELLED:
            logger.info("Physical delete cancelled for {}", key)

        session = self.get_session(key)
        if deleted:
            self._store.purge(deleted)
            if session is not None:
                session.remove_deleted_assets(deleted)
            else:
                self._persistence.remove_review_states(deleted)
                self._persistence.remove_pending_deletions(deleted)
            logger.info("Physical delete removed {} items from {}", len(deleted), key)

        # Recounts taken while other deletes were in flight missed their hidden ids.
        if session is not None:
            session.publish_statistics()
        else:
            self._statistics.invalidate(key)
        return deleted
