"""Per-group review session: deck, decision history, kept and staged sets.

A session is rebuilt from the item store plus persisted review state every
time it is created; it is never serialized itself. Every mutation writes the
affected review state through the persistence collaborator and refreshes the
group's entry in the shared statistics cache.

`staged` is the ground truth for staged deletions and `staged_index` is a
derived id -> position accelerator. The index is rebuilt in full after every
removal from `staged`.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable
import threading

from loguru import logger

from core.models import (
    Decision,
    DeleteDecision,
    GroupKey,
    GroupSummary,
    KeepDecision,
    MediaItem,
    ReviewStatus,
)
from core.services.interfaces import IItemStore, IStatePersistence, InvariantViolation
from core.services.statistics_service import StatisticsCache, overlay_review_states

DecisionCallback = Callable[[Decision], None]
CompleteCallback = Callable[[], None]


def _unique(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


class ReviewSession:
    """Owns the review state of one group.

    Mutating methods are serialized with a re-entrant lock; read accessors
    return copies so that callers never observe a collection mid-mutation.
    """

    def __init__(
        self,
        key: GroupKey,
        item_store: IItemStore,
        persistence: IStatePersistence,
        statistics: StatisticsCache,
        on_decision: DecisionCallback | None = None,
        on_complete: CompleteCallback | None = None,
    ) -> None:
        """Create the session and load the group's items.

        Args:
            key: Group reviewed by this session.
            item_store: Source of the group's items and owner of the exclusion set.
            persistence: Durable review state.
            statistics: Shared statistics cache updated after each mutation.
            on_decision: Called after a decision is recorded.
            on_complete: Called once every item of the group is reviewed.
        """
        self.key = key
        self._store = item_store
        self._persistence = persistence
        self._statistics = statistics
        self.on_decision = on_decision
        self.on_complete = on_complete

        self._lock = threading.RLock()
        self._deck: deque[MediaItem] = deque()
        self._history: list[Decision] = []
        self._kept: dict[str, MediaItem] = {}
        self._staged: list[MediaItem] = []
        self._staged_index: dict[str, int] = {}
        self._skipped: dict[str, MediaItem] = {}
        self._total = 0

        self.load()

    # ------------------------------------------------------------------ reads

    @property
    def deck(self) -> list[MediaItem]:
        return list(self._deck)

    @property
    def history(self) -> list[Decision]:
        return list(self._history)

    @property
    def kept(self) -> list[MediaItem]:
        return list(self._kept.values())

    @property
    def staged(self) -> list[MediaItem]:
        return list(self._staged)

    @property
    def staged_index(self) -> dict[str, int]:
        return dict(self._staged_index)

    @property
    def total(self) -> int:
        return self._total

    @property
    def reviewed_count(self) -> int:
        return len(self._kept) + len(self._staged) + len(self._skipped)

    @property
    def remaining_count(self) -> int:
        return self._total - self.reviewed_count

    @property
    def total_progress(self) -> float:
        """Share of reviewed items; a group without items counts as done."""
        if self._total <= 0:
            return 1.0
        return self.reviewed_count / self._total

    @property
    def is_finished(self) -> bool:
        return self.remaining_count <= 0

    def summary(self) -> GroupSummary:
        return GroupSummary(
            key=self.key,
            total=self._total,
            kept=len(self._kept),
            staged_for_deletion=len(self._staged),
            skipped=len(self._skipped),
        )

    # ------------------------------------------------------------- lifecycle

    def load(self) -> None:
        """(Re)build the session from the item store and persisted state."""
        with self._lock:
            items = overlay_review_states(
                self._store.fetch_group(self.key), self._persistence.load_review_states()
            )
            self._partition(items)
            self._total = len(items)
            self._history.clear()
        logger.info(
            "Session {} loaded: {} total, {} in deck, {} kept, {} staged",
            self.key,
            self._total,
            len(self._deck),
            len(self._kept),
            len(self._staged),
        )

    def refresh(self) -> None:
        """Re-partition the session's own items against persisted state.

        Used after another surface wrote review state for this group. The item
        store is not consulted and the history is kept; stale decisions are
        skipped by `undo_last`.
        """
        with self._lock:
            by_id: dict[str, MediaItem] = {}
            # Decided but unpopped deck items are already in kept/staged.
            for item in [*self._kept.values(), *self._staged, *self._skipped.values(), *self._deck]:
                by_id.setdefault(item.id, item)
            items = overlay_review_states(by_id.values(), self._persistence.load_review_states())
            self._partition(items)
            self._total = len(items)
            self._publish_counts()

    def _partition(self, items: Iterable[MediaItem]) -> None:
        deck: deque[MediaItem] = deque()
        self._kept = {}
        self._staged = []
        self._skipped = {}
        for item in items:
            if item.is_kept:
                self._kept[item.id] = item
            elif item.is_staged_for_deletion:
                self._staged.append(item)
            elif item.status is ReviewStatus.SKIPPED:
                self._skipped[item.id] = item
            elif item.is_unreviewed:
                deck.append(item)
            else:
                logger.warning("Item {} has inconsistent flags; back to deck", item.id)
                deck.append(item.reset())
        self._deck = deck
        self._rebuild_staged_index()

    # ------------------------------------------------------------- mutations

    def apply_decision(self, decision: Decision) -> bool:
        """Record `decision` for its item. The deck is left untouched.

        Only the deck head can be decided. Returns False when the item was
        already decided or is not the head; nothing is recorded in that case.
        """
        item = decision.item
        with self._lock:
            if item.id in self._kept or item.id in self._staged_index:
                logger.warning("Item {} already reviewed in {}; ignored", item.id, self.key)
                return False
            if not self._deck or self._deck[0].id != item.id:
                logger.warning("Item {} is not the deck head of {}; ignored", item.id, self.key)
                return False

            self._history.append(decision)
            if isinstance(decision, KeepDecision):
                updated = item.with_status(ReviewStatus.KEPT)
                self._kept[item.id] = updated
                self._persistence.save_review_state(updated)
            else:
                updated = item.with_status(ReviewStatus.STAGED_FOR_DELETION)
                self._staged.append(updated)
                self._staged_index[item.id] = len(self._staged) - 1
                self._persistence.save_review_state(updated)
                self._persistence.add_pending_deletions([item.id])

            self._save_progress()
            self._publish_counts()
            completed = self.is_finished
            if completed:
                self._save_completion()

        self._notify(self.on_decision, decision)
        if completed:
            logger.info("Group {} fully reviewed", self.key)
            self._notify(self.on_complete)
        return True

    def pop_top_card(self) -> MediaItem | None:
        """Remove and return the deck head; None when the deck is empty."""
        with self._lock:
            if not self._deck:
                return None
            return self._deck.popleft()

    def undo_last(self) -> Decision | None:
        """Revert the most recent live decision and put its item back on top.

        Decisions whose item has since been restored or physically removed are
        discarded on the way. Returns the reverted decision, or None.
        """
        with self._lock:
            was_finished = self._total > 0 and self.is_finished
            while self._history:
                decision = self._history.pop()
                item_id = decision.item.id
                if isinstance(decision, KeepDecision):
                    if self._kept.pop(item_id, None) is None:
                        logger.debug("Dropping stale keep decision for {}", item_id)
                        continue
                else:
                    pos = self._staged_index.get(item_id)
                    if pos is None:
                        logger.debug("Dropping stale delete decision for {}", item_id)
                        continue
                    del self._staged[pos]
                    self._rebuild_staged_index()

                restored = decision.item.reset()
                # Decided but not yet popped.
                self._drop_from_deck({item_id})
                self._deck.appendleft(restored)
                self._persistence.save_review_state(restored)
                if isinstance(decision, DeleteDecision):
                    self._persistence.remove_pending_deletions([item_id])

                self._save_progress()
                if was_finished:
                    self._persistence.clear_group_completion(self.key)
                self._publish_counts()
                return decision
            return None

    def restore_assets(self, ids: Iterable[str]) -> list[MediaItem]:
        """Move staged items back to the top of the deck as unreviewed.

        Ids that are not staged are ignored. Restored items keep the relative
        order they had in `staged`. Returns the restored items.
        """
        ids = _unique(ids)
        with self._lock:
            self._store.remove_exclusion(ids)
            was_finished = self._total > 0 and self.is_finished

            batch: list[tuple[int, MediaItem]] = []
            for item_id in ids:
                pos = self._staged_index.get(item_id)
                if pos is not None:
                    batch.append((pos, self._staged[pos].reset()))
            if not batch:
                return []

            batch.sort(key=lambda entry: entry[0])
            for pos, _ in reversed(batch):
                del self._staged[pos]
            self._rebuild_staged_index()

            restored = [item for _, item in batch]
            self._drop_from_deck({item.id for item in restored})
            for item in reversed(restored):
                self._deck.appendleft(item)

            restored_ids = [item.id for item in restored]
            self._persistence.remove_review_states(restored_ids)
            self._persistence.remove_pending_deletions(restored_ids)
            self._save_progress()
            if was_finished:
                self._persistence.clear_group_completion(self.key)
            self._publish_counts()

        logger.info("Restored {} of {} requested items in {}", len(restored), len(ids), self.key)
        return restored

    def remove_deleted_assets(self, ids: Iterable[str]) -> list[MediaItem]:
        """Drop physically deleted items from `staged`; the group shrinks.

        Ids that are not staged are ignored. Returns the removed items.
        """
        ids = _unique(ids)
        with self._lock:
            positions = [self._staged_index[i] for i in ids if i in self._staged_index]
            removed = [self._staged[pos] for pos in sorted(positions)]
            for pos in sorted(positions, reverse=True):
                del self._staged[pos]
            self._rebuild_staged_index()
            self._total -= len(removed)

            removed_ids = [item.id for item in removed]
            if removed_ids:
                self._persistence.remove_review_states(removed_ids)
                self._persistence.remove_pending_deletions(removed_ids)
            self._save_progress()
            self._statistics.invalidate(self.key)

        logger.info("Removed {} deleted items from {}", len(removed), self.key)
        return removed

    def check_invariants(self) -> None:
        """Raise `InvariantViolation` when internal structures diverged."""
        with self._lock:
            if len(self._staged_index) != len(self._staged):
                raise InvariantViolation(
                    f"staged index has {len(self._staged_index)} entries for {len(self._staged)} items"
                )
            for pos, item in enumerate(self._staged):
                if self._staged_index.get(item.id) != pos:
                    raise InvariantViolation(f"staged index out of sync for {item.id}")
                if item.status is not ReviewStatus.STAGED_FOR_DELETION or item.is_kept:
                    raise InvariantViolation(f"staged item {item.id} has status {item.status}")
            for item in self._kept.values():
                if item.status is not ReviewStatus.KEPT or item.is_staged_for_deletion:
                    raise InvariantViolation(f"kept item {item.id} has status {item.status}")

    def publish_statistics(self) -> None:
        """Push this session's counters into the shared statistics cache."""
        with self._lock:
            self._publish_counts()

    # --------------------------------------------------------------- helpers

    def _drop_from_deck(self, item_ids: set[str]) -> None:
        if any(it.id in item_ids for it in self._deck):
            self._deck = deque(it for it in self._deck if it.id not in item_ids)

    def _rebuild_staged_index(self) -> None:
        self._staged_index = {item.id: pos for pos, item in enumerate(self._staged)}

    def _save_progress(self) -> None:
        self._persistence.save_review_progress(self.key, len(self._kept) + len(self._staged))

    def _save_completion(self) -> None:
        self._persistence.save_group_completion(self.summary())
        self._persistence.clear_review_progress(self.key)

    def _publish_counts(self) -> None:
        self._statistics.update_from_session(
            self.key,
            total=self._total,
            kept=len(self._kept),
            staged=len(self._staged),
            skipped=len(self._skipped),
        )

    def _notify(self, callback: Callable[..., None] | None, *args: object) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("Session {} callback failed", self.key)
