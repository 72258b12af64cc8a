from __future__ import annotations

from collections.abc import Callable

from PySide6.QtCore import QRunnable, QThreadPool
from loguru import logger

from core.services.interfaces import DeletionOutcome, IItemStore

OutcomeCallback = Callable[[list[str], DeletionOutcome], None]


class _DeletionTask(QRunnable):
    """QRunnable performing a blocking physical delete.

    Calls `on_done(ids, outcome)` on the worker thread once the store returns.
    An exception raised by the store is reported as a failed outcome.
    """

    def __init__(self, *, store: IItemStore, ids: list[str], on_done: OutcomeCallback) -> None:
        super().__init__()
        self._store = store
        self._ids = ids
        self._on_done = on_done

    def run(self) -> None:  # type: ignore[override]
        try:
            outcome = self._store.physical_delete(self._ids)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Physical delete task failed: {}", ex)
            outcome = DeletionOutcome.failed(str(ex))
        try:
            self._on_done(self._ids, outcome)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Deletion completion handler failed: {}", ex)


class DeletionTaskRunner:
    """Dispatches physical delete requests to a Qt thread pool."""

    def __init__(self, store: IItemStore, pool: QThreadPool | None = None) -> None:
        self._store = store
        self._pool = pool or QThreadPool.globalInstance()

    def submit(self, ids: list[str], on_done: OutcomeCallback) -> None:
        """Start deleting `ids` in the background."""
        task = _DeletionTask(store=self._store, ids=list(ids), on_done=on_done)
        self._pool.start(task)

    def wait_for_done(self, timeout_ms: int = -1) -> bool:
        """Block until every submitted task has finished."""
        return self._pool.waitForDone(timeout_ms)
