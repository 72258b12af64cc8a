from __future__ import annotations

from PySide6.QtCore import QThreadPool

from conftest import APRIL, MARCH, ids
from app.deletion_tasks import DeletionTaskRunner
from app.viewmodels.library_vm import LibraryVM
from core.models import DeleteDecision, KeepDecision, ReviewStatus
from core.services.interfaces import DeletionOutcome, DeletionStatus
from infrastructure.json_state_store import JsonStateStore


def stage(session, count):
    for _ in range(count):
        top = session.deck[0]
        session.apply_decision(DeleteDecision(top))
        session.pop_top_card()


def test_load_builds_sorted_summaries(store, persistence):
    vm = LibraryVM(store, persistence)
    summaries = vm.load()
    assert [s.key for s in summaries] == [APRIL, MARCH]
    assert vm.total_item_count == 5


def test_sessions_are_lazy_and_cached(store, persistence):
    vm = LibraryVM(store, persistence)
    first = vm.open_session(MARCH)
    assert vm.open_session(MARCH) is first
    vm.release_session(MARCH)
    assert vm.get_session(MARCH) is None
    assert vm.open_session(MARCH) is not first


def test_confirmed_commit_removes_items_and_updates_statistics(store, persistence):
    vm = LibraryVM(store, persistence)
    vm.load()
    session = vm.open_session(MARCH)
    stage(session, 2)
    outcomes = []

    vm.commit_deletion(MARCH, ["A"], completion=outcomes.append)

    assert outcomes[0].status is DeletionStatus.CONFIRMED
    assert ids(session.staged) == ["B"]
    assert session.total == 2
    assert vm.pending_deletion_ids() == {"B"}
    assert store.excluded_ids() == set()
    assert [it.id for it in store.fetch_group(MARCH)] == ["B", "C"]
    march = vm.statistics.get(MARCH)
    assert (march.total, march.staged_for_deletion) == (2, 1)


def test_cancelled_commit_keeps_items_staged(store, persistence):
    vm = LibraryVM(store, persistence)
    session = vm.open_session(MARCH)
    stage(session, 2)
    store.next_outcome = DeletionOutcome.cancelled()

    vm.commit_deletion(MARCH, ["A", "B"])

    assert ids(session.staged) == ["A", "B"]
    assert session.staged_index == {"A": 0, "B": 1}
    assert vm.pending_deletion_ids() == {"A", "B"}
    assert store.excluded_ids() == set()


def test_failed_commit_only_processes_deleted_subset(store, persistence):
    vm = LibraryVM(store, persistence)
    session = vm.open_session(MARCH)
    stage(session, 2)
    store.next_outcome = DeletionOutcome.failed("disk on fire", deleted_ids=["B"])

    vm.commit_deletion(MARCH, ["A", "B"])

    assert ids(session.staged) == ["A"]
    assert vm.pending_deletion_ids() == {"A"}
    assert store.excluded_ids() == set()


def test_commit_without_open_session_cleans_persistence(store, persistence):
    vm = LibraryVM(store, persistence)
    session = vm.open_session(MARCH)
    stage(session, 1)
    vm.release_session(MARCH)

    vm.commit_deletion(MARCH, ["A"])

    assert vm.pending_deletion_ids() == set()
    assert "A" not in persistence.load_review_states()
    assert vm.statistics.get(MARCH).total == 2


def test_completion_arriving_after_more_mutations_matches_by_id(store, persistence):
    vm = LibraryVM(store, persistence)
    session = vm.open_session(MARCH)
    stage(session, 2)
    outcome = DeletionOutcome.confirmed(["B"])

    # The user restores A before the delete of B reports back.
    session.restore_assets(["A"])
    vm.handle_deletion_outcome(MARCH, ["B"], outcome)

    assert session.staged == []
    assert ids(session.deck) == ["A", "C"]
    assert session.total == 2


def test_background_commit_through_thread_pool(store, persistence):
    pool = QThreadPool()
    runner = DeletionTaskRunner(store, pool)
    vm = LibraryVM(store, persistence, deletion_runner=runner)
    session = vm.open_session(MARCH)
    stage(session, 3)
    outcomes = []

    vm.commit_deletion(MARCH, ["A", "C"], completion=outcomes.append)
    assert runner.wait_for_done(5000)

    assert [o.status for o in outcomes] == [DeletionStatus.CONFIRMED]
    assert ids(session.staged) == ["B"]
    assert store.delete_calls == [["A", "C"]]


def test_resume_reconciles_out_of_band_state(store, persistence, tmp_path):
    vm = LibraryVM(store, persistence)
    vm.load()
    session = vm.open_session(APRIL)
    session.apply_decision(KeepDecision(session.deck[0]))

    q = store.groups[APRIL][1]
    other_writer = JsonStateStore(tmp_path / "state")
    other_writer.save_review_state(q.with_status(ReviewStatus.STAGED_FOR_DELETION))
    vm.resume()

    april = vm.statistics.get(APRIL)
    assert (april.kept, april.staged_for_deletion) == (1, 1)
    assert ids(session.staged) == ["Q"]


def test_reset_group_starts_over(store, persistence):
    vm = LibraryVM(store, persistence)
    session = vm.open_session(MARCH)
    stage(session, 3)
    assert vm.completion_state(MARCH) is not None

    vm.reset_group(MARCH)

    assert ids(session.deck) == ["A", "B", "C"]
    assert vm.pending_deletion_ids() == set()
    assert vm.completion_state(MARCH) is None
    assert vm.statistics.get(MARCH).reviewed == 0


def test_overlapping_commits_keep_statistics_in_step(store, persistence):
    vm = LibraryVM(store, persistence)
    session = vm.open_session(MARCH)
    stage(session, 2)
    # B's delete is still running while A's commit completes.
    store.apply_exclusion(["B"])

    vm.commit_deletion(MARCH, ["A"])
    vm.handle_deletion_outcome(MARCH, ["B"], DeletionOutcome.cancelled())

    march = vm.statistics.get(MARCH)
    assert (march.total, march.staged_for_deletion) == (2, 1)
    assert (session.total, ids(session.staged)) == (2, ["B"])


def test_overlapping_commits_without_session_recount_after_cancel(store, persistence):
    vm = LibraryVM(store, persistence)
    stage(vm.open_session(MARCH), 2)
    vm.release_session(MARCH)
    store.apply_exclusion(["B"])

    vm.commit_deletion(MARCH, ["A"])
    assert vm.statistics.get(MARCH).total == 1
    vm.handle_deletion_outcome(MARCH, ["B"], DeletionOutcome.cancelled())

    march = vm.statistics.get(MARCH)
    assert (march.total, march.staged_for_deletion) == (2, 1)
