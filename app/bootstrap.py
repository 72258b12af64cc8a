from __future__ import annotations

from pathlib import Path

from loguru import logger

from app.deletion_tasks import DeletionTaskRunner
from app.viewmodels.library_vm import LibraryVM
from infrastructure.delete_service import DeleteService
from infrastructure.folder_item_store import ConfirmDelete, FolderItemStore
from infrastructure.json_state_store import JsonStateStore
from infrastructure.logging import get_state_directory, init_logging
from infrastructure.settings import JsonSettings

BASE_DIR = Path(__file__).resolve().parent.parent


def build_library(
    settings_path: str | Path | None = None,
    confirm_delete: ConfirmDelete | None = None,
    background_deletes: bool = True,
) -> LibraryVM:
    """Wire logging, settings, stores and statistics into a `LibraryVM`."""
    settings = JsonSettings(settings_path or BASE_DIR / "settings.json")

    log_dir = settings.get_path("logging.dir")
    init_logging(str(log_dir) if log_dir else None, level=settings.get("logging.level", "INFO"))

    delete_log_dir = settings.get_path("delete.log_dir")
    deleter = DeleteService(str(delete_log_dir) if delete_log_dir else None)
    store = FolderItemStore(
        settings.get_path("library.root") or Path.cwd(),
        settings.get("library.extensions", []),
        delete_service=deleter,
        confirm_delete=confirm_delete,
    )
    state_dir = settings.get_path("state.dir") or Path(get_state_directory())
    persistence = JsonStateStore(state_dir)

    runner = DeletionTaskRunner(store) if background_deletes else None
    vm = LibraryVM(store, persistence, deletion_runner=runner)
    logger.info("Library wired from {} (state: {})", settings.path, state_dir)
    return vm
