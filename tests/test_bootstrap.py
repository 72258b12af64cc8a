from __future__ import annotations

import json

from loguru import logger
import pytest

from app.bootstrap import build_library
from app.viewmodels.library_vm import LibraryVM
from infrastructure.logging import find_latest_log_file, init_logging
from infrastructure.settings import JsonSettings


@pytest.fixture(autouse=True)
def detach_log_sinks():
    yield
    logger.remove()


@pytest.fixture
def settings_file(tmp_path):
    (tmp_path / "photos").mkdir()
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "library": {"root": "photos"},
                "state": {"dir": "state"},
                "logging": {"dir": "logs", "level": "DEBUG"},
            }
        ),
        encoding="utf-8",
    )
    return path


def test_settings_fall_back_to_defaults(settings_file):
    settings = JsonSettings(settings_file)
    assert settings.get("logging.level") == "DEBUG"
    assert ".jpg" in settings.get("library.extensions")
    assert settings.get("delete.log_dir") is None
    assert settings.get("no.such.key", 7) == 7
    assert settings.get_path("state.dir") == settings_file.parent / "state"


def test_missing_settings_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        JsonSettings(tmp_path / "absent.json")


def test_init_logging_writes_rotating_file(tmp_path):
    init_logging(str(tmp_path / "logs"))
    logger.info("hello")
    logger.complete()
    assert find_latest_log_file(str(tmp_path / "logs")) is not None


def test_build_library_wires_an_empty_library(settings_file):
    vm = build_library(settings_file, background_deletes=False)
    assert isinstance(vm, LibraryVM)
    assert vm.load() == []
    assert vm.total_item_count == 0
    assert find_latest_log_file(str(settings_file.parent / "logs")) is not None
