"""Tests for util helpers."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from pyjaspr import setup_logging
from pyjaspr.util import ensure, generate_commit_id, windowed_pairs


class TestUtil:
    """Tests for small helpers."""

    def test_windowed_pairs(self) -> None:
        assert windowed_pairs([1, 2, 3]) == [(None, 1), (1, 2), (2, 3)]
        assert windowed_pairs([]) == []

    def test_ensure(self) -> None:
        assert ensure(0) == 0
        with pytest.raises(RuntimeError, match="missing"):
            ensure(None, "missing")

    def test_generate_commit_id(self) -> None:
        ids = {generate_commit_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(i) == 8 and all(c in "0123456789abcdef" for c in i) for i in ids)
        assert len(generate_commit_id(20)) == 20

    def test_generate_commit_id_length_bounds(self) -> None:
        with pytest.raises(ValueError):
            generate_commit_id(7)
        with pytest.raises(ValueError):
            generate_commit_id(21)


class TestSetupLogging:
    """Tests for logging configuration."""

    def test_logs_directory_gets_rotating_file(self, tmp_path: Path) -> None:
        root = logging.getLogger()
        saved = (root.level, root.handlers[:])
        try:
            setup_logging(0, str(tmp_path / "logs"))
            logging.getLogger("pyjaspr.test").debug("written to file only")
            for handler in root.handlers:
                handler.flush()
            assert "written to file only" in (tmp_path / "logs" / "pyjaspr.log").read_text()
            assert isinstance(root.handlers[1], RotatingFileHandler)
            assert root.handlers[0].level == logging.INFO
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
                handler.close()
            root.setLevel(saved[0])
            for handler in saved[1]:
                root.addHandler(handler)

    def test_log_level_sets_console_level(self) -> None:
        root = logging.getLogger()
        saved = (root.level, root.handlers[:])
        try:
            setup_logging(0, log_level="WARNING")
            assert root.level == logging.WARNING
            assert root.handlers[0].level == logging.WARNING
            setup_logging(2, log_level="WARNING")
            assert root.level == logging.DEBUG
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
            root.setLevel(saved[0])
            for handler in saved[1]:
                root.addHandler(handler)

    def test_verbose_selects_debug(self) -> None:
        root = logging.getLogger()
        saved = (root.level, root.handlers[:])
        try:
            setup_logging(2)
            assert root.level == logging.DEBUG
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
            root.setLevel(saved[0])
            for handler in saved[1]:
                root.addHandler(handler)
