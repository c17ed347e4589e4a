"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import threading
from pathlib import Path

from decomposer.logging import setup_logging


def _records(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("test_message", extra={"op": "create_item", "args_data": {"title": "A"}})
        for handler in logger.handlers:
            handler.flush()
        log_path = tmp_path / "decomposer.log"
        assert log_path.exists()
        record = _records(log_path)[-1]
        assert record["msg"] == "test_message"
        assert record["op"] == "create_item"
        assert record["args"]["title"] == "A"
        assert record["logger"] == "decomposer"

    def test_json_format(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("timed", extra={"op": "materialize", "duration_ms": 42.5})
        logger.error("failed", extra={"op": "create_item", "error": "boom"})
        for handler in logger.handlers:
            handler.flush()
        timed, failed = _records(tmp_path / "decomposer.log")[-2:]
        assert timed["duration_ms"] == 42.5
        assert "error" not in timed
        assert failed["level"] == "ERROR"
        assert failed["error"] == "boom"

    def test_child_loggers_propagate(self, tmp_path: Path) -> None:
        root = setup_logging(tmp_path)
        logging.getLogger("decomposer.materialize").info("from child")
        for handler in root.handlers:
            handler.flush()
        assert _records(tmp_path / "decomposer.log")[-1]["logger"] == "decomposer.materialize"

    def test_exception_recorded(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise ValueError("bad value")
        except ValueError:
            logger.exception("caught")
        for handler in logger.handlers:
            handler.flush()
        assert _records(tmp_path / "decomposer.log")[-1]["exception"] == "bad value"

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        assert len(logger1.handlers) == 1

    def test_new_directory_replaces_handler(self, tmp_path: Path) -> None:
        first = tmp_path / "one"
        second = tmp_path / "two"
        first.mkdir()
        second.mkdir()
        setup_logging(first)
        logger = setup_logging(second)
        assert len(logger.handlers) == 1
        handler = logger.handlers[0]
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.baseFilename == os.path.abspath(str(second / "decomposer.log"))

    def test_no_duplicate_handlers_under_concurrency(self, tmp_path: Path) -> None:
        results: list[logging.Logger] = []
        barrier = threading.Barrier(4)

        def call_setup() -> None:
            barrier.wait()
            results.append(setup_logging(tmp_path))

        threads = [threading.Thread(target=call_setup) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 4
        assert all(r is results[0] for r in results)
        assert len(logging.getLogger("decomposer").handlers) == 1

    def teardown_method(self) -> None:
        """Clean up the decomposer logger handlers between tests."""
        logger = logging.getLogger("decomposer")
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
