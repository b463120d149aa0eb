# tests/test_logging_setup.py

from __future__ import annotations

import logging

from second_brain.logging_setup import ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_thresholds() -> None:
    f = ConsoleNoiseFilter()

    assert f.filter(_record("second_brain.core.capture", logging.DEBUG))
    assert not f.filter(_record("second_brain.connectors.matrix_connector", logging.INFO))
    assert f.filter(_record("second_brain.connectors.matrix_connector", logging.WARNING))
    assert f.filter(_record("second_brain.connectors.console_connector", logging.INFO))
    assert not f.filter(_record("nio.rooms", logging.WARNING))
    assert not f.filter(_record("second_brainy", logging.INFO))
    assert f.filter(_record("httpx", logging.ERROR))


def test_setup_logging_writes_file(tmp_path) -> None:
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        log_file = setup_logging(log_dir=tmp_path / "logs")
        logging.getLogger("second_brain.test").info("hello file")
        for h in root.handlers:
            h.flush()

        assert log_file.name == "second_brain.log"
        assert "hello file" in log_file.read_text("utf-8")
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved[0]:
            root.addHandler(h)
        root.setLevel(saved[1])
        logging.captureWarnings(False)
