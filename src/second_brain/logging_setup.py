# src/second_brain/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from pathlib import Path

LOG_FILE_NAME = "second_brain.log"
LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Minimum console level per logger-name prefix; the longest matching prefix wins.
CONSOLE_LEVELS: Mapping[str, int] = {
    "second_brain": logging.DEBUG,
    # Sync loop chatter; status edits are already visible in the room.
    "second_brain.connectors.matrix_": logging.WARNING,
    "py.warnings": logging.ERROR,
}

# Anything not listed above (nio, httpx, openai, ...) only reaches the console at ERROR+.
THIRD_PARTY_CONSOLE_LEVEL = logging.ERROR

_CHATTY_LIBRARIES = ("httpx", "httpcore", "openai", "nio")


class ConsoleNoiseFilter(logging.Filter):
    """Keep the interactive console readable while the log file keeps everything."""

    def __init__(self, levels: Mapping[str, int] = CONSOLE_LEVELS, default: int = THIRD_PARTY_CONSOLE_LEVEL) -> None:
        super().__init__()
        # Longest prefix first so "second_brain.connectors.matrix_" beats "second_brain".
        self._levels = sorted(levels.items(), key=lambda item: len(item[0]), reverse=True)
        self._default = default

    def threshold_for(self, name: str) -> int:
        for prefix, level in self._levels:
            if name == prefix or name.startswith(prefix if prefix.endswith("_") else prefix + "."):
                return level
        return self._default

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.threshold_for(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/second_brain",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Install a filtered stderr handler and a full-detail file handler.

    Call once, before the first log line. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    console.addFilter(ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging initialised (file=%s)", log_file)
    return log_file
