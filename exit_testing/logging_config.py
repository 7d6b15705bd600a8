"""Logging setup for test runs and exit test children."""

import logging
import logging.handlers
from pathlib import Path
from typing import Any

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_CHILD_FORMAT = "%(asctime)s [%(levelname)s] [exit test %(exit_test)s pid=%(process)d] %(name)s: %(message)s"


class ExitTestFilter(logging.Filter):
    """Stamp every record with the exit test location this child process runs."""

    def __init__(self, location: str) -> None:
        super().__init__()
        self.location = location

    def filter(self, record: logging.LogRecord) -> bool:
        record.exit_test = self.location
        return True


def setup_logging(
    project_root: Path,
    settings: dict[str, Any],
    exit_test_location: str | None = None,
) -> None:
    """Configure the root logger from settings["logging"].

    Console output goes to stderr so it never mixes with what a body prints.
    A rotating file handler is added when logging.file is set. Inside an
    exit test child pass exit_test_location: records are then tagged with it
    and the child's pid, so parent and child lines in a shared log file can
    be told apart.
    """
    cfg = settings.get("logging", {})
    level = getattr(logging, str(cfg.get("level", "WARNING")).upper(), logging.WARNING)
    handlers: list[logging.Handler] = []
    if cfg.get("file"):
        log_path = project_root / cfg["file"]
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=int(cfg.get("max_bytes", 10 * 1024 * 1024)),
                backupCount=int(cfg.get("backup_count", 3)),
                encoding="utf-8",
            )
        )
    if cfg.get("log_to_console", True):
        handlers.append(logging.StreamHandler())

    if exit_test_location is None:
        formatter = logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    else:
        formatter = logging.Formatter(_CHILD_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)
    for h in handlers:
        h.setLevel(level)
        h.setFormatter(formatter)
        if exit_test_location is not None:
            h.addFilter(ExitTestFilter(exit_test_location))
        root.addHandler(h)
