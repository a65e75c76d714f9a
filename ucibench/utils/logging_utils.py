from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "ucibench"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JSONLHandler(logging.Handler):
    """Append one JSON object per record, rolling the file over at max_bytes."""

    def __init__(self, path: Path, level=logging.INFO, max_bytes: int = 5_000_000, backup_count: int = 3):
        super().__init__(level)
        self.path = path
        self.max_bytes = int(max_bytes)
        self.backup_count = int(backup_count)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _backup(self, index: int) -> Path:
        return self.path.with_suffix(self.path.suffix + f".{index}")

    def _rollover(self) -> None:
        if not self.path.exists() or self.path.stat().st_size <= self.max_bytes:
            return
        oldest = self._backup(self.backup_count)
        if oldest.exists():
            oldest.unlink()
        for i in range(self.backup_count - 1, 0, -1):
            src = self._backup(i)
            if src.exists():
                src.rename(self._backup(i + 1))
        self.path.rename(self._backup(1))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            payload = {
                "ts": record.created,
                "level": record.levelname,
                "name": record.name,
                "msg": record.getMessage(),
                "func": record.funcName,
                "line": record.lineno,
            }
            self._rollover()
            with self.path.open("a") as f:
                f.write(json.dumps(payload) + "\n")
        except Exception:
            self.handleError(record)


def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO,
                  console: Optional[Console] = None) -> logging.Logger:
    """Configure the package logger.

    Console output goes through rich (to stderr, so tables on stdout stay
    clean). With a log directory, a rotating text log and a JSON-lines log are
    written as well.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(console=console or Console(stderr=True), rich_tracebacks=False,
                               markup=False, show_path=False)
    rich_handler.setLevel(level)
    logger.addHandler(rich_handler)

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(Path(log_dir) / "ucibench.log", maxBytes=5_000_000, backupCount=3)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(TEXT_FORMAT))
        logger.addHandler(file_handler)
        logger.addHandler(JSONLHandler(Path(log_dir) / "structured.jsonl", level=level))

    logger.propagate = False
    return logger
