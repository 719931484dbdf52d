"""Logging setup shared by the CLI and the HTTP server.

Records always go to stderr. When a log directory is configured they are also
appended to ``cloudpick-YYYY-MM-DD.log`` files, one per local day, and files
older than ``keep_days`` are removed whenever a new day's file is opened.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import IO, List, Optional

LOG_PREFIX = "cloudpick-"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _log_day(path: Path) -> Optional[date]:
    """Day encoded in a log file name, or ``None`` for foreign files."""

    if not path.stem.startswith(LOG_PREFIX):
        return None
    try:
        return date.fromisoformat(path.stem[len(LOG_PREFIX):])
    except ValueError:
        return None


class DailyLogFileHandler(logging.Handler):
    """Append records to the file for the current day."""

    terminator = "\n"

    def __init__(self, log_dir: Path, *, keep_days: int = 7) -> None:
        super().__init__()
        self.log_dir = log_dir
        self.keep_days = max(keep_days, 1)
        self._day: Optional[date] = None
        self._file: Optional[IO[str]] = None

    def path_for(self, day: date) -> Path:
        return self.log_dir / f"{LOG_PREFIX}{day.isoformat()}.log"

    def stale_logs(self, today: date) -> List[Path]:
        """Log files that fall outside the retention window ending ``today``."""

        if not self.log_dir.is_dir():
            return []
        oldest_kept = today - timedelta(days=self.keep_days - 1)
        stale = []
        for path in sorted(self.log_dir.glob(f"{LOG_PREFIX}*.log")):
            day = _log_day(path)
            if day is not None and day < oldest_kept:
                stale.append(path)
        return stale

    def emit(self, record: logging.LogRecord) -> None:
        try:
            handle = self._file_for(datetime.now().date())
            handle.write(self.format(record) + self.terminator)
            handle.flush()
        except Exception:  # noqa: BLE001 - logging.Handler contract
            self.handleError(record)

    def close(self) -> None:
        try:
            self._close_file()
        finally:
            super().close()

    def _file_for(self, today: date) -> IO[str]:
        if self._file is not None and self._day == today:
            return self._file
        self._close_file()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        for path in self.stale_logs(today):
            try:
                path.unlink()
            except OSError:
                continue
        self._file = self.path_for(today).open("a", encoding="utf-8")
        self._day = today
        return self._file

    def _close_file(self) -> None:
        handle, self._file = self._file, None
        if handle is not None:
            handle.close()


def configure_logging(
    verbose: bool, log_dir: Optional[Path] = None, *, keep_days: int = 7
) -> None:
    """Replace the root handlers with stderr output and optional daily files."""

    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()
    root.setLevel(level)

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_dir is not None:
        handlers.append(DailyLogFileHandler(log_dir, keep_days=keep_days))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        root.addHandler(handler)

    # Werkzeug logs every request at INFO.
    logging.getLogger("werkzeug").setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.captureWarnings(True)


__all__ = ["DailyLogFileHandler", "LOG_PREFIX", "configure_logging"]
