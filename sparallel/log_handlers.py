"""Console and daily-file log handlers."""

from __future__ import annotations

import logging
import os
import sys
import threading
from datetime import datetime, timedelta

from sparallel.errs import err
from sparallel.level_policy import LevelPolicy

_log = logging.getLogger(__name__)

RESET = "\033[0m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"

_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
}

_LEVEL_COLORS = {
    logging.DEBUG: BLUE,
    logging.INFO: GREEN,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
}

_CLEAN_INTERVAL_SECONDS = 3600


def format_record(record: logging.LogRecord) -> str:
    """Render a record as ``date time.millis LEVEL message``."""
    moment = datetime.fromtimestamp(record.created)
    stamp = moment.strftime("%Y-%m-%d %H:%M:%S") + f".{moment.microsecond // 1000:03d}"
    level = _LEVEL_NAMES.get(record.levelno, record.levelname)
    return f"{stamp} {level} {record.getMessage()}"


def wrap_color(level: int, message: str) -> str:
    """Wrap a message in the terminal colour for its level."""
    color = _LEVEL_COLORS.get(level)
    if color is None:
        return message
    return color + message + RESET


def log_file_name(moment: datetime) -> str:
    """Name of the log file for the day of ``moment``."""
    return moment.strftime("%Y-%m-%d") + ".log"


class ConsoleHandler(logging.Handler):
    """Writes coloured records to standard output."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            sys.stdout.write(wrap_color(record.levelno, format_record(record)) + "\n")
            sys.stdout.flush()
        except Exception:
            self.handleError(record)


class FileHandler(logging.Handler):
    """Writes records to one file per day and removes files past their keep days."""

    def __init__(self, log_dir_path: str, keep_days: int) -> None:
        super().__init__()
        self.log_dir_path = log_dir_path.strip("/")
        self.keep_days = keep_days
        self._file_lock = threading.Lock()
        self._stream = None
        self._current_name = ""
        self._closed = False
        self._stop = threading.Event()

        self._fresh_file()

        self._cleaner = threading.Thread(
            target=self._clean_periodically, name="log-cleaner", daemon=True
        )
        self._cleaner.start()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if self._closed:
                return
            self._fresh_file()
            line = format_record(record) + "\n"
            with self._file_lock:
                if self._stream is None:
                    return
                self._stream.write(line)
                self._stream.flush()
        except Exception:
            self.handleError(record)

    def delete_old_files(self) -> list[str]:
        """Remove ``.log`` files older than the kept days; return removed paths."""
        now = datetime.now()
        expected = {
            log_file_name(now - timedelta(days=days)) for days in range(self.keep_days + 1)
        }

        with os.scandir(self.log_dir_path) as entries:
            candidates = sorted(
                entry.name
                for entry in entries
                if not entry.is_dir() and entry.name.endswith(".log")
            )

        removed = []
        for name in candidates:
            if name in expected:
                continue
            path = os.path.join(self.log_dir_path, name)
            try:
                os.remove(path)
            except OSError as exc:
                _log.error("Failed to remove old log file: %s: %s", path, exc)
            else:
                _log.warning("Removed old log file: %s", path)
                removed.append(path)
        return removed

    def close(self) -> None:
        _log.warning("Closing log file")
        self._stop.set()
        try:
            with self._file_lock:
                self._closed = True
                if self._stream is not None:
                    stream, self._stream = self._stream, None
                    stream.close()
        except OSError as exc:
            raise err(exc) from exc
        finally:
            super().close()

    def _fresh_file(self) -> None:
        actual = log_file_name(datetime.now())
        if actual == self._current_name:
            return

        with self._file_lock:
            if actual == self._current_name or self._closed:
                return

            path = os.path.join(self.log_dir_path, actual)
            try:
                os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
                if self._stream is not None:
                    self._stream.close()
                    self._stream = None
                self._stream = open(path, "a", encoding="utf-8")
            except OSError as exc:
                raise err(OSError(f"Failed to open log file: {exc}")) from exc

            self._current_name = actual

    def _clean_periodically(self) -> None:
        while not self._stop.is_set():
            try:
                self.delete_old_files()
            except OSError as exc:
                _log.error("Failed to read log directory: %s", exc)
                return
            self._stop.wait(_CLEAN_INTERVAL_SECONDS)


class CustomHandler(logging.Handler):
    """Sends records allowed by a level policy to the console and the log file."""

    def __init__(self, level_policy: LevelPolicy, log_dir_path: str, keep_days: int) -> None:
        super().__init__()
        self.level_policy = level_policy
        self._file = FileHandler(log_dir_path, keep_days)
        self._console = ConsoleHandler()

    def filter(self, record: logging.LogRecord):
        if not self.level_policy.allowed(record.levelno):
            return False
        return super().filter(record)

    def emit(self, record: logging.LogRecord) -> None:
        self._console.emit(record)
        self._file.emit(record)

    def close(self) -> None:
        try:
            self._file.close()
        except Exception as exc:
            raise err(exc) from exc
        finally:
            super().close()