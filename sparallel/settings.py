"""Server settings read from the environment."""

from __future__ import annotations

import functools
import os
import re

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT_MIN = -(2**63)
_INT_MAX = 2**63 - 1


def _env_int(name: str) -> int:
    value = os.environ.get(name, "")
    if not _INTEGER.fullmatch(value):
        return 0
    number = int(value)
    if not _INT_MIN <= number <= _INT_MAX:
        return 0
    return number


class Settings:
    """Reads each setting from the environment when asked."""

    def server_pid_file_path(self) -> str:
        return os.environ.get("SERVER_PID_FILE_PATH", "")

    def log_levels(self) -> str:
        return os.environ.get("LOG_LEVELS", "")

    def rpc_port(self) -> str:
        return os.environ.get("RPC_PORT", "")

    def command(self) -> str:
        return os.environ.get("WORKER_COMMAND", "")

    def serve_proxy(self) -> bool:
        return os.environ.get("SERVE_PROXY") == "true"

    def serve_workers(self) -> bool:
        return os.environ.get("SERVE_WORKERS") == "true"

    def min_workers_number(self) -> int:
        return _env_int("MIN_WORKERS_NUMBER")

    def max_workers_number(self) -> int:
        return _env_int("MAX_WORKERS_NUMBER")

    def workers_number_scale_up(self) -> int:
        return _env_int("WORKERS_NUMBER_SCALE_UP")

    def workers_number_percent_scale_up(self) -> int:
        return _env_int("WORKERS_NUMBER_PERCENT_SCALE_UP")

    def workers_number_percent_scale_down(self) -> int:
        return _env_int("WORKERS_NUMBER_PERCENT_SCALE_DOWN")


@functools.lru_cache(maxsize=None)
def get_settings() -> Settings:
    """The shared settings instance."""
    return Settings()