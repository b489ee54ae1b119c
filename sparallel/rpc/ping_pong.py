"""A remote call that echoes its message back."""

from __future__ import annotations

import logging

_log = logging.getLogger(__name__)


class PingPongApi:
    """Answers a ping with the same message."""

    def __init__(self) -> None:
        self.closed = False

    def ping(self, message: str) -> dict:
        _log.info("Ping: %d", len(message))
        return {"Message": message}

    def close(self) -> None:
        _log.warning("Closing ping-pong server")
        self.closed = True