"""MongoDB clients kept open per connection string."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

import pymongo

_log = logging.getLogger(__name__)

ClientFactory = Callable[[str], Any]


class Connections:
    """Opens one client per connection string and hands out collections."""

    def __init__(self, client_factory: ClientFactory | None = None) -> None:
        self._client_factory = client_factory or pymongo.MongoClient
        self._lock = threading.Lock()
        self._clients: dict[str, Any] = {}

    def get(self, conn_name: str, db_name: str, coll_name: str):
        """The collection ``coll_name`` of ``db_name`` on the ``conn_name`` server.

        ``conn_name`` is the connection URI; its client is created on first use.
        """
        with self._lock:
            client = self._clients.get(conn_name)
            if client is None:
                client = self._client_factory(conn_name)
                self._clients[conn_name] = client
            return client[db_name][coll_name]

    def close(self) -> None:
        """Close every client; the first failure is raised."""
        _log.warning("Closing mongodb connections")
        with self._lock:
            clients, self._clients = self._clients, {}
            for client in clients.values():
                client.close()