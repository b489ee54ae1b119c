"""The pool of worker processes, split into free and busy workers."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field

from sparallel.atomics import AtomicBoolean
from sparallel.workers.processes import Process
from sparallel.workers.tasks import Task

_log = logging.getLogger(__name__)


@dataclass(eq=False)
class Worker:
    """A process in the pool and the task it is running, if any."""

    process: Process
    uuid: str = field(default_factory=lambda: str(uuid.uuid4()))
    task: Task | None = None
    reload: bool = False


class Workers:
    """Tracks worker processes and hands free ones out to tasks."""

    def __init__(self, close_tries: int = 5, close_interval: float = 1.0) -> None:
        self._lock = threading.Lock()
        self._by_process: dict[str, Worker] = {}
        self._free: dict[str, Worker] = {}
        self._busy: dict[str, Worker] = {}
        self._closing = AtomicBoolean()
        self._close_tries = close_tries
        self._close_interval = close_interval

    def add(self, process: Process) -> Worker:
        with self._lock:
            worker = Worker(process=process)
            self._by_process[process.uuid] = worker
            self._free[worker.uuid] = worker
            return worker

    def take(self, task: Task) -> Worker | None:
        """Move a free worker to the busy set for ``task``; None if none is free."""
        if self._closing.get():
            return None
        with self._lock:
            if not self._free:
                return None
            worker_uuid = next(iter(self._free))
            worker = self._free.pop(worker_uuid)
            worker.task = task
            self._busy[worker.uuid] = worker
            return worker

    def free(self, worker: Worker) -> None:
        """Return a worker to the free set, or retire it if a reload was asked."""
        with self._lock:
            worker.task = None

            if worker.reload:
                self._delete_by_process_uuid(worker.process.uuid)
                _close_quietly(worker.process)
                return

            if worker.process.uuid not in self._by_process:
                return

            self._busy.pop(worker.uuid, None)
            self._free[worker.uuid] = worker

    def delete_by_process(self, process_uuid: str) -> None:
        with self._lock:
            self._delete_by_process_uuid(process_uuid)

    def delete_by_group(self, group_uuid: str) -> list[Process]:
        """Remove workers running tasks of the group; return their processes."""
        with self._lock:
            doomed = [
                worker
                for worker in self._by_process.values()
                if worker.task is not None and worker.task.group_uuid == group_uuid
            ]
            return [self._delete_by_process_uuid(worker.process.uuid) for worker in doomed]

    def kill_any_free(self) -> None:
        with self._lock:
            for worker in self._free.values():
                self._delete_by_process_uuid(worker.process.uuid)
                _close_quietly(worker.process)
                break

    def reload(self) -> None:
        """Kill free workers now and busy ones once they finish their task."""
        with self._lock:
            for worker in self._busy.values():
                worker.reload = True
            for worker in list(self._free.values()):
                self._delete_by_process_uuid(worker.process.uuid)
                _close_quietly(worker.process)

    def has_process(self, pid: int) -> bool:
        with self._lock:
            return any(worker.process.pid == pid for worker in self._by_process.values())

    def count(self) -> int:
        return len(self._by_process)

    def busy_count(self) -> int:
        return len(self._busy)

    def free_count(self) -> int:
        return len(self._free)

    def load_percent(self) -> int:
        count = self.count()
        if count == 0:
            return 0
        return self.busy_count() * 100 // count

    def close(self) -> None:
        """Stop handing out workers, wait a little for busy ones, then kill all."""
        _log.warning("Closing workers...")
        self._closing.set(True)

        tries = self._close_tries
        while self.busy_count() > 0 and tries > 0:
            _log.warning("Waiting for workers to close [%d]...", tries)
            time.sleep(self._close_interval)
            tries -= 1

        with self._lock:
            for worker in self._by_process.values():
                _close_quietly(worker.process)
            self._by_process = {}
            self._free = {}
            self._busy = {}

    def _delete_by_process_uuid(self, process_uuid: str) -> Process | None:
        worker = self._by_process.pop(process_uuid, None)
        if worker is None:
            return None
        self._free.pop(worker.uuid, None)
        self._busy.pop(worker.uuid, None)
        return worker.process


def _close_quietly(process: Process) -> None:
    try:
        process.close()
    except Exception as exc:
        _log.debug("Failed to close process [%s]: %s", process.uuid, exc)