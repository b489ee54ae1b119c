"""Waiting and finished tasks, kept in groups in the order the groups arrived."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

_log = logging.getLogger(__name__)

_HEAD_START_SECONDS = 5


def is_timeout(unix_timeout: int, head_start: int, now: int | None = None) -> bool:
    """True when ``unix_timeout`` lies more than ``head_start`` seconds in the past."""
    if now is None:
        now = int(time.time())
    return unix_timeout - now < -head_start


@dataclass
class Task:
    """One unit of work sent to a worker, and its outcome once finished."""

    group_uuid: str
    task_uuid: str = ""
    unix_timeout: int = 0
    payload: str = ""
    is_finished: bool = False
    response: str = ""
    is_error: bool = False

    def is_timeout(self) -> bool:
        return is_timeout(self.unix_timeout, _HEAD_START_SECONDS)


@dataclass
class Group:
    """Tasks of one group; the group expires with the timeout of its first task."""

    uuid: str
    unix_timeout: int
    tasks: dict[str, Task] = field(default_factory=dict)

    def is_timeout(self) -> bool:
        return is_timeout(self.unix_timeout, _HEAD_START_SECONDS)

    def take_any(self) -> Task | None:
        """Remove and return one task of the group, or None when it is empty."""
        for task_uuid in self.tasks:
            return self.tasks.pop(task_uuid)
        return None


class SubTasks:
    """A thread-safe set of task groups that remembers the groups' order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._groups: dict[str, Group] = {}

    def add_task(self, task: Task) -> None:
        with self._lock:
            group = self._groups.get(task.group_uuid)
            if group is None:
                group = Group(uuid=task.group_uuid, unix_timeout=task.unix_timeout)
                self._groups[task.group_uuid] = group
            group.tasks[task.task_uuid] = task

    def delete_group(self, group_uuid: str) -> None:
        with self._lock:
            self._groups.pop(group_uuid, None)

    def delete_task(self, task: Task) -> None:
        with self._lock:
            group = self._groups.get(task.group_uuid)
            if group is None:
                return
            group.tasks.pop(task.task_uuid, None)
            if not group.tasks:
                del self._groups[task.group_uuid]

    def pop(self) -> Task | None:
        """Take a task from the oldest group that has one."""
        with self._lock:
            for group in self._groups.values():
                task = group.take_any()
                if task is None:
                    continue
                if not group.tasks:
                    del self._groups[group.uuid]
                return task
            return None

    def take_first_by_group(self, group_uuid: str) -> Task | None:
        with self._lock:
            group = self._groups.get(group_uuid)
            if group is None:
                return None
            task = group.take_any()
            if not group.tasks:
                del self._groups[group_uuid]
            return task

    def flush_first_rotten(self) -> int:
        """Drop the first timed-out group; return how many tasks it held."""
        with self._lock:
            rotten = next(
                (group for group in self._groups.values() if group.is_timeout()), None
            )
            if rotten is None:
                return 0
            del self._groups[rotten.uuid]
            return len(rotten.tasks)

    def count(self) -> int:
        with self._lock:
            return sum(len(group.tasks) for group in self._groups.values())


class Tasks:
    """Tasks waiting for a worker and tasks finished but not yet collected."""

    def __init__(self) -> None:
        self.waiting = SubTasks()
        self.finished = SubTasks()

    def add_waiting(self, task: Task) -> None:
        _log.debug("Task [%s] waiting", task.task_uuid)
        self.waiting.add_task(task)

    def take_waiting(self) -> Task | None:
        task = self.waiting.pop()
        if task is not None:
            _log.debug("Task [%s] taken", task.task_uuid)
        return task

    def add_finished(self, task: Task) -> None:
        _log.debug("Task [%s] finished", task.task_uuid)
        self.finished.add_task(task)

    def take_finished(self, group_uuid: str) -> Task | None:
        return self.finished.take_first_by_group(group_uuid)

    def flush_rotten_tasks(self) -> None:
        deleted = self.waiting.flush_first_rotten()
        if deleted > 0:
            _log.debug("Flushed rotten waiting tasks: %d", deleted)

        deleted = self.finished.flush_first_rotten()
        if deleted > 0:
            _log.debug("Flushed rotten finished tasks: %d", deleted)

    def delete_group(self, group_uuid: str) -> None:
        self.waiting.delete_group(group_uuid)
        self.finished.delete_group(group_uuid)

    def delete_task(self, task: Task) -> None:
        self.waiting.delete_task(task)
        self.finished.delete_task(task)

    def waiting_count(self) -> int:
        return self.waiting.count()

    def finished_count(self) -> int:
        return self.finished.count()