"""Scales a pool of worker processes and feeds them queued tasks."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass

from sparallel.atomics import AtomicBoolean
from sparallel.errs import err
from sparallel.workers.pool import Worker, Workers
from sparallel.workers.processes import Process
from sparallel.workers.tasks import Task, Tasks

_log = logging.getLogger(__name__)

_CONTROL_INTERVAL_SECONDS = 1.0
_CLEAR_INTERVAL_SECONDS = 5.0
_IDLE_INTERVAL_SECONDS = 0.01
_SCALE_DOWN_PERIOD_SECONDS = 5
_JOIN_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class StatWorkers:
    count: int
    free_count: int
    busy_count: int
    load_percent: int


@dataclass(frozen=True)
class StatTasks:
    waiting_count: int
    finished_count: int


@dataclass(frozen=True)
class WorkersServerStats:
    workers: StatWorkers
    tasks: StatTasks


class WorkersService:
    """Keeps the worker pool sized to its load and runs queued tasks on it."""

    def __init__(
        self,
        command: str,
        min_workers_number: int,
        max_workers_number: int,
        workers_number_scale_up: int,
        workers_number_percent_scale_up: int,
        workers_number_percent_scale_down: int,
    ) -> None:
        _log.info("Creating workers service for [%s] command...", command)
        self.command = command
        self.min_workers_number = min_workers_number
        self.max_workers_number = max_workers_number
        self.workers_number_scale_up = workers_number_scale_up
        self.workers_number_percent_scale_up = workers_number_percent_scale_up
        self.workers_number_percent_scale_down = workers_number_percent_scale_down

        self.workers = Workers()
        self.tasks = Tasks()

        self._closing = AtomicBoolean()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._scaled_down_at = int(time.time())

    def start(self) -> None:
        """Start the background loops that scale workers and dispatch tasks."""
        _log.info("Starting workers service...")
        loops = (
            (self._run_control, "workers-control"),
            (self._run_clear, "workers-clear"),
            (self._run_handle, "workers-handle"),
        )
        for target, name in loops:
            thread = threading.Thread(target=target, name=name, daemon=True)
            self._threads.append(thread)
            thread.start()

    def add_task(
        self, group_uuid: str, task_uuid: str, unix_timeout: int, payload: str
    ) -> Task:
        """Queue a task; raises RuntimeError once the service is closing."""
        if self._closing.get():
            _log.error(
                "Service is closing. Can't add task [%s] to group [%s]", task_uuid, group_uuid
            )
            raise RuntimeError("service is closing")

        _log.debug("Adding task [%s] to group [%s]", task_uuid, group_uuid)
        task = Task(
            group_uuid=group_uuid,
            task_uuid=task_uuid,
            unix_timeout=unix_timeout,
            payload=payload,
        )
        self.tasks.add_waiting(task)
        return task

    def detect_any_finished_task(self, group_uuid: str) -> Task:
        """Take one finished task of the group, or an unfinished placeholder."""
        finished = self.tasks.take_finished(group_uuid)
        if finished is None:
            return Task(group_uuid=group_uuid, is_finished=False)
        return finished

    def cancel_group(self, group_uuid: str) -> None:
        """Forget the group's tasks and kill the workers running them."""
        self.tasks.delete_group(group_uuid)
        for process in self.workers.delete_by_group(group_uuid):
            if process is None:
                continue
            try:
                process.close()
            except Exception as exc:
                _log.debug("Failed to close process [%s]: %s", process.uuid, exc)

    def reload(self, message: str) -> None:
        _log.warning("Reload workers with message [%s]...", message)
        threading.Thread(target=self.workers.reload, name="workers-reload", daemon=True).start()

    def stop(self, message: str) -> None:
        """Ask the whole server to stop by sending itself SIGTERM."""
        _log.warning("Stop workers server with message [%s]...", message)
        os.kill(os.getpid(), signal.SIGTERM)

    def stats(self) -> WorkersServerStats:
        return WorkersServerStats(
            workers=StatWorkers(
                count=self.workers.count(),
                free_count=self.workers.free_count(),
                busy_count=self.workers.busy_count(),
                load_percent=self.workers.load_percent(),
            ),
            tasks=StatTasks(
                waiting_count=self.tasks.waiting_count(),
                finished_count=self.tasks.finished_count(),
            ),
        )

    def close(self) -> None:
        self._closing.set(True)
        _log.warning("Closing workers service...")
        self._stop.set()

        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join(_JOIN_TIMEOUT_SECONDS)

        self.workers.close()

    def _run_control(self) -> None:
        while not self._closing.get():
            try:
                self._tick_control_workers()
            except Exception:
                _log.exception("Failed to control workers")
                return
            self._stop.wait(_CONTROL_INTERVAL_SECONDS)

    def _run_clear(self) -> None:
        while not self._closing.get():
            self.tasks.flush_rotten_tasks()
            self._stop.wait(_CLEAR_INTERVAL_SECONDS)

    def _run_handle(self) -> None:
        while not self._closing.get():
            if not self._tick_handle_tasks():
                self._stop.wait(_IDLE_INTERVAL_SECONDS)

    def _tick_control_workers(self) -> None:
        need = self.min_workers_number

        load = self.workers.load_percent()
        if load >= self.workers_number_percent_scale_up:
            need = self.workers.count() + self.workers_number_scale_up
            _log.warning("Working workers count more %d%%. Scale...", load)

        if need < self.min_workers_number:
            need = self.min_workers_number
        elif need > self.max_workers_number:
            need = self.max_workers_number

        created = 0
        while self.workers.count() < need and not self._closing.get():
            try:
                process = Process.create(self.command, self._on_process_finished)
            except Exception as exc:
                raise err(exc) from exc
            _log.debug("Process [%s] [%d] created.", process.uuid, process.pid)
            self.workers.add(process)
            created += 1

        now = int(time.time())
        if now - self._scaled_down_at > _SCALE_DOWN_PERIOD_SECONDS:
            if (
                created == 0
                and self.workers.count() > self.min_workers_number
                and self.workers.load_percent() < self.workers_number_percent_scale_down
            ):
                self.workers.kill_any_free()
                _log.warning("Killed free worker")
            self._scaled_down_at = int(time.time())

    def _on_process_finished(self, process_uuid: str, popen: subprocess.Popen) -> None:
        _log.warning("Process [%s] finished: exit status %s", process_uuid, popen.returncode)
        self.workers.delete_by_process(process_uuid)

    def _tick_handle_tasks(self) -> bool:
        if self.workers.free_count() == 0:
            return False
        task = self.tasks.take_waiting()
        if task is None:
            return False
        threading.Thread(target=self._handle_task, args=(task,), daemon=True).start()
        return True

    def _handle_task(self, task: Task) -> None:
        _log.debug("Handling task [%s]", task.task_uuid)

        worker = self.workers.take(task)
        if worker is None:
            _log.debug("Not found worker for task [%s]", task.task_uuid)
            self.tasks.add_waiting(task)
            return

        process = worker.process
        try:
            process.write(task.payload)
        except Exception:
            _log.debug("Error start task [%s]. Re waiting.", task.task_uuid)
            self.tasks.add_waiting(task)
            self.workers.delete_by_process(process.uuid)
            _close_quietly(process)
            return

        if task.is_timeout():
            self._finish(task, "timeout", is_error=True)
            self.workers.free(worker)
            return

        response = process.read()
        if response.error is not None:
            self.workers.delete_by_process(process.uuid)
            _close_quietly(process)
            self._finish(task, str(response.error), is_error=True)
            return

        self.workers.free(worker)
        self._finish(task, response.data, is_error=False)

    def _finish(self, task: Task, response: str, is_error: bool) -> None:
        task.is_finished = True
        task.response = response
        task.is_error = is_error
        self.tasks.add_finished(task)


def _close_quietly(process: Process) -> None:
    try:
        process.close()
    except Exception as exc:
        _log.debug("Failed to close process [%s]: %s", process.uuid, exc)


_service: WorkersService | None = None
_service_lock = threading.Lock()


def create_service(
    command: str,
    min_workers_number: int,
    max_workers_number: int,
    workers_number_scale_up: int,
    workers_number_percent_scale_up: int,
    workers_number_percent_scale_down: int,
) -> WorkersService:
    """Create the shared service once; later calls return the same one."""
    global _service
    with _service_lock:
        if _service is None:
            _service = WorkersService(
                command,
                min_workers_number,
                max_workers_number,
                workers_number_scale_up,
                workers_number_percent_scale_up,
                workers_number_percent_scale_down,
            )
        return _service


def get_service() -> WorkersService | None:
    """The shared service, or None if it has not been created."""
    return _service