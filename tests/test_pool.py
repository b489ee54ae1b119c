import itertools
import uuid
from dataclasses import dataclass, field

from sparallel.workers.pool import Workers
from sparallel.workers.tasks import Task

_pids = itertools.count(1000)


@dataclass
class FakeProcess:
    uuid: str = field(default_factory=lambda: str(uuid.uuid4()))
    pid: int = field(default_factory=lambda: next(_pids))
    closed: bool = False

    def close(self):
        self.closed = True


def make_task(group="group", name="task"):
    return Task(group_uuid=group, task_uuid=name, unix_timeout=0, payload="")


def pool_with(count, **kwargs):
    workers = Workers(**kwargs)
    processes = [FakeProcess() for _ in range(count)]
    for process in processes:
        workers.add(process)
    return workers, processes


def test_add_makes_free_worker():
    workers, _ = pool_with(2)
    assert workers.count() == 2
    assert workers.free_count() == 2
    assert workers.busy_count() == 0


def test_take_and_free():
    workers, processes = pool_with(1)
    task = make_task()

    worker = workers.take(task)
    assert worker.task is task
    assert worker.process is processes[0]
    assert workers.busy_count() == 1
    assert workers.free_count() == 0
    assert workers.take(make_task()) is None

    workers.free(worker)
    assert worker.task is None
    assert workers.free_count() == 1
    assert workers.busy_count() == 0
    assert workers.count() == 1


def test_take_from_empty_pool():
    assert Workers().take(make_task()) is None


def test_load_percent():
    workers, _ = pool_with(2)
    assert Workers().load_percent() == 0
    assert workers.load_percent() == 0
    workers.take(make_task())
    assert workers.load_percent() == 50
    workers.take(make_task())
    assert workers.load_percent() == 100


def test_delete_by_process():
    workers, processes = pool_with(2)
    workers.take(make_task())
    for process in processes:
        workers.delete_by_process(process.uuid)
    assert workers.count() == 0
    assert workers.free_count() == 0
    assert workers.busy_count() == 0


def test_delete_unknown_process_changes_nothing():
    workers, _ = pool_with(1)
    workers.delete_by_process("unknown")
    assert workers.count() == 1


def test_delete_by_group_returns_processes_without_closing():
    workers, _ = pool_with(3)
    first = workers.take(make_task("target", "a"))
    workers.take(make_task("other", "b"))

    removed = workers.delete_by_group("target")
    assert removed == [first.process]
    assert first.process.closed is False
    assert workers.count() == 2
    assert workers.busy_count() == 1
    assert workers.free_count() == 1


def test_free_of_deleted_worker_does_not_return_it():
    workers, _ = pool_with(1)
    worker = workers.take(make_task())
    workers.delete_by_process(worker.process.uuid)
    workers.free(worker)
    assert workers.free_count() == 0
    assert workers.count() == 0


def test_kill_any_free_closes_one():
    workers, processes = pool_with(2)
    workers.kill_any_free()
    assert workers.count() == 1
    assert sum(process.closed for process in processes) == 1


def test_kill_any_free_leaves_busy_workers():
    workers, processes = pool_with(1)
    workers.take(make_task())
    workers.kill_any_free()
    assert workers.count() == 1
    assert processes[0].closed is False


def test_reload_kills_free_and_retires_busy_after_task():
    workers, _ = pool_with(2)
    busy = workers.take(make_task())
    workers.reload()

    assert workers.count() == 1
    assert workers.free_count() == 0
    assert busy.reload is True
    assert busy.process.closed is False

    workers.free(busy)
    assert busy.process.closed is True
    assert workers.count() == 0
    assert workers.busy_count() == 0


def test_has_process():
    workers, processes = pool_with(1)
    assert workers.has_process(processes[0].pid) is True
    assert workers.has_process(processes[0].pid + 100000) is False


def test_close_kills_all_and_refuses_new_tasks():
    workers, processes = pool_with(3, close_tries=2, close_interval=0.01)
    workers.take(make_task())

    workers.close()
    assert all(process.closed for process in processes)
    assert workers.count() == 0
    assert workers.free_count() == 0
    assert workers.busy_count() == 0

    workers.add(FakeProcess())
    assert workers.take(make_task()) is None