# sparallel

`sparallel` is a library for running tasks on a pool of worker processes that
grows under load and shrinks when idle. Alongside the pool it provides a small
application shell for commands, coloured console and daily-file logging,
settings read from the environment, plain-Python endpoint objects for remote
calls, and a JSON codec plus connection cache for MongoDB requests.

Install with `pip install .`; the tests need the `test` extra.

## Worker pool

```python
from sparallel.workers.service import create_service
from sparallel.rpc.workers_api import WorkersApi

service = create_service("python worker.py", 2, 10, 2, 80, 20)
service.start()

api = WorkersApi(service)
api.add_task("group-1", "task-1", deadline_unix_time, "payload")
reply = api.detect_any_finished_task("group-1")
# {"GroupUuid": ..., "TaskUuid": ..., "IsFinished": ..., "Response": ..., "IsError": ...}
```

`create_service(command, min_workers_number, max_workers_number,
workers_number_scale_up, workers_number_percent_scale_up,
workers_number_percent_scale_down)` creates one shared `WorkersService`; later
calls return the same object, and `get_service()` returns it (or `None`).
`start()` launches background threads that:

* keep at least `min_workers_number` workers running and, when the busy
  percentage reaches `workers_number_percent_scale_up`, add
  `workers_number_scale_up` more, never beyond `max_workers_number`;
* at most once every five seconds, stop one free worker when the pool is above
  its minimum and the busy percentage is below
  `workers_number_percent_scale_down`;
* every five seconds drop the first group whose deadline passed more than five
  seconds ago, from both the waiting and the finished queues;
* hand waiting tasks to free workers.

Waiting tasks are taken from the oldest group first. A task whose deadline is
more than five seconds past when it is sent finishes with the error response
`timeout`. If a worker cannot be read from, it is killed and its task finishes
with the error text as its response.

`cancel_group` drops a group's tasks and kills the workers busy with it;
`reload` kills free workers at once and busy ones when they finish; `stop`
sends `SIGTERM` to the current process; `stats()` returns a
`WorkersServerStats` with worker and task counts; `close()` stops the loops,
gives busy workers up to five seconds and then kills every worker. `add_task`
raises `RuntimeError` once the service is closing.

The building blocks are usable on their own: `sparallel.workers.tasks`
(`Task`, `SubTasks`, `Tasks`), `sparallel.workers.processes` (`Process`,
`Response`, `encode_message`) and `sparallel.workers.pool` (`Workers`,
`Worker`).

### Writing a worker

A worker reads tasks from standard input and writes answers to standard
output, one at a time. Every message in either direction is the UTF-8 byte
length of the payload as 20 zero-padded decimal digits, followed by the
payload:

```
00000000000000000005hello
```

The worker command line is split on whitespace and started without a shell;
its standard error is discarded.

## Endpoint objects

`sparallel.rpc.workers_api.WorkersApi` and `sparallel.rpc.ping_pong.PingPongApi`
expose calls whose replies are dictionaries of wire field names
(`PingPongApi.ping(message)` returns `{"Message": message}`).

## Application shell

`sparallel.app.App(config, commands, service_providers)` runs one `Command` by
name. With an empty name, `start` prints the list of commands. Otherwise it
installs a `CustomHandler` on the root logger, raises a `TracedError`
(`command not found`) for an unknown name, registers each `ServiceProvider`,
drops arguments starting with `--` (`filter_args`), and runs the command. While
it runs, `SIGINT` and `SIGTERM` call `App.close()`, which closes the command
and then the log handler; any failure also closes the app before the error is
raised again. `sparallel.hello_command.HelloCommand` prints `hello`.

Logging (`sparallel.log_handlers`) writes `YYYY-MM-DD HH:MM:SS.mmm LEVEL
message` lines, coloured on the console and plain in `<dir>/YYYY-MM-DD.log`.
Leading and trailing slashes are stripped from the directory, so it is taken
relative to the working directory. Files older than the kept days are removed
hourly. `LevelPolicy(levels)` lets through only the listed `logging` levels, or
everything when the list is empty.

`sparallel.errs.err(error)` wraps an error in a `TracedError` whose message
ends with the call sites it passed through.

## Settings

`sparallel.settings.get_settings()` returns a `Settings` object that reads the
environment on each call: `RPC_PORT`, `SERVER_PID_FILE_PATH`, `LOG_LEVELS`,
`WORKER_COMMAND`, `SERVE_PROXY` and `SERVE_WORKERS` (true only for `true`),
and the integers `MIN_WORKERS_NUMBER`, `MAX_WORKERS_NUMBER`,
`WORKERS_NUMBER_SCALE_UP`, `WORKERS_NUMBER_PERCENT_SCALE_UP` and
`WORKERS_NUMBER_PERCENT_SCALE_DOWN` (0 when unset or not an integer). No
`.env` file is loaded; set the variables in the environment yourself.

## MongoDB helpers

`sparallel.mongo.connections.Connections` keeps one client per connection URI
and returns collections with `get(uri, database, collection)`; `close()`
closes every client.

`sparallel.mongo.codec` converts request JSON:

* `unmarshal_json(text)` decodes JSON (numbers become floats) and turns
  `{"|t_": "datetime", "|v_": "<RFC 3339>"}` into a UTC `datetime` with
  millisecond precision and `{"|t_": "id", "|v_": "<24 hex digits>"}` into an
  `ObjectId`; tagged objects that cannot be converted are left as they are.
* `unmarshal_models(text)` decodes a list of `{"type": ..., "model": {...}}`
  into pymongo write models for `insertOne`, `updateOne`, `updateMany`,
  `deleteOne`, `deleteMany` and `replaceOne`, raising `ValueError` otherwise.
* `serialize_extended_json(document)` encodes a document as compact canonical
  Extended JSON with `<`, `>` and `&` escaped.

## What is not included

* There is no command-line program and no network listener: the endpoint
  objects are called from Python, not served over a socket.
* There is no MongoDB proxy service: nothing runs insert, update, aggregate or
  bulk-write requests in the background or keeps their results; only the
  codec and the connection cache are provided.
* There is no combined statistics report beyond `WorkersService.stats()`.