"""Worker processes that exchange length-prefixed messages over stdin and stdout."""

from __future__ import annotations

import logging
import re
import subprocess
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from sparallel.errs import err

_log = logging.getLogger(__name__)

HEADER_LENGTH = 20
_OUTPUT_CHUNK = 1024
_HEADER = re.compile(rb"\s*([+-]?[0-9]+)")

FinishedHandler = Callable[[str, subprocess.Popen], None]


def encode_message(data: str) -> bytes:
    """Prefix the UTF-8 body with its byte length as 20 zero-padded digits."""
    body = data.encode("utf-8")
    return f"{len(body):0{HEADER_LENGTH}d}".encode("ascii") + body


@dataclass
class Response:
    """What a worker answered: its data, or the error met while reading."""

    data: str = ""
    error: BaseException | None = None


def _describe_exit(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status {returncode}"


class Process:
    """A running worker process."""

    def __init__(self, process_uuid: str, popen: subprocess.Popen) -> None:
        self.uuid = process_uuid
        self.popen = popen

    @classmethod
    def create(cls, command: str, on_finished: FinishedHandler) -> "Process":
        """Start ``command`` and call ``on_finished`` once it has exited."""
        parts = command.split()
        if not parts:
            raise ValueError("worker command is empty")

        process_uuid = str(uuid.uuid4())
        try:
            popen = subprocess.Popen(
                parts,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise err(exc) from exc

        process = cls(process_uuid, popen)
        threading.Thread(
            target=process._watch,
            args=(on_finished,),
            name=f"worker-{process_uuid}",
            daemon=True,
        ).start()
        return process

    @property
    def pid(self) -> int:
        return self.popen.pid

    def is_running(self) -> bool:
        return self.popen.returncode is None

    def write(self, data: str) -> None:
        """Send one message to the worker."""
        _log.debug(
            "Write data with len [%d] to process: [%s]", len(data.encode("utf-8")), self.uuid
        )
        try:
            self.popen.stdin.write(encode_message(data))
            self.popen.stdin.flush()
        except (OSError, ValueError) as exc:
            raise err(exc) from exc

    def read(self) -> Response:
        """Read one message from the worker; failures come back in ``error``."""
        try:
            header = self._read_exact(HEADER_LENGTH)
        except (OSError, EOFError, ValueError) as exc:
            return Response(error=err(exc))

        match = _HEADER.match(header)
        length = int(match.group(1)) if match else -1
        if length < 0:
            text = header.decode("utf-8", "replace")
            return Response(error=RuntimeError(text + self._read_output()))

        try:
            body = self._read_exact(length)
        except (OSError, EOFError, ValueError) as exc:
            return Response(error=err(exc))

        return Response(data=body.decode("utf-8", "replace"))

    def close(self) -> None:
        """Kill the worker."""
        try:
            self.popen.kill()
        except OSError as exc:
            raise err(exc) from exc

    def _watch(self, on_finished: FinishedHandler) -> None:
        self.popen.wait()
        on_finished(self.uuid, self.popen)

    def _read_exact(self, size: int) -> bytes:
        if size == 0:
            return b""
        data = self.popen.stdout.read(size)
        if not data:
            raise EOFError("EOF")
        if len(data) < size:
            raise EOFError("unexpected EOF")
        return data

    def _read_output(self) -> str:
        try:
            chunk = self.popen.stdout.read1(_OUTPUT_CHUNK)
        except (OSError, ValueError) as exc:
            if self.popen.returncode is not None:
                return "worker down: " + _describe_exit(self.popen.returncode)
            return str(exc)
        return chunk.decode("utf-8", "replace")