"""Application shell: command dispatch, logging setup and orderly shutdown."""

from __future__ import annotations

import contextlib
import logging
import signal
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Iterator, Protocol

from sparallel.errs import err
from sparallel.level_policy import LevelPolicy
from sparallel.log_handlers import CustomHandler

_log = logging.getLogger(__name__)


class Closer(Protocol):
    def close(self) -> None: ...


class Command(ABC):
    """A named action the application can run."""

    @abstractmethod
    def title(self) -> str:
        """Short description shown in the command list."""

    @abstractmethod
    def parameters(self) -> str:
        """Description of the parameters the command takes."""

    @abstractmethod
    def handle(self, arguments: list[str]) -> None:
        """Run the command."""

    @abstractmethod
    def close(self) -> None:
        """Release what the command holds."""


class ServiceProvider(ABC):
    """Registers a service before a command runs."""

    @abstractmethod
    def register(self) -> None:
        """Register the service; raise on failure."""


@dataclass
class LogConfig:
    levels: list[int] = field(default_factory=list)
    dir_path: str = ""
    keep_days: int = 3


@dataclass
class AppConfig:
    log_config: LogConfig = field(default_factory=LogConfig)


def filter_args(args: Iterable[str]) -> list[str]:
    """Drop arguments that start with ``--``."""
    return [arg for arg in args if not arg.startswith("--")]


class App:
    """Runs one command, closing registered listeners on failure or signal."""

    def __init__(
        self,
        config: AppConfig,
        commands: Mapping[str, Command],
        service_providers: Iterable[ServiceProvider],
    ) -> None:
        self.config = config
        self.commands = dict(commands)
        self.service_providers = list(service_providers)
        self._first_close_listeners: list[Closer] = []
        self._last_close_listeners: list[Closer] = []

    def start(self, command_name: str, args: Iterable[str]) -> None:
        if not command_name:
            print("Commands:")
            for key, command in self.commands.items():
                print(f" {key} {command.parameters()} - {command.title()}")
            return

        try:
            self._run(command_name, list(args))
        except Exception:
            self.close()
            raise

    def close(self) -> None:
        _log.warning("Closing app...")
        for listener in [*self._first_close_listeners, *self._last_close_listeners]:
            try:
                listener.close()
            except Exception as exc:
                raise err(exc) from exc

    def add_first_close_listener(self, listener: Closer) -> None:
        self._first_close_listeners.append(listener)

    def add_last_close_listener(self, listener: Closer) -> None:
        self._last_close_listeners.append(listener)

    def _run(self, command_name: str, args: list[str]) -> None:
        self._init_logging()

        command = self.commands.get(command_name)
        if command is None:
            raise err(LookupError("command not found"))

        self.add_first_close_listener(command)

        for provider in self.service_providers:
            provider.register()

        with self._stop_on_signals():
            command.handle(filter_args(args))

        _log.warning("Exit")

    def _init_logging(self) -> None:
        log_config = self.config.log_config
        handler = CustomHandler(
            LevelPolicy(log_config.levels),
            log_config.dir_path,
            log_config.keep_days,
        )
        root = logging.getLogger()
        for old in list(root.handlers):
            root.removeHandler(old)
        root.addHandler(handler)
        root.setLevel(logging.DEBUG)
        self.add_last_close_listener(handler)

    @contextlib.contextmanager
    def _stop_on_signals(self) -> Iterator[None]:
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        def on_signal(signum, frame):
            _log.warning("received stop signal")
            self.close()

        watched = (signal.SIGINT, signal.SIGTERM)
        previous = {sig: signal.getsignal(sig) for sig in watched}
        for sig in watched:
            signal.signal(sig, on_signal)
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)