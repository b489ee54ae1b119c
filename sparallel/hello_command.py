"""A command that prints a greeting."""

from __future__ import annotations

import sys

from sparallel.app import Command


class HelloCommand(Command):
    """Prints ``hello``."""

    def title(self) -> str:
        return "Just print Hello"

    def parameters(self) -> str:
        return ""

    def handle(self, arguments: list[str]) -> None:
        sys.stdout.write("hello\n")

    def close(self) -> None:
        sys.stdout.flush()