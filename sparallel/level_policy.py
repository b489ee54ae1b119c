"""Which log levels are let through."""

from __future__ import annotations

import logging
from collections.abc import Iterable


class LevelPolicy:
    """Allows the listed levels; an empty list allows every level."""

    def __init__(self, levels: Iterable[int]) -> None:
        chosen = set(levels)
        self.any = not chosen
        self.debug = logging.DEBUG in chosen
        self.info = logging.INFO in chosen
        self.warn = logging.WARNING in chosen
        self.error = logging.ERROR in chosen

    def allowed(self, level: int) -> bool:
        if self.any:
            return True
        return {
            logging.DEBUG: self.debug,
            logging.INFO: self.info,
            logging.WARNING: self.warn,
            logging.ERROR: self.error,
        }.get(level, False)