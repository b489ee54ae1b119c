"""Scaling worker-process pool, application shell, logging and MongoDB request helpers."""

__version__ = "0.1.0"