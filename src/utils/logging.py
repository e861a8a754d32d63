"""Shared logging utilities for the service."""
from __future__ import annotations

import logging
import os
import sys
import time
from typing import Callable

ROOT_LOGGER_NAME = "doblelabs"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_HANDLER: logging.Handler | None = None


def _resolve_level(level_name: str) -> int:
    level = getattr(logging, level_name.upper(), None)
    if isinstance(level, int):
        return level
    return logging.INFO


def _configure_root(level: int) -> logging.Logger:
    global _HANDLER

    root = logging.getLogger(ROOT_LOGGER_NAME)
    if _HANDLER is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        _HANDLER = handler
    _HANDLER.setLevel(level)
    root.setLevel(level)
    if _HANDLER not in root.handlers:
        root.addHandler(_HANDLER)
    root.propagate = False
    return root


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger under the service namespace.

    Module names such as ``src.pipeline.poller`` become
    ``doblelabs.pipeline.poller`` so a single handler serves every module.
    """
    level = _resolve_level(os.environ.get("LOG_LEVEL", "INFO"))
    root = _configure_root(level)
    if not name:
        return root

    suffix = name[len("src."):] if name.startswith("src.") else name
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{suffix}")


class Timer:
    """Context manager that logs how long a block took.

    If the block raises, the failure is logged with the elapsed time and the
    exception propagates.
    """

    def __init__(
        self,
        label: str,
        logger: logging.Logger,
        *,
        level: str = "info",
        log_start: bool = False,
    ) -> None:
        self._label = label
        self._logger = logger
        self._level = level
        self._log_start = log_start
        self._start: float | None = None
        self.elapsed: float | None = None

    def __enter__(self) -> Timer:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.stop()
            return
        self.elapsed = self._elapsed()
        self._logger.warning("Failed: %s after %.2fs (%s)", self._label, self.elapsed, exc)

    def _log(self, message: str, *args: object) -> None:
        log_fn: Callable[..., None] = getattr(self._logger, self._level, self._logger.info)
        log_fn(message, *args)

    def _elapsed(self) -> float:
        if self._start is None:
            return 0.0
        return time.perf_counter() - self._start

    def start(self) -> Timer:
        self._start = time.perf_counter()
        if self._log_start:
            self._log("Started: %s", self._label)
        return self

    def stop(self) -> float:
        self.elapsed = self._elapsed()
        self._log("Completed: %s in %.2fs", self._label, self.elapsed)
        return self.elapsed
