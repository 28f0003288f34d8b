"""Cooperative stop signal driven by Ctrl+C."""

from __future__ import annotations

import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from types import FrameType

from loguru import logger


class StopSignal:
    """A one-way flag polled by the training loop between iterations.

    Setting it never interrupts work in progress; the loop finishes the
    current minibatch and returns.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"StopSignal(set={self.is_set()})"


@contextmanager
def catch_interrupt(stop: StopSignal | None = None) -> Iterator[StopSignal]:
    """Route the first SIGINT to ``stop`` instead of raising KeyboardInterrupt.

    After the first SIGINT the previous handler is reinstated, so a second
    Ctrl+C terminates the process the usual way.  The previous handler is
    also restored when the block exits.  Must be entered from the main thread.
    """
    stop = stop or StopSignal()
    previous = signal.getsignal(signal.SIGINT)
    if previous is None:
        previous = signal.default_int_handler

    def _handler(signum: int, frame: FrameType | None) -> None:
        logger.info("Interrupt received: stopping after the current batch...")
        stop.set()
        signal.signal(signal.SIGINT, previous)

    signal.signal(signal.SIGINT, _handler)
    try:
        yield stop
    finally:
        signal.signal(signal.SIGINT, previous)
