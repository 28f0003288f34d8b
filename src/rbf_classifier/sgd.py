"""Minibatch stochastic gradient descent driver."""

from __future__ import annotations

import enum
from collections.abc import Callable, Sequence
from typing import Protocol

import torch
from loguru import logger

from rbf_classifier.data.samples import SampleList, shuffle
from rbf_classifier.interrupt import StopSignal
from rbf_classifier.types import Batch

StatusFunc = Callable[[int, Batch], None]
Rater = Callable[[int], float]


class Fetcher(Protocol):
    def fetch(self, samples: SampleList) -> Batch: ...


class Gradienter(Protocol):
    def gradient(self, batch: Batch) -> tuple[list[torch.Tensor], float]: ...


class Transformer(Protocol):
    def transform(
        self, gradients: Sequence[torch.Tensor], learning_rate: float
    ) -> list[torch.Tensor]: ...


class LoopState(enum.Enum):
    """Lifecycle of an :class:`SGD` driver.

    ``IDLE`` only covers the time between construction and the first
    :meth:`SGD.run`; ``run`` enters ``RUNNING`` immediately.
    """

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    TERMINATED = "terminated"


class SGD:
    """Repeated fetch -> gradient -> transform -> update cycles.

    Minibatches are consecutive slices of a shuffled order of ``samples``.
    When fewer than ``batch_size`` samples remain in the sweep, the whole
    set is reshuffled and the sweep restarts, so the stream of minibatches
    never runs dry and the loop only ends when ``stop`` is set.

    Args:
        fetcher: Builds a Batch from a SampleList slice.
        gradienter: Computes parameter gradients for a Batch.
        transformer: Turns gradients into updates, e.g. :class:`Adam`.
        params: Tensors updated in place, aligned with the gradients.
        samples: Training set; its order is reshuffled in place.
        rater: Learning rate for a given iteration number.
        batch_size: Examples per minibatch.
        status_func: Called as ``status_func(iteration, batch)`` after every
            ``status_interval`` completed iterations.
        generator: RNG for shuffling.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        gradienter: Gradienter,
        transformer: Transformer,
        params: Sequence[torch.Tensor],
        samples: SampleList,
        rater: Rater,
        batch_size: int,
        status_func: StatusFunc | None = None,
        status_interval: int = 1,
        generator: torch.Generator | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if status_interval <= 0:
            raise ValueError(f"status_interval must be positive, got {status_interval}")
        self.fetcher = fetcher
        self.gradienter = gradienter
        self.transformer = transformer
        self.params = list(params)
        self.samples = samples
        self.rater = rater
        self.batch_size = batch_size
        self.status_func = status_func
        self.status_interval = status_interval
        self.generator = generator
        self.iteration = 0
        self._cursor = 0
        self._state = LoopState.IDLE
        self._stop: StopSignal | None = None

    @property
    def state(self) -> LoopState:
        if (
            self._state is LoopState.RUNNING
            and self._stop is not None
            and self._stop.is_set()
        ):
            return LoopState.STOPPING
        return self._state

    def _next_slice(self) -> SampleList:
        if self._cursor + self.batch_size > len(self.samples):
            shuffle(self.samples, self.generator)
            self._cursor = 0
        start = self._cursor
        self._cursor += self.batch_size
        return self.samples.slice(start, self._cursor)

    @torch.no_grad()
    def step(self) -> Batch:
        """Run one iteration and return the batch it trained on."""
        batch = self.fetcher.fetch(self._next_slice())
        gradients, _ = self.gradienter.gradient(batch)
        updates = self.transformer.transform(gradients, self.rater(self.iteration))
        for param, update in zip(self.params, updates, strict=True):
            param.sub_(update)
        self.iteration += 1
        return batch

    def run(self, stop: StopSignal) -> int:
        """Train until ``stop`` is set; return the number of completed iterations.

        The signal is only checked between iterations: an iteration that has
        started always finishes, including its parameter update and status
        call.  Errors from any collaborator propagate immediately.
        """
        if self.batch_size > len(self.samples):
            raise ValueError(
                f"batch_size {self.batch_size} exceeds the {len(self.samples)} "
                "training samples"
            )
        self._stop = stop
        self._state = LoopState.RUNNING
        start = self.iteration
        try:
            shuffle(self.samples, self.generator)
            self._cursor = 0
            while not stop.is_set():
                batch = self.step()
                if self.status_func is not None and (
                    self.iteration % self.status_interval == 0
                ):
                    self.status_func(self.iteration, batch)
        finally:
            self._state = LoopState.TERMINATED
        completed = self.iteration - start
        logger.info(f"Training stopped after {completed} iterations")
        return completed
