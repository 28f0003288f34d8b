"""Periodic training/validation cost report for the SGD loop."""

from __future__ import annotations

from dataclasses import dataclass

import torch
from loguru import logger

from rbf_classifier.data.samples import SampleList, shuffle
from rbf_classifier.trainer import GradientTrainer
from rbf_classifier.types import Batch


@dataclass(frozen=True)
class StatusRecord:
    iteration: int
    cost: float
    validation: float


class ValidationStatus:
    """SGD status function that compares training and validation cost.

    Each call reshuffles the validation set, evaluates the first
    ``batch_size`` examples in eval mode and logs both costs.  Costs are
    per-example means, so the two numbers are directly comparable.

    Args:
        trainer: Trainer whose ``last_cost`` is the latest training cost.
        validation: Validation samples; reordered in place on every call.
        batch_size: Number of validation examples per report.
        generator: RNG for the validation reshuffle.
    """

    def __init__(
        self,
        trainer: GradientTrainer,
        validation: SampleList,
        batch_size: int,
        generator: torch.Generator | None = None,
    ) -> None:
        self.trainer = trainer
        self.validation = validation
        self.batch_size = min(batch_size, len(validation))
        self.generator = generator
        self.history: list[StatusRecord] = []

    @torch.no_grad()
    def __call__(self, iteration: int, batch: Batch) -> None:
        shuffle(self.validation, self.generator)
        val_batch = self.trainer.fetch(self.validation.slice(0, self.batch_size))
        with self.trainer.network.evaluating():
            val_cost = float(self.trainer.total_cost(val_batch).mean())
        cost = self.trainer.last_cost
        record = StatusRecord(
            iteration=iteration,
            cost=float("nan") if cost is None else cost,
            validation=val_cost,
        )
        self.history.append(record)
        logger.info(f"iter {iteration}: cost={record.cost} validation={val_cost}")
