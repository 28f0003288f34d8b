"""Classification accuracy on a held-out sample list."""

from __future__ import annotations

import torch
import torch.nn.functional as F
from loguru import logger

from rbf_classifier.backend import Backend
from rbf_classifier.data.samples import SampleList
from rbf_classifier.network import Network
from rbf_classifier.trainer import GradientTrainer


@torch.no_grad()
def success_rate(
    network: Network,
    samples: SampleList,
    batch_size: int,
    backend: Backend,
) -> float:
    """Percentage of examples whose arg-max output matches the label.

    Walks ``samples`` in non-overlapping batches of ``batch_size``; a trailing
    partial batch is dropped.  The network runs in eval mode and its
    parameters are left untouched.

    Raises:
        ValueError: If ``samples`` holds fewer than ``batch_size`` examples.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    fetcher = GradientTrainer(network, backend)
    correct = 0.0
    total = 0
    with network.evaluating():
        for start in range(0, len(samples) - batch_size + 1, batch_size):
            batch = fetcher.fetch(samples.slice(start, start + batch_size))
            outputs = network.forward(batch["inputs"], batch_size)
            predicted = F.one_hot(
                outputs.reshape(batch_size, -1).argmax(dim=1),
                num_classes=samples.num_classes,
            ).to(batch["outputs"].dtype)
            correct += float((predicted * batch["outputs"]).sum())
            total += batch_size
    if total == 0:
        raise ValueError(
            f"Need at least {batch_size} samples to measure accuracy, "
            f"got {len(samples)}"
        )
    rate = 100 * correct / total
    logger.info(f"Got {rate:.3f}%")
    return rate
