"""Batch fetching, cost evaluation and reverse-mode gradients for a Network."""

from __future__ import annotations

from collections.abc import Sequence

import torch
import torch.nn.functional as F

from rbf_classifier.backend import Backend
from rbf_classifier.cost import DotCost
from rbf_classifier.data.samples import SampleList
from rbf_classifier.errors import EmptyBatchError
from rbf_classifier.network import Network
from rbf_classifier.types import Batch


class GradientTrainer:
    """Turns sample slices into batches and batches into gradients.

    Args:
        network: The network whose parameters are differentiated.
        backend: Tensor factory; batch tensors are cast to its dtype/device.
        cost: Per-example cost function.
        params: Parameters to differentiate; defaults to all of the network's.
            Must be a subset of ``network.parameters()``.
        average: Divide gradients and the reported cost by the batch size so
            the step size does not depend on the batch size.
    """

    def __init__(
        self,
        network: Network,
        backend: Backend,
        cost: DotCost | None = None,
        params: Sequence[torch.Tensor] | None = None,
        average: bool = True,
    ) -> None:
        self.network = network
        self.backend = backend
        self.cost = cost or DotCost()
        self.params = list(params) if params is not None else network.parameters()
        self.average = average
        self.last_cost: float | None = None

    def fetch(self, samples: SampleList) -> Batch:
        """Stack the samples' inputs and one-hot expected outputs."""
        inputs, labels = samples.tensors()
        outputs = F.one_hot(labels.long(), num_classes=samples.num_classes)
        return {
            "inputs": self.backend.tensor(inputs),
            "outputs": self.backend.tensor(outputs),
        }

    def total_cost(self, batch: Batch) -> torch.Tensor:
        """Forward pass plus cost: one value per example in the batch."""
        batch_size = _batch_size(batch)
        output = self.network.forward(batch["inputs"], batch_size)
        return self.cost.cost(output, batch["outputs"])

    def gradient(self, batch: Batch) -> tuple[list[torch.Tensor], float]:
        """Gradients for ``self.params`` and the batch cost.

        Both are divided by the batch size when ``average`` is set.  The cost
        is also kept in ``last_cost``.
        """
        batch_size = _batch_size(batch)
        output, inputs = self.network.forward_cached(batch["inputs"], batch_size)
        expected = batch["outputs"]
        cost = float(self.cost.cost(output, expected).sum())
        grads = self.network.backward(inputs, self.cost.gradient(output, expected))

        by_id = {id(p): g for p, g in zip(self.network.parameters(), grads)}
        selected = [by_id[id(p)] for p in self.params]
        if self.average:
            selected = [g / batch_size for g in selected]
            cost /= batch_size
        self.last_cost = cost
        return selected, cost


def _batch_size(batch: Batch) -> int:
    size = batch["inputs"].shape[0] if batch["inputs"].dim() else 0
    if size == 0:
        raise EmptyBatchError("Cannot compute a cost or gradient for an empty batch")
    return size
