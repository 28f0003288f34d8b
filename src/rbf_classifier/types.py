"""Type aliases and TypedDicts for rbf_classifier inter-module contracts."""

from typing import TypedDict

import torch


class Batch(TypedDict):
    """A single minibatch produced by ``GradientTrainer.fetch``.

    inputs: Float tensor of shape (B, ...), one example per leading index.
    outputs: Float tensor of shape (B, num_classes), one-hot expected outputs.
    """

    inputs: torch.Tensor
    outputs: torch.Tensor
