"""Dense linear layer."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

import torch

from rbf_classifier.backend import Backend
from rbf_classifier.layers.base import check_input_size, copy_state, register_layer


@register_layer("fc")
class FullyConnected:
    """Affine map ``y = x @ weights.T + biases`` applied to each example.

    Inputs are flattened per example, so a ``(N, C, H, W)`` feature map can
    feed the layer directly when ``in_features == C * H * W``.

    Args:
        backend: Tensor factory for the parameters.
        in_features: Values per input example.
        out_features: Values per output example.
    """

    def __init__(self, backend: Backend, in_features: int, out_features: int) -> None:
        self.in_features = in_features
        self.out_features = out_features
        self.weights = backend.randn(out_features, in_features) / math.sqrt(
            in_features
        )
        self.biases = backend.zeros(out_features)
        self.training = True

    def forward(self, x: torch.Tensor, batch_size: int) -> torch.Tensor:
        check_input_size(self, x, batch_size, self.in_features)
        flat = x.reshape(batch_size, self.in_features)
        return flat @ self.weights.T + self.biases

    def gradient(
        self, x: torch.Tensor, output_grad: torch.Tensor
    ) -> tuple[torch.Tensor, list[torch.Tensor]]:
        batch_size = output_grad.shape[0]
        flat = x.reshape(batch_size, self.in_features)
        weights_grad = output_grad.T @ flat
        biases_grad = output_grad.sum(dim=0)
        input_grad = (output_grad @ self.weights).reshape(x.shape)
        return input_grad, [weights_grad, biases_grad]

    def parameters(self) -> list[torch.Tensor]:
        return [self.weights, self.biases]

    def config(self) -> dict[str, Any]:
        return {"in_features": self.in_features, "out_features": self.out_features}

    def state_dict(self) -> dict[str, torch.Tensor]:
        return {"weights": self.weights, "biases": self.biases}

    def load_state_dict(self, state: Mapping[str, torch.Tensor]) -> None:
        copy_state(self, self.state_dict(), state)
