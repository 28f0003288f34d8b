"""Log-softmax output layer."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import torch

from rbf_classifier.backend import Backend
from rbf_classifier.errors import ShapeError
from rbf_classifier.layers.base import copy_state, register_layer


@register_layer("log_softmax")
class LogSoftmax:
    """Normalizes each example's last axis into log-probabilities.

    Stateless and parameter-free.  The backend argument is accepted so every
    layer kind can be built the same way from config.
    """

    def __init__(self, backend: Backend | None = None) -> None:
        self.training = True

    def forward(self, x: torch.Tensor, batch_size: int) -> torch.Tensor:
        if batch_size <= 0 or x.numel() % batch_size:
            raise ShapeError(
                f"LogSoftmax: cannot split shape {tuple(x.shape)} "
                f"into {batch_size} examples"
            )
        rows = x.reshape(batch_size, -1)
        return rows - torch.logsumexp(rows, dim=-1, keepdim=True)

    def gradient(
        self, x: torch.Tensor, output_grad: torch.Tensor
    ) -> tuple[torch.Tensor, list[torch.Tensor]]:
        rows = x.reshape(output_grad.shape)
        probs = torch.softmax(rows, dim=-1)
        input_grad = output_grad - probs * output_grad.sum(dim=-1, keepdim=True)
        return input_grad.reshape(x.shape), []

    def parameters(self) -> list[torch.Tensor]:
        return []

    def config(self) -> dict[str, Any]:
        return {}

    def state_dict(self) -> dict[str, torch.Tensor]:
        return {}

    def load_state_dict(self, state: Mapping[str, torch.Tensor]) -> None:
        copy_state(self, {}, state)
