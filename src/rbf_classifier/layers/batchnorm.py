"""Per-channel batch normalization."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import torch

from rbf_classifier.backend import Backend
from rbf_classifier.errors import ShapeError
from rbf_classifier.layers.base import copy_state, register_layer


@register_layer("batchnorm")
class BatchNorm:
    """Normalizes every channel to zero mean and unit variance, then rescales.

    Accepts ``(N, C)`` or ``(N, C, H, W)`` input; statistics are taken over
    every axis except the channel axis.  In training mode the batch
    statistics are used and folded into ``running_mean`` / ``running_var``
    by an exponential moving average on every forward call.  In eval mode the
    running statistics are used instead.

    Args:
        backend: Tensor factory for the parameters and buffers.
        num_channels: Number of channels ``C``.
        momentum: Weight of the newest batch in the moving average.
        epsilon: Added to the variance before the square root.
    """

    def __init__(
        self,
        backend: Backend,
        num_channels: int,
        momentum: float = 0.1,
        epsilon: float = 1e-5,
    ) -> None:
        self.num_channels = num_channels
        self.momentum = momentum
        self.epsilon = epsilon
        self.scales = backend.ones(num_channels)
        self.biases = backend.zeros(num_channels)
        self.running_mean = backend.zeros(num_channels)
        self.running_var = backend.ones(num_channels)
        self.training = True

    def _channels(self, x: torch.Tensor, batch_size: int) -> torch.Tensor:
        per_example = self.num_channels
        if batch_size <= 0 or x.numel() % (batch_size * per_example):
            raise ShapeError(
                f"BatchNorm: cannot split shape {tuple(x.shape)} into "
                f"{batch_size} examples of {per_example} channels"
            )
        return x.reshape(batch_size, per_example, -1)

    def _statistics(self, x3: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
        if self.training:
            mean = x3.mean(dim=(0, 2))
            var = x3.var(dim=(0, 2), unbiased=False)
            return mean, var
        return self.running_mean, self.running_var

    def forward(self, x: torch.Tensor, batch_size: int) -> torch.Tensor:
        x3 = self._channels(x, batch_size)
        mean, var = self._statistics(x3)
        if self.training:
            with torch.no_grad():
                self.running_mean.mul_(1 - self.momentum).add_(
                    mean.detach(), alpha=self.momentum
                )
                self.running_var.mul_(1 - self.momentum).add_(
                    var.detach(), alpha=self.momentum
                )
        inv_std = torch.rsqrt(var + self.epsilon)
        normalized = (x3 - mean[:, None]) * inv_std[:, None]
        out = normalized * self.scales[:, None] + self.biases[:, None]
        return out.reshape(x.shape)

    def gradient(
        self, x: torch.Tensor, output_grad: torch.Tensor
    ) -> tuple[torch.Tensor, list[torch.Tensor]]:
        batch_size = output_grad.shape[0]
        x3 = self._channels(x, batch_size)
        grad3 = output_grad.reshape(x3.shape)
        mean, var = self._statistics(x3)
        inv_std = torch.rsqrt(var + self.epsilon)
        normalized = (x3 - mean[:, None]) * inv_std[:, None]

        scales_grad = (grad3 * normalized).sum(dim=(0, 2))
        biases_grad = grad3.sum(dim=(0, 2))
        normalized_grad = grad3 * self.scales[:, None]

        if self.training:
            # Batch statistics depend on every example in the batch.
            count = x3.shape[0] * x3.shape[2]
            input_grad = (inv_std[:, None] / count) * (
                count * normalized_grad
                - normalized_grad.sum(dim=(0, 2), keepdim=True)
                - normalized
                * (normalized_grad * normalized).sum(dim=(0, 2), keepdim=True)
            )
        else:
            input_grad = normalized_grad * inv_std[:, None]
        return input_grad.reshape(x.shape), [scales_grad, biases_grad]

    def parameters(self) -> list[torch.Tensor]:
        return [self.scales, self.biases]

    def config(self) -> dict[str, Any]:
        return {
            "num_channels": self.num_channels,
            "momentum": self.momentum,
            "epsilon": self.epsilon,
        }

    def state_dict(self) -> dict[str, torch.Tensor]:
        return {
            "scales": self.scales,
            "biases": self.biases,
            "running_mean": self.running_mean,
            "running_var": self.running_var,
        }

    def load_state_dict(self, state: Mapping[str, torch.Tensor]) -> None:
        copy_state(self, self.state_dict(), state)
