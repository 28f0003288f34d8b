"""Sliding radial-basis-function layer.

Every filter holds a center and a per-element scale for one kernel-sized
patch.  At each kernel position the filter responds with

    exp(-sum_d (scales[f, d] * (patch[d] - centers[f, d])) ** 2)

so the output lies in ``(0, 1]`` and peaks when the patch equals the center.
Patches are taken without padding; the output spatial size along each axis
is ``(input - kernel) // stride + 1``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

import torch
import torch.nn.functional as F

from rbf_classifier.backend import Backend
from rbf_classifier.errors import ShapeError
from rbf_classifier.layers.base import check_input_size, copy_state, register_layer


@register_layer("sliding_rbf")
class SlidingRBF:
    """Local-receptive-field RBF transform over ``(N, depth, height, width)`` input.

    Args:
        backend: Tensor factory for the parameters.
        input_width, input_height, input_depth: Input image dimensions.
        kernel_width, kernel_height: Receptive field size.
        num_filters: Output channels.
        stride_x, stride_y: Step between neighbouring kernel positions.
    """

    def __init__(
        self,
        backend: Backend,
        input_width: int,
        input_height: int,
        input_depth: int,
        kernel_width: int,
        kernel_height: int,
        num_filters: int,
        stride_x: int = 1,
        stride_y: int = 1,
    ) -> None:
        if kernel_width > input_width or kernel_height > input_height:
            raise ShapeError("SlidingRBF: kernel is larger than the input")
        self.input_width = input_width
        self.input_height = input_height
        self.input_depth = input_depth
        self.kernel_width = kernel_width
        self.kernel_height = kernel_height
        self.num_filters = num_filters
        self.stride_x = stride_x
        self.stride_y = stride_y

        patch_size = input_depth * kernel_height * kernel_width
        self.centers = backend.randn(num_filters, patch_size)
        self.scales = backend.ones(num_filters, patch_size) / math.sqrt(patch_size)
        self.training = True

    @property
    def output_width(self) -> int:
        return (self.input_width - self.kernel_width) // self.stride_x + 1

    @property
    def output_height(self) -> int:
        return (self.input_height - self.kernel_height) // self.stride_y + 1

    @property
    def input_size(self) -> int:
        return self.input_depth * self.input_height * self.input_width

    def _patches(self, x: torch.Tensor, batch_size: int) -> torch.Tensor:
        """Unfold into ``(N, patch_size, positions)`` columns."""
        images = x.reshape(
            batch_size, self.input_depth, self.input_height, self.input_width
        )
        return F.unfold(
            images,
            kernel_size=(self.kernel_height, self.kernel_width),
            stride=(self.stride_y, self.stride_x),
        )

    def forward(self, x: torch.Tensor, batch_size: int) -> torch.Tensor:
        check_input_size(self, x, batch_size, self.input_size)
        patches = self._patches(x, batch_size)
        squared_scales = self.scales * self.scales
        # Expanded form of sum_d S * (x - c)^2, avoiding an (N, F, D, L) tensor.
        distance = (
            squared_scales @ (patches * patches)
            - 2 * (squared_scales * self.centers) @ patches
            + (squared_scales * self.centers * self.centers).sum(dim=1)[:, None]
        )
        out = torch.exp(-distance)
        return out.reshape(
            batch_size, self.num_filters, self.output_height, self.output_width
        )

    def gradient(
        self, x: torch.Tensor, output_grad: torch.Tensor
    ) -> tuple[torch.Tensor, list[torch.Tensor]]:
        batch_size = output_grad.shape[0]
        patches = self._patches(x, batch_size)
        out = self.forward(x, batch_size).reshape(batch_size, self.num_filters, -1)
        distance_grad = -out * output_grad.reshape(out.shape)

        squared_scales = self.scales * self.scales
        total = distance_grad.sum(dim=(0, 2))[:, None]
        linear = (distance_grad @ patches.transpose(1, 2)).sum(dim=0)
        quadratic = (distance_grad @ (patches * patches).transpose(1, 2)).sum(dim=0)

        centers_grad = -2 * squared_scales * (linear - self.centers * total)
        scales_grad = (
            2
            * self.scales
            * (
                quadratic
                - 2 * self.centers * linear
                + self.centers * self.centers * total
            )
        )

        patches_grad = 2 * patches * (squared_scales.T @ distance_grad) - 2 * (
            (squared_scales * self.centers).T @ distance_grad
        )
        input_grad = F.fold(
            patches_grad,
            output_size=(self.input_height, self.input_width),
            kernel_size=(self.kernel_height, self.kernel_width),
            stride=(self.stride_y, self.stride_x),
        )
        return input_grad.reshape(x.shape), [centers_grad, scales_grad]

    def parameters(self) -> list[torch.Tensor]:
        return [self.centers, self.scales]

    def config(self) -> dict[str, Any]:
        return {
            "input_width": self.input_width,
            "input_height": self.input_height,
            "input_depth": self.input_depth,
            "kernel_width": self.kernel_width,
            "kernel_height": self.kernel_height,
            "num_filters": self.num_filters,
            "stride_x": self.stride_x,
            "stride_y": self.stride_y,
        }

    def state_dict(self) -> dict[str, torch.Tensor]:
        return {"centers": self.centers, "scales": self.scales}

    def load_state_dict(self, state: Mapping[str, torch.Tensor]) -> None:
        copy_state(self, self.state_dict(), state)
