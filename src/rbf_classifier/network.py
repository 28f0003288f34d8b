"""Ordered layer composition and its construction from config."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

import hydra.utils
import torch
from loguru import logger

from rbf_classifier.backend import Backend
from rbf_classifier.layers import Layer, layer_kind


class Network:
    """Layers applied strictly left to right.

    Adjacent layers are expected to agree on shapes; a mismatch surfaces as
    ``ShapeError`` from the first layer that receives the wrong size.
    """

    def __init__(self, layers: Sequence[Layer]) -> None:
        self.layers: list[Layer] = list(layers)

    def __len__(self) -> int:
        return len(self.layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    def __getitem__(self, index: int) -> Layer:
        return self.layers[index]

    def __repr__(self) -> str:
        kinds = ", ".join(layer_kind(layer) for layer in self.layers)
        return f"Network([{kinds}])"

    # ------------------------------------------------------------------
    # Mode
    # ------------------------------------------------------------------

    @property
    def training(self) -> bool:
        return all(layer.training for layer in self.layers)

    def train(self, mode: bool = True) -> Network:
        for layer in self.layers:
            layer.training = mode
        return self

    def eval(self) -> Network:
        return self.train(False)

    @contextmanager
    def evaluating(self) -> Iterator[Network]:
        """Temporarily switch every layer to eval mode."""
        previous = [layer.training for layer in self.layers]
        self.eval()
        try:
            yield self
        finally:
            for layer, mode in zip(self.layers, previous):
                layer.training = mode

    # ------------------------------------------------------------------
    # Forward / backward
    # ------------------------------------------------------------------

    def forward(self, x: torch.Tensor, batch_size: int) -> torch.Tensor:
        for layer in self.layers:
            x = layer.forward(x, batch_size)
        return x

    def __call__(self, x: torch.Tensor, batch_size: int) -> torch.Tensor:
        return self.forward(x, batch_size)

    def forward_cached(
        self, x: torch.Tensor, batch_size: int
    ) -> tuple[torch.Tensor, list[torch.Tensor]]:
        """Forward pass that also returns every layer's input for ``backward``."""
        inputs: list[torch.Tensor] = []
        for layer in self.layers:
            inputs.append(x)
            x = layer.forward(x, batch_size)
        return x, inputs

    def backward(
        self, inputs: Sequence[torch.Tensor], output_grad: torch.Tensor
    ) -> list[torch.Tensor]:
        """Propagate ``output_grad`` through the layers in reverse.

        Returns one gradient per tensor of :meth:`parameters`, in the same order.
        """
        if len(inputs) != len(self.layers):
            raise ValueError(
                f"Expected {len(self.layers)} cached inputs, got {len(inputs)}"
            )
        per_layer: list[list[torch.Tensor]] = []
        grad = output_grad
        for layer, x in zip(reversed(self.layers), reversed(inputs)):
            grad, param_grads = layer.gradient(x, grad)
            per_layer.append(param_grads)
        return [g for grads in reversed(per_layer) for g in grads]

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def parameters(self) -> list[torch.Tensor]:
        return [p for layer in self.layers for p in layer.parameters()]

    def num_parameters(self) -> int:
        return sum(p.numel() for p in self.parameters())


def build_network(
    layer_configs: Sequence[Mapping[str, Any]], backend: Backend
) -> Network:
    """Instantiate each ``_target_`` layer node with the given backend.

    Nodes are instantiated as partials so the backend (and its generator) is
    handed to every layer as-is rather than merged into the config.
    """
    layers = [
        hydra.utils.instantiate(node, _partial_=True)(backend=backend)
        for node in layer_configs
    ]
    network = Network(layers)
    logger.debug(f"Built {network!r} with {network.num_parameters():,} parameters")
    return network
