"""Layer capability interface and the registry of known layer kinds."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol, TypeVar, runtime_checkable

import torch

from rbf_classifier.errors import CheckpointError, ShapeError
from rbf_classifier.utils.hydra import register

T = TypeVar("T")

LAYER_KINDS: dict[str, type[Any]] = {}


@runtime_checkable
class Layer(Protocol):
    """What a network needs from each of its layers.

    ``forward`` maps a batch laid out as ``(batch_size, ...)`` to the layer's
    output.  ``gradient`` is the local reverse-mode derivative: given the
    same input and the gradient of the cost with respect to the output, it
    returns the gradient with respect to the input and one gradient per
    tensor in ``parameters()`` (an empty list for parameter-free layers).
    """

    training: bool

    def forward(self, x: torch.Tensor, batch_size: int) -> torch.Tensor: ...

    def gradient(
        self, x: torch.Tensor, output_grad: torch.Tensor
    ) -> tuple[torch.Tensor, list[torch.Tensor]]: ...

    def parameters(self) -> list[torch.Tensor]: ...

    def config(self) -> dict[str, Any]: ...

    def state_dict(self) -> dict[str, torch.Tensor]: ...

    def load_state_dict(self, state: Mapping[str, torch.Tensor]) -> None: ...


def register_layer(kind: str) -> Callable[[type[T]], type[T]]:
    """Record a layer class under ``kind`` for checkpoints and Hydra configs."""

    def _decorate(cls: type[T]) -> type[T]:
        if kind in LAYER_KINDS:
            raise ValueError(f"Layer kind {kind!r} is already registered")
        cls.kind = kind  # type: ignore[attr-defined]
        LAYER_KINDS[kind] = cls
        register(cls, group="layer", name=kind)
        return cls

    return _decorate


def layer_kind(layer: Layer) -> str:
    kind = getattr(type(layer), "kind", None)
    if kind is None or LAYER_KINDS.get(kind) is not type(layer):
        raise TypeError(f"{type(layer).__name__} is not a registered layer kind")
    return kind


def check_input_size(
    layer: Layer, x: torch.Tensor, batch_size: int, example_size: int
) -> None:
    """Raise ShapeError unless ``x`` holds ``batch_size`` examples of that size."""
    if batch_size <= 0:
        raise ShapeError(f"{type(layer).__name__}: batch size must be positive")
    if x.numel() != batch_size * example_size:
        raise ShapeError(
            f"{type(layer).__name__}: expected {batch_size} x {example_size} "
            f"values, got tensor of shape {tuple(x.shape)}"
        )


def copy_state(
    layer: Layer,
    targets: Mapping[str, torch.Tensor],
    state: Mapping[str, torch.Tensor],
) -> None:
    """Copy checkpointed tensors into the layer's own storage, in place."""
    missing = set(targets) - set(state)
    unexpected = set(state) - set(targets)
    if missing or unexpected:
        raise CheckpointError(
            f"{type(layer).__name__}: state keys mismatch "
            f"(missing={sorted(missing)}, unexpected={sorted(unexpected)})"
        )
    for name, target in targets.items():
        value = state[name]
        if tuple(value.shape) != tuple(target.shape):
            raise CheckpointError(
                f"{type(layer).__name__}.{name}: expected shape "
                f"{tuple(target.shape)}, got {tuple(value.shape)}"
            )
        target.copy_(value)
