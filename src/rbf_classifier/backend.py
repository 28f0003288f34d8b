"""Explicit numeric backend: tensor dtype, device and random generator."""

from __future__ import annotations

import torch
from loguru import logger

from rbf_classifier.config import BackendConfig

_DTYPES: dict[str, torch.dtype] = {
    "float32": torch.float32,
    "float64": torch.float64,
}


class Backend:
    """Creates tensors for layers, trainers and sample lists.

    The generator is seeded exactly once, when the backend is built.  With no
    configured seed it is drawn from OS entropy, so two runs shuffle
    differently unless the caller pins ``BackendConfig.seed``.

    Args:
        config: Frozen backend selection; defaults to float32 on CPU.
    """

    def __init__(self, config: BackendConfig | None = None) -> None:
        self.config = config or BackendConfig()
        self.dtype = _DTYPES[self.config.dtype]
        self.device = torch.device(self.config.device)
        self.generator = torch.Generator(device="cpu")
        if self.config.seed is None:
            seed = self.generator.seed()
        else:
            seed = self.config.seed
            self.generator.manual_seed(seed)
        self.seed = seed
        logger.debug(
            f"Backend: dtype={self.config.dtype} device={self.device} seed={seed}"
        )

    def zeros(self, *shape: int) -> torch.Tensor:
        return torch.zeros(*shape, dtype=self.dtype, device=self.device)

    def ones(self, *shape: int) -> torch.Tensor:
        return torch.ones(*shape, dtype=self.dtype, device=self.device)

    def randn(self, *shape: int) -> torch.Tensor:
        """Standard normal samples drawn from the backend generator."""
        values = torch.randn(*shape, generator=self.generator, dtype=self.dtype)
        return values.to(self.device)

    def tensor(self, data: torch.Tensor) -> torch.Tensor:
        """Convert ``data`` to the backend dtype and device."""
        return data.to(device=self.device, dtype=self.dtype)

    def randperm(self, n: int) -> torch.Tensor:
        return torch.randperm(n, generator=self.generator)

    def __repr__(self) -> str:
        return f"Backend(dtype={self.config.dtype}, device={self.device})"
