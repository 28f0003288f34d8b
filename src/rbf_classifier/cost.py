"""Dot-product cost for log-probability outputs."""

from __future__ import annotations

import torch


class DotCost:
    """Per-example cost ``-dot(output, expected)``.

    With log-probability outputs and one-hot expectations this is the
    cross-entropy of the expected class.
    """

    def cost(self, output: torch.Tensor, expected: torch.Tensor) -> torch.Tensor:
        """Return a ``(batch,)`` tensor of per-example costs."""
        return -(output * expected).reshape(expected.shape[0], -1).sum(dim=1)

    def gradient(self, output: torch.Tensor, expected: torch.Tensor) -> torch.Tensor:
        """Gradient of the summed cost with respect to ``output``."""
        return -expected.reshape(output.shape)
