"""Adam gradient transformer and learning-rate schedules."""

from __future__ import annotations

import math
from collections.abc import Sequence

import torch


class ConstantRate:
    """Learning rate that ignores the iteration number."""

    def __init__(self, rate: float) -> None:
        if rate <= 0:
            raise ValueError(f"learning rate must be positive, got {rate}")
        self.rate = rate

    def __call__(self, iteration: int) -> float:
        return self.rate

    def __repr__(self) -> str:
        return f"ConstantRate({self.rate})"


class Adam:
    """Converts raw gradients into Adam update directions.

    Implements the Adam algorithm:
    - m = beta1 * m + (1 - beta1) * grad
    - v = beta2 * v + (1 - beta2) * grad^2
    - m_hat = m / (1 - beta1^t)
    - v_hat = v / (1 - beta2^t)
    - update = lr * m_hat / (sqrt(v_hat) + eps)

    The caller subtracts the update from the parameter.  Moment estimates are
    allocated lazily on the first call, zero-initialized, one pair per
    gradient position; the gradient list must keep the same order and shapes
    from call to call.

    Args:
        beta1: Decay rate of the first moment estimate.
        beta2: Decay rate of the second moment estimate.
        epsilon: Added to the denominator for numerical stability.
    """

    def __init__(
        self, beta1: float = 0.9, beta2: float = 0.999, epsilon: float = 1e-8
    ) -> None:
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon
        self.step_count = 0
        self.first_moments: list[torch.Tensor] = []
        self.second_moments: list[torch.Tensor] = []

    def transform(
        self, gradients: Sequence[torch.Tensor], learning_rate: float
    ) -> list[torch.Tensor]:
        """Update the moment estimates and return one update per gradient."""
        if not self.first_moments:
            self.first_moments = [torch.zeros_like(g) for g in gradients]
            self.second_moments = [torch.zeros_like(g) for g in gradients]
        elif len(gradients) != len(self.first_moments):
            raise ValueError(
                f"Adam was tracking {len(self.first_moments)} gradients, "
                f"got {len(gradients)}"
            )

        self.step_count += 1
        bias1 = 1 - self.beta1**self.step_count
        bias2 = 1 - self.beta2**self.step_count
        # lr * m_hat / (sqrt(v_hat) + eps), with both corrections folded in.
        step_size = learning_rate / bias1
        root_bias2 = math.sqrt(bias2)

        updates: list[torch.Tensor] = []
        for grad, m, v in zip(gradients, self.first_moments, self.second_moments):
            m.mul_(self.beta1).add_(grad, alpha=1 - self.beta1)
            v.mul_(self.beta2).addcmul_(grad, grad, value=1 - self.beta2)
            denom = v.sqrt().div_(root_bias2).add_(self.epsilon)
            updates.append(m * step_size / denom)
        return updates

    def __repr__(self) -> str:
        return (
            f"Adam(beta1={self.beta1}, beta2={self.beta2}, "
            f"epsilon={self.epsilon}, step={self.step_count})"
        )
