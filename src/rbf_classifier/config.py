"""Pydantic frozen configuration models for rbf_classifier."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class BackendConfig(BaseModel, frozen=True):
    """Numeric backend selection.

    Every component that allocates tensors receives a ``Backend`` built from
    this config instead of consulting a process-wide default.

    seed: Fixes the shuffling and initialization RNG. ``None`` draws a fresh
        seed once per process.
    """

    dtype: Literal["float32", "float64"] = "float32"
    device: str = "cpu"
    seed: int | None = None


class TrainConfig(BaseModel, frozen=True):
    """Configuration for a training or evaluation run.

    All fields are validated at construction time. Frozen: no mutation after creation.
    """

    samples: str | None = None
    net_path: str = "out_net"
    step_size: float = Field(default=0.001, gt=0)
    batch_size: int = Field(default=64, gt=0)
    train_batch_size: int = Field(default=200, gt=0)
    status_interval: int = Field(default=1, gt=0)
    success_rate: bool = False
    log_level: str = "INFO"
    backend: BackendConfig = BackendConfig()

    @model_validator(mode="after")
    def _empty_samples_is_missing(self) -> "TrainConfig":
        """An empty string on the command line means the flag was not given."""
        if self.samples is not None and not self.samples.strip():
            object.__setattr__(self, "samples", None)
        return self
