"""Shared pytest fixtures for rbf_classifier tests."""

from pathlib import Path

import numpy as np
import pytest
import torch
from loguru import logger

from rbf_classifier.backend import Backend
from rbf_classifier.config import BackendConfig
from rbf_classifier.data.cifar import RECORD_SIZE, TEST_SHARD, TRAIN_SHARDS
from rbf_classifier.data.samples import SampleList


def write_shard(path: Path, labels: list[int], seed: int = 0) -> None:
    """Write a CIFAR-10 binary shard with random pixels and the given labels."""
    rng = np.random.default_rng(seed)
    records = rng.integers(0, 256, size=(len(labels), RECORD_SIZE), dtype=np.uint8)
    records[:, 0] = labels
    records.tofile(path)


@pytest.fixture()
def backend() -> Backend:
    """Double-precision, seeded backend so gradient checks are tight."""
    return Backend(BackendConfig(dtype="float64", seed=0))


@pytest.fixture()
def cifar_dir(tmp_path: Path) -> Path:
    """Miniature CIFAR-10 directory.

    5 training shards x 12 records + a 10-record test shard, labels cycling
    through the 10 classes.
    """
    root = tmp_path / "cifar-10-batches-bin"
    root.mkdir()
    for i, name in enumerate(TRAIN_SHARDS):
        write_shard(root / name, [j % 10 for j in range(12)], seed=i)
    write_shard(root / TEST_SHARD, list(range(10)), seed=99)
    return root


@pytest.fixture()
def separable_samples() -> SampleList:
    """200 examples of two Gaussian blobs in 4-D, far apart along the diagonal."""
    generator = torch.Generator().manual_seed(1234)
    labels = torch.arange(200) % 2
    centers = torch.where(labels[:, None] == 1, 1.5, -1.5).to(torch.float64)
    inputs = centers + torch.randn(200, 4, generator=generator, dtype=torch.float64)
    return SampleList(inputs, labels, num_classes=2)


@pytest.fixture()
def log_messages() -> list[str]:
    """Collect loguru messages emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda m: messages.append(m.record["message"]), level="DEBUG"
    )
    yield messages
    logger.remove(handler_id)
