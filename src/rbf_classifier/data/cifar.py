"""CIFAR-10 binary batch decoder.

Each shard (``data_batch_1.bin`` ... ``data_batch_5.bin``, ``test_batch.bin``)
is a flat sequence of 3073-byte records: one label byte followed by a
32x32 image stored channel-major (1024 red, 1024 green, 1024 blue bytes).
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import torch
from loguru import logger

from rbf_classifier.data.samples import SampleList
from rbf_classifier.errors import DatasetError

NUM_CLASSES = 10
IMAGE_SHAPE: tuple[int, int, int] = (3, 32, 32)
RECORD_SIZE = 1 + 3 * 32 * 32

TRAIN_SHARDS: tuple[str, ...] = tuple(f"data_batch_{i}.bin" for i in range(1, 6))
TEST_SHARD = "test_batch.bin"


def to_unit_range(pixels: torch.Tensor) -> torch.Tensor:
    """Map stored ``uint8`` pixels to floats in ``[0, 1]``."""
    return pixels.to(torch.float32) / 255.0


def load_shard(path: Path) -> SampleList:
    """Decode one binary shard into a SampleList of uint8 images."""
    if not path.is_file():
        raise DatasetError(f"CIFAR-10 shard not found: {path}")
    raw = np.fromfile(path, dtype=np.uint8)
    if raw.size == 0 or raw.size % RECORD_SIZE:
        raise DatasetError(
            f"{path}: size {raw.size} is not a multiple of {RECORD_SIZE}-byte records"
        )
    records = raw.reshape(-1, RECORD_SIZE)
    labels = records[:, 0].astype(np.int64)
    if labels.max() >= NUM_CLASSES:
        raise DatasetError(f"{path}: label {labels.max()} out of range")
    images = records[:, 1:].reshape(-1, *IMAGE_SHAPE)
    logger.debug(f"Loaded {len(labels)} samples from {path.name}")
    return SampleList(
        torch.from_numpy(np.ascontiguousarray(images)),
        torch.from_numpy(labels),
        NUM_CLASSES,
        transform=to_unit_range,
    )


def load_cifar10(directory: str | Path) -> list[SampleList]:
    """Load the five training shards followed by the test shard.

    Raises:
        DatasetError: If the directory or any shard is missing or malformed.
    """
    root = Path(directory)
    if not root.is_dir():
        raise DatasetError(f"CIFAR-10 directory not found: {root}")
    shards = [load_shard(root / name) for name in (*TRAIN_SHARDS, TEST_SHARD)]
    logger.info(
        f"Loaded CIFAR-10 from {root}: {sum(len(s) for s in shards)} samples "
        f"in {len(shards)} shards"
    )
    return shards


def split_train_validation(
    shards: list[SampleList],
) -> tuple[SampleList, SampleList]:
    """Training set = every shard but the last; validation set = the last."""
    if len(shards) < 2:
        raise DatasetError(f"Need at least 2 shards, got {len(shards)}")
    return SampleList.concat(shards[:-1]), shards[-1]
