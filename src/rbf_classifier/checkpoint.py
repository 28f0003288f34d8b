"""Network checkpoint read/write.

A checkpoint is a ``torch.save`` archive of plain containers::

    {"format_version": 1,
     "layers": [{"kind": "sliding_rbf", "config": {...}, "state": {...}}, ...]}

so it can be read back with ``weights_only=True``.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import torch
from loguru import logger

from rbf_classifier.backend import Backend
from rbf_classifier.errors import CheckpointError
from rbf_classifier.layers import LAYER_KINDS, layer_kind
from rbf_classifier.network import Network

FORMAT_VERSION = 1


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def network_to_dict(network: Network) -> dict[str, Any]:
    return {
        "format_version": FORMAT_VERSION,
        "layers": [
            {
                "kind": layer_kind(layer),
                "config": layer.config(),
                "state": {
                    name: tensor.detach().cpu().clone()
                    for name, tensor in layer.state_dict().items()
                },
            }
            for layer in network
        ],
    }


def network_from_dict(data: dict[str, Any], backend: Backend) -> Network:
    version = data.get("format_version")
    if version != FORMAT_VERSION:
        raise CheckpointError(f"Unsupported checkpoint format version: {version!r}")
    layers = []
    for entry in data["layers"]:
        kind = entry["kind"]
        if kind not in LAYER_KINDS:
            raise CheckpointError(f"Unknown layer kind in checkpoint: {kind!r}")
        layer = LAYER_KINDS[kind](backend=backend, **entry["config"])
        layer.load_state_dict(entry["state"])
        layers.append(layer)
    return Network(layers)


def save_network(path: str | Path, network: Network) -> None:
    """Write ``network`` to ``path`` atomically.

    The archive is written to a temporary file in the destination directory
    and renamed over ``path``, so a failed save leaves any previous
    checkpoint intact.  The file gets the usual umask-derived permissions.
    Errors propagate to the caller.
    """
    path = Path(path)
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            torch.save(network_to_dict(network), f)
        os.chmod(tmp_name, 0o666 & ~_current_umask())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info(f"Saved network to {path}")


def load_network(path: str | Path, backend: Backend) -> Network:
    """Read a network saved by :func:`save_network`.

    Raises:
        CheckpointError: If the file is missing, unreadable or not a network
            checkpoint.
    """
    path = Path(path)
    if not path.is_file():
        raise CheckpointError(f"No checkpoint at {path}")
    try:
        data = torch.load(path, map_location=backend.device, weights_only=True)
    except Exception as e:
        raise CheckpointError(f"Could not read checkpoint {path}: {e}") from e
    if not isinstance(data, dict) or "layers" not in data:
        raise CheckpointError(f"{path} is not a network checkpoint")
    try:
        network = network_from_dict(data, backend)
    except (KeyError, TypeError, ValueError) as e:
        raise CheckpointError(f"Malformed checkpoint {path}: {e}") from e
    logger.info(f"Loaded network from {path}")
    return network
