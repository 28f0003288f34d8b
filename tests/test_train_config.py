"""Tests for Hydra config composition, TrainConfig validation and the run entrypoint."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pytest
import torch
from hydra import compose, initialize_config_dir
from hydra.core.global_hydra import GlobalHydra
from loguru import logger
from omegaconf import DictConfig, OmegaConf
from pydantic import ValidationError

from rbf_classifier.backend import Backend
from rbf_classifier.checkpoint import FORMAT_VERSION, load_network, save_network
from rbf_classifier.config import BackendConfig, TrainConfig
from rbf_classifier.data import load_cifar10
from rbf_classifier.interrupt import StopSignal
from rbf_classifier.layers import FullyConnected, LogSoftmax, SlidingRBF
from rbf_classifier.network import build_network
from rbf_classifier.train import load_or_build_network, main, run

CONF_DIR = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "..", "src", "rbf_classifier", "conf")
)


@pytest.fixture()
def hydra_cfg() -> Iterator[DictConfig]:
    """Compose the root training config and yield it, clearing GlobalHydra after."""
    GlobalHydra.instance().clear()
    with initialize_config_dir(config_dir=CONF_DIR, version_base=None):
        cfg = compose(config_name="train_cifar")
        yield cfg
    GlobalHydra.instance().clear()


@pytest.fixture()
def hydra_cfg_with_overrides() -> Iterator[Callable[[list[str]], DictConfig]]:
    """Factory fixture for composing config with overrides."""

    def _compose(overrides: list[str]) -> DictConfig:
        GlobalHydra.instance().clear()
        with initialize_config_dir(config_dir=CONF_DIR, version_base=None):
            return compose(config_name="train_cifar", overrides=overrides)

    yield _compose
    GlobalHydra.instance().clear()


def _split(cfg: DictConfig) -> tuple[TrainConfig, list[dict[str, Any]]]:
    """Mirror of what ``main`` does with the composed config."""
    container = OmegaConf.to_container(cfg, resolve=True)
    assert isinstance(container, dict)
    model_cfg = container.pop("model")
    return TrainConfig.model_validate(container), model_cfg["layers"]


class CountdownStop(StopSignal):
    """Reports set after ``allowed`` iterations have been started."""

    def __init__(self, allowed: int) -> None:
        super().__init__()
        self.remaining = allowed

    def is_set(self) -> bool:
        if self.remaining <= 0:
            return True
        self.remaining -= 1
        return False


# --- Config composition ---


def test_defaults_match_command_line_flags(hydra_cfg: DictConfig) -> None:
    config, _ = _split(hydra_cfg)
    assert config.samples is None
    assert config.net_path == "out_net"
    assert config.step_size == pytest.approx(0.001)
    assert config.batch_size == 64
    assert config.train_batch_size == 200
    assert config.status_interval == 1
    assert config.success_rate is False
    assert config.backend == BackendConfig()


def test_model_config_lists_eight_layers(hydra_cfg: DictConfig) -> None:
    layers = hydra_cfg.model.layers
    assert len(layers) == 8
    assert layers[0]._target_ == "rbf_classifier.layers.SlidingRBF"
    assert layers[-1]._target_ == "rbf_classifier.layers.LogSoftmax"
    assert layers[-2].out_features == hydra_cfg.model.num_classes == 10


def test_overrides(
    hydra_cfg_with_overrides: Callable[[list[str]], DictConfig],
) -> None:
    cfg = hydra_cfg_with_overrides(
        [
            "samples=/data/cifar",
            "step_size=0.0005",
            "batch_size=32",
            "success_rate=true",
            "backend.dtype=float64",
            "backend.seed=7",
        ]
    )
    config, _ = _split(cfg)
    assert config.samples == "/data/cifar"
    assert config.step_size == pytest.approx(0.0005)
    assert config.batch_size == 32
    assert config.success_rate is True
    assert config.backend == BackendConfig(dtype="float64", seed=7)


def test_model_builds_cifar_network(hydra_cfg: DictConfig) -> None:
    _, layer_configs = _split(hydra_cfg)
    backend = Backend(BackendConfig(seed=0))
    net = build_network(layer_configs, backend)

    assert [type(layer) for layer in net][::2] == [SlidingRBF] * 3 + [FullyConnected]
    assert isinstance(net[-1], LogSoftmax)
    with net.evaluating():
        out = net(backend.randn(2, 3, 32, 32), 2)
    assert out.shape == (2, 10)
    assert out.dtype == torch.float32
    assert torch.allclose(out.exp().sum(dim=1), torch.ones(2), atol=1e-5)


# --- TrainConfig validation ---


def test_train_config_is_frozen() -> None:
    config = TrainConfig()
    with pytest.raises(ValidationError):
        config.batch_size = 1  # type: ignore[misc]


@pytest.mark.parametrize(
    "field", ["step_size", "batch_size", "train_batch_size", "status_interval"]
)
def test_train_config_rejects_non_positive(field: str) -> None:
    with pytest.raises(ValidationError):
        TrainConfig(**{field: 0})


def test_blank_samples_means_missing() -> None:
    assert TrainConfig(samples="  ").samples is None


def test_backend_config_rejects_unknown_dtype() -> None:
    with pytest.raises(ValidationError):
        BackendConfig(dtype="float16")  # type: ignore[arg-type]


# --- Entrypoint ---


def _tiny_layers() -> list[dict[str, Any]]:
    """A small network over 32x32x3 images so run() tests stay fast."""
    return [
        {
            "_target_": "rbf_classifier.layers.SlidingRBF",
            "input_width": 32,
            "input_height": 32,
            "input_depth": 3,
            "kernel_width": 8,
            "kernel_height": 8,
            "num_filters": 2,
            "stride_x": 8,
            "stride_y": 8,
        },
        {"_target_": "rbf_classifier.layers.BatchNorm", "num_channels": 2},
        {
            "_target_": "rbf_classifier.layers.FullyConnected",
            "in_features": 32,
            "out_features": 10,
        },
        {"_target_": "rbf_classifier.layers.LogSoftmax"},
    ]


def _config(cifar_dir: Path, tmp_path: Path, **kwargs: Any) -> TrainConfig:
    return TrainConfig(
        samples=str(cifar_dir),
        net_path=str(tmp_path / "out_net"),
        batch_size=5,
        train_batch_size=8,
        backend=BackendConfig(seed=0),
        **kwargs,
    )


def test_load_or_build_falls_back_to_new_network(
    tmp_path: Path, log_messages: list[str]
) -> None:
    backend = Backend(BackendConfig(seed=0))
    net = load_or_build_network(str(tmp_path / "absent"), _tiny_layers(), backend)
    assert len(net) == 4
    assert any("Creating new network" in m for m in log_messages)


def test_run_trains_then_resumes_from_checkpoint(
    cifar_dir: Path, tmp_path: Path, log_messages: list[str]
) -> None:
    config = _config(cifar_dir, tmp_path)
    shards = load_cifar10(cifar_dir)

    trained = run(config, _tiny_layers(), shards, CountdownStop(3))
    assert any(m.startswith("iter 3: cost=") for m in log_messages)
    assert not (tmp_path / "out_net").exists()

    save_network(config.net_path, trained)
    restored = load_network(config.net_path, Backend(config.backend))
    for saved, live in zip(restored.parameters(), trained.parameters()):
        assert torch.equal(saved, live)

    stopped = StopSignal()
    stopped.set()
    resumed = run(config, _tiny_layers(), load_cifar10(cifar_dir), stopped)
    assert "Using existing network." in log_messages
    for saved, live in zip(restored.parameters(), resumed.parameters()):
        assert torch.equal(saved, live)


def test_run_success_rate_only(
    cifar_dir: Path, tmp_path: Path, log_messages: list[str]
) -> None:
    config = _config(cifar_dir, tmp_path, success_rate=True)
    run(config, _tiny_layers(), load_cifar10(cifar_dir), StopSignal())

    assert any(m.startswith("Got ") and m.endswith("%") for m in log_messages)
    assert not any(m.startswith("iter ") for m in log_messages)
    assert not (tmp_path / "out_net").exists()


def test_run_rejects_oversized_training_batch(cifar_dir: Path, tmp_path: Path) -> None:
    config = _config(cifar_dir, tmp_path).model_copy(update={"train_batch_size": 61})
    with pytest.raises(ValueError, match="exceeds"):
        run(config, _tiny_layers(), load_cifar10(cifar_dir), StopSignal())
    assert not (tmp_path / "out_net").exists()


def test_load_or_build_falls_back_on_rejected_checkpoint(
    tmp_path: Path, log_messages: list[str]
) -> None:
    path = tmp_path / "out_net"
    bad_layer = dict(_tiny_layers()[0], input_width=4, input_height=4)
    bad_layer.pop("_target_")
    torch.save(
        {
            "format_version": FORMAT_VERSION,
            "layers": [{"kind": "sliding_rbf", "config": bad_layer, "state": {}}],
        },
        path,
    )
    backend = Backend(BackendConfig(seed=0))
    net = load_or_build_network(str(path), _tiny_layers(), backend)
    assert len(net) == 4
    assert any("Creating new network" in m for m in log_messages)


# --- Command-line entry point ---


@pytest.fixture()
def restore_logger() -> Iterator[None]:
    """``main`` replaces the loguru sinks; put the default one back afterwards."""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture()
def stop_immediately(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make ``main`` see Ctrl+C before its first training iteration."""

    @contextmanager
    def _stopped() -> Iterator[StopSignal]:
        stop = StopSignal()
        stop.set()
        yield stop

    monkeypatch.setattr("rbf_classifier.train.catch_interrupt", _stopped)


@pytest.fixture()
def small_run_cfg(
    hydra_cfg_with_overrides: Callable[[list[str]], DictConfig],
    cifar_dir: Path,
    tmp_path: Path,
) -> DictConfig:
    cfg = hydra_cfg_with_overrides(
        ["batch_size=5", "train_batch_size=8", "backend.seed=0"]
    )
    cfg.model.layers = _tiny_layers()
    cfg.samples = str(cifar_dir)
    cfg.net_path = str(tmp_path / "out_net")
    return cfg


def test_main_without_samples_exits(
    capsys: pytest.CaptureFixture[str],
    restore_logger: None,
    hydra_cfg: DictConfig,
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(hydra_cfg)
    assert excinfo.value.code == 1
    assert "Missing samples directory" in capsys.readouterr().err


def test_main_with_unreadable_dataset_exits(
    capsys: pytest.CaptureFixture[str],
    restore_logger: None,
    small_run_cfg: DictConfig,
    tmp_path: Path,
) -> None:
    small_run_cfg.samples = str(tmp_path / "no-such-dir")
    with pytest.raises(SystemExit) as excinfo:
        main(small_run_cfg)
    assert excinfo.value.code == 1
    assert "CIFAR-10 directory not found" in capsys.readouterr().err


def test_main_trains_and_saves(
    restore_logger: None,
    stop_immediately: None,
    small_run_cfg: DictConfig,
    tmp_path: Path,
) -> None:
    main(small_run_cfg)
    assert len(load_network(tmp_path / "out_net", Backend())) == 4


def test_main_success_rate_does_not_save(
    restore_logger: None,
    small_run_cfg: DictConfig,
    tmp_path: Path,
) -> None:
    small_run_cfg.success_rate = True
    main(small_run_cfg)
    assert not (tmp_path / "out_net").exists()


def test_main_save_failure_exits(
    capsys: pytest.CaptureFixture[str],
    restore_logger: None,
    stop_immediately: None,
    small_run_cfg: DictConfig,
    tmp_path: Path,
) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    small_run_cfg.net_path = str(blocker / "out_net")
    with pytest.raises(SystemExit) as excinfo:
        main(small_run_cfg)
    assert excinfo.value.code == 1
    assert "Failed to save network" in capsys.readouterr().err


def test_main_training_errors_are_not_reported_as_save_failures(
    capsys: pytest.CaptureFixture[str],
    restore_logger: None,
    stop_immediately: None,
    small_run_cfg: DictConfig,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def broken_run(*args: object, **kwargs: object) -> None:
        raise OSError("device lost")

    monkeypatch.setattr("rbf_classifier.train.run", broken_run)
    with pytest.raises(OSError, match="device lost"):
        main(small_run_cfg)
    assert "Failed to save network" not in capsys.readouterr().err
