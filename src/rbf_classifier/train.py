"""Training entrypoint for rbf_classifier.

Usage:
    rbf-train samples=/data/cifar-10-batches-bin                    # until Ctrl+C
    rbf-train samples=/data/cifar-10-batches-bin success_rate=true  # accuracy only
    rbf-train samples=/data/cifar-10-batches-bin step_size=0.0005   # override rate
"""

import sys
from collections.abc import Mapping, Sequence
from typing import Any, cast

import hydra
from loguru import logger
from omegaconf import DictConfig, OmegaConf

from rbf_classifier.backend import Backend
from rbf_classifier.callbacks import ValidationStatus, report_model_info
from rbf_classifier.checkpoint import load_network, save_network
from rbf_classifier.config import TrainConfig
from rbf_classifier.cost import DotCost
from rbf_classifier.data import SampleList, load_cifar10, split_train_validation
from rbf_classifier.errors import CheckpointError, DatasetError
from rbf_classifier.evaluate import success_rate
from rbf_classifier.interrupt import StopSignal, catch_interrupt
from rbf_classifier.network import Network, build_network
from rbf_classifier.optim import Adam, ConstantRate
from rbf_classifier.sgd import SGD
from rbf_classifier.trainer import GradientTrainer


def load_or_build_network(
    net_path: str, layer_configs: Sequence[Mapping[str, Any]], backend: Backend
) -> Network:
    """Restore the checkpoint at ``net_path`` or build a fresh network."""
    try:
        network = load_network(net_path, backend)
    except CheckpointError as e:
        logger.info(f"{e}. Creating new network...")
        return build_network(layer_configs, backend)
    logger.info("Using existing network.")
    return network


def run(
    config: TrainConfig,
    layer_configs: Sequence[Mapping[str, Any]],
    shards: list[SampleList],
    stop: StopSignal,
) -> Network:
    """Evaluate or train a network on ``shards`` and return it.

    In training mode the loop runs until ``stop`` is set.  Saving the
    trained network is left to the caller.
    """
    backend = Backend(config.backend)
    training, validation = split_train_validation(shards)
    network = load_or_build_network(config.net_path, layer_configs, backend)
    report_model_info(network)

    if config.success_rate:
        logger.info("Computing success rate...")
        success_rate(network, validation, config.batch_size, backend)
        return network

    logger.info("Setting up...")
    network.train()
    trainer = GradientTrainer(network, backend, DotCost(), average=True)
    sgd = SGD(
        fetcher=trainer,
        gradienter=trainer,
        transformer=Adam(),
        params=trainer.params,
        samples=training,
        rater=ConstantRate(config.step_size),
        batch_size=config.train_batch_size,
        status_func=ValidationStatus(
            trainer, validation, config.batch_size, backend.generator
        ),
        status_interval=config.status_interval,
        generator=backend.generator,
    )

    logger.info("Press ctrl+c once to stop...")
    sgd.run(stop)
    return network


@hydra.main(version_base=None, config_path="conf", config_name="train_cifar")
def main(cfg: DictConfig) -> None:
    """Run training or evaluation with the given Hydra config."""
    logger.remove()
    logger.add(sys.stderr, level=cfg.get("log_level", "INFO"))

    logger.debug(f"Configuration:\n{OmegaConf.to_yaml(cfg)}")

    container = cast(dict[str, Any], OmegaConf.to_container(cfg, resolve=True))
    model_cfg = container.pop("model")
    config = TrainConfig.model_validate(container)

    if config.samples is None:
        logger.error(
            "Missing samples directory. Pass samples=/path/to/cifar-10-batches-bin"
        )
        sys.exit(1)

    try:
        shards = load_cifar10(config.samples)
    except DatasetError as e:
        logger.error(str(e))
        sys.exit(1)

    with catch_interrupt() as stop:
        network = run(config, model_cfg["layers"], shards, stop)
    if config.success_rate:
        return

    logger.info("Saving network...")
    try:
        save_network(config.net_path, network)
    except OSError as e:
        logger.error(f"Failed to save network: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
