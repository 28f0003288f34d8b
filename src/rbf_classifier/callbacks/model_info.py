"""Model info report: layer kinds, parameter counts and size."""

from __future__ import annotations

from loguru import logger
from rich import box
from rich.console import Console
from rich.table import Table

from rbf_classifier.layers import layer_kind
from rbf_classifier.network import Network


def report_model_info(network: Network, console: Console | None = None) -> Table:
    """Print a table of the network's layers and log a one-line summary.

    Returns the rendered table so callers can reuse it.
    """
    table = Table(
        title="Model Information",
        header_style="bold magenta",
        box=box.SQUARE,
        show_lines=True,
    )
    table.add_column("#", style="cyan")
    table.add_column("Layer", style="cyan")
    table.add_column("Config")
    table.add_column("Parameters", style="green", justify="right")

    for i, layer in enumerate(network):
        count = sum(p.numel() for p in layer.parameters())
        config = ", ".join(f"{k}={v}" for k, v in layer.config().items())
        table.add_row(str(i), layer_kind(layer), config, f"{count:,}")

    total_params = network.num_parameters()
    state_bytes = sum(
        t.numel() * t.element_size()
        for layer in network
        for t in layer.state_dict().values()
    )
    size_mb = state_bytes / (1024 * 1024)
    table.add_row("", "Total", "", f"{total_params:,}")

    (console or Console()).print(table)
    logger.info(
        f"Model: {len(network)} layers | Params: {total_params:,} | "
        f"Size: {size_mb:.2f} MB"
    )
    return table
