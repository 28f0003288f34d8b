"""Exception types raised by the training pipeline."""


class ShapeError(ValueError):
    """A layer received an input whose size does not match its configuration."""


class EmptyBatchError(ValueError):
    """A gradient was requested for a batch with no examples."""


class DatasetError(RuntimeError):
    """The dataset directory is missing files or holds malformed shards."""


class CheckpointError(RuntimeError):
    """A network checkpoint could not be read."""
