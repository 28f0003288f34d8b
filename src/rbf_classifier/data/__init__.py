"""Data pipeline for rbf_classifier."""

from rbf_classifier.data.cifar import load_cifar10, split_train_validation
from rbf_classifier.data.samples import SampleList, shuffle

__all__ = [
    "SampleList",
    "load_cifar10",
    "shuffle",
    "split_train_validation",
]
