"""Layer kinds available to a Network."""

from rbf_classifier.layers.base import LAYER_KINDS, Layer, layer_kind, register_layer
from rbf_classifier.layers.batchnorm import BatchNorm
from rbf_classifier.layers.linear import FullyConnected
from rbf_classifier.layers.log_softmax import LogSoftmax
from rbf_classifier.layers.sliding_rbf import SlidingRBF

__all__ = [
    "LAYER_KINDS",
    "BatchNorm",
    "FullyConnected",
    "Layer",
    "LogSoftmax",
    "SlidingRBF",
    "layer_kind",
    "register_layer",
]
