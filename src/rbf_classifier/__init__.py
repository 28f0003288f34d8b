"""Sliding-RBF image classifier trained with minibatch Adam."""

__version__ = "0.0.1"
