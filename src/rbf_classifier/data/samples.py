"""Indexable, sliceable, shuffleable lists of labeled examples."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import torch

Transform = Callable[[torch.Tensor], torch.Tensor]


class SampleList:
    """Labeled examples addressed through an index order.

    ``inputs`` and ``labels`` are never copied by :meth:`slice` or
    :func:`shuffle`; only the index order changes.  A slice shares its index
    storage with the list it came from, so shuffling a slice reorders that
    range of the parent as well.

    Args:
        inputs: Tensor of shape (N, ...), one example per leading index.
        labels: Integer class indices of shape (N,).
        num_classes: Width of the one-hot expected output.
        transform: Optional callable applied to gathered inputs, e.g. to turn
            stored bytes into floats only when a batch is built.
        indices: Optional index order into ``inputs``; defaults to ``0..N-1``.
    """

    def __init__(
        self,
        inputs: torch.Tensor,
        labels: torch.Tensor,
        num_classes: int,
        transform: Transform | None = None,
        indices: torch.Tensor | None = None,
    ) -> None:
        if inputs.shape[0] != labels.shape[0]:
            raise ValueError(
                f"inputs has {inputs.shape[0]} examples but labels has "
                f"{labels.shape[0]}"
            )
        self.inputs = inputs
        self.labels = labels
        self.num_classes = num_classes
        self.transform = transform
        self.indices = (
            indices if indices is not None else torch.arange(inputs.shape[0])
        )

    def __len__(self) -> int:
        return int(self.indices.shape[0])

    def __getitem__(self, i: int) -> tuple[torch.Tensor, int]:
        index = int(self.indices[i])
        x = self.inputs[index]
        if self.transform is not None:
            x = self.transform(x)
        return x, int(self.labels[index])

    def __repr__(self) -> str:
        return f"SampleList(len={len(self)}, num_classes={self.num_classes})"

    def slice(self, start: int, end: int) -> SampleList:
        """View of the examples in ``[start, end)`` of the current order."""
        if not 0 <= start <= end <= len(self):
            raise IndexError(f"slice [{start}, {end}) out of range for {len(self)}")
        return SampleList(
            self.inputs,
            self.labels,
            self.num_classes,
            transform=self.transform,
            indices=self.indices[start:end],
        )

    def permute_(self, permutation: torch.Tensor) -> None:
        """Reorder the examples in place by ``permutation``."""
        self.indices.copy_(self.indices[permutation])

    def _gather(self) -> tuple[torch.Tensor, torch.Tensor]:
        return self.inputs[self.indices], self.labels[self.indices]

    def tensors(self) -> tuple[torch.Tensor, torch.Tensor]:
        """Gather ``(inputs, labels)`` in the current order, transform applied."""
        inputs, labels = self._gather()
        if self.transform is not None:
            inputs = self.transform(inputs)
        return inputs, labels

    @classmethod
    def concat(cls, lists: Sequence[SampleList]) -> SampleList:
        """Join several lists into one new list (copies the stored examples).

        The result keeps the first list's transform.
        """
        if not lists:
            raise ValueError("concat needs at least one SampleList")
        num_classes = lists[0].num_classes
        if any(s.num_classes != num_classes for s in lists):
            raise ValueError("cannot concat SampleLists with different class counts")
        gathered = [s._gather() for s in lists]
        return cls(
            torch.cat([inputs for inputs, _ in gathered]),
            torch.cat([labels for _, labels in gathered]),
            num_classes,
            transform=lists[0].transform,
        )


def shuffle(samples: SampleList, generator: torch.Generator | None = None) -> None:
    """Uniformly permute ``samples`` in place."""
    samples.permute_(torch.randperm(len(samples), generator=generator))
