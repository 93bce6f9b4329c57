"""Per-tensor sizes and file-wide tensor statistics."""

import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from safelens.formats.schema import DataType, RawTensorInfo


@dataclass(frozen=True)
class TensorStats:
    """Aggregates over every tensor in a header."""

    tensor_count: int
    total_parameters: int
    data_types: tuple[DataType, ...]
    dtype_distribution: dict[DataType, int]


def tensor_parameters(shape: Iterable[int]) -> int:
    """Element count of a tensor; a 0-dimensional tensor holds one element."""
    return math.prod(shape)


def tensor_byte_size(data_offsets: tuple[int, int]) -> int:
    """Byte span of a tensor's data region."""
    start, end = data_offsets
    return end - start


def calculate_tensor_stats(tensors: Iterable[RawTensorInfo]) -> TensorStats:
    """Compute the dtype histogram and parameter totals.

    Args:
        tensors: Tensor descriptors in header order

    Returns:
        TensorStats; data_types is ordered by descending count, ties keep
        first-seen order
    """
    counts: Counter[DataType] = Counter()
    total_parameters = 0
    tensor_count = 0

    for tensor in tensors:
        tensor_count += 1
        counts[tensor.dtype] += 1
        total_parameters += tensor_parameters(tensor.shape)

    # Counter preserves insertion order and sorted() is stable
    data_types = tuple(sorted(counts, key=lambda dtype: counts[dtype], reverse=True))

    return TensorStats(
        tensor_count=tensor_count,
        total_parameters=total_parameters,
        data_types=data_types,
        dtype_distribution=dict(counts),
    )
