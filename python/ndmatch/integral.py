"""N-dimensional summed-area tables.

A table over an array of shape ``S`` has shape ``S + 1``: the extra zero layer
on the low side of every axis lets a box that touches the lower boundary use
the same corner lookup as any other box.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ._parallel import run_chunks

logger = logging.getLogger(__name__)


def _axis_slice(ndim: int, axis: int, index) -> tuple:
    key = [slice(None)] * ndim
    key[axis] = index
    return tuple(key)


class SummedAreaTable:
    """Prefix sums of an n-dimensional array.

    ``table[p]`` holds the sum of every element whose index is elementwise
    below ``p`` (the padded layer shifts indices by one).
    """

    def __init__(self, table: np.ndarray):
        self.table = table

    @classmethod
    def build(
        cls,
        values: np.ndarray,
        parallel: bool = False,
        workers: Optional[int] = None,
    ) -> "SummedAreaTable":
        values = np.asarray(values, dtype=np.float64)
        ndim = values.ndim
        table = np.zeros(tuple(n + 1 for n in values.shape), dtype=np.float64)
        table[(slice(1, None),) * ndim] = values

        # Scanning one axis at a time reproduces the inclusion-exclusion
        # recurrence. Every line along the scanned axis is independent.
        for axis in range(ndim):
            split = _split_axis(table.shape, axis)
            if split is None or not parallel:
                np.cumsum(table, axis=axis, out=table)
                continue

            def scan(chunk, axis=axis, split=split):
                view = table[_axis_slice(ndim, split, chunk)]
                np.cumsum(view, axis=axis, out=view)

            run_chunks(scan, table.shape[split], parallel, workers)

        return cls(table)

    @property
    def ndim(self) -> int:
        return self.table.ndim

    @property
    def shape(self):
        """Shape of the array the table was built from."""
        return tuple(n - 1 for n in self.table.shape)

    @property
    def total(self) -> float:
        return float(self.table[(-1,) * self.ndim])

    def box_sum(self, start: Sequence[int], extents: Sequence[int]) -> float:
        """Sum of the box starting at ``start`` with the given extents.

        Evaluates the signed combination of the box's 2**ndim corners.
        """
        if len(start) != self.ndim or len(extents) != self.ndim:
            raise ValueError(
                f"box of rank {len(start)}/{len(extents)} does not match table rank {self.ndim}"
            )
        for axis, (s, t, n) in enumerate(zip(start, extents, self.shape)):
            if s < 0 or t < 0 or s + t > n:
                raise IndexError(
                    f"box [{s}, {s + t}) out of bounds on axis {axis} with extent {n}"
                )

        total = 0.0
        for corner in itertools.product((0, 1), repeat=self.ndim):
            index = tuple(s + t if high else s for s, t, high in zip(start, extents, corner))
            if (self.ndim - sum(corner)) % 2:
                total -= self.table[index]
            else:
                total += self.table[index]
        return float(total)

    def window_sums(self, extents: Sequence[int]) -> np.ndarray:
        """Sums of every window of the given extents, shape ``S - extents + 1``.

        Differencing the table along each axis in turn is the factored form of
        the corner combination used by ``box_sum``.
        """
        if len(extents) != self.ndim:
            raise ValueError(
                f"window of rank {len(extents)} does not match table rank {self.ndim}"
            )
        out = self.table
        for axis, t in enumerate(extents):
            n = out.shape[axis]
            hi = out[_axis_slice(self.ndim, axis, slice(t, n))]
            lo = out[_axis_slice(self.ndim, axis, slice(0, n - t))]
            out = hi - lo
        return out


def _split_axis(shape, axis: int) -> Optional[int]:
    """Longest axis other than ``axis``, or ``None`` for 1-D tables."""
    others = [k for k in range(len(shape)) if k != axis]
    if not others:
        return None
    return max(others, key=lambda k: shape[k])


@dataclass
class WindowAggregates:
    """Per-window source aggregates for one matching call.

    ``sums`` and ``sq_sums`` have the result shape and are ``None`` when the
    metric does not need them. ``energy`` is the sum of squares of the whole
    source, the scale of the rounding error in ``sq_sums``.
    """

    sums: Optional[np.ndarray]
    sq_sums: Optional[np.ndarray]
    energy: float


def window_aggregates(
    source: np.ndarray,
    template_shape: Sequence[int],
    need_sums: bool,
    need_sq_sums: bool,
    parallel: bool = False,
    workers: Optional[int] = None,
) -> WindowAggregates:
    sums = None
    sq_sums = None
    energy = 0.0
    if need_sums:
        table = SummedAreaTable.build(source, parallel=parallel, workers=workers)
        sums = table.window_sums(template_shape)
    if need_sq_sums:
        table = SummedAreaTable.build(np.square(source), parallel=parallel, workers=workers)
        sq_sums = table.window_sums(template_shape)
        energy = table.total
    logger.debug(
        "window aggregates for template %s: sums=%s sq_sums=%s",
        tuple(template_shape),
        need_sums,
        need_sq_sums,
    )
    return WindowAggregates(sums=sums, sq_sums=sq_sums, energy=energy)
