"""Sliding product-sum between a source and a template.

For every window position ``i`` the cross term is ``sum_j S[i + j] * T[j]``.
It is evaluated either directly, one template offset at a time, or as an FFT
convolution with the axis-reversed template. The two agree up to rounding.
"""

import logging
import math
from typing import Optional, Sequence

import numpy as np
import scipy.fft
from scipy.signal import fftconvolve

from ._parallel import resolve_workers, run_chunks

logger = logging.getLogger(__name__)

# Relative cost of one FFT butterfly against one direct multiply-add; covers
# the forward transforms of both inputs and the inverse transform.
FFT_COST_FACTOR = 3.0


def choose_strategy(source_shape: Sequence[int], template_shape: Sequence[int]) -> str:
    """Pick ``"direct"`` or ``"fft"`` by comparing estimated operation counts."""
    result_size = math.prod(s - t + 1 for s, t in zip(source_shape, template_shape))
    template_size = math.prod(template_shape)
    direct_cost = result_size * template_size

    fft_size = math.prod(
        scipy.fft.next_fast_len(s + t - 1, real=True)
        for s, t in zip(source_shape, template_shape)
    )
    fft_cost = FFT_COST_FACTOR * fft_size * max(1.0, math.log2(fft_size))

    return "direct" if direct_cost <= fft_cost else "fft"


def direct_cross_term(
    source: np.ndarray,
    template: np.ndarray,
    parallel: bool = False,
    workers: Optional[int] = None,
) -> np.ndarray:
    ndim = source.ndim
    result_shape = tuple(s - t + 1 for s, t in zip(source.shape, template.shape))
    out = np.zeros(result_shape, dtype=np.float64)
    offsets = list(np.ndindex(*template.shape))

    def accumulate(chunk: slice) -> None:
        rows = chunk.stop - chunk.start
        if rows <= 0:
            return
        acc = out[chunk]
        for offset in offsets:
            weight = template[offset]
            if weight == 0.0:
                continue
            key = (slice(chunk.start + offset[0], chunk.start + offset[0] + rows),) + tuple(
                slice(o, o + r) for o, r in zip(offset[1:], result_shape[1:])
            )
            acc += weight * source[key]

    run_chunks(accumulate, result_shape[0], parallel, workers)
    logger.debug("direct cross term over %d offsets, ndim=%d", len(offsets), ndim)
    return out


def fft_cross_term(
    source: np.ndarray,
    template: np.ndarray,
    parallel: bool = False,
    workers: Optional[int] = None,
) -> np.ndarray:
    flipped = template[(slice(None, None, -1),) * template.ndim]
    n_workers = resolve_workers(workers) if parallel else 1
    with scipy.fft.set_workers(n_workers):
        out = fftconvolve(source, flipped, mode="valid")
    logger.debug("fft cross term with %d workers", n_workers)
    return np.asarray(out, dtype=np.float64)


def cross_term(
    source: np.ndarray,
    template: np.ndarray,
    strategy: str = "auto",
    parallel: bool = False,
    workers: Optional[int] = None,
) -> np.ndarray:
    """Cross term for every window position, shape ``source - template + 1``.

    ``strategy`` is ``"direct"``, ``"fft"`` or ``"auto"``; shapes must already
    be validated.
    """
    if strategy == "auto":
        strategy = choose_strategy(source.shape, template.shape)
        logger.debug(
            "auto strategy for source %s, template %s: %s",
            source.shape,
            template.shape,
            strategy,
        )
    if strategy == "direct":
        return direct_cross_term(source, template, parallel=parallel, workers=workers)
    if strategy == "fft":
        return fft_cross_term(source, template, parallel=parallel, workers=workers)
    raise ValueError(f"unknown strategy '{strategy}'")
