"""Similarity metrics and their closed-form evaluation.

Every metric is a function of the same per-window quantities: the cross term
``C``, the windowed source sum ``SS1`` and sum of squares ``SS2``, plus a few
constants of the template. The formula is resolved once per call.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

import numpy as np

from ._parallel import run_chunks
from .integral import WindowAggregates

logger = logging.getLogger(__name__)

# Multiple of machine epsilon times the source energy below which a window
# factor cannot be told apart from prefix-sum rounding noise.
ROUNDING_FACTOR = 1e3


class Metric(enum.Enum):
    """Closed set of template matching metrics."""

    SQUARE_DIFF = "sqdiff"
    NORMED_SQUARE_DIFF = "sqdiff_normed"
    CROSS_CORRELATION = "ccorr"
    NORMED_CROSS_CORRELATION = "ccorr_normed"
    CORRELATION_COEFF = "ccoeff"
    NORMED_CORRELATION_COEFF = "ccoeff_normed"

    @property
    def lower_is_better(self) -> bool:
        return self in (Metric.SQUARE_DIFF, Metric.NORMED_SQUARE_DIFF)

    @property
    def normalized(self) -> bool:
        return self.value.endswith("_normed")

    @property
    def centered(self) -> bool:
        return self in (Metric.CORRELATION_COEFF, Metric.NORMED_CORRELATION_COEFF)

    @property
    def needs_sums(self) -> bool:
        return self.centered

    @property
    def needs_sq_sums(self) -> bool:
        return self is not Metric.CROSS_CORRELATION and self is not Metric.CORRELATION_COEFF

    @property
    def sentinel(self) -> Optional[float]:
        """Score given to windows whose normalizing denominator vanishes."""
        if not self.normalized:
            return None
        return 1.0 if self.lower_is_better else 0.0

    @classmethod
    def parse(cls, value: Union["Metric", str]) -> "Metric":
        """Accept a member, its value, or its name.

        Names match case-insensitively with or without underscores
        (``SQUARE_DIFF``, ``SquareDiff``). ``Normalized`` may stand for
        ``NORMED`` and ``CorrCoeff`` for ``CORRELATION_COEFF``.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for metric in cls:
                if key == metric.value:
                    return metric
            folded = (
                key.replace("_", "")
                .replace("normalized", "normed")
                .replace("corrcoeff", "correlationcoeff")
            )
            for metric in cls:
                if folded == metric.name.replace("_", "").lower():
                    return metric
        choices = ", ".join(m.value for m in cls)
        raise ValueError(f"unknown metric {value!r}, expected one of {choices}")


@dataclass(frozen=True)
class TemplateStats:
    """Template constants shared by every window position."""

    size: int
    sum: float
    sq_sum: float
    mean: float
    centered_sq_sum: float

    @classmethod
    def from_template(cls, template: np.ndarray) -> "TemplateStats":
        size = int(template.size)
        total = float(np.sum(template))
        mean = total / size
        return cls(
            size=size,
            sum=total,
            sq_sum=float(np.sum(np.square(template))),
            mean=mean,
            centered_sq_sum=float(np.sum(np.square(template - mean))),
        )


@dataclass(frozen=True)
class _Terms:
    cross: np.ndarray
    sums: Optional[np.ndarray]
    sq_sums: Optional[np.ndarray]
    stats: TemplateStats
    source_floor: float
    template_floor: float
    min_variance: float


def _safe_ratio(num, src_factor, tpl_factor, t: _Terms, sentinel, src_energy=None):
    degenerate = (src_factor <= t.source_floor) | (tpl_factor <= t.template_floor)
    if src_energy is not None:
        degenerate |= src_factor <= t.min_variance * src_energy
    out = np.full(num.shape, sentinel, dtype=np.float64)
    with np.errstate(invalid="ignore", divide="ignore"):
        np.divide(num, np.sqrt(np.maximum(src_factor, 0.0) * tpl_factor), out=out, where=~degenerate)
    return out


def _square_diff_numerator(t: _Terms) -> np.ndarray:
    return np.maximum(t.sq_sums - 2.0 * t.cross + t.stats.sq_sum, 0.0)


def _square_diff(t: _Terms) -> np.ndarray:
    return _square_diff_numerator(t)


def _normed_square_diff(t: _Terms) -> np.ndarray:
    return _safe_ratio(
        _square_diff_numerator(t),
        t.sq_sums,
        t.stats.sq_sum,
        t,
        Metric.NORMED_SQUARE_DIFF.sentinel,
    )


def _cross_correlation(t: _Terms) -> np.ndarray:
    return t.cross


def _normed_cross_correlation(t: _Terms) -> np.ndarray:
    out = _safe_ratio(
        t.cross,
        t.sq_sums,
        t.stats.sq_sum,
        t,
        Metric.NORMED_CROSS_CORRELATION.sentinel,
    )
    return np.clip(out, -1.0, 1.0, out=out)


def _correlation_coeff(t: _Terms) -> np.ndarray:
    # |T| * mean_S * mean_T == SS1 * mean_T
    return t.cross - t.sums * t.stats.mean


def _normed_correlation_coeff(t: _Terms) -> np.ndarray:
    centered_sq = t.sq_sums - np.square(t.sums) / t.stats.size
    out = _safe_ratio(
        _correlation_coeff(t),
        centered_sq,
        t.stats.centered_sq_sum,
        t,
        Metric.NORMED_CORRELATION_COEFF.sentinel,
        src_energy=t.sq_sums,
    )
    return np.clip(out, -1.0, 1.0, out=out)


FORMULAS: Dict[Metric, Callable[[_Terms], np.ndarray]] = {
    Metric.SQUARE_DIFF: _square_diff,
    Metric.NORMED_SQUARE_DIFF: _normed_square_diff,
    Metric.CROSS_CORRELATION: _cross_correlation,
    Metric.NORMED_CROSS_CORRELATION: _normed_cross_correlation,
    Metric.CORRELATION_COEFF: _correlation_coeff,
    Metric.NORMED_CORRELATION_COEFF: _normed_correlation_coeff,
}


def _rows(array: Optional[np.ndarray], chunk: slice) -> Optional[np.ndarray]:
    return None if array is None else array[chunk]


def combine(
    metric: Metric,
    cross: np.ndarray,
    aggregates: WindowAggregates,
    stats: TemplateStats,
    out: np.ndarray,
    min_variance: float = 1e-10,
    parallel: bool = False,
    workers: Optional[int] = None,
) -> np.ndarray:
    """Evaluate ``metric`` at every window position and write it into ``out``.

    A window factor counts as zero when it lies within prefix-sum rounding
    noise (``ROUNDING_FACTOR`` epsilons of the source energy) or, for the
    centered metric, at most ``min_variance`` times the window's own energy.
    The template factor counts as zero at most ``min_variance`` times the
    template energy. Such windows get ``metric.sentinel``.
    """
    formula = FORMULAS[metric]
    source_floor = ROUNDING_FACTOR * np.finfo(np.float64).eps * aggregates.energy
    template_floor = min_variance * stats.sq_sum

    def evaluate(chunk: slice) -> None:
        terms = _Terms(
            cross=cross[chunk],
            sums=_rows(aggregates.sums, chunk),
            sq_sums=_rows(aggregates.sq_sums, chunk),
            stats=stats,
            source_floor=source_floor,
            template_floor=template_floor,
            min_variance=min_variance,
        )
        out[chunk] = formula(terms)

    run_chunks(evaluate, out.shape[0], parallel, workers)
    logger.debug("combined %s over result shape %s", metric.value, out.shape)
    return out
