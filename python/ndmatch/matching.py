"""Allocating and in-place template matching entry points."""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np

from .config import DEFAULT_CONFIG, MatchConfig
from .cross import cross_term
from .integral import window_aggregates
from .metrics import Metric, TemplateStats, combine
from .shapes import validate_shapes

logger = logging.getLogger(__name__)

MetricLike = Union[Metric, str]


@dataclass(frozen=True)
class Match:
    """Best window of a score array: its origin in the source and its score."""

    index: Tuple[int, ...]
    score: float


def _as_real_array(name: str, value) -> np.ndarray:
    array = np.asarray(value)
    if np.iscomplexobj(array):
        raise TypeError(f"{name} must be real-valued, got dtype {array.dtype}")
    if not (np.issubdtype(array.dtype, np.number) or array.dtype == np.bool_):
        raise TypeError(f"{name} must be numeric, got dtype {array.dtype}")
    return array.astype(np.float64, copy=False)


def _check_destination(dest) -> np.ndarray:
    if not isinstance(dest, np.ndarray):
        raise TypeError(f"dest must be a numpy.ndarray, got {type(dest).__name__}")
    if not np.issubdtype(dest.dtype, np.floating):
        raise TypeError(f"dest must have a floating dtype, got {dest.dtype}")
    if not dest.flags.writeable:
        raise ValueError("dest is read-only")
    return dest


def _run(
    dest: np.ndarray,
    source: np.ndarray,
    template: np.ndarray,
    metric: Metric,
    config: MatchConfig,
) -> np.ndarray:
    logger.debug(
        "matching template %s against source %s with %s",
        template.shape,
        source.shape,
        metric.value,
    )
    stats = TemplateStats.from_template(template)
    aggregates = window_aggregates(
        source,
        template.shape,
        need_sums=metric.needs_sums,
        need_sq_sums=metric.needs_sq_sums,
        parallel=config.parallel,
        workers=config.workers,
    )
    cross = cross_term(
        source,
        template,
        strategy=config.strategy,
        parallel=config.parallel,
        workers=config.workers,
    )
    return combine(
        metric,
        cross,
        aggregates,
        stats,
        out=dest,
        min_variance=config.min_variance,
        parallel=config.parallel,
        workers=config.workers,
    )


def match_template(
    source,
    template,
    metric: MetricLike,
    config: Optional[MatchConfig] = None,
) -> np.ndarray:
    """Score every placement of ``template`` inside ``source``.

    Both arrays must have the same rank and the template must not exceed the
    source on any axis. The result has shape ``source.shape - template.shape
    + 1``; entry ``i`` scores the window whose lowest corner sits at ``i``.

    Example::

        source = np.random.rand(100, 100)
        template = source[10:16, 20:31]
        scores = match_template(source, template, Metric.SQUARE_DIFF)
        np.unravel_index(np.argmin(scores), scores.shape)  # (10, 20)
    """
    metric = Metric.parse(metric)
    config = config or DEFAULT_CONFIG
    source = _as_real_array("source", source)
    template = _as_real_array("template", template)
    shape = validate_shapes(source.shape, template.shape)
    dest = np.empty(shape, dtype=np.float64)
    return _run(dest, source, template, metric, config)


def match_template_into(
    dest: np.ndarray,
    source,
    template,
    metric: MetricLike,
    config: Optional[MatchConfig] = None,
) -> np.ndarray:
    """In-place counterpart of ``match_template``.

    ``dest`` must already have the result shape; it is filled and returned.
    Nothing is written when validation fails.
    """
    metric = Metric.parse(metric)
    config = config or DEFAULT_CONFIG
    dest = _check_destination(dest)
    source = _as_real_array("source", source)
    template = _as_real_array("template", template)
    validate_shapes(source.shape, template.shape, dest.shape)
    return _run(dest, source, template, metric, config)


def best_match(scores: np.ndarray, metric: MetricLike) -> Match:
    """Position and value of the best score for ``metric``."""
    metric = Metric.parse(metric)
    scores = np.asarray(scores)
    if scores.size == 0:
        raise ValueError("cannot pick a best match from an empty score array")
    flat = np.argmin(scores) if metric.lower_is_better else np.argmax(scores)
    index = tuple(int(i) for i in np.unravel_index(flat, scores.shape))
    return Match(index=index, score=float(scores[index]))
