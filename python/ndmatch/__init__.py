"""ndmatch - template matching for n-dimensional arrays.

Slides a template over every position where it fits inside a source array of
the same rank and scores each window with one of six metrics: squared
difference, cross-correlation and correlation coefficient, each plain or
normalized. Window sums come from summed-area tables; the cross term is
computed directly or by FFT convolution.

Example usage:

    import numpy as np
    import ndmatch

    source = np.random.rand(100, 100)
    template = source[10:16, 20:31]

    # One-shot matching, result shape is source.shape - template.shape + 1
    scores = ndmatch.match_template(source, template, ndmatch.Metric.SQUARE_DIFF)
    best = ndmatch.best_match(scores, ndmatch.Metric.SQUARE_DIFF)
    print(f"Found at {best.index} with score {best.score}")

    # Repeated matching into a preallocated buffer:
    dest = np.empty((91, 91))
    ndmatch.match_template_into(dest, source, np.random.rand(10, 10), "ccoeff_normed")

    # Parallel evaluation with a forced FFT cross term:
    config = ndmatch.MatchConfig(strategy="fft", parallel=True)
    scores = ndmatch.match_template(source, template, "ccorr_normed", config)
"""

from .config import MatchConfig
from .errors import (
    ConfigError,
    DestinationShapeError,
    NdMatchError,
    RankMismatchError,
    ShapeMismatchError,
    TemplateTooLargeError,
)
from .integral import SummedAreaTable
from .matching import Match, best_match, match_template, match_template_into
from .metrics import Metric
from .shapes import MAX_RANK, result_shape, validate_shapes

__version__ = "0.1.0"

__all__ = [
    "Metric",
    "Match",
    "MatchConfig",
    "SummedAreaTable",
    "match_template",
    "match_template_into",
    "best_match",
    "validate_shapes",
    "result_shape",
    "MAX_RANK",
    "NdMatchError",
    "ConfigError",
    "ShapeMismatchError",
    "RankMismatchError",
    "TemplateTooLargeError",
    "DestinationShapeError",
    "__version__",
]
