"""Tests for metric parsing and the closed-form combiner."""

import numpy as np
import pytest

from ndmatch import Metric
from ndmatch.integral import window_aggregates
from ndmatch.metrics import FORMULAS, TemplateStats, combine
from ndmatch.cross import direct_cross_term

from conftest import SCORE_ATOL, SCORE_RTOL, reference_match


def run_combiner(source, template, metric, **kwargs):
    aggregates = window_aggregates(
        source, template.shape, need_sums=metric.needs_sums, need_sq_sums=metric.needs_sq_sums
    )
    cross = direct_cross_term(source, template)
    out = np.empty(cross.shape)
    return combine(metric, cross, aggregates, TemplateStats.from_template(template), out, **kwargs)


class TestMetricParsing:
    """Metrics are selected by member, value or name."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("sqdiff", Metric.SQUARE_DIFF),
            ("SQDIFF_NORMED", Metric.NORMED_SQUARE_DIFF),
            ("ccorr", Metric.CROSS_CORRELATION),
            ("NORMED_CROSS_CORRELATION", Metric.NORMED_CROSS_CORRELATION),
            ("CorrelationCoeff", Metric.CORRELATION_COEFF),
            ("NormalizedCorrelationCoeff", Metric.NORMED_CORRELATION_COEFF),
            ("NormalizedSquareDiff", Metric.NORMED_SQUARE_DIFF),
            ("NormalizedCorrCoeff", Metric.NORMED_CORRELATION_COEFF),
            ("CorrCoeff", Metric.CORRELATION_COEFF),
        ],
    )
    def test_parse(self, text, expected):
        assert Metric.parse(text) is expected

    def test_parse_member(self):
        assert Metric.parse(Metric.CROSS_CORRELATION) is Metric.CROSS_CORRELATION

    @pytest.mark.parametrize("value", ["zncc", "", 3, None])
    def test_invalid_metric(self, value):
        with pytest.raises(ValueError):
            Metric.parse(value)

    def test_every_metric_has_a_formula(self):
        assert set(FORMULAS) == set(Metric)

    def test_properties(self):
        assert Metric.SQUARE_DIFF.lower_is_better
        assert Metric.NORMED_SQUARE_DIFF.lower_is_better
        assert not Metric.NORMED_CORRELATION_COEFF.lower_is_better
        assert Metric.CORRELATION_COEFF.centered
        assert not Metric.CROSS_CORRELATION.needs_sq_sums
        assert Metric.SQUARE_DIFF.sentinel is None
        assert Metric.NORMED_SQUARE_DIFF.sentinel == 1.0
        assert Metric.NORMED_CROSS_CORRELATION.sentinel == 0.0
        assert Metric.NORMED_CORRELATION_COEFF.sentinel == 0.0


class TestTemplateStats:
    def test_constants(self):
        stats = TemplateStats.from_template(np.array([[1.0, 2.0], [3.0, 6.0]]))
        assert stats.size == 4
        assert stats.sum == 12.0
        assert stats.sq_sum == 50.0
        assert stats.mean == 3.0
        assert stats.centered_sq_sum == pytest.approx(14.0)


class TestCombiner:
    """Closed forms agree with brute-force window scores."""

    @pytest.mark.parametrize("metric", list(Metric))
    @pytest.mark.parametrize("shapes", [((30,), (6,)), ((12, 14), (3, 5)), ((7, 6, 8), (2, 3, 4))])
    def test_against_reference(self, rng, metric, shapes):
        source = rng.random(shapes[0]) + 0.1
        template = rng.random(shapes[1]) + 0.1
        np.testing.assert_allclose(
            run_combiner(source, template, metric),
            reference_match(source, template, metric),
            rtol=SCORE_RTOL,
            atol=SCORE_ATOL,
        )

    def test_parallel_matches_serial(self, rng):
        source, template = rng.random((33, 20)), rng.random((4, 4))
        for metric in Metric:
            serial = run_combiner(source, template, metric)
            parallel = run_combiner(source, template, metric, parallel=True, workers=4)
            np.testing.assert_allclose(parallel, serial, rtol=1e-12)

    def test_square_diff_never_negative(self, rng):
        source = rng.random((40, 40)) * 1e3
        template = source[5:15, 7:19].copy()
        scores = run_combiner(source, template, Metric.SQUARE_DIFF)
        assert scores.min() >= 0.0

    def test_normalized_scores_are_bounded(self, rng):
        source = rng.random((25, 25)) - 0.5
        template = source[3:9, 4:8].copy()
        for metric in (Metric.NORMED_CROSS_CORRELATION, Metric.NORMED_CORRELATION_COEFF):
            scores = run_combiner(source, template, metric)
            assert scores.max() <= 1.0
            assert scores.min() >= -1.0


class TestDegenerateWindows:
    """Vanishing denominators give the sentinel without raising."""

    def test_constant_inputs(self):
        source = np.full((10, 10), 3.0)
        template = np.full((4, 4), 7.0)
        with np.errstate(all="raise"):
            scores = run_combiner(source, template, Metric.NORMED_CORRELATION_COEFF)
        assert np.all(scores == 0.0)

    def test_constant_inputs_without_centering(self):
        """Uncentered normalizations stay well-defined for constant nonzero data."""
        source = np.full((10, 10), 3.0)
        template = np.full((4, 4), 7.0)
        with np.errstate(all="raise"):
            ccorr = run_combiner(source, template, Metric.NORMED_CROSS_CORRELATION)
            sqdiff = run_combiner(source, template, Metric.NORMED_SQUARE_DIFF)
        np.testing.assert_allclose(ccorr, 1.0)
        np.testing.assert_allclose(sqdiff, 16 * 16 / np.sqrt(16 * 9 * 16 * 49))

    def test_zero_inputs(self):
        source = np.zeros((8, 9))
        template = np.zeros((3, 3))
        with np.errstate(all="raise"):
            for metric in Metric:
                scores = run_combiner(source, template, metric)
                expected = metric.sentinel if metric.normalized else 0.0
                assert np.all(scores == expected), metric

    def test_flat_region_in_textured_source(self, rng):
        source = rng.random((30, 30))
        source[10:20, 10:20] = 0.5
        template = rng.random((5, 5))
        scores = run_combiner(source, template, Metric.NORMED_CORRELATION_COEFF)
        assert np.all(scores[10:16, 10:16] == 0.0)
        assert np.all(np.isfinite(scores))
        assert np.count_nonzero(scores[:5, :5]) == 25

    def test_min_variance_zero_still_safe(self):
        source = np.full((6, 6), 2.0)
        template = np.full((2, 2), 2.0)
        with np.errstate(all="raise"):
            scores = run_combiner(source, template, Metric.NORMED_CORRELATION_COEFF, min_variance=0.0)
        assert np.all(np.isfinite(scores))
