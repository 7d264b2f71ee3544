"""Tests for versus.bench.stats — summary statistics and significance.

Statistical functions are tested against known values.
"""

from __future__ import annotations

import json
import math
import unittest

from bench_test_helpers import make_samples

from versus.bench.errors import AggregationError
from versus.bench.iteration import SampleSet
from versus.bench.stats import (
    TTestResult,
    _percentile,
    _regularized_incomplete_beta,
    _t_cdf_two_tailed,
    detect_outliers,
    summarize,
    welch_ttest,
)


# ---------------------------------------------------------------------------
# summarize
# ---------------------------------------------------------------------------


class TestSummarize(unittest.TestCase):
    """Tests for summarize() and Summary."""

    def test_known_values(self) -> None:
        s = summarize([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0])
        self.assertEqual(s.n, 8)
        self.assertAlmostEqual(s.mean, 5.0)
        self.assertAlmostEqual(s.median, 4.5)
        self.assertAlmostEqual(s.min, 2.0)
        self.assertAlmostEqual(s.max, 9.0)
        # Sample (n-1) standard deviation.
        self.assertAlmostEqual(s.stddev, math.sqrt(32 / 7))
        self.assertAlmostEqual(s.cv, math.sqrt(32 / 7) / 5.0)

    def test_ips_is_count_over_total(self) -> None:
        s = summarize([0.01] * 5)
        self.assertAlmostEqual(s.ips, 100.0, places=6)

    def test_ips_consistent_with_samples(self) -> None:
        values = [0.5, 0.25, 0.25]
        s = summarize(values)
        self.assertAlmostEqual(s.ips, len(values) / sum(values))

    def test_sample_set_uses_wall_times(self) -> None:
        s = summarize(make_samples([1.0, 3.0]))
        self.assertAlmostEqual(s.mean, 2.0)

    def test_single_sample(self) -> None:
        s = summarize([0.2])
        self.assertEqual(s.n, 1)
        self.assertEqual(s.stddev, 0.0)
        self.assertEqual(s.cv, 0.0)
        self.assertAlmostEqual(s.ips, 5.0)

    def test_empty_raises(self) -> None:
        with self.assertRaises(AggregationError):
            summarize([])
        with self.assertRaises(AggregationError):
            summarize(SampleSet())

    def test_zero_durations_have_no_rate(self) -> None:
        s = summarize([0.0, 0.0])
        self.assertTrue(math.isnan(s.ips))
        self.assertIsNone(s.to_dict()["ips"])

    def test_to_dict_is_json_safe(self) -> None:
        d = summarize([1.0, 2.0, 3.0]).to_dict()
        self.assertEqual(d["n"], 3)
        json.dumps(d, allow_nan=False)


# ---------------------------------------------------------------------------
# Percentile and outliers
# ---------------------------------------------------------------------------


class TestPercentile(unittest.TestCase):
    def test_interpolates(self) -> None:
        self.assertAlmostEqual(_percentile([1.0, 2.0, 3.0, 4.0], 0.5), 2.5)
        self.assertAlmostEqual(_percentile([1.0, 2.0, 3.0, 4.0], 0.25), 1.75)

    def test_edges(self) -> None:
        self.assertTrue(math.isnan(_percentile([], 0.5)))
        self.assertEqual(_percentile([7.0], 0.9), 7.0)


class TestDetectOutliers(unittest.TestCase):
    def test_flags_extreme_value(self) -> None:
        values = [1.0, 1.1, 0.9, 1.0, 1.05, 10.0]
        self.assertEqual(detect_outliers(values), [False] * 5 + [True])

    def test_small_samples_never_flagged(self) -> None:
        self.assertEqual(detect_outliers([1.0, 100.0, 1000.0]), [False, False, False])

    def test_uniform_values(self) -> None:
        self.assertEqual(detect_outliers([2.0] * 6), [False] * 6)


# ---------------------------------------------------------------------------
# Welch's t-test
# ---------------------------------------------------------------------------


class TestWelchTTest(unittest.TestCase):
    def test_known_values(self) -> None:
        r = welch_ttest([1.0, 2.0, 3.0, 4.0, 5.0], [2.0, 3.0, 4.0, 5.0, 6.0])
        self.assertAlmostEqual(r.t_statistic, -1.0)
        self.assertAlmostEqual(r.degrees_of_freedom, 8.0)
        self.assertAlmostEqual(r.p_value, 0.3466, places=3)
        self.assertEqual(r.significance_stars, "ns")

    def test_clear_difference_is_significant(self) -> None:
        a = [1.00, 1.01, 0.99, 1.02, 0.98, 1.00]
        b = [2.00, 2.01, 1.99, 2.02, 1.98, 2.00]
        r = welch_ttest(a, b)
        self.assertLess(r.p_value, 0.001)
        self.assertEqual(r.significance_stars, "***")

    def test_too_few_samples(self) -> None:
        r = welch_ttest([1.0], [1.0, 2.0])
        self.assertTrue(math.isnan(r.p_value))
        self.assertEqual(r.significance_stars, "ns")
        self.assertIsNone(r.to_dict()["p_value"])

    def test_zero_variance_equal_means(self) -> None:
        r = welch_ttest([1.0, 1.0], [1.0, 1.0])
        self.assertEqual(r.p_value, 1.0)

    def test_zero_variance_different_means(self) -> None:
        r = welch_ttest([1.0, 1.0], [2.0, 2.0])
        self.assertEqual(r.p_value, 0.0)
        self.assertTrue(r.significant_001)

    def test_symmetric(self) -> None:
        a = [1.0, 1.2, 0.9, 1.1]
        b = [1.3, 1.5, 1.2, 1.4]
        self.assertAlmostEqual(welch_ttest(a, b).p_value, welch_ttest(b, a).p_value)


class TestSignificanceStars(unittest.TestCase):
    def test_levels(self) -> None:
        cases = [
            ((True, True, True), "***"),
            ((True, True, False), "**"),
            ((False, True, False), "*"),
            ((False, False, False), "ns"),
        ]
        for (s01, s05, s001), stars in cases:
            r = TTestResult(0.0, 1.0, 0.5, s01, s05, s001)
            self.assertEqual(r.significance_stars, stars)


class TestDistributionHelpers(unittest.TestCase):
    def test_incomplete_beta_bounds(self) -> None:
        self.assertEqual(_regularized_incomplete_beta(0.0, 2.0, 3.0), 0.0)
        self.assertEqual(_regularized_incomplete_beta(1.0, 2.0, 3.0), 1.0)
        self.assertTrue(math.isnan(_regularized_incomplete_beta(1.5, 2.0, 3.0)))

    def test_incomplete_beta_uniform(self) -> None:
        # I_x(1, 1) is the uniform CDF.
        self.assertAlmostEqual(_regularized_incomplete_beta(0.3, 1.0, 1.0), 0.3)

    def test_t_cdf_normal_limit(self) -> None:
        self.assertAlmostEqual(_t_cdf_two_tailed(1.96, float("inf")), 0.05, places=3)

    def test_t_cdf_zero(self) -> None:
        self.assertAlmostEqual(_t_cdf_two_tailed(0.0, 10.0), 1.0)


if __name__ == "__main__":
    unittest.main()
