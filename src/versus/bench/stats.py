"""Statistical functions for benchmark comparison.

Provides summary statistics over measured samples, Welch's t-test
and IQR outlier detection, all in pure Python.

Standard deviations are sample standard deviations (n-1 divisor):
measured sample counts are small and the population form would
understate variance.

References:
    Welch's t-test: Welch, B. L. (1947). "The generalization of
        'Student's' problem when several different population
        variances are involved." Biometrika 34(1-2): 28-35.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from typing import Sequence

from versus.bench.errors import AggregationError
from versus.bench.iteration import SampleSet


# ---------------------------------------------------------------------------
# Summary statistics
# ---------------------------------------------------------------------------


@dataclass
class Summary:
    """Summary statistics for the measured samples of one combination."""

    n: int
    mean: float
    median: float
    stddev: float
    min: float
    max: float
    cv: float  # coefficient of variation (stddev/mean)
    ips: float  # iterations per second: n / total measured duration

    def to_dict(self) -> dict[str, float | int | None]:
        """Serialize to a dict with rounded values."""
        return {
            "n": self.n,
            "mean": round(self.mean, 6),
            "median": round(self.median, 6),
            "stddev": round(self.stddev, 6),
            "min": round(self.min, 6),
            "max": round(self.max, 6),
            "cv": _json_float(self.cv),
            "ips": _json_float(self.ips),
        }


def summarize(samples: SampleSet | Sequence[float]) -> Summary:
    """Compute summary statistics over measured samples.

    Args:
        samples: A SampleSet (its wall times are used) or a plain
            sequence of durations in seconds.

    Returns:
        Summary with all fields populated.  With a single sample the
        stddev and CV are 0.0.

    Raises:
        AggregationError: If there are no samples.
    """
    values = list(samples.wall_times if isinstance(samples, SampleSet) else samples)
    if not values:
        raise AggregationError("No measured samples to summarize.")

    n = len(values)
    mean = statistics.mean(values)
    if n >= 2:
        stddev = statistics.stdev(values)
        cv = stddev / mean if mean != 0 else float("inf")
    else:
        stddev = 0.0
        cv = 0.0

    total = math.fsum(values)
    ips = n / total if total > 0 else float("nan")

    return Summary(
        n=n,
        mean=mean,
        median=statistics.median(values),
        stddev=stddev,
        min=min(values),
        max=max(values),
        cv=cv,
        ips=ips,
    )


def _percentile(sorted_values: list[float], p: float) -> float:
    """Compute the p-th percentile using linear interpolation.

    Equivalent to numpy.percentile with interpolation='linear'.
    Assumes sorted_values is already sorted in ascending order.
    """
    n = len(sorted_values)
    if n == 0:
        return float("nan")
    if n == 1:
        return sorted_values[0]

    k = (n - 1) * p
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[int(k)]
    d = k - f
    return sorted_values[int(f)] * (1 - d) + sorted_values[int(c)] * d


# ---------------------------------------------------------------------------
# Outlier detection
# ---------------------------------------------------------------------------


def detect_outliers(
    values: Sequence[float],
    *,
    factor: float = 1.5,
) -> list[bool]:
    """Detect outliers using the IQR method.

    A value is an outlier if it falls below Q1 - factor*IQR or
    above Q3 + factor*IQR.  Samples with fewer than 4 values never
    have outliers.

    Returns:
        A list of booleans, True for outlier positions.
    """
    if len(values) < 4:
        return [False] * len(values)

    sorted_v = sorted(values)
    q1 = _percentile(sorted_v, 0.25)
    q3 = _percentile(sorted_v, 0.75)
    iqr = q3 - q1

    lower = q1 - factor * iqr
    upper = q3 + factor * iqr

    return [v < lower or v > upper for v in values]


# ---------------------------------------------------------------------------
# Welch's t-test
# ---------------------------------------------------------------------------


@dataclass
class TTestResult:
    """Result of Welch's t-test comparing two independent samples."""

    t_statistic: float
    degrees_of_freedom: float
    p_value: float
    significant_01: bool  # p < 0.01
    significant_05: bool  # p < 0.05
    significant_001: bool  # p < 0.001

    @property
    def significance_stars(self) -> str:
        """Return significance stars: ***, **, *, or ns."""
        if self.significant_001:
            return "***"
        if self.significant_01:
            return "**"
        if self.significant_05:
            return "*"
        return "ns"

    def to_dict(self) -> dict[str, float | str | None]:
        """Serialize to a JSON-compatible dict (NaN becomes None)."""
        return {
            "t_statistic": _json_float(self.t_statistic),
            "degrees_of_freedom": _json_float(self.degrees_of_freedom),
            "p_value": _json_float(self.p_value),
            "significance": self.significance_stars,
        }


def _json_float(value: float) -> float | None:
    if math.isnan(value) or math.isinf(value):
        return None
    return round(value, 6)


def welch_ttest(
    sample_a: Sequence[float],
    sample_b: Sequence[float],
) -> TTestResult:
    """Perform Welch's t-test for two independent samples.

    Tests the null hypothesis that the two populations have equal
    means, without assuming equal variances.

    If either sample has fewer than 2 values, returns a result with
    NaN values and no significance.
    """
    na, nb = len(sample_a), len(sample_b)

    if na < 2 or nb < 2:
        return TTestResult(
            t_statistic=float("nan"),
            degrees_of_freedom=float("nan"),
            p_value=float("nan"),
            significant_01=False,
            significant_05=False,
            significant_001=False,
        )

    mean_a = statistics.mean(sample_a)
    mean_b = statistics.mean(sample_b)
    var_a = statistics.variance(sample_a)
    var_b = statistics.variance(sample_b)

    if var_a == 0 and var_b == 0:
        if mean_a == mean_b:
            return TTestResult(0.0, float("inf"), 1.0, False, False, False)
        # Means differ with zero variance: infinite t-statistic.
        return TTestResult(float("inf"), 0.0, 0.0, True, True, True)

    se_a = var_a / na
    se_b = var_b / nb
    se_diff = math.sqrt(se_a + se_b)

    if se_diff == 0:
        return TTestResult(0.0, float("inf"), 1.0, False, False, False)

    t = (mean_a - mean_b) / se_diff

    # Welch-Satterthwaite degrees of freedom.
    numerator = (se_a + se_b) ** 2
    denominator = (se_a**2 / (na - 1)) + (se_b**2 / (nb - 1))
    df = float("inf") if denominator == 0 else numerator / denominator

    p = _t_cdf_two_tailed(abs(t), df)

    return TTestResult(
        t_statistic=t,
        degrees_of_freedom=df,
        p_value=p,
        significant_01=p < 0.01,
        significant_05=p < 0.05,
        significant_001=p < 0.001,
    )


def _t_cdf_two_tailed(t: float, df: float) -> float:
    """Two-tailed p-value P(|T| > t) for Student's t-distribution.

    Uses the regularized incomplete beta function:
    p = I_x(df/2, 1/2) with x = df / (df + t^2).
    """
    if math.isinf(t):
        return 0.0
    if math.isnan(t) or math.isnan(df):
        return float("nan")
    if df <= 0:
        return float("nan")
    if math.isinf(df):
        # Normal limit.
        return math.erfc(t / math.sqrt(2.0))

    x = df / (df + t * t)
    p = _regularized_incomplete_beta(x, df / 2.0, 0.5)
    return min(max(p, 0.0), 1.0)


def _regularized_incomplete_beta(x: float, a: float, b: float) -> float:
    """Compute the regularized incomplete beta function I_x(a, b).

    Uses the continued fraction expansion (Lentz's method).

    Reference: Numerical Recipes, Chapter 6.4.
    """
    if x < 0 or x > 1:
        return float("nan")
    if x == 0:
        return 0.0
    if x == 1:
        return 1.0

    # Symmetry relation for faster convergence.
    if x > (a + 1) / (a + b + 2):
        return 1.0 - _regularized_incomplete_beta(1 - x, b, a)

    lbeta = math.lgamma(a) + math.lgamma(b) - math.lgamma(a + b)
    prefactor = math.exp(a * math.log(x) + b * math.log(1 - x) - lbeta - math.log(a))

    max_iter = 200
    epsilon = 1e-14
    tiny = 1e-30

    c = 1.0
    d = 1.0 - (a + b) * x / (a + 1)
    if abs(d) < tiny:
        d = tiny
    d = 1.0 / d
    f = d

    for m in range(1, max_iter + 1):
        # Even term.
        num = m * (b - m) * x / ((a + 2 * m - 1) * (a + 2 * m))
        d = 1.0 + num * d
        if abs(d) < tiny:
            d = tiny
        c = 1.0 + num / c
        if abs(c) < tiny:
            c = tiny
        d = 1.0 / d
        f *= c * d

        # Odd term.
        num = -((a + m) * (a + b + m) * x / ((a + 2 * m) * (a + 2 * m + 1)))
        d = 1.0 + num * d
        if abs(d) < tiny:
            d = tiny
        c = 1.0 + num / c
        if abs(c) < tiny:
            c = tiny
        d = 1.0 / d
        delta = c * d
        f *= delta

        if abs(delta - 1.0) < epsilon:
            break

    return prefactor * f
