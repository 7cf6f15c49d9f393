import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

import numpy as np
from scipy.stats import chi2

from .descriptive import circ_dist, circ_median, circ_r
from .utils import LowResolutionWarning, SmallSampleWarning, angmod, significance_code

# below this many permutations the p-value grid is too coarse for alpha = 0.05
MIN_RELIABLE_SIMULATIONS = 200


@dataclass(frozen=True)
class TestResult:
    """Base class for hypothesis test results."""

    def asdict(self) -> dict[str, Any]:
        """Return result data as a dictionary."""
        from dataclasses import asdict

        return asdict(self)


@dataclass(frozen=True)
class RayleighTestResult(TestResult):
    n: int
    r: float  # Resultant vector length
    z: float  # Test Statistic (Rayleigh's Z)
    pval: float  # Asymptotic P-value, nan for an empty sample


@dataclass(frozen=True)
class CommonMedianTestResult(TestResult):
    common_median: float
    statistic: float
    pval: float
    df: int
    n_groups: int
    reject: bool
    applicable: bool = True
    reason: Optional[str] = None


@dataclass(frozen=True)
class KuiperTwoSampleTestResult(TestResult):
    V: float
    pval: float
    count: int
    n_simulation: int
    n1: int
    n2: int
    pval_is_bound: bool = False
    pval_bound: Optional[float] = None

    @property
    def effective_pval(self) -> float:
        """P-value to carry into multiple-comparison correction.

        A Monte-Carlo estimate of zero only says that no permutation reached
        the observed statistic; the resolution limit `1 / n_simulation` is
        used instead.
        """
        if self.pval_is_bound:
            return self.pval_bound
        return self.pval


###################
# One-Sample Test #
###################


def rayleigh_test(
    alpha: Optional[np.ndarray] = None,
    r: Optional[float] = None,
    n: Optional[int] = None,
    verbose: bool = False,
) -> RayleighTestResult:
    r"""
    Rayleigh's Test for Circular Uniformity.

    - H0: The data in the population are distributed uniformly around the circle.
    - H1: The data in the population are not disbutrited uniformly around the circle.

    $$ z = n \cdot r^2 $$

    and

    $$ p = \exp(\sqrt{1 + 4n + 4(n^2 - R^2)} - (1 + 2n)) $$

    Parameters
    ----------

    alpha: np.array or None
        Angles in radian.

    r: float or None
        Resultant vector length from `descriptive.circ_mean_and_r()`.

    n: int or None
        Sample size.

    verbose: bool
        Print formatted results.

    Returns
    -------
    RayleighTestResult
        A dataclass containing:

        - n: int
            - Sample size.
        - r: float
            - Resultant vector length.
        - z: float
            - Test statistic (Rayleigh's Z).
        - pval: float
            - P-value from the asymptotic formula; `nan` when `n = 0`.

    Reference
    ---------
    P625, Section 27.1, Example 27.1 of Zar, 2010
    """

    if r is None:
        if alpha is None:
            if n == 0:
                return RayleighTestResult(n=0, r=np.nan, z=np.nan, pval=np.nan)
            raise ValueError("If `r` is None, then `alpha` is required.")
        alpha = np.asarray(alpha, dtype=float)
        n = int(alpha.size)
        if n == 0:
            return RayleighTestResult(n=0, r=np.nan, z=np.nan, pval=np.nan)
        r = circ_r(alpha)
    else:
        r = float(r)
        if n is None or n < 0:
            raise ValueError("Sample size `n` must be provided and non-negative when `r` is given.")
        if n == 0:
            return RayleighTestResult(n=0, r=np.nan, z=np.nan, pval=np.nan)

    if not (0.0 <= r <= 1.0):
        raise ValueError("`r` must lie in the interval [0, 1].")

    R = n * r
    z = n * r**2  # eq(27.2)

    pval = np.exp(np.sqrt(1 + 4 * n + 4 * (n**2 - R**2)) - (1 + 2 * n))  # eq(27.4)
    pval = float(np.clip(pval, 0.0, 1.0))

    if verbose:
        print("Rayleigh's Test of Uniformity")
        print("-----------------------------")
        print("H0: ρ = 0")
        print("HA: ρ ≠ 0")
        print("")
        print(f"Test Statistics  (ρ | z-score): {r:.5f} | {z:.5f}")
        print(f"P-value: {pval:.5f} {significance_code(pval)}")

    return RayleighTestResult(n=int(n), r=r, z=float(z), pval=pval)


####################
# Multi-Sample Test #
####################


def common_median_test(
    samples: Sequence[Union[np.ndarray, list]],
    alpha: float = 0.05,
    verbose: bool = False,
) -> CommonMedianTestResult:
    r"""
    Common Median Test (Equal Median Test) for Multiple Circular Samples.

    - **H₀**: All groups have the same circular median.
    - **H₁**: At least one group has a different circular median.

    A non-parametric analogue of the Kruskal-Wallis test. With $M$ the
    median of the pooled sample, $m_i$ the number of observations of group
    $i$ lying below $M$, $N = \sum n_i$ and $M_{tot} = \sum m_i$:

    $$
    P = \frac{N^2}{M_{tot}(N - M_{tot})} \sum_i \frac{m_i^2}{n_i}
        - \frac{N M_{tot}}{N - M_{tot}}
    $$

    which is approximately $\chi^2_{k-1}$ under H₀.

    Parameters
    ----------
    samples : list of np.ndarray
        List of circular data arrays (angles in radians) for different groups.
        Empty groups are ignored.
    alpha : float, optional
        Significance level for deciding whether to reject the null hypothesis (default 0.05).
    verbose : bool, optional
        If `True`, prints the test summary.

    Returns
    -------
    CommonMedianTestResult
        Dataclass containing the pooled median, test statistic, p-value and
        rejection flag. When fewer than two groups have data, or every
        observation falls on one side of the pooled median, the result has
        `applicable=False` and a `reason` instead of a p-value.

    Warns
    -----
    SmallSampleWarning
        If a group has fewer than 10 observations; the chi-square
        approximation is then rough.

    References
    ----------
    - Fisher, N. I. (1995). Statistical Analysis of Circular Data, Section 5.3.5.
    """

    if not (0 < alpha < 1):
        raise ValueError("`alpha` must be between 0 and 1.")
    if isinstance(samples, (str, bytes)) or not isinstance(samples, Sequence):
        raise ValueError("`samples` must be a sequence of angle arrays.")

    # wrapped once; the pooled median is then one of these exact values
    arrays = [angmod(np.asarray(group, dtype=float).ravel()) for group in samples]
    arrays = [arr for arr in arrays if arr.size > 0]
    k = len(arrays)

    def not_applicable(reason, common_median=np.nan):
        return CommonMedianTestResult(
            common_median=float(common_median),
            statistic=np.nan,
            pval=np.nan,
            df=max(k - 1, 0),
            n_groups=k,
            reject=False,
            applicable=False,
            reason=reason,
        )

    if k < 2:
        return not_applicable("fewer than two groups with observations")

    # Sample sizes
    ns = np.array([arr.size for arr in arrays])
    N = int(np.sum(ns))  # Total number of observations

    if np.any(ns < 10):
        warnings.warn(
            "Common median test: at least one group has fewer than 10 observations; "
            "the chi-square approximation may be inaccurate.",
            SmallSampleWarning,
            stacklevel=2,
        )

    # Compute the common circular median
    common_median = circ_median(np.hstack(arrays))

    # number of observations below the common median, per group
    m = np.array([np.sum(circ_dist(group, common_median) < 0) for group in arrays], dtype=float)

    M = np.sum(m)
    if M == 0 or M == N:
        return not_applicable("all observations fall on one side of the common median", common_median)

    P = (N**2 / (M * (N - M))) * np.sum(m**2 / ns) - (N * M) / (N - M)

    df = k - 1
    p_value = float(chi2.sf(P, df))
    reject = p_value < alpha

    result = CommonMedianTestResult(
        common_median=float(common_median),
        statistic=float(P),
        pval=p_value,
        df=df,
        n_groups=k,
        reject=bool(reject),
    )

    if verbose:
        print("\nCommon Median Test (Equal Median Test)")
        print("--------------------------------------")
        print(f"Estimated Common Median: {result.common_median:.5f}")
        print(f"Test Statistic: {result.statistic:.5f}")
        print(f"P-value: {result.pval:.5f} {significance_code(result.pval)}")
        decision = "Yes" if result.reject else "No"
        print(f"Reject H₀ (α={alpha:.2f}): {decision}")
        print("--------------------------------------\n")

    return result


def _shift_to_zero(alpha1: np.ndarray, alpha2: np.ndarray):
    shift = min(alpha1.min(), alpha2.min())
    return angmod(alpha1 - shift), angmod(alpha2 - shift)


def kuiper_statistic(alpha1: np.ndarray, alpha2: np.ndarray) -> float:
    r"""
    Two-sample Kuiper statistic.

    Both samples are shifted so the smallest pooled angle sits at zero, then

    $$ V = \max_x (F_1(x) - F_2(x)) + \max_x (F_2(x) - F_1(x)) $$

    with $F_1, F_2$ the empirical CDFs evaluated at every distinct pooled
    value. $V$ is symmetric in the two samples and does not change when both
    samples are rotated by the same angle.

    Parameters
    ----------
    alpha1, alpha2 : np.ndarray
        Angles in radian; both must be non-empty.

    Returns
    -------
    V : float
    """
    alpha1 = np.asarray(alpha1, dtype=float).ravel()
    alpha2 = np.asarray(alpha2, dtype=float).ravel()
    if alpha1.size == 0 or alpha2.size == 0:
        raise ValueError("Both samples must contain at least one angle.")

    s1, s2 = _shift_to_zero(alpha1, alpha2)
    pooled = np.sort(np.concatenate([s1, s2]))
    diff = (
        np.searchsorted(np.sort(s1), pooled, side="right") / s1.size
        - np.searchsorted(np.sort(s2), pooled, side="right") / s2.size
    )

    return float(diff.max() + abs(diff.min()))


def _kuiper_permutation_batch(
    labels: np.ndarray,
    last_of_tie: np.ndarray,
    n1: int,
    n2: int,
    n_draws: int,
    V_obs: float,
    seed_seq: np.random.SeedSequence,
) -> int:
    """Count permuted statistics >= V_obs for one batch of random partitions.

    `labels` marks membership of the first sample along the sorted pooled
    data; shuffling it row by row gives independent partitions of sizes n1
    and n2 without touching the data itself.
    """
    rng = np.random.default_rng(seed_seq)
    perm = rng.permuted(np.tile(labels, (n_draws, 1)), axis=1)

    F1 = np.cumsum(perm, axis=1)[:, last_of_tie] / n1
    F2 = np.cumsum(1 - perm, axis=1)[:, last_of_tie] / n2
    diff = F1 - F2
    V = diff.max(axis=1) + np.abs(diff.min(axis=1))

    # tolerance absorbs float noise in the cumulative sums
    return int(np.count_nonzero(V >= V_obs - 1e-12))


def kuiper_two_sample_test(
    alpha1: np.ndarray,
    alpha2: np.ndarray,
    n_simulation: int = 1000,
    seed: Optional[Union[int, np.random.SeedSequence]] = None,
    n_jobs: int = 1,
    batch_size: int = 250,
    continuity: bool = False,
    verbose: bool = False,
) -> KuiperTwoSampleTestResult:
    r"""
    Two-sample Kuiper test by Monte-Carlo permutation.

    - H0: The two samples come from the same circular distribution.
    - H1: The two samples come from different circular distributions.

    Tabulated critical values of the two-sample Kuiper statistic only cover
    a few hundred observations per sample. Here the null distribution is
    simulated instead: the pooled sample is split at random into groups of
    the original sizes `n_simulation` times and the statistic recomputed for
    every split.

    $$ p = \frac{\#\{V^* \ge V_{obs}\}}{B} $$

    or, with `continuity=True`, $(\#\{V^* \ge V_{obs}\} + 1) / (B + 1)$.

    Parameters
    ----------
    alpha1, alpha2: np.ndarray
        Angles in radian.
    n_simulation: int
        Number of random partitions B. Default is 1000.
    seed: int, SeedSequence or None
        Seed of the permutation generator. Results depend on the seed only,
        not on `n_jobs`.
    n_jobs: int
        Number of worker threads. Permutations are drawn in batches, each
        with its own generator spawned from `seed`; per-batch counts are
        summed once all batches are done.
    batch_size: int
        Permutations per batch.
    continuity: bool
        Use the `(count + 1) / (B + 1)` estimator.
    verbose: bool
        Print formatted results.

    Returns
    -------
    KuiperTwoSampleTestResult
        Observed statistic `V`, p-value, exceedance count and, when no
        permutation reached `V`, the flag `pval_is_bound` with the resolution
        limit `pval_bound = 1 / n_simulation`.

    Warns
    -----
    LowResolutionWarning
        If `n_simulation` < 200.
    """
    alpha1 = np.asarray(alpha1, dtype=float).ravel()
    alpha2 = np.asarray(alpha2, dtype=float).ravel()

    if alpha1.size == 0 or alpha2.size == 0:
        raise ValueError("Both samples must contain at least one angle.")
    if not (np.all(np.isfinite(alpha1)) and np.all(np.isfinite(alpha2))):
        raise ValueError("Angles must be finite.")
    if n_simulation <= 0:
        raise ValueError("`n_simulation` must be a positive integer.")
    if n_jobs <= 0:
        raise ValueError("`n_jobs` must be a positive integer.")
    if batch_size <= 0:
        raise ValueError("`batch_size` must be a positive integer.")

    if n_simulation < MIN_RELIABLE_SIMULATIONS:
        warnings.warn(
            f"Only {n_simulation} permutations: p-values are resolved to "
            f"{1 / n_simulation:.3g}, too coarse for a 0.05 threshold.",
            LowResolutionWarning,
            stacklevel=2,
        )

    n1, n2 = alpha1.size, alpha2.size
    V_obs = kuiper_statistic(alpha1, alpha2)

    # the shift-to-zero origin depends only on the pooled set, so it is
    # shared by every partition and the pooled data are sorted once
    s1, s2 = _shift_to_zero(alpha1, alpha2)
    pooled = np.concatenate([s1, s2])
    order = np.argsort(pooled, kind="stable")
    pooled_sorted = pooled[order]
    labels = (order < n1).astype(np.int32)
    last_of_tie = np.flatnonzero(np.append(np.diff(pooled_sorted) != 0, True))

    sizes = [batch_size] * (n_simulation // batch_size)
    if n_simulation % batch_size:
        sizes.append(n_simulation % batch_size)

    root = seed if isinstance(seed, np.random.SeedSequence) else np.random.SeedSequence(seed)
    children = root.spawn(len(sizes))

    def run(job):
        size, child = job
        return _kuiper_permutation_batch(labels, last_of_tie, n1, n2, size, V_obs, child)

    jobs = list(zip(sizes, children))
    if n_jobs == 1 or len(jobs) == 1:
        counts = [run(job) for job in jobs]
    else:
        with ThreadPoolExecutor(max_workers=n_jobs) as ex:
            counts = list(ex.map(run, jobs))
    count = int(sum(counts))

    if continuity:
        pval = (count + 1) / (n_simulation + 1)
    else:
        pval = count / n_simulation

    pval_is_bound = count == 0 and not continuity
    pval_bound = 1 / n_simulation if pval_is_bound else None

    if verbose:
        print("Two-Sample Kuiper Permutation Test")
        print("----------------------------------")
        print("H0: The two samples come from the same distribution.")
        print("HA: The two samples come from different distributions.")
        print("")
        print(f"Test Statistic (V): {V_obs:.5f}")
        if pval_is_bound:
            print(f"P-value: < {pval_bound:.5f} {significance_code(pval_bound)}")
        else:
            print(f"P-value: {pval:.5f} {significance_code(pval)}")
        print(f"Permutations: {n_simulation}")

    return KuiperTwoSampleTestResult(
        V=V_obs,
        pval=float(pval),
        count=count,
        n_simulation=n_simulation,
        n1=int(n1),
        n2=int(n2),
        pval_is_bound=pval_is_bound,
        pval_bound=pval_bound,
    )
