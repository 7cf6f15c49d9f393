from typing import Optional, Tuple, Union

import numpy as np
from scipy.stats import norm

from .utils import angmod


def compute_C_and_S(
    alpha: np.ndarray,
    w: np.ndarray,
    p: int = 1,
    mean: Union[float, np.ndarray] = 0.0,
) -> Tuple[float, float]:
    r"""
    Compute the intermediate values Cbar and Sbar.

    $$
    \displaylines{
    \bar{C}_{p} = \frac{\sum_{i=1}^{n} w_{i} \cos(p(\alpha_{i} - \mu))}{n} \\
    \bar{S}_{p} = \frac{\sum_{i=1}^{n} w_{i} \sin(p(\alpha_{i} - \mu))}{n}
    }
    $$

    Parameters
    ----------
    alpha: np.ndarray
        Angles in radian.
    w: np.ndarray
        Frequencies or weights.
    p: int, optional
        Order of the moment (default is 1, for the first moment).
    mean: float, optional
        Mean angle (μ) to center the computation (default is 0.0).

    Returns
    -------
    Cbar: float
        Weighted mean cosine for the given moment.
    Sbar: float
        Weighted mean sine for the given moment.
    """
    n = np.sum(w)
    Cbar = np.sum(w * np.cos(p * (alpha - mean))) / n
    Sbar = np.sum(w * np.sin(p * (alpha - mean))) / n

    return Cbar, Sbar


def _is_constant(alpha: np.ndarray) -> bool:
    wrapped = angmod(np.asarray(alpha, dtype=float).copy())
    return bool(np.all(wrapped == wrapped[0]))


def circ_r(
    alpha: Optional[np.ndarray] = None,
    w: Optional[np.ndarray] = None,
    Cbar: Optional[float] = None,
    Sbar: Optional[float] = None,
) -> float:
    r"""
    Circular mean resultant vector length (r).

    $$
    r = \sqrt{\bar{C}^2 + \bar{S}^2}
    $$

    Parameters
    ----------
    alpha: np.array (n, )
        Angles in radian.
    w: np.array (n,)
        Frequencies or weights
    Cbar, Sbar: float
        Precomputed intermediate values

    Returns
    -------
    r: float
        Resultant vector length, `nan` for an empty sample.

    References
    ----------
    Implementation of Example 26.5 (Zar, 2010)
    """
    if alpha is None and (Cbar is None or Sbar is None):
        raise ValueError("`alpha` is needed for computing the resultant vector length.")

    if Cbar is None or Sbar is None:
        alpha = np.asarray(alpha, dtype=float)
        if alpha.size == 0:
            return np.nan
        # identical directions: the unit vectors add up exactly
        if _is_constant(alpha):
            return 1.0
        if w is None:
            w = np.ones_like(alpha)
        Cbar, Sbar = compute_C_and_S(alpha, w)

    # mean resultant vecotr length
    r = np.sqrt(Cbar**2 + Sbar**2)

    return float(np.clip(r, 0.0, 1.0))


def circ_mean(
    alpha: np.ndarray,
    w: Optional[np.ndarray] = None,
) -> float:
    r"""
    Circular mean (m).

    $$\bar\theta = \operatorname{atan2}(\bar{S}, \bar{C}) \bmod 2\pi$$

    Returns `nan` when the resultant length vanishes (no preferred direction)
    or the sample is empty.
    """
    m, _ = circ_mean_and_r(alpha, w)
    return m


def circ_mean_and_r(
    alpha: np.ndarray,
    w: Optional[np.ndarray] = None,
) -> Tuple[float, float]:
    """
    Circular mean (m) and resultant vector length (r).

    Parameters
    ----------
    alpha: np.array (n, )
        Angles in radian.
    w: np.array (n,)
        Frequencies or weights

    Returns
    -------
    m: float or NaN
        Circular mean in [0, 2π)
    r: float or NaN
        Resultant vector length

    Note
    ----
    Implementation of Example 26.5 (Zar, 2010)
    """
    alpha = np.asarray(alpha, dtype=float)
    if alpha.size == 0:
        return np.nan, np.nan

    if _is_constant(alpha):
        return float(angmod(float(alpha[0]))), 1.0

    if w is None:
        w = np.ones_like(alpha)

    # mean resultant vecotr length
    Cbar, Sbar = compute_C_and_S(alpha, w)
    r = circ_r(alpha, w, Cbar, Sbar)

    # angular mean
    if np.isclose(r, 0):
        return np.nan, r

    m = np.arctan2(Sbar, Cbar)

    return float(angmod(m)), r


def circ_var(
    alpha: Optional[np.ndarray] = None,
    w: Optional[np.ndarray] = None,
    r: Optional[float] = None,
) -> float:
    r"""
    Circular variance

    $$ V = 1 - r $$

    Parameters
    ----------
    alpha: np.array (n, ) or None
        Angles in radian.
    w: np.array (n,) or None
        Frequencies or weights
    r: float or None
        Resultant vector length

    Returns
    -------
    variance: float
        Circular variance, range from 0 to 1.

    References
    ----------
    - Equation 2.11 of Fisher (1993)
    - Equation 26.17 of Zar (2010)
    """
    if r is None:
        if alpha is None:
            raise ValueError("If `r` is None, then `alpha` is needed.")
        r = circ_r(alpha, w)

    return 1.0 - r


def circ_dist(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    r"""
    Compute the pairwise circular difference $x_i - y_i$ using complex representation.

    Parameters
    ----------
    x : array-like
        Sample of circular data (radians).
    y : array-like
        Sample of circular data (radians) or a single angle.

    Returns
    -------
    array
        Circular differences wrapped to [-pi, pi].

    References
    ----------
    - Section 27.7 (Zar, 2010, P642)

    """
    return np.angle(np.exp(1j * (np.asarray(x, dtype=float) - np.asarray(y, dtype=float))))


def circ_median(alpha: np.ndarray) -> float:
    r"""
    Circular median (count method).

    The median is the sample direction whose diameter splits the data into
    two halves of equal size (Fisher, 1993, Section 2.3.2). For every
    observation $j$ we count the points with $0 \le \alpha_i - \alpha_j \le \pi$
    and $-\pi \le \alpha_i - \alpha_j \le 0$, and pick the observation that
    balances both counts best.

    - odd n: the first minimiser in sorted order is the median.
    - even n: the circular mean of the first two minimisers in sorted order.

    The result depends on the sample as a multiset only, not on its order.

    The candidate is flipped by $\pi$ if it lies on the far side of the
    mean direction.

    Counting uses binary search on a sorted, doubled copy of the sample, so
    the cost is $O(n \log n)$ rather than the $O(n^2)$ of an explicit
    pairwise-distance matrix.

    Parameters
    ----------
    alpha: np.array (n, )
        Angles in radian.

    Returns
    -------
    median: float or NaN
        Median direction in [0, 2π); `nan` for an empty sample.
    """
    alpha = np.asarray(alpha, dtype=float).ravel()
    # angles already in [0, 2π) are kept exactly
    outside = (alpha < 0) | (alpha >= 2 * np.pi)
    if outside.any():
        alpha = alpha.copy()
        alpha[outside] = angmod(alpha[outside])
    n = alpha.size
    if n == 0:
        return np.nan
    if n == 1:
        return float(alpha[0])

    ordered = np.sort(alpha)
    doubled = np.concatenate([ordered, ordered + 2 * np.pi])

    # points in the closed half circle [alpha_j, alpha_j + pi]
    ahead = np.searchsorted(doubled, ordered + np.pi, side="right") - np.searchsorted(
        doubled, ordered, side="left"
    )
    ties = np.searchsorted(ordered, ordered, side="right") - np.searchsorted(
        ordered, ordered, side="left"
    )
    behind = n - ahead + ties

    imbalance = np.abs(ahead - behind)
    candidates = np.flatnonzero(imbalance == imbalance.min())

    # candidates index the sorted sample, so row order never matters
    if n % 2 == 1:
        median = ordered[candidates[0]]
    else:
        pick = ordered[candidates[:2]]
        first, second = pick[0], pick[-1]
        median = first if first == second else circ_mean(np.array([first, second]))
        if np.isnan(median):
            median = first

    mean = circ_mean(ordered)
    if not np.isnan(mean):
        if np.abs(circ_dist(mean, median)) > np.abs(circ_dist(mean, median + np.pi)):
            median = angmod(median + np.pi)

    return float(median)


def circ_mean_se(r: float, n: int) -> float:
    r"""
    Standard error of the mean direction (radians).

    $$ SE = \sqrt{\frac{1 - R}{n R}} $$

    Raises
    ------
    ValueError
        If `n` is not positive or `r` is zero, where the standard error is
        unbounded.
    """
    if n is None or n <= 0:
        raise ValueError("Standard error of the mean requires a positive sample size.")
    if not (0.0 <= r <= 1.0):
        raise ValueError("`r` must lie in the interval [0, 1].")
    if r == 0.0:
        raise ValueError("Standard error of the mean is unbounded when r = 0.")

    return float(np.sqrt((1.0 - r) / (n * r)))


def circ_mean_ci(
    mean: float,
    r: float,
    n: int,
    ci: float = 0.95,
) -> Tuple[float, float]:
    r"""
    Normal-approximation confidence interval for the mean direction.

    $$ \bar\theta \pm z_{1-(1-c)/2} \cdot SE $$

    Parameters
    ----------
    mean: float
        Mean direction in radian.
    r: float
        Resultant vector length.
    n: int
        Sample size.
    ci: float
        Confidence level, 0.95 by default (z = 1.96).

    Returns
    -------
    lower, upper: float
        Interval bounds in radian, wrapped to [0, 2π).
    """
    if not (0 < ci < 1):
        raise ValueError("`ci` must be between 0 and 1.")
    if mean is None or np.isnan(mean):
        raise ValueError("The mean direction is undefined.")

    half_width = norm.ppf(1 - (1 - ci) / 2) * circ_mean_se(r, n)
    lower = angmod(mean - half_width)
    upper = angmod(mean + half_width)

    return float(lower), float(upper)
