from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from .hypothesis import TestResult


@dataclass(frozen=True)
class FDRResult(TestResult):
    reject: np.ndarray  # bool, in input order
    pvals_adjusted: np.ndarray  # in input order
    cutoff_rank: int  # 0 when nothing is rejected
    threshold: float  # largest p-value declared significant, nan if none
    q: float
    m: int


def fdr_bh(pvals: Union[Sequence[float], np.ndarray], q: float = 0.05) -> FDRResult:
    r"""
    Benjamini-Hochberg false discovery rate control.

    With the $m$ p-values sorted ascending, find the largest rank $i$ with

    $$ p_{(i)} \le \frac{i}{m} q $$

    and declare $p_{(1)}, \dots, p_{(i)}$ significant. If no rank qualifies,
    nothing is significant.

    The adjusted p-values are the step-up values

    $$ \tilde p_{(i)} = \min_{j \ge i} \min\left(1, \frac{m}{j} p_{(j)}\right) $$

    so that `pvals_adjusted <= q` reproduces the same decision.

    Parameters
    ----------
    pvals: array-like (m,)
        Raw p-values, one per test.
    q: float
        Target false discovery rate. Default is 0.05.

    Returns
    -------
    FDRResult
        Rejection flags and adjusted p-values aligned with the input order.
        Ties keep their own positions: the sort is stable and results are
        scattered back by index, never matched by value.

    References
    ----------
    Benjamini, Y., & Hochberg, Y. (1995). Controlling the false discovery
    rate. Journal of the Royal Statistical Society B, 57(1), 289-300.
    """
    if not (0 < q < 1):
        raise ValueError("`q` must be between 0 and 1.")

    p = np.asarray(pvals, dtype=float).ravel()
    m = p.size
    if m == 0:
        return FDRResult(
            reject=np.zeros(0, dtype=bool),
            pvals_adjusted=np.zeros(0, dtype=float),
            cutoff_rank=0,
            threshold=np.nan,
            q=q,
            m=0,
        )
    if np.any(np.isnan(p)):
        raise ValueError("p-values must not contain NaN.")
    if np.any((p < 0) | (p > 1)):
        raise ValueError("p-values must lie in [0, 1].")

    order = np.argsort(p, kind="stable")
    p_sorted = p[order]
    ranks = np.arange(1, m + 1, dtype=float)

    below = np.flatnonzero(p_sorted <= ranks / m * q)
    cutoff_rank = int(below[-1] + 1) if below.size else 0

    reject = np.zeros(m, dtype=bool)
    reject[order[:cutoff_rank]] = True

    # step-up adjustment: cumulative minimum from the largest p-value down
    adjusted_sorted = np.minimum.accumulate((p_sorted * m / ranks)[::-1])[::-1]
    adjusted = np.empty(m, dtype=float)
    adjusted[order] = np.clip(adjusted_sorted, 0.0, 1.0)

    threshold = float(p_sorted[cutoff_rank - 1]) if cutoff_rank else np.nan

    return FDRResult(
        reject=reject,
        pvals_adjusted=adjusted,
        cutoff_rank=cutoff_rank,
        threshold=threshold,
        q=q,
        m=m,
    )
