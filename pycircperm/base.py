from dataclasses import dataclass
from typing import Hashable, Optional, Tuple, Union

import numpy as np
from scipy.stats import norm

from .descriptive import circ_mean_and_r, circ_mean_ci, circ_mean_se, circ_median, circ_var
from .hypothesis import TestResult, rayleigh_test
from .utils import angmod, data2rad, rad2data, significance_code

__names__ = ["Circular", "DescriptiveStats", "MeanCI"]


@dataclass(frozen=True)
class MeanCI(TestResult):
    level: float
    se_rad: float
    half_width_deg: float
    lower_deg: float
    upper_deg: float


@dataclass(frozen=True)
class DescriptiveStats(TestResult):
    population: Tuple[Hashable, ...]
    group: Hashable
    n: int
    mean_deg: float  # [0, 360) or nan
    variance: float  # [0, 1] or nan
    r: float
    rayleigh_z: float
    rayleigh_p: float
    median_deg: float
    mean_ci: Optional[MeanCI] = None
    ci_undefined_reason: Optional[str] = None

    @property
    def defined(self) -> bool:
        return self.n > 0


class Circular:
    r"""
    Summary of one group of circular observations.

    All statistics are computed on construction, the same way for every group
    in an analysis run: sample size, mean direction, resultant length,
    circular variance, Rayleigh's test for uniformity, circular median and a
    normal-approximation confidence interval of the mean direction.

    Parameters
    ----------
    data : array-like (n,)
        Angles, in degrees by default.

    unit : str, optional
        Unit of the input data. Must be one of {"degree", "radian"}.
        Default is "degree".

    ci_level : float, optional
        Confidence level of the mean-direction interval. Default is 0.95.

    Attributes
    ----------
    n : int
        Sample size.

    mean : float
        Angular mean in radians, `nan` when undefined.

    r : float
        Resultant vector length, measuring data concentration (0 to 1).

    variance : float
        Circular variance, `1 - r`.

    median : float
        Angular median in radians.

    mean_test_result : RayleighTestResult
        Rayleigh's test of the null hypothesis of uniformity.

    mean_lb, mean_ub : float
        Confidence interval of the angular mean (radians), `None` when it is
        undefined; `ci_undefined_reason` then says why.

    Notes
    -----
    An empty sample is valid: every statistic is `nan` and nothing is raised.

    The standard error of the mean direction is $\sqrt{(1-R)/(nR)}$. It is
    zero for identical angles and unbounded for $R = 0$, where the interval
    is reported as undefined instead of carrying `nan` bounds.

    References
    ----------
    - Zar, J. H. (2010). Biostatistical Analysis (5th Edition). Pearson.
    - Fisher, N. I. (1995). Statistical Analysis of Circular Data. Cambridge University Press.

    Examples
    --------

    ```python
    circ = Circular([30, 60, 90, 120, 150], unit="degree")
    print(circ.summary())
    ```
    """

    def __init__(
        self,
        data: Union[np.ndarray, list],  # angle
        unit: str = "degree",
        ci_level: float = 0.95,
    ):
        # meta
        self.unit = unit
        if unit == "degree":
            self.n_intervals = n_intervals = 360
        elif unit == "radian":
            self.n_intervals = n_intervals = 2 * np.pi
        else:
            raise ValueError("`unit` must be `degree` or `radian`.")

        if not (0 < ci_level < 1):
            raise ValueError("`ci_level` must be between 0 and 1.")
        self.ci_level = ci_level

        # data
        self.data = data = np.array(data, dtype=float, ndmin=1)
        self.alpha = alpha = angmod(data2rad(data, n_intervals))

        # sample size
        self.n = n = int(alpha.size)

        # angular mean and resultant vector length
        self.mean, self.r = (mean, r) = circ_mean_and_r(alpha=alpha)
        self.variance = circ_var(r=r) if n > 0 else np.nan

        # z-score and p-value from rayleigh test for angular mean
        self.mean_test_result = rayleigh_test(n=n, r=r if n > 0 else None)

        self.median = circ_median(alpha)

        # confidence interval for angular mean
        self.mean_lb = self.mean_ub = self.se = self.ci_half_width = None
        if n == 0:
            self.ci_undefined_reason = "empty group"
        elif np.isnan(mean) or r == 0.0:
            self.ci_undefined_reason = "resultant length is zero"
        else:
            self.ci_undefined_reason = None
            self.se = circ_mean_se(r=r, n=n)
            self.ci_half_width = norm.ppf(1 - (1 - ci_level) / 2) * self.se
            self.mean_lb, self.mean_ub = circ_mean_ci(mean=mean, r=r, n=n, ci=ci_level)

    def __repr__(self):
        unit = self.unit
        k = self.n_intervals
        pval = self.mean_test_result.pval

        docs = "Circular Data\n"
        docs += "=============\n\n"

        docs += "Summary\n"
        docs += "-------\n"
        docs += f"  Unit: {unit}\n"
        docs += f"  Sample size: {self.n}\n"

        if self.n == 0:
            docs += "  No observations; all statistics are undefined.\n"
            return docs

        if np.isnan(self.mean):
            docs += f"  Angular mean: undefined ( p={pval:.04f} {significance_code(pval)} ) \n"
        else:
            docs += f"  Angular mean: {rad2data(self.mean, k=k):.02f} ( p={pval:.04f} {significance_code(pval)} ) \n"

        if self.mean_lb is not None:
            docs += f"  Angular mean CI ({self.ci_level:.2f}): {rad2data(self.mean_lb, k=k):.02f} - {rad2data(self.mean_ub, k=k):.02f}\n"
        else:
            docs += f"  Angular mean CI: undefined ({self.ci_undefined_reason})\n"

        docs += f"  Angular median: {rad2data(self.median, k=k):.02f} \n"
        docs += f"  Circular variance: {self.variance:0.4f}\n"
        docs += f"  Concentration (r): {self.r:0.4f}\n"

        docs += "\n"

        docs += "Signif. codes:\n"
        docs += "--------------\n"
        docs += " 0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1\n"

        return docs

    def __str__(self):
        return self.__repr__()

    def summary(self):
        """Text summary of the group: size, mean with Rayleigh p-value,
        confidence interval, median, variance and concentration."""
        return self.__repr__()

    def to_stats(self, population: Tuple[Hashable, ...] = (), group: Hashable = None) -> DescriptiveStats:
        """Freeze the summary into a `DescriptiveStats` record (angles in degrees)."""
        if self.n == 0:
            return DescriptiveStats(
                population=population,
                group=group,
                n=0,
                mean_deg=np.nan,
                variance=np.nan,
                r=np.nan,
                rayleigh_z=np.nan,
                rayleigh_p=np.nan,
                median_deg=np.nan,
                mean_ci=None,
                ci_undefined_reason=self.ci_undefined_reason,
            )

        mean_ci = None
        if self.mean_lb is not None:
            mean_ci = MeanCI(
                level=self.ci_level,
                se_rad=self.se,
                half_width_deg=float(np.rad2deg(self.ci_half_width)),
                lower_deg=float(angmod(np.rad2deg(self.mean_lb), bounds=[0, 360])),
                upper_deg=float(angmod(np.rad2deg(self.mean_ub), bounds=[0, 360])),
            )

        return DescriptiveStats(
            population=population,
            group=group,
            n=self.n,
            mean_deg=float(angmod(np.rad2deg(self.mean), bounds=[0, 360])) if not np.isnan(self.mean) else np.nan,
            variance=float(self.variance),
            r=float(self.r),
            rayleigh_z=float(self.mean_test_result.z),
            rayleigh_p=float(self.mean_test_result.pval),
            median_deg=float(angmod(np.rad2deg(self.median), bounds=[0, 360])),
            mean_ci=mean_ci,
            ci_undefined_reason=self.ci_undefined_reason,
        )
