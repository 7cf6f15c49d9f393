from dataclasses import dataclass, replace
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .base import DescriptiveStats
from .correction import FDRResult
from .hypothesis import TestResult
from .utils import format_pval, significance_code

__names__ = [
    "CommonMedianResult",
    "InconsistentReportError",
    "PairwiseResult",
    "PopulationReport",
    "assemble_report",
]


class InconsistentReportError(ValueError):
    """Report parts that do not describe the same set of groups and pairs."""


@dataclass(frozen=True)
class CommonMedianResult(TestResult):
    population: Tuple[Hashable, ...]
    statistic: float
    estimated_median_rad: float
    p_value: float
    df: int
    n_groups: int
    reject: bool
    applicable: bool = True
    reason: Optional[str] = None


@dataclass(frozen=True)
class PairwiseResult(TestResult):
    population: Tuple[Hashable, ...]
    group_a: Hashable
    group_b: Hashable
    n_a: int
    n_b: int
    statistic: float = np.nan
    # Monte-Carlo estimate; the resolution limit 1/n_simulation when no
    # permutation reached the observed statistic (`p_value_is_bound`)
    p_value_raw: float = np.nan
    p_value_adjusted: Optional[float] = None
    significant: Optional[bool] = None
    p_value_is_bound: bool = False
    applicable: bool = True
    reason: Optional[str] = None

    @property
    def pair(self) -> Tuple[Hashable, Hashable]:
        return (self.group_a, self.group_b)


@dataclass(frozen=True)
class PopulationReport(TestResult):
    population: Tuple[Hashable, ...]
    stats: Tuple[DescriptiveStats, ...]
    common_median: CommonMedianResult
    pairwise: Tuple[PairwiseResult, ...]
    q: float = 0.05
    alpha: float = 0.05

    @property
    def groups(self) -> Tuple[Hashable, ...]:
        return tuple(s.group for s in self.stats)

    @property
    def significant_pairs(self) -> List[PairwiseResult]:
        return [p for p in self.pairwise if p.significant]

    def stats_for(self, group: Hashable) -> DescriptiveStats:
        for s in self.stats:
            if s.group == group:
                return s
        raise KeyError(f"Unknown group {group!r}.")

    def pair(self, group_a: Hashable, group_b: Hashable) -> PairwiseResult:
        for p in self.pairwise:
            if {p.group_a, p.group_b} == {group_a, group_b}:
                return p
        raise KeyError(f"No pairwise result for {group_a!r} vs {group_b!r}.")

    def to_frame(self) -> pd.DataFrame:
        """One row per group with its descriptive statistics."""
        rows = []
        for s in self.stats:
            ci = s.mean_ci
            rows.append(
                {
                    "population": self.population,
                    "group": s.group,
                    "n": s.n,
                    "mean_deg": s.mean_deg,
                    "variance": s.variance,
                    "r": s.r,
                    "rayleigh_p": s.rayleigh_p,
                    "median_deg": s.median_deg,
                    "ci_lower_deg": ci.lower_deg if ci is not None else np.nan,
                    "ci_upper_deg": ci.upper_deg if ci is not None else np.nan,
                    "ci_half_width_deg": ci.half_width_deg if ci is not None else np.nan,
                }
            )
        return pd.DataFrame(rows)

    def pairwise_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "population": p.population,
                    "group_a": p.group_a,
                    "group_b": p.group_b,
                    "n_a": p.n_a,
                    "n_b": p.n_b,
                    "statistic": p.statistic,
                    "p_value_raw": p.p_value_raw,
                    "p_value_is_bound": p.p_value_is_bound,
                    "p_value_adjusted": p.p_value_adjusted,
                    "significant": p.significant,
                    "applicable": p.applicable,
                    "reason": p.reason,
                }
                for p in self.pairwise
            ],
            columns=[
                "population", "group_a", "group_b", "n_a", "n_b", "statistic",
                "p_value_raw", "p_value_is_bound", "p_value_adjusted",
                "significant", "applicable", "reason",
            ],
        )

    def pvalue_matrix(self, adjusted: bool = True) -> pd.DataFrame:
        """Symmetric group x group p-value matrix with a `nan` diagonal.

        Pairs that were not tested are `nan` as well.
        """
        groups = list(self.groups)
        mat = pd.DataFrame(np.nan, index=groups, columns=groups, dtype=float)
        for p in self.pairwise:
            if not p.applicable:
                continue
            value = p.p_value_adjusted if adjusted else p.p_value_raw
            if value is None:
                continue
            mat.loc[p.group_a, p.group_b] = value
            mat.loc[p.group_b, p.group_a] = value
        return mat

    def __repr__(self):
        label = " / ".join(map(str, self.population)) or "all observations"

        docs = f"Population: {label}\n"
        docs += "=" * (12 + len(label)) + "\n\n"

        docs += "Groups\n"
        docs += "------\n"
        for s in self.stats:
            if s.n == 0:
                docs += f"  {s.group}: n=0 (undefined)\n"
                continue
            mean = "undefined" if np.isnan(s.mean_deg) else f"{s.mean_deg:.02f}"
            docs += (
                f"  {s.group}: n={s.n}, mean={mean}, V={s.variance:.4f}, "
                f"Rayleigh p={s.rayleigh_p:.04f} {significance_code(s.rayleigh_p)}\n"
            )

        docs += "\nCommon median test\n"
        docs += "------------------\n"
        cm = self.common_median
        if cm.applicable:
            docs += (
                f"  P={cm.statistic:.5f}, df={cm.df}, median={np.rad2deg(cm.estimated_median_rad):.02f}, "
                f"p={cm.p_value:.5f} {significance_code(cm.p_value)}\n"
            )
        else:
            docs += f"  not applicable ({cm.reason})\n"

        docs += f"\nPairwise Kuiper tests (BH FDR, q={self.q:g})\n"
        docs += "------------------------------------------\n"
        for p in self.pairwise:
            if not p.applicable:
                docs += f"  {p.group_a} vs {p.group_b}: not applicable ({p.reason})\n"
                continue
            flag = " *" if p.significant else ""
            docs += (
                f"  {p.group_a} vs {p.group_b}: V={p.statistic:.4f}, "
                f"p={format_pval(p.p_value_raw, bound=p.p_value_is_bound)}, "
                f"adj. p={format_pval(p.p_value_adjusted)}{flag}\n"
            )

        docs += "\nSignif. codes:\n"
        docs += "--------------\n"
        docs += " 0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1\n"

        return docs

    def __str__(self):
        return self.__repr__()

    def summary(self):
        return self.__repr__()


def assemble_report(
    population: Tuple[Hashable, ...],
    stats: Sequence[DescriptiveStats],
    common_median: CommonMedianResult,
    pairwise: Sequence[PairwiseResult],
    fdr: FDRResult,
    alpha: float = 0.05,
) -> PopulationReport:
    """
    Join the per-group, common-median and pairwise results of one population.

    The FDR decisions are written onto the applicable pairwise results in
    the order they were tested; nothing is recomputed.

    Raises
    ------
    InconsistentReportError
        If a pair names a group without descriptive statistics, a pair is
        duplicated, a part belongs to another population, or the FDR result
        does not cover exactly the applicable pairs.
    """
    known = [s.group for s in stats]
    if len(set(known)) != len(known):
        raise InconsistentReportError(f"Duplicate groups in descriptive statistics: {known}.")
    if any(s.population != population for s in stats):
        raise InconsistentReportError("Descriptive statistics from another population.")
    if common_median.population != population:
        raise InconsistentReportError("Common median result from another population.")

    seen = set()
    for p in pairwise:
        if p.population != population:
            raise InconsistentReportError(
                f"Pair {p.group_a!r} vs {p.group_b!r} belongs to population {p.population!r}."
            )
        for g in p.pair:
            if g not in known:
                raise InconsistentReportError(
                    f"Pair {p.group_a!r} vs {p.group_b!r} references group {g!r} "
                    "that has no descriptive statistics."
                )
        key = frozenset(p.pair)
        if len(key) != 2 or key in seen:
            raise InconsistentReportError(f"Duplicate or degenerate pair {p.group_a!r} vs {p.group_b!r}.")
        seen.add(key)

    applicable = [i for i, p in enumerate(pairwise) if p.applicable]
    if fdr.m != len(applicable):
        raise InconsistentReportError(
            f"FDR correction covers {fdr.m} p-value(s) but {len(applicable)} pair(s) were tested."
        )

    annotated: List[PairwiseResult] = list(pairwise)
    for j, i in enumerate(applicable):
        annotated[i] = replace(
            pairwise[i],
            p_value_adjusted=float(fdr.pvals_adjusted[j]),
            significant=bool(fdr.reject[j]),
        )

    return PopulationReport(
        population=population,
        stats=tuple(stats),
        common_median=common_median,
        pairwise=tuple(annotated),
        q=fdr.q,
        alpha=alpha,
    )
