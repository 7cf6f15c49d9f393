import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from itertools import combinations
from typing import Dict, Hashable, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .base import Circular
from .correction import fdr_bh
from .data import ObservationTable
from .hypothesis import MIN_RELIABLE_SIMULATIONS, common_median_test, kuiper_two_sample_test
from .report import CommonMedianResult, PairwiseResult, PopulationReport, assemble_report
from .utils import LowResolutionWarning, PopulationFailedWarning

__names__ = ["AnalysisConfig", "AnalysisReport", "analyse", "analyse_population"]


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Settings of one analysis run.

    Parameters
    ----------
    n_simulation: int
        Permutations per pairwise Kuiper test. Default is 1000.
    q: float
        Target false discovery rate of the pairwise tests. Default is 0.05.
    alpha: float
        Significance level used for reporting (common median decision).
        Default is 0.05.
    ci_level: float
        Confidence level of the mean-direction intervals. Default is 0.95.
    seed: int or None
        Root seed. Every population and every pair derive their own
        generator from it, so a fixed seed reproduces all p-values.
    n_jobs: int
        Worker threads.
    continuity: bool
        Report `(count + 1) / (B + 1)` instead of `count / B`.
    batch_size: int
        Permutations drawn per generator batch.
    """

    n_simulation: int = 1000
    q: float = 0.05
    alpha: float = 0.05
    ci_level: float = 0.95
    seed: Optional[int] = None
    n_jobs: int = 1
    continuity: bool = False
    batch_size: int = 250

    def __post_init__(self):
        if self.n_simulation <= 0:
            raise ValueError("`n_simulation` must be a positive integer.")
        for name in ("q", "alpha", "ci_level"):
            if not (0 < getattr(self, name) < 1):
                raise ValueError(f"`{name}` must be between 0 and 1.")
        if self.n_jobs <= 0:
            raise ValueError("`n_jobs` must be a positive integer.")
        if self.batch_size <= 0:
            raise ValueError("`batch_size` must be a positive integer.")
        if self.n_simulation < MIN_RELIABLE_SIMULATIONS:
            warnings.warn(
                f"n_simulation={self.n_simulation} resolves p-values to "
                f"{1 / self.n_simulation:.3g}; results near q={self.q:g} are unreliable.",
                LowResolutionWarning,
                stacklevel=3,
            )


def _kuiper_pair(population, group_a, group_b, a, b, config, seed_seq) -> PairwiseResult:
    if a.size == 0 or b.size == 0:
        empty = [g for g, x in ((group_a, a), (group_b, b)) if x.size == 0]
        return PairwiseResult(
            population=population,
            group_a=group_a,
            group_b=group_b,
            n_a=int(a.size),
            n_b=int(b.size),
            applicable=False,
            reason=f"no observations in {', '.join(map(str, empty))}",
        )

    res = kuiper_two_sample_test(
        a,
        b,
        n_simulation=config.n_simulation,
        seed=seed_seq,
        batch_size=config.batch_size,
        continuity=config.continuity,
    )
    return PairwiseResult(
        population=population,
        group_a=group_a,
        group_b=group_b,
        n_a=res.n1,
        n_b=res.n2,
        statistic=res.V,
        p_value_raw=float(res.effective_pval),
        p_value_is_bound=res.pval_is_bound,
    )


def analyse_population(
    table: ObservationTable,
    population: Union[Tuple[Hashable, ...], Hashable],
    config: Optional[AnalysisConfig] = None,
    seed_sequence: Optional[np.random.SeedSequence] = None,
) -> PopulationReport:
    """
    Analyse one population: descriptive statistics and Rayleigh test per
    group, the common median test across groups, Kuiper permutation tests
    for every pair of groups and Benjamini-Hochberg correction of the pairs.

    Pairs with an empty group are kept in the report as not applicable and
    are left out of the correction.
    """
    config = config or AnalysisConfig()
    if not isinstance(population, tuple):
        population = (population,)
    if seed_sequence is None:
        seed_sequence = np.random.SeedSequence(config.seed)

    angles = table.population_angles(population)

    stats = [
        Circular(alpha, unit="radian", ci_level=config.ci_level).to_stats(population, group)
        for group, alpha in angles.items()
    ]

    cm = common_median_test(list(angles.values()), alpha=config.alpha)
    common_median = CommonMedianResult(
        population=population,
        statistic=cm.statistic,
        estimated_median_rad=cm.common_median,
        p_value=cm.pval,
        df=cm.df,
        n_groups=cm.n_groups,
        reject=cm.reject,
        applicable=cm.applicable,
        reason=cm.reason,
    )

    # one child seed per pair, in pair order, whether or not the pair is tested
    pairs = list(combinations(table.groups, 2))
    seeds = seed_sequence.spawn(len(pairs))
    jobs = [
        (population, ga, gb, angles[ga], angles[gb], config, s)
        for (ga, gb), s in zip(pairs, seeds)
    ]
    if config.n_jobs == 1 or len(jobs) <= 1:
        pairwise = [_kuiper_pair(*job) for job in jobs]
    else:
        with ThreadPoolExecutor(max_workers=config.n_jobs) as ex:
            pairwise = list(ex.map(lambda job: _kuiper_pair(*job), jobs))

    fdr = fdr_bh([p.p_value_raw for p in pairwise if p.applicable], q=config.q)

    return assemble_report(population, stats, common_median, pairwise, fdr, alpha=config.alpha)


@dataclass(frozen=True)
class AnalysisReport:
    reports: Dict[Tuple[Hashable, ...], PopulationReport]
    failures: Dict[Tuple[Hashable, ...], Exception] = field(default_factory=dict)
    config: AnalysisConfig = field(default_factory=AnalysisConfig)
    group: str = "group"
    strata: Tuple[str, ...] = ()

    def __getitem__(self, population) -> PopulationReport:
        if not isinstance(population, tuple):
            population = (population,)
        return self.reports[population]

    def __iter__(self):
        return iter(self.reports.values())

    def __len__(self) -> int:
        return len(self.reports)

    def _expand(self, frame: pd.DataFrame) -> pd.DataFrame:
        # population tuples -> one column per stratification key
        if not self.strata:
            return frame.drop(columns="population")
        keys = pd.DataFrame(
            frame.pop("population").tolist(), columns=list(self.strata), index=frame.index
        )
        return pd.concat([keys, frame], axis=1)

    def descriptive_frame(self) -> pd.DataFrame:
        """Per population and group: n, mean, variance, Rayleigh p, CI."""
        if not self.reports:
            return pd.DataFrame()
        frame = pd.concat([r.to_frame() for r in self], ignore_index=True)
        return self._expand(frame).rename(columns={"group": self.group})

    def pairwise_frame(self) -> pd.DataFrame:
        if not self.reports:
            return pd.DataFrame()
        frame = pd.concat([r.pairwise_frame() for r in self], ignore_index=True)
        return self._expand(frame).rename(
            columns={"group_a": f"{self.group}_a", "group_b": f"{self.group}_b"}
        )

    def common_median_frame(self) -> pd.DataFrame:
        if not self.reports:
            return pd.DataFrame()
        rows = [r.common_median.asdict() for r in self]
        frame = pd.DataFrame(rows)
        frame["estimated_median_deg"] = np.rad2deg(frame["estimated_median_rad"])
        return self._expand(frame)

    def summary(self) -> str:
        docs = "\n".join(r.summary() for r in self)
        for population, exc in self.failures.items():
            docs += f"\nPopulation {population!r} failed: {exc}\n"
        return docs


def analyse(table: ObservationTable, config: Optional[AnalysisConfig] = None) -> AnalysisReport:
    """
    Run the full analysis over every population of `table`.

    Populations are independent; with `config.n_jobs > 1` they run on a
    thread pool (pairs within a population then run serially). Each
    population receives its own child of the root `SeedSequence`, spawned
    in population order, so results do not depend on scheduling.

    A population whose analysis raises is recorded in `failures` and
    reported with a `PopulationFailedWarning`; the other populations are
    still completed.
    """
    if not isinstance(table, ObservationTable):
        raise ValueError("`table` must be an ObservationTable.")
    config = config or AnalysisConfig()

    populations = list(table.populations)
    seeds = np.random.SeedSequence(config.seed).spawn(len(populations))

    def run(job):
        population, seed_seq, cfg = job
        try:
            return population, analyse_population(table, population, cfg, seed_seq), None
        except Exception as exc:
            return population, None, exc

    if config.n_jobs == 1 or len(populations) <= 1:
        outcomes = [run((p, s, config)) for p, s in zip(populations, seeds)]
    else:
        inner = replace(config, n_jobs=1)
        with ThreadPoolExecutor(max_workers=config.n_jobs) as ex:
            outcomes = list(ex.map(run, [(p, s, inner) for p, s in zip(populations, seeds)]))

    reports, failures = {}, {}
    for population, report, exc in outcomes:
        if exc is not None:
            warnings.warn(
                f"Analysis of population {population!r} failed: {exc}",
                PopulationFailedWarning,
                stacklevel=2,
            )
            failures[population] = exc
        else:
            reports[population] = report

    return AnalysisReport(
        reports=reports,
        failures=failures,
        config=config,
        group=table.group,
        strata=table.strata,
    )
