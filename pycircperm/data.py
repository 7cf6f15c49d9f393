from collections import defaultdict
from dataclasses import dataclass
from numbers import Real
from typing import Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .utils import angmod, data2rad

__names__ = ["Observation", "ObservationTable", "ValidationError"]


class ValidationError(ValueError):
    """Malformed observation table, raised before any statistic is computed."""


@dataclass(frozen=True)
class Observation:
    group_keys: Tuple[Hashable, ...]
    angle_deg: float


def _levels(series: pd.Series) -> list:
    if isinstance(series.dtype, pd.CategoricalDtype):
        return list(series.cat.categories)
    values = list(pd.unique(series))
    try:
        return sorted(values)
    except TypeError:
        return values


class ObservationTable:
    r"""
    Immutable table of angle observations labelled by categorical keys.

    One column holds the angle in degrees, one the comparison key (`group`,
    e.g. genotype) and zero or more the stratification keys (`strata`, e.g.
    channel or cell population). A *population* is one combination of strata
    values; within a population the groups are compared with each other.

    Every population is crossed with every group level, so a group that was
    never observed in a population is still present with no angles.

    Parameters
    ----------
    frame : pd.DataFrame
        Source table. It is copied; the caller's frame is never modified.
    angle : str
        Name of the angle column (degrees). Values are wrapped to [0, 360).
    group : str
        Name of the comparison key.
    strata : sequence of str
        Names of the stratification keys.
    group_levels : sequence, optional
        Explicit group levels and their order. Defaults to the categories of
        a categorical column, or the sorted unique labels.
    population_levels : sequence of tuple, optional
        Explicit populations and their order. Defaults to the sorted unique
        strata combinations.

    Raises
    ------
    ValidationError
        Missing columns, non-numeric or non-finite angles, missing labels.
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        angle: str = "angle",
        group: str = "group",
        strata: Sequence[str] = (),
        group_levels: Optional[Sequence[Hashable]] = None,
        population_levels: Optional[Sequence[Tuple[Hashable, ...]]] = None,
    ):
        if not isinstance(frame, pd.DataFrame):
            raise ValidationError("`frame` must be a pandas DataFrame.")
        if isinstance(strata, str):
            strata = (strata,)
        strata = tuple(strata)

        required = [*strata, group, angle]
        if len(set(required)) != len(required):
            raise ValidationError(f"Key and angle columns must be distinct, got {required}.")
        missing = [col for col in required if col not in frame.columns]
        if missing:
            raise ValidationError(f"Missing required column(s): {missing}.")

        frame = frame.loc[:, required].copy()

        labels = frame[[*strata, group]]
        if labels.isna().any().any():
            rows = labels.index[labels.isna().any(axis=1).to_numpy()].tolist()
            raise ValidationError(f"Missing group labels in row(s) {rows[:10]}.")

        raw = frame[angle]
        if pd.api.types.is_bool_dtype(raw):
            raise ValidationError(f"Column `{angle}` must be numeric, got booleans.")
        if not pd.api.types.is_numeric_dtype(raw):
            # object columns may hold numbers, never strings such as "12.5"
            number = raw.map(lambda v: isinstance(v, Real) and not isinstance(v, (bool, np.bool_)))
            bad = ~number & raw.notna()
            if bad.any():
                rows = frame.index[bad.to_numpy()].tolist()
                raise ValidationError(
                    f"Non-numeric angle(s) in row(s) {rows[:10]}; column `{angle}` must hold numbers."
                )
        numeric = pd.to_numeric(raw)
        finite = np.isfinite(numeric.to_numpy(dtype=float))
        if not finite.all():
            rows = frame.index[~finite].tolist()
            raise ValidationError(f"Missing or non-finite angle(s) in row(s) {rows[:10]}.")

        frame[angle] = angmod(numeric.to_numpy(dtype=float), bounds=[0, 360])

        self.angle = angle
        self.group = group
        self.strata = strata
        self._frame = frame.reset_index(drop=True)

        if group_levels is None:
            group_levels = _levels(frame[group])
        self.groups: Tuple[Hashable, ...] = tuple(group_levels)

        keys = list(zip(*(self._frame[col].tolist() for col in (*strata, group))))
        if population_levels is None:
            observed = list(dict.fromkeys(key[:-1] for key in keys))
            try:
                population_levels = sorted(observed)
            except TypeError:
                population_levels = observed
            if not strata:
                population_levels = [()]
        self.populations: Tuple[Tuple[Hashable, ...], ...] = tuple(
            tuple(p) if isinstance(p, tuple) else (p,) for p in population_levels
        )

        unknown = {key[-1] for key in keys} - set(self.groups)
        if unknown:
            raise ValidationError(f"Group label(s) {sorted(map(str, unknown))} are not among `group_levels`.")
        unknown = {key[:-1] for key in keys} - set(self.populations)
        if unknown:
            raise ValidationError(f"Population(s) {sorted(map(str, unknown))} are not among `population_levels`.")

        buckets: Dict[Tuple[Hashable, ...], List[int]] = defaultdict(list)
        for i, key in enumerate(keys):
            buckets[key].append(i)

        values = self._frame[angle].to_numpy(dtype=float)
        self._angles: Dict[Tuple[Hashable, ...], np.ndarray] = {}
        for key, idx in buckets.items():
            arr = values[idx]
            arr.setflags(write=False)
            self._angles[key] = arr

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, **kwargs) -> "ObservationTable":
        return cls(frame, **kwargs)

    @classmethod
    def from_records(cls, records: Iterable[dict], **kwargs) -> "ObservationTable":
        """Build a table from an iterable of mappings (one per observation)."""
        records = list(records)
        if not all(isinstance(rec, dict) for rec in records):
            raise ValidationError("Every record must be a mapping of column name to value.")
        return cls(pd.DataFrame.from_records(records), **kwargs)

    @classmethod
    def from_observations(
        cls,
        observations: Iterable[Observation],
        key_names: Sequence[str] = ("group",),
        angle: str = "angle",
        **kwargs,
    ) -> "ObservationTable":
        """Build a table from `Observation` values.

        The last key of `key_names` is the comparison key and the ones before
        it are the strata.
        """
        key_names = tuple(key_names)
        if not key_names:
            raise ValidationError("`key_names` must name at least the group key.")
        rows = []
        for obs in observations:
            if not isinstance(obs, Observation):
                raise ValidationError(f"Expected an Observation, got {type(obs).__name__}.")
            if len(obs.group_keys) != len(key_names):
                raise ValidationError(
                    f"Observation has {len(obs.group_keys)} key(s), expected {len(key_names)} {key_names}."
                )
            rows.append({**dict(zip(key_names, obs.group_keys)), angle: obs.angle_deg})
        frame = pd.DataFrame(rows, columns=[*key_names, angle])
        return cls(frame, angle=angle, group=key_names[-1], strata=key_names[:-1], **kwargs)

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return (
            f"ObservationTable(n={len(self)}, groups={len(self.groups)}, "
            f"populations={len(self.populations)}, group={self.group!r}, strata={self.strata!r})"
        )

    def observations(self) -> Iterator[Observation]:
        cols = [*self.strata, self.group]
        for row in self._frame.itertuples(index=False):
            row = dict(zip(self._frame.columns, row))
            yield Observation(group_keys=tuple(row[c] for c in cols), angle_deg=float(row[self.angle]))

    def angles(self, population: Union[Tuple[Hashable, ...], Hashable], group: Hashable) -> np.ndarray:
        """Angles (degrees) of one group in one population, as a fresh array."""
        population = self._as_population(population)
        if group not in self.groups:
            raise KeyError(f"Unknown group {group!r}.")
        arr = self._angles.get((*population, group))
        return np.array(arr, dtype=float) if arr is not None else np.zeros(0, dtype=float)

    def population_angles(self, population: Union[Tuple[Hashable, ...], Hashable]) -> Dict[Hashable, np.ndarray]:
        """Angles in radian for every group of one population, in group order."""
        population = self._as_population(population)
        return {g: data2rad(self.angles(population, g)) for g in self.groups}

    def to_frame(self) -> pd.DataFrame:
        return self._frame.copy()

    def _as_population(self, population) -> Tuple[Hashable, ...]:
        if not isinstance(population, tuple):
            population = (population,)
        if population not in self.populations:
            raise KeyError(f"Unknown population {population!r}.")
        return population
