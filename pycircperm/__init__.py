from importlib import metadata as _metadata

from .analysis import AnalysisConfig, AnalysisReport, analyse, analyse_population
from .base import Circular, DescriptiveStats
from .data import Observation, ObservationTable, ValidationError
from .report import PopulationReport

try:  # Prefer installed package metadata
    __version__ = _metadata.version("pycircperm")
except _metadata.PackageNotFoundError:  # pragma: no cover - during local dev
    __version__ = "0.0.0"

__all__ = [
    "AnalysisConfig",
    "AnalysisReport",
    "Circular",
    "DescriptiveStats",
    "Observation",
    "ObservationTable",
    "PopulationReport",
    "ValidationError",
    "analyse",
    "analyse_population",
    "__version__",
]
