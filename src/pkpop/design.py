# src/pkpop/design.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Mapping, Sequence, Tuple

import numpy as np

from .types import Regimen, Route
from .dosing import repeated_doses
from .variability import CovariateEffects, RandomEffectsSpec

# Default sampling windows (h after the first dose): a rich day-1 profile,
# a mid-treatment trough and a final-dose profile.
DEFAULT_WINDOWS: Tuple[Tuple[float, float], ...] = (
    (0.25, 0.75),
    (1.0, 2.0),
    (3.0, 4.0),
    (6.0, 8.0),
    (10.0, 14.0),
    (23.0, 24.0),
    (335.0, 336.0),
    (649.0, 651.0),
    (671.0, 672.0),
)


@dataclass(frozen=True)
class DosingProtocol:
    """Fixed dose given n_doses times every interval_h hours."""
    amount_mg: float = 1200.0
    n_doses: int = 28
    interval_h: float = 24.0
    route: Route = "po"
    start_h: float = 0.0
    duration_h: float = 0.0

    def regimen(self) -> Regimen:
        return repeated_doses(self.amount_mg, self.n_doses, self.interval_h,
                              route=self.route, start_h=self.start_h, duration_h=self.duration_h)

    def dose_times(self) -> np.ndarray:
        return self.start_h + np.arange(self.n_doses, dtype=float) * self.interval_h


@dataclass(frozen=True)
class SamplingProtocol:
    """An ordered set of sampling windows; one uniform draw per window."""
    windows: Sequence[Tuple[float, float]] = DEFAULT_WINDOWS
    decimals: int = 3

    def __post_init__(self) -> None:
        prev_hi = -np.inf
        for lo, hi in self.windows:
            if not (0.0 <= lo <= hi):
                raise ValueError(f"sampling window ({lo}, {hi}) must satisfy 0 <= lo <= hi.")
            if lo < prev_hi:
                raise ValueError(f"sampling windows must be ordered and non-overlapping (got ({lo}, {hi}) after {prev_hi}).")
            prev_hi = hi

    def draw(self, rng: np.random.Generator) -> np.ndarray:
        lo = np.array([w[0] for w in self.windows], dtype=float)
        hi = np.array([w[1] for w in self.windows], dtype=float)
        return np.round(rng.uniform(lo, hi), self.decimals)


@dataclass(frozen=True)
class CovariatePolicy:
    """Weight ~ Normal(mean, sd) rounded to whole kg and clipped; sex ~ Bernoulli(p_sex)."""
    weight_mean: float = 70.0
    weight_sd: float = 15.0
    weight_min: float = 30.0
    weight_max: float = 200.0
    p_sex: float = 0.5

    def sample_weights(self, rng: np.random.Generator, n: int) -> np.ndarray:
        w = np.round(rng.normal(self.weight_mean, self.weight_sd, size=n))
        return np.clip(w, self.weight_min, self.weight_max)

    def sample_sex(self, rng: np.random.Generator, n: int) -> np.ndarray:
        return (rng.random(n) < self.p_sex).astype(np.int64)


@dataclass(frozen=True)
class ResidualError:
    """Multiplicative residual error: DV = round(pred * (1 + N(0, sigma)), decimals)."""
    sigma: float = 0.1
    decimals: int = 1

    def apply(self, rng: np.random.Generator, pred: np.ndarray) -> np.ndarray:
        eps = rng.normal(0.0, self.sigma, size=np.shape(pred))
        return np.maximum(np.round(pred * (1.0 + eps), self.decimals), 0.0)


def _default_typical() -> dict[str, float]:
    return {"ka": 1.0, "CL": 5.0, "Vc": 50.0, "Q": 2.5, "Vp": 100.0}


def _default_iiv() -> RandomEffectsSpec:
    return RandomEffectsSpec(
        names=("ka", "CL", "Vc", "Q", "Vp"),
        sd=(0.3, 0.3, 0.2, 0.2, 0.25),
        correlation=(
            (1.0, 0.0, 0.0, 0.0, 0.0),
            (0.0, 1.0, 0.5, 0.0, 0.3),
            (0.0, 0.5, 1.0, 0.0, 0.2),
            (0.0, 0.0, 0.0, 1.0, 0.0),
            (0.0, 0.3, 0.2, 0.0, 1.0),
        ),
    )


@dataclass(frozen=True)
class PopulationDesign:
    """Everything needed to simulate a population dataset."""
    n_subjects: int = 40
    model: str = "2cmt"
    typical: Mapping[str, float] = field(default_factory=_default_typical)
    iiv: RandomEffectsSpec = field(default_factory=_default_iiv)
    covariates: CovariatePolicy = field(default_factory=CovariatePolicy)
    effects: CovariateEffects = field(default_factory=CovariateEffects)
    dosing: DosingProtocol = field(default_factory=DosingProtocol)
    sampling: SamplingProtocol = field(default_factory=SamplingProtocol)
    residual: ResidualError = field(default_factory=ResidualError)

    def __post_init__(self) -> None:
        if not (isinstance(self.n_subjects, (int, np.integer)) and self.n_subjects > 0):
            raise ValueError(f"n_subjects must be a positive integer (got {self.n_subjects}).")
        unknown = [name for name in self.iiv.names if name not in self.typical]
        if unknown:
            raise ValueError(f"random effects on unknown parameters {unknown}.")

    def with_changes(self, **changes) -> "PopulationDesign":
        return replace(self, **changes)


def default_design(**overrides) -> PopulationDesign:
    """The tutorial design: 40 subjects, 1200 mg PO q24h x 28, nine sampling windows."""
    return PopulationDesign(**overrides)
