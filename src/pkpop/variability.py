"""
Inter-individual variability.

Random effects (etas) are drawn jointly from one multivariate normal with
covariance ``outer(sd, sd) * correlation``; individual parameters are the
typical values multiplied by ``exp(eta)``, with covariate effects applied
deterministically afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np

from .errors import InvalidCovariance

# Relative eigenvalue tolerance for the positive semi-definite check
PSD_TOL = 1e-10


@dataclass(frozen=True)
class RandomEffectsSpec:
    """Per-parameter standard deviations (log scale) and their correlation.

    ``correlation`` may be omitted for independent random effects.
    """

    names: Sequence[str]
    sd: Sequence[float]
    correlation: Optional[Sequence[Sequence[float]]] = None

    def covariance(self) -> np.ndarray:
        return build_covariance(self.sd, self.correlation)

    def subset(self, names: Sequence[str]) -> "RandomEffectsSpec":
        """The random effects of ``names`` only, with their correlations."""
        idx = [list(self.names).index(n) for n in names]
        corr = None
        if self.correlation is not None and idx:
            full = np.asarray(self.correlation, dtype=float)
            corr = tuple(tuple(float(full[i, j]) for j in idx) for i in idx)
        return RandomEffectsSpec(names=tuple(names), sd=tuple(float(self.sd[i]) for i in idx),
                                 correlation=corr)


@dataclass(frozen=True)
class CovariateEffects:
    """Deterministic covariate effects applied after the random effects.

    Clearance scales allometrically, ``CL * (WT / reference_weight) ** weight_exponent``;
    the volume parameter is multiplied by ``sex_ratio ** SEX``.
    """

    clearance_param: str = "CL"
    reference_weight: float = 70.0
    weight_exponent: float = 0.75
    volume_param: str = "Vc"
    sex_ratio: float = 0.85


def build_covariance(sd: Sequence[float], correlation: Optional[Sequence[Sequence[float]]] = None) -> np.ndarray:
    """Compose ``outer(sd, sd) * correlation`` and check it is a valid covariance.

    Raises :class:`InvalidCovariance` on shape mismatch, negative standard
    deviations, a malformed correlation matrix or a matrix that is not
    positive semi-definite.
    """
    sd_arr = np.asarray(sd, dtype=float)
    if sd_arr.ndim != 1:
        raise InvalidCovariance(f"sd must be a vector (got shape {sd_arr.shape}).")
    if np.any(~np.isfinite(sd_arr)) or np.any(sd_arr < 0):
        raise InvalidCovariance(f"sd must be finite and >= 0 (got {sd_arr.tolist()}).")

    k = sd_arr.size
    if correlation is None:
        corr = np.eye(k)
    else:
        corr = np.asarray(correlation, dtype=float)
    if corr.shape != (k, k):
        raise InvalidCovariance(f"correlation must be {k}x{k} (got shape {corr.shape}).")
    if not np.allclose(corr, corr.T):
        raise InvalidCovariance("correlation matrix must be symmetric.")
    if not np.allclose(np.diag(corr), 1.0):
        raise InvalidCovariance("correlation matrix must have a unit diagonal.")
    if np.any(np.abs(corr) > 1.0):
        raise InvalidCovariance("correlations must lie in [-1, 1].")

    cov = np.outer(sd_arr, sd_arr) * corr
    if k:
        eig = np.linalg.eigvalsh(cov)
        scale = max(float(np.max(np.abs(eig))), 1.0)
        if float(np.min(eig)) < -PSD_TOL * scale:
            raise InvalidCovariance(
                f"covariance matrix is not positive semi-definite (min eigenvalue {float(np.min(eig)):.3g})."
            )
    return cov


def sample_random_effects(rng: np.random.Generator, spec: RandomEffectsSpec, n: int) -> np.ndarray:
    """Draw ``n`` joint random-effect vectors, shape ``(n, len(spec.names))``."""
    if len(spec.names) != len(spec.sd):
        raise InvalidCovariance(
            f"{len(spec.names)} random-effect names but {len(spec.sd)} standard deviations."
        )
    cov = spec.covariance()
    if cov.shape[0] == 0:
        # no random effects: every subject gets the typical values
        return np.zeros((n, 0))
    mean = np.zeros(cov.shape[0])
    # eigen-decomposition based sampling tolerates singular (PSD) matrices
    return rng.multivariate_normal(mean, cov, size=n, method="eigh")


def individual_parameters(
    typical: Mapping[str, float],
    eta: Mapping[str, float],
    weight_kg: float,
    sex: int,
    effects: Optional[CovariateEffects] = None,
) -> dict[str, float]:
    """Typical value x exp(eta) for every parameter, then covariate effects.

    Parameters without a random effect keep their typical value.
    """
    params = {name: float(value) * float(np.exp(eta.get(name, 0.0))) for name, value in typical.items()}
    if effects is not None:
        if effects.clearance_param in params:
            params[effects.clearance_param] *= (weight_kg / effects.reference_weight) ** effects.weight_exponent
        if effects.volume_param in params:
            params[effects.volume_param] *= effects.sex_ratio ** int(sex)
    return params


def subject_streams(rng: np.random.Generator, n: int) -> list[np.random.Generator]:
    """Independent per-subject generators, derived deterministically from ``rng``."""
    return rng.spawn(n)
