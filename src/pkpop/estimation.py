"""
Model fitting interface.

A model variant is described declaratively by a :class:`ModelSpec` and fit
by an *estimator*: any callable ``estimator(dataset, spec) -> FitResult``
with a ``method`` attribute.  :func:`fit` is the single entry point; it turns
anything an estimator raises into :class:`~pkpop.errors.EstimationFailure`.

:class:`NaivePooledEstimator` is a small reference estimator (all
observations pooled, proportional residual error, no random effects) so the
workflow runs without an external NLME engine.  SAEM or FOCEI fits plug in
through the same calling convention.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.optimize import minimize

from .errors import EstimationFailure
from .helpers import split_dataset_by_subject
from .models.compartments import get_model
from .solvers import simulate_concentrations
from .types import Route

logger = logging.getLogger("pkpop.estimation")

# Optional covariate coefficients understood by structural_parameters()
COVARIATE_PARAMETERS = ("CL_WT", "Vc_SEX")

# Lower bound on the residual variance, keeps near-zero predictions finite
VAR_FLOOR = 1e-8


@dataclass(frozen=True)
class ParameterSpec:
    """One model parameter: its initial estimate, whether it is fixed, and
    the standard deviation of its random effect (``None`` for none)."""
    name: str
    initial: float
    fixed: bool = False
    iiv_sd: Optional[float] = None


@dataclass(frozen=True)
class ModelSpec:
    """Declarative description of a model variant.

    ``model`` names the structural model (``"1cmt"``, ``"2cmt"``, ``"3cmt"``);
    ``parameters`` must cover all of its parameters and may add ``CL_WT``
    (allometric exponent on CL) and ``Vc_SEX`` (multiplicative effect of
    SEX on Vc).
    """
    name: str
    model: str
    parameters: Sequence[ParameterSpec]
    dose_route: Route = "po"
    sigma_initial: float = 0.1
    reference_weight: float = 70.0
    description: str = ""

    def __post_init__(self) -> None:
        structural = get_model(self.model).parameters
        names = [p.name for p in self.parameters]
        missing = [n for n in structural if n not in names]
        if missing:
            raise ValueError(f"{self.name}: missing parameters {missing} for model '{self.model}'.")
        unknown = [n for n in names if n not in structural and n not in COVARIATE_PARAMETERS]
        if unknown:
            raise ValueError(f"{self.name}: unknown parameters {unknown}.")
        if len(set(names)) != len(names):
            raise ValueError(f"{self.name}: duplicate parameter names.")
        for p in self.parameters:
            if not (p.initial > 0):
                raise ValueError(f"{self.name}: initial value of {p.name} must be > 0 (got {p.initial}).")
        if not (self.sigma_initial > 0):
            raise ValueError(f"{self.name}: sigma_initial must be > 0 (got {self.sigma_initial}).")

    @classmethod
    def from_typical(cls, name: str, model: str, typical: Mapping[str, float],
                     iiv_sd: Optional[Mapping[str, float]] = None, **kwargs) -> "ModelSpec":
        """Spec whose initial estimates are the given typical values."""
        iiv_sd = iiv_sd or {}
        params = tuple(ParameterSpec(n, float(v), iiv_sd=iiv_sd.get(n)) for n, v in typical.items())
        return cls(name=name, model=model, parameters=params, **kwargs)

    @property
    def free_parameters(self) -> list[str]:
        return [p.name for p in self.parameters if not p.fixed]


@dataclass
class FitResult:
    """Outcome of one model fit.  Treated as read-only once returned."""
    model_name: str
    method: str
    ofv: float
    n_params: int
    n_obs: int
    estimates: Dict[str, float]
    standard_errors: Dict[str, float] = field(default_factory=dict)
    sigma: Optional[float] = None
    converged: bool = True
    n_iterations: int = 0
    message: str = ""
    structural_model: Optional[str] = None
    # random-effect SDs reported by engines that estimate them (SAEM, FOCEI)
    iiv_sd: Dict[str, float] = field(default_factory=dict)

    def estimates_frame(self) -> pd.DataFrame:
        """Parameter table: estimate, SE and relative SE (%)."""
        rows = []
        for name, est in self.estimates.items():
            se = self.standard_errors.get(name, float("nan"))
            rows.append({"parameter": name, "estimate": est, "se": se,
                         "rse_pct": 100.0 * se / abs(est) if est else float("nan")})
        return pd.DataFrame(rows, columns=["parameter", "estimate", "se", "rse_pct"])


def structural_parameters(theta: Mapping[str, float], model_params: Sequence[str],
                          weight_kg: float, sex: int, reference_weight: float = 70.0) -> dict[str, float]:
    """Individual structural parameters from population values and covariates."""
    p = {name: float(theta[name]) for name in model_params}
    if "CL_WT" in theta:
        p["CL"] *= (weight_kg / reference_weight) ** float(theta["CL_WT"])
    if "Vc_SEX" in theta:
        p["Vc"] *= float(theta["Vc_SEX"]) ** int(sex)
    return p


class NaivePooledEstimator:
    """
    Pooled maximum-likelihood fit with proportional residual error.

    OFV = sum(log(2*pi*var) + (DV - PRED)^2 / var), var = (sigma * PRED)^2,
    i.e. -2 log-likelihood.  Parameters are optimised on the log scale with
    BFGS; standard errors come from the inverse Hessian (delta method).

    With ``strict=True`` a run that stops without converging raises
    EstimationFailure; otherwise it is returned with ``converged=False``.
    """

    method = "naive_pooled"

    def __init__(self, max_iter: int = 200, gtol: float = 1e-3, strict: bool = True,
                 rtol: float = 1e-8, atol: float = 1e-10, eps: float = 1e-6):
        self.max_iter = max_iter
        self.gtol = gtol
        # finite-difference step on log parameters, well above the ODE error level
        self.eps = eps
        self.strict = strict
        self.rtol = rtol
        self.atol = atol

    def __call__(self, dataset: pd.DataFrame, spec: ModelSpec) -> FitResult:
        model = get_model(spec.model)
        subjects = [s for s in split_dataset_by_subject(dataset, route=spec.dose_route).values()
                    if s.times.size]
        n_obs = int(sum(s.times.size for s in subjects))
        if n_obs == 0:
            raise EstimationFailure(f"{spec.name}: dataset has no observations.")

        fixed = {p.name: float(p.initial) for p in spec.parameters if p.fixed}
        free_names = spec.free_parameters
        initial = {p.name: float(p.initial) for p in spec.parameters}
        x0 = np.log([initial[name] for name in free_names] + [spec.sigma_initial])

        def unpack(x):
            theta = dict(fixed)
            theta.update(zip(free_names, np.exp(x[:-1])))
            return theta, float(np.exp(x[-1]))

        def objective(x):
            theta, sigma = unpack(x)
            total = 0.0
            for s in subjects:
                params = structural_parameters(theta, model.parameters, s.weight_kg, s.sex,
                                               spec.reference_weight)
                pred = simulate_concentrations(model, params, s.regimen, s.times,
                                               rtol=self.rtol, atol=self.atol)
                var = np.maximum((sigma * pred) ** 2, VAR_FLOOR)
                total += float(np.sum(np.log(2.0 * np.pi * var) + (s.dv - pred) ** 2 / var))
            return total if np.isfinite(total) else np.inf

        res = minimize(objective, x0, method="BFGS",
                       options={"maxiter": self.max_iter, "gtol": self.gtol, "eps": self.eps})
        if not np.isfinite(res.fun):
            raise EstimationFailure(f"{spec.name}: objective function is not finite.")

        # status 2 is BFGS precision loss: stalled at the optimum within numerical noise
        converged = bool(res.success or res.status == 2)
        if not converged:
            if self.strict:
                raise EstimationFailure(f"{spec.name}: did not converge ({res.message}).")
            logger.warning("%s did not converge: %s", spec.name, res.message)
        elif not res.success:
            logger.warning("%s: %s", spec.name, res.message)

        theta, sigma = unpack(res.x)
        cov_log = 2.0 * np.asarray(res.hess_inv, dtype=float)
        var_log = np.diag(cov_log)
        se_log = np.where(var_log > 0, np.sqrt(np.abs(var_log)), np.nan)

        estimates = {p.name: float(theta[p.name]) for p in spec.parameters}
        standard_errors = {name: float(theta[name] * se_log[i]) for i, name in enumerate(free_names)}

        return FitResult(
            model_name=spec.name,
            method=self.method,
            ofv=float(res.fun),
            n_params=len(free_names) + 1,
            n_obs=n_obs,
            estimates=estimates,
            standard_errors=standard_errors,
            sigma=sigma,
            converged=converged,
            n_iterations=int(res.nit),
            message=str(res.message),
            structural_model=spec.model,
        )


def fit(dataset: pd.DataFrame, spec: ModelSpec, estimator=None) -> FitResult:
    """
    Fit one model variant; synchronous, single shot, no retries.

    Raises EstimationFailure when the estimator fails in any way.
    """
    if estimator is None:
        estimator = NaivePooledEstimator()
    method = getattr(estimator, "method", type(estimator).__name__)
    logger.info("Fitting %s (%s) with %s", spec.name, spec.model, method)
    try:
        result = estimator(dataset, spec)
    except EstimationFailure:
        raise
    except Exception as exc:
        raise EstimationFailure(f"{spec.name}: {method} estimation failed: {exc}") from exc
    if not np.isfinite(result.ofv):
        raise EstimationFailure(f"{spec.name}: {method} returned a non-finite objective.")
    logger.info("%s: OFV %.3f (%d parameters, %d observations)",
                spec.name, result.ofv, result.n_params, result.n_obs)
    return result
