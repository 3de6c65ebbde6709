# src/pkpop/forecast.py
from __future__ import annotations

from dataclasses import replace
from typing import Optional

import numpy as np

from .design import PopulationDesign, ResidualError
from .generator import SimulatedPopulation, generate_population
from .models.compartments import get_model
from .variability import RandomEffectsSpec


def design_from_fit(design: PopulationDesign, fit, spec=None) -> PopulationDesign:
    """
    Copy of `design` with typical values (and residual sigma) taken from a fit.

    If the fit reports a different structural model, the design switches to
    it and keeps only the random effects that model still has. Covariate
    coefficients estimated by the fit (CL_WT, Vc_SEX) update the design's
    covariate effects.

    Random-effect SDs come from the fit (`fit.iiv_sd`) when it reports them,
    otherwise from the `iiv_sd` declared on the parameters of `spec` (the
    ModelSpec that was fit), otherwise from the design.
    """
    model_name = getattr(fit, "structural_model", None) or design.model
    model = get_model(model_name)

    typical = {}
    for name in model.parameters:
        if name in fit.estimates:
            typical[name] = float(fit.estimates[name])
        elif name in design.typical:
            typical[name] = float(design.typical[name])
        else:
            raise KeyError(f"No value for parameter '{name}' in the fit or the design.")

    iiv = _fitted_random_effects(design.iiv, fit, spec, list(typical))

    effects = design.effects
    if "CL_WT" in fit.estimates:
        effects = replace(effects, weight_exponent=float(fit.estimates["CL_WT"]))
    if "Vc_SEX" in fit.estimates:
        effects = replace(effects, sex_ratio=float(fit.estimates["Vc_SEX"]))

    residual = design.residual
    if getattr(fit, "sigma", None) is not None:
        residual = ResidualError(sigma=float(fit.sigma), decimals=residual.decimals)

    return design.with_changes(model=model_name, typical=typical, iiv=iiv,
                               effects=effects, residual=residual)


def _fitted_random_effects(iiv: RandomEffectsSpec, fit, spec, parameters) -> RandomEffectsSpec:
    sd = {name: float(value) for name, value in zip(iiv.names, iiv.sd)}
    if spec is not None:
        sd.update((p.name, float(p.iiv_sd)) for p in spec.parameters if p.iiv_sd is not None)
    sd.update((name, float(value)) for name, value in (getattr(fit, "iiv_sd", None) or {}).items())

    names = [name for name in parameters if name in sd]
    kept = list(iiv.names)
    corr = None
    if iiv.correlation is not None and names:
        full = np.asarray(iiv.correlation, dtype=float)
        corr = np.eye(len(names))
        for i, a in enumerate(names):
            for j, b in enumerate(names):
                # correlations only survive between effects the design already had
                if i != j and a in kept and b in kept:
                    corr[i, j] = full[kept.index(a), kept.index(b)]
        corr = tuple(tuple(float(v) for v in row) for row in corr)
    return RandomEffectsSpec(names=tuple(names), sd=tuple(sd[n] for n in names), correlation=corr)


def simulate_from_fit(design: PopulationDesign, fit, seed: Optional[int] = None,
                      n_subjects: Optional[int] = None, spec=None, **kwargs) -> SimulatedPopulation:
    """
    Forward simulation: a new population from the fitted model under `design`
    (e.g. a different dosing protocol or population size).
    """
    new_design = design_from_fit(design, fit, spec)
    if n_subjects is not None:
        new_design = new_design.with_changes(n_subjects=n_subjects)
    return generate_population(new_design, seed=seed, **kwargs)
