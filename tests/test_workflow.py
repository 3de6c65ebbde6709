import numpy as np

from pkpop.comparison import ModelComparison
from pkpop.design import DosingProtocol, SamplingProtocol, default_design
from pkpop.estimation import ModelSpec, NaivePooledEstimator, ParameterSpec, fit
from pkpop.forecast import simulate_from_fit
from pkpop.generator import generate_population
from pkpop.variability import RandomEffectsSpec


def test_simulate_fit_compare_forecast():
    """
    Simulate a small single-dose study, fit two model variants, tabulate
    them against each other and simulate forward from the preferred fit.
    """
    design = default_design(
        n_subjects=6,
        model="1cmt",
        typical={"ka": 1.0, "CL": 5.0, "Vc": 50.0},
        iiv=RandomEffectsSpec(names=("CL", "Vc"), sd=(0.2, 0.15)),
        dosing=DosingProtocol(amount_mg=1200.0, n_doses=1, interval_h=24.0),
        sampling=SamplingProtocol(windows=((0.5, 1.0), (2.0, 3.0), (4.0, 6.0), (10.0, 12.0), (22.0, 24.0))),
    )
    population = generate_population(design, seed=8)

    base = ModelSpec.from_typical("1cmt", "1cmt", {"ka": 1.5, "CL": 4.0, "Vc": 60.0})
    with_wt = ModelSpec("1cmt + WT", "1cmt", tuple(base.parameters) + (ParameterSpec("CL_WT", 0.75),))

    estimator = NaivePooledEstimator(strict=False)
    fit_base = fit(population.dataset, base, estimator)
    fit_wt = fit(population.dataset, with_wt, estimator)

    table = ModelComparison()
    table.add(base.name, fit_base)
    row = table.add(with_wt.name, fit_wt, reference=base.name)

    assert fit_base.n_obs == fit_wt.n_obs == 6 * 5
    assert fit_wt.n_params == fit_base.n_params + 1
    assert row.delta_ofv == fit_wt.ofv - fit_base.ofv
    assert np.isclose(row.delta_aic, row.delta_ofv + 2.0)
    assert len(table.to_frame()) == 2

    forecast = simulate_from_fit(design, fit_wt, seed=1, n_subjects=10)
    assert forecast.design.effects.weight_exponent == fit_wt.estimates["CL_WT"]
    assert len(forecast.dataset) == 10 * (1 + 5)
