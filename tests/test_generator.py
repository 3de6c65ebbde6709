import numpy as np
import pytest

from pkpop.design import (
    DosingProtocol,
    PopulationDesign,
    SamplingProtocol,
    default_design,
)
from pkpop.errors import InvalidCovariance
from pkpop.generator import generate_population
from pkpop.types import DATASET_COLUMNS, EVID_DOSE, EVID_OBSERVATION
from pkpop.variability import RandomEffectsSpec


WINDOWS = ((0.5, 1.0), (2.0, 4.0), (23.0, 24.0), (72.5, 73.5))


def _small_design(**overrides) -> PopulationDesign:
    settings = dict(
        n_subjects=5,
        model="1cmt",
        typical={"ka": 1.0, "CL": 5.0, "Vc": 50.0},
        iiv=RandomEffectsSpec(names=("ka", "CL", "Vc"), sd=(0.3, 0.3, 0.2),
                              correlation=((1.0, 0.0, 0.0), (0.0, 1.0, 0.5), (0.0, 0.5, 1.0))),
        dosing=DosingProtocol(amount_mg=600.0, n_doses=4, interval_h=24.0),
        sampling=SamplingProtocol(windows=WINDOWS),
    )
    settings.update(overrides)
    return default_design(**settings)


def test_same_seed_gives_byte_identical_dataset():
    design = _small_design()
    a = generate_population(design, seed=42).dataset
    b = generate_population(design, seed=42).dataset
    assert a.to_csv(index=False) == b.to_csv(index=False)


def test_different_seeds_give_different_datasets():
    design = _small_design()
    a = generate_population(design, seed=1).dataset
    b = generate_population(design, seed=2).dataset
    assert a.to_csv(index=False) != b.to_csv(index=False)


def test_generator_object_and_seed_are_equivalent():
    design = _small_design()
    a = generate_population(design, seed=7).dataset
    b = generate_population(design, rng=np.random.default_rng(7)).dataset
    assert a.equals(b)


def test_global_numpy_random_state_is_untouched():
    np.random.seed(0)
    before = np.random.get_state()[1].copy()
    generate_population(_small_design(), seed=3)
    after = np.random.get_state()[1]
    assert np.array_equal(before, after)


def test_row_counts_per_subject():
    """
    Every subject contributes one dosing row per protocol dose and one
    observation row per sampling window.
    """
    design = _small_design()
    df = generate_population(design, seed=10).dataset

    assert list(df.columns) == list(DATASET_COLUMNS)
    assert sorted(df["ID"].unique()) == [1, 2, 3, 4, 5]
    for _, grp in df.groupby("ID"):
        assert (grp["EVID"] == EVID_DOSE).sum() == design.dosing.n_doses
        assert (grp["EVID"] == EVID_OBSERVATION).sum() == len(WINDOWS)
    assert len(df) == 5 * (4 + len(WINDOWS))


def test_event_type_invariants():
    design = _small_design()
    df = generate_population(design, seed=11).dataset

    doses = df[df["EVID"] == EVID_DOSE]
    obs = df[df["EVID"] == EVID_OBSERVATION]
    assert set(df["EVID"].unique()) == {EVID_OBSERVATION, EVID_DOSE}
    assert (doses["DV"] == 0.0).all()
    assert (doses["AMT"] == design.dosing.amount_mg).all()
    assert (obs["AMT"] == 0.0).all()
    assert (obs["DV"] >= 0.0).all()
    # DV is rounded to one decimal
    assert np.allclose(obs["DV"] * 10, np.round(obs["DV"] * 10))


def test_dataset_sorted_by_subject_then_time():
    df = generate_population(_small_design(), seed=12).dataset
    keys = list(zip(df["ID"], df["TIME"]))
    assert keys == sorted(keys)


def test_dose_times_and_sampling_windows_follow_protocol():
    design = _small_design()
    df = generate_population(design, seed=13).dataset

    for _, grp in df.groupby("ID"):
        dose_times = grp.loc[grp["EVID"] == EVID_DOSE, "TIME"].to_numpy()
        assert np.allclose(dose_times, [0.0, 24.0, 48.0, 72.0])

        obs_times = grp.loc[grp["EVID"] == EVID_OBSERVATION, "TIME"].to_numpy()
        for t, (lo, hi) in zip(obs_times, WINDOWS):
            assert lo <= t <= hi
        # three decimal places
        assert np.allclose(obs_times * 1000, np.round(obs_times * 1000))


def test_covariates_constant_within_subject_and_match_parameters():
    population = generate_population(_small_design(), seed=14)
    df = population.dataset
    for subject in population.subjects:
        rows = df[df["ID"] == subject.subject_id]
        assert (rows["WT"] == subject.weight_kg).all()
        assert (rows["SEX"] == subject.sex).all()
        assert float(subject.weight_kg).is_integer()
        assert subject.sex in (0, 1)

    params = population.parameters_frame()
    assert list(params["ID"]) == [1, 2, 3, 4, 5]
    assert {"WT", "SEX", "ka", "CL", "Vc"} <= set(params.columns)


def test_subject_clearance_reflects_weight_and_random_effect():
    design = _small_design()
    population = generate_population(design, seed=15)
    for s in population.subjects:
        eta_cl = s.eta[list(design.iiv.names).index("CL")]
        expected = design.typical["CL"] * np.exp(eta_cl) * (s.weight_kg / 70.0) ** 0.75
        assert np.isclose(s.params["CL"], expected)


def test_per_subject_streams_parallel_matches_sequential():
    """
    With per-subject random streams the dataset does not depend on whether
    subjects are simulated in worker processes or in a loop.
    """
    design = _small_design(n_subjects=4)
    sequential = generate_population(design, seed=21, per_subject_streams=True).dataset
    parallel = generate_population(design, seed=21, per_subject_streams=True, max_workers=2).dataset
    assert sequential.to_csv(index=False) == parallel.to_csv(index=False)


def test_parallel_requires_per_subject_streams():
    with pytest.raises(ValueError):
        generate_population(_small_design(), seed=1, max_workers=2)


def test_invalid_covariance_raises_before_simulation():
    bad = RandomEffectsSpec(
        names=("ka", "CL", "Vc"),
        sd=(0.3, 0.3, 0.3),
        correlation=((1.0, 0.9, -0.9), (0.9, 1.0, 0.9), (-0.9, 0.9, 1.0)),
    )
    design = _small_design(iiv=bad)
    with pytest.raises(InvalidCovariance):
        generate_population(design, seed=1)
    with pytest.raises(InvalidCovariance):
        generate_population(design, seed=1, per_subject_streams=True)


def test_design_without_random_effects_uses_typical_values():
    """
    With no inter-individual variability every subject gets the typical
    values (plus covariate effects), in both random-stream modes.
    """
    design = _small_design(n_subjects=3, iiv=RandomEffectsSpec(names=(), sd=()))
    for per_subject_streams in (False, True):
        population = generate_population(design, seed=1, per_subject_streams=per_subject_streams)
        assert len(population.dataset) == 3 * (4 + len(WINDOWS))
        for s in population.subjects:
            assert s.eta.shape == (0,)
            assert s.params["ka"] == 1.0
            assert np.isclose(s.params["CL"], 5.0 * (s.weight_kg / 70.0) ** 0.75)
            assert np.isclose(s.params["Vc"], 50.0 * 0.85 ** s.sex)


def test_design_validation():
    with pytest.raises(ValueError):
        _small_design(n_subjects=0)
    with pytest.raises(ValueError):
        _small_design(iiv=RandomEffectsSpec(names=("Q",), sd=(0.2,)))
    with pytest.raises(ValueError):
        SamplingProtocol(windows=((1.0, 3.0), (2.0, 4.0)))


def test_tutorial_design_row_count():
    """
    40 subjects, 1200 mg every 24 h for 28 doses, nine sampling windows:
    40 * (28 + 9) = 1480 rows.
    """
    design = default_design()
    assert design.n_subjects == 40
    assert design.dosing.amount_mg == 1200.0
    assert design.dosing.n_doses == 28
    assert design.dosing.interval_h == 24.0
    assert len(design.sampling.windows) == 9

    df = generate_population(design, seed=2024).dataset
    assert len(df) == 1480
    assert (df["EVID"] == EVID_DOSE).sum() == 40 * 28
    assert (df["EVID"] == EVID_OBSERVATION).sum() == 40 * 9
