import numpy as np
import pandas as pd
import pytest

from pkpop.dosing import (
    combine_regimens,
    from_explicit_schedule,
    iv_infusion,
    repeated_doses,
    single_dose,
)
from pkpop.helpers import split_dataset_by_subject
from pkpop.metrics import exposure_summary
from pkpop.types import DATASET_COLUMNS


def test_repeated_doses_schedule():
    reg = repeated_doses(1200.0, n_doses=28, interval_h=24.0)
    times = [d.start_h for d in reg.doses]
    assert len(times) == 28
    assert times[0] == 0.0 and times[-1] == 27 * 24.0
    assert all(d.amount_mg == 1200.0 and d.route == "po" for d in reg.doses)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(amount_mg=0.0, n_doses=3, interval_h=24.0),
        dict(amount_mg=100.0, n_doses=0, interval_h=24.0),
        dict(amount_mg=100.0, n_doses=2.5, interval_h=24.0),
        dict(amount_mg=100.0, n_doses=3, interval_h=-1.0),
        dict(amount_mg=100.0, n_doses=3, interval_h=24.0, duration_h=1.0),
        dict(amount_mg=100.0, n_doses=3, interval_h=2.0, route="iv_infusion", duration_h=4.0),
    ],
)
def test_repeated_doses_validation(kwargs):
    with pytest.raises(ValueError):
        repeated_doses(**kwargs)


def test_combine_and_explicit_schedules_sort_by_time():
    reg = combine_regimens(single_dose(500.0, start_h=12.0), iv_infusion(1000.0, 0.0, 2.0))
    assert [d.start_h for d in reg.doses] == [0.0, 12.0]

    reg = from_explicit_schedule([(48.0, 100.0), (0.0, 200.0), (24.0, 150.0)])
    assert [d.start_h for d in reg.doses] == [0.0, 24.0, 48.0]
    assert [d.amount_mg for d in reg.doses] == [200.0, 150.0, 100.0]


def _tiny_dataset():
    rows = [
        (1, 0.0, 0.0, 100.0, 101, 60.0, 0),
        (1, 1.0, 4.0, 0.0, 0, 60.0, 0),
        (1, 2.0, 6.0, 0.0, 0, 60.0, 0),
        (1, 4.0, 3.0, 0.0, 0, 60.0, 0),
        (2, 0.0, 0.0, 100.0, 101, 80.0, 1),
        (2, 1.0, 2.0, 0.0, 0, 80.0, 1),
        (2, 3.0, 5.0, 0.0, 0, 80.0, 1),
        (2, 24.0, 0.0, 100.0, 101, 80.0, 1),
    ]
    return pd.DataFrame(rows, columns=list(DATASET_COLUMNS))


def test_exposure_summary():
    summary = exposure_summary(_tiny_dataset())
    assert list(summary["ID"]) == [1, 2]
    assert list(summary["cmax"]) == [6.0, 5.0]
    assert list(summary["tmax"]) == [2.0, 3.0]
    # trapezoids: (4+6)/2*1 + (6+3)/2*2 = 14 ; (2+5)/2*2 = 7
    assert np.allclose(summary["auc"], [14.0, 7.0])


def test_split_dataset_by_subject():
    subjects = split_dataset_by_subject(_tiny_dataset())
    assert sorted(subjects) == [1, 2]
    s2 = subjects[2]
    assert [d.start_h for d in s2.regimen.doses] == [0.0, 24.0]
    assert all(d.route == "po" for d in s2.regimen.doses)
    assert np.allclose(s2.times, [1.0, 3.0])
    assert np.allclose(s2.dv, [2.0, 5.0])
    assert s2.weight_kg == 80.0 and s2.sex == 1
