# src/pkpop/types.py
from dataclasses import dataclass, field
from typing import Literal, Sequence

import numpy as np

# We keep *all* time in HOURS internally. (Easy math, avoids unit drift.)
Route = Literal["po", "iv_bolus", "iv_infusion"]

# Event-type codes, NONMEM EVID convention
EVID_OBSERVATION = 0
EVID_DOSE = 101

# Fixed schema of the longitudinal dataset, in column order
DATASET_COLUMNS = ("ID", "TIME", "DV", "AMT", "EVID", "WT", "SEX")
DATASET_DTYPES = {
    "ID": "int64",
    "TIME": "float64",
    "DV": "float64",
    "AMT": "float64",
    "EVID": "int64",
    "WT": "float64",
    "SEX": "int64",
}


@dataclass(frozen=True)
class Dose:
    """
    A single administration of a medication.

    route       : how the dose is given (po, iv_bolus, iv_infusion)
    amount_mg   : dose size in milligrams
    start_h     : when the dose starts (in hours from time 0)
    duration_h  : how long it runs (0 for bolus or oral doses)
                  e.g., a 2-hour IV infusion has duration_h=2.0
    """
    route: Route
    amount_mg: float
    start_h: float
    duration_h: float = 0.0  # >0 only for infusions


@dataclass(frozen=True)
class Regimen:
    """
    A collection of Dose objects that defines the full schedule.

    doses : a sequence (list/tuple) of Dose entries. Order doesn't matter;
            the solver sorts event times when it runs.
    """
    doses: Sequence[Dose]


@dataclass(frozen=True)
class SubjectParameters:
    """
    One simulated subject: structural PK parameters after random effects
    and covariate effects, the random effects themselves and the baseline
    covariates.
    """
    subject_id: int
    params: dict[str, float]
    eta: np.ndarray = field(repr=False, compare=False)
    weight_kg: float
    sex: int


@dataclass(frozen=True)
class DosingRecord:
    subject_id: int
    time_h: float
    amount_mg: float
    evid: int = EVID_DOSE

    def as_row(self, weight_kg: float, sex: int) -> tuple:
        return (self.subject_id, self.time_h, 0.0, self.amount_mg, self.evid, weight_kg, sex)


@dataclass(frozen=True)
class ObservationRecord:
    subject_id: int
    time_h: float
    value: float
    weight_kg: float
    sex: int
    evid: int = EVID_OBSERVATION

    def as_row(self) -> tuple:
        return (self.subject_id, self.time_h, self.value, 0.0, self.evid, self.weight_kg, self.sex)
