from collections import defaultdict
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .types import Dose, Regimen, Route, EVID_DOSE, EVID_OBSERVATION


@dataclass(frozen=True)
class SubjectData:
    """One subject's slice of a longitudinal dataset, ready for prediction."""
    subject_id: int
    regimen: Regimen
    times: np.ndarray
    dv: np.ndarray
    weight_kg: float
    sex: int


def observations(df: pd.DataFrame) -> pd.DataFrame:
    return df[df["EVID"] == EVID_OBSERVATION]


def doses(df: pd.DataFrame) -> pd.DataFrame:
    return df[df["EVID"] == EVID_DOSE]


def split_dataset_by_subject(df: pd.DataFrame, route: Route = "po") -> dict[int, SubjectData]:
    """
    Group dose and observation rows by subject ID.
    Dose rows become a Regimen with the given route.
    """
    dose_buckets: dict[int, list[Dose]] = defaultdict(list)
    for sid, t, amt in doses(df)[["ID", "TIME", "AMT"]].itertuples(index=False):
        dose_buckets[int(sid)].append(Dose(route=route, amount_mg=float(amt), start_h=float(t)))

    out: dict[int, SubjectData] = {}
    for sid, rows in df.groupby("ID", sort=True):
        obs = observations(rows)
        first = rows.iloc[0]
        out[int(sid)] = SubjectData(
            subject_id=int(sid),
            regimen=Regimen(doses=tuple(sorted(dose_buckets.get(int(sid), []), key=lambda d: d.start_h))),
            times=obs["TIME"].to_numpy(dtype=float),
            dv=obs["DV"].to_numpy(dtype=float),
            weight_kg=float(first["WT"]),
            sex=int(first["SEX"]),
        )
    return out
