# src/pkpop/metrics.py
import numpy as np
import pandas as pd

from .helpers import observations


def cmax(C: np.ndarray) -> float:
    """Global maximum concentration (mg/L)."""
    return float(np.max(C))

def tmax(t: np.ndarray, C: np.ndarray) -> float:
    """Time of maximum concentration (h)."""
    return float(t[int(np.argmax(C))])

def auc_trapz(t: np.ndarray, C: np.ndarray) -> float:
    """Area Under the Curve (AUC) via trapezoidal rule (mg*h/L)."""
    return float(np.trapezoid(C, t))

def exposure_summary(dataset: pd.DataFrame, t_start_h: float = 0.0, t_end_h: float | None = None) -> pd.DataFrame:
    """
    Per-subject Cmax, Tmax and AUC of the observed concentrations.

    Only observation rows within [t_start_h, t_end_h] are used; the AUC is the
    trapezoidal area over those samples (sparse sampling underestimates it).
    """
    obs = observations(dataset)
    obs = obs[obs["TIME"] >= t_start_h]
    if t_end_h is not None:
        obs = obs[obs["TIME"] <= t_end_h]

    rows = []
    for sid, grp in obs.groupby("ID", sort=True):
        t = grp["TIME"].to_numpy(dtype=float)
        C = grp["DV"].to_numpy(dtype=float)
        rows.append({
            "ID": int(sid),
            "cmax": cmax(C),
            "tmax": tmax(t, C),
            "auc": auc_trapz(t, C) if t.size > 1 else 0.0,
        })
    return pd.DataFrame(rows, columns=["ID", "cmax", "tmax", "auc"])
