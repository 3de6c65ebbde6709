# src/pkpop/simulate.py
import numpy as np

from .types import Regimen, SubjectParameters
from .models.compartments import get_model
from .solvers import simulate_concentrations


def simulate_subject(subject: SubjectParameters, model: str, regimen: Regimen, times) -> np.ndarray:
    """
    High-level wrapper: noise-free concentrations for one subject.
    """
    return simulate_concentrations(get_model(model), subject.params, regimen, times)


def simulate_profile(params: dict[str, float], model: str, regimen: Regimen,
                     t_end_h: float, dt_h: float = 1.0):
    """
    Concentration-time profile on a regular grid (dt_h, 2*dt_h, ..., t_end_h).
    Returns (t, C).
    """
    t = np.arange(dt_h, t_end_h + dt_h / 2, dt_h)
    return t, simulate_concentrations(get_model(model), params, regimen, t)
