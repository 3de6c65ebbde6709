# src/pkpop/solvers.py
import numpy as np
from scipy.integrate import solve_ivp

from .types import Regimen
from .models.compartments import CompartmentModel

# Integrator tolerances on compartment amounts (mg)
RTOL = 1e-6
ATOL = 1e-9


def _apply_doses_at(state: np.ndarray, regimen: Regimen, t: float) -> None:
    """Add instantaneous doses scheduled at time t to the state (in place)."""
    for d in regimen.doses:
        if np.isclose(d.start_h, t):
            if d.route == "po":
                state[0] += float(d.amount_mg)
            elif d.route == "iv_bolus":
                state[1] += float(d.amount_mg)


def _infusion_rate(regimen: Regimen, t: float) -> float:
    """Total zero-order input into the central compartment at time t (mg/h)."""
    rate = 0.0
    for d in regimen.doses:
        if d.route == "iv_infusion" and d.start_h <= t < d.start_h + d.duration_h:
            rate += float(d.amount_mg) / float(d.duration_h)
    return rate


def simulate_concentrations(model: CompartmentModel, params: dict[str, float],
                            regimen: Regimen, sample_times,
                            rtol: float = RTOL, atol: float = ATOL) -> np.ndarray:
    """
    Central-compartment concentrations (mg/L) of `model` at `sample_times` (h).

    Handles PO depot entries and IV boluses as instantaneous state jumps at
    their scheduled times and IV infusions as continuous zero-order inputs
    inside the ODE right-hand side. A sample taken exactly at a dose time is
    the pre-dose concentration.

    sample_times need not be on a grid; they are returned in input order.
    """
    missing = [name for name in model.parameters if name not in params]
    if missing:
        raise KeyError(f"Missing parameters {missing} for model '{model.name}'.")

    times = np.asarray(sample_times, dtype=float)
    C = np.zeros(times.shape, dtype=float)
    if times.size == 0:
        return C
    t_end = float(np.max(times))
    if t_end <= 0.0:
        return C

    # Segment boundaries: dose starts and infusion ends, where the RHS changes
    boundaries: list[float] = [0.0]
    for d in regimen.doses:
        if 0.0 <= d.start_h <= t_end:
            boundaries.append(float(d.start_h))
        if d.route == "iv_infusion":
            end_t = d.start_h + d.duration_h
            if 0.0 <= end_t <= t_end:
                boundaries.append(float(end_t))
    boundaries.append(t_end)
    boundaries = sorted(set(boundaries))

    # Nothing in any compartment before the first event
    state = np.zeros(model.n_states, dtype=float)
    _apply_doses_at(state, regimen, boundaries[0])

    Vc = float(params["Vc"])
    prev = boundaries[0]
    for curr in boundaries[1:]:
        # Infusions only start or stop at boundaries, so the rate is constant per segment
        rate = _infusion_rate(regimen, 0.5 * (prev + curr))

        def rhs(t, y, rate=rate):
            return model.rhs(t, y, params, rate)

        # Evaluation points for this segment; samples at `prev` were taken by the previous one
        # (the boundary itself is always evaluated so the last column is the end state)
        in_seg = (times > prev) & (times <= curr)
        t_eval_seg = np.unique(np.append(times[in_seg], curr))

        sol_seg = solve_ivp(rhs, t_span=(prev, curr), y0=state, method="RK45",
                            t_eval=t_eval_seg, rtol=rtol, atol=atol)
        if not sol_seg.success:
            raise RuntimeError(f"ODE integration failed on [{prev}, {curr}]: {sol_seg.message}")

        if np.any(in_seg):
            idx = np.searchsorted(t_eval_seg, times[in_seg])
            C[in_seg] = sol_seg.y[1, idx] / Vc

        # Update state for instantaneous doses at exactly curr
        state = np.array(sol_seg.y[:, -1], dtype=float)
        _apply_doses_at(state, regimen, curr)

        prev = curr

    return np.maximum(C, 0.0)
