# src/pkpop/dosing.py
from __future__ import annotations

from typing import Sequence, Tuple
import numpy as np

from .types import Dose, Regimen, Route


def single_dose(amount_mg: float, start_h: float = 0.0, route: Route = "po", duration_h: float = 0.0) -> Regimen:
    """
    Create a regimen with exactly one dose.
    Examples:
      - 1200 mg PO at t=0 h
      - 500 mg IV infusion starting at t=4 h over 2 hours (duration_h=2)
    """
    _validate_positive("amount_mg", amount_mg)
    _validate_non_negative("start_h", start_h)
    if route == "iv_infusion":
        _validate_positive("duration_h", duration_h)
    else:
        _validate_non_negative("duration_h", duration_h)
        if duration_h > 0:
            raise ValueError("duration_h should be 0 unless route is 'iv_infusion'.")

    return Regimen(doses=(Dose(route=route, amount_mg=float(amount_mg),
                               start_h=float(start_h), duration_h=float(duration_h)),))


def repeated_doses(amount_mg: float, n_doses: int, interval_h: float,
                   route: Route = "po", start_h: float = 0.0, duration_h: float = 0.0) -> Regimen:
    """
    Make a repeated schedule like: 1200 mg PO every 24 h, 28 doses.

    amount_mg  : size of each dose, mg
    n_doses    : number of administrations
    interval_h : spacing between doses, hours
    route      : po/iv_bolus/iv_infusion
    start_h    : time of the first dose
    duration_h : infusion length (iv_infusion only)
    """
    _validate_positive("amount_mg", amount_mg)
    _validate_positive_int("n_doses", n_doses)
    _validate_positive("interval_h", interval_h)
    _validate_non_negative("start_h", start_h)
    if route == "iv_infusion":
        _validate_positive("duration_h", duration_h)
        if duration_h > interval_h:
            raise ValueError("duration_h must not exceed interval_h for repeated infusions.")
    elif duration_h > 0:
        raise ValueError("duration_h should be 0 unless route is 'iv_infusion'.")

    # Dose times: start, start + tau, start + 2*tau, ...
    times_h = float(start_h) + np.arange(n_doses, dtype=float) * float(interval_h)

    doses = tuple(
        Dose(route=route, amount_mg=float(amount_mg), start_h=float(t), duration_h=float(duration_h))
        for t in times_h
    )
    return Regimen(doses=doses)


def iv_infusion(amount_mg: float, start_h: float, duration_h: float) -> Regimen:
    """
    A single IV infusion (zero-order input) of a given total amount over a duration.
    Example: 1000 mg starting at t=0 h over 2 h.
    """
    _validate_positive("amount_mg", amount_mg)
    _validate_non_negative("start_h", start_h)
    _validate_positive("duration_h", duration_h)

    return Regimen(doses=(Dose(route="iv_infusion",
                               amount_mg=float(amount_mg),
                               start_h=float(start_h),
                               duration_h=float(duration_h)),))


def combine_regimens(*regimens: Regimen) -> Regimen:
    """
    Merge multiple regimens into one (e.g., a PO schedule + an IV loading dose).
    Doses are concatenated and sorted by start time.
    """
    all_doses: list[Dose] = []
    for r in regimens:
        all_doses.extend(r.doses)
    all_doses_sorted = tuple(sorted(all_doses, key=lambda d: (d.start_h, d.route)))
    return Regimen(doses=all_doses_sorted)


def from_explicit_schedule(entries: Sequence[Tuple[float, float]], route: Route = "po") -> Regimen:
    """
    Build a regimen from manual (time_h, amount_mg) entries.
    Example: entries=[(0.0, 1200), (24.0, 1200), (48.0, 1200)]
    """
    doses: list[Dose] = []
    for start_h, amount_mg in entries:
        _validate_positive("amount_mg", amount_mg)
        _validate_non_negative("start_h", start_h)
        doses.append(Dose(route=route, amount_mg=float(amount_mg), start_h=float(start_h)))
    doses.sort(key=lambda d: d.start_h)
    return Regimen(doses=tuple(doses))


# --------------------------
# Small input validators
# --------------------------
def _validate_positive(name: str, x: float) -> None:
    if not (x > 0):
        raise ValueError(f"{name} must be > 0 (got {x}).")

def _validate_non_negative(name: str, x: float) -> None:
    if not (x >= 0):
        raise ValueError(f"{name} must be >= 0 (got {x}).")

def _validate_positive_int(name: str, x: int) -> None:
    if not (isinstance(x, (int, np.integer)) and not isinstance(x, bool) and x > 0):
        raise ValueError(f"{name} must be a positive integer (got {x}).")
