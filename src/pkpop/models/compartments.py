# src/pkpop/models/compartments.py
from dataclasses import dataclass
from typing import Callable, Sequence


def one_compartment(t, y, p, infusion_rate=0.0):
    """
    One-compartment model with first-order absorption and elimination.
    Two states:
      y[0] = drug in absorption depot (mg)
      y[1] = drug in central compartment (mg)

    Parameters (in p):
      ka : absorption rate constant (1/h)
      CL : clearance (L/h)
      Vc : central volume (L)

    infusion_rate : zero-order input into the central compartment (mg/h)
    """
    A_gut, A_c = y
    ka, CL, Vc = p["ka"], p["CL"], p["Vc"]

    dA_gut_dt = -ka * A_gut
    dA_c_dt = ka * A_gut - (CL / Vc) * A_c + infusion_rate

    return [dA_gut_dt, dA_c_dt]


def two_compartment(t, y, p, infusion_rate=0.0):
    """
    Two-compartment model with first-order absorption.
    Three states: depot, central, peripheral (mg).

    Parameters (in p): ka, CL, Vc, Q (inter-compartmental clearance, L/h),
    Vp (peripheral volume, L).
    """
    A_gut, A_c, A_p = y
    ka, CL, Vc, Q, Vp = p["ka"], p["CL"], p["Vc"], p["Q"], p["Vp"]

    C_c = A_c / Vc
    C_p = A_p / Vp

    dA_gut_dt = -ka * A_gut
    dA_c_dt = ka * A_gut - CL * C_c - Q * (C_c - C_p) + infusion_rate
    dA_p_dt = Q * (C_c - C_p)

    return [dA_gut_dt, dA_c_dt, dA_p_dt]


def three_compartment(t, y, p, infusion_rate=0.0):
    """
    Three-compartment model with first-order absorption.
    Four states: depot, central, shallow peripheral, deep peripheral (mg).

    Parameters (in p): ka, CL, Vc, Q, Vp, Q2, Vp2.
    """
    A_gut, A_c, A_p, A_p2 = y
    ka, CL, Vc = p["ka"], p["CL"], p["Vc"]
    Q, Vp, Q2, Vp2 = p["Q"], p["Vp"], p["Q2"], p["Vp2"]

    C_c = A_c / Vc
    C_p = A_p / Vp
    C_p2 = A_p2 / Vp2

    dA_gut_dt = -ka * A_gut
    dA_c_dt = (ka * A_gut - CL * C_c - Q * (C_c - C_p) - Q2 * (C_c - C_p2)
               + infusion_rate)
    dA_p_dt = Q * (C_c - C_p)
    dA_p2_dt = Q2 * (C_c - C_p2)

    return [dA_gut_dt, dA_c_dt, dA_p_dt, dA_p2_dt]


@dataclass(frozen=True)
class CompartmentModel:
    """
    A structural model: its name, the parameters it needs and its ODE
    right-hand side. State 0 is always the depot and state 1 the central
    compartment.
    """
    name: str
    parameters: Sequence[str]
    n_states: int
    rhs: Callable


MODELS: dict[str, CompartmentModel] = {
    "1cmt": CompartmentModel("1cmt", ("ka", "CL", "Vc"), 2, one_compartment),
    "2cmt": CompartmentModel("2cmt", ("ka", "CL", "Vc", "Q", "Vp"), 3, two_compartment),
    "3cmt": CompartmentModel("3cmt", ("ka", "CL", "Vc", "Q", "Vp", "Q2", "Vp2"), 4, three_compartment),
}


def get_model(name: str) -> CompartmentModel:
    try:
        return MODELS[name]
    except KeyError:
        raise KeyError(f"Unknown structural model '{name}'. Choose one of {sorted(MODELS)}.") from None
