"""
Model comparison table.

Rows accumulate as model variants are fit.  Each row carries the fit's
objective function value (OFV, -2 log-likelihood), AIC and BIC, and their
differences against a caller-chosen reference row (not necessarily the
previous one).
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Union

import pandas as pd

logger = logging.getLogger("pkpop.comparison")

Reference = Union[int, str, None]


def aic(ofv: float, n_params: int) -> float:
    return ofv + 2.0 * n_params


def bic(ofv: float, n_params: int, n_obs: int) -> float:
    return ofv + n_params * math.log(n_obs)


@dataclass(frozen=True)
class ComparisonRow:
    index: int
    label: str
    reference: Optional[int]
    ofv: float
    aic: float
    bic: float
    n_params: int
    n_obs: int
    delta_ofv: float
    delta_aic: float
    delta_bic: float


class ModelComparison:
    """Append-only table of model fits.

    Fits are read through ``ofv``, ``n_params`` and ``n_obs`` attributes and
    never modified.
    """

    COLUMNS = ["label", "reference", "ofv", "aic", "bic", "n_params", "n_obs",
               "delta_ofv", "delta_aic", "delta_bic"]

    def __init__(self, decimals: int = 3):
        self.decimals = decimals
        self._rows: List[ComparisonRow] = []

    def __len__(self) -> int:
        return len(self._rows)

    def __getitem__(self, key: Union[int, str]) -> ComparisonRow:
        return self._rows[self._resolve(key)]

    @property
    def rows(self) -> tuple:
        return tuple(self._rows)

    def _resolve(self, key: Union[int, str]) -> int:
        if isinstance(key, str):
            for row in self._rows:
                if row.label == key:
                    return row.index
            raise LookupError(f"No comparison row labelled '{key}'.")
        if isinstance(key, bool) or not isinstance(key, int):
            raise LookupError(f"Row reference must be an index or a label (got {key!r}).")
        if not 0 <= key < len(self._rows):
            raise LookupError(f"No comparison row with index {key} (table has {len(self._rows)} rows).")
        return key

    def add(self, label: str, fit, reference: Reference = None) -> ComparisonRow:
        """
        Append a row for `fit`, compared against `reference` (row index or label).

        Raises LookupError if the reference does not name an existing row and
        ValueError if the fit has no observations.
        """
        if not (fit.n_obs > 0):
            raise ValueError(f"n_obs must be > 0 (got {fit.n_obs}).")
        ref_index = None if reference is None else self._resolve(reference)

        row_aic = aic(fit.ofv, fit.n_params)
        row_bic = bic(fit.ofv, fit.n_params, fit.n_obs)
        if ref_index is None:
            d_ofv = d_aic = d_bic = float("nan")
        else:
            ref = self._rows[ref_index]
            d_ofv = fit.ofv - ref.ofv
            d_aic = row_aic - ref.aic
            d_bic = row_bic - ref.bic

        row = ComparisonRow(
            index=len(self._rows),
            label=label,
            reference=ref_index,
            ofv=float(fit.ofv),
            aic=row_aic,
            bic=row_bic,
            n_params=int(fit.n_params),
            n_obs=int(fit.n_obs),
            delta_ofv=d_ofv,
            delta_aic=d_aic,
            delta_bic=d_bic,
        )
        self._rows.append(row)
        logger.debug("Added comparison row %d (%s), reference=%s, dOFV=%s",
                     row.index, label, ref_index, d_ofv)
        return row

    def to_frame(self) -> pd.DataFrame:
        """Display table, floats rounded to `decimals`; reference given by label."""
        records = []
        for row in self._rows:
            records.append({
                "label": row.label,
                "reference": None if row.reference is None else self._rows[row.reference].label,
                "ofv": row.ofv,
                "aic": row.aic,
                "bic": row.bic,
                "n_params": row.n_params,
                "n_obs": row.n_obs,
                "delta_ofv": row.delta_ofv,
                "delta_aic": row.delta_aic,
                "delta_bic": row.delta_bic,
            })
        df = pd.DataFrame(records, columns=self.COLUMNS)
        float_cols = ["ofv", "aic", "bic", "delta_ofv", "delta_aic", "delta_bic"]
        df[float_cols] = df[float_cols].astype(float).round(self.decimals)
        return df
