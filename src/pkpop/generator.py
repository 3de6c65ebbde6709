"""
Synthetic population dataset generator
======================================
Simulates a longitudinal PK dataset (dosing + observation records) for a
virtual population: joint multivariate-normal random effects, sampled
covariates, deterministic covariate effects, a repeated dosing protocol,
windowed sampling times, an ODE solve per subject and multiplicative
residual noise.

Randomness comes only from the ``numpy.random.Generator`` handed in (or
built from ``seed``).  With ``per_subject_streams=True`` every subject gets
its own stream spawned from it, so subjects can be simulated in parallel
with ``concurrent.futures.ProcessPoolExecutor`` and still give the same
dataset.
"""
from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from .design import PopulationDesign
from .simulate import simulate_subject
from .types import (
    DATASET_COLUMNS,
    DATASET_DTYPES,
    DosingRecord,
    ObservationRecord,
    SubjectParameters,
)
from .variability import individual_parameters, sample_random_effects, subject_streams

logger = logging.getLogger("pkpop.generator")


@dataclass
class SimulatedPopulation:
    """The simulated subjects and their longitudinal dataset."""
    design: PopulationDesign
    subjects: List[SubjectParameters]
    dataset: pd.DataFrame

    def parameters_frame(self) -> pd.DataFrame:
        """One row per subject: ID, covariates and individual parameters."""
        rows = [
            {"ID": s.subject_id, "WT": s.weight_kg, "SEX": s.sex, **s.params}
            for s in self.subjects
        ]
        return pd.DataFrame(rows)


# ---------------------------------------------------------------------------
# Per-subject work  (top-level so it can be shipped to worker processes)
# ---------------------------------------------------------------------------

def _simulate_subject(job: Dict[str, Any]):
    design: PopulationDesign = job["design"]
    subject_id: int = job["subject_id"]
    rng: np.random.Generator = job["rng"]
    eta_vec: Optional[np.ndarray] = job.get("eta")
    weight: Optional[float] = job.get("weight")
    sex: Optional[int] = job.get("sex")

    # Own stream: draw this subject's random effects and covariates first
    if eta_vec is None:
        eta_vec = sample_random_effects(rng, design.iiv, 1)[0]
        weight = float(design.covariates.sample_weights(rng, 1)[0])
        sex = int(design.covariates.sample_sex(rng, 1)[0])

    eta = dict(zip(design.iiv.names, (float(e) for e in eta_vec)))
    params = individual_parameters(design.typical, eta, weight, sex, design.effects)
    subject = SubjectParameters(subject_id=subject_id, params=params,
                                eta=np.asarray(eta_vec, dtype=float),
                                weight_kg=float(weight), sex=int(sex))

    times = design.sampling.draw(rng)
    pred = simulate_subject(subject, design.model, design.dosing.regimen(), times)
    dv = design.residual.apply(rng, pred)

    observations = [
        ObservationRecord(subject_id=subject_id, time_h=float(t), value=float(y),
                          weight_kg=subject.weight_kg, sex=subject.sex)
        for t, y in zip(times, dv)
    ]
    return subject, observations


def _dosing_grid(design: PopulationDesign, subject_id: int) -> List[DosingRecord]:
    return [
        DosingRecord(subject_id=subject_id, time_h=float(t), amount_mg=float(design.dosing.amount_mg))
        for t in design.dosing.dose_times()
    ]


def _subject_frame(subject: SubjectParameters, observations: List[ObservationRecord],
                   doses: List[DosingRecord]) -> pd.DataFrame:
    rows = [o.as_row() for o in observations]
    rows.extend(d.as_row(subject.weight_kg, subject.sex) for d in doses)
    return pd.DataFrame.from_records(rows, columns=list(DATASET_COLUMNS)).astype(DATASET_DTYPES)


def assemble_dataset(frames: List[pd.DataFrame]) -> pd.DataFrame:
    """Concatenate per-subject frames and sort by ID then TIME.

    At equal times observation rows (EVID 0) come before dose rows (EVID 101),
    i.e. such samples are pre-dose.
    """
    if not frames:
        return pd.DataFrame({c: pd.Series(dtype=DATASET_DTYPES[c]) for c in DATASET_COLUMNS})
    df = pd.concat(frames, ignore_index=True)
    df = df.sort_values(["ID", "TIME", "EVID"], kind="mergesort").reset_index(drop=True)
    return df[list(DATASET_COLUMNS)]


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def generate_population(
    design: PopulationDesign,
    rng: Optional[np.random.Generator] = None,
    *,
    seed: Optional[int] = None,
    per_subject_streams: bool = False,
    max_workers: Optional[int] = None,
) -> SimulatedPopulation:
    """Simulate ``design.n_subjects`` subjects and return their dataset.

    Parameters
    ----------
    design : PopulationDesign
        Typical values, random effects, covariates, dosing, sampling and
        residual error.
    rng : numpy.random.Generator, optional
        Random stream to consume.  Built from ``seed`` when omitted.
    seed : int, optional
        Seed for a fresh ``numpy.random.default_rng``; ignored when ``rng`` is given.
    per_subject_streams : bool, default False
        Spawn an independent stream per subject instead of consuming one
        stream in subject order.  Required for ``max_workers``.
    max_workers : int, optional
        Simulate subjects in a process pool of this size.

    Returns
    -------
    SimulatedPopulation
        Subjects in ID order and the dataset sorted by ID then TIME.

    Raises
    ------
    InvalidCovariance
        If the random-effect specification is not a valid covariance.
    """
    if max_workers is not None and not per_subject_streams:
        raise ValueError("max_workers requires per_subject_streams=True for reproducible output.")
    if rng is None:
        rng = np.random.default_rng(seed)

    n = design.n_subjects
    ids = range(1, n + 1)
    logger.info("Generating %d subjects (model=%s, per_subject_streams=%s)",
                n, design.model, per_subject_streams)

    if per_subject_streams:
        streams = subject_streams(rng, n)
        # Validate the covariance before any work is dispatched
        design.iiv.covariance()
        jobs = [{"design": design, "subject_id": i, "rng": s} for i, s in zip(ids, streams)]
    else:
        etas = sample_random_effects(rng, design.iiv, n)
        weights = design.covariates.sample_weights(rng, n)
        sexes = design.covariates.sample_sex(rng, n)
        jobs = [
            {"design": design, "subject_id": i, "rng": rng,
             "eta": etas[k], "weight": float(weights[k]), "sex": int(sexes[k])}
            for k, i in enumerate(ids)
        ]

    if max_workers is not None and max_workers > 1:
        logger.info("Dispatching %d subjects to %d worker processes", n, max_workers)
        with concurrent.futures.ProcessPoolExecutor(max_workers=max_workers) as executor:
            # map() yields in submission order whatever the completion order
            results = list(executor.map(_simulate_subject, jobs))
    else:
        results = [_simulate_subject(job) for job in jobs]

    subjects: List[SubjectParameters] = []
    frames: List[pd.DataFrame] = []
    for subject, observations in results:
        subjects.append(subject)
        frames.append(_subject_frame(subject, observations, _dosing_grid(design, subject.subject_id)))

    dataset = assemble_dataset(frames)
    logger.info("Generated dataset: %d subjects, %d rows", n, len(dataset))
    return SimulatedPopulation(design=design, subjects=subjects, dataset=dataset)
