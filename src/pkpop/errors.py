# src/pkpop/errors.py


class InvalidCovariance(ValueError):
    """The random-effect standard deviations and correlation matrix do not
    compose into a valid (symmetric, positive semi-definite) covariance matrix."""


class EstimationFailure(RuntimeError):
    """A model fit raised, produced a non-finite objective or did not converge."""
