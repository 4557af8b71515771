"""Exceptions raised while fitting or applying models."""
from __future__ import annotations


class ModelingError(ValueError):
    """Base class for modelling failures.

    Subclasses ``ValueError`` so callers that guard scikit-learn style calls
    with ``except ValueError`` keep working.
    """


class FitError(ModelingError):
    """A learner could not produce a model from its training rows."""


class TransformError(ModelingError):
    """Input rows do not match the shape a model was trained on."""
