"""
Exception types raised by the survival model.
"""


class SurvivalModelError(Exception):
    """Base class for all survival model errors"""


class DataUnavailable(SurvivalModelError):
    """Historical data source is missing, unreachable or malformed.

    Callers recover by switching to parametric sampling.
    """


class EmptyRecordSet(SurvivalModelError):
    """A historical sampler was handed zero records (programming error)."""


class InvalidParameter(SurvivalModelError, ValueError):
    """Simulation parameters were rejected before any work started."""


class SimulationCancelled(SurvivalModelError):
    """A run was stopped through its cancellation token."""
