"""
Exception types raised by the subtype classification pipeline.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class DataError(PipelineError, ValueError):
    """Schema violations, missing values, degenerate columns or empty partitions."""


class EvaluationError(PipelineError, ValueError):
    """Mismatched or out-of-domain label vectors."""


class ConvergenceError(PipelineError, RuntimeError):
    """An iterative optimizer stopped before converging."""

    def __init__(self, model_name: str, message: str, hyperparameters=None):
        self.model_name = model_name
        self.hyperparameters = dict(hyperparameters or {})
        detail = f"{model_name}"
        if self.hyperparameters:
            detail += f" {self.hyperparameters}"
        super().__init__(f"{detail}: {message}")
