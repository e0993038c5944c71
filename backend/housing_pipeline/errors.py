"""
Exception hierarchy for the housing clustering pipeline.

Structural errors (empty input, bad k) abort the run. Numeric degeneracies are
handled inside the stage that meets them and only surface as
NumericDegeneracyError when the local fallback keeps failing.
"""

from typing import Optional, Tuple


class PipelineError(Exception):
    """Base class for every error raised by a pipeline stage."""

    def __init__(self, message: str, stage: str, shape: Optional[Tuple[int, ...]] = None):
        self.stage = stage
        self.shape = tuple(shape) if shape is not None else None
        self.detail = message
        super().__init__(self._format())

    def _format(self) -> str:
        text = f"[{self.stage}] {self.detail}"
        if self.shape is not None:
            text += f" (input shape {'x'.join(str(d) for d in self.shape)})"
        return text


class DataQualityError(PipelineError):
    """No numeric columns, or cleaning removed every row."""


class InsufficientDataError(PipelineError):
    """Not enough rows, columns or variance to compute a meaningful result."""


class InvalidClusterCountError(PipelineError):
    """Requested k is below 1 or above the number of distinct points."""


class NumericDegeneracyError(PipelineError):
    """A locally handled degeneracy kept recurring past its retry cap."""
