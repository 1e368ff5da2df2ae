"""Exception types raised by the metric learning pipeline."""

from __future__ import annotations

import math


class MetricLearningError(Exception):
    """Base class for metric learning failures."""


class InsufficientConstraintsError(MetricLearningError, ValueError):
    """Raised when the training data cannot yield a usable constraint set."""


class ConvergenceTimeout(MetricLearningError, ArithmeticError):
    """Raised when the projection exhausts its iteration or time budget."""

    def __init__(self, message: str, iterations: int, convergence: float = math.nan) -> None:
        super().__init__(message)
        self.iterations = iterations
        self.convergence = convergence


class ProjectionCancelled(MetricLearningError):
    """Raised when a caller cancels a running projection."""

    def __init__(self, message: str, iterations: int) -> None:
        super().__init__(message)
        self.iterations = iterations
