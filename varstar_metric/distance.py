"""Mahalanobis-style distances under a learned metric matrix."""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike


def _validate_square(matrix: ArrayLike, name: str = "metric matrix") -> np.ndarray:
    array = np.asarray(matrix, dtype=np.float64)
    if array.ndim != 2 or array.shape[0] != array.shape[1]:
        raise ValueError(f"{name} must be a square 2-D array")
    return array


class MetricDistance:
    """Evaluate the bilinear form ``d' M d`` for a fixed matrix ``M``."""

    def __init__(self, matrix: ArrayLike) -> None:
        self.matrix = _validate_square(matrix)

    @property
    def dim(self) -> int:
        return int(self.matrix.shape[0])

    def _check_vector(self, vector: ArrayLike) -> np.ndarray:
        array = np.asarray(vector, dtype=np.float64)
        if array.shape != (self.dim,):
            raise ValueError(
                f"Vector of shape {array.shape} does not match metric dimension {self.dim}"
            )
        return array

    def distance_delta(self, delta: ArrayLike) -> float:
        """(delta)' M (delta)"""
        d = self._check_vector(delta)
        return float(d @ (self.matrix @ d))

    def distance(self, x_i: ArrayLike, x_j: ArrayLike) -> float:
        """(x_i - x_j)' M (x_i - x_j)"""
        return self.distance_delta(self._check_vector(x_i) - self._check_vector(x_j))

    def distance_sqrt(self, x_i: ArrayLike, x_j: ArrayLike) -> float:
        return float(np.sqrt(self.distance(x_i, x_j)))

    def trace_distance(self, x_i: ArrayLike, x_j: ArrayLike) -> float:
        """tr{M (x_i - x_j)(x_i - x_j)'}

        Agrees with :meth:`distance` whenever ``M`` is symmetric.
        """
        delta = self._check_vector(x_i) - self._check_vector(x_j)
        return float(np.trace(self.matrix @ np.outer(delta, delta)))

    def pairwise(self, vectors: ArrayLike) -> np.ndarray:
        """Return the ``N x N`` matrix of squared distances between rows."""
        data = np.asarray(vectors, dtype=np.float64)
        if data.ndim != 2 or data.shape[1] != self.dim:
            raise ValueError("vectors must be a 2-D array matching the metric dimension")
        projected = data @ self.matrix
        # d_ij = x_i'Mx_i + x_j'Mx_j - x_i'Mx_j - x_j'Mx_i
        self_terms = np.einsum("ij,ij->i", projected, data)
        cross = projected @ data.T
        result = self_terms[:, None] + self_terms[None, :] - cross - cross.T
        np.fill_diagonal(result, 0.0)
        return result


class MultiViewMetricDistance:
    """Trace-form distance ``tr{U D' V D}`` for matrix-valued patterns."""

    def __init__(self, u_matrix: ArrayLike, v_matrix: ArrayLike) -> None:
        self.u_matrix = _validate_square(u_matrix, "U")
        self.v_matrix = _validate_square(v_matrix, "V")

    def matrix_distance_delta(self, delta: ArrayLike) -> float:
        d = np.asarray(delta, dtype=np.float64)
        if d.ndim != 2:
            raise ValueError("delta must be a 2-D array")
        if d.shape != (self.v_matrix.shape[0], self.u_matrix.shape[0]):
            raise ValueError(
                f"delta of shape {d.shape} does not match U {self.u_matrix.shape} "
                f"and V {self.v_matrix.shape}"
            )
        return float(np.trace(self.u_matrix @ d.T @ self.v_matrix @ d))

    def matrix_distance(self, x_i: ArrayLike, x_j: ArrayLike) -> float:
        return self.matrix_distance_delta(
            np.asarray(x_i, dtype=np.float64) - np.asarray(x_j, dtype=np.float64)
        )
