"""Online Bregman projection onto pairwise distance constraints.

Davis, J. V., Kulis, B., Jain, P., Sra, S., & Dhillon, I. S. (2007).
Information-theoretic metric learning. In Proceedings of the 24th
International Conference on Machine Learning (pp. 209-216).
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from numpy.typing import ArrayLike

from .config import DistanceSource, Wraparound
from .constraints import Constraint, ConstraintSet
from .distance import MetricDistance
from .errors import ConvergenceTimeout, ProjectionCancelled
from .utils import is_approx_zero

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe flag polled by :func:`project` once per iteration."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(slots=True)
class ConstraintState:
    """Per-constraint dual state carried through the projection."""

    constraint: Constraint
    lam: float
    b_hat: float


@dataclass(slots=True)
class ProjectionResult:
    """Output of :func:`project`."""

    metric: np.ndarray
    iterations: int
    cycles: int
    stop_reason: str
    convergence: float
    lambdas: np.ndarray


def _lambda_vector(states: List[ConstraintState]) -> np.ndarray:
    return np.fromiter((state.lam for state in states), dtype=np.float64, count=len(states))


def _next_index(idx: int, size: int, wraparound: Wraparound) -> int:
    if size == 1:
        return 0
    if wraparound == "skip_first":
        # Index 0 is only visited on the first pass.
        return idx % (size - 1) + 1
    return (idx + 1) % size


def clip_to_psd(matrix: ArrayLike) -> np.ndarray:
    """Project a matrix onto the PSD cone by clamping negative eigenvalues."""

    array = np.asarray(matrix, dtype=np.float64)
    symmetric = 0.5 * (array + array.T)
    evals, evecs = np.linalg.eigh(symmetric)
    clipped = np.maximum(evals, 0.0)
    return (evecs * clipped) @ evecs.T


def _validate_seed(seed_metric: ArrayLike, dim: Optional[int]) -> np.ndarray:
    seed = np.asarray(seed_metric, dtype=np.float64)
    if seed.ndim != 2 or seed.shape[0] != seed.shape[1]:
        raise ValueError("seed_metric must be a square 2-D array")
    if dim is not None and seed.shape[0] != dim:
        raise ValueError(
            f"seed_metric dimension {seed.shape[0]} does not match constraint dimension {dim}"
        )
    if not np.allclose(seed, seed.T):
        raise ValueError("seed_metric must be symmetric")
    return seed


def project(
    constraints: ConstraintSet,
    seed_metric: ArrayLike,
    *,
    slack: float = 1e-4,
    rel_error: float = 1e-10,
    max_iter: Optional[int] = None,
    distance_against: DistanceSource = "seed",
    wraparound: Wraparound = "skip_first",
    timeout_seconds: Optional[float] = None,
    cancel: Optional[CancellationToken] = None,
    psd_clip: bool = False,
) -> ProjectionResult:
    """Cycle through ``constraints`` applying rank-1 Bregman projections.

    Each visit computes the constraint distance ``p`` (against the seed matrix
    unless ``distance_against="current"``), updates the constraint's Lagrange
    multiplier and working bound, and applies ``A <- A + beta * A d d' A``.
    After every full cycle the relative change of the multiplier vector is
    compared with ``rel_error``.

    Raises
    ------
    ConvergenceTimeout
        When the iteration counter passes ``max_iter - 10`` or the wall-clock
        budget ``timeout_seconds`` is spent.
    ProjectionCancelled
        When ``cancel`` is set during the run.
    """

    if slack <= 0:
        raise ValueError("slack must be positive")
    if rel_error < 0:
        raise ValueError("rel_error must be non-negative")
    if max_iter is not None and max_iter <= 0:
        raise ValueError("max_iter must be positive")
    if distance_against not in ("seed", "current"):
        raise ValueError(f"Unknown distance_against: {distance_against!r}")
    if wraparound not in ("skip_first", "full"):
        raise ValueError(f"Unknown wraparound: {wraparound!r}")

    seed = _validate_seed(seed_metric, constraints.dim)
    a_matrix = seed.copy()

    num_constraints = len(constraints)
    if num_constraints == 0:
        logger.info("No constraints supplied; returning the seed metric")
        return ProjectionResult(
            metric=a_matrix,
            iterations=0,
            cycles=0,
            stop_reason="empty",
            convergence=math.nan,
            lambdas=np.empty(0, dtype=np.float64),
        )

    states = [
        ConstraintState(constraint=constraint, lam=0.0, b_hat=float(constraint.bound))
        for constraint in constraints
    ]
    lambda_old = np.zeros(num_constraints, dtype=np.float64)

    seed_distance = MetricDistance(seed)
    gamma_projected = slack / (slack + 1.0)
    deadline = None if timeout_seconds is None else time.monotonic() + timeout_seconds

    idx = 0
    cycles = 0
    conv = math.nan
    stop_reason = ""
    jdx = 0
    while max_iter is None or jdx < max_iter:
        if cancel is not None and cancel.cancelled:
            logger.info("Projection cancelled after %d iterations", jdx)
            raise ProjectionCancelled("Projection cancelled", iterations=jdx)
        if deadline is not None and time.monotonic() > deadline:
            logger.error("Convergence time out after %d iterations (wall clock)", jdx)
            raise ConvergenceTimeout(
                "Convergence time out: wall-clock budget exhausted",
                iterations=jdx,
                convergence=conv,
            )

        state = states[idx]
        delta = state.constraint.delta
        sign = float(state.constraint.sign)

        if distance_against == "seed":
            distance = seed_distance.distance_delta(delta)
        else:
            distance = float(delta @ (a_matrix @ delta))

        degenerate = (
            is_approx_zero(distance)
            or is_approx_zero(state.b_hat)
            or not math.isfinite(distance)
            or not math.isfinite(state.b_hat)
        )
        if degenerate:
            logger.debug(
                "Skipping constraint %s: distance=%g b_hat=%g",
                state.constraint.key,
                distance,
                state.b_hat,
            )
        else:
            alpha = min(
                state.lam,
                sign * gamma_projected * (1.0 / distance - 1.0 / state.b_hat),
            )
            beta_denominator = 1.0 - sign * alpha * distance
            b_hat_denominator = 1.0 / state.b_hat + sign * (alpha / slack)

            # Overflow is rejected by the finiteness check below.
            with np.errstate(over="ignore", invalid="ignore"):
                a_delta = a_matrix @ delta
                correction = np.outer(a_delta, delta @ a_matrix)
            if (
                beta_denominator != 0.0
                and b_hat_denominator != 0.0
                and math.isfinite(alpha)
                and np.all(np.isfinite(correction))
            ):
                beta = sign * alpha / beta_denominator
                state.lam -= alpha
                state.b_hat = 1.0 / b_hat_denominator
                a_matrix = a_matrix + beta * correction
            else:
                logger.debug(
                    "Skipping non-finite update for constraint %s: alpha=%g",
                    state.constraint.key,
                    alpha,
                )

        if idx == num_constraints - 1:
            cycles += 1
            lambdas = _lambda_vector(states)
            norm_sum = float(np.linalg.norm(lambdas) + np.linalg.norm(lambda_old))
            if is_approx_zero(norm_sum):
                stop_reason = "degenerate"
                jdx += 1
                break
            conv = float(np.linalg.norm(lambda_old - lambdas) / norm_sum)
            logger.debug("Cycle %d: norm sum %g, conv %g", cycles, norm_sum, conv)
            if conv < rel_error:
                stop_reason = "converged"
                jdx += 1
                break
            lambda_old = lambdas

        idx = _next_index(idx, num_constraints, wraparound)

        if max_iter is not None and jdx > max_iter - 10:
            logger.error("Convergence time out after %d iterations", jdx + 1)
            raise ConvergenceTimeout(
                f"Convergence time out: exceeded {max_iter} iteration budget",
                iterations=jdx + 1,
                convergence=conv,
            )
        jdx += 1

    if psd_clip:
        a_matrix = clip_to_psd(a_matrix)

    logger.info(
        "Projection finished (%s) after %d iterations, %d cycles, conv=%g",
        stop_reason,
        jdx,
        cycles,
        conv,
    )
    return ProjectionResult(
        metric=a_matrix,
        iterations=jdx,
        cycles=cycles,
        stop_reason=stop_reason,
        convergence=conv,
        lambdas=_lambda_vector(states),
    )
