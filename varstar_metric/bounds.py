"""Percentile bounds for similarity / dissimilarity constraints."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

import numpy as np
from numpy.typing import ArrayLike

from .distance import MetricDistance
from .errors import InsufficientConstraintsError
from .io import pattern_matrix
from .utils import IndexStream, resolve_rng

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Bounds:
    """Target distances for similar (``lower``) and dissimilar (``upper``) pairs."""

    lower: float
    upper: float


def estimate_bounds(
    patterns: Mapping[int, ArrayLike],
    seed_metric: ArrayLike,
    *,
    lower_percentile: float = 5.0,
    upper_percentile: float = 95.0,
    num_distances: int = 2000,
    rng: np.random.Generator | int | None = None,
    exclude_self_pairs: bool = True,
) -> Bounds:
    """Sample pattern pairs and read percentile bounds off their distances.

    Parameters
    ----------
    patterns:
        Mapping of pattern id to feature vector.
    seed_metric:
        Matrix under which the sampled distances are evaluated.
    lower_percentile, upper_percentile:
        Percentiles in ``[0, 100]`` used for the lower and upper bound.
    num_distances:
        Number of id pairs drawn (uniformly, with replacement).
    rng:
        Generator or seed for the pair draws.
    exclude_self_pairs:
        Redraw pairs whose two ids coincide. Their zero distances otherwise
        drag the lower percentile to zero on small pattern sets. Leaving
        it on departs from the plain with-replacement estimator, which keeps
        such pairs; pass ``False`` to reproduce that estimator.
    """

    ids, data = pattern_matrix(patterns)
    if len(ids) < 2:
        raise InsufficientConstraintsError(
            "Need at least two patterns to estimate distance bounds"
        )
    for name, value in (("lower_percentile", lower_percentile), ("upper_percentile", upper_percentile)):
        if not 0.0 <= value <= 100.0:
            raise ValueError(f"{name} must be between 0 and 100")
    if num_distances <= 0:
        raise ValueError("num_distances must be positive")

    metric = MetricDistance(seed_metric)
    if metric.dim != data.shape[1]:
        raise ValueError(
            f"Seed metric dimension {metric.dim} does not match pattern dimension {data.shape[1]}"
        )

    generator = resolve_rng(rng)
    stream = IndexStream(generator, len(ids))

    distances = np.empty(num_distances, dtype=np.float64)
    for kdx in range(num_distances):
        i = next(stream)
        j = next(stream)
        while exclude_self_pairs and i == j:
            j = next(stream)
        distances[kdx] = metric.distance(data[i], data[j])

    # Position p(n+1)/100, clamped to the sample extremes.
    lower = float(np.percentile(distances, lower_percentile, method="weibull"))
    upper = float(np.percentile(distances, upper_percentile, method="weibull"))

    logger.info("Estimated bounds: lower=%g upper=%g", lower, upper)
    if lower >= upper:
        logger.warning(
            "Lower bound %g is not below upper bound %g; constraints may conflict",
            lower,
            upper,
        )
    return Bounds(lower=lower, upper=upper)
