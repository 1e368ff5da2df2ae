"""Information-theoretic metric learning from labeled patterns."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import numpy as np
from numpy.typing import ArrayLike

from .bounds import Bounds, estimate_bounds
from .config import ITMLConfig
from .constraints import ConstraintSet, sample_constraints
from .errors import InsufficientConstraintsError
from .io import pattern_matrix
from .projection import CancellationToken, ProjectionResult, project
from .utils import resolve_rng, section

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ITMLResult:
    """Learned metric together with the intermediate artifacts of the run."""

    metric: np.ndarray
    bounds: Bounds
    constraints: ConstraintSet
    projection: ProjectionResult


def _check_training_data(
    patterns: Mapping[int, ArrayLike], labels: Mapping[int, str]
) -> int:
    """Validate the pattern / label maps and return the pattern dimension."""

    ids, data = pattern_matrix(patterns)
    if len(ids) < 2:
        raise InsufficientConstraintsError(
            f"Need at least two patterns to learn a metric, got {len(ids)}"
        )
    if np.unique(data, axis=0).shape[0] < 2:
        raise InsufficientConstraintsError(
            "Need at least two distinct pattern vectors to learn a metric"
        )
    unlabeled = [key for key in ids if key not in labels]
    if unlabeled:
        raise InsufficientConstraintsError(
            f"{len(unlabeled)} pattern id(s) have no class label, e.g. {unlabeled[:5]}"
        )
    classes = {str(labels[key]).casefold() for key in ids}
    if len(classes) < 2:
        raise InsufficientConstraintsError(
            "Need at least two classes to form dissimilarity constraints"
        )
    return int(data.shape[1])


class InformationTheoreticMetricLearning:
    """Learn a Mahalanobis matrix with online ITML projections.

    The configuration and seed metric are fixed at construction. Each call to
    :meth:`fit` estimates bounds, samples constraints and runs the projection
    with its own local state.
    """

    def __init__(
        self,
        config: Optional[ITMLConfig] = None,
        seed_metric: Optional[ArrayLike] = None,
    ) -> None:
        self._config = config if config is not None else ITMLConfig()
        if seed_metric is None:
            self._seed_metric = None
        else:
            seed = np.array(seed_metric, dtype=np.float64)
            seed.setflags(write=False)
            self._seed_metric = seed

    @property
    def config(self) -> ITMLConfig:
        return self._config

    @property
    def seed_metric(self) -> Optional[np.ndarray]:
        return self._seed_metric

    def _resolve_seed(self, dim: int) -> np.ndarray:
        if self._seed_metric is None:
            return np.eye(dim, dtype=np.float64)
        if self._seed_metric.shape != (dim, dim):
            raise ValueError(
                f"Seed metric of shape {self._seed_metric.shape} does not match "
                f"pattern dimension {dim}"
            )
        return self._seed_metric

    def fit(
        self,
        patterns: Mapping[int, ArrayLike],
        labels: Mapping[int, str],
        *,
        rng: np.random.Generator | int | None = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ITMLResult:
        cfg = self._config
        dim = _check_training_data(patterns, labels)
        seed = self._resolve_seed(dim)
        generator = resolve_rng(cfg.seed if rng is None else rng)

        with section("bound estimation"):
            bounds = estimate_bounds(
                patterns,
                seed,
                lower_percentile=cfg.lower_percentile,
                upper_percentile=cfg.upper_percentile,
                num_distances=cfg.num_distances,
                rng=generator,
                exclude_self_pairs=cfg.exclude_self_pairs,
            )

        with section("constraint sampling"):
            constraints = sample_constraints(
                patterns,
                labels,
                bounds,
                const_factor=cfg.const_factor,
                max_attempts=cfg.max_attempts,
                rng=generator,
            )
        if len(constraints) == 0:
            raise InsufficientConstraintsError(
                "Every sampled pattern pair was rejected; no constraints to project"
            )

        with section("metric projection"):
            projection = project(
                constraints,
                seed,
                slack=cfg.slack,
                rel_error=cfg.rel_error,
                max_iter=cfg.max_iter,
                distance_against=cfg.distance_against,
                wraparound=cfg.wraparound,
                timeout_seconds=cfg.timeout_seconds,
                cancel=cancel,
                psd_clip=cfg.psd_clip,
            )

        return ITMLResult(
            metric=projection.metric,
            bounds=bounds,
            constraints=constraints,
            projection=projection,
        )


def learn_metric(
    patterns: Mapping[int, ArrayLike],
    labels: Mapping[int, str],
    config: Optional[ITMLConfig] = None,
    seed_metric: Optional[ArrayLike] = None,
    **fit_kwargs: Any,
) -> ITMLResult:
    """Functional shortcut for :class:`InformationTheoreticMetricLearning`."""
    learner = InformationTheoreticMetricLearning(config=config, seed_metric=seed_metric)
    return learner.fit(patterns, labels, **fit_kwargs)
