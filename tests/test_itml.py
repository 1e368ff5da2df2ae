"""End-to-end tests for the ITML pipeline."""

from __future__ import annotations

import numpy as np
import pytest

from varstar_metric.config import ITMLConfig
from varstar_metric.distance import MetricDistance
from varstar_metric.errors import (
    ConvergenceTimeout,
    InsufficientConstraintsError,
    ProjectionCancelled,
)
from varstar_metric.itml import InformationTheoreticMetricLearning, learn_metric
from varstar_metric.projection import CancellationToken

from tests._helpers import load_real_dataset, subsample


def _margin(metric, patterns):
    dist = MetricDistance(metric)
    return dist.distance(patterns[0], patterns[2]) - dist.distance(patterns[0], patterns[1])


def test_two_clusters_converge_and_widen_margin(two_clusters):
    patterns, labels = two_clusters
    result = learn_metric(patterns, labels, ITMLConfig(seed=0))

    assert result.projection.stop_reason == "converged"
    assert len(result.constraints) == 6
    assert result.bounds.lower < result.bounds.upper
    assert np.allclose(result.metric, result.metric.T)
    assert _margin(result.metric, patterns) > _margin(np.eye(2), patterns)


def test_fit_is_deterministic_for_a_fixed_seed(two_clusters):
    patterns, labels = two_clusters
    learner = InformationTheoreticMetricLearning(ITMLConfig(seed=7))

    first = learner.fit(patterns, labels)
    second = learner.fit(patterns, labels)

    assert first.constraints.keys == second.constraints.keys
    assert first.bounds == second.bounds
    np.testing.assert_array_equal(first.metric, second.metric)


def test_explicit_rng_overrides_config_seed(two_clusters):
    patterns, labels = two_clusters
    learner = InformationTheoreticMetricLearning(ITMLConfig(seed=1))

    from_config = learner.fit(patterns, labels)
    from_rng = learner.fit(patterns, labels, rng=np.random.default_rng(1))

    np.testing.assert_array_equal(from_config.metric, from_rng.metric)


def test_zero_tolerance_times_out(two_clusters):
    patterns, labels = two_clusters
    config = ITMLConfig(seed=0, rel_error=0.0, max_iter=50)

    with pytest.raises(ConvergenceTimeout) as excinfo:
        learn_metric(patterns, labels, config)

    assert excinfo.value.iterations <= 50


def test_cancelled_fit_raises(two_clusters):
    patterns, labels = two_clusters
    token = CancellationToken()
    token.cancel()

    with pytest.raises(ProjectionCancelled):
        learn_metric(patterns, labels, ITMLConfig(seed=0), cancel=token)


def test_custom_seed_metric_is_used(two_clusters):
    patterns, labels = two_clusters
    seed = np.diag([2.0, 2.0])
    learner = InformationTheoreticMetricLearning(ITMLConfig(seed=0), seed_metric=seed)

    result = learner.fit(patterns, labels)

    assert learner.seed_metric is not None
    assert not learner.seed_metric.flags.writeable
    # Bounds scale with the seed metric.
    baseline = learn_metric(patterns, labels, ITMLConfig(seed=0))
    assert result.bounds.upper == pytest.approx(2.0 * baseline.bounds.upper)


def test_seed_metric_dimension_mismatch(two_clusters):
    patterns, labels = two_clusters
    learner = InformationTheoreticMetricLearning(seed_metric=np.eye(3))

    with pytest.raises(ValueError):
        learner.fit(patterns, labels)


@pytest.mark.parametrize(
    "patterns,labels",
    [
        ({0: np.array([0.0, 1.0])}, {0: "A"}),
        ({0: np.array([0.0, 1.0]), 1: np.array([1.0, 0.0])}, {0: "A", 1: "a"}),
        ({0: np.array([0.0, 1.0]), 1: np.array([1.0, 0.0])}, {0: "A"}),
        ({key: np.ones(2) for key in range(4)}, {0: "A", 1: "A", 2: "B", 3: "B"}),
    ],
    ids=["single-pattern", "single-class", "unlabeled", "coincident-vectors"],
)
def test_insufficient_training_data(patterns, labels):
    with pytest.raises(InsufficientConstraintsError):
        learn_metric(patterns, labels)


def test_no_usable_constraints_raises():
    # Distinct vectors whose differences all fall below machine epsilon.
    patterns = {
        0: np.array([0.0, 0.0]),
        1: np.array([1e-20, 0.0]),
        2: np.array([0.0, 0.0]),
        3: np.array([1e-20, 0.0]),
    }
    labels = {0: "A", 1: "A", 2: "B", 3: "B"}

    with pytest.raises(InsufficientConstraintsError):
        learn_metric(patterns, labels, ITMLConfig(seed=0))


@pytest.mark.usefixtures("varstar_test_data")
def test_learn_metric_on_real_dataset(varstar_test_data):
    loaded = load_real_dataset(varstar_test_data)
    if loaded is None:
        pytest.skip("No labeled dataset available for ITML test")

    patterns, labels = subsample(*loaded, limit=60)
    if len({label.casefold() for label in labels.values()}) < 2:
        pytest.skip("Subsample holds a single class")

    config = ITMLConfig(seed=0, const_factor=1, timeout_seconds=120.0)
    result = learn_metric(patterns, labels, config)

    assert result.projection.stop_reason in {"converged", "degenerate"}
    assert result.metric.shape == (result.constraints.dim, result.constraints.dim)
    assert np.all(np.isfinite(result.metric))
