"""Tests for Mahalanobis distance evaluation."""

from __future__ import annotations

import numpy as np
import pytest

from varstar_metric.distance import MetricDistance, MultiViewMetricDistance


def test_distance_of_identical_vectors_is_zero():
    rng = np.random.default_rng(3)
    raw = rng.normal(size=(4, 4))
    for matrix in (np.eye(4), raw, raw @ raw.T):
        x = rng.normal(size=4)
        assert MetricDistance(matrix).distance(x, x) == 0.0


def test_identity_metric_matches_squared_euclidean():
    metric = MetricDistance(np.eye(3))
    x_i = np.array([1.0, 2.0, 3.0])
    x_j = np.array([0.0, 0.0, 1.0])
    assert metric.distance(x_i, x_j) == pytest.approx(9.0)
    assert metric.distance_sqrt(x_i, x_j) == pytest.approx(3.0)
    assert metric.distance_delta(x_i - x_j) == pytest.approx(9.0)


def test_weighted_metric_and_trace_form_agree():
    matrix = np.array([[2.0, 0.5], [0.5, 1.0]])
    metric = MetricDistance(matrix)
    x_i = np.array([1.0, -1.0])
    x_j = np.array([0.0, 1.0])
    delta = x_i - x_j
    expected = float(delta @ matrix @ delta)
    assert metric.distance(x_i, x_j) == pytest.approx(expected)
    assert metric.trace_distance(x_i, x_j) == pytest.approx(expected)


def test_pairwise_matches_individual_distances():
    rng = np.random.default_rng(11)
    raw = rng.normal(size=(3, 3))
    matrix = raw @ raw.T
    data = rng.normal(size=(5, 3))
    metric = MetricDistance(matrix)

    table = metric.pairwise(data)
    assert table.shape == (5, 5)
    assert np.allclose(np.diag(table), 0.0)
    for i in range(5):
        for j in range(5):
            assert table[i, j] == pytest.approx(metric.distance(data[i], data[j]), abs=1e-9)


def test_rejects_bad_shapes():
    with pytest.raises(ValueError):
        MetricDistance(np.ones((2, 3)))
    with pytest.raises(ValueError):
        MetricDistance(np.eye(2)).distance(np.ones(3), np.ones(3))


def test_multi_view_trace_distance():
    u_matrix = np.eye(2)
    v_matrix = np.diag([1.0, 2.0, 3.0])
    x_i = np.arange(6, dtype=float).reshape(3, 2)
    x_j = np.zeros((3, 2))
    metric = MultiViewMetricDistance(u_matrix, v_matrix)

    delta = x_i - x_j
    expected = float(np.trace(u_matrix @ delta.T @ v_matrix @ delta))
    assert metric.matrix_distance(x_i, x_j) == pytest.approx(expected)
    assert metric.matrix_distance(x_i, x_i) == 0.0

    with pytest.raises(ValueError):
        metric.matrix_distance(np.zeros((2, 2)), np.zeros((2, 2)))
