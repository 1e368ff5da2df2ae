"""Tests for constraint sampling."""

from __future__ import annotations

import numpy as np
import pytest

from varstar_metric.bounds import Bounds, estimate_bounds
from varstar_metric.constraints import sample_constraints
from varstar_metric.errors import InsufficientConstraintsError


def _blobs(seed: int = 0, per_class: int = 6):
    rng = np.random.default_rng(seed)
    patterns = {}
    labels = {}
    key = 0
    for label, centre in (("rrlyr", 0.0), ("Mira", 4.0), ("EB", -4.0)):
        for _ in range(per_class):
            # Non-contiguous ids exercise the id -> row mapping.
            patterns[3 * key + 1] = centre + rng.normal(scale=0.3, size=3)
            labels[3 * key + 1] = label
            key += 1
    return patterns, labels


def test_keys_unique_and_ordered():
    patterns, labels = _blobs()
    constraints = sample_constraints(patterns, labels, Bounds(1.0, 10.0), rng=1)

    assert len(constraints) > 0
    assert len(set(constraints.keys)) == len(constraints.keys)
    assert all(i < j for i, j in constraints.keys)
    n = len(patterns)
    assert len(constraints) <= n * (n - 1) // 2


def test_sign_and_bound_follow_labels():
    patterns, labels = _blobs()
    bounds = Bounds(lower=1.5, upper=12.0)
    constraints = sample_constraints(patterns, labels, bounds, rng=2)

    for constraint in constraints:
        if labels[constraint.i] == labels[constraint.j]:
            assert constraint.sign == 1
            assert constraint.bound == bounds.lower
        else:
            assert constraint.sign == -1
            assert constraint.bound == bounds.upper


def test_delta_points_along_the_key():
    patterns, labels = _blobs()
    constraints = sample_constraints(patterns, labels, Bounds(1.0, 10.0), rng=3)
    for constraint in constraints:
        expected = patterns[constraint.i] - patterns[constraint.j]
        assert np.array_equal(constraint.delta, expected)


def test_two_clusters_reach_every_pair(two_clusters):
    patterns, labels = two_clusters
    bounds = estimate_bounds(patterns, np.eye(2), rng=0)
    constraints = sample_constraints(patterns, labels, bounds, rng=0)

    assert sorted(constraints.keys) == [(0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3)]
    assert constraints[(0, 1)].sign == 1
    assert constraints[(2, 3)].sign == 1
    assert constraints[(0, 2)].sign == -1
    # The constraint bounds inherit lower < upper from the estimator.
    assert constraints[(0, 1)].bound < constraints[(0, 2)].bound


def test_labels_compare_case_insensitively():
    patterns = {0: np.array([0.0]), 1: np.array([1.0])}
    labels = {0: "RRLyr", 1: "rrlyr"}
    constraints = sample_constraints(patterns, labels, Bounds(0.5, 2.0), rng=0)
    assert len(constraints) == 1
    assert constraints[(0, 1)].sign == 1


def test_coincident_vectors_are_rejected():
    patterns = {
        0: np.array([1.0, 1.0]),
        1: np.array([1.0, 1.0]),
        2: np.array([3.0, 3.0]),
    }
    labels = {0: "A", 1: "B", 2: "B"}
    constraints = sample_constraints(patterns, labels, Bounds(1.0, 4.0), rng=4)

    assert (0, 1) not in constraints
    assert sorted(constraints.keys) == [(0, 2), (1, 2)]


def test_all_identical_patterns_yield_no_constraints():
    patterns = {idx: np.ones(2) for idx in range(4)}
    labels = {0: "A", 1: "A", 2: "B", 3: "B"}
    constraints = sample_constraints(patterns, labels, Bounds(1.0, 4.0), rng=0)
    assert len(constraints) == 0
    assert constraints.dim is None


def test_sampling_is_deterministic_for_a_seed():
    patterns, labels = _blobs(seed=9)
    first = sample_constraints(patterns, labels, Bounds(1.0, 10.0), const_factor=1, rng=77)
    second = sample_constraints(patterns, labels, Bounds(1.0, 10.0), const_factor=1, rng=77)
    assert first.keys == second.keys


def test_input_validation():
    with pytest.raises(InsufficientConstraintsError):
        sample_constraints({0: np.zeros(2)}, {0: "A"}, Bounds(1.0, 2.0))
    with pytest.raises(KeyError):
        sample_constraints(
            {0: np.zeros(2), 1: np.ones(2)}, {0: "A"}, Bounds(1.0, 2.0)
        )
    with pytest.raises(ValueError):
        sample_constraints(
            {0: np.zeros(2), 1: np.ones(2)},
            {0: "A", 1: "B"},
            Bounds(1.0, 2.0),
            const_factor=0,
        )
