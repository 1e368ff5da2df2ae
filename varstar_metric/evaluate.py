"""Evaluation helpers for learned metrics."""

from __future__ import annotations

from typing import Dict, Mapping

import numpy as np
from numpy.typing import ArrayLike
from sklearn import metrics

from .distance import MetricDistance
from .io import pattern_matrix


def _group_summary(prefix: str, values: np.ndarray) -> Dict[str, float]:
    if values.size == 0:
        nan = float("nan")
        return {
            f"{prefix}_count": 0.0,
            f"{prefix}_mean": nan,
            f"{prefix}_min": nan,
            f"{prefix}_max": nan,
        }
    return {
        f"{prefix}_count": float(values.size),
        f"{prefix}_mean": float(np.mean(values)),
        f"{prefix}_min": float(np.min(values)),
        f"{prefix}_max": float(np.max(values)),
    }


def distance_report(distances: np.ndarray, same_class: np.ndarray) -> Dict[str, float]:
    """Summarize pairwise distances split by whether the pair shares a class.

    Parameters
    ----------
    distances:
        1-D array of pairwise distances.
    same_class:
        Boolean array aligned with ``distances``; ``True`` marks a pair whose
        two patterns carry the same label.
    """

    if distances.ndim != 1:
        raise ValueError("distances must be a 1-D array")
    if same_class.shape != distances.shape:
        raise ValueError("same_class and distances must have the same shape")

    same = distances[same_class]
    different = distances[~same_class]

    report: Dict[str, float] = {"pairs": float(distances.size)}
    report.update(_group_summary("same", same))
    report.update(_group_summary("different", different))

    if same.size and different.size and report["same_mean"] > 0:
        report["separation_ratio"] = report["different_mean"] / report["same_mean"]
    else:
        report["separation_ratio"] = float("nan")

    # Ranking scores are undefined when only one kind of pair is present.
    if not (same.size and different.size):
        report["roc_auc"] = float("nan")
        report["average_precision"] = float("nan")
        return report

    # Closer pairs should be the same-class ones, so score with -distance.
    labels = same_class.astype(np.int64)
    report["roc_auc"] = float(metrics.roc_auc_score(labels, -distances))
    report["average_precision"] = float(
        metrics.average_precision_score(labels, -distances)
    )
    return report


def pair_separation(
    patterns: Mapping[int, ArrayLike],
    labels: Mapping[int, str],
    metric: ArrayLike,
) -> Dict[str, Dict[str, float]]:
    """Compare same- vs different-class pair distances under ``metric`` and identity."""

    ids, data = pattern_matrix(patterns)
    if len(ids) < 2:
        raise ValueError("Need at least two patterns to evaluate pair separation")

    label_array = np.array([str(labels[key]).casefold() for key in ids], dtype=object)
    rows, cols = np.triu_indices(len(ids), k=1)
    same_class = (label_array[rows] == label_array[cols]).astype(bool)

    learned = MetricDistance(metric).pairwise(data)[rows, cols]
    baseline = MetricDistance(np.eye(data.shape[1])).pairwise(data)[rows, cols]

    return {
        "learned": distance_report(learned, same_class),
        "identity": distance_report(baseline, same_class),
    }
