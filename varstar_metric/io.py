"""Data loading and validation utilities."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np
from numpy.typing import ArrayLike

if TYPE_CHECKING:  # pragma: no cover
    from .itml import ITMLResult

Patterns = Dict[int, np.ndarray]
Labels = Dict[int, str]


_HEADER_NAMES = {"id", "index", "label", "class"}


class DatasetNotFoundError(FileNotFoundError):
    """Raised when required dataset resources are absent."""


def pattern_matrix(patterns: Mapping[int, ArrayLike]) -> Tuple[List[int], np.ndarray]:
    """Return pattern ids in insertion order and the stacked ``N x D`` matrix."""

    ids = [int(key) for key in patterns]
    if not ids:
        return ids, np.empty((0, 0), dtype=np.float64)
    rows = [np.asarray(patterns[key], dtype=np.float64) for key in patterns]
    dims = {row.shape for row in rows}
    if len(dims) != 1 or rows[0].ndim != 1:
        raise ValueError("All patterns must be 1-D vectors of the same dimension")
    return ids, np.vstack(rows)


def patterns_from_arrays(
    x: ArrayLike, y: Sequence[Any], ids: Optional[Sequence[int]] = None
) -> Tuple[Patterns, Labels]:
    """Build the id-keyed pattern and label maps from row-aligned arrays."""

    data = np.asarray(x, dtype=np.float64)
    if data.ndim != 2:
        raise ValueError("Patterns must be a 2-D array")
    labels = list(y)
    if len(labels) != data.shape[0]:
        raise ValueError("Number of labels must match number of patterns")
    if ids is None:
        keys = list(range(data.shape[0]))
    else:
        keys = [int(v) for v in ids]
        if len(keys) != data.shape[0]:
            raise ValueError("Number of ids must match number of patterns")
        if len(set(keys)) != len(keys):
            raise ValueError("Pattern ids must be unique")

    patterns = {key: data[row].copy() for row, key in enumerate(keys)}
    label_map = {key: str(labels[row]) for row, key in enumerate(keys)}
    return patterns, label_map


def _load_label_csv(path: Path, ids: Sequence[int]) -> List[str]:
    resolved = path.expanduser().resolve()
    if not resolved.exists():
        raise DatasetNotFoundError(f"Labels file not found: {resolved}")

    with resolved.open("r", encoding="utf-8", newline="") as handle:
        first = next(csv.reader(handle), [])
        handle.seek(0)
        has_header = any(cell.strip().lower() in _HEADER_NAMES for cell in first)

        if not has_header:
            rows = [row for row in csv.reader(handle) if row]
            if len(rows) != len(ids):
                raise ValueError(
                    "Label file without headers must supply one row per pattern"
                )
            return [row[-1].strip() for row in rows]

        reader = csv.DictReader(handle)
        fieldnames = list(reader.fieldnames or [])
        idx_candidates = [
            name for name in fieldnames if name and name.lower() in {"id", "index"}
        ]
        label_candidates = [
            name for name in fieldnames if name and name.lower() in {"label", "class"}
        ]
        idx_field = idx_candidates[0] if idx_candidates else fieldnames[0]
        label_field = label_candidates[0] if label_candidates else fieldnames[-1]

        mapping: Dict[int, str] = {}
        for row in reader:
            try:
                mapping[int(row[idx_field])] = str(row[label_field]).strip()
            except (KeyError, TypeError, ValueError):
                continue

    missing = [key for key in ids if key not in mapping]
    if missing:
        raise ValueError(
            f"Label CSV does not cover {len(missing)} pattern id(s), e.g. {missing[:5]}"
        )
    return [mapping[key] for key in ids]


def load_dataset(
    path: str | Path, labels_path: str | Path | None = None
) -> Tuple[Patterns, Labels]:
    """Load patterns and labels from ``.npz`` archives or ``.npy`` + CSV."""

    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise DatasetNotFoundError(f"Dataset file not found: {resolved}")

    suffix = resolved.suffix.lower()
    ids: Optional[List[int]] = None
    labels: Optional[List[str]] = None

    if suffix == ".npz":
        with np.load(resolved, allow_pickle=False) as archive:
            key = "patterns" if "patterns" in archive else "X"
            if key not in archive:
                raise ValueError("Dataset archive must contain a 'patterns' (or 'X') array")
            data = np.asarray(archive[key], dtype=np.float64)
            if "ids" in archive:
                ids = [int(v) for v in archive["ids"]]
            for label_key in ("labels", "y"):
                if label_key in archive:
                    labels = [str(v) for v in archive[label_key]]
                    break
    elif suffix == ".npy":
        data = np.asarray(np.load(resolved, allow_pickle=False), dtype=np.float64)
    else:
        raise ValueError(f"Unsupported dataset format: {resolved.suffix}")

    if data.ndim != 2:
        raise ValueError("Patterns must be a 2-D array")

    if labels_path is not None:
        keys = ids if ids is not None else list(range(data.shape[0]))
        labels = _load_label_csv(Path(labels_path), keys)
    if labels is None:
        raise ValueError(
            "No labels found; provide a 'labels' array in the archive or a labels CSV"
        )

    return patterns_from_arrays(data, labels, ids)


def ensure_directory(path: str | Path) -> Path:
    """Create a directory if it does not already exist."""
    resolved = Path(path).expanduser().resolve()
    resolved.mkdir(parents=True, exist_ok=True)
    return resolved


def save_npz(data: Dict[str, Any], path: str | Path) -> None:
    """Persist arrays in NumPy NPZ format."""
    resolved = Path(path).expanduser().resolve()
    np.savez_compressed(resolved, **data)


def save_metric(path: str | Path, result: "ITMLResult") -> Path:
    """Persist a learned metric together with its run summary."""

    resolved = Path(path).expanduser().resolve()
    if resolved.suffix != ".npz":
        resolved = resolved.with_name(resolved.name + ".npz")
    ensure_directory(resolved.parent)
    keys = np.asarray(result.constraints.keys, dtype=np.int64).reshape(-1, 2)
    save_npz(
        {
            "metric": result.metric,
            "lower_bound": np.float64(result.bounds.lower),
            "upper_bound": np.float64(result.bounds.upper),
            "iterations": np.int64(result.projection.iterations),
            "constraint_keys": keys,
        },
        resolved,
    )
    return resolved


def load_metric(path: str | Path) -> np.ndarray:
    """Load the metric matrix written by :func:`save_metric`."""

    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise DatasetNotFoundError(f"Metric file not found: {resolved}")
    with np.load(resolved, allow_pickle=False) as archive:
        if "metric" not in archive:
            raise KeyError(f"Metric file missing 'metric' array: {resolved}")
        metric = np.asarray(archive["metric"], dtype=np.float64)
    if metric.ndim != 2 or metric.shape[0] != metric.shape[1]:
        raise ValueError("Stored metric must be a square matrix")
    return metric
