"""Pytest configuration for the variable-star metric learning project."""

from __future__ import annotations

import os
from pathlib import Path
import sys
from typing import Dict, Iterator, Tuple

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(scope="session")
def varstar_test_data() -> Iterator[Path]:
    """Provide the root path to a real labeled feature dataset.

    Tests skip automatically when the ``VARSTAR_TEST_DATA`` environment
    variable is not configured or points at a missing location.
    """

    data_root = os.getenv("VARSTAR_TEST_DATA")
    if not data_root:
        pytest.skip(
            "VARSTAR_TEST_DATA is not set; real dataset required for this test",
            allow_module_level=True,
        )
    path = Path(data_root).expanduser()
    if not path.exists():
        pytest.skip(
            f"VARSTAR_TEST_DATA path does not exist: {path}",
            allow_module_level=True,
        )
    yield path


@pytest.fixture()
def two_clusters() -> Tuple[Dict[int, np.ndarray], Dict[int, str]]:
    """Two tight, well separated clusters labeled ``A`` and ``B``."""

    patterns = {
        0: np.array([0.0, 0.0]),
        1: np.array([0.1, 0.1]),
        2: np.array([5.0, 5.0]),
        3: np.array([5.1, 5.1]),
    }
    labels = {0: "A", 1: "A", 2: "B", 3: "B"}
    return patterns, labels
