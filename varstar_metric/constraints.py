"""Pairwise similarity / dissimilarity constraint generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Tuple

import numpy as np
from numpy.typing import ArrayLike

from .bounds import Bounds
from .errors import InsufficientConstraintsError
from .io import pattern_matrix
from .utils import IndexStream, is_approx_zero, resolve_rng

logger = logging.getLogger(__name__)

PairKey = Tuple[int, int]


@dataclass(frozen=True, slots=True, eq=False)
class Constraint:
    """A labeled pattern pair with its target bound.

    ``sign`` is ``+1`` for a same-class pair (pull below ``bound``) and ``-1``
    for a different-class pair (push beyond ``bound``). ``delta`` is
    ``x_i - x_j`` for the ordered key ``(i, j)``.
    """

    i: int
    j: int
    sign: int
    bound: float
    delta: np.ndarray

    @property
    def key(self) -> PairKey:
        return (self.i, self.j)


@dataclass(slots=True)
class ConstraintSet:
    """Constraints keyed by id pair, iterated in acceptance order."""

    keys: List[PairKey] = field(default_factory=list)
    constraints: Dict[PairKey, Constraint] = field(default_factory=dict)

    def add(self, constraint: Constraint) -> bool:
        key = constraint.key
        if key in self.constraints:
            return False
        self.keys.append(key)
        self.constraints[key] = constraint
        return True

    def __contains__(self, key: object) -> bool:
        return key in self.constraints

    def __getitem__(self, key: PairKey) -> Constraint:
        return self.constraints[key]

    def __len__(self) -> int:
        return len(self.keys)

    def __iter__(self) -> Iterator[Constraint]:
        for key in self.keys:
            yield self.constraints[key]

    @property
    def dim(self) -> int | None:
        if not self.keys:
            return None
        return int(self.constraints[self.keys[0]].delta.shape[0])


def _same_class(label_i: str, label_j: str) -> bool:
    return str(label_i).casefold() == str(label_j).casefold()


def sample_constraints(
    patterns: Mapping[int, ArrayLike],
    labels: Mapping[int, str],
    bounds: Bounds,
    *,
    const_factor: int = 20,
    max_attempts: int = 20,
    rng: np.random.Generator | int | None = None,
) -> ConstraintSet:
    """Draw unique labeled pairs and attach sign and bound to each.

    The target count is ``const_factor * N * (N - 1)``. Each target gets at
    most ``max_attempts`` draws; identical ids, coincident vectors and keys
    already present are rejected. Falling short of the target is not an
    error, so the result holds at most ``N * (N - 1) / 2`` constraints.
    """

    if const_factor <= 0:
        raise ValueError("const_factor must be positive")
    if max_attempts <= 0:
        raise ValueError("max_attempts must be positive")

    ids, data = pattern_matrix(patterns)
    num_patterns = len(ids)
    if num_patterns < 2:
        raise InsufficientConstraintsError("Need at least two patterns to build constraints")

    missing = [key for key in ids if key not in labels]
    if missing:
        raise KeyError(f"No label for pattern id(s) {missing[:5]}")

    target = const_factor * num_patterns * (num_patterns - 1)
    max_unique = num_patterns * (num_patterns - 1) // 2

    generator = resolve_rng(rng)
    stream = IndexStream(generator, num_patterns)
    result = ConstraintSet()

    for _ in range(target):
        if len(result) >= max_unique:
            break
        for _attempt in range(max_attempts):
            a = next(stream)
            b = next(stream)
            if a == b:
                continue

            id_a, id_b = ids[a], ids[b]
            if id_a < id_b:
                i, j, row_i, row_j = id_a, id_b, a, b
            else:
                i, j, row_i, row_j = id_b, id_a, b, a
            delta = data[row_i] - data[row_j]
            delta.setflags(write=False)

            if is_approx_zero(float(np.linalg.norm(delta))):
                continue
            if (i, j) in result:
                continue

            if _same_class(labels[i], labels[j]):
                constraint = Constraint(i=i, j=j, sign=1, bound=bounds.lower, delta=delta)
            else:
                constraint = Constraint(i=i, j=j, sign=-1, bound=bounds.upper, delta=delta)
            result.add(constraint)
            break

    if len(result) < target:
        logger.debug(
            "Sampled %d of %d requested constraints (%d unique pairs possible)",
            len(result),
            target,
            max_unique,
        )
    logger.info("Generated %d constraints from %d patterns", len(result), num_patterns)
    return result
