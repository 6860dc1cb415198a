"""Dynamic Time Warping Module

Tempo-invariant alignment of feature sequences. All variants share one
banded dynamic-programming core:

    cost[0, 0] = 0, every other cell starts at +inf
    cost[i, j] = step(local(i, j), predecessors)

A Sakoe-Chiba band restricts row ``i`` to columns
``floor(i * m / n) - w .. floor(i * m / n) + w`` with ``w`` the window raised to
at least the length ratio of the sequences; a window of 0 or less disables
it. Distances are normalized by ``n + m`` for every pattern.
"""

import logging
import numbers
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from pronunciation_engine.models.enums import StepPattern
from pronunciation_engine.models.results import DTWResult


logger = logging.getLogger(__name__)

DEFAULT_FORMANT_WEIGHTS = {'f1': 1.0, 'f2': 0.8, 'f3': 0.6}


class AlignmentError(ValueError):
    """Exception raised for sequences that cannot be aligned"""
    pass


def _band(i: int, n: int, m: int, window: int) -> Tuple[int, int]:
    """Inclusive 1-based column range of row ``i``

    The half-width never drops below the length ratio of the sequences, so
    neighbouring rows always overlap and the end cell stays reachable.
    """
    if window <= 0:
        return 1, m
    window = max(window, -(-m // n), -(-n // m))
    center = (i * m) // n
    return max(1, center - window), min(m, center + window)


def _check_lengths(seq1: Sequence, seq2: Sequence) -> Tuple[int, int]:
    n, m = len(seq1), len(seq2)
    if n == 0 or m == 0:
        raise AlignmentError(f"Cannot align empty sequences (lengths {n} and {m})")
    return n, m


def _numeric(seq, name: str) -> np.ndarray:
    values = np.asarray(seq, dtype=np.float64)
    if values.ndim != 1:
        raise AlignmentError(f"{name} must be one-dimensional, got shape {values.shape}")
    bad = np.nonzero(~np.isfinite(values))[0]
    if len(bad):
        raise AlignmentError(f"{name}[{bad[0]}] is not finite: {values[bad[0]]}")
    return values


def _accumulate(
    n: int,
    m: int,
    local: Callable[[int, int], float],
    window: int,
    pattern: StepPattern = StepPattern.SYMMETRIC1,
) -> np.ndarray:
    """Fill the (n+1, m+1) cumulative cost matrix

    Args:
        n: Length of the first sequence
        m: Length of the second sequence
        local: Local distance of elements (i-1, j-1) for 1-based cell (i, j)
        window: Band half-width (<= 0 for no band)
        pattern: Step pattern

    Returns:
        Cumulative cost matrix
    """
    cost = np.full((n + 1, m + 1), np.inf)
    cost[0, 0] = 0.0

    for i in range(1, n + 1):
        j_start, j_end = _band(i, n, m, window)
        prev_row = cost[i - 1]
        row = cost[i]
        for j in range(j_start, j_end + 1):
            d = local(i, j)
            if pattern is StepPattern.SYMMETRIC1:
                row[j] = d + min(prev_row[j], row[j - 1], prev_row[j - 1])
            elif pattern is StepPattern.SYMMETRIC2:
                row[j] = min(prev_row[j] + d, row[j - 1] + d, prev_row[j - 1] + 2 * d)
            else:
                skip = prev_row[j - 2] if j >= 2 else np.inf
                row[j] = d + min(prev_row[j], prev_row[j - 1], skip)

    return cost


def _result(cost: np.ndarray, n: int, m: int, keep_matrix: bool = True) -> DTWResult:
    distance = float(cost[n, m])
    return DTWResult(
        distance=distance,
        normalized_distance=distance / (n + m),
        cost_matrix=cost if keep_matrix else None,
    )


def _frame_value(frame: Any, key: str, name: str, index: int) -> float:
    if frame is None:
        raise AlignmentError(f"{name}[{index}] is None")

    if isinstance(frame, Mapping):
        if key not in frame:
            raise AlignmentError(f"{name}[{index}] is missing field '{key}'")
        value = frame[key]
    else:
        if not hasattr(frame, key):
            raise AlignmentError(f"{name}[{index}] is missing field '{key}'")
        value = getattr(frame, key)

    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not np.isfinite(value):
        raise AlignmentError(f"{name}[{index}] has invalid {key}: {value!r}")
    return float(value)


def _feature_matrix(seq: Sequence, keys: Sequence[str], name: str) -> np.ndarray:
    return np.array(
        [[_frame_value(frame, key, name, i) for key in keys] for i, frame in enumerate(seq)],
        dtype=np.float64,
    )


class DTW:
    """Dynamic time warping variants"""

    @staticmethod
    def compute_1d(seq1, seq2, window: int = 20) -> DTWResult:
        """Align two numeric sequences with absolute-difference local cost

        Raises:
            AlignmentError: If either sequence is empty
        """
        n, m = _check_lengths(seq1, seq2)
        a = _numeric(seq1, 'seq1')
        b = _numeric(seq2, 'seq2')
        local = np.abs(a[:, None] - b[None, :])
        cost = _accumulate(n, m, lambda i, j: local[i - 1, j - 1], window)
        return _result(cost, n, m)

    @staticmethod
    def compute_multi_dim(
        seq1: Sequence[Union[Mapping[str, float], Any]],
        seq2: Sequence[Union[Mapping[str, float], Any]],
        weights: Optional[Dict[str, float]] = None,
        window: int = 20,
    ) -> DTWResult:
        """Align frames of named components with weighted Euclidean distance

        Frames may be mappings or objects with attributes named after the
        weight keys (e.g. FormantFrame with f1/f2/f3).

        Raises:
            AlignmentError: If a sequence is empty or a frame is missing a
                component or holds a non-numeric value
        """
        weights = weights or DEFAULT_FORMANT_WEIGHTS
        n, m = _check_lengths(seq1, seq2)
        keys = list(weights)
        w = np.array([weights[k] for k in keys], dtype=np.float64)

        a = _feature_matrix(seq1, keys, 'seq1')
        b = _feature_matrix(seq2, keys, 'seq2')
        diff = (a[:, None, :] - b[None, :, :]) * w
        local = np.sqrt(np.sum(diff * diff, axis=2))

        cost = _accumulate(n, m, lambda i, j: local[i - 1, j - 1], window)
        result = _result(cost, n, m)
        logger.debug(
            f"Multi-dimensional DTW: n={n}, m={m}, distance={result.distance:.2f}, "
            f"normalized={result.normalized_distance:.4f}"
        )
        return result

    @staticmethod
    def compute_custom(seq1: Sequence, seq2: Sequence, distance_fn: Callable[[Any, Any], float],
                       window: int = 20) -> DTWResult:
        """Align arbitrary elements with a caller-supplied distance

        Raises:
            AlignmentError: If a sequence is empty or the distance function
                returns a negative or NaN value
        """
        n, m = _check_lengths(seq1, seq2)

        def local(i: int, j: int) -> float:
            d = float(distance_fn(seq1[i - 1], seq2[j - 1]))
            if np.isnan(d) or d < 0:
                raise AlignmentError(
                    f"Distance function returned {d} for seq1[{i - 1}], seq2[{j - 1}]"
                )
            return d

        cost = _accumulate(n, m, local, window)
        return _result(cost, n, m)

    @staticmethod
    def compute_with_step_pattern(seq1, seq2, step_pattern: Union[str, StepPattern] = 'symmetric1',
                                  window: int = 0) -> DTWResult:
        """Align numeric sequences with an alternative step pattern

        Args:
            seq1: First sequence
            seq2: Second sequence
            step_pattern: 'symmetric1', 'symmetric2' or 'asymmetric'
            window: Band half-width, unconstrained by default

        Raises:
            AlignmentError: If a sequence is empty or the pattern is unknown
        """
        try:
            pattern = StepPattern(step_pattern)
        except ValueError:
            raise AlignmentError(f"Unknown step pattern: {step_pattern!r}") from None

        n, m = _check_lengths(seq1, seq2)
        a = _numeric(seq1, 'seq1')
        b = _numeric(seq2, 'seq2')
        local = np.abs(a[:, None] - b[None, :])
        cost = _accumulate(n, m, lambda i, j: local[i - 1, j - 1], window, pattern)
        return _result(cost, n, m)

    @staticmethod
    def recover_path(cost_matrix: np.ndarray) -> List[Tuple[int, int]]:
        """Back-trace the optimal alignment of a symmetric cost matrix

        Ties prefer the diagonal step, then the step up, then the step left.

        Returns:
            0-based (i, j) element pairs from (0, 0) to (n-1, m-1)

        Raises:
            AlignmentError: If the matrix is empty or the end cell is unreachable
        """
        cost = np.asarray(cost_matrix, dtype=np.float64)
        if cost.ndim != 2 or cost.shape[0] < 2 or cost.shape[1] < 2:
            raise AlignmentError(f"Cost matrix has no cells to align: shape {cost.shape}")

        i, j = cost.shape[0] - 1, cost.shape[1] - 1
        if not np.isfinite(cost[i, j]):
            raise AlignmentError("No alignment path within the band")

        path = [(i - 1, j - 1)]
        while i > 1 or j > 1:
            if i == 1:
                j -= 1
            elif j == 1:
                i -= 1
            else:
                diagonal, up, left = cost[i - 1, j - 1], cost[i - 1, j], cost[i, j - 1]
                best = min(diagonal, up, left)
                if diagonal == best:
                    i, j = i - 1, j - 1
                elif up == best:
                    i -= 1
                else:
                    j -= 1
            path.append((i - 1, j - 1))

        path.reverse()
        return path
