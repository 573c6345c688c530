"""Math helpers: categorical draws, posterior modes, label alignment. No engine imports."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import linear_sum_assignment
from scipy.special import logsumexp


def log_normalize(log_weights: NDArray[np.float64]) -> tuple[NDArray[np.float64], NDArray[np.bool_]]:
    """Row-wise softmax of log weights.

    Rows with no finite mass (all -inf, NaN, or an overflowing total) become
    uniform. Returns (probabilities, degenerate_row_mask).
    """
    lw = np.atleast_2d(np.asarray(log_weights, dtype=np.float64))
    lw = np.where(np.isnan(lw), -np.inf, lw)
    with np.errstate(invalid="ignore", divide="ignore"):
        total = logsumexp(lw, axis=1, keepdims=True)
    degenerate = ~np.isfinite(total[:, 0])

    probs = np.empty_like(lw)
    ok = ~degenerate
    if np.any(ok):
        probs[ok] = np.exp(lw[ok] - total[ok])
    if np.any(degenerate):
        probs[degenerate] = 1.0 / lw.shape[1]
    return probs, degenerate


def sample_categorical(
    log_weights: NDArray[np.float64],
    rng: np.random.Generator,
) -> tuple[NDArray[np.int64], int]:
    """One categorical draw per row of ``log_weights`` (inverse-CDF on a single uniform).

    Returns (indices, number_of_rows_that_fell_back_to_uniform).
    """
    probs, degenerate = log_normalize(log_weights)
    cum = np.cumsum(probs, axis=1)
    u = rng.random(probs.shape[0])[:, None] * cum[:, -1:]
    idx = np.sum(u >= cum, axis=1)
    idx = np.minimum(idx, probs.shape[1] - 1)
    return idx.astype(np.int64), int(np.sum(degenerate))


def posterior_mode(samples: NDArray[np.int64], n_options: int) -> NDArray[np.int64]:
    """Most frequent value per column of an (n_samples, m) integer array.

    Ties resolve to the lowest value.
    """
    samples = np.asarray(samples, dtype=np.int64)
    counts = np.zeros((n_options, samples.shape[1]), dtype=np.int64)
    for row in samples:
        counts[row, np.arange(samples.shape[1])] += 1
    return np.argmax(counts, axis=0).astype(np.int64)


def align_labels(
    labels: NDArray[np.int64],
    reference: NDArray[np.int64],
    n_clusters: int,
) -> NDArray[np.int64]:
    """Relabel ``labels`` to maximise agreement with ``reference`` (Hungarian matching)."""
    overlap = np.zeros((n_clusters, n_clusters), dtype=np.int64)
    np.add.at(overlap, (labels, reference), 1)
    row_ind, col_ind = linear_sum_assignment(-overlap)
    mapping = np.arange(n_clusters)
    mapping[row_ind] = col_ind
    return mapping[labels]
