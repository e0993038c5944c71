"""
K-means (Lloyd's algorithm) with seeded restarts.

Every restart draws from its own child seed spawned off the caller's seed, so a
run is reproducible and restarts are independent of each other.

Written on numpy/scipy rather than sklearn.cluster.KMeans: k is checked against
the number of distinct rows, empty clusters are re-seeded onto the farthest
point under a hard cap, and the initial centroids are plain seeded draws from
the data.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd
from scipy.spatial.distance import cdist

from housing_pipeline.errors import (
    InsufficientDataError,
    InvalidClusterCountError,
    NumericDegeneracyError,
)

logger = logging.getLogger(__name__)

STAGE = "kmeans"

DEFAULT_SEED = 42
DEFAULT_RESTARTS = 10
DEFAULT_MAX_ITER = 300
DEFAULT_MAX_RESEEDS = 10


@dataclass(frozen=True)
class ClusteringResult:
    labels: np.ndarray
    centroids: np.ndarray
    within_ss: float
    total_ss: float
    n_iter: int
    converged: bool
    seed: int
    n_restarts: int

    @property
    def k(self) -> int:
        return self.centroids.shape[0]

    @property
    def variance_explained(self) -> float:
        """1 - within_ss / total_ss; 1.0 when the data has no spread at all."""
        if self.total_ss == 0:
            return 1.0
        return 1.0 - self.within_ss / self.total_ss

    @property
    def cluster_sizes(self) -> np.ndarray:
        return np.bincount(self.labels, minlength=self.k)

    @property
    def n_nonempty(self) -> int:
        return int(np.count_nonzero(self.cluster_sizes))


def _as_matrix(projected_table) -> np.ndarray:
    if isinstance(projected_table, pd.DataFrame):
        X = projected_table.to_numpy(dtype=float)
    else:
        X = np.asarray(projected_table, dtype=float)

    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2 or X.shape[0] == 0:
        raise InsufficientDataError("clustering needs a non-empty 2-D table", STAGE, X.shape)
    if not np.isfinite(X).all():
        raise InsufficientDataError("input contains non-finite values", STAGE, X.shape)
    return X


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr)
    arr.setflags(write=False)
    return arr


def _reseed_empty(X: np.ndarray, centroids: np.ndarray, empty: np.ndarray,
                  sq_dist: np.ndarray) -> np.ndarray:
    """Move each empty centroid onto the point farthest from its nearest centroid."""
    nearest = sq_dist.min(axis=1)
    order = np.argsort(-nearest, kind="stable")
    for j, idx in zip(empty, order):
        centroids[j] = X[idx]
    return centroids


def _init_random(distinct: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    return distinct[rng.choice(len(distinct), size=k, replace=False)].copy()


def _init_kmeans_plus_plus(distinct: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """
    K-means++ seeding over the distinct points.

    The first centroid is uniform; each next one is drawn with probability
    proportional to its squared distance to the nearest chosen centroid, so a
    point is never picked twice.
    """
    n = len(distinct)
    centroids = np.empty((k, distinct.shape[1]))
    centroids[0] = distinct[rng.integers(n)]

    closest = cdist(distinct, centroids[:1], metric="sqeuclidean").ravel()
    for j in range(1, k):
        idx = rng.choice(n, p=closest / closest.sum())
        centroids[j] = distinct[idx]
        closest = np.minimum(closest, cdist(distinct, centroids[j:j + 1], metric="sqeuclidean").ravel())

    return centroids


INITIALIZERS = {
    "k-means++": _init_kmeans_plus_plus,
    "random": _init_random,
}


def _lloyd(X: np.ndarray, k: int, rng: np.random.Generator, max_iter: int,
           max_reseeds: int, distinct: np.ndarray,
           init: str) -> Tuple[np.ndarray, np.ndarray, float, int, bool]:
    """Single restart: returns labels, centroids, within_ss, n_iter, converged."""
    centroids = INITIALIZERS[init](distinct, k, rng)

    labels = None
    converged = False
    reseeds = 0
    n_iter = 0

    for n_iter in range(1, max_iter + 1):
        sq_dist = cdist(X, centroids, metric="sqeuclidean")
        new_labels = sq_dist.argmin(axis=1)

        if labels is not None and np.array_equal(new_labels, labels):
            converged = True
            break
        labels = new_labels

        counts = np.bincount(labels, minlength=k)
        empty = np.flatnonzero(counts == 0)

        for j in np.flatnonzero(counts):
            centroids[j] = X[labels == j].mean(axis=0)

        if len(empty):
            reseeds += 1
            if reseeds > max_reseeds:
                raise NumericDegeneracyError(
                    f"empty clusters kept reappearing after {max_reseeds} re-seeds (k={k})",
                    STAGE, X.shape)
            logger.warning("Re-seeding %d empty cluster(s) at iteration %d", len(empty), n_iter)
            centroids = _reseed_empty(X, centroids, empty, sq_dist)
            # Reseeded centroids invalidate the current assignment
            labels = None

    if not converged:
        logger.warning("K-means did not converge within %d iterations (k=%d)", max_iter, k)
        labels = cdist(X, centroids, metric="sqeuclidean").argmin(axis=1)

    within_ss = float(((X - centroids[labels]) ** 2).sum())
    return labels, centroids, within_ss, n_iter, converged


def kmeans(projected_table, k: int, seed: int = DEFAULT_SEED, n_restarts: int = DEFAULT_RESTARTS,
           max_iter: int = DEFAULT_MAX_ITER, max_reseeds: int = DEFAULT_MAX_RESEEDS,
           init: str = "random") -> ClusteringResult:
    """
    Partition rows into k clusters, keeping the best of n_restarts runs.

    Parameters:
    -----------
    projected_table : pandas.DataFrame or array-like of shape (n_samples, n_features)
        Data to cluster, typically the truncated PCA projection.
    k : int
        Number of clusters, 1 <= k <= number of distinct rows.
    seed : int
        Seed for the initialization sequence.
    n_restarts : int
        Independent random initializations; lowest within_ss wins.
    max_iter : int
        Iteration cap for each restart.
    max_reseeds : int
        Empty-cluster re-seeds tolerated per restart.
    init : str
        "random" (default, k distinct rows drawn uniformly) or "k-means++";
        both draw distinct data points.
    """
    X = _as_matrix(projected_table)

    if isinstance(k, (bool, np.bool_)) or not isinstance(k, (int, np.integer)):
        raise InvalidClusterCountError(f"k must be an integer, got {k!r}", STAGE, X.shape)
    if k < 1:
        raise InvalidClusterCountError(f"k must be >= 1, got {k}", STAGE, X.shape)

    distinct = np.unique(X, axis=0)
    if k > len(distinct):
        raise InvalidClusterCountError(
            f"k={k} exceeds the number of distinct points ({len(distinct)})", STAGE, X.shape)

    if n_restarts < 1:
        raise ValueError(f"n_restarts must be >= 1, got {n_restarts}")
    if max_iter < 1:
        raise ValueError(f"max_iter must be >= 1, got {max_iter}")
    if init not in INITIALIZERS:
        raise ValueError(f"Unknown init {init!r}; expected one of {sorted(INITIALIZERS)}")

    total_ss = float(((X - X.mean(axis=0)) ** 2).sum())

    best = None
    children = np.random.SeedSequence(seed).spawn(n_restarts)
    for restart, child in enumerate(children):
        rng = np.random.default_rng(child)
        run = _lloyd(X, int(k), rng, max_iter, max_reseeds, distinct, init)
        logger.debug("restart %d: within_ss=%.6g iterations=%d converged=%s",
                     restart, run[2], run[3], run[4])
        if best is None or run[2] < best[2]:
            best = run

    labels, centroids, within_ss, n_iter, converged = best

    result = ClusteringResult(
        labels=_readonly(labels.astype(int)),
        centroids=_readonly(centroids),
        within_ss=within_ss,
        total_ss=total_ss,
        n_iter=n_iter,
        converged=converged,
        seed=seed,
        n_restarts=n_restarts,
    )

    logger.info("K-means k=%d: within_ss=%.6g, variance explained=%.4f",
                k, within_ss, result.variance_explained)

    return result
