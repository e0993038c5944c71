"""
Cluster quality metrics: silhouette profile, variance explained, and a sweep
over a range of k for comparing trade-offs.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import silhouette_samples, calinski_harabasz_score, davies_bouldin_score

from housing_pipeline.clustering import (
    ClusteringResult,
    kmeans,
    DEFAULT_SEED,
    DEFAULT_RESTARTS,
    DEFAULT_MAX_ITER,
)
from housing_pipeline.errors import InsufficientDataError

logger = logging.getLogger(__name__)

STAGE = "evaluation"

SWEEP_COLUMNS = ["k", "mean_silhouette", "variance_explained", "within_ss",
                 "calinski_harabasz", "davies_bouldin"]


@dataclass(frozen=True)
class ClusterEvaluation:
    per_row_silhouette: np.ndarray
    mean_silhouette: float
    variance_explained: float
    per_cluster_silhouette: pd.Series
    cluster_sizes: pd.Series
    calinski_harabasz: Optional[float] = None
    davies_bouldin: Optional[float] = None

    def as_dict(self) -> Dict:
        return {
            "per_row_silhouette": self.per_row_silhouette,
            "mean_silhouette": self.mean_silhouette,
            "variance_explained": self.variance_explained,
            "per_cluster_silhouette": self.per_cluster_silhouette.to_dict(),
            "cluster_sizes": self.cluster_sizes.to_dict(),
            "calinski_harabasz": self.calinski_harabasz,
            "davies_bouldin": self.davies_bouldin,
        }


def _as_matrix(projected_table) -> np.ndarray:
    if isinstance(projected_table, pd.DataFrame):
        return projected_table.to_numpy(dtype=float)
    X = np.asarray(projected_table, dtype=float)
    return X.reshape(-1, 1) if X.ndim == 1 else X


def _has_structure(labels: np.ndarray) -> bool:
    """Silhouette-type indices need 2 <= clusters <= n_samples - 1."""
    n_labels = len(np.unique(labels))
    return 2 <= n_labels <= len(labels) - 1


def silhouette_profile(projected_table, labels) -> np.ndarray:
    """
    Per-row silhouette scores.

    Rows in a singleton cluster score 0. When only one cluster exists overall,
    or every row is its own cluster, every row scores 0.
    """
    X = _as_matrix(projected_table)
    labels = np.asarray(labels)

    if X.shape[0] != len(labels):
        raise InsufficientDataError(
            f"{len(labels)} labels for {X.shape[0]} rows", STAGE, X.shape)

    if not _has_structure(labels):
        return np.zeros(len(labels))

    return silhouette_samples(X, labels, metric="euclidean")


def evaluate(projected_table, clustering_result: ClusteringResult) -> ClusterEvaluation:
    """Silhouette profile and variance explained for one clustering run"""
    X = _as_matrix(projected_table)
    labels = np.asarray(clustering_result.labels)

    scores = silhouette_profile(X, labels)
    mean_score = float(scores.mean()) if len(scores) else 0.0

    ids = pd.Index(range(clustering_result.k), name="cluster")
    sizes = pd.Series(clustering_result.cluster_sizes, index=ids, name="size")
    per_cluster = (
        pd.Series(scores, name="silhouette")
        .groupby(labels).mean()
        .reindex(ids)
    )

    calinski = davies = None
    if _has_structure(labels):
        calinski = float(calinski_harabasz_score(X, labels))
        davies = float(davies_bouldin_score(X, labels))

    return ClusterEvaluation(
        per_row_silhouette=scores,
        mean_silhouette=mean_score,
        variance_explained=clustering_result.variance_explained,
        per_cluster_silhouette=per_cluster,
        cluster_sizes=sizes,
        calinski_harabasz=calinski,
        davies_bouldin=davies,
    )


@dataclass(frozen=True)
class KSweep:
    table: pd.DataFrame
    results: Dict[int, Tuple[ClusteringResult, ClusterEvaluation]] = field(default_factory=dict)

    def best_k(self, metric: str = "mean_silhouette") -> int:
        """k with the best value of metric (lowest for davies_bouldin)"""
        if metric not in self.table.columns or metric == "k":
            raise ValueError(f"Unknown sweep metric: {metric}")

        scores = self.table.set_index("k")[metric].astype(float)
        if scores.isna().all():
            raise ValueError(f"Metric {metric} is undefined for every k in the sweep")

        if metric in ("davies_bouldin", "within_ss"):
            return int(scores.idxmin())
        return int(scores.idxmax())


def sweep_k(projected_table, k_values: Iterable[int], seed: int = DEFAULT_SEED,
            n_restarts: int = DEFAULT_RESTARTS, max_iter: int = DEFAULT_MAX_ITER) -> KSweep:
    """Cluster and evaluate independently for every k in k_values"""
    X = _as_matrix(projected_table)

    rows = []
    results = {}
    for k in k_values:
        clustering = kmeans(X, k, seed=seed, n_restarts=n_restarts, max_iter=max_iter)
        evaluation = evaluate(X, clustering)
        results[int(k)] = (clustering, evaluation)

        rows.append({
            "k": int(k),
            "mean_silhouette": evaluation.mean_silhouette,
            "variance_explained": evaluation.variance_explained,
            "within_ss": clustering.within_ss,
            "calinski_harabasz": evaluation.calinski_harabasz,
            "davies_bouldin": evaluation.davies_bouldin,
        })
        logger.info("k=%d: silhouette=%.4f, variance explained=%.4f",
                    k, evaluation.mean_silhouette, evaluation.variance_explained)

    table = pd.DataFrame(rows, columns=SWEEP_COLUMNS)
    return KSweep(table=table, results=results)


def cluster_profiles(table : pd.DataFrame, labels) -> pd.DataFrame:
    """Per-cluster mean/std/min/max of each feature, plus cluster size"""
    labels = np.asarray(labels)
    if len(table) != len(labels):
        raise InsufficientDataError(
            f"{len(labels)} labels for {len(table)} rows", STAGE, table.shape)

    df_with_clusters = table.copy()
    df_with_clusters["Cluster"] = labels

    grouped = df_with_clusters.groupby("Cluster")
    profiles = grouped.agg(["mean", "std", "min", "max"])
    profiles[("size", "count")] = grouped.size()
    return profiles
