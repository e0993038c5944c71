import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from housing_pipeline.config import PipelineConfig
from housing_pipeline.preprocessing import CleaningResult, clean_with_report
from housing_pipeline.reduction import PCAResult, fit_pca, select_n_components, truncate
from housing_pipeline.clustering import ClusteringResult, kmeans
from housing_pipeline.evaluation import ClusterEvaluation, KSweep, sweep_k, evaluate, cluster_profiles

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    config: PipelineConfig
    cleaning: CleaningResult
    pca: PCAResult
    n_components: int
    projected: pd.DataFrame
    sweep: Optional[KSweep]
    k: int
    clustering: ClusteringResult
    evaluation: ClusterEvaluation
    profiles: pd.DataFrame


def run_complete_pipeline(df: pd.DataFrame, config: Optional[PipelineConfig] = None) -> PipelineResult:
    """
    clean -> outlier filter -> normalize -> PCA -> cluster -> evaluate.

    When config.k is None the k with the best mean silhouette over
    config.k_range is used; otherwise the sweep still runs for comparison,
    over the k_range values the data can support, unless that leaves only k.
    """
    config = config or PipelineConfig()

    # Step 1: Clean
    cleaning = clean_with_report(df, outlier_multiplier=config.outlier_multiplier)

    # Step 2: Reduce
    pca = fit_pca(cleaning.normalized)
    n_components = select_n_components(
        pca.variance_ratios,
        n_components=config.n_components,
        variance_threshold=config.variance_threshold,
    )
    projected = truncate(pca.projected, pca.basis, n_components)
    logger.info("Keeping %d component(s), %.2f%% of variance",
                n_components, 100 * pca.basis.cumulative_variance[n_components - 1])

    # Step 3: Sweep k and choose
    k_values = config.k_values
    if config.k is not None:
        # Comparison only: k values the data cannot support are skipped
        n_distinct = len(np.unique(projected.to_numpy(), axis=0))
        k_values = [value for value in k_values if value <= n_distinct]
        if len(k_values) < len(config.k_values):
            logger.info("Skipping sweep values above %d distinct rows", n_distinct)

    sweep = None
    if config.k is None or (k_values and k_values != [config.k]):
        sweep = sweep_k(projected, k_values, seed=config.seed,
                        n_restarts=config.n_restarts, max_iter=config.max_iter)

    if config.k is not None:
        k = config.k
    else:
        k = sweep.best_k("mean_silhouette")
        logger.info("Optimal number of clusters (best silhouette): %d", k)

    # Step 4: Final clustering and evaluation
    if sweep is not None and k in sweep.results:
        clustering, evaluation = sweep.results[k]
    else:
        clustering = kmeans(projected, k, seed=config.seed,
                            n_restarts=config.n_restarts, max_iter=config.max_iter)
        evaluation = evaluate(projected, clustering)

    profiles = cluster_profiles(cleaning.filtered, clustering.labels)

    return PipelineResult(
        config=config,
        cleaning=cleaning,
        pca=pca,
        n_components=n_components,
        projected=projected,
        sweep=sweep,
        k=k,
        clustering=clustering,
        evaluation=evaluation,
        profiles=profiles,
    )
