import os
from typing import Dict, List

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

from housing_pipeline.reduction import PCABasis
from housing_pipeline.clustering import ClusteringResult
from housing_pipeline.evaluation import KSweep


# =====================================================================
# TEXT SUMMARY
# =====================================================================

def print_summary(result):
    """Print comprehensive summary of a PipelineResult"""
    report = result.cleaning.report
    basis = result.pca.basis

    print("\n" + "=" * 80)
    print("HOUSING CLUSTER ANALYSIS - SUMMARY")
    print("=" * 80)

    print("\n📊 DATASET INFORMATION:")
    print(f"  Input shape: {report.input_shape[0]} rows × {report.input_shape[1]} columns")
    if report.dropped_columns:
        print(f"  Non-numeric columns dropped: {report.dropped_columns}")
    print(f"  Rows dropped (missing values): {report.rows_dropped_missing}")
    print(f"  Rows dropped (IQR outliers): {report.rows_dropped_outliers}")
    print(f"  Rows retained: {report.rows_retained}")
    if report.zero_variance_columns:
        print(f"  Zero-variance columns (normalized to 0): {report.zero_variance_columns}")

    print("\n  Outlier bounds:")
    print(report.bounds[["lower", "upper"]].round(4).to_string())

    print("\n📈 DIMENSIONALITY REDUCTION:")
    for i, (var, cum_var) in enumerate(zip(basis.variance_ratios, basis.cumulative_variance)):
        print(f"  PC{i+1}: {var:.4f} (Cumulative: {cum_var:.4f})")
    print(f"  Components kept: {result.n_components} "
          f"({basis.cumulative_variance[result.n_components - 1]*100:.2f}% of variance)")

    if result.sweep is not None:
        print("\n🔍 K SWEEP:")
        print("  " + "-" * 76)
        print(f"  {'k':<6} {'Silhouette':<14} {'Var. explained':<16} {'Calinski-H':<14} {'Davies-B':<14}")
        print("  " + "-" * 76)
        for row in result.sweep.table.itertuples(index=False):
            cal = f"{row.calinski_harabasz:.2f}" if pd.notna(row.calinski_harabasz) else "N/A"
            dav = f"{row.davies_bouldin:.4f}" if pd.notna(row.davies_bouldin) else "N/A"
            print(f"  {row.k:<6} {row.mean_silhouette:<14.4f} {row.variance_explained:<16.4f} {cal:<14} {dav:<14}")
        print("  " + "-" * 76)

    evaluation = result.evaluation
    clustering = result.clustering
    print(f"\n✓ K-Means clustering with k={result.k}")
    print(f"  Silhouette Score: {evaluation.mean_silhouette:.4f}")
    print(f"  Variance explained: {evaluation.variance_explained:.4f}")
    print(f"  Converged: {clustering.converged} after {clustering.n_iter} iteration(s)")

    print(f"\n  Cluster Distribution:")
    n_rows = len(clustering.labels)
    for cluster, count in evaluation.cluster_sizes.items():
        print(f"    Cluster {cluster}: {count} samples ({count/n_rows*100:.1f}%)")

    print("\n✅ PIPELINE COMPLETED SUCCESSFULLY!")
    print("=" * 80)


# =====================================================================
# PLOTS
# =====================================================================

def plot_explained_variance(basis: PCABasis, threshold: float = None):
    """Scree plot and cumulative explained variance"""
    n = basis.n_components
    positions = range(1, n + 1)

    fig, axes = plt.subplots(1, 2, figsize=(14, 5))

    axes[0].bar(positions, basis.variance_ratios, color='steelblue', edgecolor='black')
    axes[0].set_xlabel('Principal Component')
    axes[0].set_ylabel('Explained Variance Ratio')
    axes[0].set_title('Scree Plot - Individual Variance', fontsize=12, fontweight='bold')
    axes[0].grid(True, alpha=0.3, axis='y')

    axes[1].plot(positions, basis.cumulative_variance, marker='o', color='crimson',
                 linewidth=2, markersize=8)
    if threshold is not None:
        axes[1].axhline(y=threshold, color='green', linestyle='--',
                        label=f'{threshold:.0%} Variance')
        axes[1].legend()
    axes[1].set_xlabel('Number of Components')
    axes[1].set_ylabel('Cumulative Explained Variance')
    axes[1].set_title('Cumulative Explained Variance', fontsize=12, fontweight='bold')
    axes[1].grid(True, alpha=0.3)

    fig.tight_layout()
    return fig


def plot_k_sweep(sweep: KSweep, chosen_k: int = None):
    """Silhouette, variance explained, elbow and Davies-Bouldin against k"""
    table = sweep.table
    panels = [
        ('mean_silhouette', 'Silhouette Score (Higher is Better)', 'go-'),
        ('variance_explained', 'Variance Explained', 'bo-'),
        ('within_ss', 'Elbow Method (Within-cluster SS)', 'mo-'),
        ('davies_bouldin', 'Davies-Bouldin Score (Lower is Better)', 'ro-'),
    ]

    fig, axes = plt.subplots(2, 2, figsize=(15, 10))
    fig.suptitle('Cluster Evaluation Metrics', fontsize=16, fontweight='bold')

    for ax, (column, title, style) in zip(axes.flatten(), panels):
        ax.plot(table['k'], table[column].astype(float), style, linewidth=2, markersize=8)
        ax.set_xlabel('Number of Clusters (k)', fontsize=11)
        ax.set_title(title, fontsize=12, fontweight='bold')
        ax.grid(True, alpha=0.3)
        if chosen_k is not None:
            ax.axvline(x=chosen_k, color='r', linestyle='--', label=f'Chosen k={chosen_k}')
            ax.legend()

    fig.tight_layout()
    return fig


def plot_clusters_2d(projected: pd.DataFrame, clustering: ClusteringResult):
    """Scatter of the first two components coloured by cluster, with centroids"""
    X = projected.to_numpy(dtype=float)
    centroids = clustering.centroids
    if X.shape[1] == 1:
        X = np.hstack([X, np.zeros((X.shape[0], 1))])
        centroids = np.hstack([centroids, np.zeros((centroids.shape[0], 1))])

    fig, ax = plt.subplots(figsize=(10, 7))
    for c in np.unique(clustering.labels):
        idx = clustering.labels == c
        ax.scatter(X[idx, 0], X[idx, 1], s=12, alpha=0.6, label=f"Cluster {c}")

    ax.scatter(centroids[:, 0], centroids[:, 1], c="k", s=120,
               marker="x", linewidths=2, label="Centroid")

    columns = list(projected.columns)
    ax.set_xlabel(columns[0])
    ax.set_ylabel(columns[1] if len(columns) > 1 else "")
    ax.set_title(f'K-Means Clusters (k={clustering.k})', fontsize=14, fontweight='bold')
    ax.legend(bbox_to_anchor=(1.04, 1), loc="upper left", fontsize=8)
    ax.grid(True, alpha=0.3)

    fig.tight_layout()
    return fig


def plot_cluster_profiles(profiles: pd.DataFrame):
    """Heatmap of per-cluster feature means, standardized across clusters"""
    means = profiles.xs('mean', axis=1, level=1)
    spread = means.std(ddof=0).replace(0, 1)
    standardized = (means - means.mean()) / spread

    fig, ax = plt.subplots(figsize=(12, max(4, 0.6 * len(means))))
    sns.heatmap(standardized, annot=means.round(2), fmt='', cmap='coolwarm',
                center=0, linewidths=1, cbar_kws={"shrink": 0.8}, ax=ax)
    ax.set_title('Cluster Profiles - Feature Means', fontsize=14, fontweight='bold')
    ax.set_ylabel('Cluster')

    fig.tight_layout()
    return fig


def build_figures(result) -> Dict[str, plt.Figure]:
    figures = {
        "explained_variance": plot_explained_variance(
            result.pca.basis,
            threshold=None if result.config.n_components else result.config.variance_threshold,
        ),
        "clusters_2d": plot_clusters_2d(result.projected, result.clustering),
        "cluster_profiles": plot_cluster_profiles(result.profiles),
    }
    if result.sweep is not None:
        figures["k_sweep"] = plot_k_sweep(result.sweep, chosen_k=result.k)
    return figures


def save_figures(figures: Dict[str, plt.Figure], output_dir: str) -> List[str]:
    """Write every figure as PNG and close it"""
    os.makedirs(output_dir, exist_ok=True)

    paths = []
    for name, fig in figures.items():
        path = os.path.join(output_dir, f"{name}.png")
        fig.savefig(path, dpi=150, bbox_inches="tight")
        plt.close(fig)
        paths.append(path)
    return paths
