"""
Principal Component Analysis over the normalized housing table.

The basis is the full set of components; truncation to the leading n is a
separate step so callers can pick n by a fixed count or by how much variance
they want to keep.

Note: the sign of each component is not unique (v and -v are both valid).
scikit-learn flips signs deterministically, but nothing downstream should rely
on a particular sign.
"""

import logging
from dataclasses import dataclass
from typing import List, NamedTuple, Optional

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

from housing_pipeline.errors import InsufficientDataError

logger = logging.getLogger(__name__)

STAGE = "pca"

# Relative tolerance for treating the total variance as zero
VARIANCE_EPSILON = 1e-12


@dataclass(frozen=True)
class PCABasis:
    """Orthonormal components (rows) ordered by descending explained variance"""
    components: np.ndarray
    explained_variance: np.ndarray
    variance_ratios: np.ndarray
    mean: np.ndarray
    feature_names: List[str]

    @property
    def n_components(self) -> int:
        return self.components.shape[0]

    @property
    def cumulative_variance(self) -> np.ndarray:
        return np.cumsum(self.variance_ratios)

    @property
    def component_names(self) -> List[str]:
        return [f"PC{i + 1}" for i in range(self.n_components)]


class PCAResult(NamedTuple):
    basis: PCABasis
    variance_ratios: np.ndarray
    projected: pd.DataFrame


def _readonly(values) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


def fit_pca(normalized_table : pd.DataFrame) -> PCAResult:
    """
    Fit the full principal component basis and project every row onto it.

    Parameters:
    -----------
    normalized_table : pandas.DataFrame
        Numeric table; centered internally, so pre-centering is not required.

    Returns:
    --------
    PCAResult(basis, variance_ratios, projected) where projected holds one
    column per component (PC1..PCm) and keeps the input index.
    """
    n_rows, n_cols = normalized_table.shape

    if n_cols < 2:
        raise InsufficientDataError("PCA needs at least 2 columns", STAGE, normalized_table.shape)
    if n_rows < 2:
        raise InsufficientDataError("PCA needs at least 2 rows", STAGE, normalized_table.shape)

    X = normalized_table.to_numpy(dtype=float)
    if not np.isfinite(X).all():
        raise InsufficientDataError("input contains non-finite values", STAGE, X.shape)

    total_variance = X.var(axis=0, ddof=1).sum()
    scale = max(1.0, float(np.abs(X).max()) ** 2)
    if total_variance <= VARIANCE_EPSILON * scale:
        raise InsufficientDataError("input has no variance to decompose", STAGE, X.shape)

    pca = PCA(n_components=None, svd_solver="full")
    projected = pca.fit_transform(X)

    eigenvalues = np.clip(pca.explained_variance_, 0.0, None)
    ratios = eigenvalues / eigenvalues.sum()

    basis = PCABasis(
        components=_readonly(pca.components_),
        explained_variance=_readonly(eigenvalues),
        variance_ratios=_readonly(ratios),
        mean=_readonly(pca.mean_),
        feature_names=list(normalized_table.columns),
    )

    projected_df = pd.DataFrame(projected, index=normalized_table.index,
                                columns=basis.component_names)

    logger.info("PCA fitted %d component(s); leading ratios %s",
                basis.n_components, np.round(ratios[:4], 4).tolist())

    return PCAResult(basis=basis, variance_ratios=basis.variance_ratios, projected=projected_df)


def components_for_variance(variance_ratios, threshold: float) -> int:
    """Smallest n whose cumulative explained variance reaches threshold."""
    if not 0 < threshold <= 1:
        raise ValueError(f"variance threshold must be in (0, 1], got {threshold}")

    cumulative = np.cumsum(np.asarray(variance_ratios, dtype=float))
    # Tolerance so a threshold of 1.0 is reachable despite rounding
    reached = np.nonzero(cumulative >= threshold - 1e-12)[0]
    if len(reached) == 0:
        return len(cumulative)
    return int(reached[0]) + 1


def select_n_components(variance_ratios, n_components: Optional[int] = None,
                        variance_threshold: Optional[float] = None) -> int:
    """Resolve the retained component count; a fixed count wins over a threshold."""
    available = len(variance_ratios)

    if n_components is not None:
        if not 1 <= n_components <= available:
            raise ValueError(f"n_components must be in [1, {available}], got {n_components}")
        return int(n_components)

    if variance_threshold is not None:
        return components_for_variance(variance_ratios, variance_threshold)

    return available


def truncate(projected_full : pd.DataFrame, basis: PCABasis, n: int) -> pd.DataFrame:
    """Keep the leading n components of an already projected table"""
    if not 1 <= n <= basis.n_components:
        raise ValueError(f"n must be in [1, {basis.n_components}], got {n}")

    return projected_full.iloc[:, :n].copy()


def reconstruct(projected : pd.DataFrame, basis: PCABasis) -> pd.DataFrame:
    """Map projected coordinates back into the normalized feature space"""
    n = projected.shape[1]
    values = projected.to_numpy(dtype=float) @ basis.components[:n] + basis.mean
    return pd.DataFrame(values, index=projected.index, columns=basis.feature_names)


def loadings(basis: PCABasis, n: Optional[int] = None) -> pd.DataFrame:
    """Feature-by-component loading table (contribution of each feature)"""
    n = basis.n_components if n is None else n
    return pd.DataFrame(
        basis.components[:n].T,
        index=basis.feature_names,
        columns=basis.component_names[:n],
    )
