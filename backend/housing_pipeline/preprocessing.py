import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from housing_pipeline.errors import DataQualityError

logger = logging.getLogger(__name__)

STAGE = "cleaning"


@dataclass(frozen=True)
class ScalingParams:
    """Per-column mean and population std used for z-score normalization."""
    means: pd.Series
    stds: pd.Series

    @property
    def zero_variance_columns(self) -> List[str]:
        return self.stds.index[self.stds == 0].tolist()

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"mean": self.means, "std": self.stds})


@dataclass(frozen=True)
class CleaningReport:
    input_shape: Tuple[int, int]
    dropped_columns: List[str]
    rows_dropped_missing: int
    rows_dropped_outliers: int
    bounds: pd.DataFrame
    zero_variance_columns: List[str] = field(default_factory=list)

    @property
    def rows_dropped(self) -> int:
        return self.rows_dropped_missing + self.rows_dropped_outliers

    @property
    def rows_retained(self) -> int:
        return self.input_shape[0] - self.rows_dropped

    def as_dict(self) -> Dict:
        return {
            "input_shape": self.input_shape,
            "dropped_columns": list(self.dropped_columns),
            "rows_dropped_missing": self.rows_dropped_missing,
            "rows_dropped_outliers": self.rows_dropped_outliers,
            "rows_retained": self.rows_retained,
            "bounds": self.bounds.to_dict(orient="index"),
            "zero_variance_columns": list(self.zero_variance_columns),
        }


@dataclass(frozen=True)
class CleaningResult:
    normalized: pd.DataFrame
    scaling_params: ScalingParams
    filtered: pd.DataFrame
    report: CleaningReport


def select_numeric_columns(df : pd.DataFrame) -> Tuple[pd.DataFrame, List[str]]:
    """Keep numeric columns only; return the kept table and the dropped names."""
    numeric = df.select_dtypes(include=[np.number])
    dropped = [col for col in df.columns if col not in numeric.columns]

    if numeric.shape[1] == 0:
        raise DataQualityError("input has no numeric columns", STAGE, df.shape)

    if dropped:
        logger.info("Dropped %d non-numeric column(s): %s", len(dropped), dropped)

    return numeric.copy(), dropped


def drop_missing_rows(df : pd.DataFrame) -> Tuple[pd.DataFrame, int]:
    """Row-wise deletion of any row holding NaN, None or +/-inf."""
    missing = df.isna() | np.isinf(df.to_numpy(dtype=float, na_value=np.nan))
    keep = ~missing.any(axis=1)

    out = df.loc[keep].copy()
    dropped = int(len(df) - len(out))
    logger.info("Removed %d row(s) with missing values", dropped)

    if out.empty:
        raise DataQualityError("every row has at least one missing value", STAGE, df.shape)

    return out, dropped


def iqr_bounds(df : pd.DataFrame, multiplier: float = 1.5) -> pd.DataFrame:
    """Per-column [Q1 - m*IQR, Q3 + m*IQR] bounds, indexed by column name."""
    if multiplier < 0:
        raise ValueError(f"outlier multiplier must be >= 0, got {multiplier}")

    Q1 = df.quantile(0.25)
    Q3 = df.quantile(0.75)
    IQR = Q3 - Q1

    return pd.DataFrame({
        "Q1": Q1,
        "Q3": Q3,
        "lower": Q1 - multiplier * IQR,
        "upper": Q3 + multiplier * IQR,
    })


def remove_outliers(df : pd.DataFrame, multiplier: float = 1.5) -> Tuple[pd.DataFrame, pd.DataFrame, int]:
    """
    Conjunctive IQR filter: a row survives only if every column is in bounds.

    Returns the filtered table, the bounds used and the number of dropped rows.
    """
    bounds = iqr_bounds(df, multiplier)

    inside = df.ge(bounds["lower"], axis=1) & df.le(bounds["upper"], axis=1)
    keep = inside.all(axis=1)

    for col in df.columns:
        n_out = int((~inside[col]).sum())
        if n_out:
            logger.debug("%s: %d value(s) outside [%.4g, %.4g]",
                         col, n_out, bounds.at[col, "lower"], bounds.at[col, "upper"])

    out = df.loc[keep].copy()
    dropped = int(len(df) - len(out))
    logger.info("Removed %d outlier row(s) using IQR x %.2f", dropped, multiplier)

    if out.empty:
        raise DataQualityError("every row was removed by the IQR outlier filter", STAGE, df.shape)

    return out, bounds, dropped


def zscore_normalize(df : pd.DataFrame) -> Tuple[pd.DataFrame, ScalingParams]:
    """
    Rescale every column to zero mean and unit population variance.

    Constant columns would divide by zero; they are set to 0.0 everywhere and
    keep std = 0 in the returned parameters.
    """
    scaler = StandardScaler()
    scaled = scaler.fit_transform(df.to_numpy(dtype=float))

    means = pd.Series(scaler.mean_, index=df.columns, name="mean")
    stds = pd.Series(np.sqrt(scaler.var_), index=df.columns, name="std")

    # Variance at rounding-noise level relative to the mean counts as constant
    noise = (len(df) * np.finfo(float).eps * np.abs(scaler.mean_)) ** 2
    constant = (df.nunique(dropna=False) <= 1) | pd.Series(scaler.var_ <= noise, index=df.columns)
    if constant.any():
        constant_cols = constant.index[constant].tolist()
        logger.warning("Zero-variance column(s) %s normalized to 0", constant_cols)
        scaled[:, constant.to_numpy()] = 0.0
        stds[constant] = 0.0

    normalized = pd.DataFrame(scaled, index=df.index, columns=df.columns)
    return normalized, ScalingParams(means=means, stds=stds)


def clean_with_report(raw_table : pd.DataFrame, outlier_multiplier: float = 1.5) -> CleaningResult:
    """Run the four cleaning steps and keep every intermediate figure."""
    if outlier_multiplier < 0:
        raise ValueError(f"outlier multiplier must be >= 0, got {outlier_multiplier}")

    input_shape = tuple(raw_table.shape)

    numeric, dropped_columns = select_numeric_columns(raw_table)
    complete, dropped_missing = drop_missing_rows(numeric)
    filtered, bounds, dropped_outliers = remove_outliers(complete, outlier_multiplier)
    normalized, params = zscore_normalize(filtered)

    report = CleaningReport(
        input_shape=input_shape,
        dropped_columns=dropped_columns,
        rows_dropped_missing=dropped_missing,
        rows_dropped_outliers=dropped_outliers,
        bounds=bounds,
        zero_variance_columns=params.zero_variance_columns,
    )

    logger.info("Cleaning kept %d of %d rows and %d column(s)",
                len(normalized), input_shape[0], normalized.shape[1])

    return CleaningResult(normalized=normalized, scaling_params=params,
                          filtered=filtered, report=report)


def clean(raw_table : pd.DataFrame, outlier_multiplier: float = 1.5) -> Tuple[pd.DataFrame, ScalingParams]:
    result = clean_with_report(raw_table, outlier_multiplier)
    return result.normalized, result.scaling_params
