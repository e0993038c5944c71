"""
Configuration for the housing clustering pipeline
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple
import os


HOUSING_NUMERIC_COLUMNS: List[str] = [
    "longitude",
    "latitude",
    "housing_median_age",
    "total_rooms",
    "total_bedrooms",
    "population",
    "households",
    "median_income",
    "median_house_value",
]

ENV_PREFIX = "HOUSING_PIPELINE_"


@dataclass(frozen=True)
class PipelineConfig:
    """Run configuration: the only external contract of the pipeline"""

    # Cleaning
    outlier_multiplier: float = 1.5

    # PCA: a fixed component count wins over the variance threshold
    variance_threshold: float = 0.90
    n_components: Optional[int] = None

    # K-means: a fixed k wins over choosing the best k from k_range
    k: Optional[int] = None
    k_range: Tuple[int, int] = (2, 8)
    seed: int = 42
    n_restarts: int = 10
    max_iter: int = 300

    def __post_init__(self):
        if self.outlier_multiplier < 0:
            raise ValueError(f"outlier_multiplier must be >= 0, got {self.outlier_multiplier}")

        if not 0 < self.variance_threshold <= 1:
            raise ValueError(f"variance_threshold must be in (0, 1], got {self.variance_threshold}")

        if self.n_components is not None and self.n_components < 1:
            raise ValueError(f"n_components must be >= 1, got {self.n_components}")

        if self.k is not None and self.k < 1:
            raise ValueError(f"k must be >= 1, got {self.k}")

        if len(self.k_range) != 2:
            raise ValueError(f"k_range must be a (min, max) pair, got {self.k_range}")
        k_min, k_max = self.k_range
        if k_min < 1 or k_max < k_min:
            raise ValueError(f"k_range must satisfy 1 <= min <= max, got {self.k_range}")

        if self.n_restarts < 1:
            raise ValueError(f"n_restarts must be >= 1, got {self.n_restarts}")

        if self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")

    @property
    def k_values(self) -> List[int]:
        """Inclusive list of k values covered by k_range"""
        return list(range(self.k_range[0], self.k_range[1] + 1))

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create configuration from environment variables"""
        n_components = os.getenv(ENV_PREFIX + "N_COMPONENTS")
        k = os.getenv(ENV_PREFIX + "K")
        return cls(
            outlier_multiplier=float(os.getenv(ENV_PREFIX + "OUTLIER_MULTIPLIER", "1.5")),
            variance_threshold=float(os.getenv(ENV_PREFIX + "VARIANCE_THRESHOLD", "0.90")),
            n_components=int(n_components) if n_components else None,
            k=int(k) if k else None,
            k_range=(
                int(os.getenv(ENV_PREFIX + "K_MIN", "2")),
                int(os.getenv(ENV_PREFIX + "K_MAX", "8")),
            ),
            seed=int(os.getenv(ENV_PREFIX + "SEED", "42")),
            n_restarts=int(os.getenv(ENV_PREFIX + "N_RESTARTS", "10")),
            max_iter=int(os.getenv(ENV_PREFIX + "MAX_ITER", "300")),
        )
