# =====================================================================
# COMMAND LINE ENTRY POINT
# =====================================================================
import argparse
import logging
import os
import sys
from dataclasses import replace
from typing import Optional, Sequence

import pandas as pd

from housing_pipeline.config import PipelineConfig, ENV_PREFIX
from housing_pipeline.errors import PipelineError
from housing_pipeline.full_pipeline import run_complete_pipeline
from housing_pipeline.reporting import print_summary, build_figures, save_figures

logger = logging.getLogger(__name__)


def read_file(path):

    if (os.path.exists(path) is True):
        file_name_ext = os.path.splitext(path)[1].lower()

        if (file_name_ext == ".csv"):
            df = pd.read_csv(path)

        elif (file_name_ext in [".txt", ".tsv"]):
            df = pd.read_csv(path, sep="\t")

        else:
            raise ValueError(f"File format of {file_name_ext} not supported. "
            "Only csv, txt and tsv are supported")

    else:
        raise FileNotFoundError(f"Path incorrect, no such file {path}")

    return df


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Housing PCA + K-means cluster analysis")
    parser.add_argument("data", help="Path to the housing table (.csv, .tsv or .txt)")

    parser.add_argument("--k", type=int, default=None,
                        help="Fixed number of clusters (default: best silhouette over the k range)")
    parser.add_argument("--k-min", type=int, default=None, help="Smallest k in the sweep")
    parser.add_argument("--k-max", type=int, default=None, help="Largest k in the sweep")

    components = parser.add_mutually_exclusive_group()
    components.add_argument("--n-components", type=int, default=None,
                            help="Fixed number of principal components to keep")
    components.add_argument("--variance-threshold", type=float, default=None,
                            help="Keep components until this cumulative variance is reached")

    parser.add_argument("--outlier-multiplier", type=float, default=None, help="IQR multiplier")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for K-means")
    parser.add_argument("--n-restarts", type=int, default=None, help="K-means restarts per k")
    parser.add_argument("--max-iter", type=int, default=None, help="K-means iteration cap")
    parser.add_argument("--plots-dir", default=None, help="Directory to save PNG plots into")
    parser.add_argument(
        "--log-level",
        default=os.getenv(ENV_PREFIX + "LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Environment defaults, overridden by whatever was passed on the command line"""
    config = PipelineConfig.from_env()

    overrides = {
        "k": args.k,
        "n_components": args.n_components,
        "variance_threshold": args.variance_threshold,
        "outlier_multiplier": args.outlier_multiplier,
        "seed": args.seed,
        "n_restarts": args.n_restarts,
        "max_iter": args.max_iter,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}

    if args.k_min is not None or args.k_max is not None:
        k_min = args.k_min if args.k_min is not None else config.k_range[0]
        k_max = args.k_max if args.k_max is not None else config.k_range[1]
        overrides["k_range"] = (k_min, k_max)

    return replace(config, **overrides)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        config = build_config(args)
        df = read_file(args.data)
    except (ValueError, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    logger.info("Loaded %s: %d rows × %d columns", args.data, df.shape[0], df.shape[1])

    try:
        result = run_complete_pipeline(df, config)
    except (PipelineError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print_summary(result)

    if args.plots_dir:
        paths = save_figures(build_figures(result), args.plots_dir)
        for path in paths:
            print(f"Saved plot → {path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
