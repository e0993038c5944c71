"""
Unit tests for the K-means cluster engine
"""

import logging

import numpy as np
import pandas as pd
import pytest

from housing_pipeline.clustering import INITIALIZERS, kmeans, _reseed_empty
from housing_pipeline.errors import (
    InsufficientDataError,
    InvalidClusterCountError,
    NumericDegeneracyError,
)

from conftest import BLOB_CENTERS


def far_from_data(distinct, k, rng):
    """Initializer leaving the last centroid with no members on the first pass"""
    centroids = distinct[:k].copy()
    centroids[-1] = 1e6
    return centroids


class TestKMeans:
    """Test cases for seeded Lloyd's iteration with restarts"""

    def test_recovers_blob_centers(self, blobs):
        """Test three separated blobs give three clusters near the true centers"""
        result = kmeans(blobs, 3, seed=0, n_restarts=20)

        assert result.k == 3
        assert result.n_nonempty == 3
        assert result.converged
        for center in BLOB_CENTERS:
            nearest = np.linalg.norm(result.centroids - center, axis=1).min()
            assert nearest < 0.3

    def test_each_blob_is_one_cluster(self, blobs):
        """Test every blob maps to exactly one cluster id"""
        result = kmeans(blobs, 3, seed=1, n_restarts=20)

        per_blob = result.labels.reshape(3, 60)
        for row in per_blob:
            assert len(np.unique(row)) == 1
        assert len(np.unique(per_blob[:, 0])) == 3

    def test_same_seed_same_result(self, blobs):
        """Test identical input and seed give an identical result"""
        first = kmeans(blobs, 4, seed=11, n_restarts=3)
        second = kmeans(blobs, 4, seed=11, n_restarts=3)

        np.testing.assert_array_equal(first.labels, second.labels)
        np.testing.assert_array_equal(first.centroids, second.centroids)
        assert first.within_ss == second.within_ss
        assert first.total_ss == second.total_ss
        assert first.n_iter == second.n_iter

    def test_more_restarts_never_worse(self, blobs):
        """Test the best restart is kept"""
        single = kmeans(blobs, 5, seed=3, n_restarts=1)
        many = kmeans(blobs, 5, seed=3, n_restarts=10)

        assert many.within_ss <= single.within_ss + 1e-9

    def test_sums_of_squares(self, blobs):
        """Test within_ss and total_ss match their definitions"""
        result = kmeans(blobs, 3, seed=0)
        X = blobs.to_numpy()

        expected_within = ((X - result.centroids[result.labels]) ** 2).sum()
        expected_total = ((X - X.mean(axis=0)) ** 2).sum()

        assert result.within_ss == pytest.approx(expected_within)
        assert result.total_ss == pytest.approx(expected_total)
        assert result.variance_explained == pytest.approx(1 - expected_within / expected_total)

    def test_centroids_are_cluster_means(self, blobs):
        """Test converged centroids are the means of their members"""
        result = kmeans(blobs, 3, seed=0)
        X = blobs.to_numpy()

        for j in range(3):
            np.testing.assert_allclose(result.centroids[j], X[result.labels == j].mean(axis=0))

    def test_k_equals_one(self, blobs):
        """Test k=1 puts every row in one cluster at the global mean"""
        result = kmeans(blobs, 1, seed=0)

        assert set(result.labels) == {0}
        np.testing.assert_allclose(result.centroids[0], blobs.mean().to_numpy())
        assert result.within_ss == pytest.approx(result.total_ss)
        assert result.variance_explained == pytest.approx(0.0, abs=1e-12)

    def test_k_equals_distinct_points(self):
        """Test one cluster per distinct point leaves no within-cluster spread"""
        X = np.array([[0.0, 0.0], [0.0, 0.0], [1.0, 0.0], [0.0, 5.0], [3.0, 3.0], [3.0, 3.0]])

        result = kmeans(X, 4, seed=2, n_restarts=2)

        assert result.n_nonempty == 4
        assert result.within_ss == pytest.approx(0.0, abs=1e-12)
        assert result.variance_explained == pytest.approx(1.0)
        assert result.labels[0] == result.labels[1]
        assert result.labels[4] == result.labels[5]

    def test_k_above_distinct_points(self):
        """Test asking for more clusters than distinct points fails"""
        X = np.array([[0.0, 0.0], [0.0, 0.0], [1.0, 1.0]])

        with pytest.raises(InvalidClusterCountError) as excinfo:
            kmeans(X, 3)

        assert excinfo.value.stage == "kmeans"
        assert "distinct" in str(excinfo.value)

    @pytest.mark.parametrize("k", [0, -2, 2.5, True])
    def test_invalid_k(self, blobs, k):
        """Test non-positive or non-integer k is rejected"""
        with pytest.raises(InvalidClusterCountError):
            kmeans(blobs, k)

    def test_invalid_restarts(self, blobs):
        """Test restart and iteration counts must be positive"""
        with pytest.raises(ValueError):
            kmeans(blobs, 2, n_restarts=0)
        with pytest.raises(ValueError):
            kmeans(blobs, 2, max_iter=0)

    def test_non_finite_input(self):
        """Test NaN input is refused rather than clustered"""
        X = np.array([[0.0, 1.0], [np.nan, 2.0]])

        with pytest.raises(InsufficientDataError):
            kmeans(X, 1)

    def test_iteration_cap(self, blobs):
        """Test the iteration cap bounds the run"""
        result = kmeans(blobs, 6, seed=0, n_restarts=1, max_iter=1)

        assert result.n_iter == 1
        assert not result.converged
        assert len(result.labels) == len(blobs)

    def test_result_is_immutable(self, blobs):
        """Test result arrays cannot be modified in place"""
        result = kmeans(blobs, 2, seed=0)

        with pytest.raises(ValueError):
            result.labels[0] = 1
        with pytest.raises(ValueError):
            result.centroids[0, 0] = 0.0

    def test_default_init_is_random(self, blobs):
        """Test the default initialization is the seeded random draw"""
        default = kmeans(blobs, 3, seed=9, n_restarts=4)
        random = kmeans(blobs, 3, seed=9, n_restarts=4, init="random")

        np.testing.assert_array_equal(default.labels, random.labels)
        np.testing.assert_array_equal(default.centroids, random.centroids)

    def test_kmeans_plus_plus_is_reproducible(self, blobs):
        """Test k-means++ seeding is seeded too"""
        first = kmeans(blobs, 3, seed=9, n_restarts=4, init="k-means++")
        second = kmeans(blobs, 3, seed=9, n_restarts=4, init="k-means++")

        np.testing.assert_array_equal(first.labels, second.labels)
        assert first.n_nonempty == 3

    def test_unknown_init(self, blobs):
        """Test an unknown initializer name is rejected"""
        with pytest.raises(ValueError):
            kmeans(blobs, 3, init="farthest")

    def test_accepts_arrays_and_frames(self, blobs):
        """Test a DataFrame and its values cluster identically"""
        from_frame = kmeans(blobs, 3, seed=5)
        from_array = kmeans(blobs.to_numpy(), 3, seed=5)

        np.testing.assert_array_equal(from_frame.labels, from_array.labels)


class TestEmptyClusterReseed:
    """Test cases for re-seeding empty clusters"""

    def test_reseed_moves_to_farthest_points(self):
        """Test empty centroids land on the points farthest from any centroid"""
        X = np.array([[0.0], [1.0], [10.0], [20.0]])
        centroids = np.array([[0.5], [100.0], [200.0]])
        sq_dist = (X - centroids.T) ** 2

        reseeded = _reseed_empty(X, centroids.copy(), np.array([1, 2]), sq_dist)

        assert reseeded[0, 0] == 0.5
        assert reseeded[1, 0] == 20.0
        assert reseeded[2, 0] == 10.0

    def test_heavily_duplicated_data_fills_every_cluster(self):
        """Test clustering heavily duplicated data still fills every cluster"""
        X = np.vstack([np.zeros((50, 2)), np.ones((3, 2)), np.full((2, 2), 5.0)])

        result = kmeans(pd.DataFrame(X), 3, seed=4, n_restarts=4)

        assert result.n_nonempty == 3
        assert result.within_ss == pytest.approx(0.0, abs=1e-12)

    def test_empty_cluster_is_reseeded(self, blobs, monkeypatch, caplog):
        """Test a centroid far from every point is moved back onto the data"""
        monkeypatch.setitem(INITIALIZERS, "far", far_from_data)

        with caplog.at_level(logging.WARNING, logger="housing_pipeline.clustering"):
            result = kmeans(blobs, 3, seed=0, n_restarts=1, init="far")

        assert "Re-seeding" in caplog.text
        assert result.n_nonempty == 3
        assert result.converged
        assert np.abs(result.centroids).max() < 100

    def test_reseed_cap_raises(self, blobs, monkeypatch):
        """Test exceeding the re-seed cap aborts with NumericDegeneracyError"""
        monkeypatch.setitem(INITIALIZERS, "far", far_from_data)

        with pytest.raises(NumericDegeneracyError) as excinfo:
            kmeans(blobs, 3, seed=0, n_restarts=1, max_reseeds=0, init="far")

        assert excinfo.value.stage == "kmeans"
