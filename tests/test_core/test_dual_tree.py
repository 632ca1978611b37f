"""
Тесты модели KMeansDualTree: сценарии, ошибки, автомат состояний.
"""

import logging

import numpy as np
import pytest

from dualtree_kmeans.core import traversal
from dualtree_kmeans.core.base import TERMINAL_PHASES, Phase
from dualtree_kmeans.core.brute_force import KMeansBruteForce, brute_force_assign
from dualtree_kmeans.core.config import DualTreeConfig
from dualtree_kmeans.core.dual_tree import KMeansDualTree
from dualtree_kmeans.errors import (
    BoundViolationError,
    EmptyDatasetError,
    InvalidKError,
    NumericalDegeneracyWarning,
    TreeConstructionError,
)


class TestScenarios:
    """Сценарии из описания поведения."""

    @pytest.mark.parametrize("leaf_size", [1, 2, 20])
    def test_line_two_clusters(self, line_dataset, leaf_size):
        X, initial_centroids = line_dataset
        model = KMeansDualTree(
            n_clusters=2, n_iters=10, config=DualTreeConfig(leaf_size=leaf_size)
        )

        model.fit(X, initial_centroids)

        np.testing.assert_allclose(model.centroids, [[1.0], [11.0]])
        np.testing.assert_array_equal(model.labels, [0, 0, 0, 1, 1, 1])
        assert model.n_iters_actual <= 2
        assert model.converged
        assert model.phase == Phase.CONVERGED

    def test_far_centroid_keeps_position(self, line_dataset):
        X, _ = line_dataset
        initial_centroids = np.array([[0.0], [10.0], [100.0]])
        model = KMeansDualTree(
            n_clusters=3, n_iters=10, config=DualTreeConfig(leaf_size=2)
        )

        with pytest.warns(NumericalDegeneracyWarning):
            model.fit(X, initial_centroids)

        np.testing.assert_allclose(model.centroids, [[1.0], [11.0], [100.0]])
        assert not np.any(model.labels == 2)
        assert model.empty_clusters.degenerate == {2}

    def test_k_greater_than_points(self, line_dataset):
        X, _ = line_dataset
        model = KMeansDualTree(n_clusters=7, n_iters=10)

        with pytest.raises(InvalidKError):
            model.fit(X, np.zeros((7, 1)))

        assert model.phase_history == []
        assert model.history == []
        assert model.point_tree is None
        assert model.n_iters_actual == 0

    @pytest.mark.parametrize("k", [0, -1])
    def test_non_positive_k(self, line_dataset, k):
        X, _ = line_dataset
        model = KMeansDualTree(n_clusters=k)

        with pytest.raises(InvalidKError):
            model.fit(X, np.zeros((1, 1)))
        assert model.phase_history == []

    def test_empty_dataset(self):
        model = KMeansDualTree(n_clusters=1)

        with pytest.raises(EmptyDatasetError):
            model.fit(np.empty((0, 3)), np.zeros((1, 3)))

    def test_wrong_centroid_shape(self, line_dataset):
        X, _ = line_dataset
        model = KMeansDualTree(n_clusters=2)

        with pytest.raises(ValueError):
            model.fit(X, np.zeros((2, 3)))

    @pytest.mark.parametrize("bad", [np.nan, np.inf, -np.inf])
    def test_non_finite_points_rejected(self, bad):
        X = np.array([[0.0], [1.0], [bad], [10.0], [11.0], [12.0]])
        model = KMeansDualTree(n_clusters=2, n_iters=10)

        # Без ошибки запасной полный перебор вернул бы NaN-центроид
        with pytest.raises(ValueError, match="non-finite"):
            model.fit(X, np.array([[0.0], [10.0]]))

        assert model.phase_history == []
        assert not model.fallback_used

    def test_non_finite_centroids_rejected(self, line_dataset):
        X, _ = line_dataset
        model = KMeansDualTree(n_clusters=2, n_iters=10)

        with pytest.raises(ValueError, match="non-finite"):
            model.fit(X, np.array([[0.0], [np.nan]]))

        assert model.phase_history == []


class TestExactness:
    """Двухдеревное назначение совпадает с полным перебором на каждой итерации."""

    def test_every_iteration_matches_brute_force(self, medium_dataset):
        X, initial_centroids = medium_dataset
        dual = KMeansDualTree(n_clusters=3, n_iters=1, config=DualTreeConfig(leaf_size=4))
        brute = KMeansBruteForce(n_clusters=3, n_iters=1)

        centroids_dual = initial_centroids.copy()
        centroids_brute = initial_centroids.copy()
        for _ in range(8):
            dual.fit(X, centroids_dual)
            brute.fit(X, centroids_brute)
            np.testing.assert_array_equal(dual.labels, brute.labels)
            np.testing.assert_allclose(dual.centroids, brute.centroids, rtol=1e-10, atol=1e-10)
            centroids_dual = dual.centroids
            centroids_brute = brute.centroids

    def test_validation_mode_passes(self, random_problem):
        X, centroids = random_problem(400, 2, 9, seed=29)
        model = KMeansDualTree(
            n_clusters=9,
            n_iters=15,
            tol=0.0,
            config=DualTreeConfig(leaf_size=5, validate=True),
        )

        model.fit(X, centroids)

        assert len(model.history) == model.n_iters_actual
        for stats in model.history:
            assert stats.pairs_covered == stats.total_pairs

    def test_validation_detects_corruption(self, blobs_dataset, monkeypatch):
        X, centers = blobs_dataset
        original = traversal.DualTreeKMeansRules.traverse

        def corrupted(self):
            stats = original(self)
            self.best_cluster[:] = (self.best_cluster + 1) % self.n_clusters
            return stats

        monkeypatch.setattr(traversal.DualTreeKMeansRules, "traverse", corrupted)
        model = KMeansDualTree(
            n_clusters=3,
            config=DualTreeConfig(leaf_size=10, validate=True, static_pruning=False),
        )

        with pytest.raises(BoundViolationError):
            model.fit(X, centers)

    def test_static_pruning_does_not_change_result(self, blobs_dataset):
        X, centers = blobs_dataset
        initial_centroids = centers + np.array([[1.0, -1.0], [0.5, 0.5], [-1.0, 0.0]])

        with_static = KMeansDualTree(
            n_clusters=3, n_iters=10, tol=0.0,
            config=DualTreeConfig(leaf_size=8, static_pruning=True),
        )
        without_static = KMeansDualTree(
            n_clusters=3, n_iters=10, tol=0.0,
            config=DualTreeConfig(leaf_size=8, static_pruning=False),
        )
        with_static.fit(X, initial_centroids)
        without_static.fit(X, initial_centroids)

        np.testing.assert_array_equal(with_static.labels, without_static.labels)
        np.testing.assert_allclose(
            with_static.centroids, without_static.centroids, rtol=1e-10, atol=1e-10
        )
        # После стабилизации кластеров часть пар закрыта статическим отсечением
        assert with_static.history[-1].pairs_static > 0
        assert all(stats.pairs_static == 0 for stats in without_static.history)
        assert len(with_static.static_kept) == 10
        assert with_static.static_kept[0] == 0
        assert with_static.static_kept[-1] > 0
        assert sum(without_static.static_kept) == 0

    def test_summary_reports_static_nodes(self, blobs_dataset, caplog):
        X, centers = blobs_dataset
        logger = logging.getLogger("test_dual_tree_summary")
        model = KMeansDualTree(
            n_clusters=3, n_iters=5, tol=0.0,
            config=DualTreeConfig(leaf_size=8), logger=logger,
        )

        with caplog.at_level(logging.INFO, logger="test_dual_tree_summary"):
            model.fit(X, centers)

        summary = [r.getMessage() for r in caplog.records if "skipped" in r.getMessage()]
        assert len(summary) == 1
        assert f"static nodes kept across rebuilds: {sum(model.static_kept)}" in summary[0]

    def test_later_iterations_compare_less(self, blobs_dataset):
        X, centers = blobs_dataset
        model = KMeansDualTree(n_clusters=3, n_iters=5, tol=0.0, config=DualTreeConfig(leaf_size=8))

        model.fit(X, centers)

        assert model.history[-1].pairs_compared < model.history[0].pairs_compared


class TestFallback:
    """Запасной путь при невозможности построить дерево точек."""

    def test_duplicate_points_fall_back(self):
        X = np.ones((50, 2))
        model = KMeansDualTree(
            n_clusters=2, n_iters=5, config=DualTreeConfig(empty_cluster_patience=1)
        )

        with pytest.warns(NumericalDegeneracyWarning):
            model.fit(X, np.array([[1.0, 1.0], [2.0, 2.0]]))

        assert model.fallback_used
        assert model.point_tree is None
        np.testing.assert_array_equal(model.labels, np.zeros(50))
        np.testing.assert_allclose(model.centroids, [[1.0, 1.0], [2.0, 2.0]])

    def test_fallback_disabled_raises(self):
        X = np.ones((50, 2))
        model = KMeansDualTree(
            n_clusters=2, config=DualTreeConfig(fallback_to_brute_force=False)
        )

        with pytest.raises(TreeConstructionError):
            model.fit(X, np.array([[1.0, 1.0], [2.0, 2.0]]))


class TestStateMachine:
    def test_phase_sequence(self, line_dataset):
        X, initial_centroids = line_dataset
        model = KMeansDualTree(n_clusters=2, n_iters=10)

        model.fit(X, initial_centroids)

        iteration = [
            Phase.REBUILD_CENTROID_TREE,
            Phase.TRAVERSE,
            Phase.REDUCE,
            Phase.CHECK_CONVERGENCE,
        ]
        assert model.phase_history == (
            [Phase.INITIALIZE] + iteration * model.n_iters_actual + [Phase.CONVERGED]
        )

    def test_max_iterations_reached(self, small_dataset):
        X, initial_centroids = small_dataset
        model = KMeansDualTree(n_clusters=2, n_iters=1, tol=0.0)

        model.fit(X, initial_centroids)

        assert model.n_iters_actual == 1
        assert model.phase == Phase.MAX_ITERATIONS_REACHED
        assert not model.converged

    @pytest.mark.parametrize("n_iters, tol", [(10, 1e-9), (1, 0.0)])
    def test_fit_ends_in_terminal_phase(self, small_dataset, n_iters, tol):
        X, initial_centroids = small_dataset
        model = KMeansDualTree(n_clusters=2, n_iters=n_iters, tol=tol)
        assert not model.finished

        model.fit(X, initial_centroids)

        assert model.finished
        assert model.phase in TERMINAL_PHASES
        assert sum(p in TERMINAL_PHASES for p in model.phase_history) == 1

    def test_centroid_tree_rebuilt_every_iteration(self, small_dataset):
        X, initial_centroids = small_dataset
        model = KMeansDualTree(n_clusters=2, n_iters=3, tol=0.0)
        built = []
        original = model.rebuild

        def spy(centroids, movement):
            original(centroids, movement)
            built.append(model.centroid_tree)

        model.rebuild = spy
        model.fit(X, initial_centroids)

        assert len(built) == 3
        assert len({id(tree) for tree in built}) == 3

    def test_timings_collected(self, small_dataset):
        X, initial_centroids = small_dataset
        model = KMeansDualTree(n_clusters=2, n_iters=5)

        model.fit(X, initial_centroids)

        assert model.t_assign_total > 0
        assert model.t_update_total > 0
        assert model.t_rebuild_total > 0
        assert abs(
            model.t_iter_total
            - (model.t_rebuild_total + model.t_assign_total + model.t_update_total)
        ) < 1e-9

    def test_assign_clusters_standalone(self, simple_2d_dataset):
        X, centroids = simple_2d_dataset
        model = KMeansDualTree(n_clusters=2, config=DualTreeConfig(leaf_size=1))

        labels = model.assign_clusters(X, centroids)

        np.testing.assert_array_equal(labels, brute_force_assign(X, centroids))

    def test_assign_after_fit_with_other_centroids(self, small_dataset):
        X, initial_centroids = small_dataset
        model = KMeansDualTree(n_clusters=2, n_iters=10, config=DualTreeConfig(leaf_size=4))
        model.fit(X, initial_centroids)

        # Статическое отсечение от fit не должно влиять на новые центроиды
        swapped = model.centroids[::-1].copy()
        labels = model.assign_clusters(X, swapped)

        np.testing.assert_array_equal(labels, brute_force_assign(X, swapped))
