"""
KMeans с двухдеревным назначением.

Дерево точек строится один раз в фазе INITIALIZE, дерево центроидов,
заново в каждой фазе REBUILD_CENTROID_TREE. Шаг назначения: двухдеревный
обход (:mod:`dualtree_kmeans.core.traversal`), шаг обновления: редукция
по дереву точек (:mod:`dualtree_kmeans.core.reducer`).

Если дерево точек построить нельзя (TreeConstructionError), модель
переходит на полный перебор, если это разрешено конфигурацией.
"""

from __future__ import annotations

from typing import Any, List, Optional

import numpy as np

from dualtree_kmeans.errors import BoundViolationError, TreeConstructionError
from dualtree_kmeans.metrics.metrics import distance_calculations, pruning_ratio
from dualtree_kmeans.tree.kdtree import KDTree

from .base import KMeansBase
from .brute_force import brute_force_assign
from .config import DualTreeConfig
from .reducer import accumulate, centroids_from_sums, reduce_point_tree
from .traversal import DualTreeKMeansRules, TraversalStats, apply_centroid_movement


class KMeansDualTree(KMeansBase):
    """Точный KMeans с двухдеревным поиском ближайшего центроида."""

    def __init__(
        self,
        n_clusters: int,
        n_iters: int = 100,
        tol: float = 1e-9,
        config: DualTreeConfig = DualTreeConfig(),
        logger: Any | None = None,
    ) -> None:
        super().__init__(
            n_clusters=n_clusters,
            n_iters=n_iters,
            tol=tol,
            empty_cluster_patience=config.empty_cluster_patience,
            logger=logger,
        )
        self.config = config

        self.point_tree: Optional[KDTree] = None
        self.centroid_tree: Optional[KDTree] = None
        self.fallback_used: bool = False
        self.history: List[TraversalStats] = []
        self.static_kept: List[int] = []

        self._tree_X: Optional[np.ndarray] = None
        self._tree_centroids: Optional[np.ndarray] = None
        # Результат последней редукции по дереву: (labels, sums, counts)
        self._reduced: Optional[tuple[np.ndarray, np.ndarray, np.ndarray]] = None

    # --- Фазы ---

    def initialize(self, X: np.ndarray) -> None:
        self.history = []
        self.static_kept = []
        self.fallback_used = False
        self.centroid_tree = None
        self._tree_centroids = None
        self._reduced = None
        self._build_point_tree(X)

    def rebuild(self, centroids: np.ndarray, movement: np.ndarray) -> None:
        """Барьер между итерациями: новое дерево центроидов и перенос отсечения."""
        if self.point_tree is None:
            return
        self.centroid_tree = KDTree(centroids, leaf_size=self.config.centroid_leaf_size)
        self._tree_centroids = centroids.copy()
        kept = apply_centroid_movement(self.point_tree, movement, self.config.bound_eps)
        self.static_kept.append(kept)

    def _build_point_tree(self, X: np.ndarray) -> None:
        try:
            self.point_tree = KDTree(X, leaf_size=self.config.leaf_size, require_split=True)
        except TreeConstructionError as e:
            if not self.config.fallback_to_brute_force:
                raise
            self.point_tree = None
            self.fallback_used = True
            if self.logger:
                self.logger.warning(
                    f"  Point tree construction failed ({e}); "
                    "falling back to brute-force assignment"
                )
        self._tree_X = X

    def _ensure_trees(self, X: np.ndarray, centroids: np.ndarray) -> None:
        """Ленивая подготовка деревьев для вызова assign_clusters вне fit."""
        if self._tree_X is None or (
            self._tree_X is not X and not np.array_equal(self._tree_X, X)
        ):
            self._build_point_tree(np.asarray(X, dtype=np.float64))
        if self.point_tree is None:
            return
        if self._tree_centroids is None or not np.array_equal(self._tree_centroids, centroids):
            # Центроиды пришли не из фазы перестройки: прежнее отсечение недействительно
            for node in self.point_tree.nodes:
                node.stat.clear_static()
                node.stat.reset_bounds()
            self.centroid_tree = KDTree(centroids, leaf_size=self.config.centroid_leaf_size)
            self._tree_centroids = np.array(centroids, dtype=np.float64)

    # ---------- Assignment (dual-tree traversal) ----------

    def assign_clusters(self, X: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        self._ensure_trees(X, centroids)
        if self.point_tree is None:
            self._reduced = None
            return brute_force_assign(X, centroids)

        assert self.centroid_tree is not None
        rules = DualTreeKMeansRules(
            self.point_tree,
            self.centroid_tree,
            n_clusters=self.K,
            eps=self.config.bound_eps,
        )
        stats = rules.traverse()
        rules.reduce_bounds()
        if self.config.static_pruning:
            rules.establish_static()

        labels, sums, counts = reduce_point_tree(self.point_tree, rules, self.K)
        self._reduced = (labels, sums, counts)
        self.history.append(stats)

        if self.logger:
            self.logger.debug(
                f"  Traversal: compared={stats.pairs_compared} pruned={stats.pairs_pruned} "
                f"static={stats.pairs_static} base_cases={stats.base_cases} "
                f"prunes={stats.prunes}"
            )

        if self.config.validate:
            self._validate(X, centroids, labels, stats)

        return labels

    def _validate(
        self,
        X: np.ndarray,
        centroids: np.ndarray,
        labels: np.ndarray,
        stats: TraversalStats,
    ) -> None:
        """Сверка с полным перебором; расхождение: ошибка программы."""
        if stats.pairs_covered != stats.total_pairs:
            raise BoundViolationError(
                f"Traversal covered {stats.pairs_covered} of {stats.total_pairs} "
                "point/centroid pairs"
            )
        expected = brute_force_assign(X, centroids)
        mismatched = int(np.count_nonzero(expected != labels))
        if mismatched:
            raise BoundViolationError(
                f"Dual-tree assignment disagrees with brute force for {mismatched} points"
            )

    # ---------- Update (tree reduction) ----------

    def update_centroids(self, X: np.ndarray, labels: np.ndarray) -> np.ndarray:
        if self._reduced is not None and self._reduced[0] is labels:
            _, sums, counts = self._reduced
        else:
            sums, counts = accumulate(X, labels, self.K)
        self._reduced = None

        self.track_empty_clusters(counts)
        previous = self.centroids if self.centroids is not None else np.zeros_like(sums)
        return centroids_from_sums(sums, counts, previous)

    def fit(self, X: np.ndarray, initial_centroids: np.ndarray) -> None:
        """fit с итоговой сводкой по отсечению."""
        super().fit(X, initial_centroids)
        if self.logger and self.history:
            N = self.point_tree.n_points if self.point_tree is not None else len(X)
            ratio = pruning_ratio(
                distance_calculations(self.history), N, self.K, len(self.history)
            )
            self.logger.info(
                f"  Dual-tree assignment skipped {ratio:.1%} of point/centroid pairs "
                f"over {len(self.history)} iterations "
                f"(static nodes kept across rebuilds: {sum(self.static_kept)})"
            )
