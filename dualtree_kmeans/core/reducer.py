"""
Редукция назначений в центроиды следующей итерации.

Работает с итогом двухдеревного прохода (владельцы узлов и поточечные
результаты в листьях) и с обычными метками для полного перебора.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, List, Tuple

import numpy as np

from dualtree_kmeans.core.traversal import DualTreeKMeansRules
from dualtree_kmeans.errors import BoundViolationError, NumericalDegeneracyWarning
from dualtree_kmeans.tree.kdtree import KDTree
from dualtree_kmeans.tree.statistic import UNKNOWN


def reduce_point_tree(
    point_tree: KDTree,
    rules: DualTreeKMeansRules,
    K: int,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Один обход дерева точек после двухдеревного прохода.

    Узел с известным владельцем (в том числе статически отсечённый) целиком
    добавляется к кластеру через свой центроид: count * centroid. Иначе спуск;
    в листьях используются поточечные результаты.

    :return: (labels (N,) в исходном порядке строк, sums (K, D), counts (K,))
    """
    sums = np.zeros((K, point_tree.n_dims), dtype=np.float64)
    counts = np.zeros(K, dtype=np.int64)
    labels_tree = np.full(point_tree.n_points, UNKNOWN, dtype=np.int64)

    stack = [point_tree.root]
    while stack:
        node = stack.pop()
        owner = node.stat.owner
        if owner != UNKNOWN:
            labels_tree[node.begin : node.end] = owner
            sums[owner] += node.count * node.stat.centroid
            counts[owner] += node.count
        elif node.is_leaf:
            leaf_labels = rules.best_cluster[node.begin : node.end]
            labels_tree[node.begin : node.end] = leaf_labels
            if np.any(leaf_labels == UNKNOWN):
                break
            np.add.at(sums, leaf_labels, point_tree.points(node))
            counts += np.bincount(leaf_labels, minlength=K)
        else:
            stack.extend(point_tree.children(node))

    if np.any(labels_tree == UNKNOWN):
        raise BoundViolationError("Traversal left points without an owner")

    labels = np.empty_like(labels_tree)
    labels[point_tree.indices] = labels_tree
    return labels, sums, counts


def accumulate(X: np.ndarray, labels: np.ndarray, K: int) -> Tuple[np.ndarray, np.ndarray]:
    """Суммы (K, D) и количества (K,) точек по кластерам."""
    D = X.shape[1]
    sums = np.zeros((K, D), dtype=np.float64)
    np.add.at(sums, labels, X)
    counts = np.bincount(labels, minlength=K).astype(np.int64)
    return sums, counts


def centroids_from_sums(
    sums: np.ndarray,
    counts: np.ndarray,
    previous: np.ndarray,
) -> np.ndarray:
    """Средние по кластерам; пустой кластер сохраняет прежний центроид."""
    new_centroids = previous.copy()
    non_empty = counts > 0
    new_centroids[non_empty] = sums[non_empty] / counts[non_empty, None]
    return new_centroids


class EmptyClusterTracker:
    """
    Следит за кластерами, которые подряд остаются без точек.

    Кластер, пустой ``patience`` итераций подряд, считается вырожденным:
    пишется предупреждение, центроид при этом не меняется.
    """

    def __init__(self, n_clusters: int, patience: int = 2, logger: Any | None = None) -> None:
        self.patience = patience
        self.logger = logger
        self.streak = np.zeros(n_clusters, dtype=np.int64)
        self.degenerate: set[int] = set()

    def update(self, counts: np.ndarray) -> List[int]:
        """Обновляет серии пустых итераций; возвращает новые вырожденные кластеры."""
        empty = counts == 0
        self.streak[empty] += 1
        self.streak[~empty] = 0

        reported: List[int] = []
        for k in np.flatnonzero(self.streak == self.patience):
            k = int(k)
            reported.append(k)
            self.degenerate.add(k)

        if reported:
            msg = (
                f"Clusters {reported} had no points for {self.patience} "
                "consecutive iterations; keeping their previous centroids"
            )
            if self.logger:
                self.logger.warning(msg)
            else:
                logging.getLogger("dualtree_kmeans").warning(msg)
            warnings.warn(msg, NumericalDegeneracyWarning, stacklevel=3)

        return reported
