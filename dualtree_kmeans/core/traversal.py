"""
Двухдеревный обход для шага назначения K-means.

Обход рекурсивно обрабатывает пары (узел точек, узел центроидов):

1. узел точек со статическим отсечением пропускается целиком;
2. если даже ближайшая возможная точка области центроидов дальше верхней
   границы узла точек, пара отсекается;
3. пара листьев считается точно (base case);
4. иначе спуск к детям, центроиды: в порядке «ближние первыми».

После прохода отдельная свёртка снизу вверх (:meth:`DualTreeKMeansRules.reduce_bounds`)
вычисляет для каждого узла ``NodeBounds(upper, lower, owner)`` и записывает
их в статистики. Все сравнения границ консервативны: при малейшем сомнении
пара не отсекается.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, NamedTuple

import numpy as np

from dualtree_kmeans.tree.kdtree import KDTree, TreeNode
from dualtree_kmeans.tree.statistic import UNKNOWN


class NodeBounds(NamedTuple):
    """Итог свёртки границ по узлу."""

    upper: float
    lower: float
    owner: int


def merge_bounds(parts: Iterable[NodeBounds]) -> NodeBounds:
    """
    Объединяет границы детей в границы родителя.

    upper: максимум, lower: минимум, owner: общий владелец детей
    или UNKNOWN, если владельцы различаются.
    """
    upper = -np.inf
    lower = np.inf
    owners: set[int] = set()
    for part in parts:
        upper = max(upper, part.upper)
        lower = min(lower, part.lower)
        owners.add(part.owner)
    owner = owners.pop() if len(owners) == 1 else UNKNOWN
    return NodeBounds(upper=upper, lower=lower, owner=owner)


@dataclass
class TraversalStats:
    """Счётчики одного прохода: каждая пара (точка, центроид) учтена ровно один раз."""

    n_points: int
    n_clusters: int
    pairs_compared: int = 0
    pairs_pruned: int = 0
    pairs_static: int = 0
    base_cases: int = 0
    prunes: int = 0
    static_nodes: int = 0

    @property
    def total_pairs(self) -> int:
        return self.n_points * self.n_clusters

    @property
    def pairs_covered(self) -> int:
        return self.pairs_compared + self.pairs_pruned + self.pairs_static


def apply_centroid_movement(
    point_tree: KDTree,
    movement: np.ndarray,
    eps: float,
) -> int:
    """
    Переносит статическое отсечение на новую итерацию.

    Для каждого узла со static_pruned накапливает смещение владельца и
    максимальное смещение остальных центроидов, после чего перепроверяет
    отсечение. Узлы без статического отсечения сбрасываются.

    :param movement: евклидовы смещения центроидов за прошлую итерацию, (K,)
    :return: число узлов, сохранивших статическое отсечение
    """
    movement = np.asarray(movement, dtype=np.float64)
    k = movement.shape[0]
    kept = 0

    # Наибольшее и второе по величине смещения: max по j != owner за O(1)
    if k > 1:
        order = np.argsort(movement)
        largest_idx = int(order[-1])
        largest = float(movement[largest_idx])
        second = float(movement[order[-2]])
    else:
        largest_idx, largest, second = 0, 0.0, 0.0

    for node in point_tree.nodes:
        stat = node.stat
        if not stat.static_pruned:
            stat.reset_bounds()
            continue

        owner = stat.owner
        others = second if owner == largest_idx else largest
        stat.static_upper_bound_movement += float(movement[owner])
        stat.static_lower_bound_movement += others

        if stat.is_static_valid(eps):
            kept += 1
        else:
            stat.clear_static()
            stat.reset_bounds()

    return kept


class DualTreeKMeansRules:
    """
    Правила и состояние одного прохода двухдеревного назначения.

    Лучшие расстояния хранятся по позициям точек в дереве (не по исходным
    номерам), чтобы лист читал непрерывный срез.
    """

    def __init__(
        self,
        point_tree: KDTree,
        centroid_tree: KDTree,
        n_clusters: int,
        eps: float = 1e-10,
    ) -> None:
        self.point_tree = point_tree
        self.centroid_tree = centroid_tree
        self.n_clusters = n_clusters
        self.eps = eps

        n = point_tree.n_points
        self.best_sq = np.full(n, np.inf, dtype=np.float64)
        self.best_cluster = np.full(n, UNKNOWN, dtype=np.int64)
        self.second_sq = np.full(n, np.inf, dtype=np.float64)

        self.stats = TraversalStats(n_points=n, n_clusters=n_clusters)

    # --- Обход ---

    def traverse(self) -> TraversalStats:
        """Полный проход от пары корней."""
        self._recurse(self.point_tree.root, self.centroid_tree.root)
        self.stats.static_nodes = sum(
            1 for node in self.point_tree.nodes if node.stat.static_pruned
        )
        return self.stats

    def score(self, q: TreeNode, r: TreeNode) -> float:
        """
        Нижняя граница расстояния от любой точки q до любого центроида r.

        Берётся максимум двух оценок: расстояние между прямоугольниками и
        расстояние до центра масс центроидов минус их радиус.
        """
        rect = KDTree.min_distance(q, r)
        ball = KDTree.min_distance_to_point(q, r.stat.centroid) - r.stat.radius
        return max(rect, ball)

    def _nearer_first(self, q: TreeNode, r: TreeNode) -> list[tuple[float, TreeNode]]:
        scored = [(self.score(q, child), child) for child in self.centroid_tree.children(r)]
        scored.sort(key=lambda item: item[0])
        return scored

    def _recurse(self, q: TreeNode, r: TreeNode, score: float | None = None) -> None:
        stat = q.stat
        if stat.static_pruned:
            self.stats.pairs_static += q.count * r.count
            return

        if score is None:
            score = self.score(q, r)
        if score > stat.upper_bound * (1.0 + self.eps):
            stat.pruned += r.count
            stat.prune_lower_bound = min(stat.prune_lower_bound, score)
            self.stats.pairs_pruned += q.count * r.count
            self.stats.prunes += 1
            return

        if q.is_leaf and r.is_leaf:
            self._base_case(q, r)
            return

        if q.is_leaf:
            for child_score, child in self._nearer_first(q, r):
                self._recurse(q, child, child_score)
            return

        for q_child in self.point_tree.children(q):
            if r.is_leaf:
                self._recurse(q_child, r)
            else:
                for child_score, child in self._nearer_first(q_child, r):
                    self._recurse(q_child, child, child_score)

        children_upper = max(
            self._current_upper(child) for child in self.point_tree.children(q)
        )
        stat.upper_bound = min(stat.upper_bound, children_upper)

    @staticmethod
    def _current_upper(node: TreeNode) -> float:
        if node.stat.static_pruned:
            return node.stat.moved_upper_bound()
        return node.stat.upper_bound

    def _base_case(self, q: TreeNode, r: TreeNode) -> None:
        points = self.point_tree.points(q)
        cluster_ids = self.centroid_tree.point_indices(r)
        centroids = self.centroid_tree.points(r)

        # При равных расстояниях побеждает меньший номер кластера, как у argmin
        perm = np.argsort(cluster_ids, kind="stable")
        cluster_ids = cluster_ids[perm]
        centroids = centroids[perm]

        diff = points[:, None, :] - centroids[None, :, :]
        sq = np.sum(diff * diff, axis=2)

        rows = np.arange(sq.shape[0])
        j = np.argmin(sq, axis=1)
        local_best = sq[rows, j]
        local_cluster = cluster_ids[j]
        if sq.shape[1] > 1:
            rest = sq.copy()
            rest[rows, j] = np.inf
            local_second = rest.min(axis=1)
        else:
            local_second = np.full(sq.shape[0], np.inf)

        sl = slice(q.begin, q.end)
        best = self.best_sq[sl]
        cluster = self.best_cluster[sl]
        second = self.second_sq[sl]

        better = (local_best < best) | ((local_best == best) & (local_cluster < cluster))
        self.second_sq[sl] = np.where(
            better,
            np.minimum(best, local_second),
            np.minimum(second, local_best),
        )
        self.best_sq[sl] = np.where(better, local_best, best)
        self.best_cluster[sl] = np.where(better, local_cluster, cluster)

        q.stat.upper_bound = float(np.sqrt(np.max(self.best_sq[sl])))

        self.stats.pairs_compared += sq.size
        self.stats.base_cases += 1

    # --- Свёртка границ снизу вверх ---

    def reduce_bounds(self) -> NodeBounds:
        """Вычисляет и записывает границы всех узлов; возвращает границы корня."""
        return self._reduce(self.point_tree.root, np.inf)

    def _reduce(self, node: TreeNode, inherited_lower: float) -> NodeBounds:
        stat = node.stat
        if stat.static_pruned:
            return NodeBounds(stat.moved_upper_bound(), stat.moved_lower_bound(), stat.owner)

        # Центроиды, отсечённые у предков, не ближе их оценки и для потомков
        inherited_lower = min(inherited_lower, stat.prune_lower_bound)

        if node.is_leaf:
            sl = slice(node.begin, node.end)
            owners = np.unique(self.best_cluster[sl])
            result = NodeBounds(
                upper=float(np.sqrt(np.max(self.best_sq[sl]))),
                lower=min(float(np.sqrt(np.min(self.second_sq[sl]))), inherited_lower),
                owner=int(owners[0]) if owners.shape[0] == 1 else UNKNOWN,
            )
        else:
            result = merge_bounds(
                self._reduce(child, inherited_lower)
                for child in self.point_tree.children(node)
            )

        stat.upper_bound, stat.lower_bound, stat.owner = result
        return result

    def establish_static(self) -> int:
        """
        Отмечает статическое отсечение у самых верхних узлов, где разрыв
        границ гарантирует единственного владельца.

        :return: число новых узлов со статическим отсечением
        """
        marked = 0
        stack = [self.point_tree.root]
        while stack:
            node = stack.pop()
            stat = node.stat
            if stat.static_pruned:
                continue
            if stat.owner != UNKNOWN and stat.upper_bound * (1.0 + self.eps) < stat.lower_bound:
                stat.mark_static()
                marked += 1
                continue
            stack.extend(self.point_tree.children(node))
        return marked
