"""
Статистика узла для двухдеревного K-means.

Каждый узел дерева (и дерева точек, и дерева центроидов) несёт ровно одну
статистику. Поля границ и флаги меняет только обход
(:mod:`dualtree_kmeans.core.traversal`), редуктор их только читает.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from dualtree_kmeans.tree.kdtree import KDTree, TreeNode

# Неизвестный кластер / отсутствующий узел
UNKNOWN = -1
NO_NODE = -1


@dataclass
class DualTreeKMeansStatistic:
    """
    Кэшированные границы и состояние отсечения одного узла.

    - upper_bound: верхняя граница расстояния от любой точки поддерева
      до её ближайшего центроида;
    - lower_bound: нижняя граница расстояния от любой точки поддерева
      до любого центроида, кроме owner;
    - owner: кластер, ближайший для всех точек поддерева (или UNKNOWN);
    - pruned: сколько центроидов исключено для всего поддерева за проход;
    - static_pruned и накопленные смещения: перенос решения между итерациями;
    - centroid, radius: взвешенное среднее поддерева и расстояние от него
      до самой дальней точки;
    - true_parent, true_children: индексы узлов в арене дерева.
    """

    upper_bound: float = np.inf
    lower_bound: float = np.inf
    owner: int = UNKNOWN
    pruned: int = 0
    static_pruned: bool = False
    static_upper_bound_movement: float = 0.0
    static_lower_bound_movement: float = 0.0
    centroid: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.float64))
    radius: float = 0.0
    # Минимальная оценка расстояния до отсечённых за проход узлов центроидов
    prune_lower_bound: float = np.inf
    true_parent: int = NO_NODE
    true_children: tuple[int, ...] = ()

    @classmethod
    def from_node(cls, tree: "KDTree", node: "TreeNode") -> "DualTreeKMeansStatistic":
        """
        Строит статистику по узлу, у которого статистики детей уже посчитаны.

        Центроид считается снизу вверх: сумма собственных точек узла плюс
        центроиды детей с весом их числа потомков, делённая на число потомков.
        Один проход по дереву в post-order даёт линейное время.
        """
        if node.count <= 0:
            raise ValueError(f"Node {node.index} has no descendants")

        total = tree.data[node.begin : node.begin + node.n_owned].sum(axis=0)
        for child_id in node.children:
            child = tree.nodes[child_id]
            total = total + child.count * child.stat.centroid
        centroid = total / node.count

        descendants = tree.data[node.begin : node.begin + node.count]
        diff = descendants - centroid
        radius = float(np.sqrt(np.max(np.sum(diff * diff, axis=1))))

        return cls(
            centroid=centroid,
            radius=radius,
            true_parent=node.parent,
            true_children=tuple(node.children),
        )

    def reset_bounds(self) -> None:
        """Сбрасывает состояние одного прохода (кроме статического отсечения)."""
        self.upper_bound = np.inf
        self.lower_bound = np.inf
        self.owner = UNKNOWN
        self.pruned = 0
        self.prune_lower_bound = np.inf

    def mark_static(self) -> None:
        """Фиксирует текущие границы и владельца для следующих итераций."""
        self.static_pruned = True
        self.static_upper_bound_movement = 0.0
        self.static_lower_bound_movement = 0.0

    def clear_static(self) -> None:
        self.static_pruned = False
        self.static_upper_bound_movement = 0.0
        self.static_lower_bound_movement = 0.0

    def moved_upper_bound(self) -> float:
        return self.upper_bound + self.static_upper_bound_movement

    def moved_lower_bound(self) -> float:
        return self.lower_bound - self.static_lower_bound_movement

    def is_static_valid(self, eps: float) -> bool:
        """
        Консервативная проверка статического отсечения.

        Владелец сдвинулся не больше чем на static_upper_bound_movement,
        остальные центроиды не больше чем на static_lower_bound_movement,
        поэтому по неравенству треугольника для любой точки поддерева
        d(x, owner) <= upper + up_move и d(x, other) >= lower - low_move.
        Отсечение остаётся верным при строгом разрыве с запасом eps.
        """
        if not self.static_pruned or self.owner == UNKNOWN:
            return False
        return self.moved_upper_bound() * (1.0 + eps) < self.moved_lower_bound()

    def __str__(self) -> str:
        return (
            "DualTreeKMeansStatistic:\n"
            f"  Upper bound: {self.upper_bound}.\n"
            f"  Lower bound: {self.lower_bound}.\n"
            f"  Pruned: {self.pruned}.\n"
            f"  Static pruned: {self.static_pruned}.\n"
            f"  Owner: {self.owner}.\n"
        )
