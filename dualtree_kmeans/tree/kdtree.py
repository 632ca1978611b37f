"""
kd-дерево в виде арены узлов.

Узлы хранятся в списке ``KDTree.nodes``, идентичность узла задаётся его
индексом в арене (родитель и дети тоже индексы). Данные переупорядочиваются
при построении так, что каждый узел покрывает непрерывный срез
``data[begin:begin + count]``; ``indices[slot]`` возвращает исходный номер
строки.

Разбиение: медиана по самому широкому измерению, поэтому высота дерева
O(log N) и рекурсия обхода неглубокая.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

import numpy as np

from dualtree_kmeans.errors import TreeConstructionError
from dualtree_kmeans.tree.statistic import NO_NODE, DualTreeKMeansStatistic


@dataclass
class TreeNode:
    """Узел kd-дерева: срез данных, ограничивающий прямоугольник и статистика."""

    index: int
    parent: int
    begin: int
    count: int
    lo: np.ndarray
    hi: np.ndarray
    # Точки, которыми узел владеет напрямую (у внутренних узлов 0)
    n_owned: int = 0
    children: tuple[int, ...] = ()
    stat: DualTreeKMeansStatistic = field(default_factory=DualTreeKMeansStatistic)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def end(self) -> int:
        return self.begin + self.count


class KDTree:
    """
    Статическое kd-дерево с одной статистикой на узел.

    :param data: матрица (N, D) точек
    :param leaf_size: максимальное число точек в листе
    :param require_split: требовать, чтобы корень с N > leaf_size можно было
        разбить (для дерева точек: иначе индекс бесполезен)
    """

    def __init__(
        self,
        data: np.ndarray,
        leaf_size: int = 20,
        require_split: bool = False,
    ) -> None:
        data = np.asarray(data, dtype=np.float64)
        if data.ndim != 2:
            raise TreeConstructionError(f"Expected a 2D array, got shape {data.shape}")
        if data.shape[0] == 0:
            raise TreeConstructionError("Cannot build a tree over zero points")
        if not np.all(np.isfinite(data)):
            raise TreeConstructionError("Data contains NaN or infinite values")
        if leaf_size <= 0:
            raise ValueError("leaf_size must be positive")

        self.leaf_size = leaf_size
        self.data = data.copy()
        self.indices = np.arange(data.shape[0])
        self.nodes: list[TreeNode] = []

        self._build(0, data.shape[0], NO_NODE)

        root = self.nodes[0]
        if require_split and root.is_leaf and root.count > leaf_size:
            raise TreeConstructionError(
                f"All {root.count} points coincide; "
                "a spatial index cannot separate them"
            )

    # --- Построение ---

    def _build(self, begin: int, count: int, parent: int) -> int:
        pts = self.data[begin : begin + count]
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)

        index = len(self.nodes)
        node = TreeNode(index=index, parent=parent, begin=begin, count=count, lo=lo, hi=hi)
        self.nodes.append(node)

        extent = hi - lo
        dim = int(np.argmax(extent))
        if count <= self.leaf_size or extent[dim] <= 0.0:
            node.n_owned = count
        else:
            half = count // 2
            order = np.argpartition(pts[:, dim], half)
            self.data[begin : begin + count] = pts[order]
            self.indices[begin : begin + count] = self.indices[begin : begin + count][order]

            left = self._build(begin, half, index)
            right = self._build(begin + half, count - half, index)
            node.children = (left, right)

        # Дети уже построены: статистика считается в post-order
        node.stat = DualTreeKMeansStatistic.from_node(self, node)
        return index

    # --- Навигация ---

    @property
    def root(self) -> TreeNode:
        return self.nodes[0]

    @property
    def n_points(self) -> int:
        return int(self.data.shape[0])

    @property
    def n_dims(self) -> int:
        return int(self.data.shape[1])

    def node(self, index: int) -> TreeNode:
        return self.nodes[index]

    def parent(self, node: TreeNode) -> TreeNode | None:
        if node.parent == NO_NODE:
            return None
        return self.nodes[node.parent]

    def children(self, node: TreeNode) -> list[TreeNode]:
        return [self.nodes[i] for i in node.children]

    def points(self, node: TreeNode) -> np.ndarray:
        """Все точки поддерева (в порядке дерева)."""
        return self.data[node.begin : node.end]

    def point_indices(self, node: TreeNode) -> np.ndarray:
        """Исходные номера точек поддерева."""
        return self.indices[node.begin : node.end]

    def iter_postorder(self) -> Iterator[TreeNode]:
        """Обход узлов: дети раньше родителя."""
        stack: list[tuple[int, bool]] = [(0, False)]
        while stack:
            index, expanded = stack.pop()
            node = self.nodes[index]
            if expanded or node.is_leaf:
                yield node
                continue
            stack.append((index, True))
            for child in reversed(node.children):
                stack.append((child, False))

    def leaves(self) -> list[TreeNode]:
        return [n for n in self.nodes if n.is_leaf]

    @property
    def height(self) -> int:
        depth = {0: 1}
        for node in self.nodes:
            for child in node.children:
                depth[child] = depth[node.index] + 1
        return max(depth.values())

    # --- Оценки расстояний между областями ---

    @staticmethod
    def min_distance(a: TreeNode, b: TreeNode) -> float:
        """Минимальное расстояние между прямоугольниками двух узлов."""
        gap = np.maximum(0.0, np.maximum(a.lo - b.hi, b.lo - a.hi))
        return float(np.sqrt(np.dot(gap, gap)))

    @staticmethod
    def min_distance_to_point(node: TreeNode, point: np.ndarray) -> float:
        gap = np.maximum(0.0, np.maximum(node.lo - point, point - node.hi))
        return float(np.sqrt(np.dot(gap, gap)))

    @staticmethod
    def max_distance_to_point(node: TreeNode, point: np.ndarray) -> float:
        far = np.maximum(np.abs(point - node.lo), np.abs(node.hi - point))
        return float(np.sqrt(np.dot(far, far)))
