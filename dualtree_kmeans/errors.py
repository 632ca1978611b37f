"""
Виды ошибок двухдеревного K-means.

Фатальные ошибки (InvalidKError, EmptyDatasetError) возникают до начала
обхода деревьев. TreeConstructionError означает, что индекс по точкам
бесполезен и вызывающая сторона должна перейти к полному перебору.
"""

from __future__ import annotations


class KMeansError(Exception):
    """Базовый класс ошибок пакета."""


class InvalidKError(KMeansError, ValueError):
    """Количество кластеров k <= 0 или k больше числа точек."""

    def __init__(self, k: int, n_points: int) -> None:
        super().__init__(
            f"Invalid number of clusters k={k} for {n_points} points "
            f"(expected 1 <= k <= {n_points})"
        )
        self.k = k
        self.n_points = n_points


class EmptyDatasetError(KMeansError, ValueError):
    """Пустой набор точек."""


class TreeConstructionError(KMeansError):
    """Не удалось построить полезное пространственное дерево."""


class BoundViolationError(KMeansError, AssertionError):
    """Нарушение инварианта границ (ошибка программы, не входных данных)."""


class NumericalDegeneracyWarning(UserWarning):
    """Кластер несколько итераций подряд остаётся без точек."""
