"""
Стабильный контракт вызова для внешних обёрток.

    (points, k, max_iterations, threshold) -> (centroids, assignments, iterations_used)

Точки передаются в NumPy-раскладке (N, D): строка: точка. Данные в
раскладке «измерения × точки» передаются как ``points.T``.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional

import numpy as np

from dualtree_kmeans.core.base import validate_problem
from dualtree_kmeans.core.config import DualTreeConfig
from dualtree_kmeans.core.dual_tree import KMeansDualTree
from dualtree_kmeans.core.seeding import SeedingStrategy, sample_initialization
from dualtree_kmeans.utils.logging import format_problem_prefix


class KMeansResult(NamedTuple):
    centroids: np.ndarray
    assignments: np.ndarray
    iterations_used: int


class _PrefixedLogger:
    """Обёртка над логгером, добавляющая префикс к каждому сообщению."""

    def __init__(self, base_logger: logging.Logger, prefix: str) -> None:
        self._base = base_logger
        self._prefix = prefix

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._base.debug(f"{self._prefix} {msg}", *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._base.info(f"{self._prefix} {msg}", *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._base.warning(f"{self._prefix} {msg}", *args, **kwargs)


def kmeans(
    points: np.ndarray,
    k: int,
    max_iterations: int = 1000,
    threshold: float = 1e-9,
    *,
    seeding: SeedingStrategy = sample_initialization,
    config: Optional[DualTreeConfig] = None,
    random_state: int | np.random.Generator | None = None,
    logger: logging.Logger | None = None,
) -> KMeansResult:
    """
    Кластеризация K-means с двухдеревным шагом назначения.

    :param points: матрица (N, D)
    :param k: количество кластеров, 1 <= k <= N
    :param max_iterations: предельное число итераций
    :param threshold: порог максимального смещения центроида для сходимости
    :param seeding: стратегия начальных центроидов
    :param config: параметры деревьев и отсечения
    :param random_state: seed или генератор для стратегии инициализации
    :param logger: логгер (например, из :func:`setup_logger`)
    :return: KMeansResult(centroids (k, D), assignments (N,), iterations_used)
    :raises InvalidKError, EmptyDatasetError: до любых вычислений
    """
    X = validate_problem(points, k)
    rng = np.random.default_rng(random_state)
    initial_centroids = seeding(X, k, rng)

    model_logger = None
    if logger is not None:
        model_logger = _PrefixedLogger(logger, format_problem_prefix(X.shape[0], X.shape[1], k))

    model = KMeansDualTree(
        n_clusters=k,
        n_iters=max_iterations,
        tol=threshold,
        config=config or DualTreeConfig(),
        logger=model_logger,
    )
    model.fit(X, initial_centroids)

    assert model.centroids is not None and model.labels is not None
    return KMeansResult(
        centroids=model.centroids,
        assignments=np.asarray(model.labels, dtype=np.int64),
        iterations_used=model.n_iters_actual,
    )
