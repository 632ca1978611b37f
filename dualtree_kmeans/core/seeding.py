"""
Стратегии начальной расстановки центроидов.

Стратегия: любой вызываемый объект ``(X, K, rng) -> centroids (K, D)``.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np


class SeedingStrategy(Protocol):
    """Протокол стратегии инициализации центроидов."""

    def __call__(self, X: np.ndarray, K: int, rng: np.random.Generator) -> np.ndarray:
        ...


def sample_initialization(X: np.ndarray, K: int, rng: np.random.Generator) -> np.ndarray:
    """K различных случайных точек датасета."""
    idx = rng.choice(X.shape[0], size=K, replace=False)
    return X[idx].astype(np.float64, copy=True)


def random_partition(X: np.ndarray, K: int, rng: np.random.Generator) -> np.ndarray:
    """
    Средние случайного разбиения точек на K частей.

    Каждая часть гарантированно непуста: сначала K случайных точек получают
    по своей метке, остальные метки случайны.
    """
    N = X.shape[0]
    labels = rng.integers(0, K, size=N)
    labels[rng.choice(N, size=K, replace=False)] = np.arange(K)

    sums = np.zeros((K, X.shape[1]), dtype=np.float64)
    np.add.at(sums, labels, X)
    counts = np.bincount(labels, minlength=K)
    return sums / counts[:, None]


def kmeans_plus_plus(X: np.ndarray, K: int, rng: np.random.Generator) -> np.ndarray:
    """k-means++: каждый следующий центр выбирается с вероятностью ~ D(x)^2."""
    N, D = X.shape
    centroids = np.empty((K, D), dtype=np.float64)
    centroids[0] = X[rng.integers(N)]

    diff = X - centroids[0]
    closest_sq = np.sum(diff * diff, axis=1)
    for k in range(1, K):
        total = closest_sq.sum()
        if total > 0.0:
            idx = rng.choice(N, p=closest_sq / total)
        else:
            # Все точки уже совпадают с центрами
            idx = rng.integers(N)
        centroids[k] = X[idx]
        diff = X - centroids[k]
        closest_sq = np.minimum(closest_sq, np.sum(diff * diff, axis=1))

    return centroids


def fixed(centroids: np.ndarray) -> SeedingStrategy:
    """Стратегия, возвращающая заранее заданные центроиды."""
    centroids = np.asarray(centroids, dtype=np.float64)

    def _seed(X: np.ndarray, K: int, rng: np.random.Generator) -> np.ndarray:
        if centroids.shape != (K, X.shape[1]):
            raise ValueError(
                f"Expected initial centroids of shape ({K}, {X.shape[1]}), "
                f"got {centroids.shape}"
            )
        return centroids.copy()

    return _seed
