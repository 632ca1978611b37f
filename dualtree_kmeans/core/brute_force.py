from __future__ import annotations

import numpy as np

from .base import KMeansBase
from .reducer import accumulate, centroids_from_sums


def brute_force_assign(X: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Точное назначение полным перебором, (N, K, D) → (N,)."""
    diff = X[:, None, :] - centroids[None, :, :]
    distances = np.sum(diff * diff, axis=2)
    return np.argmin(distances, axis=1)


class KMeansBruteForce(KMeansBase):
    """Однопоточный KMeans полным перебором (запасной путь и эталон для сверки)."""

    def assign_clusters(self, X: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        return brute_force_assign(X, centroids)

    def update_centroids(self, X: np.ndarray, labels: np.ndarray) -> np.ndarray:
        sums, counts = accumulate(X, labels, self.K)
        self.track_empty_clusters(counts)
        previous = self.centroids if self.centroids is not None else np.zeros_like(sums)
        return centroids_from_sums(sums, counts, previous)
