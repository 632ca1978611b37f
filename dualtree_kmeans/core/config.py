from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DualTreeConfig:
    """Параметры двухдеревного KMeans."""

    leaf_size: int = 20
    centroid_leaf_size: int = 1
    # Перенос решений об отсечении между итерациями
    static_pruning: bool = True
    # Сверка каждого назначения с полным перебором (медленно, для отладки)
    validate: bool = False
    fallback_to_brute_force: bool = True
    empty_cluster_patience: int = 2
    # Относительный запас для сравнения границ
    bound_eps: float = 1e-10

    def __post_init__(self) -> None:
        if self.leaf_size <= 0:
            raise ValueError("leaf_size must be positive")
        if self.centroid_leaf_size <= 0:
            raise ValueError("centroid_leaf_size must be positive")
        if self.empty_cluster_patience <= 0:
            raise ValueError("empty_cluster_patience must be positive")
        if self.bound_eps < 0.0:
            raise ValueError("bound_eps must be non-negative")
