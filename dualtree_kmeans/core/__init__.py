from .base import KMeansBase, Phase
from .brute_force import KMeansBruteForce, brute_force_assign
from .config import DualTreeConfig
from .dual_tree import KMeansDualTree
from .seeding import (
    SeedingStrategy,
    fixed,
    kmeans_plus_plus,
    random_partition,
    sample_initialization,
)

__all__ = [
    "KMeansBase",
    "Phase",
    "KMeansBruteForce",
    "brute_force_assign",
    "DualTreeConfig",
    "KMeansDualTree",
    "SeedingStrategy",
    "fixed",
    "kmeans_plus_plus",
    "random_partition",
    "sample_initialization",
]
