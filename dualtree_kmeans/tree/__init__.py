from .statistic import NO_NODE, UNKNOWN, DualTreeKMeansStatistic
from .kdtree import KDTree, TreeNode

__all__ = [
    "DualTreeKMeansStatistic",
    "KDTree",
    "TreeNode",
    "NO_NODE",
    "UNKNOWN",
]
