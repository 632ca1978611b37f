from .timers import PhaseTimer, Timer
from .metrics import distance_calculations, pruning_ratio, throughput

__all__ = [
    "Timer",
    "PhaseTimer",
    "pruning_ratio",
    "distance_calculations",
    "throughput",
]
