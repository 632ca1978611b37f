"""
Метрики эффективности отсечения.

Функции считают, какую долю пар (точка, центроид) удалось не сравнивать
точно, и пропускную способность в терминах пар.
"""

from __future__ import annotations

from typing import Iterable


def pruning_ratio(pairs_compared: int, N: int, K: int, n_iters: int = 1) -> float:
    """
    Доля пар, исключённых без точного сравнения.

    Args:
        pairs_compared: Число точно вычисленных расстояний
        N: Количество точек
        K: Количество кластеров
        n_iters: Количество итераций, за которые собраны сравнения

    Returns:
        1 - pairs_compared / (N * K * n_iters); 0: полный перебор

    Raises:
        ZeroDivisionError: Если N, K или n_iters равны нулю
    """
    total = N * K * n_iters
    if total == 0:
        raise ZeroDivisionError("Number of point/centroid pairs cannot be zero")
    return 1.0 - pairs_compared / total


def distance_calculations(history: Iterable) -> int:
    """Суммарное число точных расстояний по списку TraversalStats."""
    return int(sum(stats.pairs_compared for stats in history))


def throughput(N: int, K: int, n_iters: int, total_time: float) -> float:
    """
    Пары (точка, центроид), обработанные за секунду: (N × K × n_iters) / total_time.

    Raises:
        ZeroDivisionError: Если total_time равно нулю
    """
    if total_time == 0:
        raise ZeroDivisionError("Total time cannot be zero")
    return (N * K * n_iters) / total_time
