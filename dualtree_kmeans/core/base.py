from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, List

import numpy as np

from dualtree_kmeans.core.reducer import EmptyClusterTracker
from dualtree_kmeans.errors import EmptyDatasetError, InvalidKError
from dualtree_kmeans.metrics.timers import PhaseTimer


class Phase(str, Enum):
    INITIALIZE = "initialize"
    REBUILD_CENTROID_TREE = "rebuild_centroid_tree"
    TRAVERSE = "traverse"
    REDUCE = "reduce"
    CHECK_CONVERGENCE = "check_convergence"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"


TERMINAL_PHASES = (Phase.CONVERGED, Phase.MAX_ITERATIONS_REACHED)


def validate_problem(X: np.ndarray, n_clusters: int) -> np.ndarray:
    """
    Проверяет входные данные до любых вычислений.

    Raises:
        ValueError: X не двумерный или содержит NaN/inf
        EmptyDatasetError: нет ни одной точки
        InvalidKError: k <= 0 или k > N
    """
    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2:
        raise ValueError(f"Expected X of shape (N, D), got {X.shape}")
    if X.shape[0] == 0 or X.shape[1] == 0:
        raise EmptyDatasetError(f"Dataset is empty: X.shape={X.shape}")
    if not np.all(np.isfinite(X)):
        n_bad = int(np.count_nonzero(~np.all(np.isfinite(X), axis=1)))
        raise ValueError(f"X contains non-finite values in {n_bad} rows")
    if n_clusters <= 0 or n_clusters > X.shape[0]:
        raise InvalidKError(n_clusters, X.shape[0])
    return X


class KMeansBase(ABC):
    """
    Базовый класс для реализаций KMeans.

    Итерационный цикл устроен как явный автомат состояний:

        INITIALIZE -> REBUILD_CENTROID_TREE -> TRAVERSE -> REDUCE
        -> CHECK_CONVERGENCE -> (REBUILD_CENTROID_TREE | CONVERGED
        | MAX_ITERATIONS_REACHED)

    Перестройка индекса центроидов вынесена в отдельную фазу: ни один обход новой
    итерации не начинается, пока она не завершена.

    Собирает тайминги:
    - T_перестройки: фаза REBUILD_CENTROID_TREE;
    - T_назначения: фаза TRAVERSE (assign_clusters);
    - T_обновления: фаза REDUCE (update_centroids);
    - T_итерации: сумма трёх предыдущих.
    """

    def __init__(
        self,
        n_clusters: int,
        n_iters: int = 100,
        tol: float = 1e-9,
        empty_cluster_patience: int = 2,
        logger: Any | None = None,
    ):
        if n_iters <= 0:
            raise ValueError("n_iters must be positive")
        self.K = n_clusters
        self.n_iters = n_iters
        self.tol = tol  # Порог сходимости (максимальное смещение центроида)
        self.empty_cluster_patience = empty_cluster_patience
        self.logger = logger

        self.centroids: np.ndarray | None = None
        self.labels: np.ndarray | None = None

        self.phase: Phase | None = None
        self.phase_history: List[Phase] = []
        self.converged: bool = False
        self.timings = PhaseTimer()

        self.t_assign_total: float = 0.0
        self.t_update_total: float = 0.0
        self.t_rebuild_total: float = 0.0
        self.t_iter_total: float = 0.0

        # Реальное количество выполненных итераций
        self.n_iters_actual: int = 0
        self.empty_clusters: EmptyClusterTracker | None = None

    def _enter(self, phase: Phase) -> Phase:
        self.phase = phase
        self.phase_history.append(phase)
        return phase

    def fit(self, X: np.ndarray, initial_centroids: np.ndarray) -> None:
        """
        Основной цикл Lloyd с остановкой по сходимости.

        Алгоритм останавливается, когда:
        - максимальное смещение центроида меньше tol (CONVERGED), ИЛИ
        - выполнено n_iters итераций (MAX_ITERATIONS_REACHED).

        Некорректные входные данные отклоняются до фазы INITIALIZE.
        """
        X = validate_problem(X, self.K)
        initial_centroids = np.asarray(initial_centroids, dtype=np.float64)
        if initial_centroids.shape != (self.K, X.shape[1]):
            raise ValueError(
                f"Expected initial centroids of shape ({self.K}, {X.shape[1]}), "
                f"got {initial_centroids.shape}"
            )
        if not np.all(np.isfinite(initial_centroids)):
            raise ValueError("Initial centroids contain non-finite values")

        self.centroids = initial_centroids.copy()
        self.labels = None
        self.phase = None
        self.phase_history = []
        self.converged = False
        self.timings.reset()
        self.n_iters_actual = 0
        self.empty_clusters = EmptyClusterTracker(
            self.K, patience=self.empty_cluster_patience, logger=self.logger
        )

        with self.timings.measure(self._enter(Phase.INITIALIZE)):
            self.initialize(X)

        movement = np.zeros(self.K, dtype=np.float64)
        for i in range(self.n_iters):
            with self.timings.measure(self._enter(Phase.REBUILD_CENTROID_TREE)) as t_rebuild:
                self.rebuild(self.centroids, movement)
            with self.timings.measure(self._enter(Phase.TRAVERSE)) as t_assign:
                self.labels = self.assign_clusters(X, self.centroids)
            with self.timings.measure(self._enter(Phase.REDUCE)) as t_update:
                new_centroids = self.update_centroids(X, self.labels)

            self._enter(Phase.CHECK_CONVERGENCE)
            self.n_iters_actual = i + 1
            diff = new_centroids - self.centroids
            movement = np.sqrt(np.sum(diff * diff, axis=1))
            max_change = float(np.max(movement))
            self.converged = max_change < self.tol

            if self.logger and (i == 0 or (i + 1) % 10 == 0 or self.converged):
                status = " (converged)" if self.converged else ""
                self.logger.info(
                    f"  Iteration {i + 1}/{self.n_iters}{status} "
                    f"(T_rebuild={t_rebuild.elapsed:.6f}s, "
                    f"T_assign={t_assign.elapsed:.6f}s, "
                    f"T_update={t_update.elapsed:.6f}s, "
                    f"max_change={max_change:.2e})"
                )

            self.centroids = new_centroids

            if self.converged:
                self._enter(Phase.CONVERGED)
                if self.logger:
                    self.logger.info(
                        f"  Convergence reached after {i + 1} iterations "
                        f"(max_change={max_change:.2e} < tol={self.tol:.2e})"
                    )
                break
        else:
            self._enter(Phase.MAX_ITERATIONS_REACHED)
            if self.logger:
                self.logger.info(f"  Stopped after reaching n_iters={self.n_iters}")

        self.t_rebuild_total = self.timings.total(Phase.REBUILD_CENTROID_TREE)
        self.t_assign_total = self.timings.total(Phase.TRAVERSE)
        self.t_update_total = self.timings.total(Phase.REDUCE)
        self.t_iter_total = self.t_rebuild_total + self.t_assign_total + self.t_update_total

    @property
    def finished(self) -> bool:
        """fit дошёл до CONVERGED или MAX_ITERATIONS_REACHED."""
        return self.phase in TERMINAL_PHASES

    def initialize(self, X: np.ndarray) -> None:
        """Фаза INITIALIZE: построение структур по неизменным точкам."""

    def rebuild(self, centroids: np.ndarray, movement: np.ndarray) -> None:
        """Фаза REBUILD_CENTROID_TREE: подготовка к обходу с новыми центроидами."""

    def track_empty_clusters(self, counts: np.ndarray) -> None:
        if self.empty_clusters is not None:
            self.empty_clusters.update(counts)

    @abstractmethod
    def assign_clusters(self, X: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """Шаг назначения точек кластерам."""
        raise NotImplementedError

    @abstractmethod
    def update_centroids(self, X: np.ndarray, labels: np.ndarray) -> np.ndarray:
        """Шаг обновления центроидов по присвоенным меткам."""
        raise NotImplementedError
