import logging


def setup_logger(level: int = logging.INFO) -> logging.Logger:
    """
    Создаёт и настраивает логгер проекта ``dualtree_kmeans``.

    :param level: минимальный уровень логирования
    :return: настроенный экземпляр :class:`logging.Logger`
    """
    logger = logging.getLogger("dualtree_kmeans")
    logger.setLevel(level)

    # Чужие обработчики (например, захват логов в pytest) не учитываются
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Чтобы сообщения не дублировались через root-логгер
    logger.propagate = False

    return logger


def format_problem_prefix(N: int, D: int, K: int) -> str:
    """Текстовый префикс для логов по размерам задачи."""
    return f"[N={N} D={D} K={K}]"
