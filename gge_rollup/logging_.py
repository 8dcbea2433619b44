"""Настройка логирования для CLI и API: stdlib logging, вывод в консоль."""
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    # повторный вызов (перезагрузка uvicorn) не должен дублировать вывод
    for h in list(root.handlers):
        if getattr(h, "_gge_rollup", False):
            root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    handler._gge_rollup = True  # type: ignore[attr-defined]
    root.addHandler(handler)
