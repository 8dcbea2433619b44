"""
Состояние фоновых запусков пайплайна (в памяти процесса, сбрасывается при перезапуске).

Запись задачи — обычный dict; /api/status отдаёт её копию без служебных полей.
Пайплайн пишет прогресс из рабочего потока (asyncio.to_thread), поэтому
все изменения _store идут под _lock.
"""
import logging
import shutil
import threading
import time
from datetime import datetime
from typing import Any, Callable

from gge_rollup.config import settings

logger = logging.getLogger(__name__)


_store: dict[str, dict[str, Any]] = {}
_lock = threading.RLock()

MAX_LOGS = 200
_PRIVATE = ("created_at", "output_path", "output_dir")


def create_job(job_id: str, output_dir: str | None = None) -> dict:
    job = {
        "job_id": job_id,
        "status": "processing",
        "progress": 0,
        "step": "Поиск файлов .gge...",
        "error": None,
        "result": None,   # {"processed", "skipped", "rows", "groups"} после завершения
        "logs": [],       # {"time": "HH:MM:SS", "msg": str}
        "output_path": None,
        "output_dir": output_dir,   # папка результатов задачи, удаляется вместе с ней
        "created_at": time.time(),
    }
    with _lock:
        _store[job_id] = job
    return job


def get_job(job_id: str) -> dict | None:
    return _store.get(job_id)


def public_view(job: dict) -> dict:
    with _lock:
        view = {k: v for k, v in job.items() if k not in _PRIVATE}
        view["logs"] = list(job["logs"])
    return view


def append_log(job_id: str, msg: str) -> None:
    with _lock:
        job = _store.get(job_id)
        if job is None:
            return
        job["logs"].append({"time": datetime.now().strftime("%H:%M:%S"), "msg": msg})
        del job["logs"][:-MAX_LOGS]


def update_job(job_id: str, **kwargs) -> None:
    with _lock:
        if job_id not in _store:
            logger.warning("update_job: задача %s не найдена", job_id)
            return
        if kwargs.get("step"):
            append_log(job_id, kwargs["step"])
        _store[job_id].update(kwargs)


def progress_callback(job_id: str) -> Callable[[int, str], None]:
    """progress_cb для run_pipeline: пишет процент и шаг в задачу."""
    def report(pct: int, step: str) -> None:
        update_job(job_id, progress=pct, step=step)
    return report


def complete_job(job_id: str, output_path: str, result: dict[str, Any]) -> None:
    update_job(
        job_id,
        status="completed",
        progress=100,
        step="Сводный отчёт готов к скачиванию",
        output_path=output_path,
        result=result,
    )


def fail_job(job_id: str, error: str) -> None:
    append_log(job_id, f"Ошибка: {error}")
    update_job(job_id, status="failed", error=error, step="Запуск прерван")


def cleanup_expired_jobs() -> int:
    """Удаляет задачи старше JOB_TTL_MINUTES вместе с их папками, возвращает их число."""
    deadline = time.time() - settings.JOB_TTL_MINUTES * 60
    with _lock:
        expired = [_store.pop(jid) for jid, job in list(_store.items()) if job["created_at"] < deadline]
    for job in expired:
        if job.get("output_dir"):
            shutil.rmtree(job["output_dir"], ignore_errors=True)
    if expired:
        logger.info("Удалено устаревших задач: %d", len(expired))
    return len(expired)
