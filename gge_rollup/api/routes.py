"""
FastAPI роутер — /api/generate, /api/status/{job_id}, /api/download/{job_id}, /api/data
"""
import asyncio
import logging
import uuid
from pathlib import Path

from fastapi import APIRouter, BackgroundTasks, HTTPException
from fastapi.responses import FileResponse

from gge_rollup.config import Settings, settings
from gge_rollup.services.excel_service import ReportWriteError, publish_report, read_grouped_rows
from gge_rollup.services.pipeline_service import run_pipeline
from gge_rollup.utils.job_store import (
    append_log,
    cleanup_expired_jobs,
    complete_job,
    create_job,
    fail_job,
    get_job,
    progress_callback,
    public_view,
)

router = APIRouter()
logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def get_settings() -> Settings:
    return settings


def _job_settings(base: Settings, job_id: str) -> Settings:
    """Каждая задача пишет в свою папку OUTPUT_DIR/jobs/<job_id>."""
    return base.model_copy(update={"OUTPUT_DIR": str(base.output_dir / "jobs" / job_id)})


def _job_or_404(job_id: str) -> dict:
    job = get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Задача с таким job_id не найдена.")
    return job


# ─────────────────────────────────────────────────────────────────
# POST /api/generate
# ─────────────────────────────────────────────────────────────────

@router.post("/generate")
async def generate(background_tasks: BackgroundTasks):
    """Запускает обработку папки INPUT_DIR; ход выполнения — через /status."""
    cleanup_expired_jobs()

    base = get_settings()
    job_id = str(uuid.uuid4())
    run_settings = _job_settings(base, job_id)
    create_job(job_id, output_dir=str(run_settings.output_dir))
    background_tasks.add_task(_run_generation, job_id, run_settings, base.combined_path)

    return {"job_id": job_id, "status": "processing"}


# ─────────────────────────────────────────────────────────────────
# GET /api/status/{job_id}
# ─────────────────────────────────────────────────────────────────

@router.get("/status/{job_id}")
async def get_status(job_id: str):
    return public_view(_job_or_404(job_id))


# ─────────────────────────────────────────────────────────────────
# GET /api/download/{job_id}
# ─────────────────────────────────────────────────────────────────

@router.get("/download/{job_id}")
async def download(job_id: str):
    job = _job_or_404(job_id)
    if job["status"] != "completed":
        raise HTTPException(status_code=400, detail=f"Задача ещё не завершена. Текущий статус: {job['status']}")

    output_path = job.get("output_path")
    if not output_path or not Path(output_path).exists():
        raise HTTPException(status_code=404, detail="Файл отчёта не найден.")

    return FileResponse(path=output_path, media_type=XLSX_MEDIA_TYPE, filename=Path(output_path).name)


# ─────────────────────────────────────────────────────────────────
# GET /api/data
# ─────────────────────────────────────────────────────────────────

@router.get("/data")
async def data():
    """Строки GroupedData последнего опубликованного отчёта, у которых заполнены все колонки."""
    path = get_settings().combined_path
    if not path.exists():
        raise HTTPException(status_code=404, detail="Сводный отчёт ещё не сформирован.")
    try:
        return await asyncio.to_thread(read_grouped_rows, path)
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


# ─────────────────────────────────────────────────────────────────
# Фоновая задача
# ─────────────────────────────────────────────────────────────────

async def _run_generation(job_id: str, run_settings: Settings, shared_path: Path) -> None:
    """
    Пайплайн синхронный — выполняется в отдельном потоке.
    Отчёт задачи остаётся в её папке (/download); копия публикуется в shared_path для /data.
    """
    try:
        report = await asyncio.to_thread(
            run_pipeline, run_settings, None, None, progress_callback(job_id),
        )
    except Exception as exc:
        logger.exception("[%s] Ошибка обработки", job_id)
        fail_job(job_id, str(exc))
        return

    for r in report.skipped:
        append_log(job_id, f"Пропущен {r.path.name}: {r.error}")
    logger.info("[%s] обработано %d, пропущено %d", job_id, len(report.processed), len(report.skipped))

    try:
        await asyncio.to_thread(publish_report, report.output_path, shared_path)
    except ReportWriteError as e:
        logger.error("[%s] Отчёт не опубликован: %s", job_id, e)
        append_log(job_id, f"Отчёт не опубликован для /data: {e}")

    complete_job(job_id, str(report.output_path), {
        "processed": len(report.processed),
        "skipped": [r.path.name for r in report.skipped],
        "rows": len(report.main_rows),
        "groups": len(report.grouped),
    })
