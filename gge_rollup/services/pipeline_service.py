"""
pipeline_service.py — обработка всей папки .gge и сборка сводного отчёта.

  поиск файлов
  → по каждому документу: чтение → извлечение → итог → строки MainData
  → классификация НЛСР → группировка → ТЭП (GroupedData и DetailedData)
  → запись combined_output.xlsx

Ошибка одного документа не прерывает запуск: документ пропускается,
причина попадает в лог и в PipelineReport. Фатальны только отсутствие
входных файлов и ошибка записи сводного отчёта.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from gge_rollup.config import Settings
from gge_rollup.models.gge_model import DocumentSummary
from gge_rollup.models.report_model import (
    DetailedRow,
    DetailRow,
    GroupedRow,
    NLSRMappingEntry,
    TepTable,
)
from gge_rollup.services.aggregate_service import group_rows, project_rows
from gge_rollup.services.excel_service import (
    ReportWriteError,
    write_combined_report,
    write_document_workbook,
    write_lsr_summary,
)
from gge_rollup.services.gge_service import (
    DocumentParseError,
    DocumentStructureError,
    extract_rows,
    read_document,
)
from gge_rollup.services.mapping_service import (
    apply_unit_metric,
    classify,
    load_nlsr_mapping,
    load_tep_mapping,
)

logger = logging.getLogger(__name__)

GGE_SUFFIX = ".gge"


class NoInputDocumentsError(RuntimeError):
    """Во входной папке нет ни одного .gge файла."""


@dataclass
class DocumentResult:
    """Итог обработки одного файла: строки при успехе, причина при ошибке."""
    path: Path
    rows: list[DetailRow] = field(default_factory=list)
    summary: DocumentSummary | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PipelineReport:
    output_path: Path
    results: list[DocumentResult]
    main_rows: list[DetailRow]
    grouped: list[GroupedRow]
    detailed: list[DetailedRow]
    extra_outputs: list[Path] = field(default_factory=list)

    @property
    def processed(self) -> list[DocumentResult]:
        return [r for r in self.results if r.ok]

    @property
    def skipped(self) -> list[DocumentResult]:
        return [r for r in self.results if not r.ok]


# ─── Поиск файлов ────────────────────────────────────────────────

def discover_documents(input_dir: Path, skip_dirs: list[str] | None = None) -> list[Path]:
    """
    Рекурсивный поиск *.gge (регистр расширения не важен).
    Папки из skip_dirs (без учёта регистра) не просматриваются.
    """
    skip = {d.lower() for d in skip_dirs or []}
    found: list[Path] = []

    def walk(folder: Path) -> None:
        for entry in sorted(folder.iterdir()):
            if entry.is_dir():
                if entry.name.lower() in skip:
                    continue
                walk(entry)
            elif entry.is_file() and entry.suffix.lower() == GGE_SUFFIX:
                found.append(entry)

    if input_dir.is_dir():
        walk(input_dir)
    return found


def document_type(path: Path, input_dir: Path) -> str:
    """Type строки — первая папка пути относительно входной папки ("" для файлов в корне)."""
    try:
        parts = path.relative_to(input_dir).parts
    except ValueError:
        return ""
    return parts[0] if len(parts) > 1 else ""


def document_stem(path: Path, input_dir: Path) -> str:
    """Имя книги документа: путь относительно входной папки через "_" (Жилье/a.gge → Жилье_a)."""
    try:
        rel = path.relative_to(input_dir)
    except ValueError:
        return path.stem
    return "_".join(rel.with_suffix("").parts)


# ─── Один документ ───────────────────────────────────────────────

def process_document(path: Path, input_dir: Path, marker_prefix: str) -> DocumentResult:
    """Чтение → извлечение → итог. Любая ошибка документа возвращается как результат."""
    try:
        tree = read_document(path)
        summary, rows = extract_rows(
            tree,
            source_filename=path.name,
            doc_type=document_type(path, input_dir),
            marker_prefix=marker_prefix,
        )
    except (DocumentStructureError, DocumentParseError) as e:
        logger.error("Документ пропущен: %s — %s", path.name, e)
        return DocumentResult(path=path, error=str(e))
    except Exception as e:
        logger.exception("Документ пропущен из-за непредвиденной ошибки: %s", path.name)
        return DocumentResult(path=path, error=f"{type(e).__name__}: {e}")

    if not rows:
        logger.warning("Документ %s не содержит строк смет — в сводку не попадает", path.name)
    else:
        logger.info("Обработан файл: %s (строк: %d)", path.name, len(rows))
    return DocumentResult(path=path, rows=rows, summary=summary)


# ─── Этапы над всеми строками ────────────────────────────────────

def classify_rows(rows: list[DetailRow], mapping: list[NLSRMappingEntry]) -> list[DetailRow]:
    classified: list[DetailRow] = []
    for row in rows:
        c = classify(row.description, mapping)
        classified.append(row.model_copy(update={"nlsr_group": c.group, "keyword": c.keyword}))
    return classified


# ─── Публичный API ────────────────────────────────────────────────

def run_pipeline(
    settings: Settings,
    nlsr: list[NLSRMappingEntry] | None = None,
    tep: TepTable | None = None,
    progress_cb: Callable[[int, str], None] | None = None,
) -> PipelineReport:
    """
    Полный прогон по settings.input_dir.
    nlsr / tep: готовые справочники; если не переданы — читаются из NLSR_PATH / TEP_PATH.
    progress_cb(progress: int, step: str) — для фоновых задач API (необязательно).
    """
    def progress(pct: int, msg: str) -> None:
        if progress_cb:
            progress_cb(pct, msg)

    input_dir = settings.input_dir
    files = discover_documents(input_dir, settings.SKIP_DIRS)
    if not files:
        raise NoInputDocumentsError(f"Файлы .gge не найдены в папке: {input_dir}")
    logger.info("Найдено файлов .gge: %d в %s", len(files), input_dir)

    if nlsr is None:
        nlsr = load_nlsr_mapping(Path(settings.NLSR_PATH))
    if tep is None:
        tep = load_tep_mapping(Path(settings.TEP_PATH))

    # 1. Документы — строго последовательно
    results: list[DocumentResult] = []
    all_rows: list[DetailRow] = []
    for i, path in enumerate(files, 1):
        result = process_document(path, input_dir, settings.MARKER_PREFIX)
        results.append(result)
        all_rows.extend(result.rows)
        progress(int(5 + i / len(files) * 75), f"Обработано файлов: {i}/{len(files)}")

    # 2. Классификация, группировка, ТЭП
    progress(85, "Классификация и группировка...")
    main_rows = classify_rows(all_rows, nlsr)
    grouped = [apply_unit_metric(r, tep) for r in group_rows(main_rows)]
    detailed = [apply_unit_metric(r, tep) for r in project_rows(main_rows)]

    # 3. Запись — только после обработки всех документов
    progress(95, "Запись Excel...")
    output_path = write_combined_report(main_rows, grouped, detailed, settings.combined_path)

    extra: list[Path] = []
    summarized = [r for r in results if r.ok and r.summary is not None]
    summaries = [r.summary for r in summarized]
    # Дополнительные файлы не влияют на успех запуска
    if settings.WRITE_DOCUMENT_WORKBOOKS:
        for r in summarized:
            try:
                extra.append(write_document_workbook(
                    r.summary, settings.documents_dir, document_stem(r.path, input_dir)
                ))
            except ReportWriteError as e:
                logger.error("Книга документа %s не записана: %s", r.path.name, e)
    if settings.WRITE_LSR_SUMMARY and summaries:
        try:
            extra.append(write_lsr_summary(summaries, settings.output_dir / settings.LSR_SUMMARY_FILENAME))
        except ReportWriteError as e:
            logger.error("Файл LSR не записан: %s", e)

    report = PipelineReport(
        output_path=output_path,
        results=results,
        main_rows=main_rows,
        grouped=grouped,
        detailed=detailed,
        extra_outputs=extra,
    )
    logger.info(
        "Готово: обработано %d, пропущено %d, строк %d, групп %d → %s",
        len(report.processed), len(report.skipped), len(main_rows), len(grouped), output_path,
    )
    return report
