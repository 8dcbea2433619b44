"""
excel_service.py — запись результатов в Excel.

Сводный отчёт (combined_output.xlsx):
  MainData     — строка на каждую локальную смету каждого документа
  GroupedData  — суммы "всего" по составному ключу + TEP/Kvadrat
  DetailedData — узкая проекция MainData + TEP/Kvadrat

Дополнительно (по настройке):
  книга на каждый документ — Header, EstimatePrice, блоки, Items, Itog_Current, Itog_Base, LSR_Cur
  LSR_combined.xlsx        — по строке LSR_Cur на документ
"""
import contextlib
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Callable

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from gge_rollup.models.gge_model import LSR_COLUMNS, DocumentSummary
from gge_rollup.models.report_model import (
    DETAILED_COLUMNS,
    GROUPED_COLUMNS,
    MAIN_COLUMNS,
    DetailedRow,
    DetailRow,
    GroupedRow,
)

logger = logging.getLogger(__name__)

SHEET_MAIN     = "MainData"
SHEET_GROUPED  = "GroupedData"
SHEET_DETAILED = "DetailedData"

# ─── Цвета ──────────────────────────────────────────────────────
C_HEADER   = "4472C4"   # синий — заголовок
C_FIELD    = "DCE6F1"   # голубой — колонка "Field" вертикальных листов
C_TOTAL    = "E2EFDA"   # зелёный — итоговая строка Itog

# Колонки с денежными суммами
_MONEY_COLUMNS = {
    "строительных работ", "монтажных работ", "оборудования", "прочих затрат", "всего", "Kvadrat",
}
MONEY_FORMAT = "#,##0.00"


class ReportWriteError(RuntimeError):
    """Сводный отчёт не удалось сохранить — запуск считается неуспешным."""


def _fill(hex_color: str) -> PatternFill:
    return PatternFill(fill_type="solid", fgColor=hex_color)


def _font(bold=False, color="000000", size=10) -> Font:
    return Font(bold=bold, color=color, size=size, name="Calibri")


def _border() -> Border:
    thin = Side(style="thin", color="CCCCCC")
    return Border(left=thin, right=thin, top=thin, bottom=thin)


def _align(horizontal="left", wrap=False) -> Alignment:
    return Alignment(horizontal=horizontal, vertical="center", wrap_text=wrap)


def _write_cell(ws, row: int, col: int, value, fill=None, font=None, align=None, border=True, number_format=None):
    cell = ws.cell(row=row, column=col, value=value)
    if fill:
        cell.fill = fill
    if font:
        cell.font = font
    if align:
        cell.alignment = align
    else:
        cell.alignment = _align()
    if border:
        cell.border = _border()
    if number_format:
        cell.number_format = number_format
    return cell


def _write_header(ws, columns: list[str], row: int = 1) -> None:
    for col, h in enumerate(columns, 1):
        _write_cell(ws, row, col, h,
                    fill=_fill(C_HEADER),
                    font=_font(bold=True, color="FFFFFF"),
                    align=_align("center"))


def _fit_columns(ws, columns: list[str], records: list[list], min_width: int = 8, max_width: int = 60) -> None:
    for i, h in enumerate(columns, 1):
        longest = max([len(str(h))] + [len(str(r[i - 1])) for r in records if r[i - 1] is not None])
        ws.column_dimensions[get_column_letter(i)].width = max(min_width, min(longest + 2, max_width))


def _safe_sheet_name(name: str) -> str:
    # Ограничение Excel: 31 символ и без []:*?/\
    for ch in "[]:*?/\\":
        name = name.replace(ch, "_")
    return name[:31] or "Sheet"


def _write_atomic(output_path: Path, write: Callable[[Path], None]) -> Path:
    """
    write(tmp) пишет во временный файл в той же папке, затем os.replace
    подменяет output_path целиком: читатель видит старый или новый файл, но не половину.
    """
    tmp = output_path.with_name(f".{uuid.uuid4().hex}.{output_path.name}")
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        write(tmp)
        os.replace(tmp, output_path)
    except OSError as e:
        with contextlib.suppress(OSError):
            tmp.unlink(missing_ok=True)
        raise ReportWriteError(f"Не удалось сохранить {output_path}: {e}") from e
    return output_path


def _save(wb: Workbook, output_path: Path) -> Path:
    return _write_atomic(output_path, lambda tmp: wb.save(str(tmp)))


def publish_report(source: Path, output_path: Path) -> Path:
    """Копия готового отчёта под общим именем (атомарная подмена)."""
    _write_atomic(output_path, lambda tmp: shutil.copyfile(source, tmp))
    logger.info("Отчёт опубликован: %s", output_path)
    return output_path


# ─── Табличные листы ─────────────────────────────────────────────

def _write_table(ws, columns: list[str], records: list[list]) -> None:
    ws.sheet_view.showGridLines = False
    _write_header(ws, columns)
    for r, record in enumerate(records, 2):
        for c, (col_name, value) in enumerate(zip(columns, record), 1):
            if col_name in _MONEY_COLUMNS and value is not None and value != "":
                cell = _write_cell(ws, r, c, value, number_format=MONEY_FORMAT)
                cell.alignment = _align("right")
            else:
                _write_cell(ws, r, c, value)
    _fit_columns(ws, columns, records)
    ws.freeze_panes = "A2"


def write_combined_report(
    main_rows: list[DetailRow],
    grouped: list[GroupedRow],
    detailed: list[DetailedRow],
    output_path: Path,
) -> Path:
    """Три листа в фиксированном порядке колонок. Ошибка записи → ReportWriteError."""
    wb = Workbook()
    wb.remove(wb.active)  # убираем лист по умолчанию

    _write_table(wb.create_sheet(SHEET_MAIN), MAIN_COLUMNS,
                 [r.as_record(MAIN_COLUMNS) for r in main_rows])
    _write_table(wb.create_sheet(SHEET_GROUPED), GROUPED_COLUMNS,
                 [r.as_record(GROUPED_COLUMNS) for r in grouped])
    _write_table(wb.create_sheet(SHEET_DETAILED), DETAILED_COLUMNS,
                 [r.as_record(DETAILED_COLUMNS) for r in detailed])

    _save(wb, output_path)
    logger.info("Сводный отчёт сохранён: %s (строк %d, групп %d)",
                output_path, len(main_rows), len(grouped))
    return output_path


# ─── Книга одного документа ──────────────────────────────────────

def _write_vertical(ws, data: dict, highlight: str | None = None) -> None:
    """Лист "Field | Value" из словаря."""
    ws.sheet_view.showGridLines = False
    _write_header(ws, ["Field", "Value"])
    for r, (k, v) in enumerate(data.items(), 2):
        is_total = highlight is not None and k == highlight
        _write_cell(ws, r, 1, k, fill=_fill(C_TOTAL if is_total else C_FIELD),
                    font=_font(bold=is_total))
        _write_cell(ws, r, 2, "" if v is None else str(v), fill=_fill(C_TOTAL) if is_total else None,
                    font=_font(bold=is_total), align=_align(wrap=True))
    width_k = max([5] + [len(str(k)) for k in data])
    width_v = max([5] + [len(str(v)) for v in data.values()])
    ws.column_dimensions["A"].width = min(width_k + 2, 60)
    ws.column_dimensions["B"].width = min(width_v + 2, 80)
    ws.freeze_panes = "A2"


def write_document_workbook(summary: DocumentSummary, output_dir: Path, stem: str | None = None) -> Path:
    """Книга одного документа: output_dir/<stem>.xlsx (по умолчанию — имя исходного файла)."""
    wb = Workbook()
    wb.remove(wb.active)

    _write_vertical(wb.create_sheet("Header"), summary.header.model_dump())
    _write_vertical(wb.create_sheet("EstimatePrice"), summary.flat_summary)
    for block_name, block in summary.blocks.items():
        _write_vertical(wb.create_sheet(_safe_sheet_name(block_name)), block)

    item_rows = [it.as_row() for it in summary.items]
    item_columns: dict[str, None] = {"SectionCode": None, "SectionName": None}
    for row in item_rows:
        for k in row:
            item_columns[k] = None
    columns = list(item_columns)
    _write_table(wb.create_sheet("Items"), columns,
                 [[row.get(c, "") for c in columns] for row in item_rows])

    _write_vertical(wb.create_sheet("Itog_Current"), summary.current.labelled(), highlight="Итого по смете")
    _write_vertical(wb.create_sheet("Itog_Base"), summary.base.labelled(), highlight="Итого по смете")

    lsr = summary.lsr_row()
    _write_table(wb.create_sheet("LSR_Cur"), LSR_COLUMNS, [[lsr[c] for c in LSR_COLUMNS]])

    output_path = output_dir / f"{stem or Path(summary.source_filename).stem}.xlsx"
    _save(wb, output_path)
    logger.info("Создан файл документа: %s", output_path)
    return output_path


def write_lsr_summary(summaries: list[DocumentSummary], output_path: Path) -> Path:
    """LSR_combined.xlsx — по одной строке LSR_Cur на документ."""
    wb = Workbook()
    ws = wb.active
    ws.title = "LSR_Cur"
    records = []
    for s in summaries:
        lsr = s.lsr_row()
        records.append([lsr[c] for c in LSR_COLUMNS])
    _write_table(ws, LSR_COLUMNS, records)
    _save(wb, output_path)
    logger.info("Создан объединённый файл LSR: %s (%d строк)", output_path, len(records))
    return output_path


# ─── Чтение ──────────────────────────────────────────────────────

def read_grouped_rows(path: Path, complete_only: bool = True) -> list[dict]:
    """
    Строки листа GroupedData как словари.
    complete_only: только строки, где заполнены все колонки (включая TEP/Kvadrat).
    """
    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        if SHEET_GROUPED not in wb.sheetnames:
            raise ValueError(f'Лист "{SHEET_GROUPED}" не найден в {path.name}')
        rows = list(wb[SHEET_GROUPED].iter_rows(values_only=True))
    finally:
        wb.close()

    if not rows:
        return []
    header = [str(h) if h is not None else "" for h in rows[0]]
    records = [
        {h: ("" if v is None else v) for h, v in zip(header, row)}
        for row in rows[1:]
    ]
    if complete_only:
        records = [
            r for r in records
            if all(str(r.get(c, "")).strip() != "" for c in GROUPED_COLUMNS)
        ]
    return records
