"""
mapping_service.py — внешние справочники и сопоставление строк с ними.

NLSR.xlsx: Name (группа) + Keyword (подстрока описания); порядок строк значим,
           побеждает первое совпадение.
TEP.xlsx:  Type, Name, [Name2], Num 1, Num 2, Tep — коэффициент ТЭП
           (площадь, протяжённость и т.п.) для расчёта стоимости на единицу.

Отсутствующий файл справочника не ошибка: пайплайн работает с пустым справочником.
"""
import logging
import zipfile
from decimal import Decimal
from pathlib import Path
from typing import TypeVar

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from gge_rollup.models.report_model import (
    Classification,
    DetailedRow,
    GroupedRow,
    NLSRMappingEntry,
    TepKey,
    TepTable,
)
from gge_rollup.utils.amount_utils import parse_amount, round2

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT", GroupedRow, DetailedRow)


def _read_first_sheet(path: Path) -> list[tuple]:
    """Строки первого листа. Нечитаемый файл (битый, занят, каталог) → [] с предупреждением."""
    try:
        wb = load_workbook(path, read_only=True, data_only=True)
        try:
            ws = wb.worksheets[0]
            return [tuple(r) for r in ws.iter_rows(values_only=True)]
        finally:
            wb.close()
    except (OSError, zipfile.BadZipFile, KeyError, InvalidFileException) as e:
        logger.warning("Не удалось прочитать справочник %s: %s — используется пустой", path, e)
        return []


def _cell_text(value) -> str:
    """Значение ячейки → строка ключа. 2.0 → "2", None → ""."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _num_part(value) -> str:
    """
    Num 1 / Num 2: Excel превращает "02" в число 2 — возвращаем двузначную запись,
    как в обосновании "ЛСР 02-01-…".
    """
    text = _cell_text(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool) and text.isdigit():
        return text.zfill(2)
    return text


# ─── NLSR: классификация ─────────────────────────────────────────

def load_nlsr_mapping(path: Path) -> list[NLSRMappingEntry]:
    """Справочник групп НЛСР. Нет файла → пустой список (с предупреждением)."""
    if not path.exists():
        logger.warning("Справочник НЛСР не найден: %s — классификация пропускается", path)
        return []

    rows = _read_first_sheet(path)
    if not rows:
        return []

    header = [_cell_text(h).lower() for h in rows[0]]
    try:
        ni = header.index("name")
        ki = header.index("keyword")
    except ValueError:
        logger.warning("В %s нет колонок Name/Keyword — справочник НЛСР пуст", path.name)
        return []

    mapping: list[NLSRMappingEntry] = []
    for row in rows[1:]:
        name = _cell_text(row[ni]) if ni < len(row) else ""
        keyword = _cell_text(row[ki]) if ki < len(row) else ""
        if name and keyword:
            mapping.append(NLSRMappingEntry(name=name, keyword=keyword))

    logger.info("Справочник НЛСР: %d записей", len(mapping))
    return mapping


def classify(description: str, mapping: list[NLSRMappingEntry]) -> Classification:
    """
    Первая запись справочника, чьё ключевое слово входит в описание
    (без учёта регистра). Совпадения нет → пустые группа и ключ.
    """
    text = (description or "").lower()
    for entry in mapping:
        if entry.keyword.lower() in text:
            return Classification(group=entry.name, keyword=entry.keyword)
    return Classification()


# ─── TEP: удельные показатели ────────────────────────────────────

def load_tep_mapping(path: Path) -> TepTable:
    """
    Справочник ТЭП. Ключ — (Type, Name, Num 1, Num 2); если в строке заполнена
    колонка Name2, ключ уточняется: (Type, Name, Name2, Num 1, Num 2).
    Нечисловой Tep — строка пропускается.
    """
    if not path.exists():
        logger.warning("Справочник ТЭП не найден: %s — удельные показатели не считаются", path)
        return {}

    rows = _read_first_sheet(path)
    if not rows:
        return {}

    header = [_cell_text(h) for h in rows[0]]
    col = {name: i for i, name in enumerate(header) if name}
    required = ("Type", "Name", "Num 1", "Num 2", "Tep")
    missing = [c for c in required if c not in col]
    if missing:
        logger.warning("В %s нет колонок %s — справочник ТЭП пуст", path.name, missing)
        return {}

    def cell(row: tuple, name: str):
        i = col.get(name)
        return row[i] if i is not None and i < len(row) else None

    table: TepTable = {}
    skipped = 0
    for row in rows[1:]:
        tep = parse_amount(cell(row, "Tep"))
        if tep is None:
            skipped += 1
            continue
        type_ = _cell_text(cell(row, "Type"))
        name = _cell_text(cell(row, "Name"))
        name2 = _cell_text(cell(row, "Name2"))
        num1 = _num_part(cell(row, "Num 1"))
        num2 = _num_part(cell(row, "Num 2"))
        if name2:
            table[(type_, name, name2, num1, num2)] = tep
        else:
            table[(type_, name, num1, num2)] = tep

    if skipped:
        logger.info("Справочник ТЭП: пропущено %d строк с нечисловым Tep", skipped)
    logger.info("Справочник ТЭП: %d записей", len(table))
    return table


def tep_keys(row: GroupedRow | DetailedRow) -> tuple[TepKey, TepKey]:
    """(ключ с Name2, базовый ключ) — в порядке поиска."""
    return (
        (row.type, row.name, row.name2, row.num1, row.num2),
        (row.type, row.name, row.num1, row.num2),
    )


def lookup_tep(row: GroupedRow | DetailedRow, tep_table: TepTable) -> Decimal | None:
    for k in tep_keys(row):
        if k in tep_table:
            return tep_table[k]
    return None


def apply_unit_metric(row: RowT, tep_table: TepTable) -> RowT:
    """
    Копия строки с TEP и Kvadrat = всего / TEP.
    Нет записи или коэффициент ровно 0 → оба поля пустые (None), а не 0.
    """
    tep = lookup_tep(row, tep_table)
    if tep is None or tep == 0:
        return row.model_copy(update={"tep": None, "metric": None})
    return row.model_copy(update={"tep": tep, "metric": round2(row.total / tep)})
