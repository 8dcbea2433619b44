"""
gge_service.py — разбор одного документа .gge.

Поддерживаются две формы документа:
  ЛСР  (Construction/Object/Estimate)        — одна строка сметы + итог Itog
  ОСР  (Construction/Object/LocalEstimate[]) — строка на каждый локальный расчёт

Обязательные узлы ЛСР: Object, Estimate, EstimatePrice, Summary.
Отсутствие любого из них — DocumentStructureError (документ пропускается).
"""
import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path

from gge_rollup.models.gge_model import (
    CostItem,
    DocumentHeader,
    DocumentSummary,
    PriceLevel,
)
from gge_rollup.models.report_model import DetailRow
from gge_rollup.services.rollup_service import compute_rollup
from gge_rollup.utils.amount_utils import ZERO, month_to_quarter, parse_int, round2, to_amount
from gge_rollup.utils.tree_utils import Composite, Node, find_node, flatten, read_tree

logger = logging.getLogger(__name__)

DEFAULT_MARKER_PREFIX = "ТЦ_"

# "ЛСР 02-01-01", "ЛС-02-01-03" → ("02", "01")
_JUSTIFICATION_RE = re.compile(r"ЛС(?:Р)?[\s-]*(\d{2})-(\d{2})-", re.IGNORECASE)
_ESTIMATE_NUM_RE  = re.compile(r"^\s*(\d{2})-(\d{2})-")
_QUOTED_RE        = re.compile(r"«([^»]+)»")


class DocumentStructureError(ValueError):
    """В документе нет обязательного узла."""


class DocumentParseError(ValueError):
    """Файл не читается или не является корректным XML."""


# ─── Чтение ──────────────────────────────────────────────────────

def read_document(path: Path) -> Composite:
    try:
        return read_tree(path)
    except ET.ParseError as e:
        raise DocumentParseError(f"Некорректный XML в {path.name}: {e}") from e
    except OSError as e:
        raise DocumentParseError(f"Не удалось прочитать {path.name}: {e}") from e


def _construction(tree: Composite) -> Composite:
    """Корень Construction; если корневой элемент называется иначе — он сам."""
    root = tree.get("Construction")
    if root is None and tree.children:
        root = tree.children[0][1]
    if not isinstance(root, Composite):
        raise DocumentStructureError("Пустой документ: корневой элемент не содержит данных")
    return root


def _require(node: Node | None, name: str) -> Composite:
    if not isinstance(node, Composite):
        raise DocumentStructureError(f"Узел <{name}> не найден")
    return node


def _document_object(tree: Composite) -> tuple[Composite, Composite]:
    root = _construction(tree)
    return root, _require(find_node(root, "Object"), "Object")


# ─── Фильтр позиций ──────────────────────────────────────────────

def filter_items(
    section: Composite,
    marker_prefix: str = DEFAULT_MARKER_PREFIX,
) -> list[CostItem]:
    """
    Позиции раздела, у которых Material/Code начинается с marker_prefix.
    Остальные позиции отбрасываются без ошибки.
    """
    items_node = section.get("Items")
    if not isinstance(items_node, Composite):
        return []

    section_code = section.text("Code")
    section_name = section.text("Name")
    kept: list[CostItem] = []
    for item in items_node.get_all("Item"):
        if not isinstance(item, Composite):
            continue
        code = item.path_text("Material", "Code")
        if not code.startswith(marker_prefix):
            continue
        kept.append(CostItem(
            section_code=section_code,
            section_name=section_name,
            data=flatten(item),
        ))
    return kept


def extract_items(estimate: Composite, marker_prefix: str = DEFAULT_MARKER_PREFIX) -> list[CostItem]:
    sections = estimate.get("Sections")
    if not isinstance(sections, Composite):
        return []
    items: list[CostItem] = []
    for section in sections.get_all("Section"):
        if isinstance(section, Composite):
            items.extend(filter_items(section, marker_prefix))
    return items


# ─── Реквизиты ───────────────────────────────────────────────────

def _price_level(node: Node | None, quarter_first: bool = False) -> tuple[str, str, int | None]:
    """
    (Year, Month, Quarter) уровня цен.
    ЛСР: квартал выводится из месяца, если он есть. ОСР (quarter_first): явный Quarter
    главнее, месяц используется только при его отсутствии.
    """
    if not isinstance(node, Composite):
        return "", "", None
    year = node.text("Year")
    month = node.text("Month")
    quarter = parse_int(node.text("Quarter"))
    if quarter_first and quarter is not None:
        return year, month, quarter
    if month:
        return year, month, month_to_quarter(month)
    return year, "", quarter


def extract_header(root: Composite, obj: Composite, estimate: Composite) -> DocumentHeader:
    base_year, base_month, base_quarter = _price_level(estimate.get("PriceLevelBase"))
    cur_year, cur_month, cur_quarter = _price_level(estimate.get("PriceLevelCur"))
    return DocumentHeader(
        FileNum=root.text("Num"),
        FileName=root.text("Name"),
        ObjectNum=obj.text("Num"),
        ObjectName=obj.text("Name"),
        RegionCode=obj.path_text("Region", "Code"),
        RegionName=obj.path_text("Region", "Name"),
        SubRegion=obj.path_text("SubRegion", "Name"),
        EstNum=estimate.text("Num"),
        EstName=estimate.text("Name"),
        EstType=estimate.text("EstimateType"),
        IndexType=estimate.text("IndexType"),
        EstDateYear=estimate.path_text("Date", "Year"),
        EstDateMonth=estimate.path_text("Date", "Month"),
        EstDateDay=estimate.path_text("Date", "Day"),
        EstDateQuarter=month_to_quarter(estimate.path_text("Date", "Month")),
        Reason=estimate.text("Reason"),
        BaseYear=base_year,
        BaseMonth=base_month,
        BaseQuarter=base_quarter,
        CurYear=cur_year,
        CurMonth=cur_month,
        CurQuarter=cur_quarter,
    )


def construction_display_name(name: str) -> str:
    """Стройка «Школа на 550 мест» → Школа на 550 мест."""
    m = _QUOTED_RE.search(name)
    return m.group(1) if m else name.strip()


def parse_justification(reason: str, estimate_num: str = "") -> tuple[str, str]:
    """Num 1 / Num 2 из обоснования "ЛСР 02-01-01"; иначе из номера сметы "02-01-01"."""
    m = _JUSTIFICATION_RE.search(reason or "")
    if m is None:
        m = _ESTIMATE_NUM_RE.search(estimate_num or "")
    return (m.group(1), m.group(2)) if m else ("", "")


# ─── Сводка документа (ЛСР) ──────────────────────────────────────

def summarize_estimate(
    tree: Composite,
    source_filename: str,
    marker_prefix: str = DEFAULT_MARKER_PREFIX,
) -> DocumentSummary:
    """Сводка документа формы ЛСР (Object/Estimate)."""
    root, obj = _document_object(tree)
    estimate = _require(obj.get("Estimate"), "Estimate")
    price = _require(estimate.get("EstimatePrice"), "EstimatePrice")
    summary = _require(price.get("Summary"), "Summary")

    flat_summary = flatten(summary)
    blocks = {
        name: flatten(price.get(name))
        for name in price.names()
        if name != "Summary"
    }
    items = extract_items(estimate, marker_prefix)
    logger.debug("%s: блоков EstimatePrice %d, позиций %s* %d",
                 source_filename, len(blocks), marker_prefix, len(items))

    current = compute_rollup(flat_summary, PriceLevel.CURRENT, blocks, items)
    base = compute_rollup(flat_summary, PriceLevel.BASE, blocks, items)

    if items:
        for level in PriceLevel:
            total = sum((to_amount(it.data.get(level.item_total_key)) for it in items), ZERO)
            flat_summary[f"{level.item_total_key}_Items"] = str(round2(total))

    return DocumentSummary(
        source_filename=source_filename,
        header=extract_header(root, obj, estimate),
        construction_name=construction_display_name(root.text("Name")),
        flat_summary=flat_summary,
        blocks=blocks,
        items=items,
        current=current,
        base=base,
    )


# ─── Строки отчёта ───────────────────────────────────────────────

def extract_rows(
    tree: Composite,
    source_filename: str,
    doc_type: str = "",
    marker_prefix: str = DEFAULT_MARKER_PREFIX,
) -> tuple[DocumentSummary | None, list[DetailRow]]:
    """
    Документ → (сводка ЛСР или None для ОСР, строки MainData без классификации).
    """
    root, obj = _document_object(tree)
    name = construction_display_name(root.text("Name"))
    name2 = obj.text("Name")

    if isinstance(obj.get("Estimate"), Composite):
        summary = summarize_estimate(tree, source_filename, marker_prefix)
        return summary, [_estimate_row(summary, name, name2, doc_type)]

    local_estimates = obj.get_all("LocalEstimate")
    if local_estimates:
        return None, _local_estimate_rows(obj, local_estimates, source_filename, name, name2, doc_type)

    raise DocumentStructureError("Узел <Estimate> не найден")


def _estimate_row(summary: DocumentSummary, name: str, name2: str, doc_type: str) -> DetailRow:
    h = summary.header
    itog = summary.current
    num1, num2 = parse_justification(h.Reason, h.EstNum)
    return DetailRow(
        num=h.EstNum,
        reason=h.Reason,
        description=h.EstName,
        building=itog.building,
        mounting=itog.mounting,
        equipment=itog.equipment,
        other=itog.other,
        total=itog.grand_total,
        year=parse_int(h.CurYear),
        quarter=h.CurQuarter,
        name=name,
        name2=name2,
        type=doc_type,
        num1=num1,
        num2=num2,
        name_file=summary.source_filename,
    )


def _local_estimate_rows(
    obj: Composite,
    local_estimates: list[Node],
    source_filename: str,
    name: str,
    name2: str,
    doc_type: str,
) -> list[DetailRow]:
    year, _, quarter = _price_level(obj.get("PriceLevel"), quarter_first=True)
    rows: list[DetailRow] = []
    for est in local_estimates:
        if not isinstance(est, Composite):
            continue
        reason = est.text("Reason")
        if "итого" in reason.lower():
            continue
        num = est.text("Num")
        num1, num2 = parse_justification(reason, num)
        rows.append(DetailRow(
            num=num,
            reason=reason,
            description=est.text("Name"),
            building=round2(to_amount(est.text("Building"))),
            mounting=round2(to_amount(est.text("Mounting"))),
            equipment=round2(to_amount(est.text("Equipment"))),
            other=round2(to_amount(est.text("Other"))),
            total=round2(to_amount(est.text("Total"))),
            year=parse_int(year),
            quarter=quarter,
            name=name,
            name2=name2,
            type=doc_type,
            num1=num1,
            num2=num2,
            name_file=source_filename,
        ))
    return rows
