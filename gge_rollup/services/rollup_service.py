"""
rollup_service.py — расчёт итога сметы (Itog) по плоской сводке.

Каждая величина ищется через упорядоченный список аксессоров: первый,
вернувший число, побеждает; если ни один не сработал — 0.
Нечисловые и отсутствующие значения ошибкой не считаются.

  СНБ               = Материалы − КАЦ   (может быть отрицательной)
  Прямые затраты    = КАЦ + СНБ + Перевозка + ФОТ + ЭММ
  Косвенные затраты = НР + СР
  Итого по смете    = Прямые + Косвенные + Оборудование
"""
import logging
from decimal import Decimal
from typing import Callable

from gge_rollup.models.gge_model import CostItem, FinancialRollup, PriceLevel
from gge_rollup.utils.amount_utils import ZERO, parse_amount, round2, to_amount

logger = logging.getLogger(__name__)

FlatRecord = dict[str, str]
Accessor = Callable[[FlatRecord], Decimal | None]

# Блок EstimatePrice → поле итога (до подстановки суффикса уровня цен)
CATEGORY_FIELDS: dict[str, str] = {
    "Building":   "Total_{sfx}",
    "Mounting":   "Total_{sfx}",
    "Equipment":  "Total_{sfx}",
    "OtherTotal": "{sfx}",
    "Total":      "{sfx}",
}


# ─── Аксессоры ───────────────────────────────────────────────────

def key(name: str) -> Accessor:
    """Аксессор одного ключа плоской сводки."""
    def _get(flat: FlatRecord) -> Decimal | None:
        return parse_amount(flat.get(name))
    return _get


def constant(value: Decimal | None) -> Accessor:
    """Аксессор заранее посчитанного значения (например, суммы по позициям)."""
    def _get(flat: FlatRecord) -> Decimal | None:
        return value
    return _get


def resolve(flat: FlatRecord, accessors: list[Accessor]) -> Decimal:
    for accessor in accessors:
        value = accessor(flat)
        if value is not None:
            return value
    return ZERO


def materials_accessors(level: PriceLevel) -> list[Accessor]:
    sfx = level.value
    return [
        key(f"Materials_Total_{sfx}"),
        key(f"Materials_{sfx}_Total"),
        key(f"{sfx}_Materials_Total"),
        key("Materials_Total"),
    ]


def kac_accessors(level: PriceLevel, items_total: Decimal | None) -> list[Accessor]:
    sfx = level.value
    return [
        constant(items_total),
        key(f"Totals_Items_{sfx}"),
        key("Totals_Items"),
    ]


# ─── Позиции ─────────────────────────────────────────────────────

def sum_items(items: list[CostItem] | None, level: PriceLevel) -> Decimal | None:
    """
    Сумма поля Totals_Current / Totals_Base по отобранным позициям "ТЦ_".
    None, если ни одна позиция этого поля не содержит — тогда КАЦ берётся из сводки.
    """
    field_name = level.item_total_key
    present = [it.data[field_name] for it in items or [] if field_name in it.data]
    if not present:
        return None
    return sum((to_amount(v) for v in present), ZERO)


# ─── Публичный API ────────────────────────────────────────────────

def compute_rollup(
    flat_summary: FlatRecord,
    level: PriceLevel = PriceLevel.CURRENT,
    blocks: dict[str, FlatRecord] | None = None,
    items: list[CostItem] | None = None,
) -> FinancialRollup:
    """
    flat_summary: выровненный блок EstimatePrice/Summary
    blocks:       выровненные блоки Building/Mounting/Equipment/OtherTotal/Total
    items:        отобранные позиции "ТЦ_" (для перекрёстной проверки КАЦ)
    """
    blocks = blocks or {}
    sfx = level.value

    def num(name: str) -> Decimal:
        return to_amount(flat_summary.get(f"{name}_{sfx}"))

    materials = round2(resolve(flat_summary, materials_accessors(level)))
    kac       = round2(resolve(flat_summary, kac_accessors(level, sum_items(items, level))))
    snb       = round2(materials - kac)
    transport = round2(num("Transport"))
    payroll   = round2(num("Salary") - num("MachinistSalaryExtra"))
    machines  = round2(num("MachinesTotal") - num("MachinistSalary"))
    direct    = kac + snb + transport + payroll + machines
    overhead  = round2(num("Overhead"))
    profit    = round2(num("Profit"))
    indirect  = overhead + profit

    categories = {
        block: round2(to_amount(blocks.get(block, {}).get(template.format(sfx=sfx))))
        for block, template in CATEGORY_FIELDS.items()
    }

    if snb < 0:
        logger.debug("СНБ отрицательна (%s): материалы=%s, КАЦ=%s", sfx, materials, kac)

    return FinancialRollup(
        materials=materials,
        kac=kac,
        snb=snb,
        transport=transport,
        payroll=payroll,
        machines=machines,
        direct=direct,
        overhead=overhead,
        profit=profit,
        indirect=indirect,
        building=categories["Building"],
        mounting=categories["Mounting"],
        equipment=categories["Equipment"],
        other=categories["OtherTotal"],
        estimate_total=categories["Total"],
        grand_total=direct + indirect + categories["Equipment"],
    )
