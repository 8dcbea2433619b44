from decimal import Decimal

import pytest

from gge_rollup.models.gge_model import CostItem, PriceLevel
from gge_rollup.services.rollup_service import compute_rollup, resolve, key, constant, sum_items


def _items(*totals: str | None, field: str = "Totals_Current") -> list[CostItem]:
    items = []
    for t in totals:
        data = {"Material_Code": "ТЦ_1"}
        if t is not None:
            data[field] = t
        items.append(CostItem(section_code="1", section_name="Раздел", data=data))
    return items


BASE_FLAT = {
    "Transport_PriceCurrent": "50",
    "Salary_PriceCurrent": "120",
    "MachinistSalaryExtra_PriceCurrent": "20",
    "MachinesTotal_PriceCurrent": "45,5",
    "MachinistSalary_PriceCurrent": "15,5",
    "Overhead_PriceCurrent": "80",
    "Profit_PriceCurrent": "20",
}


def test_reference_estimate():
    flat = {**BASE_FLAT, "Materials_Total_PriceCurrent": "1200,50"}
    blocks = {"Equipment": {"Total_PriceCurrent": "200"}}
    r = compute_rollup(flat, PriceLevel.CURRENT, blocks, _items("400", "300"))

    assert r.materials == Decimal("1200.50")
    assert r.kac == Decimal("700.00")
    assert r.snb == Decimal("500.50")
    assert r.payroll == Decimal("100.00")
    assert r.machines == Decimal("30.00")
    assert r.direct == Decimal("1380.50")
    assert r.indirect == Decimal("100.00")
    assert r.grand_total == Decimal("1680.50")


@pytest.mark.parametrize("materials_key", [
    "Materials_Total_PriceCurrent",
    "Materials_PriceCurrent_Total",
    "PriceCurrent_Materials_Total",
    "Materials_Total",
])
def test_alternate_materials_keys_give_same_rollup(materials_key):
    reference = compute_rollup({**BASE_FLAT, "Materials_Total_PriceCurrent": "1200,50"})
    r = compute_rollup({**BASE_FLAT, materials_key: "1200.50"})
    assert r == reference


def test_first_accessor_wins():
    flat = {"Materials_Total_PriceCurrent": "10", "Materials_Total": "99"}
    assert compute_rollup(flat).materials == Decimal("10.00")


def test_non_numeric_value_falls_through_to_next_accessor():
    flat = {"Materials_Total_PriceCurrent": "н/д", "Materials_PriceCurrent_Total": "15"}
    assert compute_rollup(flat).materials == Decimal("15.00")


def test_kac_from_summary_when_items_lack_totals():
    flat = {"Materials_Total_PriceCurrent": "1000", "Totals_Items_PriceCurrent": "250"}
    assert compute_rollup(flat, items=_items(None, None)).kac == Decimal("250.00")
    assert compute_rollup({"Materials_Total_PriceCurrent": "1000", "Totals_Items": "260"}).kac == Decimal("260.00")


def test_items_total_takes_priority_over_summary():
    flat = {"Materials_Total_PriceCurrent": "1000", "Totals_Items_PriceCurrent": "250"}
    assert compute_rollup(flat, items=_items("100", "n/a")).kac == Decimal("100.00")


def test_negative_snb_is_kept():
    flat = {"Materials_Total_PriceCurrent": "100"}
    r = compute_rollup(flat, items=_items("150"))
    assert r.snb == Decimal("-50.00")
    assert r.direct == Decimal("100.00")
    assert r.grand_total == r.direct + r.indirect + r.equipment


def test_missing_everything_is_zero():
    r = compute_rollup({})
    assert r.grand_total == Decimal("0")
    assert r.labelled()["Итого по смете"] == Decimal("0")


def test_base_level_uses_base_fields():
    flat = {
        "Materials_Total_PriceCurrent": "999",
        "Materials_Total_PriceBase": "120",
        "Overhead_PriceBase": "8",
    }
    items = _items("70", field="Totals_Base")
    blocks = {"Equipment": {"Total_PriceCurrent": "200", "Total_PriceBase": "20"}}
    r = compute_rollup(flat, PriceLevel.BASE, blocks, items)
    assert r.materials == Decimal("120.00")
    assert r.kac == Decimal("70.00")
    assert r.equipment == Decimal("20.00")
    assert r.grand_total == Decimal("148.00")


@pytest.mark.parametrize("flat", [
    {"Materials_Total_PriceCurrent": "0,333", "Transport_PriceCurrent": "0,335", "Overhead_PriceCurrent": "1,005"},
    {"Materials_Total_PriceCurrent": "1 000 000,499", "Profit_PriceCurrent": "-3,3333"},
    {"Salary_PriceCurrent": "7", "MachinistSalaryExtra_PriceCurrent": "9,999"},
])
def test_total_identity(flat):
    blocks = {"Equipment": {"Total_PriceCurrent": "12,345"}}
    r = compute_rollup(flat, blocks=blocks)
    assert r.grand_total == r.direct + r.indirect + r.equipment
    assert r.grand_total == r.grand_total.quantize(Decimal("0.01"))


def test_sum_items_none_without_field():
    assert sum_items(_items(None), PriceLevel.CURRENT) is None
    assert sum_items([], PriceLevel.CURRENT) is None
    assert sum_items(_items("1,5", "2"), PriceLevel.CURRENT) == Decimal("3.5")


def test_resolve_order():
    assert resolve({"b": "2"}, [key("a"), key("b"), constant(Decimal("9"))]) == Decimal("2")
    assert resolve({}, [key("a"), constant(Decimal("9"))]) == Decimal("9")
    assert resolve({}, [key("a")]) == Decimal("0")


def test_amounts_beyond_default_precision():
    r = compute_rollup({"Materials_Total_PriceCurrent": "1e27", "Overhead_PriceCurrent": "0,5"})
    assert r.materials == Decimal("1e27")
    assert r.indirect == Decimal("0.50")
