"""
aggregate_service.py — свод строк MainData в GroupedData и DetailedData.

Сумма "всего" считается в Decimal, поэтому результат не зависит от порядка строк.
"""
import logging
from decimal import Decimal

from gge_rollup.models.report_model import DetailedRow, DetailRow, GroupedRow
from gge_rollup.utils.amount_utils import ZERO

logger = logging.getLogger(__name__)

GroupKey = tuple[str, str, str, str, str, str, int | None, int | None]


def group_key(row: DetailRow) -> GroupKey:
    """(Type, Name, Name2, Num 1, Num 2, НЛСР группа, Year, Quarter)"""
    return (
        row.type, row.name, row.name2, row.num1, row.num2,
        row.nlsr_group, row.year, row.quarter,
    )


def group_rows(rows: list[DetailRow]) -> list[GroupedRow]:
    """Группы выводятся в порядке первого появления ключа."""
    totals: dict[GroupKey, Decimal] = {}
    for row in rows:
        k = group_key(row)
        totals[k] = totals.get(k, ZERO) + row.total

    grouped = [
        GroupedRow(
            type=k[0], name=k[1], name2=k[2], num1=k[3], num2=k[4],
            nlsr_group=k[5], year=k[6], quarter=k[7],
            total=total,
        )
        for k, total in totals.items()
    ]
    logger.info("Группировка: %d строк → %d групп", len(rows), len(grouped))
    return grouped


def project_rows(rows: list[DetailRow]) -> list[DetailedRow]:
    return [
        DetailedRow(
            type=r.type, name=r.name, name2=r.name2, num1=r.num1, num2=r.num2,
            year=r.year, quarter=r.quarter, total=r.total,
        )
        for r in rows
    ]
