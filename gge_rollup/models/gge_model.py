from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from gge_rollup.utils.amount_utils import ZERO


class PriceLevel(str, Enum):
    """Уровень цен: суффикс полей сводки и поле итога позиции."""
    CURRENT = "PriceCurrent"
    BASE    = "PriceBase"

    @property
    def item_total_key(self) -> str:
        return "Totals_Current" if self is PriceLevel.CURRENT else "Totals_Base"


class DocumentHeader(BaseModel):
    """Реквизиты стройки, объекта и сметы (лист Header)."""
    FileNum: str = ""
    FileName: str = ""
    ObjectNum: str = ""
    ObjectName: str = ""
    RegionCode: str = ""
    RegionName: str = ""
    SubRegion: str = ""
    EstNum: str = ""
    EstName: str = ""
    EstType: str = ""
    IndexType: str = ""
    EstDateYear: str = ""
    EstDateMonth: str = ""
    EstDateDay: str = ""
    EstDateQuarter: int | None = None
    Reason: str = ""
    BaseYear: str = ""
    BaseMonth: str = ""
    BaseQuarter: int | None = None
    CurYear: str = ""
    CurMonth: str = ""
    CurQuarter: int | None = None


class CostItem(BaseModel):
    """Позиция раздела с кодом материала "ТЦ_…" и всеми её плоскими полями."""
    section_code: str
    section_name: str
    data: dict[str, str]

    def as_row(self) -> dict[str, str]:
        return {"SectionCode": self.section_code, "SectionName": self.section_name, **self.data}


class FinancialRollup(BaseModel):
    """
    Итог сметы (Itog) по одному уровню цен.
    Все суммы округлены до 2 знаков; grand_total = direct + indirect + equipment.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    materials: Decimal      = Field(ZERO, alias="Материалы")
    kac: Decimal            = Field(ZERO, alias="КАЦ")
    snb: Decimal            = Field(ZERO, alias="СНБ")
    transport: Decimal      = Field(ZERO, alias="Перевозка")
    payroll: Decimal        = Field(ZERO, alias="ФОТ")
    machines: Decimal       = Field(ZERO, alias="ЭММ")
    direct: Decimal         = Field(ZERO, alias="Прямые затраты")
    overhead: Decimal       = Field(ZERO, alias="НР")
    profit: Decimal         = Field(ZERO, alias="СР")
    indirect: Decimal       = Field(ZERO, alias="Косвенные затраты")
    building: Decimal       = Field(ZERO, alias="Строительные работы")
    mounting: Decimal       = Field(ZERO, alias="Монтажные работы")
    equipment: Decimal      = Field(ZERO, alias="Оборудование")
    other: Decimal          = Field(ZERO, alias="Прочие")
    estimate_total: Decimal = Field(ZERO, alias="Смета Total")
    grand_total: Decimal    = Field(ZERO, alias="Итого по смете")

    def labelled(self) -> dict[str, Decimal]:
        """Русские подписи → суммы, в порядке листа Itog."""
        return self.model_dump(by_alias=True)


# Колонки строки LSR_Cur (порядок фиксирован)
LSR_COLUMNS: list[str] = [
    "FileNum", "FileName", "ObjectNum", "ObjectName", "RegionCode", "RegionName",
    "EstNum", "EstName", "EstType", "IndexType", "Reason", "CurYear", "CurMonth", "CurQuarter",
    "Материалы", "КАЦ", "СНБ", "Перевозка", "ФОТ", "ЭММ", "Прямые затраты", "НР", "СР",
    "Косвенные затраты", "Строительные работы", "Монтажные работы", "Оборудование", "Прочие",
    "Смета Total", "Итого по смете",
]


class DocumentSummary(BaseModel):
    """Всё, что извлечено из одного документа формы ЛСР."""
    source_filename: str
    header: DocumentHeader
    construction_name: str = ""
    flat_summary: dict[str, str]
    blocks: dict[str, dict[str, str]]
    items: list[CostItem]
    current: FinancialRollup
    base: FinancialRollup

    def lsr_row(self) -> dict:
        """Строка сводного листа LSR_Cur: реквизиты + итог в текущих ценах."""
        header = self.header.model_dump()
        itog = self.current.labelled()
        row: dict = {}
        for col in LSR_COLUMNS:
            if col in header:
                row[col] = header[col] if header[col] is not None else ""
            else:
                row[col] = itog.get(col, "")
        return row
