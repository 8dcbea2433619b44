from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from gge_rollup.utils.amount_utils import ZERO


class NLSRMappingEntry(BaseModel):
    """Строка справочника НЛСР: группа + ключевое слово (порядок значим)."""
    name: str
    keyword: str


class Classification(BaseModel):
    group: str = ""
    keyword: str = ""


# Ключ справочника ТЭП: (Type, Name, Num1, Num2) или (Type, Name, Name2, Num1, Num2)
TepKey = tuple[str, ...]
TepTable = dict[TepKey, Decimal]


class _ReportRow(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def as_record(self, columns: list[str]) -> list:
        """Значения строки в порядке колонок листа; None → пустая ячейка."""
        data = self.model_dump(by_alias=True)
        return [data.get(col) for col in columns]


class DetailRow(_ReportRow):
    """
    Строка MainData: одна строка локальной сметы одного документа.
    Неизменяема — классификация даёт новую копию (model_copy).
    """
    num: str                = Field("", alias="№ п/п")
    reason: str             = Field("", alias="Обоснование")
    description: str        = Field("", alias="Наименование локальных сметных расчётов")
    building: Decimal       = Field(ZERO, alias="строительных работ")
    mounting: Decimal       = Field(ZERO, alias="монтажных работ")
    equipment: Decimal      = Field(ZERO, alias="оборудования")
    other: Decimal          = Field(ZERO, alias="прочих затрат")
    total: Decimal          = Field(ZERO, alias="всего")
    year: int | None        = Field(None, alias="Year")
    quarter: int | None     = Field(None, alias="Quarter")
    name: str               = Field("", alias="Name")
    name2: str              = Field("", alias="Name2")
    type: str               = Field("", alias="Type")
    nlsr_group: str         = Field("", alias="НЛСР группа")
    keyword: str            = Field("", alias="Keyword")
    num1: str               = Field("", alias="Num 1")
    num2: str               = Field("", alias="Num 2")
    name_file: str          = Field("", alias="name_file")


class GroupedRow(_ReportRow):
    """Строка GroupedData: сумма "всего" по составному ключу."""
    type: str               = Field("", alias="Type")
    name: str               = Field("", alias="Name")
    name2: str              = Field("", alias="Name2")
    num1: str               = Field("", alias="Num 1")
    num2: str               = Field("", alias="Num 2")
    nlsr_group: str         = Field("", alias="НЛСР группа")
    year: int | None        = Field(None, alias="Year")
    quarter: int | None     = Field(None, alias="Quarter")
    total: Decimal          = Field(ZERO, alias="всего")
    tep: Decimal | None     = Field(None, alias="TEP")
    metric: Decimal | None  = Field(None, alias="Kvadrat")


class DetailedRow(_ReportRow):
    """Строка DetailedData: узкая проекция DetailRow."""
    type: str               = Field("", alias="Type")
    name: str               = Field("", alias="Name")
    name2: str              = Field("", alias="Name2")
    num1: str               = Field("", alias="Num 1")
    num2: str               = Field("", alias="Num 2")
    year: int | None        = Field(None, alias="Year")
    quarter: int | None     = Field(None, alias="Quarter")
    total: Decimal          = Field(ZERO, alias="всего")
    tep: Decimal | None     = Field(None, alias="TEP")
    metric: Decimal | None  = Field(None, alias="Kvadrat")


# ─── Порядок колонок листов (фиксирован для внешних потребителей) ───

MAIN_COLUMNS: list[str] = [
    "№ п/п", "Обоснование", "Наименование локальных сметных расчётов", "строительных работ",
    "монтажных работ", "оборудования", "прочих затрат", "всего",
    "Year", "Quarter", "Name", "Name2", "Type", "НЛСР группа", "Keyword", "Num 1", "Num 2", "name_file",
]
GROUPED_COLUMNS: list[str] = [
    "Type", "Name", "Name2", "Num 1", "Num 2", "НЛСР группа", "Year", "Quarter", "всего", "TEP", "Kvadrat",
]
DETAILED_COLUMNS: list[str] = [
    "Type", "Name", "Name2", "Num 1", "Num 2", "Year", "Quarter", "всего", "TEP", "Kvadrat",
]
