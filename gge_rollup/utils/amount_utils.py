import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


def parse_amount(text) -> Decimal | None:
    """
    Строка сметы → Decimal.
    - запятая как десятичный разделитель: "1200,50" → 1200.50
    - пробелы (в т.ч. неразрывные) как разделитель тысяч: "1 200,50" → 1200.50
    - пустая строка / None / нечисловое значение → None
    Никогда не бросает исключений: грязные документы обрабатываются "по возможности".
    """
    if text is None:
        return None
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, Decimal)):
        return Decimal(text)

    # float из ячейки Excel: str() даёт кратчайшее точное представление
    cleaned = str(text).strip()
    if not cleaned:
        return None

    cleaned = cleaned.replace("\u00a0", "").replace(" ", "").replace(",", ".")

    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        logger.debug("Не удалось разобрать число: %r", text)
        return None

    if not value.is_finite():
        logger.debug("Нечисловое значение пропущено: %r", text)
        return None
    return value


def to_amount(text) -> Decimal:
    """parse_amount с подстановкой 0 для пустых и нечисловых значений."""
    value = parse_amount(text)
    return ZERO if value is None else value


def round2(value: Decimal) -> Decimal:
    # quantize требует, чтобы результат уместился в точность контекста
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 4)
        return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_int(text) -> int | None:
    """ "2024" → 2024, "3,0" → 3, "" → None."""
    value = parse_amount(text)
    if value is None:
        return None
    try:
        return int(value)
    except (ValueError, OverflowError):
        return None


def month_to_quarter(month) -> int | None:
    """Месяц 1..12 → квартал 1..4."""
    m = parse_int(month)
    if not m or not 1 <= m <= 12:
        return None
    return (m - 1) // 3 + 1
