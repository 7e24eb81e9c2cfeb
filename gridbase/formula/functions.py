"""
Built-in formula functions: math, text, logic and dates.

Function names are matched case-insensitively. Values flowing through a formula are
str, int/float, bool, naive UTC datetime or None.
"""

import calendar
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Optional

from gridbase.query import is_number, to_instant, to_text
from gridbase.utils.clock import to_iso, utcnow

FormulaValue = Any

_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class FunctionDefinition:
    fn: Callable[..., FormulaValue]
    min_args: int = 0
    max_args: Optional[int] = None
    description: str = ""


FUNCTIONS: Dict[str, FunctionDefinition] = {}


def register(name: str, min_args: int = 0, max_args: Optional[int] = None, description: str = "", aliases=()):
    def decorator(fn):
        definition = FunctionDefinition(fn=fn, min_args=min_args, max_args=max_args, description=description)
        for key in (name, *aliases):
            FUNCTIONS[key.lower()] = definition
        return fn

    return decorator


def get_function(name: str) -> Optional[FunctionDefinition]:
    return FUNCTIONS.get(name.lower())


# --- Coercion helpers ---


def to_number(value: FormulaValue) -> Optional[float]:
    """Number or None. Strings parse by their leading numeric prefix."""
    if value is None:
        return None
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and math.isnan(value) else value
    if isinstance(value, datetime):
        return (value - _EPOCH) / timedelta(milliseconds=1)
    if isinstance(value, str):
        match = re.match(r"\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?", value)
        if not match:
            return None
        text = match.group(0).strip()
        number = float(text)
        return int(number) if re.fullmatch(r"[-+]?\d+", text) else number
    return None


def to_string(value: FormulaValue) -> str:
    if isinstance(value, datetime):
        return to_iso(value)
    return to_text(value)


def to_boolean(value: FormulaValue) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return len(value) > 0
    return isinstance(value, datetime)


def to_date(value: FormulaValue) -> Optional[datetime]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return _EPOCH + timedelta(milliseconds=value)
    if isinstance(value, str):
        return to_instant(value)
    return None


def is_blank(value: FormulaValue) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return not value
    return False


def _numbers(args):
    numbers = [to_number(arg) for arg in args]
    if any(number is None for number in numbers):
        return None
    return numbers


def clean_number(number: float) -> FormulaValue:
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


# --- Math ---


@register("add", min_args=2, description="Add two or more numbers together")
def _add(*args):
    numbers = _numbers(args)
    return None if numbers is None else sum(numbers)


@register("sum", min_args=1, description="Sum one or more numbers")
def _sum(*args):
    numbers = [n for n in (to_number(arg) for arg in args) if n is not None]
    return sum(numbers)


@register("subtract", min_args=2, max_args=2, description="Subtract second number from first")
def _subtract(a, b):
    numbers = _numbers((a, b))
    return None if numbers is None else numbers[0] - numbers[1]


@register("multiply", min_args=2, description="Multiply two or more numbers together")
def _multiply(*args):
    numbers = _numbers(args)
    if numbers is None:
        return None
    return math.prod(numbers)


@register("divide", min_args=2, max_args=2, description="Divide first number by second")
def _divide(a, b):
    numbers = _numbers((a, b))
    if numbers is None or numbers[1] == 0:
        return None
    return numbers[0] / numbers[1]


@register("mod", min_args=2, max_args=2, description="Remainder of division")
def _mod(a, b):
    numbers = _numbers((a, b))
    if numbers is None or numbers[1] == 0:
        return None
    # Sign follows the dividend
    return clean_number(math.fmod(numbers[0], numbers[1]))


@register("abs", min_args=1, max_args=1, description="Absolute value")
def _abs(a):
    number = to_number(a)
    return None if number is None else abs(number)


@register("round", min_args=1, max_args=2, description="Round to a number of decimal places")
def _round(a, places=0):
    number = to_number(a)
    if number is None:
        return None
    factor = 10 ** int(to_number(places) or 0)
    # Half-up rounding, not banker's rounding
    return clean_number(math.floor(number * factor + 0.5) / factor)


@register("floor", min_args=1, max_args=1, description="Round down")
def _floor(a):
    number = to_number(a)
    return None if number is None else math.floor(number)


@register("ceil", min_args=1, max_args=1, description="Round up")
def _ceil(a):
    number = to_number(a)
    return None if number is None else math.ceil(number)


@register("min", min_args=1, description="Smallest of the arguments")
def _min(*args):
    numbers = [n for n in (to_number(arg) for arg in args) if n is not None]
    return min(numbers) if numbers else None


@register("max", min_args=1, description="Largest of the arguments")
def _max(*args):
    numbers = [n for n in (to_number(arg) for arg in args) if n is not None]
    return max(numbers) if numbers else None


@register("average", min_args=1, aliases=("avg",), description="Mean of the arguments")
def _average(*args):
    numbers = [n for n in (to_number(arg) for arg in args) if n is not None]
    return sum(numbers) / len(numbers) if numbers else None


@register("pow", min_args=2, max_args=2, description="Raise a number to a power")
def _pow(a, b):
    numbers = _numbers((a, b))
    if numbers is None:
        return None
    try:
        return numbers[0] ** numbers[1]
    except (OverflowError, ZeroDivisionError):
        return None


@register("sqrt", min_args=1, max_args=1, description="Square root")
def _sqrt(a):
    number = to_number(a)
    if number is None or number < 0:
        return None
    return clean_number(math.sqrt(number))


@register("sign", min_args=1, max_args=1, description="-1, 0 or 1")
def _sign(a):
    number = to_number(a)
    if number is None:
        return None
    return (number > 0) - (number < 0)


@register("ln", min_args=1, max_args=1, description="Natural logarithm")
def _ln(a):
    number = to_number(a)
    if number is None or number <= 0:
        return None
    return math.log(number)


@register("log10", min_args=1, max_args=1, description="Base-10 logarithm")
def _log10(a):
    number = to_number(a)
    if number is None or number <= 0:
        return None
    return math.log10(number)


@register("exp", min_args=1, max_args=1, description="e raised to a power")
def _exp(a):
    number = to_number(a)
    if number is None:
        return None
    try:
        return math.exp(number)
    except OverflowError:
        return None


# --- Text ---


@register("concat", min_args=1, description="Concatenate values into one string")
def _concat(*args):
    return "".join(to_string(arg) for arg in args)


@register("length", min_args=1, max_args=1, description="Length of a string")
def _length(a):
    return len(to_string(a))


@register("contains", min_args=2, max_args=2, description="Whether a string contains a substring")
def _contains(text, search):
    return to_string(search) in to_string(text)


@register("replace", min_args=3, max_args=3, aliases=("replaceAll",), description="Replace all occurrences")
def _replace(text, search, replacement):
    needle = to_string(search)
    if not needle:
        return to_string(text)
    return to_string(text).replace(needle, to_string(replacement))


@register("replaceFirst", min_args=3, max_args=3, description="Replace the first occurrence")
def _replace_first(text, search, replacement):
    return to_string(text).replace(to_string(search), to_string(replacement), 1)


@register("lower", min_args=1, max_args=1)
def _lower(a):
    return to_string(a).lower()


@register("upper", min_args=1, max_args=1)
def _upper(a):
    return to_string(a).upper()


@register("trim", min_args=1, max_args=1)
def _trim(a):
    return to_string(a).strip()


@register("slice", min_args=2, max_args=3, aliases=("substring",), description="Portion of a string")
def _slice(text, start, end=None):
    value = to_string(text)
    start_index = int(to_number(start) or 0)
    end_number = to_number(end)
    if end_number is None:
        return value[start_index:]
    return value[start_index:int(end_number)]


@register("split", min_args=2, max_args=3, description="Split a string, optionally picking one part")
def _split(text, separator, index=None):
    value, sep = to_string(text), to_string(separator)
    parts = value.split(sep) if sep else list(value)
    position = to_number(index)
    if position is not None and 0 <= position < len(parts):
        return parts[int(position)]
    return ", ".join(parts)


@register("join", min_args=2, description="Join values with a separator")
def _join(separator, *values):
    return to_string(separator).join(to_string(value) for value in values)


@register("startsWith", min_args=2, max_args=2)
def _starts_with(text, prefix):
    return to_string(text).startswith(to_string(prefix))


@register("endsWith", min_args=2, max_args=2)
def _ends_with(text, suffix):
    return to_string(text).endswith(to_string(suffix))


@register("indexOf", min_args=2, max_args=2, description="Index of a substring, or empty")
def _index_of(text, search):
    index = to_string(text).find(to_string(search))
    return None if index == -1 else index


@register("repeat", min_args=2, max_args=2)
def _repeat(text, count):
    number = to_number(count) or 0
    if number < 0 or number > 10000:
        return None
    return to_string(text) * int(number)


@register("padStart", min_args=2, max_args=3)
def _pad_start(text, length, fill=None):
    value, fill_text = to_string(text), to_string(fill) or " "
    missing = int(to_number(length) or 0) - len(value)
    if missing <= 0:
        return value
    return (fill_text * missing)[:missing] + value


@register("padEnd", min_args=2, max_args=3)
def _pad_end(text, length, fill=None):
    value, fill_text = to_string(text), to_string(fill) or " "
    missing = int(to_number(length) or 0) - len(value)
    if missing <= 0:
        return value
    return value + (fill_text * missing)[:missing]


@register("format", min_args=1, max_args=1, description="Convert a value to a string")
def _format(value):
    return to_string(value)


@register("toNumber", min_args=1, max_args=1, description="Convert a value to a number")
def _to_number(value):
    return to_number(value)


# --- Logic ---


@register("if", min_args=3, max_args=3)
def _if(condition, when_true, when_false):
    return when_true if to_boolean(condition) else when_false


@register("and", min_args=1)
def _and(*args):
    return all(to_boolean(arg) for arg in args)


@register("or", min_args=1)
def _or(*args):
    return any(to_boolean(arg) for arg in args)


@register("not", min_args=1, max_args=1)
def _not(value):
    return not to_boolean(value)


@register("empty", min_args=1, max_args=1, description="Whether a value is empty")
def _empty(value):
    return is_blank(value)


@register("coalesce", min_args=1, description="First non-empty argument")
def _coalesce(*args):
    for arg in args:
        if not is_blank(arg):
            return arg
    return None


def values_equal(left: FormulaValue, right: FormulaValue) -> bool:
    if left is None:
        return right is None
    if right is None:
        return False
    if isinstance(left, datetime) or isinstance(right, datetime):
        left_date, right_date = to_date(left), to_date(right)
        return left_date is not None and left_date == right_date
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if is_number(left) or is_number(right):
        return to_number(left) == to_number(right)
    return left == right


def compare(left: FormulaValue, right: FormulaValue, test: Callable[[Any, Any], bool]) -> bool:
    if isinstance(left, datetime) or isinstance(right, datetime):
        left_date, right_date = to_date(left), to_date(right)
        if left_date is None or right_date is None:
            return False
        return test(left_date, right_date)
    left_number, right_number = to_number(left), to_number(right)
    if left_number is None or right_number is None:
        return False
    return test(left_number, right_number)


@register("equal", min_args=2, max_args=2)
def _equal(a, b):
    return values_equal(a, b)


@register("unequal", min_args=2, max_args=2)
def _unequal(a, b):
    return not values_equal(a, b)


@register("larger", min_args=2, max_args=2)
def _larger(a, b):
    return compare(a, b, lambda x, y: x > y)


@register("largerEq", min_args=2, max_args=2)
def _larger_eq(a, b):
    return compare(a, b, lambda x, y: x >= y)


@register("smaller", min_args=2, max_args=2)
def _smaller(a, b):
    return compare(a, b, lambda x, y: x < y)


@register("smallerEq", min_args=2, max_args=2)
def _smaller_eq(a, b):
    return compare(a, b, lambda x, y: x <= y)


# --- Dates ---

_UNITS = {
    "year": "years", "years": "years",
    "month": "months", "months": "months",
    "week": "weeks", "weeks": "weeks",
    "day": "days", "days": "days",
    "hour": "hours", "hours": "hours",
    "minute": "minutes", "minutes": "minutes",
    "second": "seconds", "seconds": "seconds",
}


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year, month = value.year + month_index // 12, month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_interval(value: datetime, amount: float, unit: str) -> Optional[datetime]:
    unit = _UNITS.get(unit.lower())
    if unit is None:
        return None
    if unit == "years":
        return _add_months(value, int(amount) * 12)
    if unit == "months":
        return _add_months(value, int(amount))
    return value + timedelta(**{unit: amount})


@register("now", max_args=0)
def _now():
    return utcnow()


@register("today", max_args=0)
def _today():
    now = utcnow()
    return datetime(now.year, now.month, now.day)


@register("dateAdd", min_args=3, max_args=3, description="Add a time interval to a date")
def _date_add(value, amount, unit):
    moment, number = to_date(value), to_number(amount)
    if moment is None or number is None:
        return None
    return add_interval(moment, number, to_string(unit))


@register("dateSubtract", min_args=3, max_args=3, description="Subtract a time interval from a date")
def _date_subtract(value, amount, unit):
    number = to_number(amount)
    if number is None:
        return None
    return _date_add(value, -number, unit)


@register("dateBetween", min_args=3, max_args=3, description="Difference between two dates in a unit")
def _date_between(first, second, unit):
    left, right = to_date(first), to_date(second)
    if left is None or right is None:
        return None
    unit = _UNITS.get(to_string(unit).lower())
    if unit == "years":
        return left.year - right.year
    if unit == "months":
        return (left.year - right.year) * 12 + (left.month - right.month)
    seconds = {
        "weeks": 7 * 24 * 3600,
        "days": 24 * 3600,
        "hours": 3600,
        "minutes": 60,
        "seconds": 1,
    }.get(unit)
    if seconds is None:
        return None
    return math.floor((left - right).total_seconds() / seconds)


_DATE_TOKENS = re.compile(r"YYYY|YY|MM|M|DD|D|HH|H|mm|m|ss|s")


@register("formatDate", min_args=1, max_args=2, description="Format a date with YYYY MM DD HH mm ss tokens")
def _format_date(value, pattern=None):
    moment = to_date(value)
    if moment is None:
        return None
    fields = {
        "YYYY": str(moment.year),
        "YY": str(moment.year)[-2:],
        "MM": f"{moment.month:02d}",
        "M": str(moment.month),
        "DD": f"{moment.day:02d}",
        "D": str(moment.day),
        "HH": f"{moment.hour:02d}",
        "H": str(moment.hour),
        "mm": f"{moment.minute:02d}",
        "m": str(moment.minute),
        "ss": f"{moment.second:02d}",
        "s": str(moment.second),
    }
    return _DATE_TOKENS.sub(lambda match: fields[match.group(0)], to_string(pattern) or "YYYY-MM-DD")


def _date_part(attribute: str):
    def extract(value):
        moment = to_date(value)
        return None if moment is None else getattr(moment, attribute)

    return extract


for _name, _attribute in (
    ("year", "year"),
    ("month", "month"),
    ("day", "day"),
    ("hour", "hour"),
    ("minute", "minute"),
    ("second", "second"),
):
    register(_name, min_args=1, max_args=1)(_date_part(_attribute))


@register("dayOfWeek", min_args=1, max_args=1, description="0 for Sunday through 6 for Saturday")
def _day_of_week(value):
    moment = to_date(value)
    return None if moment is None else (moment.weekday() + 1) % 7


@register("timestamp", min_args=1, max_args=1, description="Milliseconds since the Unix epoch")
def _timestamp(value):
    moment = to_date(value)
    return None if moment is None else clean_number((moment - _EPOCH) / timedelta(milliseconds=1))


@register("fromTimestamp", min_args=1, max_args=1, description="Date from milliseconds since the Unix epoch")
def _from_timestamp(value):
    number = to_number(value)
    return None if number is None else _EPOCH + timedelta(milliseconds=number)


@register("date", min_args=3, max_args=3, description="Build a date from year, month and day")
def _date(year, month, day):
    numbers = _numbers((year, month, day))
    if numbers is None:
        return None
    try:
        return datetime(int(numbers[0]), int(numbers[1]), int(numbers[2]))
    except ValueError:
        return None


@register("parseDate", min_args=1, max_args=1)
def _parse_date(value):
    return to_date(to_string(value))


@register("startOf", min_args=2, max_args=2, description="Start of the year, month, week, day or hour")
def _start_of(value, unit):
    moment = to_date(value)
    if moment is None:
        return None
    unit = _UNITS.get(to_string(unit).lower())
    day_start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if unit == "years":
        return day_start.replace(month=1, day=1)
    if unit == "months":
        return day_start.replace(day=1)
    if unit == "weeks":
        # Weeks start on Sunday
        return day_start - timedelta(days=(moment.weekday() + 1) % 7)
    if unit == "days":
        return day_start
    if unit == "hours":
        return moment.replace(minute=0, second=0, microsecond=0)
    return None


@register("endOf", min_args=2, max_args=2, description="Last instant of the year, month, week, day or hour")
def _end_of(value, unit):
    start = _start_of(value, unit)
    if start is None:
        return None
    unit = _UNITS.get(to_string(unit).lower())
    following = add_interval(start, 1, unit)
    return following - timedelta(microseconds=1)
