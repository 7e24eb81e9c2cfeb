"""Rollup aggregation over the rows reached through a relation column."""

import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from gridbase.constants import ColumnType, RollupAggregation
from gridbase.formula.functions import to_number
from gridbase.query import to_instant
from gridbase.schemas import CellValue, Column, Row

_DATE_TYPES = {ColumnType.DATE, ColumnType.CREATED_TIME, ColumnType.LAST_EDITED_TIME}


def _is_empty(value: CellValue) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _identity(value: CellValue) -> str:
    if isinstance(value, (list, dict)):
        return json.dumps(value, sort_keys=True)
    return repr(value) if not isinstance(value, str) else value


def _unique(values: Iterable[CellValue]) -> List[CellValue]:
    seen = set()
    unique = []
    for value in values:
        if _is_empty(value):
            continue
        key = _identity(value)
        if key not in seen:
            seen.add(key)
            unique.append(value)
    return unique


class RollupEngine:
    """Computes a rollup value from related rows."""

    def extract_values(
        self,
        related_rows: Iterable[Row],
        target_column_id: str,
        target_type: Optional[ColumnType] = None,
    ) -> List[CellValue]:
        values: List[CellValue] = []
        for row in related_rows:
            value = row.value(target_column_id)
            # multi_select values count item by item
            if target_type == ColumnType.MULTI_SELECT and isinstance(value, list):
                values.extend(value)
            else:
                values.append(value)
        return values

    def calculate(
        self,
        aggregation: Union[RollupAggregation, str],
        related_rows: List[Row],
        target_column_id: str,
        target_column: Optional[Column] = None,
    ) -> CellValue:
        aggregation = RollupAggregation(aggregation)
        target_type = target_column.type if target_column is not None else None
        values = self.extract_values(related_rows, target_column_id, target_type)

        if aggregation == RollupAggregation.COUNT:
            return len(related_rows)
        handler = self._handlers()[aggregation]
        return handler(values, target_type)

    def _handlers(self) -> Dict[RollupAggregation, Callable[[List[CellValue], Optional[ColumnType]], Any]]:
        return {
            RollupAggregation.COUNT_VALUES: lambda values, _: self._count_not_empty(values),
            RollupAggregation.COUNT_NOT_EMPTY: lambda values, _: self._count_not_empty(values),
            RollupAggregation.COUNT_EMPTY: lambda values, _: len(values) - self._count_not_empty(values),
            RollupAggregation.COUNT_UNIQUE: lambda values, _: len(_unique(values)),
            RollupAggregation.SUM: self._sum,
            RollupAggregation.AVERAGE: self._average,
            RollupAggregation.MIN: lambda values, target_type: self._extreme(values, target_type, min),
            RollupAggregation.MAX: lambda values, target_type: self._extreme(values, target_type, max),
            RollupAggregation.PERCENT_EMPTY: lambda values, _: self._percent(values, empty=True),
            RollupAggregation.PERCENT_NOT_EMPTY: lambda values, _: self._percent(values, empty=False),
            RollupAggregation.SHOW_ORIGINAL: lambda values, _: [value for value in values if not _is_empty(value)],
            RollupAggregation.SHOW_UNIQUE: lambda values, _: _unique(values),
        }

    @staticmethod
    def _count_not_empty(values: List[CellValue]) -> int:
        return sum(1 for value in values if not _is_empty(value))

    @staticmethod
    def _numbers(values: List[CellValue]) -> List[float]:
        return [number for number in (to_number(value) for value in values) if number is not None]

    def _sum(self, values: List[CellValue], target_type: Optional[ColumnType]) -> CellValue:
        return sum(self._numbers(values))

    def _average(self, values: List[CellValue], target_type: Optional[ColumnType]) -> CellValue:
        numbers = self._numbers(values)
        if not numbers:
            return None
        return sum(numbers) / len(numbers)

    def _extreme(self, values: List[CellValue], target_type: Optional[ColumnType], pick) -> CellValue:
        if target_type in _DATE_TYPES:
            dated = [(to_instant(value), value) for value in values if not _is_empty(value)]
            dated = [pair for pair in dated if pair[0] is not None]
            if not dated:
                return None
            return pick(dated, key=lambda pair: pair[0])[1]
        numbers = [to_number(value) for value in values if not _is_empty(value)]
        numbers = [number for number in numbers if number is not None]
        if not numbers:
            return None
        return pick(numbers)

    def _percent(self, values: List[CellValue], empty: bool) -> CellValue:
        if not values:
            return 0
        filled = self._count_not_empty(values)
        count = len(values) - filled if empty else filled
        return count / len(values) * 100


rollup_engine = RollupEngine()
