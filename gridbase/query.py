"""
Query engine: pure functions over a snapshot of rows.

Every backend loads its candidate rows and hands them to execute_query(), so
filtering, ordering and pagination are identical across backends.
"""

import json
import logging
import math
from datetime import datetime, timezone
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterable, List, Optional

from gridbase.constants import FilterOperator, SortDirection
from gridbase.errors import HierarchyCycleError
from gridbase.schemas import QueryFilter, QueryOptions, QueryResult, QuerySort, Row
from gridbase.utils.pagination import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    encode_cursor,
    validate_pagination,
)

logger = logging.getLogger(__name__)


# --- Value coercion ---


def is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, dict)) and not value)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_number(value: Any) -> float:
    """Numeric coercion used by ordering operators. Anything non-numeric is NaN."""
    if is_number(value):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return math.nan
    return math.nan


def to_instant(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_text(value: Any) -> str:
    """String form of a cell value, matching how the values render in a grid."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, list):
        return ",".join(to_text(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True)
    return str(value)


def strict_equals(left: Any, right: Any) -> bool:
    # True must not equal 1
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if is_number(left) and is_number(right):
        return float(left) == float(right)
    if type(left) is not type(right):
        return False
    return left == right


# --- Filtering ---


def _ordered(value: Any, operand: Any, test: Callable[[Any, Any], bool]) -> bool:
    left, right = to_number(value), to_number(operand)
    if not math.isnan(left) and not math.isnan(right):
        return test(left, right)
    left_instant, right_instant = to_instant(value), to_instant(operand)
    if left_instant is not None and right_instant is not None:
        return test(left_instant, right_instant)
    # NaN never compares true
    return False


def _in_operand(value: Any, operand: Any) -> bool:
    candidates = operand if isinstance(operand, list) else [operand]
    values = value if isinstance(value, list) else [value]
    return any(strict_equals(item, candidate) for item in values for candidate in candidates)


_TEXT_TESTS: Dict[str, Callable[[str, str], bool]] = {
    FilterOperator.CONTAINS.value: lambda text, needle: needle in text,
    FilterOperator.NOT_CONTAINS.value: lambda text, needle: needle not in text,
    FilterOperator.STARTS_WITH.value: lambda text, needle: text.startswith(needle),
    FilterOperator.ENDS_WITH.value: lambda text, needle: text.endswith(needle),
}

_ORDER_TESTS: Dict[str, Callable[[Any, Any], bool]] = {
    FilterOperator.GREATER_THAN.value: lambda a, b: a > b,
    FilterOperator.GREATER_THAN_OR_EQUALS.value: lambda a, b: a >= b,
    FilterOperator.LESS_THAN.value: lambda a, b: a < b,
    FilterOperator.LESS_THAN_OR_EQUALS.value: lambda a, b: a <= b,
}


def matches_filter(row: Row, query_filter: QueryFilter) -> bool:
    """
    Test one row against one filter.

    Operand type drift never raises: values that cannot be coerced simply fail the
    ordering operators. Unknown operators pass every row.
    """
    value = row.value(query_filter.column_id)
    operator = str(getattr(query_filter.operator, "value", query_filter.operator))
    operand = query_filter.value

    if operator == FilterOperator.EQUALS.value:
        return strict_equals(value, operand)
    if operator == FilterOperator.NOT_EQUALS.value:
        return not strict_equals(value, operand)
    if operator in _TEXT_TESTS:
        return _TEXT_TESTS[operator](to_text(value).lower(), to_text(operand).lower())
    if operator in _ORDER_TESTS:
        return _ordered(value, operand, _ORDER_TESTS[operator])
    if operator == FilterOperator.IS_EMPTY.value:
        return is_empty(value)
    if operator == FilterOperator.IS_NOT_EMPTY.value:
        return not is_empty(value)
    if operator == FilterOperator.IS_IN.value:
        return _in_operand(value, operand)
    if operator == FilterOperator.IS_NOT_IN.value:
        return not _in_operand(value, operand)

    logger.debug("Unknown filter operator %r passes every row", operator)
    return True


def apply_filters(rows: Iterable[Row], filters: List[QueryFilter]) -> List[Row]:
    """Logical AND across all filters."""
    selected = list(rows)
    for query_filter in filters:
        selected = [row for row in selected if matches_filter(row, query_filter)]
    return selected


# --- Sorting ---


def compare_values(left: Any, right: Any) -> int:
    if is_number(left) and is_number(right):
        return (left > right) - (left < right)
    if isinstance(left, bool) and isinstance(right, bool):
        return (left > right) - (left < right)
    if isinstance(left, str) and isinstance(right, str):
        return (left > right) - (left < right)
    left_text, right_text = to_text(left), to_text(right)
    return (left_text > right_text) - (left_text < right_text)


def sort_rows(rows: Iterable[Row], sorts: List[QuerySort]) -> List[Row]:
    """
    Stable multi-key sort. Null and missing values go last whatever the direction.
    Without sort keys rows are ordered by creation time, newest first.
    """
    if not sorts:
        return sorted(rows, key=lambda row: row.created_at, reverse=True)

    def compare_rows(left: Row, right: Row) -> int:
        for sort in sorts:
            left_value = left.value(sort.column_id)
            right_value = right.value(sort.column_id)
            if left_value is None and right_value is None:
                continue
            if left_value is None:
                return 1
            if right_value is None:
                return -1
            result = compare_values(left_value, right_value)
            if sort.direction == SortDirection.DESC:
                result = -result
            if result:
                return result
        return 0

    return sorted(rows, key=cmp_to_key(compare_rows))


# --- Hierarchy ---


def index_children(rows: Iterable[Row]) -> Dict[Optional[str], List[Row]]:
    children: Dict[Optional[str], List[Row]] = {}
    for row in rows:
        children.setdefault(row.parent_row_id, []).append(row)
    return children


def children_of(rows: Iterable[Row], parent_row_id: str, include_archived: bool = False) -> List[Row]:
    return [
        row
        for row in rows
        if row.parent_row_id == parent_row_id and (include_archived or not row.archived)
    ]


def descendants_of(rows: Iterable[Row], root_id: str, include_archived: bool = False) -> List[Row]:
    """Pre-order descendants: each child is followed by its own subtree before its siblings."""
    candidates = [row for row in rows if include_archived or not row.archived]
    children = index_children(candidates)

    result: List[Row] = []
    visited = {root_id}
    stack = list(reversed(children.get(root_id, [])))
    while stack:
        row = stack.pop()
        if row.id in visited:
            raise HierarchyCycleError(row.id)
        visited.add(row.id)
        result.append(row)
        stack.extend(reversed(children.get(row.id, [])))
    return result


def depth_of(parents: Dict[str, Optional[str]], row_id: str) -> int:
    """Number of ancestors above a row. `parents` maps row id to parent row id."""
    depth = 0
    visited = {row_id}
    current = parents.get(row_id)
    while current is not None:
        if current in visited:
            raise HierarchyCycleError(current)
        visited.add(current)
        depth += 1
        current = parents.get(current)
    return depth


def has_children(rows: Iterable[Row], row_id: str) -> bool:
    return any(row.parent_row_id == row_id and not row.archived for row in rows)


def select_hierarchy(rows: List[Row], query: QueryOptions) -> List[Row]:
    if not query.parent_row_id_set:
        return rows
    if query.parent_row_id is None:
        if query.include_sub_items:
            return rows
        return [row for row in rows if row.parent_row_id is None]
    return [row for row in rows if row.parent_row_id == query.parent_row_id]


# --- Pagination ---


def paginate(
    rows: List[Row],
    query: QueryOptions,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> QueryResult[Row]:
    offset, limit = validate_pagination(
        query.offset, query.limit, query.cursor, default_limit=default_limit, max_limit=max_limit
    )
    total = len(rows)
    items = rows[offset:offset + limit]
    has_more = offset + len(items) < total
    return QueryResult[Row](
        items=items,
        total=total,
        has_more=has_more,
        cursor=encode_cursor(offset + len(items)) if has_more else None,
    )


def execute_query(
    rows: Iterable[Row],
    query: Optional[QueryOptions] = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> QueryResult[Row]:
    """Archive filter, hierarchy selection, filters, sort and pagination, in that order."""
    query = query or QueryOptions()
    candidates = list(rows)
    if not query.include_archived:
        candidates = [row for row in candidates if not row.archived]
    candidates = select_hierarchy(candidates, query)
    candidates = apply_filters(candidates, query.filters)
    candidates = sort_rows(candidates, query.sorts)
    return paginate(candidates, query, default_limit=default_limit, max_limit=max_limit)
