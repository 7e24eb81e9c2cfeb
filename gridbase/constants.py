"""
Constants for gridbase

Centralizes the closed vocabularies shared by every backend.
"""

from enum import Enum


class ColumnType(str, Enum):
    """Supported column (field) types."""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    URL = "url"
    FILE = "file"
    FORMULA = "formula"
    RELATION = "relation"
    ROLLUP = "rollup"
    CREATED_TIME = "created_time"
    LAST_EDITED_TIME = "last_edited_time"


class ViewType(str, Enum):
    """Saved view layouts."""
    TABLE = "table"
    BOARD = "board"
    CALENDAR = "calendar"
    GALLERY = "gallery"
    TIMELINE = "timeline"
    LIST = "list"


class FilterOperator(str, Enum):
    """Row filter operators."""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_OR_EQUALS = "greaterThanOrEquals"
    LESS_THAN = "lessThan"
    LESS_THAN_OR_EQUALS = "lessThanOrEquals"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    IS_IN = "isIn"
    IS_NOT_IN = "isNotIn"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class RollupAggregation(str, Enum):
    """Aggregations available to rollup columns."""
    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"
    COUNT_VALUES = "countValues"
    COUNT_UNIQUE = "countUnique"
    COUNT_EMPTY = "countEmpty"
    COUNT_NOT_EMPTY = "countNotEmpty"
    PERCENT_EMPTY = "percentEmpty"
    PERCENT_NOT_EMPTY = "percentNotEmpty"
    SHOW_ORIGINAL = "showOriginal"
    SHOW_UNIQUE = "showUnique"


class ProcessingStatus(str, Enum):
    """Processing state reported by a file storage provider."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionSemantics(str, Enum):
    """What an adapter's transaction() actually guarantees."""
    # Calls run one after another against the same adapter: no isolation, no rollback.
    SEQUENTIAL = "sequential"
    # All calls share one database transaction that commits or rolls back as a whole.
    ATOMIC = "atomic"
