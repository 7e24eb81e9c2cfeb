import uuid
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import to_jsonable_python

from gridbase.constants import ColumnType, SortDirection, ViewType

T = TypeVar("T")

# A cell holds any JSON-native value: str, int, float, bool, None, list or dict.
CellValue = Any
Cells = Dict[str, CellValue]


def new_id() -> str:
    return str(uuid.uuid4())


def normalize_cells(cells: Optional[Dict[str, Any]]) -> Cells:
    """Serialise dates, datetimes and models so every backend stores identical JSON."""
    if not cells:
        return {}
    return to_jsonable_python(dict(cells))


def fields_patch(model: BaseModel) -> Dict[str, Any]:
    """The keys a caller actually supplied, extras included, as JSON-native values."""
    data = model.model_dump(mode="json")
    supplied = set(model.model_fields_set) | set((model.model_extra or {}).keys())
    return {key: value for key, value in data.items() if key in supplied}


# --- Entities ---


class Table(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Column(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    table_id: str
    name: str
    type: ColumnType
    position: int
    width: int
    is_primary: bool = False
    config: Optional[Dict[str, Any]] = None
    created_at: datetime


class SelectOption(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    column_id: str
    name: str
    color: Optional[str] = None
    position: int


class Row(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    table_id: str
    parent_row_id: Optional[str] = None
    cells: Cells = Field(default_factory=dict)
    computed: Cells = Field(default_factory=dict)
    archived: bool = False
    created_at: datetime
    updated_at: datetime

    def value(self, column_id: str) -> CellValue:
        """Cell value for a column, falling back to the computed cache."""
        if column_id in self.cells:
            return self.cells[column_id]
        return self.computed.get(column_id)


class Relation(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    source_row_id: str
    source_column_id: str
    target_row_id: str
    created_at: datetime


class RowRelation(BaseModel):
    """One outgoing edge of a row, as seen from that row."""

    column_id: str
    target_row_id: str


class FileReference(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    row_id: str
    column_id: str
    file_id: str
    file_url: str
    original_name: str
    mime_type: str
    size_bytes: Optional[int] = None
    position: int
    metadata: Optional[Dict[str, Any]] = None


class View(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    table_id: str
    name: str
    type: ViewType
    is_default: bool
    position: int
    config: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


# --- Query ---


class QueryFilter(BaseModel):
    column_id: str
    # Plain string so unrecognised operators survive validation and pass every row
    operator: str
    value: CellValue = None


class QuerySort(BaseModel):
    column_id: str
    direction: SortDirection = SortDirection.ASC


class QueryOptions(BaseModel):
    """
    Row listing options.

    parent_row_id is tri-state: leave it unset to ignore the hierarchy, set it to
    None for top-level rows only, or set it to a row id for that row's direct children.
    """

    filters: List[QueryFilter] = Field(default_factory=list)
    sorts: List[QuerySort] = Field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None
    cursor: Optional[str] = None
    include_archived: bool = False
    parent_row_id: Optional[str] = None
    include_sub_items: bool = False

    @property
    def parent_row_id_set(self) -> bool:
        return "parent_row_id" in self.model_fields_set


class QueryResult(BaseModel, Generic[T]):
    items: List[T]
    total: int
    has_more: bool
    cursor: Optional[str] = None


# --- Views ---


class ViewConfig(BaseModel):
    """Saved view configuration. Keys not listed here are kept as-is."""

    model_config = ConfigDict(extra="allow")

    filters: Optional[List[QueryFilter]] = None
    sorts: Optional[List[QuerySort]] = None
    group_by: Optional[str] = None
    group_config: Optional[Dict[str, Any]] = None
    sub_items_config: Optional[Dict[str, Any]] = None
    hidden_columns: Optional[List[str]] = None
    column_order: Optional[List[str]] = None
    footer_config: Optional[Dict[str, Any]] = None
    board_config: Optional[Dict[str, Any]] = None
    calendar_config: Optional[Dict[str, Any]] = None
    gallery_config: Optional[Dict[str, Any]] = None
    timeline_config: Optional[Dict[str, Any]] = None
    list_config: Optional[Dict[str, Any]] = None


# --- Inputs ---


class CreateTableInput(BaseModel):
    workspace_id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None


class UpdateTableInput(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None


class CreateColumnInput(BaseModel):
    table_id: str
    name: str
    type: ColumnType
    position: Optional[int] = None
    width: Optional[int] = None
    is_primary: Optional[bool] = None
    config: Optional[Dict[str, Any]] = None


class UpdateColumnInput(BaseModel):
    name: Optional[str] = None
    width: Optional[int] = None
    is_primary: Optional[bool] = None
    config: Optional[Dict[str, Any]] = None


class CreateSelectOptionInput(BaseModel):
    column_id: str
    name: str
    color: Optional[str] = None
    position: Optional[int] = None


class UpdateSelectOptionInput(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    position: Optional[int] = None


class CreateRowInput(BaseModel):
    table_id: str
    parent_row_id: Optional[str] = None
    cells: Cells = Field(default_factory=dict)

    @field_validator("cells", mode="before")
    @classmethod
    def _normalize_cells(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return normalize_cells(value)
        return value


class UpdateRowInput(BaseModel):
    cells: Cells = Field(default_factory=dict)

    @field_validator("cells", mode="before")
    @classmethod
    def _normalize_cells(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return normalize_cells(value)
        return value


class CreateRelationInput(BaseModel):
    source_row_id: str
    source_column_id: str
    target_row_id: str


class CreateFileRefInput(BaseModel):
    row_id: str
    column_id: str
    file_id: str
    file_url: str
    original_name: str
    mime_type: str
    size_bytes: Optional[int] = None
    position: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


class CreateViewInput(BaseModel):
    table_id: str
    name: str
    type: ViewType = ViewType.TABLE
    is_default: Optional[bool] = None
    position: Optional[int] = None
    config: Optional[ViewConfig] = None


class UpdateViewInput(BaseModel):
    name: Optional[str] = None
    type: Optional[ViewType] = None
    is_default: Optional[bool] = None
    config: Optional[ViewConfig] = None


class ReorderInput(BaseModel):
    ids: List[str]


# --- Bulk ---


class BulkFailure(BaseModel):
    index: int
    id: Optional[str] = None
    error: str


class BulkResult(BaseModel, Generic[T]):
    """Outcome of a bulk call; each element either fully applied or failed in isolation."""

    succeeded: List[T] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
