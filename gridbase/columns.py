"""
Per-type column behaviour.

Each ColumnType maps to one ColumnBehavior that knows how to validate its config,
whether it auto-stamps timestamps on write and whether its value is computed.
Adapters dispatch through behavior_for() instead of branching on type strings.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from gridbase.constants import ColumnType, RollupAggregation
from gridbase.errors import ValidationFailure
from gridbase.formula import formula_engine
from gridbase.schemas import Cells, Column
from gridbase.utils.clock import to_iso


class ColumnConfigBase(BaseModel):
    model_config = ConfigDict(extra="allow")


class TextColumnConfig(ColumnConfigBase):
    max_length: Optional[int] = None
    placeholder: Optional[str] = None


class NumberColumnConfig(ColumnConfigBase):
    format: Literal["number", "currency", "percent"] = "number"
    precision: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None
    currency_code: Optional[str] = None


class DateColumnConfig(ColumnConfigBase):
    include_time: Optional[bool] = None
    date_format: Optional[str] = None
    timezone: Optional[str] = None


class MultiSelectColumnConfig(ColumnConfigBase):
    max_selections: Optional[int] = None


class UrlColumnConfig(ColumnConfigBase):
    show_preview: Optional[bool] = None


class FileColumnConfig(ColumnConfigBase):
    allowed_types: Optional[List[str]] = None
    max_files: Optional[int] = None
    max_size_bytes: Optional[int] = None


class FormulaColumnConfig(ColumnConfigBase):
    formula: str
    result_type: Literal["text", "number", "date", "boolean"] = "text"


class RelationColumnConfig(ColumnConfigBase):
    target_table_id: str
    bidirectional: bool = False
    reverse_column_id: Optional[str] = None
    limit_type: Literal["single", "multiple"] = "multiple"


class RollupColumnConfig(ColumnConfigBase):
    relation_column_id: str
    target_column_id: str
    aggregation: RollupAggregation = RollupAggregation.COUNT


class ColumnBehavior:
    """Default behaviour: a plain stored value with a free-form config."""

    config_model: Type[ColumnConfigBase] = ColumnConfigBase
    computed = False
    auto_stamped = False
    is_relation = False
    has_options = False

    def __init__(self, column_type: ColumnType, config_model: Optional[Type[ColumnConfigBase]] = None):
        self.type = column_type
        if config_model is not None:
            self.config_model = config_model

    def validate_config(self, config: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if config is None:
            return None
        try:
            model = self.config_model.model_validate(config)
        except ValidationError as exc:
            raise ValidationFailure(f"Invalid {self.type.value} column config: {exc}") from exc
        return model.model_dump(mode="json", exclude_none=True)

    def stamp_on_create(self, created_at: datetime) -> Optional[str]:
        return None

    def stamp_on_update(self, updated_at: datetime) -> Optional[str]:
        return None


class SelectBehavior(ColumnBehavior):
    has_options = True


class MultiSelectBehavior(SelectBehavior):
    config_model = MultiSelectColumnConfig


class CreatedTimeBehavior(ColumnBehavior):
    config_model = DateColumnConfig
    auto_stamped = True

    def stamp_on_create(self, created_at: datetime) -> Optional[str]:
        return to_iso(created_at)


class LastEditedTimeBehavior(ColumnBehavior):
    config_model = DateColumnConfig
    auto_stamped = True

    def stamp_on_create(self, created_at: datetime) -> Optional[str]:
        return to_iso(created_at)

    def stamp_on_update(self, updated_at: datetime) -> Optional[str]:
        return to_iso(updated_at)


class FormulaBehavior(ColumnBehavior):
    config_model = FormulaColumnConfig
    computed = True

    def validate_config(self, config: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        validated = super().validate_config(config)
        if validated is not None:
            check = formula_engine.validate(validated["formula"])
            if not check.is_valid:
                raise ValidationFailure(f"Invalid formula: {check.error}")
        return validated


class RollupBehavior(ColumnBehavior):
    config_model = RollupColumnConfig
    computed = True


class RelationBehavior(ColumnBehavior):
    config_model = RelationColumnConfig
    is_relation = True


_BEHAVIORS: Dict[ColumnType, ColumnBehavior] = {
    ColumnType.TEXT: ColumnBehavior(ColumnType.TEXT, TextColumnConfig),
    ColumnType.NUMBER: ColumnBehavior(ColumnType.NUMBER, NumberColumnConfig),
    ColumnType.DATE: ColumnBehavior(ColumnType.DATE, DateColumnConfig),
    ColumnType.BOOLEAN: ColumnBehavior(ColumnType.BOOLEAN),
    ColumnType.SELECT: SelectBehavior(ColumnType.SELECT),
    ColumnType.MULTI_SELECT: MultiSelectBehavior(ColumnType.MULTI_SELECT),
    ColumnType.URL: ColumnBehavior(ColumnType.URL, UrlColumnConfig),
    ColumnType.FILE: ColumnBehavior(ColumnType.FILE, FileColumnConfig),
    ColumnType.FORMULA: FormulaBehavior(ColumnType.FORMULA),
    ColumnType.RELATION: RelationBehavior(ColumnType.RELATION),
    ColumnType.ROLLUP: RollupBehavior(ColumnType.ROLLUP),
    ColumnType.CREATED_TIME: CreatedTimeBehavior(ColumnType.CREATED_TIME),
    ColumnType.LAST_EDITED_TIME: LastEditedTimeBehavior(ColumnType.LAST_EDITED_TIME),
}


def behavior_for(column_type: ColumnType) -> ColumnBehavior:
    return _BEHAVIORS[ColumnType(column_type)]


def prepare_cells(
    columns: Iterable[Column],
    cells: Cells,
    instant: datetime,
    previous: Optional[Cells] = None,
) -> Cells:
    """
    Apply write-time column behaviour to a cell map.

    ``previous`` is None on create and the row's stored cells on update. Timestamp
    columns are stamped over any caller value, keeping their previous value when
    they do not restamp on update. Cells of computed columns are dropped since
    their values live in Row.computed.
    """
    prepared = dict(cells)
    for column in columns:
        behavior = behavior_for(column.type)
        if behavior.computed:
            prepared.pop(column.id, None)
            continue
        if not behavior.auto_stamped:
            continue
        if previous is None:
            stamp = behavior.stamp_on_create(instant)
        else:
            stamp = behavior.stamp_on_update(instant) or previous.get(column.id)
        if stamp is None:
            prepared.pop(column.id, None)
        else:
            prepared[column.id] = stamp
    return prepared


def relation_config(column: Column) -> Optional[RelationColumnConfig]:
    if not behavior_for(column.type).is_relation or not column.config:
        return None
    return RelationColumnConfig.model_validate(column.config)


def formula_config(column: Column) -> Optional[FormulaColumnConfig]:
    if column.type != ColumnType.FORMULA or not column.config:
        return None
    return FormulaColumnConfig.model_validate(column.config)


def rollup_config(column: Column) -> Optional[RollupColumnConfig]:
    if column.type != ColumnType.ROLLUP or not column.config:
        return None
    return RollupColumnConfig.model_validate(column.config)
