"""
In-memory reference backend.

Every entity kind lives in its own dict keyed by id, guarded by a single re-entrant
lock so cascades are applied as one unit. Reads hand out deep copies, never the
stored objects.
"""

import functools
import logging
import threading
from typing import Dict, Iterable, List, Optional, Set

from gridbase.adapters.base import (
    DatabaseAdapter,
    check_option_column,
    check_parent,
    check_relation,
    lowest_position,
    next_position,
    reorder_positions,
)
from gridbase.columns import behavior_for, prepare_cells, relation_config
from gridbase.computed import ComputedValues, computed_values, has_computed_columns
from gridbase.config import Settings, settings
from gridbase.constants import TransactionSemantics
from gridbase.errors import NotFoundError
from gridbase.query import children_of, depth_of, descendants_of, execute_query
from gridbase.query import has_children as any_children
from gridbase.schemas import (
    Cells,
    Column,
    CreateColumnInput,
    CreateFileRefInput,
    CreateRelationInput,
    CreateRowInput,
    CreateSelectOptionInput,
    CreateTableInput,
    CreateViewInput,
    FileReference,
    QueryOptions,
    QueryResult,
    Relation,
    Row,
    RowRelation,
    SelectOption,
    Table,
    UpdateColumnInput,
    UpdateSelectOptionInput,
    UpdateTableInput,
    UpdateViewInput,
    View,
    fields_patch,
    new_id,
    normalize_cells,
)
from gridbase.utils.clock import utcnow

logger = logging.getLogger(__name__)


def synchronized(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


def _copy(model):
    return model.model_copy(deep=True)


class MemoryAdapter(DatabaseAdapter):
    """Reference implementation of the adapter contract over process memory."""

    transaction_semantics = TransactionSemantics.SEQUENTIAL

    def __init__(self, config: Settings = settings, computed: ComputedValues = computed_values):
        self.settings = config
        self.computed = computed
        self._lock = threading.RLock()
        self._tables: Dict[str, Table] = {}
        self._columns: Dict[str, Column] = {}
        self._options: Dict[str, SelectOption] = {}
        self._rows: Dict[str, Row] = {}
        self._relations: Dict[str, Relation] = {}
        self._files: Dict[str, FileReference] = {}
        self._views: Dict[str, View] = {}

    # --- Lookups ---

    def _table(self, table_id: str) -> Table:
        table = self._tables.get(table_id)
        if table is None:
            raise NotFoundError("Table", table_id)
        return table

    def _column(self, column_id: str) -> Column:
        column = self._columns.get(column_id)
        if column is None:
            raise NotFoundError("Column", column_id)
        return column

    def _row(self, row_id: str) -> Row:
        row = self._rows.get(row_id)
        if row is None:
            raise NotFoundError("Row", row_id)
        return row

    def _view(self, view_id: str) -> View:
        view = self._views.get(view_id)
        if view is None:
            raise NotFoundError("View", view_id)
        return view

    def _table_columns(self, table_id: str) -> List[Column]:
        return sorted(
            (column for column in self._columns.values() if column.table_id == table_id),
            key=lambda column: column.position,
        )

    def _table_rows(self, table_id: str) -> List[Row]:
        return [row for row in self._rows.values() if row.table_id == table_id]

    def _table_views(self, table_id: str) -> List[View]:
        return [view for view in self._views.values() if view.table_id == table_id]

    # --- Tables ---

    @synchronized
    def create_table(self, obj_in: CreateTableInput) -> Table:
        now = utcnow()
        table = Table(id=new_id(), **obj_in.model_dump(), created_at=now, updated_at=now)
        self._tables[table.id] = table
        logger.debug("Created table %s", table.id)
        return _copy(table)

    @synchronized
    def get_table(self, table_id: str) -> Table:
        return _copy(self._table(table_id))

    @synchronized
    def list_tables(self, workspace_id: str) -> List[Table]:
        tables = [table for table in self._tables.values() if table.workspace_id == workspace_id]
        return [_copy(table) for table in sorted(tables, key=lambda table: table.created_at, reverse=True)]

    @synchronized
    def update_table(self, table_id: str, obj_in: UpdateTableInput) -> Table:
        table = self._table(table_id)
        updated = table.model_copy(update={**obj_in.model_dump(exclude_unset=True), "updated_at": utcnow()})
        self._tables[table_id] = updated
        return _copy(updated)

    @synchronized
    def delete_table(self, table_id: str) -> None:
        self._table(table_id)
        columns = self._table_columns(table_id)
        rows = self._table_rows(table_id)
        views = self._table_views(table_id)

        # Columns, then rows, then views, then the table itself
        for column in columns:
            self._cascade_column(column)
            del self._columns[column.id]
        affected: Set[str] = set()
        for row in rows:
            affected |= self._cascade_row(row)
        for view in views:
            del self._views[view.id]
        del self._tables[table_id]

        self._refresh(self._rows[row_id] for row_id in affected if row_id in self._rows)
        logger.info(
            "Deleted table %s (cascade: %s columns, %s rows, %s views)",
            table_id, len(columns), len(rows), len(views),
        )

    # --- Columns ---

    @synchronized
    def create_column(self, obj_in: CreateColumnInput) -> Column:
        self._table(obj_in.table_id)
        existing = self._table_columns(obj_in.table_id)
        is_primary = obj_in.is_primary
        if is_primary is None:
            is_primary = not any(column.is_primary for column in existing)
        column = Column(
            id=new_id(),
            table_id=obj_in.table_id,
            name=obj_in.name,
            type=obj_in.type,
            position=obj_in.position if obj_in.position is not None else next_position(c.position for c in existing),
            width=obj_in.width if obj_in.width is not None else self.settings.DEFAULT_COLUMN_WIDTH,
            is_primary=is_primary,
            config=behavior_for(obj_in.type).validate_config(obj_in.config),
            created_at=utcnow(),
        )
        if column.is_primary:
            self._demote_primary(column.table_id)
        self._columns[column.id] = column
        logger.debug("Created %s column %s in table %s", column.type.value, column.id, column.table_id)

        if behavior_for(column.type).computed:
            self._refresh(self._table_rows(column.table_id))
        return _copy(column)

    @synchronized
    def get_column(self, column_id: str) -> Column:
        return _copy(self._column(column_id))

    @synchronized
    def get_columns(self, table_id: str) -> List[Column]:
        return [_copy(column) for column in self._table_columns(table_id)]

    @synchronized
    def update_column(self, column_id: str, obj_in: UpdateColumnInput) -> Column:
        column = self._column(column_id)
        patch = obj_in.model_dump(exclude_unset=True)
        if "config" in patch:
            patch["config"] = behavior_for(column.type).validate_config(patch["config"])
        if patch.get("is_primary"):
            self._demote_primary(column.table_id)
        updated = column.model_copy(update=patch)
        self._columns[column_id] = updated

        if "config" in patch and behavior_for(column.type).computed:
            self._refresh(self._table_rows(column.table_id))
        return _copy(updated)

    @synchronized
    def delete_column(self, column_id: str) -> None:
        column = self._column(column_id)
        affected = self._cascade_column(column)
        for row in self._table_rows(column.table_id):
            row.cells.pop(column_id, None)
            row.computed.pop(column_id, None)
        del self._columns[column_id]

        self._refresh(self._table_rows(column.table_id))
        self._refresh(self._rows[row_id] for row_id in affected if row_id in self._rows)
        logger.info("Deleted column %s", column_id)

    @synchronized
    def reorder_columns(self, table_id: str, column_ids: List[str]) -> None:
        positions = reorder_positions((c.id for c in self._table_columns(table_id)), column_ids)
        for column_id, position in positions.items():
            self._columns[column_id] = self._columns[column_id].model_copy(update={"position": position})

    def _demote_primary(self, table_id: str) -> None:
        for column in self._table_columns(table_id):
            if column.is_primary:
                self._columns[column.id] = column.model_copy(update={"is_primary": False})

    def _cascade_column(self, column: Column) -> Set[str]:
        """Remove a column's options, files and outgoing relations. Returns rows whose rollups change."""
        for option_id in [o.id for o in self._options.values() if o.column_id == column.id]:
            del self._options[option_id]
        for file_id in [f.id for f in self._files.values() if f.column_id == column.id]:
            del self._files[file_id]
        affected = set()
        for relation in [r for r in self._relations.values() if r.source_column_id == column.id]:
            affected.add(relation.source_row_id)
            del self._relations[relation.id]
        return affected

    # --- Select options ---

    @synchronized
    def create_select_option(self, obj_in: CreateSelectOptionInput) -> SelectOption:
        check_option_column(self._column(obj_in.column_id))
        position = obj_in.position
        if position is None:
            position = next_position(o.position for o in self._options.values() if o.column_id == obj_in.column_id)
        option = SelectOption(
            id=new_id(),
            column_id=obj_in.column_id,
            name=obj_in.name,
            color=obj_in.color,
            position=position,
        )
        self._options[option.id] = option
        return _copy(option)

    @synchronized
    def get_select_options(self, column_id: str) -> List[SelectOption]:
        options = [option for option in self._options.values() if option.column_id == column_id]
        return [_copy(option) for option in sorted(options, key=lambda option: option.position)]

    @synchronized
    def update_select_option(self, option_id: str, obj_in: UpdateSelectOptionInput) -> SelectOption:
        option = self._options.get(option_id)
        if option is None:
            raise NotFoundError("SelectOption", option_id)
        updated = option.model_copy(update=obj_in.model_dump(exclude_unset=True))
        self._options[option_id] = updated
        return _copy(updated)

    @synchronized
    def delete_select_option(self, option_id: str) -> None:
        # Rows keep referencing the id; readers treat an unknown option as empty
        self._options.pop(option_id, None)

    @synchronized
    def reorder_select_options(self, column_id: str, option_ids: List[str]) -> None:
        scope = (o.id for o in self._options.values() if o.column_id == column_id)
        for option_id, position in reorder_positions(scope, option_ids).items():
            self._options[option_id] = self._options[option_id].model_copy(update={"position": position})

    # --- Rows ---

    @synchronized
    def create_row(self, obj_in: CreateRowInput) -> Row:
        self._table(obj_in.table_id)
        if obj_in.parent_row_id is not None:
            check_parent(obj_in, self._row(obj_in.parent_row_id))
        now = utcnow()
        row = Row(
            id=new_id(),
            table_id=obj_in.table_id,
            parent_row_id=obj_in.parent_row_id,
            cells=prepare_cells(self._table_columns(obj_in.table_id), obj_in.cells, now),
            created_at=now,
            updated_at=now,
        )
        self._rows[row.id] = row
        self._refresh([row])
        logger.debug("Created row %s in table %s", row.id, row.table_id)
        return _copy(row)

    @synchronized
    def get_row(self, row_id: str) -> Row:
        return _copy(self._row(row_id))

    @synchronized
    def get_rows(self, table_id: str, query: Optional[QueryOptions] = None) -> QueryResult[Row]:
        result = execute_query(
            self._table_rows(table_id),
            query,
            default_limit=self.settings.DEFAULT_PAGE_LIMIT,
            max_limit=self.settings.MAX_PAGE_LIMIT,
        )
        result.items = [_copy(row) for row in result.items]
        return result

    @synchronized
    def update_row(self, row_id: str, cells: Cells) -> Row:
        row = self._row(row_id)
        now = utcnow()
        merged = {**row.cells, **normalize_cells(cells)}
        row.cells = prepare_cells(self._table_columns(row.table_id), merged, now, previous=row.cells)
        row.updated_at = now
        self._refresh([row])
        self._refresh(self._sources_of({row_id}))
        return _copy(row)

    @synchronized
    def delete_row(self, row_id: str) -> None:
        affected = self._cascade_row(self._row(row_id))
        self._refresh(self._rows[source_id] for source_id in affected if source_id in self._rows)
        logger.debug("Deleted row %s", row_id)

    @synchronized
    def archive_row(self, row_id: str) -> Row:
        return self._set_archived(row_id, True)

    @synchronized
    def unarchive_row(self, row_id: str) -> Row:
        return self._set_archived(row_id, False)

    def _set_archived(self, row_id: str, archived: bool) -> Row:
        row = self._row(row_id)
        row.archived = archived
        row.updated_at = utcnow()
        return _copy(row)

    def _cascade_row(self, row: Row) -> Set[str]:
        """Remove a row with its files and edges. Children move to the top level."""
        for file_id in [f.id for f in self._files.values() if f.row_id == row.id]:
            del self._files[file_id]
        affected = set()
        for relation in [
            r for r in self._relations.values() if row.id in (r.source_row_id, r.target_row_id)
        ]:
            if relation.target_row_id == row.id:
                affected.add(relation.source_row_id)
            del self._relations[relation.id]
        for child in self._rows.values():
            if child.parent_row_id == row.id:
                child.parent_row_id = None
        del self._rows[row.id]
        affected.discard(row.id)
        return affected

    # --- Hierarchy ---

    @synchronized
    def get_children(self, row_id: str) -> List[Row]:
        row = self._row(row_id)
        return [_copy(child) for child in children_of(self._table_rows(row.table_id), row_id)]

    @synchronized
    def get_descendants(self, row_id: str) -> List[Row]:
        row = self._row(row_id)
        return [_copy(child) for child in descendants_of(self._table_rows(row.table_id), row_id)]

    @synchronized
    def get_row_depth(self, row_id: str) -> int:
        row = self._row(row_id)
        parents = {candidate.id: candidate.parent_row_id for candidate in self._table_rows(row.table_id)}
        return depth_of(parents, row_id)

    @synchronized
    def has_children(self, row_id: str) -> bool:
        row = self._row(row_id)
        return any_children(self._table_rows(row.table_id), row_id)

    # --- Relations ---

    @synchronized
    def create_relation(self, obj_in: CreateRelationInput) -> Relation:
        source = self._row(obj_in.source_row_id)
        target = self._row(obj_in.target_row_id)
        column = self._column(obj_in.source_column_id)
        config = check_relation(source, target, column)

        existing = self._find_relation(source.id, column.id, target.id)
        if existing is not None:
            return _copy(existing)

        touched = {source.id}
        if config is not None and config.limit_type == "single":
            for relation in [r for r in self._relations.values() if r.source_row_id == source.id and r.source_column_id == column.id]:
                touched |= self._remove_edge(relation)

        relation = self._insert_edge(source.id, column.id, target.id)
        if config is not None and config.bidirectional and config.reverse_column_id:
            if config.reverse_column_id in self._columns:
                if self._find_relation(target.id, config.reverse_column_id, source.id) is None:
                    self._insert_edge(target.id, config.reverse_column_id, source.id)
                touched.add(target.id)
            else:
                logger.warning("Reverse column %s of relation column %s is missing", config.reverse_column_id, column.id)

        self._refresh(self._rows[row_id] for row_id in touched if row_id in self._rows)
        return _copy(relation)

    @synchronized
    def delete_relation(self, source_row_id: str, source_column_id: str, target_row_id: str) -> None:
        relation = self._find_relation(source_row_id, source_column_id, target_row_id)
        if relation is None:
            return
        touched = self._remove_edge(relation)
        self._refresh(self._rows[row_id] for row_id in touched if row_id in self._rows)

    @synchronized
    def get_related_rows(self, row_id: str, column_id: str) -> List[Row]:
        return [_copy(row) for row in self._related(row_id, column_id)]

    @synchronized
    def get_relations_for_row(self, row_id: str) -> List[RowRelation]:
        return [
            RowRelation(column_id=relation.source_column_id, target_row_id=relation.target_row_id)
            for relation in self._relations.values()
            if relation.source_row_id == row_id
        ]

    def _related(self, row_id: str, column_id: str) -> List[Row]:
        related = []
        for relation in self._relations.values():
            if relation.source_row_id == row_id and relation.source_column_id == column_id:
                target = self._rows.get(relation.target_row_id)
                if target is not None:
                    related.append(target)
        return related

    def _find_relation(self, source_row_id: str, column_id: str, target_row_id: str) -> Optional[Relation]:
        for relation in self._relations.values():
            if (relation.source_row_id, relation.source_column_id, relation.target_row_id) == (
                source_row_id, column_id, target_row_id,
            ):
                return relation
        return None

    def _insert_edge(self, source_row_id: str, column_id: str, target_row_id: str) -> Relation:
        relation = Relation(
            id=new_id(),
            source_row_id=source_row_id,
            source_column_id=column_id,
            target_row_id=target_row_id,
            created_at=utcnow(),
        )
        self._relations[relation.id] = relation
        return relation

    def _remove_edge(self, relation: Relation) -> Set[str]:
        """Delete an edge and its mirror on a bidirectional column. Returns touched row ids."""
        del self._relations[relation.id]
        touched = {relation.source_row_id}
        column = self._columns.get(relation.source_column_id)
        config = relation_config(column) if column is not None else None
        if config is not None and config.bidirectional and config.reverse_column_id:
            mirror = self._find_relation(relation.target_row_id, config.reverse_column_id, relation.source_row_id)
            if mirror is not None:
                del self._relations[mirror.id]
                touched.add(relation.target_row_id)
        return touched

    def _sources_of(self, target_ids: Set[str]) -> List[Row]:
        source_ids = {r.source_row_id for r in self._relations.values() if r.target_row_id in target_ids}
        return [self._rows[row_id] for row_id in source_ids if row_id in self._rows]

    # --- File references ---

    @synchronized
    def add_file_reference(self, obj_in: CreateFileRefInput) -> FileReference:
        self._row(obj_in.row_id)
        self._column(obj_in.column_id)
        position = obj_in.position
        if position is None:
            position = len(self._slot(obj_in.row_id, obj_in.column_id))
        file_ref = FileReference(id=new_id(), **obj_in.model_dump(exclude={"position"}), position=position)
        self._files[file_ref.id] = file_ref
        return _copy(file_ref)

    @synchronized
    def get_file_references(self, row_id: str, column_id: str) -> List[FileReference]:
        return [_copy(file_ref) for file_ref in sorted(self._slot(row_id, column_id), key=lambda f: f.position)]

    @synchronized
    def delete_file_reference(self, file_ref_id: str) -> None:
        self._files.pop(file_ref_id, None)

    @synchronized
    def reorder_file_references(self, row_id: str, column_id: str, file_ref_ids: List[str]) -> None:
        scope = (file_ref.id for file_ref in self._slot(row_id, column_id))
        for file_ref_id, position in reorder_positions(scope, file_ref_ids).items():
            self._files[file_ref_id] = self._files[file_ref_id].model_copy(update={"position": position})

    def _slot(self, row_id: str, column_id: str) -> List[FileReference]:
        return [f for f in self._files.values() if f.row_id == row_id and f.column_id == column_id]

    # --- Views ---

    @synchronized
    def create_view(self, obj_in: CreateViewInput) -> View:
        self._table(obj_in.table_id)
        existing = self._table_views(obj_in.table_id)
        now = utcnow()
        # The first view of a table is always the default
        is_default = not existing or bool(obj_in.is_default)
        position = obj_in.position
        if position is None:
            position = next_position(view.position for view in existing)
        view = View(
            id=new_id(),
            table_id=obj_in.table_id,
            name=obj_in.name,
            type=obj_in.type,
            is_default=is_default,
            position=position,
            config=fields_patch(obj_in.config) if obj_in.config is not None else {},
            created_at=now,
            updated_at=now,
        )
        if is_default:
            self._clear_default(obj_in.table_id)
        self._views[view.id] = view
        return _copy(view)

    @synchronized
    def get_view(self, view_id: str) -> View:
        return _copy(self._view(view_id))

    @synchronized
    def get_views(self, table_id: str) -> List[View]:
        return [_copy(view) for view in sorted(self._table_views(table_id), key=lambda view: view.position)]

    @synchronized
    def update_view(self, view_id: str, obj_in: UpdateViewInput) -> View:
        view = self._view(view_id)
        patch = obj_in.model_dump(exclude_unset=True, exclude={"config"})
        patch.pop("is_default", None)
        if obj_in.config is not None:
            patch["config"] = {**view.config, **fields_patch(obj_in.config)}
        patch["updated_at"] = utcnow()
        updated = view.model_copy(update=patch)

        if obj_in.is_default is True and not view.is_default:
            self._clear_default(view.table_id)
            updated.is_default = True
        elif obj_in.is_default is False and view.is_default:
            successor = lowest_position(v for v in self._table_views(view.table_id) if v.id != view_id)
            if successor is not None:
                self._views[successor.id] = successor.model_copy(update={"is_default": True})
                updated.is_default = False
        self._views[view_id] = updated
        return _copy(updated)

    @synchronized
    def delete_view(self, view_id: str) -> None:
        view = self._views.pop(view_id, None)
        if view is None or not view.is_default:
            return
        successor = lowest_position(self._table_views(view.table_id))
        if successor is not None:
            self._views[successor.id] = successor.model_copy(update={"is_default": True})

    @synchronized
    def reorder_views(self, table_id: str, view_ids: List[str]) -> None:
        scope = (view.id for view in self._table_views(table_id))
        for view_id, position in reorder_positions(scope, view_ids).items():
            self._views[view_id] = self._views[view_id].model_copy(update={"position": position})

    def _clear_default(self, table_id: str) -> None:
        for view in self._table_views(table_id):
            if view.is_default:
                self._views[view.id] = view.model_copy(update={"is_default": False})

    # --- Computed values ---

    def _refresh(self, rows: Iterable[Row]) -> None:
        for row in list(rows):
            columns = self._table_columns(row.table_id)
            if not has_computed_columns(columns):
                row.computed = {}
                continue
            row.computed = self.computed.compute(row, columns, self._related, self._columns.get)
