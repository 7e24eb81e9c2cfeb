import logging
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, List, Optional, Set, TypeVar

from sqlalchemy.engine import Engine
from sqlmodel import Session

from gridbase.adapters.base import (
    DatabaseAdapter,
    check_option_column,
    check_parent,
    check_relation,
    lowest_position,
    next_position,
    reorder_positions,
)
from gridbase.adapters.sql import crud
from gridbase.adapters.sql.models import (
    FileReferenceRecord,
    RelationRecord,
    RowRecord,
    SelectOptionRecord,
    ViewRecord,
)
from gridbase.columns import behavior_for, prepare_cells, relation_config
from gridbase.computed import ComputedValues, computed_values, has_computed_columns
from gridbase.config import Settings, settings
from gridbase.constants import TransactionSemantics
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
    normalize_cells,
)
from gridbase.utils.clock import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _file_ref(record: FileReferenceRecord) -> FileReference:
    return FileReference(
        id=record.id,
        row_id=record.row_id,
        column_id=record.column_id,
        file_id=record.file_id,
        file_url=record.file_url,
        original_name=record.original_name,
        mime_type=record.mime_type,
        size_bytes=record.size_bytes,
        position=record.position,
        metadata=record.extra,
    )


class SQLAdapter(DatabaseAdapter):
    """
    Relational backend on SQLModel.

    An unbound adapter opens one session per operation and commits it, so every
    cascade lands together. transaction() binds a fresh adapter to a single session
    and commits or rolls back everything the callback did.
    """

    transaction_semantics = TransactionSemantics.ATOMIC

    def __init__(
        self,
        engine: Engine,
        config: Settings = settings,
        computed: ComputedValues = computed_values,
        session: Optional[Session] = None,
    ):
        self.engine = engine
        self.settings = config
        self.computed = computed
        self._session = session

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        if self._session is not None:
            yield self._session
            self._session.flush()
            return
        with Session(self.engine) as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    def transaction(self, fn: Callable[[DatabaseAdapter], T]) -> T:
        if self._session is not None:
            return fn(self)
        with Session(self.engine) as session:
            bound = SQLAdapter(self.engine, config=self.settings, computed=self.computed, session=session)
            try:
                result = fn(bound)
                session.commit()
            except Exception:
                logger.warning("Transaction rolled back")
                session.rollback()
                raise
            return result

    # --- Tables ---

    def create_table(self, obj_in: CreateTableInput) -> Table:
        now = utcnow()
        with self._session_scope() as session:
            record = crud.table.create(session, obj_in={**obj_in.model_dump(), "created_at": now, "updated_at": now})
            logger.debug("Created table %s", record.id)
            return Table.model_validate(record)

    def get_table(self, table_id: str) -> Table:
        with self._session_scope() as session:
            return Table.model_validate(crud.table.get_or_404(session, table_id))

    def list_tables(self, workspace_id: str) -> List[Table]:
        with self._session_scope() as session:
            return [Table.model_validate(record) for record in crud.table.get_by_workspace(session, workspace_id)]

    def update_table(self, table_id: str, obj_in: UpdateTableInput) -> Table:
        with self._session_scope() as session:
            record = crud.table.get_or_404(session, table_id)
            record = crud.table.update(
                session, db_obj=record, obj_in={**obj_in.model_dump(exclude_unset=True), "updated_at": utcnow()}
            )
            return Table.model_validate(record)

    def delete_table(self, table_id: str) -> None:
        with self._session_scope() as session:
            record = crud.table.get_or_404(session, table_id)
            rows = crud.row.get_by_table(session, table_id)
            affected: Set[str] = set()
            for column_record in record.columns:
                affected |= self._cascade_column(session, column_record.id)
            for row_record in rows:
                affected |= self._cascade_row(session, row_record)
            # Columns (with their options) and views go with the table
            crud.table.remove(session, db_obj=record)
            self._refresh(session, self._existing_rows(session, affected))
            logger.info("Deleted table %s (cascade: %s rows)", table_id, len(rows))

    # --- Columns ---

    def create_column(self, obj_in: CreateColumnInput) -> Column:
        with self._session_scope() as session:
            crud.table.get_or_404(session, obj_in.table_id)
            existing = crud.column.get_by_table(session, obj_in.table_id)
            is_primary = obj_in.is_primary
            if is_primary is None:
                is_primary = not any(record.is_primary for record in existing)
            if is_primary:
                self._demote_primary(session, existing)
            position = obj_in.position
            if position is None:
                position = next_position(record.position for record in existing)
            record = crud.column.create(
                session,
                obj_in={
                    "table_id": obj_in.table_id,
                    "name": obj_in.name,
                    "type": obj_in.type.value,
                    "position": position,
                    "width": obj_in.width if obj_in.width is not None else self.settings.DEFAULT_COLUMN_WIDTH,
                    "is_primary": is_primary,
                    "config": behavior_for(obj_in.type).validate_config(obj_in.config),
                    "created_at": utcnow(),
                },
            )
            column = Column.model_validate(record)
            logger.debug("Created %s column %s in table %s", column.type.value, column.id, column.table_id)
            if behavior_for(column.type).computed:
                self._refresh(session, crud.row.get_by_table(session, column.table_id))
            return column

    def get_column(self, column_id: str) -> Column:
        with self._session_scope() as session:
            return Column.model_validate(crud.column.get_or_404(session, column_id))

    def get_columns(self, table_id: str) -> List[Column]:
        with self._session_scope() as session:
            return self._columns(session, table_id)

    def update_column(self, column_id: str, obj_in: UpdateColumnInput) -> Column:
        with self._session_scope() as session:
            record = crud.column.get_or_404(session, column_id)
            behavior = behavior_for(record.type)
            patch = obj_in.model_dump(exclude_unset=True)
            if "config" in patch:
                patch["config"] = behavior.validate_config(patch["config"])
            if patch.get("is_primary"):
                self._demote_primary(session, crud.column.get_by_table(session, record.table_id))
            record = crud.column.update(session, db_obj=record, obj_in=patch)
            column = Column.model_validate(record)
            if "config" in patch and behavior.computed:
                self._refresh(session, crud.row.get_by_table(session, column.table_id))
            return column

    def delete_column(self, column_id: str) -> None:
        with self._session_scope() as session:
            record = crud.column.get_or_404(session, column_id)
            table_id = record.table_id
            self._cascade_column(session, column_id)
            crud.column.remove(session, db_obj=record)

            for row_record in crud.row.get_by_table(session, table_id):
                if column_id in row_record.cells:
                    row_record.cells = {k: v for k, v in row_record.cells.items() if k != column_id}
            self._refresh(session, crud.row.get_by_table(session, table_id))
            logger.info("Deleted column %s", column_id)

    def reorder_columns(self, table_id: str, column_ids: List[str]) -> None:
        with self._session_scope() as session:
            records = crud.column.get_by_table(session, table_id)
            self._apply_positions(records, column_ids)

    def _cascade_column(self, session: Session, column_id: str) -> Set[str]:
        """Remove a column's files and outgoing edges. Returns rows whose rollups change."""
        for file_record in crud.file_reference.get_by(session, column_id=column_id):
            session.delete(file_record)
        affected = set()
        for relation_record in crud.relation.get_by_column(session, column_id):
            affected.add(relation_record.source_row_id)
            session.delete(relation_record)
        session.flush()
        return affected

    def _demote_primary(self, session: Session, records: Iterable) -> None:
        for record in records:
            if record.is_primary:
                record.is_primary = False
                session.add(record)

    # --- Select options ---

    def create_select_option(self, obj_in: CreateSelectOptionInput) -> SelectOption:
        with self._session_scope() as session:
            check_option_column(Column.model_validate(crud.column.get_or_404(session, obj_in.column_id)))
            data = obj_in.model_dump()
            if data["position"] is None:
                current = crud.select_option.max_position(session, SelectOptionRecord.column_id == obj_in.column_id)
                data["position"] = 0 if current is None else current + 1
            return SelectOption.model_validate(crud.select_option.create(session, obj_in=data))

    def get_select_options(self, column_id: str) -> List[SelectOption]:
        with self._session_scope() as session:
            return [SelectOption.model_validate(r) for r in crud.select_option.get_by_column(session, column_id)]

    def update_select_option(self, option_id: str, obj_in: UpdateSelectOptionInput) -> SelectOption:
        with self._session_scope() as session:
            record = crud.select_option.get_or_404(session, option_id)
            return SelectOption.model_validate(crud.select_option.update(session, db_obj=record, obj_in=obj_in))

    def delete_select_option(self, option_id: str) -> None:
        with self._session_scope() as session:
            record = crud.select_option.get(session, option_id)
            if record is not None:
                crud.select_option.remove(session, db_obj=record)

    def reorder_select_options(self, column_id: str, option_ids: List[str]) -> None:
        with self._session_scope() as session:
            self._apply_positions(crud.select_option.get_by_column(session, column_id), option_ids)

    # --- Rows ---

    def create_row(self, obj_in: CreateRowInput) -> Row:
        with self._session_scope() as session:
            crud.table.get_or_404(session, obj_in.table_id)
            if obj_in.parent_row_id is not None:
                check_parent(obj_in, Row.model_validate(crud.row.get_or_404(session, obj_in.parent_row_id)))
            now = utcnow()
            record = crud.row.create(
                session,
                obj_in={
                    "seq": crud.row.next_seq(session),
                    "table_id": obj_in.table_id,
                    "parent_row_id": obj_in.parent_row_id,
                    "cells": prepare_cells(self._columns(session, obj_in.table_id), obj_in.cells, now),
                    "computed": {},
                    "created_at": now,
                    "updated_at": now,
                },
            )
            self._refresh(session, [record])
            logger.debug("Created row %s in table %s", record.id, record.table_id)
            return Row.model_validate(record)

    def get_row(self, row_id: str) -> Row:
        with self._session_scope() as session:
            return Row.model_validate(crud.row.get_or_404(session, row_id))

    def get_rows(self, table_id: str, query: Optional[QueryOptions] = None) -> QueryResult[Row]:
        with self._session_scope() as session:
            rows = [Row.model_validate(record) for record in crud.row.get_by_table(session, table_id)]
        return execute_query(
            rows,
            query,
            default_limit=self.settings.DEFAULT_PAGE_LIMIT,
            max_limit=self.settings.MAX_PAGE_LIMIT,
        )

    def update_row(self, row_id: str, cells: Cells) -> Row:
        with self._session_scope() as session:
            record = crud.row.get_or_404(session, row_id)
            now = utcnow()
            merged = {**record.cells, **normalize_cells(cells)}
            record.cells = prepare_cells(self._columns(session, record.table_id), merged, now, previous=record.cells)
            record.updated_at = now
            session.add(record)
            self._refresh(session, [record])
            sources = {relation.source_row_id for relation in crud.relation.get_incoming(session, row_id)}
            self._refresh(session, self._existing_rows(session, sources))
            return Row.model_validate(record)

    def delete_row(self, row_id: str) -> None:
        with self._session_scope() as session:
            affected = self._cascade_row(session, crud.row.get_or_404(session, row_id))
            self._refresh(session, self._existing_rows(session, affected))
            logger.debug("Deleted row %s", row_id)

    def archive_row(self, row_id: str) -> Row:
        return self._set_archived(row_id, True)

    def unarchive_row(self, row_id: str) -> Row:
        return self._set_archived(row_id, False)

    def _set_archived(self, row_id: str, archived: bool) -> Row:
        with self._session_scope() as session:
            record = crud.row.get_or_404(session, row_id)
            record = crud.row.update(session, db_obj=record, obj_in={"archived": archived, "updated_at": utcnow()})
            return Row.model_validate(record)

    def _cascade_row(self, session: Session, record: RowRecord) -> Set[str]:
        """Remove a row with its files and edges. Children move to the top level."""
        for file_record in crud.file_reference.get_by(session, row_id=record.id):
            session.delete(file_record)
        affected = set()
        for relation_record in crud.relation.get_touching(session, record.id):
            if relation_record.target_row_id == record.id:
                affected.add(relation_record.source_row_id)
            session.delete(relation_record)
        for child in crud.row.get_children(session, record.id):
            child.parent_row_id = None
            session.add(child)
        session.flush()
        crud.row.remove(session, db_obj=record)
        affected.discard(record.id)
        return affected

    # --- Hierarchy ---

    def get_children(self, row_id: str) -> List[Row]:
        with self._session_scope() as session:
            rows = self._sibling_rows(session, row_id)
        return children_of(rows, row_id)

    def get_descendants(self, row_id: str) -> List[Row]:
        with self._session_scope() as session:
            rows = self._sibling_rows(session, row_id)
        return descendants_of(rows, row_id)

    def get_row_depth(self, row_id: str) -> int:
        with self._session_scope() as session:
            rows = self._sibling_rows(session, row_id)
        return depth_of({row.id: row.parent_row_id for row in rows}, row_id)

    def has_children(self, row_id: str) -> bool:
        with self._session_scope() as session:
            rows = self._sibling_rows(session, row_id)
        return any_children(rows, row_id)

    def _sibling_rows(self, session: Session, row_id: str) -> List[Row]:
        record = crud.row.get_or_404(session, row_id)
        return [Row.model_validate(r) for r in crud.row.get_by_table(session, record.table_id)]

    # --- Relations ---

    def create_relation(self, obj_in: CreateRelationInput) -> Relation:
        with self._session_scope() as session:
            source = crud.row.get_or_404(session, obj_in.source_row_id)
            target = crud.row.get_or_404(session, obj_in.target_row_id)
            column = Column.model_validate(crud.column.get_or_404(session, obj_in.source_column_id))
            config = check_relation(Row.model_validate(source), Row.model_validate(target), column)

            existing = crud.relation.find(session, source.id, column.id, target.id)
            if existing is not None:
                return Relation.model_validate(existing)

            touched = {source.id}
            if config is not None and config.limit_type == "single":
                for relation_record in crud.relation.get_outgoing(session, source.id, column.id):
                    touched |= self._remove_edge(session, relation_record)

            record = self._insert_edge(session, source.id, column.id, target.id)
            if config is not None and config.bidirectional and config.reverse_column_id:
                if crud.column.get(session, config.reverse_column_id) is not None:
                    if crud.relation.find(session, target.id, config.reverse_column_id, source.id) is None:
                        self._insert_edge(session, target.id, config.reverse_column_id, source.id)
                    touched.add(target.id)
                else:
                    logger.warning(
                        "Reverse column %s of relation column %s is missing", config.reverse_column_id, column.id
                    )

            self._refresh(session, self._existing_rows(session, touched))
            return Relation.model_validate(record)

    def delete_relation(self, source_row_id: str, source_column_id: str, target_row_id: str) -> None:
        with self._session_scope() as session:
            record = crud.relation.find(session, source_row_id, source_column_id, target_row_id)
            if record is None:
                return
            touched = self._remove_edge(session, record)
            self._refresh(session, self._existing_rows(session, touched))

    def get_related_rows(self, row_id: str, column_id: str) -> List[Row]:
        with self._session_scope() as session:
            return self._related(session, row_id, column_id)

    def get_relations_for_row(self, row_id: str) -> List[RowRelation]:
        with self._session_scope() as session:
            return [
                RowRelation(column_id=record.source_column_id, target_row_id=record.target_row_id)
                for record in crud.relation.get_outgoing(session, row_id)
            ]

    def _related(self, session: Session, row_id: str, column_id: str) -> List[Row]:
        related = []
        for relation_record in crud.relation.get_outgoing(session, row_id, column_id):
            target = crud.row.get(session, relation_record.target_row_id)
            if target is not None:
                related.append(Row.model_validate(target))
        return related

    def _insert_edge(self, session: Session, source_row_id: str, column_id: str, target_row_id: str) -> RelationRecord:
        return crud.relation.create(
            session,
            obj_in={
                "seq": crud.relation.next_seq(session),
                "source_row_id": source_row_id,
                "source_column_id": column_id,
                "target_row_id": target_row_id,
                "created_at": utcnow(),
            },
        )

    def _remove_edge(self, session: Session, record: RelationRecord) -> Set[str]:
        """Delete an edge and its mirror on a bidirectional column. Returns touched row ids."""
        touched = {record.source_row_id}
        column_record = crud.column.get(session, record.source_column_id)
        config = relation_config(Column.model_validate(column_record)) if column_record is not None else None
        if config is not None and config.bidirectional and config.reverse_column_id:
            mirror = crud.relation.find(session, record.target_row_id, config.reverse_column_id, record.source_row_id)
            if mirror is not None:
                session.delete(mirror)
                touched.add(record.target_row_id)
        crud.relation.remove(session, db_obj=record)
        return touched

    # --- File references ---

    def add_file_reference(self, obj_in: CreateFileRefInput) -> FileReference:
        with self._session_scope() as session:
            crud.row.get_or_404(session, obj_in.row_id)
            crud.column.get_or_404(session, obj_in.column_id)
            data = obj_in.model_dump(exclude={"metadata"})
            if data["position"] is None:
                data["position"] = len(crud.file_reference.get_slot(session, obj_in.row_id, obj_in.column_id))
            data["extra"] = obj_in.metadata
            return _file_ref(crud.file_reference.create(session, obj_in=data))

    def get_file_references(self, row_id: str, column_id: str) -> List[FileReference]:
        with self._session_scope() as session:
            return [_file_ref(record) for record in crud.file_reference.get_slot(session, row_id, column_id)]

    def delete_file_reference(self, file_ref_id: str) -> None:
        with self._session_scope() as session:
            record = crud.file_reference.get(session, file_ref_id)
            if record is not None:
                crud.file_reference.remove(session, db_obj=record)

    def reorder_file_references(self, row_id: str, column_id: str, file_ref_ids: List[str]) -> None:
        with self._session_scope() as session:
            self._apply_positions(crud.file_reference.get_slot(session, row_id, column_id), file_ref_ids)

    # --- Views ---

    def create_view(self, obj_in: CreateViewInput) -> View:
        with self._session_scope() as session:
            crud.table.get_or_404(session, obj_in.table_id)
            existing = crud.view.get_by_table(session, obj_in.table_id)
            # The first view of a table is always the default
            is_default = not existing or bool(obj_in.is_default)
            if is_default:
                self._clear_default(session, existing)
            position = obj_in.position
            if position is None:
                position = next_position(record.position for record in existing)
            now = utcnow()
            record = crud.view.create(
                session,
                obj_in={
                    "table_id": obj_in.table_id,
                    "name": obj_in.name,
                    "type": obj_in.type.value,
                    "is_default": is_default,
                    "position": position,
                    "config": fields_patch(obj_in.config) if obj_in.config is not None else {},
                    "created_at": now,
                    "updated_at": now,
                },
            )
            return View.model_validate(record)

    def get_view(self, view_id: str) -> View:
        with self._session_scope() as session:
            return View.model_validate(crud.view.get_or_404(session, view_id))

    def get_views(self, table_id: str) -> List[View]:
        with self._session_scope() as session:
            return [View.model_validate(record) for record in crud.view.get_by_table(session, table_id)]

    def update_view(self, view_id: str, obj_in: UpdateViewInput) -> View:
        with self._session_scope() as session:
            record = crud.view.get_or_404(session, view_id)
            patch = obj_in.model_dump(exclude_unset=True, exclude={"config", "is_default"})
            if "type" in patch and patch["type"] is not None:
                patch["type"] = patch["type"].value
            if obj_in.config is not None:
                patch["config"] = {**record.config, **fields_patch(obj_in.config)}
            patch["updated_at"] = utcnow()

            if obj_in.is_default is True and not record.is_default:
                self._clear_default(session, crud.view.get_by_table(session, record.table_id))
                patch["is_default"] = True
            elif obj_in.is_default is False and record.is_default:
                others = [r for r in crud.view.get_by_table(session, record.table_id) if r.id != view_id]
                successor = lowest_position(View.model_validate(r) for r in others)
                if successor is not None:
                    successor_record = crud.view.get_or_404(session, successor.id)
                    successor_record.is_default = True
                    session.add(successor_record)
                    patch["is_default"] = False
            record = crud.view.update(session, db_obj=record, obj_in=patch)
            return View.model_validate(record)

    def delete_view(self, view_id: str) -> None:
        with self._session_scope() as session:
            record = crud.view.get(session, view_id)
            if record is None:
                return
            was_default, table_id = record.is_default, record.table_id
            crud.view.remove(session, db_obj=record)
            if not was_default:
                return
            remaining = crud.view.get_by_table(session, table_id)
            successor = lowest_position(View.model_validate(r) for r in remaining)
            if successor is not None:
                successor_record = crud.view.get_or_404(session, successor.id)
                successor_record.is_default = True
                session.add(successor_record)

    def reorder_views(self, table_id: str, view_ids: List[str]) -> None:
        with self._session_scope() as session:
            self._apply_positions(crud.view.get_by_table(session, table_id), view_ids)

    def _clear_default(self, session: Session, records: Iterable[ViewRecord]) -> None:
        for record in records:
            if record.is_default:
                record.is_default = False
                session.add(record)

    # --- Helpers ---

    def _columns(self, session: Session, table_id: str) -> List[Column]:
        return [Column.model_validate(record) for record in crud.column.get_by_table(session, table_id)]

    def _existing_rows(self, session: Session, row_ids: Iterable[str]) -> List[RowRecord]:
        records = (crud.row.get(session, row_id) for row_id in row_ids)
        return [record for record in records if record is not None]

    @staticmethod
    def _apply_positions(records: Iterable, ordered_ids: List[str]) -> None:
        records = list(records)
        positions = reorder_positions((record.id for record in records), ordered_ids)
        for record in records:
            if record.id in positions:
                record.position = positions[record.id]

    def _refresh(self, session: Session, records: Iterable[RowRecord]) -> None:
        def get_column(column_id: str) -> Optional[Column]:
            column_record = crud.column.get(session, column_id)
            return Column.model_validate(column_record) if column_record is not None else None

        def related_rows(row_id: str, column_id: str) -> List[Row]:
            return self._related(session, row_id, column_id)

        columns_by_table = {}
        for record in list(records):
            if record.table_id not in columns_by_table:
                columns_by_table[record.table_id] = self._columns(session, record.table_id)
            columns = columns_by_table[record.table_id]
            if has_computed_columns(columns):
                record.computed = self.computed.compute(Row.model_validate(record), columns, related_rows, get_column)
            else:
                record.computed = {}
            session.add(record)
