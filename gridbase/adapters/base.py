"""
The adapter contract.

Each entity family is a narrow Protocol so a backend (or a caller's type hints) can
depend on just the families it needs. DatabaseAdapter composes all of them into the
single facade every full backend implements.
"""

import logging
from abc import abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, TypeVar

from gridbase.columns import RelationColumnConfig, behavior_for, relation_config
from gridbase.constants import TransactionSemantics
from gridbase.errors import GridbaseError, ValidationFailure
from gridbase.schemas import (
    BulkFailure,
    BulkResult,
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
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TableStore(Protocol):
    @abstractmethod
    def create_table(self, obj_in: CreateTableInput) -> Table: ...

    @abstractmethod
    def get_table(self, table_id: str) -> Table: ...

    @abstractmethod
    def list_tables(self, workspace_id: str) -> List[Table]: ...

    @abstractmethod
    def update_table(self, table_id: str, obj_in: UpdateTableInput) -> Table: ...

    @abstractmethod
    def delete_table(self, table_id: str) -> None: ...


class ColumnStore(Protocol):
    @abstractmethod
    def create_column(self, obj_in: CreateColumnInput) -> Column: ...

    @abstractmethod
    def get_column(self, column_id: str) -> Column: ...

    @abstractmethod
    def get_columns(self, table_id: str) -> List[Column]: ...

    @abstractmethod
    def update_column(self, column_id: str, obj_in: UpdateColumnInput) -> Column: ...

    @abstractmethod
    def delete_column(self, column_id: str) -> None: ...

    @abstractmethod
    def reorder_columns(self, table_id: str, column_ids: List[str]) -> None: ...


class SelectOptionStore(Protocol):
    @abstractmethod
    def create_select_option(self, obj_in: CreateSelectOptionInput) -> SelectOption: ...

    @abstractmethod
    def get_select_options(self, column_id: str) -> List[SelectOption]: ...

    @abstractmethod
    def update_select_option(self, option_id: str, obj_in: UpdateSelectOptionInput) -> SelectOption: ...

    @abstractmethod
    def delete_select_option(self, option_id: str) -> None: ...

    @abstractmethod
    def reorder_select_options(self, column_id: str, option_ids: List[str]) -> None: ...


class RowStore(Protocol):
    @abstractmethod
    def create_row(self, obj_in: CreateRowInput) -> Row: ...

    @abstractmethod
    def get_row(self, row_id: str) -> Row: ...

    @abstractmethod
    def get_rows(self, table_id: str, query: Optional[QueryOptions] = None) -> QueryResult[Row]: ...

    @abstractmethod
    def update_row(self, row_id: str, cells: Cells) -> Row: ...

    @abstractmethod
    def delete_row(self, row_id: str) -> None: ...

    @abstractmethod
    def archive_row(self, row_id: str) -> Row: ...

    @abstractmethod
    def unarchive_row(self, row_id: str) -> Row: ...

    @abstractmethod
    def get_children(self, row_id: str) -> List[Row]: ...

    @abstractmethod
    def get_descendants(self, row_id: str) -> List[Row]: ...

    @abstractmethod
    def get_row_depth(self, row_id: str) -> int: ...

    @abstractmethod
    def has_children(self, row_id: str) -> bool: ...


class RelationStore(Protocol):
    @abstractmethod
    def create_relation(self, obj_in: CreateRelationInput) -> Relation: ...

    @abstractmethod
    def delete_relation(self, source_row_id: str, source_column_id: str, target_row_id: str) -> None: ...

    @abstractmethod
    def get_related_rows(self, row_id: str, column_id: str) -> List[Row]: ...

    @abstractmethod
    def get_relations_for_row(self, row_id: str) -> List[RowRelation]: ...


class FileReferenceStore(Protocol):
    @abstractmethod
    def add_file_reference(self, obj_in: CreateFileRefInput) -> FileReference: ...

    @abstractmethod
    def get_file_references(self, row_id: str, column_id: str) -> List[FileReference]: ...

    @abstractmethod
    def delete_file_reference(self, file_ref_id: str) -> None: ...

    @abstractmethod
    def reorder_file_references(self, row_id: str, column_id: str, file_ref_ids: List[str]) -> None: ...


class ViewStore(Protocol):
    @abstractmethod
    def create_view(self, obj_in: CreateViewInput) -> View: ...

    @abstractmethod
    def get_view(self, view_id: str) -> View: ...

    @abstractmethod
    def get_views(self, table_id: str) -> List[View]: ...

    @abstractmethod
    def update_view(self, view_id: str, obj_in: UpdateViewInput) -> View: ...

    @abstractmethod
    def delete_view(self, view_id: str) -> None: ...

    @abstractmethod
    def reorder_views(self, table_id: str, view_ids: List[str]) -> None: ...


class Transactional(Protocol):
    transaction_semantics: TransactionSemantics

    @abstractmethod
    def transaction(self, fn: Callable[["DatabaseAdapter"], T]) -> T: ...


class DatabaseAdapter(
    TableStore,
    ColumnStore,
    SelectOptionStore,
    RowStore,
    RelationStore,
    FileReferenceStore,
    ViewStore,
    Transactional,
):
    """
    Full backend facade.

    get/update/delete on a missing table, column, row or option id raise NotFoundError.
    Deleting a missing view, select option or file reference is a no-op.

    transaction() runs ``fn`` against this adapter. With SEQUENTIAL semantics there is
    no isolation and no rollback: calls inside ``fn`` apply one by one and a failure
    half way leaves the earlier calls applied. Backends with ATOMIC semantics commit
    or roll back everything ``fn`` did.
    """

    transaction_semantics: TransactionSemantics = TransactionSemantics.SEQUENTIAL

    def transaction(self, fn: Callable[["DatabaseAdapter"], T]) -> T:
        return fn(self)

    # Bulk operations apply the single-row operation per element; one failure
    # never blocks the others.

    def bulk_create_rows(self, inputs: Sequence[CreateRowInput]) -> BulkResult[Row]:
        result = BulkResult[Row]()
        for index, row_input in enumerate(inputs):
            try:
                result.succeeded.append(self.create_row(row_input))
            except GridbaseError as exc:
                logger.warning("Bulk create failed for item %s: %s", index, exc)
                result.failed.append(BulkFailure(index=index, error=str(exc)))
        return result

    def bulk_delete_rows(self, row_ids: Sequence[str]) -> BulkResult[str]:
        return self._bulk_by_id(row_ids, self.delete_row, "delete")

    def bulk_archive_rows(self, row_ids: Sequence[str]) -> BulkResult[str]:
        return self._bulk_by_id(row_ids, self.archive_row, "archive")

    def _bulk_by_id(self, row_ids: Sequence[str], operation: Callable[[str], object], label: str) -> BulkResult[str]:
        result = BulkResult[str]()
        for index, row_id in enumerate(row_ids):
            try:
                operation(row_id)
                result.succeeded.append(row_id)
            except GridbaseError as exc:
                logger.warning("Bulk %s failed for row %s: %s", label, row_id, exc)
                result.failed.append(BulkFailure(index=index, id=row_id, error=str(exc)))
        return result


# --- Shared rules used by the storage-backed adapters ---


def next_position(positions: Iterable[int]) -> int:
    """Position that appends after the current maximum."""
    return max(positions, default=-1) + 1


def reorder_positions(scope_ids: Iterable[str], ordered_ids: List[str]) -> Dict[str, int]:
    """Map each in-scope id to its index in the supplied list. Foreign ids are ignored."""
    scope = set(scope_ids)
    return {item_id: index for index, item_id in enumerate(ordered_ids) if item_id in scope}


def lowest_position(views: Iterable[View]) -> Optional[View]:
    """The view that inherits the default flag: lowest position, oldest first on ties."""
    candidates = sorted(views, key=lambda view: (view.position, view.created_at))
    return candidates[0] if candidates else None


def check_relation(source_row: Row, target_row: Row, column: Column) -> Optional[RelationColumnConfig]:
    """Validate an edge and return its column's relation config, if any."""
    if not behavior_for(column.type).is_relation:
        raise ValidationFailure(f"Column {column.id} is not a relation column")
    if column.table_id != source_row.table_id:
        raise ValidationFailure(f"Column {column.id} does not belong to the source row's table")
    config = relation_config(column)
    if config is not None and target_row.table_id != config.target_table_id:
        raise ValidationFailure(
            f"Row {target_row.id} is not in the relation's target table {config.target_table_id}"
        )
    return config


def check_option_column(column: Column) -> None:
    if not behavior_for(column.type).has_options:
        raise ValidationFailure(f"Column {column.id} is not a select or multi_select column")


def check_parent(row_input: CreateRowInput, parent: Row) -> None:
    if parent.table_id != row_input.table_id:
        raise ValidationFailure(f"Parent row {parent.id} belongs to another table")

