from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from sqlalchemy import or_
from sqlmodel import Session, SQLModel, func, select

from gridbase.adapters.sql.models import (
    ColumnRecord,
    FileReferenceRecord,
    RelationRecord,
    RowRecord,
    SelectOptionRecord,
    TableRecord,
    ViewRecord,
)
from gridbase.errors import NotFoundError

ModelType = TypeVar("ModelType", bound=SQLModel)


class CRUDBase(Generic[ModelType]):
    """
    Record access for one model.

    Writes flush but never commit; the adapter's session scope owns the commit so a
    whole operation (or a whole transaction) lands together.
    """

    entity = "Record"

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, session: Session, id: str) -> Optional[ModelType]:
        return session.get(self.model, id)

    def get_or_404(self, session: Session, id: str) -> ModelType:
        db_obj = session.get(self.model, id)
        if db_obj is None:
            raise NotFoundError(self.entity, id)
        return db_obj

    def create(self, session: Session, *, obj_in: Union[BaseModel, Dict[str, Any]]) -> ModelType:
        obj_in_data = obj_in if isinstance(obj_in, dict) else obj_in.model_dump()
        db_obj = self.model(**obj_in_data)
        session.add(db_obj)
        session.flush()
        session.refresh(db_obj)
        return db_obj

    def update(
        self, session: Session, *, db_obj: ModelType, obj_in: Union[BaseModel, Dict[str, Any]]
    ) -> ModelType:
        update_data = obj_in if isinstance(obj_in, dict) else obj_in.model_dump(exclude_unset=True)
        db_obj.sqlmodel_update(update_data)
        session.add(db_obj)
        session.flush()
        session.refresh(db_obj)
        return db_obj

    def remove(self, session: Session, *, db_obj: ModelType) -> None:
        session.delete(db_obj)
        session.flush()

    def max_position(self, session: Session, *criteria: Any) -> Optional[int]:
        statement = select(func.max(self.model.position)).where(*criteria)
        return session.exec(statement).one()


class CRUDTable(CRUDBase[TableRecord]):
    entity = "Table"

    def get_by_workspace(self, session: Session, workspace_id: str) -> List[TableRecord]:
        statement = (
            select(TableRecord)
            .where(TableRecord.workspace_id == workspace_id)
            .order_by(TableRecord.created_at.desc())
        )
        return list(session.exec(statement).all())


class CRUDColumn(CRUDBase[ColumnRecord]):
    entity = "Column"

    def get_by_table(self, session: Session, table_id: str) -> List[ColumnRecord]:
        statement = (
            select(ColumnRecord)
            .where(ColumnRecord.table_id == table_id)
            .order_by(ColumnRecord.position, ColumnRecord.created_at)
        )
        return list(session.exec(statement).all())


class CRUDSelectOption(CRUDBase[SelectOptionRecord]):
    entity = "SelectOption"

    def get_by_column(self, session: Session, column_id: str) -> List[SelectOptionRecord]:
        statement = (
            select(SelectOptionRecord)
            .where(SelectOptionRecord.column_id == column_id)
            .order_by(SelectOptionRecord.position)
        )
        return list(session.exec(statement).all())


class CRUDRow(CRUDBase[RowRecord]):
    entity = "Row"

    def get_by_table(self, session: Session, table_id: str) -> List[RowRecord]:
        statement = select(RowRecord).where(RowRecord.table_id == table_id).order_by(RowRecord.seq)
        return list(session.exec(statement).all())

    def get_children(self, session: Session, parent_row_id: str) -> List[RowRecord]:
        statement = select(RowRecord).where(RowRecord.parent_row_id == parent_row_id).order_by(RowRecord.seq)
        return list(session.exec(statement).all())

    def next_seq(self, session: Session) -> int:
        current = session.exec(select(func.max(RowRecord.seq))).one()
        return (current or 0) + 1


class CRUDRelation(CRUDBase[RelationRecord]):
    entity = "Relation"

    def find(self, session: Session, source_row_id: str, column_id: str, target_row_id: str) -> Optional[RelationRecord]:
        statement = select(RelationRecord).where(
            RelationRecord.source_row_id == source_row_id,
            RelationRecord.source_column_id == column_id,
            RelationRecord.target_row_id == target_row_id,
        )
        return session.exec(statement).first()

    def get_outgoing(self, session: Session, source_row_id: str, column_id: Optional[str] = None) -> List[RelationRecord]:
        statement = select(RelationRecord).where(RelationRecord.source_row_id == source_row_id)
        if column_id is not None:
            statement = statement.where(RelationRecord.source_column_id == column_id)
        return list(session.exec(statement.order_by(RelationRecord.seq)).all())

    def get_incoming(self, session: Session, target_row_id: str) -> List[RelationRecord]:
        statement = select(RelationRecord).where(RelationRecord.target_row_id == target_row_id)
        return list(session.exec(statement.order_by(RelationRecord.seq)).all())

    def get_touching(self, session: Session, row_id: str) -> List[RelationRecord]:
        statement = select(RelationRecord).where(
            or_(RelationRecord.source_row_id == row_id, RelationRecord.target_row_id == row_id)
        )
        return list(session.exec(statement).all())

    def get_by_column(self, session: Session, column_id: str) -> List[RelationRecord]:
        statement = select(RelationRecord).where(RelationRecord.source_column_id == column_id)
        return list(session.exec(statement).all())

    def next_seq(self, session: Session) -> int:
        current = session.exec(select(func.max(RelationRecord.seq))).one()
        return (current or 0) + 1


class CRUDFileReference(CRUDBase[FileReferenceRecord]):
    entity = "FileReference"

    def get_slot(self, session: Session, row_id: str, column_id: str) -> List[FileReferenceRecord]:
        statement = (
            select(FileReferenceRecord)
            .where(FileReferenceRecord.row_id == row_id, FileReferenceRecord.column_id == column_id)
            .order_by(FileReferenceRecord.position)
        )
        return list(session.exec(statement).all())

    def get_by(self, session: Session, *, row_id: Optional[str] = None, column_id: Optional[str] = None) -> List[FileReferenceRecord]:
        statement = select(FileReferenceRecord)
        if row_id is not None:
            statement = statement.where(FileReferenceRecord.row_id == row_id)
        if column_id is not None:
            statement = statement.where(FileReferenceRecord.column_id == column_id)
        return list(session.exec(statement).all())


class CRUDView(CRUDBase[ViewRecord]):
    entity = "View"

    def get_by_table(self, session: Session, table_id: str) -> List[ViewRecord]:
        statement = select(ViewRecord).where(ViewRecord.table_id == table_id).order_by(ViewRecord.position)
        return list(session.exec(statement).all())


table = CRUDTable(TableRecord)
column = CRUDColumn(ColumnRecord)
select_option = CRUDSelectOption(SelectOptionRecord)
row = CRUDRow(RowRecord)
relation = CRUDRelation(RelationRecord)
file_reference = CRUDFileReference(FileReferenceRecord)
view = CRUDView(ViewRecord)
