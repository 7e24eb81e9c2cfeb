from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from gridbase.schemas import new_id
from gridbase.utils.clock import utcnow


class TableRecord(SQLModel, table=True):
    __tablename__ = "dt_table"

    id: str = Field(default_factory=new_id, primary_key=True)
    workspace_id: str = Field(index=True)
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)

    columns: List["ColumnRecord"] = Relationship(back_populates="table", cascade_delete=True)
    views: List["ViewRecord"] = Relationship(back_populates="table", cascade_delete=True)


class ColumnRecord(SQLModel, table=True):
    __tablename__ = "dt_column"

    id: str = Field(default_factory=new_id, primary_key=True)
    table_id: str = Field(foreign_key="dt_table.id", nullable=False, ondelete="CASCADE", index=True)
    name: str
    type: str
    position: int = 0
    width: int = 200
    is_primary: bool = False
    config: Optional[Dict[str, Any]] = Field(default=None, sa_type=JSON)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)

    table: TableRecord = Relationship(back_populates="columns")
    options: List["SelectOptionRecord"] = Relationship(back_populates="column", cascade_delete=True)


class SelectOptionRecord(SQLModel, table=True):
    __tablename__ = "dt_select_option"

    id: str = Field(default_factory=new_id, primary_key=True)
    column_id: str = Field(foreign_key="dt_column.id", nullable=False, ondelete="CASCADE", index=True)
    name: str
    color: Optional[str] = None
    position: int = 0

    column: ColumnRecord = Relationship(back_populates="options")


class RowRecord(SQLModel, table=True):
    __tablename__ = "dt_row"

    id: str = Field(default_factory=new_id, primary_key=True)
    # Insertion order, the tie-breaker for rows created within the same microsecond
    seq: int = Field(default=0, index=True)
    table_id: str = Field(foreign_key="dt_table.id", nullable=False, ondelete="CASCADE", index=True)
    parent_row_id: Optional[str] = Field(default=None, foreign_key="dt_row.id", ondelete="SET NULL", index=True)
    cells: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    computed: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    archived: bool = False
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class RelationRecord(SQLModel, table=True):
    __tablename__ = "dt_relation"
    __table_args__ = (UniqueConstraint("source_row_id", "source_column_id", "target_row_id"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    seq: int = Field(default=0, index=True)
    source_row_id: str = Field(foreign_key="dt_row.id", nullable=False, ondelete="CASCADE", index=True)
    source_column_id: str = Field(foreign_key="dt_column.id", nullable=False, ondelete="CASCADE", index=True)
    target_row_id: str = Field(foreign_key="dt_row.id", nullable=False, ondelete="CASCADE", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class FileReferenceRecord(SQLModel, table=True):
    __tablename__ = "dt_file_reference"

    id: str = Field(default_factory=new_id, primary_key=True)
    row_id: str = Field(foreign_key="dt_row.id", nullable=False, ondelete="CASCADE", index=True)
    column_id: str = Field(foreign_key="dt_column.id", nullable=False, ondelete="CASCADE", index=True)
    file_id: str
    file_url: str
    original_name: str
    mime_type: str
    size_bytes: Optional[int] = None
    position: int = 0
    # "metadata" is reserved on declarative classes
    extra: Optional[Dict[str, Any]] = Field(default=None, sa_type=JSON)


class ViewRecord(SQLModel, table=True):
    __tablename__ = "dt_view"

    id: str = Field(default_factory=new_id, primary_key=True)
    table_id: str = Field(foreign_key="dt_table.id", nullable=False, ondelete="CASCADE", index=True)
    name: str
    type: str
    is_default: bool = False
    position: int = 0
    config: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)

    table: TableRecord = Relationship(back_populates="views")
