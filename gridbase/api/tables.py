from typing import Any, List

from fastapi import APIRouter

from gridbase.api.deps import AdapterDep
from gridbase.schemas import (
    Column,
    CreateColumnInput,
    CreateSelectOptionInput,
    CreateTableInput,
    ReorderInput,
    SelectOption,
    Table,
    UpdateColumnInput,
    UpdateSelectOptionInput,
    UpdateTableInput,
)

router = APIRouter()


@router.post("/tables", response_model=Table)
def create_table(db: AdapterDep, obj_in: CreateTableInput) -> Any:
    """Create a new table."""
    return db.create_table(obj_in)


@router.get("/tables", response_model=List[Table])
def list_tables(db: AdapterDep, workspace_id: str) -> Any:
    """Retrieve all tables of a workspace, newest first."""
    return db.list_tables(workspace_id)


@router.get("/tables/{table_id}", response_model=Table)
def get_table(db: AdapterDep, table_id: str) -> Any:
    return db.get_table(table_id)


@router.patch("/tables/{table_id}", response_model=Table)
def update_table(db: AdapterDep, table_id: str, obj_in: UpdateTableInput) -> Any:
    return db.update_table(table_id, obj_in)


@router.delete("/tables/{table_id}")
def delete_table(db: AdapterDep, table_id: str) -> Any:
    """Delete a table with its columns, rows and views."""
    db.delete_table(table_id)
    return {"status": "success"}


# --- Column Operations ---


@router.post("/columns", response_model=Column)
def create_column(db: AdapterDep, obj_in: CreateColumnInput) -> Any:
    return db.create_column(obj_in)


@router.get("/tables/{table_id}/columns", response_model=List[Column])
def get_columns(db: AdapterDep, table_id: str) -> Any:
    return db.get_columns(table_id)


@router.put("/tables/{table_id}/columns/order")
def reorder_columns(db: AdapterDep, table_id: str, obj_in: ReorderInput) -> Any:
    db.reorder_columns(table_id, obj_in.ids)
    return {"status": "success"}


@router.get("/columns/{column_id}", response_model=Column)
def get_column(db: AdapterDep, column_id: str) -> Any:
    return db.get_column(column_id)


@router.patch("/columns/{column_id}", response_model=Column)
def update_column(db: AdapterDep, column_id: str, obj_in: UpdateColumnInput) -> Any:
    return db.update_column(column_id, obj_in)


@router.delete("/columns/{column_id}")
def delete_column(db: AdapterDep, column_id: str) -> Any:
    """Delete a column, its options, file references and relations."""
    db.delete_column(column_id)
    return {"status": "success"}


# --- Select Option Operations ---


@router.post("/select-options", response_model=SelectOption)
def create_select_option(db: AdapterDep, obj_in: CreateSelectOptionInput) -> Any:
    return db.create_select_option(obj_in)


@router.get("/columns/{column_id}/select-options", response_model=List[SelectOption])
def get_select_options(db: AdapterDep, column_id: str) -> Any:
    return db.get_select_options(column_id)


@router.put("/columns/{column_id}/select-options/order")
def reorder_select_options(db: AdapterDep, column_id: str, obj_in: ReorderInput) -> Any:
    db.reorder_select_options(column_id, obj_in.ids)
    return {"status": "success"}


@router.patch("/select-options/{option_id}", response_model=SelectOption)
def update_select_option(db: AdapterDep, option_id: str, obj_in: UpdateSelectOptionInput) -> Any:
    return db.update_select_option(option_id, obj_in)


@router.delete("/select-options/{option_id}")
def delete_select_option(db: AdapterDep, option_id: str) -> Any:
    db.delete_select_option(option_id)
    return {"status": "success"}
