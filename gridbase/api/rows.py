from typing import Any, List, Optional

from fastapi import APIRouter, Body

from gridbase.api.deps import AdapterDep
from gridbase.schemas import (
    BulkResult,
    CreateFileRefInput,
    CreateRelationInput,
    CreateRowInput,
    FileReference,
    QueryOptions,
    QueryResult,
    Relation,
    ReorderInput,
    Row,
    RowRelation,
    UpdateRowInput,
)

router = APIRouter()


@router.post("/rows", response_model=Row)
def create_row(db: AdapterDep, obj_in: CreateRowInput) -> Any:
    return db.create_row(obj_in)


@router.post("/tables/{table_id}/rows/query", response_model=QueryResult[Row])
def query_rows(db: AdapterDep, table_id: str, query: Optional[QueryOptions] = Body(default=None)) -> Any:
    """Filter, sort and paginate the rows of a table."""
    return db.get_rows(table_id, query)


@router.post("/rows/bulk", response_model=BulkResult[Row])
def bulk_create_rows(db: AdapterDep, obj_in: List[CreateRowInput]) -> Any:
    return db.bulk_create_rows(obj_in)


@router.post("/rows/bulk-delete", response_model=BulkResult[str])
def bulk_delete_rows(db: AdapterDep, obj_in: ReorderInput) -> Any:
    return db.bulk_delete_rows(obj_in.ids)


@router.post("/rows/bulk-archive", response_model=BulkResult[str])
def bulk_archive_rows(db: AdapterDep, obj_in: ReorderInput) -> Any:
    return db.bulk_archive_rows(obj_in.ids)


@router.get("/rows/{row_id}", response_model=Row)
def get_row(db: AdapterDep, row_id: str) -> Any:
    return db.get_row(row_id)


@router.patch("/rows/{row_id}", response_model=Row)
def update_row(db: AdapterDep, row_id: str, obj_in: UpdateRowInput) -> Any:
    """Merge cells into a row."""
    return db.update_row(row_id, obj_in.cells)


@router.delete("/rows/{row_id}")
def delete_row(db: AdapterDep, row_id: str) -> Any:
    db.delete_row(row_id)
    return {"status": "success"}


@router.post("/rows/{row_id}/archive", response_model=Row)
def archive_row(db: AdapterDep, row_id: str) -> Any:
    return db.archive_row(row_id)


@router.post("/rows/{row_id}/unarchive", response_model=Row)
def unarchive_row(db: AdapterDep, row_id: str) -> Any:
    return db.unarchive_row(row_id)


# --- Hierarchy ---


@router.get("/rows/{row_id}/children", response_model=List[Row])
def get_children(db: AdapterDep, row_id: str) -> Any:
    return db.get_children(row_id)


@router.get("/rows/{row_id}/descendants", response_model=List[Row])
def get_descendants(db: AdapterDep, row_id: str) -> Any:
    return db.get_descendants(row_id)


@router.get("/rows/{row_id}/depth")
def get_row_depth(db: AdapterDep, row_id: str) -> Any:
    return {"depth": db.get_row_depth(row_id)}


@router.get("/rows/{row_id}/has-children")
def has_children(db: AdapterDep, row_id: str) -> Any:
    return {"has_children": db.has_children(row_id)}


# --- Relation Operations ---


@router.post("/relations", response_model=Relation)
def create_relation(db: AdapterDep, obj_in: CreateRelationInput) -> Any:
    return db.create_relation(obj_in)


@router.delete("/relations")
def delete_relation(db: AdapterDep, source_row_id: str, source_column_id: str, target_row_id: str) -> Any:
    db.delete_relation(source_row_id, source_column_id, target_row_id)
    return {"status": "success"}


@router.get("/rows/{row_id}/related/{column_id}", response_model=List[Row])
def get_related_rows(db: AdapterDep, row_id: str, column_id: str) -> Any:
    return db.get_related_rows(row_id, column_id)


@router.get("/rows/{row_id}/relations", response_model=List[RowRelation])
def get_relations_for_row(db: AdapterDep, row_id: str) -> Any:
    return db.get_relations_for_row(row_id)


# --- File Reference Operations ---


@router.post("/file-references", response_model=FileReference)
def add_file_reference(db: AdapterDep, obj_in: CreateFileRefInput) -> Any:
    return db.add_file_reference(obj_in)


@router.get("/rows/{row_id}/files/{column_id}", response_model=List[FileReference])
def get_file_references(db: AdapterDep, row_id: str, column_id: str) -> Any:
    return db.get_file_references(row_id, column_id)


@router.put("/rows/{row_id}/files/{column_id}/order")
def reorder_file_references(db: AdapterDep, row_id: str, column_id: str, obj_in: ReorderInput) -> Any:
    db.reorder_file_references(row_id, column_id, obj_in.ids)
    return {"status": "success"}


@router.delete("/file-references/{file_ref_id}")
def delete_file_reference(db: AdapterDep, file_ref_id: str) -> Any:
    db.delete_file_reference(file_ref_id)
    return {"status": "success"}
