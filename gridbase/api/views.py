from typing import Any, List

from fastapi import APIRouter

from gridbase.api.deps import AdapterDep
from gridbase.schemas import CreateViewInput, ReorderInput, UpdateViewInput, View

router = APIRouter()


@router.post("/views", response_model=View)
def create_view(db: AdapterDep, obj_in: CreateViewInput) -> Any:
    """Create a saved view. The first view of a table becomes its default."""
    return db.create_view(obj_in)


@router.get("/tables/{table_id}/views", response_model=List[View])
def get_views(db: AdapterDep, table_id: str) -> Any:
    return db.get_views(table_id)


@router.put("/tables/{table_id}/views/order")
def reorder_views(db: AdapterDep, table_id: str, obj_in: ReorderInput) -> Any:
    db.reorder_views(table_id, obj_in.ids)
    return {"status": "success"}


@router.get("/views/{view_id}", response_model=View)
def get_view(db: AdapterDep, view_id: str) -> Any:
    return db.get_view(view_id)


@router.patch("/views/{view_id}", response_model=View)
def update_view(db: AdapterDep, view_id: str, obj_in: UpdateViewInput) -> Any:
    return db.update_view(view_id, obj_in)


@router.delete("/views/{view_id}")
def delete_view(db: AdapterDep, view_id: str) -> Any:
    db.delete_view(view_id)
    return {"status": "success"}
