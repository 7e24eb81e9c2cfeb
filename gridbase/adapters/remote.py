"""
Remote backend.

Speaks to a gridbase HTTP service (see gridbase.main) over httpx. Every operation is
one request, so calls apply one by one and transaction() offers no rollback.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter

from gridbase.adapters.base import DatabaseAdapter
from gridbase.config import Settings, settings
from gridbase.constants import TransactionSemantics
from gridbase.errors import NotConfiguredError, NotFoundError, RemoteServiceError, ValidationFailure
from gridbase.schemas import (
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
    UpdateRowInput,
    UpdateSelectOptionInput,
    UpdateTableInput,
    UpdateViewInput,
    View,
)
from gridbase.utils.request_id import REQUEST_ID_HEADER, get_request_id

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _body(obj_in: BaseModel) -> Dict[str, Any]:
    return obj_in.model_dump(mode="json", exclude_unset=True)


class RemoteAdapter(DatabaseAdapter):
    """Adapter contract over HTTP."""

    transaction_semantics = TransactionSemantics.SEQUENTIAL

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        config: Settings = settings,
    ):
        if client is None:
            base_url = base_url or config.REMOTE_BASE_URL
            if not base_url:
                raise ValidationFailure("A base URL is required for the remote backend")
            client = httpx.Client(
                base_url=base_url,
                timeout=timeout if timeout is not None else config.REMOTE_TIMEOUT,
            )
        api_key = api_key or config.REMOTE_API_KEY
        if api_key:
            client.headers["Authorization"] = f"Bearer {api_key}"
        self.client = client

    def close(self) -> None:
        self.client.close()

    # --- Transport ---

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        headers = kwargs.pop("headers", {})
        request_id = get_request_id()
        if request_id:
            headers[REQUEST_ID_HEADER] = request_id
        try:
            response = self.client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Remote request %s %s failed: %s", method, url, exc)
            raise RemoteServiceError(0, str(exc)) from exc

        if response.status_code >= 400:
            self._raise_for_status(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        try:
            body = response.json()
        except ValueError:
            body = {"detail": response.text}
        if not isinstance(body, dict):
            body = {"detail": body}
        detail = body.get("detail")
        message = detail if isinstance(detail, str) else str(detail)

        if response.status_code == 404:
            raise NotFoundError(body.get("entity", "Resource"), body.get("entity_id", str(response.url.path)))
        if response.status_code == 422:
            raise ValidationFailure(message)
        if response.status_code == 501:
            raise NotConfiguredError(message)
        logger.warning("Remote service answered %s: %s", response.status_code, message)
        raise RemoteServiceError(response.status_code, message)

    def _get(self, url: str, model: Type[M], **kwargs: Any) -> M:
        return model.model_validate(self._request("GET", url, **kwargs))

    def _list(self, url: str, model: Type[M], **kwargs: Any) -> List[M]:
        return [model.model_validate(item) for item in self._request("GET", url, **kwargs)]

    def _send(self, method: str, url: str, model: Type[M], obj_in: BaseModel) -> M:
        return model.model_validate(self._request(method, url, json=_body(obj_in)))

    def _reorder(self, url: str, ids: List[str]) -> None:
        self._request("PUT", url, json={"ids": list(ids)})

    # --- Tables ---

    def create_table(self, obj_in: CreateTableInput) -> Table:
        return self._send("POST", "/tables", Table, obj_in)

    def get_table(self, table_id: str) -> Table:
        return self._get(f"/tables/{table_id}", Table)

    def list_tables(self, workspace_id: str) -> List[Table]:
        return self._list("/tables", Table, params={"workspace_id": workspace_id})

    def update_table(self, table_id: str, obj_in: UpdateTableInput) -> Table:
        return self._send("PATCH", f"/tables/{table_id}", Table, obj_in)

    def delete_table(self, table_id: str) -> None:
        self._request("DELETE", f"/tables/{table_id}")

    # --- Columns ---

    def create_column(self, obj_in: CreateColumnInput) -> Column:
        return self._send("POST", "/columns", Column, obj_in)

    def get_column(self, column_id: str) -> Column:
        return self._get(f"/columns/{column_id}", Column)

    def get_columns(self, table_id: str) -> List[Column]:
        return self._list(f"/tables/{table_id}/columns", Column)

    def update_column(self, column_id: str, obj_in: UpdateColumnInput) -> Column:
        return self._send("PATCH", f"/columns/{column_id}", Column, obj_in)

    def delete_column(self, column_id: str) -> None:
        self._request("DELETE", f"/columns/{column_id}")

    def reorder_columns(self, table_id: str, column_ids: List[str]) -> None:
        self._reorder(f"/tables/{table_id}/columns/order", column_ids)

    # --- Select options ---

    def create_select_option(self, obj_in: CreateSelectOptionInput) -> SelectOption:
        return self._send("POST", "/select-options", SelectOption, obj_in)

    def get_select_options(self, column_id: str) -> List[SelectOption]:
        return self._list(f"/columns/{column_id}/select-options", SelectOption)

    def update_select_option(self, option_id: str, obj_in: UpdateSelectOptionInput) -> SelectOption:
        return self._send("PATCH", f"/select-options/{option_id}", SelectOption, obj_in)

    def delete_select_option(self, option_id: str) -> None:
        self._request("DELETE", f"/select-options/{option_id}")

    def reorder_select_options(self, column_id: str, option_ids: List[str]) -> None:
        self._reorder(f"/columns/{column_id}/select-options/order", option_ids)

    # --- Rows ---

    def create_row(self, obj_in: CreateRowInput) -> Row:
        return self._send("POST", "/rows", Row, obj_in)

    def get_row(self, row_id: str) -> Row:
        return self._get(f"/rows/{row_id}", Row)

    def get_rows(self, table_id: str, query: Optional[QueryOptions] = None) -> QueryResult[Row]:
        # exclude_unset keeps "no parent filter" distinct from "top level only"
        payload = _body(query) if query is not None else {}
        data = self._request("POST", f"/tables/{table_id}/rows/query", json=payload)
        return QueryResult[Row].model_validate(data)

    def update_row(self, row_id: str, cells: Cells) -> Row:
        return self._send("PATCH", f"/rows/{row_id}", Row, UpdateRowInput(cells=cells))

    def delete_row(self, row_id: str) -> None:
        self._request("DELETE", f"/rows/{row_id}")

    def archive_row(self, row_id: str) -> Row:
        return Row.model_validate(self._request("POST", f"/rows/{row_id}/archive"))

    def unarchive_row(self, row_id: str) -> Row:
        return Row.model_validate(self._request("POST", f"/rows/{row_id}/unarchive"))

    def get_children(self, row_id: str) -> List[Row]:
        return self._list(f"/rows/{row_id}/children", Row)

    def get_descendants(self, row_id: str) -> List[Row]:
        return self._list(f"/rows/{row_id}/descendants", Row)

    def get_row_depth(self, row_id: str) -> int:
        return self._request("GET", f"/rows/{row_id}/depth")["depth"]

    def has_children(self, row_id: str) -> bool:
        return self._request("GET", f"/rows/{row_id}/has-children")["has_children"]

    def bulk_create_rows(self, inputs: Sequence[CreateRowInput]) -> BulkResult[Row]:
        data = self._request("POST", "/rows/bulk", json=[_body(row_input) for row_input in inputs])
        return BulkResult[Row].model_validate(data)

    def bulk_delete_rows(self, row_ids: Sequence[str]) -> BulkResult[str]:
        data = self._request("POST", "/rows/bulk-delete", json={"ids": list(row_ids)})
        return BulkResult[str].model_validate(data)

    def bulk_archive_rows(self, row_ids: Sequence[str]) -> BulkResult[str]:
        data = self._request("POST", "/rows/bulk-archive", json={"ids": list(row_ids)})
        return BulkResult[str].model_validate(data)

    # --- Relations ---

    def create_relation(self, obj_in: CreateRelationInput) -> Relation:
        return self._send("POST", "/relations", Relation, obj_in)

    def delete_relation(self, source_row_id: str, source_column_id: str, target_row_id: str) -> None:
        self._request(
            "DELETE",
            "/relations",
            params={
                "source_row_id": source_row_id,
                "source_column_id": source_column_id,
                "target_row_id": target_row_id,
            },
        )

    def get_related_rows(self, row_id: str, column_id: str) -> List[Row]:
        return self._list(f"/rows/{row_id}/related/{column_id}", Row)

    def get_relations_for_row(self, row_id: str) -> List[RowRelation]:
        data = self._request("GET", f"/rows/{row_id}/relations")
        return TypeAdapter(List[RowRelation]).validate_python(data)

    # --- File references ---

    def add_file_reference(self, obj_in: CreateFileRefInput) -> FileReference:
        return self._send("POST", "/file-references", FileReference, obj_in)

    def get_file_references(self, row_id: str, column_id: str) -> List[FileReference]:
        return self._list(f"/rows/{row_id}/files/{column_id}", FileReference)

    def delete_file_reference(self, file_ref_id: str) -> None:
        self._request("DELETE", f"/file-references/{file_ref_id}")

    def reorder_file_references(self, row_id: str, column_id: str, file_ref_ids: List[str]) -> None:
        self._reorder(f"/rows/{row_id}/files/{column_id}/order", file_ref_ids)

    # --- Views ---

    def create_view(self, obj_in: CreateViewInput) -> View:
        return self._send("POST", "/views", View, obj_in)

    def get_view(self, view_id: str) -> View:
        return self._get(f"/views/{view_id}", View)

    def get_views(self, table_id: str) -> List[View]:
        return self._list(f"/tables/{table_id}/views", View)

    def update_view(self, view_id: str, obj_in: UpdateViewInput) -> View:
        return self._send("PATCH", f"/views/{view_id}", View, obj_in)

    def delete_view(self, view_id: str) -> None:
        self._request("DELETE", f"/views/{view_id}")

    def reorder_views(self, table_id: str, view_ids: List[str]) -> None:
        self._reorder(f"/tables/{table_id}/views/order", view_ids)
