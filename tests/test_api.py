import json

import httpx
import pytest

from gridbase.adapters.remote import RemoteAdapter
from gridbase.config import Settings
from gridbase.errors import (
    NotConfiguredError,
    NotFoundError,
    RemoteServiceError,
    ValidationFailure,
)
from gridbase.schemas import CreateTableInput
from gridbase.utils.request_id import REQUEST_ID_HEADER, request_id_var


class TestHttpService:
    def test_create_and_fetch_table(self, api_client):
        response = api_client.post("/tables", json={"workspace_id": "ws-1", "name": "Tasks"})
        assert response.status_code == 200
        table_id = response.json()["id"]

        response = api_client.get(f"/tables/{table_id}")
        assert response.json()["name"] == "Tasks"

        response = api_client.get("/tables", params={"workspace_id": "ws-1"})
        assert [table["id"] for table in response.json()] == [table_id]

    def test_delete_answers_success(self, api_client):
        table_id = api_client.post("/tables", json={"workspace_id": "ws-1", "name": "Tasks"}).json()["id"]
        response = api_client.delete(f"/tables/{table_id}")
        assert response.json() == {"status": "success"}

    def test_request_id_is_generated(self, api_client):
        response = api_client.get("/tables", params={"workspace_id": "ws-1"})
        assert response.headers[REQUEST_ID_HEADER]

    def test_request_id_is_echoed(self, api_client):
        response = api_client.get("/tables", params={"workspace_id": "ws-1"}, headers={REQUEST_ID_HEADER: "trace-123"})
        assert response.headers[REQUEST_ID_HEADER] == "trace-123"

    def test_not_found_body(self, api_client):
        response = api_client.get("/rows/missing")
        assert response.status_code == 404
        assert response.json() == {"detail": "Row not found: missing", "entity": "Row", "entity_id": "missing"}

    def test_domain_validation_is_422(self, api_client):
        table_id = api_client.post("/tables", json={"workspace_id": "ws-1", "name": "Tasks"}).json()["id"]
        response = api_client.post(
            "/columns",
            json={"table_id": table_id, "name": "Total", "type": "formula", "config": {"formula": "1 +"}},
        )
        assert response.status_code == 422
        assert response.json()["detail"].startswith("Invalid formula")

    def test_request_validation_is_422(self, api_client):
        response = api_client.post("/tables", json={"workspace_id": "ws-1"})
        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["body", "name"]

    def test_query_without_body(self, api_client):
        table_id = api_client.post("/tables", json={"workspace_id": "ws-1", "name": "Tasks"}).json()["id"]
        api_client.post("/rows", json={"table_id": table_id, "cells": {}})
        response = api_client.post(f"/tables/{table_id}/rows/query")
        assert response.json()["total"] == 1

    def test_operation_ids_carry_the_tag(self, api_client):
        schema = api_client.get("/openapi.json").json()
        assert schema["paths"]["/api/v1/tables"]["post"]["operationId"] == "tables-create_table"


def mock_remote(handler, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://remote.test/api/v1")
    return RemoteAdapter(client=client, config=Settings(_env_file=None), **kwargs)


def answer(status_code, body):
    return lambda request: httpx.Response(status_code, json=body)


class TestRemoteErrors:
    def test_not_found(self):
        remote = mock_remote(answer(404, {"detail": "Table not found: t1", "entity": "Table", "entity_id": "t1"}))
        with pytest.raises(NotFoundError) as excinfo:
            remote.get_table("t1")
        assert (excinfo.value.entity, excinfo.value.entity_id) == ("Table", "t1")

    def test_validation(self):
        remote = mock_remote(answer(422, {"detail": "Invalid formula: Formula is empty"}))
        with pytest.raises(ValidationFailure, match="Invalid formula"):
            remote.get_table("t1")

    def test_not_configured(self):
        remote = mock_remote(answer(501, {"detail": "File adapter not configured."}))
        with pytest.raises(NotConfiguredError):
            remote.get_table("t1")

    def test_other_status(self):
        remote = mock_remote(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(RemoteServiceError) as excinfo:
            remote.get_table("t1")
        assert excinfo.value.status_code == 503
        assert excinfo.value.detail == "maintenance"

    def test_transport_failure(self):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RemoteServiceError) as excinfo:
            mock_remote(unreachable).get_table("t1")
        assert excinfo.value.status_code == 0


class TestRemoteRequests:
    @pytest.fixture()
    def captured(self):
        return []

    @pytest.fixture()
    def remote(self, captured):
        def handler(request):
            captured.append(request)
            return httpx.Response(
                200,
                json={
                    "id": "t1",
                    "workspace_id": "ws-1",
                    "name": "Tasks",
                    "created_at": "2024-01-01T00:00:00",
                    "updated_at": "2024-01-01T00:00:00",
                },
            )

        return mock_remote(handler, api_key="secret")

    def test_bearer_token(self, remote, captured):
        remote.get_table("t1")
        assert captured[0].headers["Authorization"] == "Bearer secret"
        assert captured[0].url.path == "/api/v1/tables/t1"

    def test_request_id_is_forwarded(self, remote, captured):
        token = request_id_var.set("trace-abc")
        try:
            remote.get_table("t1")
        finally:
            request_id_var.reset(token)
        assert captured[0].headers[REQUEST_ID_HEADER] == "trace-abc"

    def test_only_supplied_fields_are_sent(self, remote, captured):
        remote.create_table(CreateTableInput(workspace_id="ws-1", name="Tasks"))
        assert captured[0].method == "POST"
        assert json.loads(captured[0].content) == {"workspace_id": "ws-1", "name": "Tasks"}
