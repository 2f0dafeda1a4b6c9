"""Tests for the query engine preview client."""

import json

import httpx
import pytest

from genbi.config import EngineSettings
from genbi.core.project import Project
from genbi.core.query_service import QueryService
from genbi.exceptions import QueryExecutionException

PROJECT = Project(id=1, display_name="demo")


def make_service(handler) -> QueryService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return QueryService(EngineSettings(base_url="http://engine", preview_limit=100), client=client)


class TestPreview:
    @pytest.mark.asyncio
    async def test_preview_body_and_default_limit(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"columns": [{"name": "n", "type": "INTEGER"}], "data": [[1]]})

        data = await make_service(handler).preview("SELECT 1", PROJECT, {"models": []})

        assert data.columns[0].name == "n"
        assert data.data == [[1]]
        assert seen == [("/v1/mdl/preview", {"sql": "SELECT 1", "manifest": {"models": []}, "limit": 100})]

    @pytest.mark.asyncio
    async def test_engine_error_message(self):
        def handler(request):
            return httpx.Response(400, json={"message": "column x does not exist"})

        with pytest.raises(QueryExecutionException) as exc_info:
            await make_service(handler).preview("SELECT x", PROJECT, {}, limit=5)

        assert "column x does not exist" in exc_info.value.message
        assert exc_info.value.details == {"service": "engine", "http_status": 400}

    @pytest.mark.asyncio
    async def test_engine_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(QueryExecutionException):
            await make_service(handler).preview("SELECT 1", PROJECT, {})
