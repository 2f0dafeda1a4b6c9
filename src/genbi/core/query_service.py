"""
GenBI Core - Query Service.

Executes SQL previews against the live data source through the query engine.
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from genbi.config import EngineSettings
from genbi.core.project import Project
from genbi.exceptions import QueryExecutionException

logger = logging.getLogger(__name__)


class PreviewColumn(BaseModel):
    name: str
    type: str | None = None


class PreviewDataResponse(BaseModel):
    columns: list[PreviewColumn] = Field(default_factory=list)
    data: list[list[Any]] = Field(default_factory=list)


class QueryService:
    """Thin HTTP client for the engine's preview endpoint."""

    def __init__(self, settings: EngineSettings, client: httpx.AsyncClient | None = None):
        self._base_url = settings.base_url.rstrip("/")
        self._default_limit = settings.preview_limit
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(settings.timeout_seconds))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def preview(
        self,
        sql: str,
        project: Project,
        manifest: dict[str, Any],
        limit: int | None = None,
    ) -> PreviewDataResponse:
        """
        Run the SQL and return at most `limit` rows.

        Raises:
            QueryExecutionException: If the engine is unreachable or rejects the SQL
        """
        body = {
            "sql": sql,
            "manifest": manifest,
            "limit": limit or self._default_limit,
        }
        try:
            response = await self._client.post(f"{self._base_url}/v1/mdl/preview", json=body)
        except httpx.HTTPError as e:
            logger.debug(f"Got error when previewing data for project {project.id}: {e}")
            raise QueryExecutionException(f"Query engine unavailable: {e}") from e

        if response.is_error:
            message = response.text
            try:
                payload = response.json()
                if isinstance(payload, dict):
                    message = payload.get("message") or payload.get("detail") or message
            except ValueError:
                pass
            raise QueryExecutionException(
                f"Failed to preview data: {message}",
                details={"http_status": response.status_code},
            )

        try:
            return PreviewDataResponse.model_validate(response.json())
        except ValueError as e:
            raise QueryExecutionException("Malformed preview response from query engine") from e
