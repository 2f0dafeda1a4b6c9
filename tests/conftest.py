"""
Shared fixtures: an in-memory store, a scripted AI service and query engine,
and the services and trackers wired on top of them.
"""

import itertools
from collections import defaultdict, deque
from typing import Any

import pytest

from genbi.adaptors.schemas import AsyncQueryResponse, DeployResult, DeployStatus
from genbi.config import Settings, TrackerSettings
from genbi.core.query_service import PreviewDataResponse
from genbi.core.table_store import InMemoryTableStore
from genbi.deps import ServiceContainer, build_container


class FakeAIService:
    """
    Scripted stand-in for AIServiceAdaptor.

    Submissions return sequential query ids. Result getters return the queued
    results in order and keep returning the last one; a queued exception is
    raised instead of returned.
    """

    def __init__(self):
        self.calls: dict[str, list[Any]] = defaultdict(list)
        self._results: dict[str, deque] = defaultdict(deque)
        self._streams: dict[str, list[bytes]] = {}
        self._ids = itertools.count(1)
        self.deploy_result = DeployResult(status=DeployStatus.SUCCESS)

    def queue(self, method: str, *results: Any) -> None:
        self._results[method].extend(results)

    def stream(self, method: str, chunks: list[bytes]) -> None:
        self._streams[method] = chunks

    async def _submit(self, method: str, input: Any) -> AsyncQueryResponse:
        self.calls[method].append(input)
        return AsyncQueryResponse(query_id=f"{method}-{next(self._ids)}")

    async def _result(self, method: str, query_id: str) -> Any:
        self.calls[method].append(query_id)
        queued = self._results[method]
        if not queued:
            raise AssertionError(f"No result queued for {method}")
        item = queued.popleft() if len(queued) > 1 else queued[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def _cancel(self, method: str, query_id: str) -> None:
        self.calls[method].append(query_id)

    async def _chunks(self, method: str, query_id: str):
        self.calls[method].append(query_id)
        for chunk in self._streams.get(method, []):
            yield chunk

    # submissions
    async def ask(self, input):
        return await self._submit("ask", input)

    async def generate_ask_detail(self, input):
        return await self._submit("generate_ask_detail", input)

    async def generate_recommendation_questions(self, input):
        return await self._submit("generate_recommendation_questions", input)

    async def create_text_based_answer(self, input):
        return await self._submit("create_text_based_answer", input)

    async def generate_chart(self, input):
        return await self._submit("generate_chart", input)

    async def adjust_chart(self, input):
        return await self._submit("adjust_chart", input)

    async def create_ask_feedback(self, input):
        return await self._submit("create_ask_feedback", input)

    # results
    async def get_ask_result(self, query_id):
        return await self._result("get_ask_result", query_id)

    async def get_ask_detail_result(self, query_id):
        return await self._result("get_ask_detail_result", query_id)

    async def get_recommendation_questions_result(self, query_id):
        return await self._result("get_recommendation_questions_result", query_id)

    async def get_text_based_answer_result(self, query_id):
        return await self._result("get_text_based_answer_result", query_id)

    async def get_chart_result(self, query_id):
        return await self._result("get_chart_result", query_id)

    async def get_chart_adjustment_result(self, query_id):
        return await self._result("get_chart_adjustment_result", query_id)

    async def get_ask_feedback_result(self, query_id):
        return await self._result("get_ask_feedback_result", query_id)

    # cancellations
    async def cancel_ask(self, query_id):
        await self._cancel("cancel_ask", query_id)

    async def cancel_ask_feedback(self, query_id):
        await self._cancel("cancel_ask_feedback", query_id)

    # streams
    def stream_ask_result(self, query_id):
        return self._chunks("stream_ask_result", query_id)

    def stream_text_based_answer(self, query_id):
        return self._chunks("stream_text_based_answer", query_id)

    # semantics
    async def deploy(self, manifest, hash):
        self.calls["deploy"].append(hash)
        return self.deploy_result

    async def delete_semantics(self, project_id):
        self.calls["delete_semantics"].append(project_id)

    async def aclose(self):
        pass


class FakeQueryService:
    def __init__(self):
        self.calls: list[dict[str, Any]] = []
        self.response = PreviewDataResponse(columns=[{"name": "n", "type": "INTEGER"}], data=[[1], [2]])
        self.error: Exception | None = None

    async def preview(self, sql, project, manifest, limit=None):
        self.calls.append({"sql": sql, "project_id": project.id, "manifest": manifest, "limit": limit})
        if self.error is not None:
            raise self.error
        return self.response

    async def aclose(self):
        pass


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, tracker=TrackerSettings(interval_seconds=0.01))


@pytest.fixture
def store() -> InMemoryTableStore:
    return InMemoryTableStore()


@pytest.fixture
def fake_ai() -> FakeAIService:
    return FakeAIService()


@pytest.fixture
def fake_query() -> FakeQueryService:
    return FakeQueryService()


@pytest.fixture
def container(settings, store, fake_ai, fake_query) -> ServiceContainer:
    return build_container(settings, store=store, adaptor=fake_ai, query_service=fake_query)


@pytest.fixture
def asking_service(container):
    return container.asking_service


@pytest.fixture
def trackers(container):
    return container.trackers


@pytest.fixture
def deployed(store, settings):
    """A successful deployment of the (empty) manifest of the configured project."""
    return store.insert(
        "deploy_logs",
        {
            "project_id": settings.project.id,
            "hash": "deploy-hash-1",
            "manifest": {"models": []},
            "status": "SUCCESS",
            "error": None,
        },
    )
