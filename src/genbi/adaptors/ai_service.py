"""
GenBI Adaptors - AI Service client.

Every long-running operation follows the same contract:
1. submit once, the AI service answers with an opaque query id
2. poll the result endpoint with that id until a terminal status
3. optionally cancel with PATCH {"status": "stopped"}

Failures (network, non-2xx, malformed body) surface as AIServiceException.
Status strings are upper-cased and parsed into the kind's enumeration;
unknown statuses raise UnknownStatusException.
"""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any

import httpx

from genbi.adaptors.errors import build_ai_error
from genbi.adaptors.schemas import (
    AIError,
    AskCandidate,
    AskDetailInput,
    AskDetailResponse,
    AskDetailResult,
    AskFeedbackInput,
    AskFeedbackResult,
    AskHistory,
    AskInput,
    AskResult,
    AsyncQueryResponse,
    ChartAdjustmentInput,
    ChartInput,
    ChartResponse,
    ChartResult,
    DeployResult,
    DeployStatus,
    DetailStep,
    GenerateInstructionInput,
    IndexingResult,
    IndexingStatus,
    QuestionInput,
    QuestionsResult,
    RecommendationQuestion,
    RecommendationQuestionsInput,
    RecommendationQuestionsResult,
    SqlPairInput,
    TaskKind,
    TextBasedAnswerInput,
    TextBasedAnswerResult,
    parse_status,
)
from genbi.config import AIServiceSettings
from genbi.exceptions import AIServiceException, GenBIException

logger = logging.getLogger(__name__)


def _extract_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return None


def _candidates(items: Any) -> list[AskCandidate]:
    candidates = []
    for item in items or []:
        candidate_type = item.get("type")
        candidates.append(
            AskCandidate(
                type=candidate_type.upper() if candidate_type else None,
                sql=item.get("sql") or "",
                view_id=int(item["viewId"]) if item.get("viewId") else None,
                sqlpair_id=int(item["sqlpairId"]) if item.get("sqlpairId") else None,
            )
        )
    return candidates


class AIServiceAdaptor:
    """HTTP client for the external AI service."""

    def __init__(
        self,
        settings: AIServiceSettings,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._base_url = settings.base_url.rstrip("/")
        self._deploy_max_attempts = settings.deploy_max_attempts
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(settings.timeout_seconds))
        self._sleep = sleep

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json_body: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(method, url, json=json_body, params=params)
        except httpx.HTTPError as e:
            logger.debug(f"Got error when {action}: {e}")
            raise AIServiceException(f"Failed {action}: {e}") from e

        if response.is_error:
            detail = _extract_detail(response)
            message = f"Request failed with status code {response.status_code}"
            logger.debug(f"Got error when {action}: {message}, detail: {detail}")
            raise AIServiceException(
                f"{message}, detail: {detail}" if detail else message,
                detail=detail,
                http_status=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise AIServiceException(f"Malformed response body when {action}") from e

    async def _stream(self, path: str, action: str) -> AsyncIterator[bytes]:
        url = f"{self._base_url}{path}"
        try:
            async with self._client.stream("GET", url) as response:
                if response.is_error:
                    await response.aread()
                    detail = _extract_detail(response)
                    raise AIServiceException(
                        f"Request failed with status code {response.status_code}",
                        detail=detail,
                        http_status=response.status_code,
                    )
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as e:
            logger.debug(f"Got error when {action}: {e}")
            raise AIServiceException(f"Failed {action}: {e}") from e

    async def _submit(self, path: str, body: dict[str, Any], action: str, id_field: str = "query_id") -> AsyncQueryResponse:
        data = await self._request("POST", path, json_body=body, action=action)
        if not isinstance(data, dict) or not data.get(id_field):
            raise AIServiceException(f"Malformed response body when {action}: missing {id_field}")
        return AsyncQueryResponse(query_id=str(data[id_field]))

    async def _cancel(self, path: str, action: str) -> None:
        await self._request("PATCH", path, json_body={"status": "stopped"}, action=action)

    def _status_and_error(self, kind: TaskKind, body: Any) -> tuple[Enum, AIError | None]:
        if not isinstance(body, dict):
            raise AIServiceException(f"Malformed {kind.value} result body")
        status = parse_status(kind, body.get("status"))
        return status, build_ai_error(body.get("error"))

    # -------------------------------------------------------------------------
    # Asks
    # -------------------------------------------------------------------------

    async def ask(self, input: AskInput) -> AsyncQueryResponse:
        """Ask a question; candidates containing SQL are fetched with get_ask_result()."""
        body = {
            "query": input.query,
            "id": input.deploy_id,
            "histories": [h.model_dump() for h in input.histories],
            "configurations": input.configurations.model_dump(),
        }
        return await self._submit("/v1/asks", body, "asking")

    async def cancel_ask(self, query_id: str) -> None:
        await self._cancel(f"/v1/asks/{query_id}", "canceling ask")

    async def get_ask_result(self, query_id: str) -> AskResult:
        body = await self._request("GET", f"/v1/asks/{query_id}/result", action="getting ask result")
        status, error = self._status_and_error(TaskKind.ASK, body)
        return AskResult(
            type=body.get("type"),
            status=status,
            error=error,
            response=_candidates(body.get("response")),
            rephrased_question=body.get("rephrased_question"),
            intent_reasoning=body.get("intent_reasoning"),
            sql_generation_reasoning=body.get("sql_generation_reasoning"),
            retrieved_tables=body.get("retrieved_tables"),
            invalid_sql=body.get("invalid_sql"),
            trace_id=body.get("trace_id"),
        )

    def stream_ask_result(self, query_id: str) -> AsyncIterator[bytes]:
        return self._stream(f"/v1/asks/{query_id}/streaming-result", "getting ask streaming result")

    # -------------------------------------------------------------------------
    # Ask details (breakdown)
    # -------------------------------------------------------------------------

    async def generate_ask_detail(self, input: AskDetailInput) -> AsyncQueryResponse:
        return await self._submit("/v1/ask-details", input.model_dump(), "generating ask detail")

    async def get_ask_detail_result(self, query_id: str) -> AskDetailResult:
        body = await self._request(
            "GET", f"/v1/ask-details/{query_id}/result", action="getting ask detail result"
        )
        status, error = self._status_and_error(TaskKind.BREAKDOWN, body)
        response = body.get("response") or {}
        steps = [
            DetailStep(summary=step.get("summary", ""), sql=step.get("sql", ""), cte_name=step.get("cte_name", ""))
            for step in response.get("steps") or []
        ]
        return AskDetailResult(
            type=body.get("type"),
            status=status,
            error=error,
            response=AskDetailResponse(description=response.get("description"), steps=steps),
        )

    # -------------------------------------------------------------------------
    # Recommendation questions
    # -------------------------------------------------------------------------

    async def generate_recommendation_questions(
        self, input: RecommendationQuestionsInput
    ) -> AsyncQueryResponse:
        body = {
            "mdl": json.dumps(input.manifest),
            "previous_questions": input.previous_questions,
            "max_questions": input.max_questions,
            "max_categories": input.max_categories,
            "configuration": input.configuration.model_dump(),
        }
        logger.info("Generating recommendation questions")
        result = await self._submit(
            "/v1/question-recommendations", body, "generating recommendation questions", id_field="id"
        )
        logger.info(f"Generating recommendation questions, query_id: {result.query_id}")
        return result

    async def get_recommendation_questions_result(self, query_id: str) -> RecommendationQuestionsResult:
        body = await self._request(
            "GET",
            f"/v1/question-recommendations/{query_id}",
            action="getting recommendation questions result",
        )
        status, error = self._status_and_error(TaskKind.RECOMMENDATION_QUESTIONS, body)
        questions = (body.get("response") or {}).get("questions") or []
        return RecommendationQuestionsResult(
            status=status,
            error=error,
            questions=[RecommendationQuestion.model_validate(q) for q in questions],
        )

    # -------------------------------------------------------------------------
    # Text-based answers
    # -------------------------------------------------------------------------

    async def create_text_based_answer(self, input: TextBasedAnswerInput) -> AsyncQueryResponse:
        return await self._submit("/v1/sql-answers", input.model_dump(), "creating text-based answer")

    async def get_text_based_answer_result(self, query_id: str) -> TextBasedAnswerResult:
        body = await self._request(
            "GET", f"/v1/sql-answers/{query_id}", action="getting text-based answer result"
        )
        status, error = self._status_and_error(TaskKind.TEXT_ANSWER, body)
        return TextBasedAnswerResult(
            status=status,
            error=error,
            num_rows_used_in_llm=body.get("num_rows_used_in_llm"),
        )

    def stream_text_based_answer(self, query_id: str) -> AsyncIterator[bytes]:
        return self._stream(
            f"/v1/sql-answers/{query_id}/streaming", "getting text-based answer streaming result"
        )

    # -------------------------------------------------------------------------
    # Charts
    # -------------------------------------------------------------------------

    def _chart_result(self, kind: TaskKind, body: Any) -> ChartResult:
        status, error = self._status_and_error(kind, body)
        response = body.get("response") or {}
        return ChartResult(
            status=status,
            error=error,
            response=ChartResponse(
                reasoning=response.get("reasoning"),
                chart_type=response.get("chart_type"),
                chart_schema=response.get("chart_schema"),
            ),
        )

    async def generate_chart(self, input: ChartInput) -> AsyncQueryResponse:
        return await self._submit("/v1/charts", input.model_dump(), "creating chart")

    async def get_chart_result(self, query_id: str) -> ChartResult:
        body = await self._request("GET", f"/v1/charts/{query_id}", action="getting chart result")
        return self._chart_result(TaskKind.CHART, body)

    async def cancel_chart(self, query_id: str) -> None:
        await self._cancel(f"/v1/charts/{query_id}", "canceling chart")

    async def adjust_chart(self, input: ChartAdjustmentInput) -> AsyncQueryResponse:
        option = input.adjustment_option
        body = {
            "query": input.query,
            "sql": input.sql,
            "adjustment_option": {
                "chart_type": option.chart_type.value.lower(),
                "x_axis": option.x_axis,
                "y_axis": option.y_axis,
                "x_offset": option.x_offset,
                "color": option.color,
                "theta": option.theta,
            },
            "chart_schema": input.chart_schema,
            "configurations": input.configurations.model_dump(),
        }
        return await self._submit("/v1/chart-adjustments", body, "adjusting chart")

    async def get_chart_adjustment_result(self, query_id: str) -> ChartResult:
        body = await self._request(
            "GET", f"/v1/chart-adjustments/{query_id}", action="getting chart adjustment result"
        )
        return self._chart_result(TaskKind.CHART_ADJUSTMENT, body)

    async def cancel_chart_adjustment(self, query_id: str) -> None:
        await self._cancel(f"/v1/chart-adjustments/{query_id}", "canceling chart adjustment")

    # -------------------------------------------------------------------------
    # SQL pairs and questions
    # -------------------------------------------------------------------------

    async def deploy_sql_pair(self, project_id: int, sql_pair: SqlPairInput) -> AsyncQueryResponse:
        body = {
            "sql_pairs": [{"id": str(sql_pair.id), "sql": sql_pair.sql, "question": sql_pair.question}],
            "project_id": str(project_id),
        }
        return await self._submit("/v1/sql-pairs", body, "deploying SQL pair", id_field="event_id")

    async def get_sql_pair_result(self, query_id: str) -> IndexingResult:
        body = await self._request("GET", f"/v1/sql-pairs/{query_id}", action="getting SQL pair result")
        status, error = self._status_and_error(TaskKind.SQL_PAIR, body)
        return IndexingResult(status=status, error=error)

    async def delete_sql_pairs(self, project_id: int, sql_pair_ids: list[int]) -> None:
        body = {
            "sql_pair_ids": [str(i) for i in sql_pair_ids],
            "project_id": str(project_id),
        }
        await self._request("DELETE", "/v1/sql-pairs", json_body=body, action="deleting SQL pairs")

    async def generate_questions(self, input: QuestionInput) -> AsyncQueryResponse:
        body = {
            "sqls": input.sqls,
            "project_id": str(input.project_id),
            "configurations": input.configurations.model_dump(),
        }
        return await self._submit("/v1/sql-questions", body, "generating questions")

    async def get_questions_result(self, query_id: str) -> QuestionsResult:
        body = await self._request(
            "GET", f"/v1/sql-questions/{query_id}", action="getting questions result"
        )
        status, error = self._status_and_error(TaskKind.SQL_QUESTIONS, body)
        return QuestionsResult(status=status, error=error, questions=body.get("questions") or [])

    # -------------------------------------------------------------------------
    # Instructions
    # -------------------------------------------------------------------------

    async def generate_instruction(self, inputs: list[GenerateInstructionInput]) -> AsyncQueryResponse:
        if not inputs:
            raise AIServiceException("No instructions to generate")
        body = {
            "instructions": [
                {
                    "id": str(item.id),
                    "instruction": item.instruction,
                    "questions": item.questions,
                    "is_default": item.is_default,
                }
                for item in inputs
            ],
            "project_id": str(inputs[0].project_id),
        }
        return await self._submit("/v1/instructions", body, "generating instruction", id_field="event_id")

    async def get_instruction_result(self, query_id: str) -> IndexingResult:
        body = await self._request(
            "GET", f"/v1/instructions/{query_id}", action="getting instruction result"
        )
        status, error = self._status_and_error(TaskKind.INSTRUCTION, body)
        return IndexingResult(status=status, error=error)

    async def delete_instructions(self, ids: list[int], project_id: int) -> None:
        body = {
            "instruction_ids": [str(i) for i in ids],
            "project_id": str(project_id),
        }
        await self._request("DELETE", "/v1/instructions", json_body=body, action="deleting instructions")

    # -------------------------------------------------------------------------
    # Ask feedbacks (reasoning adjustments)
    # -------------------------------------------------------------------------

    async def create_ask_feedback(self, input: AskFeedbackInput) -> AsyncQueryResponse:
        body = {
            "question": input.question,
            "tables": input.tables,
            "sql_generation_reasoning": input.sql_generation_reasoning,
            "sql": input.sql,
            "project_id": str(input.project_id),
            "configurations": input.configurations.model_dump(),
        }
        return await self._submit("/v1/ask-feedbacks", body, "creating ask feedback")

    async def get_ask_feedback_result(self, query_id: str) -> AskFeedbackResult:
        body = await self._request(
            "GET", f"/v1/ask-feedbacks/{query_id}", action="getting ask feedback result"
        )
        status, error = self._status_and_error(TaskKind.ASK_FEEDBACK, body)
        return AskFeedbackResult(
            status=status,
            error=error,
            response=_candidates(body.get("response")),
            trace_id=body.get("trace_id"),
            invalid_sql=body.get("invalid_sql"),
        )

    async def cancel_ask_feedback(self, query_id: str) -> None:
        await self._cancel(f"/v1/ask-feedbacks/{query_id}", "canceling ask feedback")

    # -------------------------------------------------------------------------
    # Semantics deployment
    # -------------------------------------------------------------------------

    async def deploy(self, manifest: dict[str, Any], hash: str) -> DeployResult:
        """
        Prepare semantics for a manifest and wait for indexing.

        Never raises: failures and timeouts come back as a FAILED result.
        """
        try:
            data = await self._request(
                "POST",
                "/v1/semantics-preparations",
                json_body={"mdl": json.dumps(manifest), "id": hash},
                action="deploying semantics",
            )
            deploy_id = data["id"]
            logger.debug(f"Deploying semantics, hash: {hash}, deploy_id: {deploy_id}")
            finished = await self._wait_deploy_finished(deploy_id)
        except (GenBIException, KeyError, TypeError) as e:
            logger.debug(f"Got error when deploying semantics, hash: {hash}. Error: {e}")
            return DeployResult(status=DeployStatus.FAILED, error=f"Deployment hash: {hash}, {e}")

        if finished:
            logger.debug(f"Deploy semantics success, hash: {hash}")
            return DeployResult(status=DeployStatus.SUCCESS)
        return DeployResult(
            status=DeployStatus.FAILED,
            error=f"Deploy semantics failed or timeout, hash: {hash}",
        )

    async def _wait_deploy_finished(self, deploy_id: str) -> bool:
        # sleeps 1s, 2s, ... between polls: about 28 seconds with 7 attempts
        for attempt in range(1, self._deploy_max_attempts + 1):
            status = await self._get_deploy_status(deploy_id)
            logger.debug(f"Deploy status: {status.value}")
            if status == IndexingStatus.FINISHED:
                return True
            if status == IndexingStatus.FAILED:
                return False
            await self._sleep(attempt)
        return False

    async def _get_deploy_status(self, deploy_id: str) -> IndexingStatus:
        body = await self._request(
            "GET",
            f"/v1/semantics-preparations/{deploy_id}/status",
            action="getting deploy status",
        )
        if isinstance(body, dict) and body.get("error"):
            raise AIServiceException(str(body["error"]))
        return parse_status(TaskKind.DEPLOY, (body or {}).get("status"))

    async def delete_semantics(self, project_id: int) -> None:
        await self._request(
            "DELETE",
            "/v1/semantics",
            params={"project_id": str(project_id)},
            action="deleting semantics",
        )
        logger.info(f"Deleted semantics for project {project_id}")


def to_histories(responses: list[Any]) -> list[AskHistory]:
    """Thread responses to AskHistory entries."""
    return [AskHistory(question=r.question, sql=r.sql) for r in responses if r.sql]


async def iter_sse_data(chunks: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """Yield the data field of each server-sent event in a byte stream."""
    # a multi-byte character may be split across chunks
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        while "\n\n" in buffer:
            event, buffer = buffer.split("\n\n", 1)
            data = [line[5:].lstrip() for line in event.splitlines() if line.startswith("data:")]
            if data:
                yield "\n".join(data)
    buffer += decoder.decode(b"", final=True)
    if buffer.strip():
        data = [line[5:].lstrip() for line in buffer.splitlines() if line.startswith("data:")]
        if data:
            yield "\n".join(data)
