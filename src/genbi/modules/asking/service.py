"""
GenBI Asking - Service.

Orchestrates threads and thread responses: creates entities, submits remote
tasks, registers them with the matching background tracker and exposes the
read / cancel operations. Results arrive asynchronously through the trackers.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from genbi.adaptors.ai_service import AIServiceAdaptor, iter_sse_data, to_histories
from genbi.adaptors.schemas import (
    AskConfigurations,
    AskDetailInput,
    AskInput,
    AskResultStatus,
    AsyncQueryResponse,
    ChartAdjustmentInput,
    ChartAdjustmentOption,
    ChartInput,
    ChartStatus,
    RecommendationQuestionStatus,
    RecommendationQuestionsInput,
    RecommendationQuestionsResult,
    TaskKind,
    is_finalized,
)
from genbi.backgrounds import (
    AdjustmentBackgroundTaskTracker,
    AdjustmentTaskInput,
    AskingTaskTracker,
    BreakdownBackgroundTracker,
    ChartAdjustmentBackgroundTracker,
    ChartBackgroundTracker,
    TextBasedAnswerBackgroundTracker,
    ThreadRecommendQuestionBackgroundTracker,
)
from genbi.config import AskingSettings, RecommendationSettings
from genbi.core.mdl import MDLService
from genbi.core.project import Project, ProjectService
from genbi.core.query_service import PreviewDataResponse, QueryService
from genbi.exceptions import ConflictException, GenBIException, ValidationException
from genbi.modules.asking.cte import construct_cte_sql
from genbi.modules.asking.repository import (
    AskingTaskRepository,
    ThreadRepository,
    ThreadResponseRepository,
)
from genbi.modules.asking.schemas import (
    AdjustmentPayload,
    AdjustmentReasoningInput,
    AdjustmentSqlInput,
    AnswerDetail,
    AskingDetailTaskInput,
    AskingDetailTaskUpdateInput,
    AskingPayload,
    AskingTaskInput,
    BreakdownDetail,
    ChartDetail,
    InstantRecommendedQuestionsInput,
    RecommendQuestionResultStatus,
    Task,
    Thread,
    ThreadRecommendQuestionResult,
    ThreadResponse,
    ThreadResponseAdjustment,
    ThreadResponseAdjustmentType,
    ThreadResponseAnswerStatus,
    TrackedAdjustmentResult,
    TrackedAskingResult,
)
from genbi.modules.deploy.schemas import Deployment
from genbi.modules.deploy.service import DeployService
from genbi.observability import Telemetry, TelemetryEvent, service_of

logger = logging.getLogger(__name__)


class AskingService:
    """Service for asking, thread and adjustment operations."""

    def __init__(
        self,
        *,
        settings: AskingSettings,
        recommendation_settings: RecommendationSettings,
        adaptor: AIServiceAdaptor,
        thread_repository: ThreadRepository,
        thread_response_repository: ThreadResponseRepository,
        asking_task_repository: AskingTaskRepository,
        asking_task_tracker: AskingTaskTracker,
        breakdown_tracker: BreakdownBackgroundTracker,
        chart_tracker: ChartBackgroundTracker,
        chart_adjustment_tracker: ChartAdjustmentBackgroundTracker,
        text_based_answer_tracker: TextBasedAnswerBackgroundTracker,
        recommend_question_tracker: ThreadRecommendQuestionBackgroundTracker,
        adjustment_tracker: AdjustmentBackgroundTaskTracker,
        project_service: ProjectService,
        mdl_service: MDLService,
        deploy_service: DeployService,
        query_service: QueryService,
        telemetry: Telemetry,
    ):
        self._settings = settings
        self._recommendation_settings = recommendation_settings
        self._adaptor = adaptor
        self._threads = thread_repository
        self._thread_responses = thread_response_repository
        self._asking_tasks = asking_task_repository
        self._asking_task_tracker = asking_task_tracker
        self._breakdown_tracker = breakdown_tracker
        self._chart_tracker = chart_tracker
        self._chart_adjustment_tracker = chart_adjustment_tracker
        self._text_based_answer_tracker = text_based_answer_tracker
        self._recommend_question_tracker = recommend_question_tracker
        self._adjustment_tracker = adjustment_tracker
        self._project_service = project_service
        self._mdl_service = mdl_service
        self._deploy_service = deploy_service
        self._query_service = query_service
        self._telemetry = telemetry

        # threads whose recommendation request is being submitted
        self._submitting_recommendations: set[int] = set()

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Put every unfinished detail, thread and task back into its tracker."""
        responses = await self._thread_responses.find_all()

        breakdowns = [
            r for r in responses
            if r.breakdown_detail and not is_finalized(TaskKind.BREAKDOWN, r.breakdown_detail.status)
        ]
        charts = [
            r for r in responses
            if r.chart_detail and not is_finalized(TaskKind.CHART, r.chart_detail.status)
        ]
        answers = [
            r for r in responses
            if r.answer_detail
            and r.answer_detail.status
            in (
                ThreadResponseAnswerStatus.NOT_STARTED,
                ThreadResponseAnswerStatus.FETCHING_DATA,
                ThreadResponseAnswerStatus.PREPROCESSING,
            )
        ]
        logger.info(
            f"Initialization: adding unfinished thread responses to background trackers "
            f"(breakdown: {len(breakdowns)}, chart: {len(charts)}, answer: {len(answers)})"
        )
        for response in breakdowns:
            self._register(self._breakdown_tracker, response)
        for response in charts:
            tracker = self._chart_adjustment_tracker if response.chart_detail.adjustment else self._chart_tracker
            self._register(tracker, response)
        for response in answers:
            if response.answer_detail.status == ThreadResponseAnswerStatus.FETCHING_DATA:
                # interrupted before submission, start over
                response = await self._thread_responses.update_one(
                    response.id,
                    {"answer_detail": AnswerDetail(status=ThreadResponseAnswerStatus.NOT_STARTED)},
                )
            self._register(self._text_based_answer_tracker, response)

        threads = await self._threads.find_all()
        generating = [t for t in threads if t.query_id and t.questions_status == RecommendationQuestionStatus.GENERATING]
        logger.info(f"Initialization: adding generating recommendation questions (total: {len(generating)})")
        for thread in generating:
            self._register(self._recommend_question_tracker, thread)

        tasks = await self._asking_tasks.find_all()
        unfinished = [t for t in tasks if not is_finalized(t.kind, t.detail.get("status"))]
        logger.info(f"Initialization: adding unfinished asking tasks (total: {len(unfinished)})")
        for task in unfinished:
            tracker = self._adjustment_tracker if task.kind == TaskKind.ASK_FEEDBACK else self._asking_task_tracker
            self._register(tracker, task)

    @staticmethod
    def _register(tracker: Any, entity: Any) -> None:
        try:
            tracker.add_task(entity)
        except GenBIException as e:
            logger.error(f"Initialization: could not track {entity.id}: {e.message}")

    # -------------------------------------------------------------------------
    # Asking tasks
    # -------------------------------------------------------------------------

    async def create_asking_task(
        self,
        input: AskingTaskInput,
        payload: AskingPayload,
        rerun_from_cancelled: bool = False,
        previous_task_id: int | None = None,
        thread_response_id: int | None = None,
    ) -> Task:
        deploy_id = await self._get_deploy_id()

        # follow-up questions carry the thread's previous SQL as history
        histories = []
        if payload.thread_id:
            histories = to_histories(await self._get_asking_history(payload.thread_id, thread_response_id))

        response = await self._asking_task_tracker.create_asking_task(
            AskInput(
                query=input.question,
                deploy_id=deploy_id,
                histories=histories,
                configurations=AskConfigurations(language=payload.language),
            ),
            thread_id=payload.thread_id,
            thread_response_id=thread_response_id,
            previous_task_id=previous_task_id,
            rerun_from_cancelled=rerun_from_cancelled,
        )
        return Task(id=response.query_id)

    async def rerun_asking_task(self, thread_response_id: int, payload: AskingPayload) -> Task:
        response = await self._get_response_or_raise(thread_response_id)
        # the payload may not carry the thread id; the response always does
        payload = payload.model_copy(update={"thread_id": response.thread_id})
        return await self.create_asking_task(
            AskingTaskInput(question=response.question),
            payload,
            rerun_from_cancelled=True,
            previous_task_id=response.asking_task_id,
            thread_response_id=thread_response_id,
        )

    async def cancel_asking_task(self, task_id: str) -> None:
        event = TelemetryEvent.HOME_CANCEL_ASK
        try:
            await self._asking_task_tracker.cancel_asking_task(task_id)
            self._telemetry.send_event(event, {})
        except GenBIException as e:
            self._telemetry.send_event(event, {}, service_of(e), False)
            raise

    async def get_asking_task(self, task_id: str) -> TrackedAskingResult | None:
        return await self._asking_task_tracker.get_asking_result(task_id)

    async def get_asking_task_by_id(self, id: int) -> TrackedAskingResult | None:
        return await self._asking_task_tracker.get_asking_result_by_id(id)

    async def stream_asking_task(self, task_id: str) -> AsyncIterator[dict[str, str]]:
        """Relay the AI service's streamed ask result (reasoning text) event by event."""
        async for data in iter_sse_data(self._adaptor.stream_ask_result(task_id)):
            yield {"data": data}

    # -------------------------------------------------------------------------
    # Threads
    # -------------------------------------------------------------------------

    async def create_thread(self, input: AskingDetailTaskInput) -> Thread:
        """
        Create a thread and its first response.

        When the input references a tracked asking task, the task is bound to
        the new response so its SQL lands there once generated.
        """
        if not input.question:
            raise ValidationException("Thread question is required")

        project = await self._project_service.get_current_project()
        thread = await self._threads.create_one({"project_id": project.id, "summary": input.question})
        await self._create_response(thread, input)
        return thread

    async def list_threads(self) -> list[Thread]:
        project = await self._project_service.get_current_project()
        return await self._threads.list_all_time_desc_order(project.id)

    async def get_thread(self, thread_id: int) -> Thread:
        return await self._threads.find_one_by_or_raise({"id": thread_id}, thread_id)

    async def update_thread(self, thread_id: int, input: AskingDetailTaskUpdateInput) -> Thread:
        data = input.model_dump(exclude_none=True)
        if not data:
            raise ValidationException("Update thread input is empty")
        return await self._threads.update_one(thread_id, data)

    async def delete_thread(self, thread_id: int) -> None:
        await self.get_thread(thread_id)
        await self._thread_responses.delete_all_by({"thread_id": thread_id})
        await self._threads.delete_one(thread_id)

    async def delete_all_by_project_id(self, project_id: int) -> None:
        threads = await self._threads.find_all_by({"project_id": project_id})
        for thread in threads:
            await self._thread_responses.delete_all_by({"thread_id": thread.id})
        deleted = await self._threads.delete_all_by({"project_id": project_id})
        logger.info(f"Deleted {deleted} threads of project {project_id}")

    # -------------------------------------------------------------------------
    # Thread responses
    # -------------------------------------------------------------------------

    async def create_thread_response(self, input: AskingDetailTaskInput, thread_id: int) -> ThreadResponse:
        if not input.question:
            raise ValidationException("Thread response question is required")
        thread = await self.get_thread(thread_id)
        return await self._create_response(thread, input)

    async def _create_response(self, thread: Thread, input: AskingDetailTaskInput) -> ThreadResponse:
        tracked = input.tracked_asking_result
        response = await self._thread_responses.create_one(
            {
                "thread_id": thread.id,
                "question": input.question,
                "sql": input.sql,
                "asking_task_id": tracked.task_id if tracked else None,
            }
        )
        if tracked:
            await self._asking_task_tracker.bind_thread_response(
                tracked.task_id, tracked.query_id, thread.id, response.id
            )
            # the tracker may have written the SQL while binding
            response = await self._get_response_or_raise(response.id)
        return response

    async def update_thread_response(self, response_id: int, data: AdjustmentSqlInput) -> ThreadResponse:
        await self._get_response_or_raise(response_id)
        return await self._thread_responses.update_one(response_id, {"sql": data.sql})

    async def get_responses_with_thread(self, thread_id: int) -> list[ThreadResponse]:
        await self.get_thread(thread_id)
        return await self._thread_responses.get_responses_with_thread(thread_id)

    async def get_response(self, response_id: int) -> ThreadResponse | None:
        return await self._thread_responses.find_one_by({"id": response_id})

    async def _get_response_or_raise(self, response_id: int) -> ThreadResponse:
        return await self._thread_responses.find_one_by_or_raise({"id": response_id}, response_id)

    @staticmethod
    def _require_sql(response: ThreadResponse) -> str:
        if not response.sql:
            raise ValidationException(f"Thread response {response.id} has no SQL yet")
        return response.sql

    async def generate_thread_response_breakdown(
        self, response_id: int, configurations: AskConfigurations
    ) -> ThreadResponse:
        response = await self._get_response_or_raise(response_id)
        sql = self._require_sql(response)

        task = await self._adaptor.generate_ask_detail(
            AskDetailInput(query=response.question, sql=sql, configurations=configurations)
        )
        updated = await self._thread_responses.update_one(
            response.id,
            {"breakdown_detail": BreakdownDetail(query_id=task.query_id, status=AskResultStatus.UNDERSTANDING)},
        )
        self._breakdown_tracker.add_task(updated)
        return updated

    async def generate_thread_response_answer(self, response_id: int) -> ThreadResponse:
        response = await self._get_response_or_raise(response_id)
        self._require_sql(response)

        updated = await self._thread_responses.update_one(
            response.id,
            {"answer_detail": AnswerDetail(status=ThreadResponseAnswerStatus.NOT_STARTED)},
        )
        self._text_based_answer_tracker.add_task(updated)
        return updated

    async def generate_thread_response_chart(
        self, response_id: int, configurations: AskConfigurations
    ) -> ThreadResponse:
        response = await self._get_response_or_raise(response_id)
        sql = self._require_sql(response)

        task = await self._adaptor.generate_chart(
            ChartInput(query=response.question, sql=sql, configurations=configurations)
        )
        updated = await self._thread_responses.update_one(
            response.id,
            {"chart_detail": ChartDetail(query_id=task.query_id, status=ChartStatus.FETCHING)},
        )
        self._chart_tracker.add_task(updated)
        return updated

    async def adjust_thread_response_chart(
        self,
        response_id: int,
        option: ChartAdjustmentOption,
        configurations: AskConfigurations,
    ) -> ThreadResponse:
        response = await self._get_response_or_raise(response_id)
        sql = self._require_sql(response)

        task = await self._adaptor.adjust_chart(
            ChartAdjustmentInput(
                query=response.question,
                sql=sql,
                adjustment_option=option,
                chart_schema=response.chart_detail.chart_schema if response.chart_detail else None,
                configurations=configurations,
            )
        )
        updated = await self._thread_responses.update_one(
            response.id,
            {
                "chart_detail": ChartDetail(
                    query_id=task.query_id,
                    status=ChartStatus.FETCHING,
                    adjustment=True,
                )
            },
        )
        self._chart_adjustment_tracker.add_task(updated)
        return updated

    async def change_thread_response_answer_detail_status(
        self,
        response_id: int,
        status: ThreadResponseAnswerStatus,
        content: str | None = None,
    ) -> ThreadResponse:
        response = await self._get_response_or_raise(response_id)
        current = response.answer_detail
        if current is not None and current.status == status:
            return response

        detail = current.model_dump() if current else {}
        detail.update({"status": status, "content": content})
        return await self._thread_responses.update_one(response_id, {"answer_detail": detail})

    async def stream_thread_response_answer(self, response_id: int) -> AsyncIterator[dict[str, str]]:
        """
        Stream the text answer of a response whose answer detail is STREAMING.

        The accumulated content is stored when the stream ends (FINISHED), when
        the client goes away (INTERRUPTED) or when the AI service fails (FAILED).

        Raises:
            ConflictException: If the answer is not ready to be streamed
        """
        response = await self._get_response_or_raise(response_id)
        detail = response.answer_detail
        if detail is None or detail.status != ThreadResponseAnswerStatus.STREAMING or not detail.query_id:
            raise ConflictException(
                f"Answer of thread response {response_id} is not ready for streaming",
                current_state=detail.status.value if detail else None,
                target_state=ThreadResponseAnswerStatus.STREAMING.value,
            )
        return self._stream_answer(response_id, detail.query_id)

    async def _stream_answer(self, response_id: int, query_id: str) -> AsyncIterator[dict[str, str]]:
        content: list[str] = []
        try:
            async for data in iter_sse_data(self._adaptor.stream_text_based_answer(query_id)):
                message = _sse_message(data)
                if message:
                    content.append(message)
                    yield {"data": json.dumps({"message": message})}
        except asyncio.CancelledError:
            await self.change_thread_response_answer_detail_status(
                response_id, ThreadResponseAnswerStatus.INTERRUPTED, "".join(content)
            )
            raise
        except GenBIException as e:
            logger.error(f"Streaming answer of thread response {response_id} failed: {e.message}")
            await self.change_thread_response_answer_detail_status(
                response_id, ThreadResponseAnswerStatus.FAILED, "".join(content)
            )
            yield {"event": "error", "data": json.dumps({"message": e.message})}
            return

        await self.change_thread_response_answer_detail_status(
            response_id, ThreadResponseAnswerStatus.FINISHED, "".join(content)
        )
        yield {"event": "done", "data": ""}

    # -------------------------------------------------------------------------
    # Adjustments
    # -------------------------------------------------------------------------

    async def adjust_thread_response_with_sql(self, response_id: int, input: AdjustmentSqlInput) -> ThreadResponse:
        """Record a manual SQL edit as a new response revising the original."""
        response = await self._get_response_or_raise(response_id)
        return await self._thread_responses.create_one(
            {
                "thread_id": response.thread_id,
                "question": response.question,
                "sql": input.sql,
                "adjustment": ThreadResponseAdjustment(
                    type=ThreadResponseAdjustmentType.APPLY_SQL,
                    payload=AdjustmentPayload(original_thread_response_id=response.id, sql=input.sql),
                ),
            }
        )

    async def adjust_thread_response_answer(
        self,
        response_id: int,
        input: AdjustmentReasoningInput,
        configurations: AskConfigurations,
    ) -> ThreadResponse:
        original = await self._get_response_or_raise(response_id)
        return await self._adjustment_tracker.create_adjustment_task(
            AdjustmentTaskInput(
                thread_id=original.thread_id,
                question=original.question,
                tables=input.tables,
                sql_generation_reasoning=input.sql_generation_reasoning,
                sql=original.sql or "",
                project_id=input.project_id,
                original_thread_response_id=original.id,
                configurations=configurations,
            )
        )

    async def cancel_adjust_thread_response_answer(self, task_id: str) -> None:
        await self._adjustment_tracker.cancel_adjustment_task(task_id)

    async def rerun_adjust_thread_response_answer(
        self,
        response_id: int,
        project_id: int,
        configurations: AskConfigurations,
    ) -> AsyncQueryResponse:
        await self._get_response_or_raise(response_id)
        query_id = await self._adjustment_tracker.rerun_adjustment_task(response_id, project_id, configurations)
        return AsyncQueryResponse(query_id=query_id)

    async def get_adjustment_task(self, task_id: str) -> TrackedAdjustmentResult | None:
        return await self._adjustment_tracker.get_adjustment_result(task_id)

    async def get_adjustment_task_by_id(self, id: int) -> TrackedAdjustmentResult | None:
        return await self._adjustment_tracker.get_adjustment_result_by_id(id)

    # -------------------------------------------------------------------------
    # Previews
    # -------------------------------------------------------------------------

    async def preview_data(self, response_id: int, limit: int | None = None) -> PreviewDataResponse:
        response = await self._get_response_or_raise(response_id)
        sql = self._require_sql(response)
        return await self._preview(sql, limit)

    async def preview_breakdown_data(
        self,
        response_id: int,
        step_index: int | None = None,
        limit: int | None = None,
    ) -> PreviewDataResponse:
        """Preview the breakdown CTE truncated at step_index (all steps when None)."""
        response = await self._get_response_or_raise(response_id)
        steps = response.breakdown_detail.steps if response.breakdown_detail else []
        sql = construct_cte_sql(steps, step_index)
        return await self._preview(sql, limit)

    async def _preview(self, sql: str, limit: int | None) -> PreviewDataResponse:
        project, deployment = await self._get_project_deployment()
        event = TelemetryEvent.HOME_PREVIEW_ANSWER
        try:
            data = await self._query_service.preview(sql, project=project, manifest=deployment.manifest, limit=limit)
        except GenBIException as e:
            self._telemetry.send_event(event, {"sql": sql, "error": e.message}, service_of(e), False)
            raise
        self._telemetry.send_event(event, {"sql": sql})
        return data

    # -------------------------------------------------------------------------
    # Recommendation questions
    # -------------------------------------------------------------------------

    async def create_instant_recommended_questions(self, input: InstantRecommendedQuestionsInput) -> Task:
        project, deployment = await self._get_project_deployment()
        response = await self._adaptor.generate_recommendation_questions(
            self._recommendation_input(project, deployment.manifest, input.previous_questions)
        )
        return Task(id=response.query_id)

    async def get_instant_recommended_questions(self, query_id: str) -> RecommendationQuestionsResult:
        return await self._adaptor.get_recommendation_questions_result(query_id)

    async def generate_thread_recommendation_questions(self, thread_id: int) -> None:
        thread = await self.get_thread(thread_id)
        # check and reserve with no suspension point in between
        if self._recommend_question_tracker.is_exist(thread) or thread_id in self._submitting_recommendations:
            logger.debug(
                f'thread "{thread_id}" recommended questions are generating, skip the current request'
            )
            return
        self._submitting_recommendations.add(thread_id)
        try:
            await self._submit_thread_recommendation_questions(thread_id)
        finally:
            self._submitting_recommendations.discard(thread_id)

    async def _submit_thread_recommendation_questions(self, thread_id: int) -> None:
        mdl = await self._mdl_service.make_current_model_mdl()
        responses = await self._thread_responses.find_all_by(
            {"thread_id": thread_id},
            descending=True,
            limit=self._recommendation_settings.previous_questions_limit,
        )
        questions = [r.question for r in responses]

        task = await self._adaptor.generate_recommendation_questions(
            self._recommendation_input(mdl.project, mdl.manifest, questions)
        )
        updated = await self._threads.update_one(
            thread_id,
            {
                "query_id": task.query_id,
                "questions_status": RecommendationQuestionStatus.GENERATING,
                "questions": [],
                "questions_error": None,
            },
        )
        self._recommend_question_tracker.add_task(updated)

    async def get_thread_recommendation_questions(self, thread_id: int) -> ThreadRecommendQuestionResult:
        thread = await self.get_thread(thread_id)
        if not (thread.query_id and thread.questions_status):
            return ThreadRecommendQuestionResult(status=RecommendQuestionResultStatus.NOT_STARTED)
        return ThreadRecommendQuestionResult(
            status=RecommendQuestionResultStatus(thread.questions_status.value),
            questions=thread.questions,
            error=thread.questions_error,
        )

    def _recommendation_input(
        self, project: Project, manifest: dict[str, Any], previous_questions: list[str]
    ) -> RecommendationQuestionsInput:
        return RecommendationQuestionsInput(
            manifest=manifest,
            previous_questions=previous_questions,
            max_questions=self._recommendation_settings.max_questions,
            max_categories=self._recommendation_settings.max_categories,
            configuration=AskConfigurations(language=project.ai_language),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _get_project_deployment(self) -> tuple[Project, Deployment]:
        project = await self._project_service.get_current_project()
        deployment = await self._deploy_service.get_last_deployment(project.id)
        if deployment is None:
            raise ConflictException(f"Project {project.id} has no successful deployment yet")
        return project, deployment

    async def _get_deploy_id(self) -> str:
        _, deployment = await self._get_project_deployment()
        return deployment.hash

    async def _get_asking_history(
        self, thread_id: int, exclude_thread_response_id: int | None = None
    ) -> list[ThreadResponse]:
        """Latest responses of a thread with SQL, newest first."""
        latest = await self._thread_responses.get_responses_with_thread(
            thread_id, limit=self._settings.history_limit
        )
        responses = list(reversed(latest))
        # a rerun must not send the cancelled response as history
        if exclude_thread_response_id is not None:
            responses = [r for r in responses if r.id != exclude_thread_response_id]
        return [r for r in responses if r.sql]


def _sse_message(data: str) -> str:
    try:
        payload = json.loads(data)
    except ValueError:
        return data
    if isinstance(payload, dict):
        return payload.get("message") or ""
    return str(payload)
