"""
GenBI Backgrounds - Adjustment task tracker.

A reasoning adjustment asks the AI service to regenerate SQL from edited
reasoning and tables. It always produces a new thread response that points
back at the response it revises.
"""

import logging

from pydantic import BaseModel, Field

from genbi.adaptors.ai_service import AIServiceAdaptor
from genbi.adaptors.schemas import (
    AskConfigurations,
    AskFeedbackInput,
    AskFeedbackResult,
    AskFeedbackStatus,
    TaskKind,
    is_finalized,
)
from genbi.backgrounds.tracker import BackgroundTracker
from genbi.exceptions import NotFoundException, ValidationException
from genbi.modules.asking.repository import AskingTaskRepository, ThreadResponseRepository
from genbi.modules.asking.schemas import (
    AdjustmentPayload,
    AskingTask,
    ThreadResponse,
    ThreadResponseAdjustment,
    ThreadResponseAdjustmentType,
    TrackedAdjustmentResult,
)
from genbi.observability import Telemetry, TelemetryEvent

logger = logging.getLogger(__name__)


class AdjustmentTaskInput(BaseModel):
    thread_id: int
    question: str
    tables: list[str]
    sql_generation_reasoning: str
    sql: str
    project_id: int
    original_thread_response_id: int
    configurations: AskConfigurations = Field(default_factory=AskConfigurations)


def to_tracked_result(task: AskingTask) -> TrackedAdjustmentResult:
    detail = dict(task.detail)
    detail.setdefault("status", AskFeedbackStatus.UNDERSTANDING.value)
    result = AskFeedbackResult.model_validate(detail)
    return TrackedAdjustmentResult(
        task_id=task.id,
        query_id=task.query_id,
        thread_id=task.thread_id,
        thread_response_id=task.thread_response_id,
        **result.model_dump(),
    )


class AdjustmentBackgroundTaskTracker(BackgroundTracker[AskingTask]):
    name = "Adjustment background task tracker"
    kind = TaskKind.ASK_FEEDBACK

    def __init__(
        self,
        *,
        adaptor: AIServiceAdaptor,
        asking_task_repository: AskingTaskRepository,
        thread_response_repository: ThreadResponseRepository,
        telemetry: Telemetry,
        interval_seconds: float = 1.0,
        max_tasks: int = 1000,
    ):
        super().__init__(telemetry=telemetry, interval_seconds=interval_seconds, max_tasks=max_tasks)
        self._adaptor = adaptor
        self._asking_tasks = asking_task_repository
        self._thread_responses = thread_response_repository

    async def create_adjustment_task(self, input: AdjustmentTaskInput) -> ThreadResponse:
        """Submit an ask feedback; returns the new adjustment response."""
        feedback = await self._adaptor.create_ask_feedback(
            AskFeedbackInput(
                question=input.question,
                tables=input.tables,
                sql_generation_reasoning=input.sql_generation_reasoning,
                sql=input.sql,
                project_id=input.project_id,
                configurations=input.configurations,
            )
        )
        task = await self._asking_tasks.create_one(
            {
                "query_id": feedback.query_id,
                "kind": TaskKind.ASK_FEEDBACK,
                "question": input.question,
                "detail": {"status": AskFeedbackStatus.UNDERSTANDING.value},
                "thread_id": input.thread_id,
            }
        )
        response = await self._thread_responses.create_one(
            {
                "thread_id": input.thread_id,
                "question": input.question,
                "asking_task_id": task.id,
                "adjustment": ThreadResponseAdjustment(
                    type=ThreadResponseAdjustmentType.REASONING,
                    payload=AdjustmentPayload(
                        original_thread_response_id=input.original_thread_response_id,
                        retrieved_tables=input.tables,
                        sql_generation_reasoning=input.sql_generation_reasoning,
                    ),
                ),
            }
        )
        task = await self._asking_tasks.update_one(task.id, {"thread_response_id": response.id})
        self.add_task(task)
        logger.info(f"Adjustment task {task.id} created for response {response.id}")
        return response

    async def rerun_adjustment_task(
        self,
        thread_response_id: int,
        project_id: int,
        configurations: AskConfigurations,
    ) -> str:
        """Re-submit the feedback behind an adjustment response; returns the new query id."""
        response = await self._thread_responses.find_one_by({"id": thread_response_id})
        if response is None:
            raise NotFoundException("Thread response", thread_response_id)
        adjustment = response.adjustment
        if adjustment is None or adjustment.type != ThreadResponseAdjustmentType.REASONING:
            raise ValidationException(f"Thread response {thread_response_id} is not a reasoning adjustment")

        original = await self._thread_responses.find_one_by(
            {"id": adjustment.payload.original_thread_response_id}
        )
        if original is None:
            raise NotFoundException("Thread response", adjustment.payload.original_thread_response_id)

        feedback = await self._adaptor.create_ask_feedback(
            AskFeedbackInput(
                question=response.question,
                tables=adjustment.payload.retrieved_tables or [],
                sql_generation_reasoning=adjustment.payload.sql_generation_reasoning or "",
                sql=original.sql or "",
                project_id=project_id,
                configurations=configurations,
            )
        )
        task = await self._asking_tasks.create_one(
            {
                "query_id": feedback.query_id,
                "kind": TaskKind.ASK_FEEDBACK,
                "question": response.question,
                "detail": {"status": AskFeedbackStatus.UNDERSTANDING.value},
                "thread_id": response.thread_id,
                "thread_response_id": response.id,
                "previous_task_id": response.asking_task_id,
            }
        )
        if response.asking_task_id is not None:
            self.remove_task(response.asking_task_id)
        await self._thread_responses.update_one(response.id, {"asking_task_id": task.id})
        self.add_task(task)
        logger.info(f"Adjustment task {task.id} reruns task {response.asking_task_id}")
        return feedback.query_id

    def query_id_of(self, task: AskingTask) -> str:
        return task.query_id

    async def cancel_adjustment_task(self, query_id: str) -> None:
        await self._adaptor.cancel_ask_feedback(query_id)

    async def get_adjustment_result(self, query_id: str) -> TrackedAdjustmentResult | None:
        task = next((t for t in self._tasks.values() if t.query_id == query_id), None)
        if task is None:
            task = await self._asking_tasks.find_by_query_id(query_id)
        return to_tracked_result(task) if task else None

    async def get_adjustment_result_by_id(self, task_id: int) -> TrackedAdjustmentResult | None:
        task = self._tasks.get(task_id) or await self._asking_tasks.find_one_by({"id": task_id})
        return to_tracked_result(task) if task else None

    async def poll(self, task: AskingTask) -> None:
        result = await self._adaptor.get_ask_feedback_result(task.query_id)
        if self._superseded(task):
            return

        if task.detail.get("status") == result.status.value:
            logger.debug(f"Adjustment task {task.id} status not changed, finished")
            return

        logger.debug(f"Adjustment task {task.id} status changed to {result.status.value}, updating")
        updated = await self._asking_tasks.update_one(task.id, {"detail": result.model_dump(mode="json")})

        if not is_finalized(TaskKind.ASK_FEEDBACK, result.status):
            self._replace_task(task, updated)
            return

        if result.status == AskFeedbackStatus.FINISHED and result.response and task.thread_response_id:
            await self._thread_responses.update_one(task.thread_response_id, {"sql": result.response[0].sql})
        self.send_final_event(
            TelemetryEvent.HOME_ADJUST_THREAD_RESPONSE,
            {"question": task.question, "error": result.error},
            success=result.status == AskFeedbackStatus.FINISHED,
        )
        self.finalize(task)
