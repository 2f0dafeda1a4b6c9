"""
GenBI Backgrounds - Asking task tracker.

Submits asks, persists every status change into the asking task row and
binds finished tasks to the thread response that displays them. A rerun
creates a new row pointing at the superseded one; old rows are kept.
"""

import logging

from genbi.adaptors.ai_service import AIServiceAdaptor
from genbi.adaptors.schemas import (
    AskInput,
    AskResult,
    AskResultStatus,
    AsyncQueryResponse,
    TaskKind,
    is_finalized,
)
from genbi.backgrounds.tracker import BackgroundTracker
from genbi.exceptions import NotFoundException
from genbi.modules.asking.repository import AskingTaskRepository, ThreadResponseRepository
from genbi.modules.asking.schemas import AskingTask, TrackedAskingResult
from genbi.observability import Telemetry, TelemetryEvent

logger = logging.getLogger(__name__)


def to_tracked_result(task: AskingTask) -> TrackedAskingResult:
    detail = dict(task.detail)
    detail.setdefault("status", AskResultStatus.UNDERSTANDING.value)
    result = AskResult.model_validate(detail)
    return TrackedAskingResult(
        task_id=task.id,
        query_id=task.query_id,
        question=task.question,
        thread_id=task.thread_id,
        thread_response_id=task.thread_response_id,
        **result.model_dump(),
    )


class AskingTaskTracker(BackgroundTracker[AskingTask]):
    name = "Asking task tracker"
    kind = TaskKind.ASK

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

    async def create_asking_task(
        self,
        input: AskInput,
        *,
        thread_id: int | None = None,
        thread_response_id: int | None = None,
        previous_task_id: int | None = None,
        rerun_from_cancelled: bool = False,
    ) -> AsyncQueryResponse:
        """Submit an ask and start tracking it."""
        if rerun_from_cancelled and previous_task_id is not None:
            await self._retire_previous(previous_task_id)

        response = await self._adaptor.ask(input)
        task = await self._asking_tasks.create_one(
            {
                "query_id": response.query_id,
                "kind": TaskKind.ASK,
                "question": input.query,
                "detail": {"status": AskResultStatus.UNDERSTANDING.value},
                "thread_id": thread_id,
                "thread_response_id": thread_response_id,
                "previous_task_id": previous_task_id,
            }
        )
        self.add_task(task)

        if thread_response_id is not None:
            await self._thread_responses.update_one(thread_response_id, {"asking_task_id": task.id})

        logger.info(f"Asking task {task.id} created, query_id: {response.query_id}")
        return response

    async def _retire_previous(self, task_id: int) -> None:
        previous = await self._asking_tasks.find_one_by({"id": task_id})
        if previous is None:
            return
        self.remove_task(previous.id)
        if not is_finalized(TaskKind.ASK, previous.detail.get("status")):
            await self._asking_tasks.update_one(
                previous.id,
                {"detail": {**previous.detail, "status": AskResultStatus.STOPPED.value}},
            )

    async def cancel_asking_task(self, query_id: str) -> None:
        # the task leaves the tracker once a poll observes STOPPED
        await self._adaptor.cancel_ask(query_id)

    def query_id_of(self, task: AskingTask) -> str:
        return task.query_id

    def _find_tracked(self, query_id: str) -> AskingTask | None:
        for task in self._tasks.values():
            if task.query_id == query_id:
                return task
        return None

    async def get_asking_result(self, query_id: str) -> TrackedAskingResult | None:
        task = self._find_tracked(query_id) or await self._asking_tasks.find_by_query_id(query_id)
        return to_tracked_result(task) if task else None

    async def get_asking_result_by_id(self, task_id: int) -> TrackedAskingResult | None:
        task = self._tasks.get(task_id) or await self._asking_tasks.find_one_by({"id": task_id})
        return to_tracked_result(task) if task else None

    async def bind_thread_response(
        self,
        task_id: int,
        query_id: str,
        thread_id: int,
        thread_response_id: int,
    ) -> None:
        """Point a task at the response that displays it, in the row and in memory."""
        task = await self._asking_tasks.find_one_by({"id": task_id, "query_id": query_id})
        if task is None:
            raise NotFoundException("Asking task", query_id)

        updated = await self._asking_tasks.update_one(
            task_id, {"thread_id": thread_id, "thread_response_id": thread_response_id}
        )
        tracked = self._tasks.get(task_id)
        if tracked is not None:
            self._replace_task(tracked, updated)
        if updated.detail.get("status") == AskResultStatus.FINISHED.value:
            # finished before it was bound
            await self._write_candidate_sql(updated)

    async def poll(self, task: AskingTask) -> None:
        result = await self._adaptor.get_ask_result(task.query_id)
        if self._superseded(task):
            return

        if task.detail.get("status") == result.status.value:
            logger.debug(f"Asking task {task.id} status not changed, finished")
            return

        logger.debug(f"Asking task {task.id} status changed to {result.status.value}, updating")
        updated = await self._asking_tasks.update_one(task.id, {"detail": result.model_dump(mode="json")})

        if not is_finalized(TaskKind.ASK, result.status):
            self._replace_task(task, updated)
            return

        if result.status == AskResultStatus.FINISHED:
            await self._write_candidate_sql(updated)
        self.send_final_event(
            TelemetryEvent.HOME_ASK_CANDIDATE,
            {"question": task.question, "error": result.error},
            success=result.status == AskResultStatus.FINISHED,
        )
        self.finalize(task)

    async def _write_candidate_sql(self, task: AskingTask) -> None:
        if task.thread_response_id is None:
            return
        candidates = task.detail.get("response") or []
        if not candidates:
            return
        response = await self._thread_responses.find_one_by({"id": task.thread_response_id})
        if response is None or response.sql:
            return
        await self._thread_responses.update_one(response.id, {"sql": candidates[0]["sql"]})
        logger.debug(f"Thread response {response.id} received the SQL of asking task {task.id}")
