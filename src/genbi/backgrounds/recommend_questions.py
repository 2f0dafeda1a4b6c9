"""
GenBI Backgrounds - Thread recommendation questions tracker.
"""

import logging

from genbi.adaptors.ai_service import AIServiceAdaptor
from genbi.adaptors.schemas import RecommendationQuestionStatus, TaskKind, is_finalized
from genbi.backgrounds.tracker import BackgroundTracker
from genbi.modules.asking.repository import ThreadRepository
from genbi.modules.asking.schemas import Thread
from genbi.observability import Telemetry, TelemetryEvent

logger = logging.getLogger(__name__)


class ThreadRecommendQuestionBackgroundTracker(BackgroundTracker[Thread]):
    name = "Thread recommendation questions background tracker"
    kind = TaskKind.RECOMMENDATION_QUESTIONS

    def __init__(
        self,
        *,
        adaptor: AIServiceAdaptor,
        thread_repository: ThreadRepository,
        telemetry: Telemetry,
        interval_seconds: float = 1.0,
        max_tasks: int = 1000,
    ):
        super().__init__(telemetry=telemetry, interval_seconds=interval_seconds, max_tasks=max_tasks)
        self._adaptor = adaptor
        self._threads = thread_repository

    def query_id_of(self, thread: Thread) -> str:
        return thread.query_id

    async def poll(self, thread: Thread) -> None:
        result = await self._adaptor.get_recommendation_questions_result(thread.query_id)
        if self._superseded(thread):
            return

        # questions arrive in batches while GENERATING
        if thread.questions_status == result.status and len(thread.questions) == len(result.questions):
            logger.debug(f"Job {thread.id} recommendation questions not changed, finished")
            return

        logger.debug(f"Job {thread.id} recommendation questions changed, updating")
        updated = await self._threads.update_one(
            thread.id,
            {
                "questions_status": result.status,
                "questions": result.questions,
                "questions_error": result.error,
            },
        )

        if is_finalized(TaskKind.RECOMMENDATION_QUESTIONS, result.status):
            self.send_final_event(
                TelemetryEvent.HOME_GENERATE_THREAD_RECOMMENDATION_QUESTIONS,
                {"thread_id": thread.id, "error": result.error},
                success=result.status == RecommendationQuestionStatus.FINISHED,
            )
            self.finalize(thread)
        else:
            self._replace_task(thread, updated)
