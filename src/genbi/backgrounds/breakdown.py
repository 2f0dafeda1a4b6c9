"""
GenBI Backgrounds - Breakdown tracker.

Polls ask-detail results and writes them into the response's breakdown detail.
"""

import logging

from genbi.adaptors.ai_service import AIServiceAdaptor
from genbi.adaptors.schemas import AskResultStatus, TaskKind, is_finalized
from genbi.backgrounds.tracker import BackgroundTracker
from genbi.modules.asking.repository import ThreadResponseRepository
from genbi.modules.asking.schemas import BreakdownDetail, ThreadResponse
from genbi.observability import Telemetry, TelemetryEvent

logger = logging.getLogger(__name__)


class BreakdownBackgroundTracker(BackgroundTracker[ThreadResponse]):
    name = "Breakdown background tracker"
    kind = TaskKind.BREAKDOWN

    def __init__(
        self,
        *,
        adaptor: AIServiceAdaptor,
        thread_response_repository: ThreadResponseRepository,
        telemetry: Telemetry,
        interval_seconds: float = 1.0,
        max_tasks: int = 1000,
    ):
        super().__init__(telemetry=telemetry, interval_seconds=interval_seconds, max_tasks=max_tasks)
        self._adaptor = adaptor
        self._thread_responses = thread_response_repository

    def query_id_of(self, response: ThreadResponse) -> str:
        return response.breakdown_detail.query_id

    async def poll(self, response: ThreadResponse) -> None:
        detail = response.breakdown_detail
        result = await self._adaptor.get_ask_detail_result(detail.query_id)
        if self._superseded(response):
            return

        if detail.status == result.status:
            logger.debug(f"Job {response.id} status not changed, finished")
            return

        updated_detail = BreakdownDetail(
            query_id=detail.query_id,
            status=result.status,
            error=result.error,
            description=result.response.description,
            steps=result.response.steps,
        )
        logger.debug(f"Job {response.id} status changed, updating")
        updated = await self._thread_responses.update_one(
            response.id, {"breakdown_detail": updated_detail}
        )

        if is_finalized(TaskKind.BREAKDOWN, result.status):
            self.send_final_event(
                TelemetryEvent.HOME_ANSWER_BREAKDOWN,
                {"question": response.question, "error": result.error},
                success=result.status == AskResultStatus.FINISHED,
            )
            self.finalize(response)
        else:
            self._replace_task(response, updated)
