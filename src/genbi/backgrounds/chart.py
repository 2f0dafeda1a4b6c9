"""
GenBI Backgrounds - Chart trackers.

Chart generation and chart adjustment share the detail shape; they differ in
the result endpoint and the telemetry event.
"""

import logging

from genbi.adaptors.ai_service import AIServiceAdaptor
from genbi.adaptors.schemas import ChartResult, ChartStatus, TaskKind, is_finalized
from genbi.backgrounds.tracker import BackgroundTracker
from genbi.modules.asking.repository import ThreadResponseRepository
from genbi.modules.asking.schemas import ChartDetail, ThreadResponse
from genbi.observability import Telemetry, TelemetryEvent

logger = logging.getLogger(__name__)


class ChartBackgroundTracker(BackgroundTracker[ThreadResponse]):
    name = "Chart background tracker"
    kind = TaskKind.CHART
    event = TelemetryEvent.HOME_ANSWER_CHART

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
        return response.chart_detail.query_id

    async def fetch_result(self, query_id: str) -> ChartResult:
        return await self._adaptor.get_chart_result(query_id)

    async def poll(self, response: ThreadResponse) -> None:
        detail = response.chart_detail
        result = await self.fetch_result(detail.query_id)
        if self._superseded(response):
            return

        if detail.status == result.status:
            logger.debug(f"Job {response.id} chart status not changed, finished")
            return

        chart_type = result.response.chart_type
        updated_detail = ChartDetail(
            query_id=detail.query_id,
            status=result.status,
            error=result.error,
            description=result.response.reasoning,
            chart_type=chart_type.upper() if chart_type else None,
            chart_schema=result.response.chart_schema,
            adjustment=detail.adjustment,
        )
        logger.debug(f"Job {response.id} chart status changed, updating")
        updated = await self._thread_responses.update_one(response.id, {"chart_detail": updated_detail})

        if is_finalized(self.kind, result.status):
            self.send_final_event(
                self.event,
                {"question": response.question, "error": result.error},
                success=result.status == ChartStatus.FINISHED,
            )
            self.finalize(response)
        else:
            self._replace_task(response, updated)


class ChartAdjustmentBackgroundTracker(ChartBackgroundTracker):
    name = "Chart adjustment background tracker"
    kind = TaskKind.CHART_ADJUSTMENT
    event = TelemetryEvent.HOME_ANSWER_ADJUST_CHART

    async def fetch_result(self, query_id: str) -> ChartResult:
        return await self._adaptor.get_chart_adjustment_result(query_id)
