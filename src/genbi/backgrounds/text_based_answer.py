"""
GenBI Backgrounds - Text-based answer tracker.

A text answer is a two-phase job:
1. NOT_STARTED: fetch the preview rows for the response SQL (FETCHING_DATA),
   submit them to the AI service and move to PREPROCESSING.
2. PREPROCESSING: poll the remote task. SUCCEEDED moves the detail to
   STREAMING, after which the client reads the answer from the stream;
   FAILED moves it to FAILED. Both leave the tracker.
"""

import logging

from genbi.adaptors.ai_service import AIServiceAdaptor
from genbi.adaptors.schemas import (
    AskConfigurations,
    TaskKind,
    TextBasedAnswerInput,
    TextBasedAnswerStatus,
)
from genbi.backgrounds.tracker import BackgroundTracker
from genbi.core.mdl import MDLService
from genbi.core.query_service import QueryService
from genbi.exceptions import GenBIException
from genbi.modules.asking.repository import ThreadResponseRepository
from genbi.modules.asking.schemas import AnswerDetail, ThreadResponse, ThreadResponseAnswerStatus
from genbi.observability import Telemetry, TelemetryEvent

logger = logging.getLogger(__name__)


class TextBasedAnswerBackgroundTracker(BackgroundTracker[ThreadResponse]):
    name = "Text-based answer background tracker"
    kind = TaskKind.TEXT_ANSWER

    def __init__(
        self,
        *,
        adaptor: AIServiceAdaptor,
        thread_response_repository: ThreadResponseRepository,
        query_service: QueryService,
        mdl_service: MDLService,
        telemetry: Telemetry,
        preview_limit: int = 500,
        interval_seconds: float = 1.0,
        max_tasks: int = 1000,
    ):
        super().__init__(telemetry=telemetry, interval_seconds=interval_seconds, max_tasks=max_tasks)
        self._adaptor = adaptor
        self._thread_responses = thread_response_repository
        self._query_service = query_service
        self._mdl_service = mdl_service
        self._preview_limit = preview_limit

    def query_id_of(self, response: ThreadResponse) -> str | None:
        return response.answer_detail.query_id

    async def poll(self, response: ThreadResponse) -> None:
        detail = response.answer_detail
        if detail.status == ThreadResponseAnswerStatus.NOT_STARTED:
            await self._submit(response)
        elif detail.status == ThreadResponseAnswerStatus.PREPROCESSING:
            await self._check(response)
        else:
            # moved on by someone else, nothing left to poll
            self.finalize(response)

    async def _submit(self, response: ThreadResponse) -> None:
        await self._thread_responses.update_one(
            response.id,
            {"answer_detail": AnswerDetail(status=ThreadResponseAnswerStatus.FETCHING_DATA)},
        )

        mdl = await self._mdl_service.make_current_model_mdl()
        try:
            data = await self._query_service.preview(
                response.sql,
                project=mdl.project,
                manifest=mdl.manifest,
                limit=self._preview_limit,
            )
            task = await self._adaptor.create_text_based_answer(
                TextBasedAnswerInput(
                    query=response.question,
                    sql=response.sql,
                    sql_data=data.model_dump(),
                    thread_id=str(response.thread_id),
                    configurations=AskConfigurations(language=mdl.project.ai_language),
                )
            )
        except GenBIException as e:
            logger.error(f"Job {response.id} failed to start text-based answer: {e.message}")
            if self._superseded(response):
                return
            await self._thread_responses.update_one(
                response.id,
                {
                    "answer_detail": {
                        "status": ThreadResponseAnswerStatus.FAILED,
                        "error": {"code": e.code, "message": e.message, "short_message": e.code},
                    }
                },
            )
            self._telemetry_failed(response, e.message)
            self.finalize(response)
            return

        if self._superseded(response):
            return
        updated = await self._thread_responses.update_one(
            response.id,
            {
                "answer_detail": AnswerDetail(
                    query_id=task.query_id,
                    status=ThreadResponseAnswerStatus.PREPROCESSING,
                )
            },
        )
        self._replace_task(response, updated)

    async def _check(self, response: ThreadResponse) -> None:
        detail = response.answer_detail
        result = await self._adaptor.get_text_based_answer_result(detail.query_id)
        if self._superseded(response):
            return
        if result.status == TextBasedAnswerStatus.PREPROCESSING:
            logger.debug(f"Job {response.id} text-based answer still preprocessing")
            return

        if result.status == TextBasedAnswerStatus.SUCCEEDED:
            status = ThreadResponseAnswerStatus.STREAMING
        else:
            status = ThreadResponseAnswerStatus.FAILED

        await self._thread_responses.update_one(
            response.id,
            {
                "answer_detail": AnswerDetail(
                    query_id=detail.query_id,
                    status=status,
                    error=result.error,
                    num_rows_used_in_llm=result.num_rows_used_in_llm,
                )
            },
        )
        self.send_final_event(
            TelemetryEvent.HOME_ANSWER_TEXT,
            {"question": response.question, "error": result.error},
            success=status == ThreadResponseAnswerStatus.STREAMING,
        )
        self.finalize(response)

    def _telemetry_failed(self, response: ThreadResponse, error: str) -> None:
        self.send_final_event(
            TelemetryEvent.HOME_ANSWER_TEXT,
            {"question": response.question, "error": error},
            success=False,
        )
