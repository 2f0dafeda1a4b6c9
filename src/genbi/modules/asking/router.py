"""
GenBI Asking - Router.

API endpoints for asking tasks, threads, thread responses and adjustments.
Long-running work returns immediately; clients poll the task or response.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sse_starlette.sse import EventSourceResponse

from genbi.adaptors.schemas import (
    AskConfigurations,
    AsyncQueryResponse,
    ChartAdjustmentOption,
    RecommendationQuestionsResult,
)
from genbi.core.query_service import PreviewDataResponse
from genbi.deps import get_asking_service, require_asking
from genbi.exceptions import NotFoundException
from genbi.modules.asking.schemas import (
    AdjustAnswerRequest,
    AdjustChartRequest,
    AdjustmentReasoningInput,
    AdjustmentSqlInput,
    AnswerDetailStatusRequest,
    AskingDetailTaskInput,
    AskingDetailTaskUpdateInput,
    AskingPayload,
    AskingTaskInput,
    CreateAskingTaskRequest,
    InstantRecommendedQuestionsInput,
    PreviewBreakdownRequest,
    PreviewRequest,
    RerunAdjustmentRequest,
    Task,
    Thread,
    ThreadRecommendQuestionResult,
    ThreadResponse,
    TrackedAdjustmentResult,
    TrackedAskingResult,
)
from genbi.modules.asking.service import AskingService

router = APIRouter(
    prefix="/asking",
    tags=["asking"],
    dependencies=[require_asking],
)

Service = Annotated[AskingService, Depends(get_asking_service)]


# =============================================================================
# Asking tasks
# =============================================================================


@router.post("/tasks", response_model=Task, status_code=status.HTTP_202_ACCEPTED)
async def create_asking_task(body: CreateAskingTaskRequest, service: Service):
    """Ask a question. Poll GET /asking/tasks/{query_id} for candidates."""
    return await service.create_asking_task(
        AskingTaskInput(question=body.question),
        AskingPayload(thread_id=body.thread_id, language=body.language),
    )


@router.get("/tasks/{query_id}", response_model=TrackedAskingResult)
async def get_asking_task(query_id: str, service: Service):
    result = await service.get_asking_task(query_id)
    if result is None:
        raise NotFoundException("Asking task", query_id)
    return result


@router.get("/tasks/by-id/{task_id}", response_model=TrackedAskingResult)
async def get_asking_task_by_id(task_id: int, service: Service):
    result = await service.get_asking_task_by_id(task_id)
    if result is None:
        raise NotFoundException("Asking task", task_id)
    return result


@router.post("/tasks/{query_id}/cancel", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_asking_task(query_id: str, service: Service):
    await service.cancel_asking_task(query_id)


@router.get("/tasks/{query_id}/stream")
async def stream_asking_task(query_id: str, service: Service):
    return EventSourceResponse(service.stream_asking_task(query_id))


# =============================================================================
# Threads
# =============================================================================


@router.post("/threads", response_model=Thread, status_code=status.HTTP_201_CREATED)
async def create_thread(body: AskingDetailTaskInput, service: Service):
    return await service.create_thread(body)


@router.get("/threads", response_model=list[Thread])
async def list_threads(service: Service):
    return await service.list_threads()


@router.get("/threads/{thread_id}", response_model=Thread)
async def get_thread(thread_id: int, service: Service):
    return await service.get_thread(thread_id)


@router.patch("/threads/{thread_id}", response_model=Thread)
async def update_thread(thread_id: int, body: AskingDetailTaskUpdateInput, service: Service):
    return await service.update_thread(thread_id, body)


@router.delete("/threads/{thread_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_thread(thread_id: int, service: Service):
    await service.delete_thread(thread_id)


@router.get("/threads/{thread_id}/responses", response_model=list[ThreadResponse])
async def get_responses_with_thread(thread_id: int, service: Service):
    return await service.get_responses_with_thread(thread_id)


@router.post(
    "/threads/{thread_id}/responses",
    response_model=ThreadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_thread_response(thread_id: int, body: AskingDetailTaskInput, service: Service):
    return await service.create_thread_response(body, thread_id)


@router.post("/threads/{thread_id}/recommendation-questions", status_code=status.HTTP_202_ACCEPTED)
async def generate_thread_recommendation_questions(thread_id: int, service: Service):
    """Start generating follow-up questions; a second call while generating is a no-op."""
    await service.generate_thread_recommendation_questions(thread_id)
    return {"thread_id": thread_id}


@router.get(
    "/threads/{thread_id}/recommendation-questions",
    response_model=ThreadRecommendQuestionResult,
)
async def get_thread_recommendation_questions(thread_id: int, service: Service):
    return await service.get_thread_recommendation_questions(thread_id)


# =============================================================================
# Thread responses
# =============================================================================


@router.get("/responses/{response_id}", response_model=ThreadResponse)
async def get_response(response_id: int, service: Service):
    response = await service.get_response(response_id)
    if response is None:
        raise NotFoundException("Thread response", response_id)
    return response


@router.patch("/responses/{response_id}", response_model=ThreadResponse)
async def update_thread_response(response_id: int, body: AdjustmentSqlInput, service: Service):
    return await service.update_thread_response(response_id, body)


@router.post("/responses/{response_id}/rerun", response_model=Task, status_code=status.HTTP_202_ACCEPTED)
async def rerun_asking_task(response_id: int, body: AskingPayload, service: Service):
    return await service.rerun_asking_task(response_id, body)


@router.post("/responses/{response_id}/breakdown", response_model=ThreadResponse)
async def generate_thread_response_breakdown(response_id: int, body: AskConfigurations, service: Service):
    return await service.generate_thread_response_breakdown(response_id, body)


@router.post("/responses/{response_id}/answer", response_model=ThreadResponse)
async def generate_thread_response_answer(response_id: int, service: Service):
    return await service.generate_thread_response_answer(response_id)


@router.patch("/responses/{response_id}/answer/status", response_model=ThreadResponse)
async def change_thread_response_answer_detail_status(
    response_id: int, body: AnswerDetailStatusRequest, service: Service
):
    return await service.change_thread_response_answer_detail_status(response_id, body.status, body.content)


@router.get("/responses/{response_id}/answer/stream")
async def stream_thread_response_answer(response_id: int, service: Service):
    """Stream the text answer once the answer detail reached STREAMING."""
    return EventSourceResponse(await service.stream_thread_response_answer(response_id))


@router.post("/responses/{response_id}/chart", response_model=ThreadResponse)
async def generate_thread_response_chart(response_id: int, body: AskConfigurations, service: Service):
    return await service.generate_thread_response_chart(response_id, body)


@router.post("/responses/{response_id}/chart/adjust", response_model=ThreadResponse)
async def adjust_thread_response_chart(response_id: int, body: AdjustChartRequest, service: Service):
    option = ChartAdjustmentOption.model_validate(body.model_dump(exclude={"language"}))
    return await service.adjust_thread_response_chart(
        response_id, option, AskConfigurations(language=body.language)
    )


@router.post("/responses/{response_id}/preview", response_model=PreviewDataResponse)
async def preview_data(response_id: int, body: PreviewRequest, service: Service):
    return await service.preview_data(response_id, body.limit)


@router.post("/responses/{response_id}/preview-breakdown", response_model=PreviewDataResponse)
async def preview_breakdown_data(response_id: int, body: PreviewBreakdownRequest, service: Service):
    return await service.preview_breakdown_data(response_id, body.step_index, body.limit)


# =============================================================================
# Adjustments
# =============================================================================


@router.post(
    "/responses/{response_id}/adjustments/sql",
    response_model=ThreadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def adjust_thread_response_with_sql(response_id: int, body: AdjustmentSqlInput, service: Service):
    """Apply edited SQL. Creates a new response revising this one."""
    return await service.adjust_thread_response_with_sql(response_id, body)


@router.post(
    "/responses/{response_id}/adjustments/reasoning",
    response_model=ThreadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def adjust_thread_response_answer(response_id: int, body: AdjustAnswerRequest, service: Service):
    """Regenerate SQL from edited reasoning. Creates a new response revising this one."""
    return await service.adjust_thread_response_answer(
        response_id,
        AdjustmentReasoningInput.model_validate(body.model_dump(exclude={"language"})),
        AskConfigurations(language=body.language),
    )


@router.post(
    "/responses/{response_id}/adjustments/rerun",
    response_model=AsyncQueryResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def rerun_adjust_thread_response_answer(
    response_id: int, body: RerunAdjustmentRequest, service: Service
):
    return await service.rerun_adjust_thread_response_answer(
        response_id, body.project_id, AskConfigurations(language=body.language)
    )


@router.get("/adjustment-tasks/{query_id}", response_model=TrackedAdjustmentResult)
async def get_adjustment_task(query_id: str, service: Service):
    result = await service.get_adjustment_task(query_id)
    if result is None:
        raise NotFoundException("Adjustment task", query_id)
    return result


@router.get("/adjustment-tasks/by-id/{task_id}", response_model=TrackedAdjustmentResult)
async def get_adjustment_task_by_id(task_id: int, service: Service):
    result = await service.get_adjustment_task_by_id(task_id)
    if result is None:
        raise NotFoundException("Adjustment task", task_id)
    return result


@router.post("/adjustment-tasks/{query_id}/cancel", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_adjust_thread_response_answer(query_id: str, service: Service):
    await service.cancel_adjust_thread_response_answer(query_id)


# =============================================================================
# Instant recommendations and project cleanup
# =============================================================================


@router.post("/recommendation-questions", response_model=Task, status_code=status.HTTP_202_ACCEPTED)
async def create_instant_recommended_questions(body: InstantRecommendedQuestionsInput, service: Service):
    return await service.create_instant_recommended_questions(body)


@router.get("/recommendation-questions/{query_id}", response_model=RecommendationQuestionsResult)
async def get_instant_recommended_questions(query_id: str, service: Service):
    return await service.get_instant_recommended_questions(query_id)


@router.delete("/projects/{project_id}/threads", status_code=status.HTTP_204_NO_CONTENT)
async def delete_all_by_project_id(project_id: int, service: Service):
    await service.delete_all_by_project_id(project_id)
