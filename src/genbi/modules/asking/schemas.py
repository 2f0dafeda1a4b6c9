"""
GenBI Asking - Schemas.

Pydantic models for threads, thread responses, asking tasks and the
request/response bodies of the asking API.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from genbi.adaptors.schemas import (
    AIError,
    AskFeedbackStatus,
    AskResultStatus,
    AskCandidate,
    ChartAdjustmentOption,
    ChartStatus,
    DetailStep,
    RecommendationQuestion,
    RecommendationQuestionStatus,
    TaskKind,
)


# =============================================================================
# Persisted entities
# =============================================================================


class Thread(BaseModel):
    """A conversation grouping one or more question/answer exchanges."""

    id: int
    project_id: int
    summary: str | None = None

    # recommendation questions generated for the thread
    query_id: str | None = None
    questions: list[RecommendationQuestion] = Field(default_factory=list)
    questions_status: RecommendationQuestionStatus | None = None
    questions_error: AIError | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None


class ThreadResponseAnswerStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    FETCHING_DATA = "FETCHING_DATA"
    PREPROCESSING = "PREPROCESSING"
    STREAMING = "STREAMING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    INTERRUPTED = "INTERRUPTED"


class BreakdownDetail(BaseModel):
    query_id: str
    status: AskResultStatus
    error: AIError | None = None
    description: str | None = None
    steps: list[DetailStep] = Field(default_factory=list)


class AnswerDetail(BaseModel):
    query_id: str | None = None
    status: ThreadResponseAnswerStatus
    error: AIError | None = None
    num_rows_used_in_llm: int | None = None
    content: str | None = None


class ChartDetail(BaseModel):
    query_id: str
    status: ChartStatus
    error: AIError | None = None
    description: str | None = None
    chart_type: str | None = None
    chart_schema: dict[str, Any] | None = None
    adjustment: bool = False


class ThreadResponseAdjustmentType(str, Enum):
    APPLY_SQL = "APPLY_SQL"
    REASONING = "REASONING"


class AdjustmentPayload(BaseModel):
    original_thread_response_id: int
    sql: str | None = None
    retrieved_tables: list[str] | None = None
    sql_generation_reasoning: str | None = None


class ThreadResponseAdjustment(BaseModel):
    """Revision record: the response revises original_thread_response_id."""

    type: ThreadResponseAdjustmentType
    payload: AdjustmentPayload


class ThreadResponse(BaseModel):
    """One exchange: question, SQL, breakdown, chart, answer and adjustment lineage."""

    id: int
    thread_id: int
    question: str
    sql: str | None = None
    asking_task_id: int | None = None
    breakdown_detail: BreakdownDetail | None = None
    answer_detail: AnswerDetail | None = None
    chart_detail: ChartDetail | None = None
    adjustment: ThreadResponseAdjustment | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None


class AskingTask(BaseModel):
    """
    Persisted asking or adjustment task.

    detail holds the last AskResult / AskFeedbackResult seen for query_id.
    previous_task_id points at the task this one superseded on rerun.
    """

    id: int
    query_id: str
    kind: TaskKind = TaskKind.ASK
    question: str | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
    thread_id: int | None = None
    thread_response_id: int | None = None
    previous_task_id: int | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# Tracked results
# =============================================================================


class TrackedAskingResult(BaseModel):
    """Result of an asking task as seen by clients."""

    task_id: int
    query_id: str
    question: str | None = None
    status: AskResultStatus
    error: AIError | None = None
    response: list[AskCandidate] = Field(default_factory=list)
    rephrased_question: str | None = None
    intent_reasoning: str | None = None
    sql_generation_reasoning: str | None = None
    retrieved_tables: list[str] | None = None
    invalid_sql: str | None = None
    trace_id: str | None = None
    type: str | None = None
    thread_id: int | None = None
    thread_response_id: int | None = None


class TrackedAdjustmentResult(BaseModel):
    """Result of a reasoning adjustment task as seen by clients."""

    task_id: int
    query_id: str
    status: AskFeedbackStatus
    error: AIError | None = None
    response: list[AskCandidate] = Field(default_factory=list)
    trace_id: str | None = None
    invalid_sql: str | None = None
    thread_id: int | None = None
    thread_response_id: int | None = None


class Task(BaseModel):
    id: str


class RecommendQuestionResultStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    GENERATING = "GENERATING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"


class ThreadRecommendQuestionResult(BaseModel):
    status: RecommendQuestionResultStatus
    questions: list[RecommendationQuestion] = Field(default_factory=list)
    error: AIError | None = None


# =============================================================================
# Inputs
# =============================================================================


class AskingPayload(BaseModel):
    thread_id: int | None = None
    language: str = "English"


class AskingTaskInput(BaseModel):
    question: str = Field(..., min_length=1, max_length=4000)


class TrackedTaskRef(BaseModel):
    """Reference to an asking task whose result becomes a thread response."""

    task_id: int
    query_id: str


class AskingDetailTaskInput(BaseModel):
    question: str | None = None
    sql: str | None = None
    tracked_asking_result: TrackedTaskRef | None = None


class AskingDetailTaskUpdateInput(BaseModel):
    summary: str | None = None


class AdjustmentReasoningInput(BaseModel):
    tables: list[str]
    sql_generation_reasoning: str
    project_id: int


class AdjustmentSqlInput(BaseModel):
    sql: str = Field(..., min_length=1)


class InstantRecommendedQuestionsInput(BaseModel):
    previous_questions: list[str] = Field(default_factory=list)


# =============================================================================
# Request bodies
# =============================================================================


class CreateAskingTaskRequest(AskingTaskInput):
    thread_id: int | None = None
    language: str = "English"


class AdjustChartRequest(ChartAdjustmentOption):
    language: str = "English"


class AdjustAnswerRequest(AdjustmentReasoningInput):
    language: str = "English"


class RerunAdjustmentRequest(BaseModel):
    project_id: int
    language: str = "English"


class AnswerDetailStatusRequest(BaseModel):
    status: ThreadResponseAnswerStatus
    content: str | None = None


class PreviewRequest(BaseModel):
    limit: int | None = Field(default=None, ge=1)


class PreviewBreakdownRequest(PreviewRequest):
    step_index: int | None = None
