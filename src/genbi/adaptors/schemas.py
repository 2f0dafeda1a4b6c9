"""
GenBI Adaptors - Schemas.

Typed contract of the AI service: task kinds, kind-specific status
enumerations, inputs and results. Wire bodies are snake_case; these models
are what the rest of the application sees.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from genbi.exceptions import UnknownStatusException


# =============================================================================
# Task kinds and statuses
# =============================================================================


class TaskKind(str, Enum):
    """Kinds of asynchronous work submitted to the AI service."""

    ASK = "ask"
    BREAKDOWN = "breakdown"
    CHART = "chart"
    CHART_ADJUSTMENT = "chart_adjustment"
    RECOMMENDATION_QUESTIONS = "recommendation_questions"
    TEXT_ANSWER = "text_answer"
    ASK_FEEDBACK = "ask_feedback"
    SQL_PAIR = "sql_pair"
    SQL_QUESTIONS = "sql_questions"
    INSTRUCTION = "instruction"
    DEPLOY = "deploy"


class AskResultStatus(str, Enum):
    UNDERSTANDING = "UNDERSTANDING"
    SEARCHING = "SEARCHING"
    PLANNING = "PLANNING"
    GENERATING = "GENERATING"
    CORRECTING = "CORRECTING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"


class AskFeedbackStatus(str, Enum):
    UNDERSTANDING = "UNDERSTANDING"
    SEARCHING = "SEARCHING"
    GENERATING = "GENERATING"
    CORRECTING = "CORRECTING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"


class ChartStatus(str, Enum):
    FETCHING = "FETCHING"
    GENERATING = "GENERATING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"


class RecommendationQuestionStatus(str, Enum):
    GENERATING = "GENERATING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"


class TextBasedAnswerStatus(str, Enum):
    PREPROCESSING = "PREPROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class IndexingStatus(str, Enum):
    """Status of sql-pair, instruction and semantics deployment indexing."""

    INDEXING = "INDEXING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"


class QuestionsStatus(str, Enum):
    GENERATING = "GENERATING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


STATUS_ENUMS: dict[TaskKind, type[Enum]] = {
    TaskKind.ASK: AskResultStatus,
    TaskKind.BREAKDOWN: AskResultStatus,
    TaskKind.CHART: ChartStatus,
    TaskKind.CHART_ADJUSTMENT: ChartStatus,
    TaskKind.RECOMMENDATION_QUESTIONS: RecommendationQuestionStatus,
    TaskKind.TEXT_ANSWER: TextBasedAnswerStatus,
    TaskKind.ASK_FEEDBACK: AskFeedbackStatus,
    TaskKind.SQL_PAIR: IndexingStatus,
    TaskKind.SQL_QUESTIONS: QuestionsStatus,
    TaskKind.INSTRUCTION: IndexingStatus,
    TaskKind.DEPLOY: IndexingStatus,
}

TERMINAL_STATUSES: dict[TaskKind, frozenset[str]] = {
    TaskKind.ASK: frozenset({"FINISHED", "FAILED", "STOPPED"}),
    TaskKind.BREAKDOWN: frozenset({"FINISHED", "FAILED", "STOPPED"}),
    TaskKind.CHART: frozenset({"FINISHED", "FAILED", "STOPPED"}),
    TaskKind.CHART_ADJUSTMENT: frozenset({"FINISHED", "FAILED", "STOPPED"}),
    TaskKind.RECOMMENDATION_QUESTIONS: frozenset({"FINISHED", "FAILED"}),
    TaskKind.TEXT_ANSWER: frozenset({"SUCCEEDED", "FAILED"}),
    TaskKind.ASK_FEEDBACK: frozenset({"FINISHED", "FAILED", "STOPPED"}),
    TaskKind.SQL_PAIR: frozenset({"FINISHED", "FAILED"}),
    TaskKind.SQL_QUESTIONS: frozenset({"SUCCEEDED", "FAILED"}),
    TaskKind.INSTRUCTION: frozenset({"FINISHED", "FAILED"}),
    TaskKind.DEPLOY: frozenset({"FINISHED", "FAILED"}),
}


def parse_status(kind: TaskKind, raw: Any) -> Enum:
    """
    Parse a wire status into the kind's enumeration.

    Wire statuses are lower-case; they are upper-cased before lookup.

    Raises:
        UnknownStatusException: If the status is missing or not a member
    """
    if not isinstance(raw, str) or not raw:
        raise UnknownStatusException(kind.value, raw if raw is None else str(raw))
    enum_cls = STATUS_ENUMS[kind]
    try:
        return enum_cls(raw.upper())
    except ValueError as exc:
        raise UnknownStatusException(kind.value, raw) from exc


def is_finalized(kind: TaskKind, status: Enum | str | None) -> bool:
    """Check whether a status is terminal for the given kind."""
    if status is None:
        return False
    value = status.value if isinstance(status, Enum) else str(status)
    return value in TERMINAL_STATUSES[kind]


class TaskHandle(BaseModel):
    """A submitted task bound to the internal entity it must update."""

    task_id: str | None
    bound_entity_id: int
    kind: TaskKind


# =============================================================================
# Errors
# =============================================================================


class AIError(BaseModel):
    """Error reported by the AI service for a task, rendered for clients."""

    code: str
    message: str
    short_message: str


# =============================================================================
# Inputs
# =============================================================================


class AsyncQueryResponse(BaseModel):
    query_id: str


class AskHistory(BaseModel):
    question: str
    sql: str


class AskConfigurations(BaseModel):
    language: str = "English"


class AskInput(BaseModel):
    query: str
    deploy_id: str
    histories: list[AskHistory] = Field(default_factory=list)
    configurations: AskConfigurations = Field(default_factory=AskConfigurations)


class AskDetailInput(BaseModel):
    query: str
    sql: str
    configurations: AskConfigurations = Field(default_factory=AskConfigurations)


class RecommendationQuestionsInput(BaseModel):
    manifest: dict[str, Any]
    previous_questions: list[str] = Field(default_factory=list)
    max_questions: int | None = None
    max_categories: int | None = None
    configuration: AskConfigurations = Field(default_factory=AskConfigurations)


class TextBasedAnswerInput(BaseModel):
    query: str
    sql: str
    sql_data: dict[str, Any]
    thread_id: str | None = None
    user_id: str | None = None
    configurations: AskConfigurations = Field(default_factory=AskConfigurations)


class ChartInput(BaseModel):
    query: str
    sql: str
    configurations: AskConfigurations = Field(default_factory=AskConfigurations)


class ChartType(str, Enum):
    BAR = "BAR"
    GROUPED_BAR = "GROUPED_BAR"
    STACKED_BAR = "STACKED_BAR"
    LINE = "LINE"
    MULTI_LINE = "MULTI_LINE"
    AREA = "AREA"
    PIE = "PIE"


class ChartAdjustmentOption(BaseModel):
    chart_type: ChartType
    x_axis: str | None = None
    y_axis: str | None = None
    x_offset: str | None = None
    color: str | None = None
    theta: str | None = None


class ChartAdjustmentInput(BaseModel):
    query: str
    sql: str
    adjustment_option: ChartAdjustmentOption
    chart_schema: dict[str, Any] | None = None
    configurations: AskConfigurations = Field(default_factory=AskConfigurations)


class SqlPairInput(BaseModel):
    id: int
    question: str
    sql: str


class QuestionInput(BaseModel):
    sqls: list[str]
    project_id: int
    configurations: AskConfigurations = Field(default_factory=AskConfigurations)


class GenerateInstructionInput(BaseModel):
    id: int
    project_id: int
    instruction: str
    questions: list[str] = Field(default_factory=list)
    is_default: bool = False


class AskFeedbackInput(BaseModel):
    question: str
    tables: list[str]
    sql_generation_reasoning: str
    sql: str
    project_id: int
    configurations: AskConfigurations = Field(default_factory=AskConfigurations)


# =============================================================================
# Results
# =============================================================================


class AskCandidate(BaseModel):
    type: str | None = Field(default=None, description="LLM, VIEW or SQL_PAIR")
    sql: str
    view_id: int | None = None
    sqlpair_id: int | None = None


class AskResult(BaseModel):
    type: str | None = None
    status: AskResultStatus
    error: AIError | None = None
    response: list[AskCandidate] = Field(default_factory=list)
    rephrased_question: str | None = None
    intent_reasoning: str | None = None
    sql_generation_reasoning: str | None = None
    retrieved_tables: list[str] | None = None
    invalid_sql: str | None = None
    trace_id: str | None = None


class DetailStep(BaseModel):
    summary: str
    sql: str
    cte_name: str


class AskDetailResponse(BaseModel):
    description: str | None = None
    steps: list[DetailStep] = Field(default_factory=list)


class AskDetailResult(BaseModel):
    type: str | None = None
    status: AskResultStatus
    error: AIError | None = None
    response: AskDetailResponse = Field(default_factory=AskDetailResponse)


class RecommendationQuestion(BaseModel):
    question: str
    category: str | None = None
    sql: str | None = None


class RecommendationQuestionsResult(BaseModel):
    status: RecommendationQuestionStatus
    error: AIError | None = None
    questions: list[RecommendationQuestion] = Field(default_factory=list)


class TextBasedAnswerResult(BaseModel):
    status: TextBasedAnswerStatus
    error: AIError | None = None
    num_rows_used_in_llm: int | None = None


class ChartResponse(BaseModel):
    reasoning: str | None = None
    chart_type: str | None = None
    chart_schema: dict[str, Any] | None = None


class ChartResult(BaseModel):
    status: ChartStatus
    error: AIError | None = None
    response: ChartResponse = Field(default_factory=ChartResponse)


class IndexingResult(BaseModel):
    status: IndexingStatus
    error: AIError | None = None


class QuestionsResult(BaseModel):
    status: QuestionsStatus
    error: AIError | None = None
    questions: list[str] = Field(default_factory=list)


class AskFeedbackResult(BaseModel):
    status: AskFeedbackStatus
    error: AIError | None = None
    response: list[AskCandidate] = Field(default_factory=list)
    trace_id: str | None = None
    invalid_sql: str | None = None


class DeployStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class DeployResult(BaseModel):
    status: DeployStatus
    error: str | None = None
