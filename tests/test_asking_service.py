"""Tests for the asking service: threads, responses, adjustments and the trackers behind them."""

import asyncio
import json

import pytest
import pytest_asyncio

from genbi.adaptors.schemas import (
    AskCandidate,
    AskConfigurations,
    AskDetailResponse,
    AskDetailResult,
    AskFeedbackResult,
    AskFeedbackStatus,
    AskResult,
    AskResultStatus,
    ChartStatus,
    DetailStep,
    RecommendationQuestionStatus,
    TextBasedAnswerResult,
    TextBasedAnswerStatus,
)
from genbi.exceptions import (
    ConflictException,
    NotFoundException,
    QueryExecutionException,
    ValidationException,
)
from genbi.modules.asking.repository import (
    AskingTaskRepository,
    ThreadRepository,
    ThreadResponseRepository,
)
from genbi.modules.asking.schemas import (
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
    ThreadResponseAdjustmentType,
    ThreadResponseAnswerStatus,
    TrackedTaskRef,
)


@pytest.fixture
def threads(store):
    return ThreadRepository(store)


@pytest.fixture
def responses(store):
    return ThreadResponseRepository(store)


@pytest.fixture
def asking_tasks(store):
    return AskingTaskRepository(store)


@pytest_asyncio.fixture
async def thread(threads):
    return await threads.create_one({"project_id": 1, "summary": "sales"})


def finished_ask(sql: str) -> AskResult:
    return AskResult(status=AskResultStatus.FINISHED, response=[AskCandidate(type="LLM", sql=sql)])


def hold(fake_ai, method: str, monkeypatch) -> tuple[asyncio.Event, list]:
    """Block calls to `method` until the event is set; the list collects the blocked calls."""
    gate, entered = asyncio.Event(), []
    original = getattr(fake_ai, method)

    async def held(*args):
        entered.append(args)
        await gate.wait()
        return await original(*args)

    monkeypatch.setattr(fake_ai, method, held)
    return gate, entered


async def until(entered: list) -> None:
    while not entered:
        await asyncio.sleep(0)


class TestThreads:
    @pytest.mark.asyncio
    async def test_create_thread_creates_first_response(self, asking_service):
        thread = await asking_service.create_thread(AskingDetailTaskInput(question="Total sales?", sql="SELECT 1"))

        assert thread.summary == "Total sales?"
        responses = await asking_service.get_responses_with_thread(thread.id)
        assert [(r.question, r.sql) for r in responses] == [("Total sales?", "SELECT 1")]

    @pytest.mark.asyncio
    async def test_create_thread_requires_question(self, asking_service):
        with pytest.raises(ValidationException):
            await asking_service.create_thread(AskingDetailTaskInput())

    @pytest.mark.asyncio
    async def test_missing_thread(self, asking_service):
        with pytest.raises(NotFoundException):
            await asking_service.get_thread(999)
        with pytest.raises(NotFoundException):
            await asking_service.create_thread_response(AskingDetailTaskInput(question="q"), 999)

    @pytest.mark.asyncio
    async def test_empty_update_rejected(self, asking_service, thread):
        with pytest.raises(ValidationException):
            await asking_service.update_thread(thread.id, AskingDetailTaskUpdateInput())

        updated = await asking_service.update_thread(thread.id, AskingDetailTaskUpdateInput(summary="renamed"))
        assert updated.summary == "renamed"

    @pytest.mark.asyncio
    async def test_delete_thread_removes_responses(self, asking_service, thread, responses):
        await responses.create_one({"thread_id": thread.id, "question": "q"})

        await asking_service.delete_thread(thread.id)

        assert await responses.find_all_by({"thread_id": thread.id}) == []
        with pytest.raises(NotFoundException):
            await asking_service.get_thread(thread.id)

    @pytest.mark.asyncio
    async def test_list_threads_newest_first(self, asking_service):
        first = await asking_service.create_thread(AskingDetailTaskInput(question="first"))
        second = await asking_service.create_thread(AskingDetailTaskInput(question="second"))

        listed = await asking_service.list_threads()

        assert [t.id for t in listed] == [second.id, first.id]


class TestAskingTasks:
    @pytest.mark.asyncio
    async def test_requires_deployment(self, asking_service):
        with pytest.raises(ConflictException):
            await asking_service.create_asking_task(AskingTaskInput(question="q"), AskingPayload())

    @pytest.mark.asyncio
    async def test_history_newest_first_with_sql_only(self, asking_service, fake_ai, thread, responses, deployed):
        await responses.create_one({"thread_id": thread.id, "question": "q1", "sql": "S1"})
        await responses.create_one({"thread_id": thread.id, "question": "q2"})
        await responses.create_one({"thread_id": thread.id, "question": "q3", "sql": "S3"})

        await asking_service.create_asking_task(
            AskingTaskInput(question="and by month?"), AskingPayload(thread_id=thread.id)
        )

        ask = fake_ai.calls["ask"][0]
        assert ask.deploy_id == "deploy-hash-1"
        assert [(h.question, h.sql) for h in ask.histories] == [("q3", "S3"), ("q1", "S1")]

    @pytest.mark.asyncio
    async def test_bound_response_receives_candidate_sql(self, asking_service, fake_ai, trackers, deployed):
        task = await asking_service.create_asking_task(AskingTaskInput(question="Total sales?"), AskingPayload())
        tracked = await asking_service.get_asking_task(task.id)
        assert tracked.status == AskResultStatus.UNDERSTANDING

        thread = await asking_service.create_thread(
            AskingDetailTaskInput(
                question="Total sales?",
                tracked_asking_result=TrackedTaskRef(task_id=tracked.task_id, query_id=task.id),
            )
        )
        fake_ai.queue("get_ask_result", finished_ask("SELECT sum(amount) FROM orders"))
        await trackers["asking_task"].run_cycle()

        [response] = await asking_service.get_responses_with_thread(thread.id)
        assert response.sql == "SELECT sum(amount) FROM orders"
        assert response.asking_task_id == tracked.task_id
        assert not trackers["asking_task"].get_tasks()

        result = await asking_service.get_asking_task_by_id(tracked.task_id)
        assert result.status == AskResultStatus.FINISHED
        assert result.thread_response_id == response.id

    @pytest.mark.asyncio
    async def test_binding_after_finish_writes_sql(self, asking_service, fake_ai, trackers, deployed):
        task = await asking_service.create_asking_task(AskingTaskInput(question="q"), AskingPayload())
        fake_ai.queue("get_ask_result", finished_ask("SELECT 1"))
        await trackers["asking_task"].run_cycle()
        tracked = await asking_service.get_asking_task(task.id)

        thread = await asking_service.create_thread(
            AskingDetailTaskInput(
                question="q",
                tracked_asking_result=TrackedTaskRef(task_id=tracked.task_id, query_id=task.id),
            )
        )

        [response] = await asking_service.get_responses_with_thread(thread.id)
        assert response.sql == "SELECT 1"

    @pytest.mark.asyncio
    async def test_binding_while_polled_still_finalizes(
        self, asking_service, fake_ai, trackers, container, deployed, monkeypatch
    ):
        task = await asking_service.create_asking_task(AskingTaskInput(question="q"), AskingPayload())
        tracked = await asking_service.get_asking_task(task.id)
        fake_ai.queue("get_ask_result", finished_ask("SELECT 1"))
        gate, entered = hold(fake_ai, "get_ask_result", monkeypatch)
        tracker = trackers["asking_task"]

        cycle = asyncio.create_task(tracker.run_cycle())
        await until(entered)
        thread = await asking_service.create_thread(
            AskingDetailTaskInput(
                question="q",
                tracked_asking_result=TrackedTaskRef(task_id=tracked.task_id, query_id=task.id),
            )
        )
        gate.set()
        await cycle

        assert not tracker.get_tasks()
        [response] = await asking_service.get_responses_with_thread(thread.id)
        assert response.sql == "SELECT 1"

        await tracker.run_cycle()
        assert len(container.telemetry.recent_events("home_ask_candidate")) == 1

    @pytest.mark.asyncio
    async def test_bind_unknown_task(self, asking_service):
        with pytest.raises(NotFoundException):
            await asking_service.create_thread(
                AskingDetailTaskInput(question="q", tracked_asking_result=TrackedTaskRef(task_id=5, query_id="x"))
            )

    @pytest.mark.asyncio
    async def test_cancel_sends_telemetry(self, asking_service, fake_ai, container, deployed):
        task = await asking_service.create_asking_task(AskingTaskInput(question="q"), AskingPayload())

        await asking_service.cancel_asking_task(task.id)

        assert fake_ai.calls["cancel_ask"] == [task.id]
        [event] = container.telemetry.recent_events("home_cancel_ask")
        assert event.success is True

    @pytest.mark.asyncio
    async def test_rerun_supersedes_previous_task(
        self, asking_service, fake_ai, trackers, asking_tasks, deployed
    ):
        task = await asking_service.create_asking_task(AskingTaskInput(question="q"), AskingPayload())
        first = await asking_service.get_asking_task(task.id)
        thread = await asking_service.create_thread(
            AskingDetailTaskInput(question="q", tracked_asking_result=TrackedTaskRef(task_id=first.task_id, query_id=task.id))
        )
        [response] = await asking_service.get_responses_with_thread(thread.id)

        rerun = await asking_service.rerun_asking_task(response.id, AskingPayload())

        second = await asking_service.get_asking_task(rerun.id)
        old = await asking_tasks.find_one_by({"id": first.task_id})
        new = await asking_tasks.find_one_by({"id": second.task_id})
        assert old.detail["status"] == "STOPPED"
        assert new.previous_task_id == first.task_id
        assert list(trackers["asking_task"].get_tasks()) == [second.task_id]
        updated = await asking_service.get_response(response.id)
        assert updated.asking_task_id == second.task_id

    @pytest.mark.asyncio
    async def test_stream_asking_task(self, asking_service, fake_ai):
        fake_ai.stream("stream_ask_result", [b"data: step one\n\n", b"data: step two\n\n"])

        events = [e async for e in asking_service.stream_asking_task("ask-1")]

        assert events == [{"data": "step one"}, {"data": "step two"}]


class TestBreakdown:
    @pytest.mark.asyncio
    async def test_breakdown_end_to_end(self, asking_service, fake_ai, trackers, store, thread, responses):
        store.insert("thread_responses", {"id": 42, "thread_id": thread.id, "question": "q", "sql": "SELECT 1"})

        started = await asking_service.generate_thread_response_breakdown(42, AskConfigurations())

        assert started.breakdown_detail.status == AskResultStatus.UNDERSTANDING
        assert trackers["breakdown"].is_exist(started)
        fake_ai.queue(
            "get_ask_detail_result",
            AskDetailResult(
                status=AskResultStatus.FINISHED,
                response=AskDetailResponse(steps=[DetailStep(summary="s", sql="SELECT 1", cte_name="a")]),
            ),
        )
        await trackers["breakdown"].run_cycle()

        stored = await responses.find_one_by({"id": 42})
        assert stored.breakdown_detail.status == AskResultStatus.FINISHED
        assert stored.breakdown_detail.query_id == started.breakdown_detail.query_id
        assert not trackers["breakdown"].is_exist(started)

    @pytest.mark.asyncio
    async def test_regenerating_drops_the_old_result(
        self, asking_service, fake_ai, trackers, thread, responses, monkeypatch
    ):
        response = await responses.create_one({"thread_id": thread.id, "question": "q", "sql": "SELECT 1"})
        await asking_service.generate_thread_response_breakdown(response.id, AskConfigurations())
        fake_ai.queue(
            "get_ask_detail_result",
            AskDetailResult(status=AskResultStatus.FINISHED, response=AskDetailResponse(description="old")),
        )
        gate, entered = hold(fake_ai, "get_ask_detail_result", monkeypatch)
        tracker = trackers["breakdown"]

        cycle = asyncio.create_task(tracker.run_cycle())
        await until(entered)
        second = await asking_service.generate_thread_response_breakdown(response.id, AskConfigurations())
        gate.set()
        await cycle

        stored = await responses.find_one_by({"id": response.id})
        assert stored.breakdown_detail.query_id == second.breakdown_detail.query_id
        assert stored.breakdown_detail.status == AskResultStatus.UNDERSTANDING
        assert stored.breakdown_detail.description is None
        assert tracker.get_tasks()[response.id].breakdown_detail.query_id == second.breakdown_detail.query_id

    @pytest.mark.asyncio
    async def test_requires_sql(self, asking_service, thread, responses):
        response = await responses.create_one({"thread_id": thread.id, "question": "q"})

        with pytest.raises(ValidationException):
            await asking_service.generate_thread_response_breakdown(response.id, AskConfigurations())

    @pytest.mark.asyncio
    async def test_missing_response(self, asking_service):
        with pytest.raises(NotFoundException):
            await asking_service.generate_thread_response_answer(999)


class TestCharts:
    @pytest.mark.asyncio
    async def test_chart_registered(self, asking_service, trackers, thread, responses):
        response = await responses.create_one({"thread_id": thread.id, "question": "q", "sql": "SELECT 1"})

        updated = await asking_service.generate_thread_response_chart(response.id, AskConfigurations())

        assert updated.chart_detail.status == ChartStatus.FETCHING
        assert trackers["chart"].is_exist(updated)
        assert not trackers["chart_adjustment"].is_exist(updated)


class TestAdjustments:
    @pytest.mark.asyncio
    async def test_apply_sql_creates_new_response(self, asking_service, store, thread, responses):
        store.insert("thread_responses", {"id": 7, "thread_id": thread.id, "question": "q", "sql": "SELECT 1"})

        adjusted = await asking_service.adjust_thread_response_with_sql(7, AdjustmentSqlInput(sql="SELECT 2"))

        assert adjusted.id != 7
        assert adjusted.sql == "SELECT 2"
        assert adjusted.adjustment.type == ThreadResponseAdjustmentType.APPLY_SQL
        assert adjusted.adjustment.payload.original_thread_response_id == 7
        original = await responses.find_one_by({"id": 7})
        assert original.sql == "SELECT 1"

    @pytest.mark.asyncio
    async def test_reasoning_adjustment(self, asking_service, fake_ai, trackers, thread, responses):
        original = await responses.create_one({"thread_id": thread.id, "question": "q", "sql": "SELECT gross"})

        adjusted = await asking_service.adjust_thread_response_answer(
            original.id,
            AdjustmentReasoningInput(tables=["orders"], sql_generation_reasoning="use net amount", project_id=1),
            AskConfigurations(),
        )

        assert adjusted.adjustment.type == ThreadResponseAdjustmentType.REASONING
        assert adjusted.adjustment.payload.retrieved_tables == ["orders"]
        feedback = fake_ai.calls["create_ask_feedback"][0]
        assert feedback.sql == "SELECT gross"

        fake_ai.queue(
            "get_ask_feedback_result",
            AskFeedbackResult(status=AskFeedbackStatus.FINISHED, response=[AskCandidate(sql="SELECT net")]),
        )
        await trackers["adjustment"].run_cycle()

        stored = await responses.find_one_by({"id": adjusted.id})
        assert stored.sql == "SELECT net"
        result = await asking_service.get_adjustment_task_by_id(adjusted.asking_task_id)
        assert result.status == AskFeedbackStatus.FINISHED
        assert result.thread_response_id == adjusted.id

    @pytest.mark.asyncio
    async def test_rerun_adjustment(self, asking_service, fake_ai, trackers, thread, responses, asking_tasks):
        original = await responses.create_one({"thread_id": thread.id, "question": "q", "sql": "SELECT 1"})
        adjusted = await asking_service.adjust_thread_response_answer(
            original.id,
            AdjustmentReasoningInput(tables=["t"], sql_generation_reasoning="r", project_id=1),
            AskConfigurations(),
        )

        rerun = await asking_service.rerun_adjust_thread_response_answer(adjusted.id, 1, AskConfigurations())

        new_task = await asking_tasks.find_by_query_id(rerun.query_id)
        assert new_task.previous_task_id == adjusted.asking_task_id
        assert list(trackers["adjustment"].get_tasks()) == [new_task.id]
        stored = await responses.find_one_by({"id": adjusted.id})
        assert stored.asking_task_id == new_task.id
        assert fake_ai.calls["create_ask_feedback"][1].sql == "SELECT 1"

    @pytest.mark.asyncio
    async def test_rerun_requires_reasoning_adjustment(self, asking_service, thread, responses):
        response = await responses.create_one({"thread_id": thread.id, "question": "q", "sql": "SELECT 1"})

        with pytest.raises(ValidationException):
            await asking_service.rerun_adjust_thread_response_answer(response.id, 1, AskConfigurations())

    @pytest.mark.asyncio
    async def test_cancel_adjustment(self, asking_service, fake_ai):
        await asking_service.cancel_adjust_thread_response_answer("fb-1")

        assert fake_ai.calls["cancel_ask_feedback"] == ["fb-1"]


class TestTextBasedAnswer:
    @pytest.mark.asyncio
    async def test_two_phase_answer_and_stream(
        self, asking_service, fake_ai, fake_query, trackers, thread, responses
    ):
        response = await responses.create_one({"thread_id": thread.id, "question": "q", "sql": "SELECT n"})

        started = await asking_service.generate_thread_response_answer(response.id)
        assert started.answer_detail.status == ThreadResponseAnswerStatus.NOT_STARTED

        tracker = trackers["text_based_answer"]
        await tracker.run_cycle()

        stored = await responses.find_one_by({"id": response.id})
        assert stored.answer_detail.status == ThreadResponseAnswerStatus.PREPROCESSING
        assert fake_query.calls[0]["sql"] == "SELECT n"
        assert fake_query.calls[0]["limit"] == 500
        submitted = fake_ai.calls["create_text_based_answer"][0]
        assert submitted.sql_data["data"] == [[1], [2]]

        fake_ai.queue(
            "get_text_based_answer_result",
            TextBasedAnswerResult(status=TextBasedAnswerStatus.PREPROCESSING),
            TextBasedAnswerResult(status=TextBasedAnswerStatus.SUCCEEDED, num_rows_used_in_llm=2),
        )
        await tracker.run_cycle()
        assert tracker.is_exist(stored)
        await tracker.run_cycle()
        assert not tracker.get_tasks()

        stored = await responses.find_one_by({"id": response.id})
        assert stored.answer_detail.status == ThreadResponseAnswerStatus.STREAMING
        assert stored.answer_detail.num_rows_used_in_llm == 2

        fake_ai.stream(
            "stream_text_based_answer",
            [b'data: {"message": "Sales "}\n\n', b'data: {"message": "grew."}\n\n'],
        )
        stream = await asking_service.stream_thread_response_answer(response.id)
        events = [e async for e in stream]

        assert [json.loads(e["data"])["message"] for e in events[:-1]] == ["Sales ", "grew."]
        assert events[-1]["event"] == "done"
        stored = await responses.find_one_by({"id": response.id})
        assert stored.answer_detail.status == ThreadResponseAnswerStatus.FINISHED
        assert stored.answer_detail.content == "Sales grew."

    @pytest.mark.asyncio
    async def test_preview_failure_fails_answer(self, asking_service, fake_query, trackers, thread, responses):
        response = await responses.create_one({"thread_id": thread.id, "question": "q", "sql": "SELECT broken"})
        fake_query.error = QueryExecutionException("Failed to preview data: syntax error")

        await asking_service.generate_thread_response_answer(response.id)
        await trackers["text_based_answer"].run_cycle()

        stored = await responses.find_one_by({"id": response.id})
        assert stored.answer_detail.status == ThreadResponseAnswerStatus.FAILED
        assert stored.answer_detail.error.code == "QUERY_EXECUTION_ERROR"
        assert not trackers["text_based_answer"].get_tasks()

    @pytest.mark.asyncio
    async def test_stream_requires_streaming_status(self, asking_service, thread, responses):
        response = await responses.create_one(
            {
                "thread_id": thread.id,
                "question": "q",
                "sql": "SELECT 1",
                "answer_detail": AnswerDetail(status=ThreadResponseAnswerStatus.PREPROCESSING, query_id="a-1"),
            }
        )

        with pytest.raises(ConflictException):
            await asking_service.stream_thread_response_answer(response.id)

    @pytest.mark.asyncio
    async def test_unchanged_status_not_written(self, asking_service, thread, responses):
        response = await responses.create_one(
            {
                "thread_id": thread.id,
                "question": "q",
                "answer_detail": AnswerDetail(status=ThreadResponseAnswerStatus.FINISHED, content="done"),
            }
        )

        same = await asking_service.change_thread_response_answer_detail_status(
            response.id, ThreadResponseAnswerStatus.FINISHED, "ignored"
        )

        assert same.answer_detail.content == "done"
        assert same.updated_at == response.updated_at


class TestPreview:
    @pytest.mark.asyncio
    async def test_preview_uses_deployed_manifest(self, asking_service, fake_query, container, thread, responses, deployed):
        response = await responses.create_one({"thread_id": thread.id, "question": "q", "sql": "SELECT 1"})

        data = await asking_service.preview_data(response.id, limit=10)

        assert data.data == [[1], [2]]
        assert fake_query.calls == [{"sql": "SELECT 1", "project_id": 1, "manifest": {"models": []}, "limit": 10}]
        [event] = container.telemetry.recent_events("home_preview_answer")
        assert event.success is True

    @pytest.mark.asyncio
    async def test_preview_failure_telemetry(self, asking_service, fake_query, container, thread, responses, deployed):
        response = await responses.create_one({"thread_id": thread.id, "question": "q", "sql": "SELECT broken"})
        fake_query.error = QueryExecutionException("Failed to preview data: syntax error")

        with pytest.raises(QueryExecutionException):
            await asking_service.preview_data(response.id)

        [event] = container.telemetry.recent_events("home_preview_answer")
        assert event.success is False
        assert event.service == "ENGINE"
        assert event.properties["sql"] == "SELECT broken"

    @pytest.mark.asyncio
    async def test_preview_breakdown_step(self, asking_service, fake_query, thread, responses, deployed):
        response = await responses.create_one(
            {
                "thread_id": thread.id,
                "question": "q",
                "breakdown_detail": BreakdownDetail(
                    query_id="b-1",
                    status=AskResultStatus.FINISHED,
                    steps=[
                        DetailStep(summary="base", sql="SELECT * FROM orders", cte_name="base"),
                        DetailStep(summary="count", sql="SELECT count(*) FROM base", cte_name="result"),
                    ],
                ),
            }
        )

        await asking_service.preview_breakdown_data(response.id, step_index=0)

        assert fake_query.calls[0]["sql"] == "-- base\nSELECT * FROM orders"

    @pytest.mark.asyncio
    async def test_preview_without_deployment(self, asking_service, thread, responses):
        response = await responses.create_one({"thread_id": thread.id, "question": "q", "sql": "SELECT 1"})

        with pytest.raises(ConflictException):
            await asking_service.preview_data(response.id)


class TestRecommendationQuestions:
    @pytest.mark.asyncio
    async def test_second_request_while_generating_is_noop(self, asking_service, fake_ai, thread, responses):
        for n in range(7):
            await responses.create_one({"thread_id": thread.id, "question": f"q{n}"})

        await asking_service.generate_thread_recommendation_questions(thread.id)
        await asking_service.generate_thread_recommendation_questions(thread.id)

        [submitted] = fake_ai.calls["generate_recommendation_questions"]
        assert submitted.previous_questions == ["q6", "q5", "q4", "q3", "q2"]
        result = await asking_service.get_thread_recommendation_questions(thread.id)
        assert result.status == RecommendQuestionResultStatus.GENERATING

    @pytest.mark.asyncio
    async def test_concurrent_requests_submit_once(self, asking_service, fake_ai, thread, monkeypatch):
        gate, entered = hold(fake_ai, "generate_recommendation_questions", monkeypatch)

        first = asyncio.create_task(asking_service.generate_thread_recommendation_questions(thread.id))
        await until(entered)
        await asking_service.generate_thread_recommendation_questions(thread.id)
        gate.set()
        await first

        assert len(entered) == 1
        assert len(fake_ai.calls["generate_recommendation_questions"]) == 1

    @pytest.mark.asyncio
    async def test_not_started(self, asking_service, thread):
        result = await asking_service.get_thread_recommendation_questions(thread.id)

        assert result.status == RecommendQuestionResultStatus.NOT_STARTED
        assert result.questions == []

    @pytest.mark.asyncio
    async def test_instant_questions_use_deployed_manifest(self, asking_service, fake_ai, deployed):
        task = await asking_service.create_instant_recommended_questions(
            InstantRecommendedQuestionsInput(previous_questions=["a"])
        )

        assert task.id.startswith("generate_recommendation_questions")
        submitted = fake_ai.calls["generate_recommendation_questions"][0]
        assert submitted.manifest == {"models": []}
        assert submitted.configuration.language == "English"


class TestInitialize:
    @pytest.mark.asyncio
    async def test_unfinished_work_is_tracked_again(
        self, asking_service, trackers, threads, thread, responses, asking_tasks
    ):
        breakdown = await responses.create_one(
            {
                "thread_id": thread.id,
                "question": "q",
                "breakdown_detail": BreakdownDetail(query_id="b", status=AskResultStatus.GENERATING),
                "chart_detail": ChartDetail(query_id="c", status=ChartStatus.FINISHED),
            }
        )
        chart_adjustment = await responses.create_one(
            {
                "thread_id": thread.id,
                "question": "q",
                "chart_detail": ChartDetail(query_id="c2", status=ChartStatus.GENERATING, adjustment=True),
            }
        )
        answer = await responses.create_one(
            {
                "thread_id": thread.id,
                "question": "q",
                "sql": "SELECT 1",
                "answer_detail": AnswerDetail(status=ThreadResponseAnswerStatus.FETCHING_DATA),
            }
        )
        generating = await threads.create_one(
            {"project_id": 1, "query_id": "r", "questions_status": RecommendationQuestionStatus.GENERATING}
        )
        ask = await asking_tasks.create_one({"query_id": "a", "kind": "ask", "detail": {"status": "PLANNING"}})
        await asking_tasks.create_one({"query_id": "done", "kind": "ask", "detail": {"status": "FINISHED"}})
        feedback = await asking_tasks.create_one(
            {"query_id": "f", "kind": "ask_feedback", "detail": {"status": "GENERATING"}}
        )

        await asking_service.initialize()

        assert list(trackers["breakdown"].get_tasks()) == [breakdown.id]
        assert list(trackers["chart"].get_tasks()) == []
        assert list(trackers["chart_adjustment"].get_tasks()) == [chart_adjustment.id]
        assert list(trackers["text_based_answer"].get_tasks()) == [answer.id]
        assert list(trackers["recommend_questions"].get_tasks()) == [generating.id]
        assert list(trackers["asking_task"].get_tasks()) == [ask.id]
        assert list(trackers["adjustment"].get_tasks()) == [feedback.id]

        reset = await responses.find_one_by({"id": answer.id})
        assert reset.answer_detail.status == ThreadResponseAnswerStatus.NOT_STARTED
