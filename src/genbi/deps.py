"""
GenBI - Dependency Injection.

The container wires every component once from the Settings handed to the
application factory. FastAPI dependencies read it from app.state.
"""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request

from genbi.adaptors.ai_service import AIServiceAdaptor
from genbi.backgrounds import (
    AdjustmentBackgroundTaskTracker,
    AskingTaskTracker,
    BackgroundTracker,
    BreakdownBackgroundTracker,
    ChartAdjustmentBackgroundTracker,
    ChartBackgroundTracker,
    TextBasedAnswerBackgroundTracker,
    ThreadRecommendQuestionBackgroundTracker,
)
from genbi.config import FeatureFlags, Settings
from genbi.core.mdl import MDLService
from genbi.core.project import ProjectService
from genbi.core.query_service import QueryService
from genbi.core.table_store import InMemoryTableStore, TableStore
from genbi.exceptions import FeatureDisabledException
from genbi.modules.asking.repository import (
    AskingTaskRepository,
    ThreadRepository,
    ThreadResponseRepository,
)
from genbi.modules.asking.service import AskingService
from genbi.modules.deploy.repository import DeployLogRepository
from genbi.modules.deploy.service import DeployService
from genbi.observability import Telemetry

logger = logging.getLogger(__name__)


# =============================================================================
# Container
# =============================================================================


@dataclass
class ServiceContainer:
    settings: Settings
    telemetry: Telemetry
    adaptor: AIServiceAdaptor
    query_service: QueryService
    project_service: ProjectService
    mdl_service: MDLService
    deploy_service: DeployService
    asking_service: AskingService
    trackers: dict[str, BackgroundTracker]

    def start_trackers(self) -> None:
        for tracker in self.trackers.values():
            tracker.start()

    async def stop_trackers(self) -> None:
        for tracker in self.trackers.values():
            await tracker.stop()

    async def aclose(self) -> None:
        await self.adaptor.aclose()
        await self.query_service.aclose()


def create_table_store(settings: Settings) -> TableStore:
    """Select the persistence backend."""
    if settings.storage.backend == "supabase":
        from genbi.core.supabase_client import SupabaseTableStore, create_supabase_client

        return SupabaseTableStore(create_supabase_client(settings.supabase))
    return InMemoryTableStore()


def build_container(
    settings: Settings,
    *,
    store: TableStore | None = None,
    adaptor: AIServiceAdaptor | None = None,
    query_service: QueryService | None = None,
) -> ServiceContainer:
    """Wire every component from settings. Collaborators can be passed in to replace the HTTP clients."""
    store = store or create_table_store(settings)
    telemetry = Telemetry(enabled=settings.features.telemetry)

    adaptor = adaptor or AIServiceAdaptor(settings.ai_service)
    query_service = query_service or QueryService(settings.engine)
    project_service = ProjectService(settings.project)
    mdl_service = MDLService(project_service)

    threads = ThreadRepository(store)
    thread_responses = ThreadResponseRepository(store)
    asking_tasks = AskingTaskRepository(store)

    deploy_service = DeployService(
        adaptor=adaptor,
        deploy_log_repository=DeployLogRepository(store),
        mdl_service=mdl_service,
        telemetry=telemetry,
    )

    tracker_args = {
        "telemetry": telemetry,
        "interval_seconds": settings.tracker.interval_seconds,
        "max_tasks": settings.tracker.max_tracked_tasks,
    }
    asking_task_tracker = AskingTaskTracker(
        adaptor=adaptor,
        asking_task_repository=asking_tasks,
        thread_response_repository=thread_responses,
        **tracker_args,
    )
    breakdown_tracker = BreakdownBackgroundTracker(
        adaptor=adaptor, thread_response_repository=thread_responses, **tracker_args
    )
    chart_tracker = ChartBackgroundTracker(
        adaptor=adaptor, thread_response_repository=thread_responses, **tracker_args
    )
    chart_adjustment_tracker = ChartAdjustmentBackgroundTracker(
        adaptor=adaptor, thread_response_repository=thread_responses, **tracker_args
    )
    text_based_answer_tracker = TextBasedAnswerBackgroundTracker(
        adaptor=adaptor,
        thread_response_repository=thread_responses,
        query_service=query_service,
        mdl_service=mdl_service,
        preview_limit=settings.engine.answer_preview_limit,
        **tracker_args,
    )
    recommend_question_tracker = ThreadRecommendQuestionBackgroundTracker(
        adaptor=adaptor, thread_repository=threads, **tracker_args
    )
    adjustment_tracker = AdjustmentBackgroundTaskTracker(
        adaptor=adaptor,
        asking_task_repository=asking_tasks,
        thread_response_repository=thread_responses,
        **tracker_args,
    )

    asking_service = AskingService(
        settings=settings.asking,
        recommendation_settings=settings.recommendation,
        adaptor=adaptor,
        thread_repository=threads,
        thread_response_repository=thread_responses,
        asking_task_repository=asking_tasks,
        asking_task_tracker=asking_task_tracker,
        breakdown_tracker=breakdown_tracker,
        chart_tracker=chart_tracker,
        chart_adjustment_tracker=chart_adjustment_tracker,
        text_based_answer_tracker=text_based_answer_tracker,
        recommend_question_tracker=recommend_question_tracker,
        adjustment_tracker=adjustment_tracker,
        project_service=project_service,
        mdl_service=mdl_service,
        deploy_service=deploy_service,
        query_service=query_service,
        telemetry=telemetry,
    )

    return ServiceContainer(
        settings=settings,
        telemetry=telemetry,
        adaptor=adaptor,
        query_service=query_service,
        project_service=project_service,
        mdl_service=mdl_service,
        deploy_service=deploy_service,
        asking_service=asking_service,
        trackers={
            "asking_task": asking_task_tracker,
            "breakdown": breakdown_tracker,
            "chart": chart_tracker,
            "chart_adjustment": chart_adjustment_tracker,
            "text_based_answer": text_based_answer_tracker,
            "recommend_questions": recommend_question_tracker,
            "adjustment": adjustment_tracker,
        },
    )


# =============================================================================
# Request Dependencies
# =============================================================================


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_features(container: Annotated[ServiceContainer, Depends(get_container)]) -> FeatureFlags:
    """Get feature flags from the application settings."""
    return container.settings.features


def get_asking_service(container: Annotated[ServiceContainer, Depends(get_container)]) -> AskingService:
    return container.asking_service


def get_deploy_service(container: Annotated[ServiceContainer, Depends(get_container)]) -> DeployService:
    return container.deploy_service


def get_project_service(container: Annotated[ServiceContainer, Depends(get_container)]) -> ProjectService:
    return container.project_service


# =============================================================================
# Feature Flag Guards
# =============================================================================


def require_feature(feature_name: str):
    """Create a dependency that requires a specific feature to be enabled."""

    def check_feature(features: Annotated[FeatureFlags, Depends(get_features)]) -> bool:
        if not getattr(features, feature_name, False):
            raise FeatureDisabledException(feature_name)
        return True

    return check_feature


require_asking = Depends(require_feature("asking"))
require_deploy = Depends(require_feature("deploy"))
require_telemetry = Depends(require_feature("telemetry"))
