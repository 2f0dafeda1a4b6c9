"""
GenBI Asking - Repository.

Database operations for threads, thread responses and asking tasks.
"""

from genbi.core.repository import BaseRepository
from genbi.modules.asking.schemas import AskingTask, Thread, ThreadResponse


class ThreadRepository(BaseRepository[Thread]):
    """Repository for conversation threads."""

    model = Thread

    @property
    def table_name(self) -> str:
        return "threads"

    async def list_all_time_desc_order(self, project_id: int) -> list[Thread]:
        """List a project's threads, newest first."""
        return await self.find_all_by(
            {"project_id": project_id},
            order_by="created_at",
            descending=True,
        )


class ThreadResponseRepository(BaseRepository[ThreadResponse]):
    """Repository for thread responses."""

    model = ThreadResponse

    @property
    def table_name(self) -> str:
        return "thread_responses"

    async def get_responses_with_thread(
        self,
        thread_id: int,
        limit: int | None = None,
    ) -> list[ThreadResponse]:
        """Responses of a thread in creation order; with a limit, only the latest ones."""
        if limit is None:
            return await self.find_all_by({"thread_id": thread_id})
        latest = await self.find_all_by({"thread_id": thread_id}, descending=True, limit=limit)
        return list(reversed(latest))


class AskingTaskRepository(BaseRepository[AskingTask]):
    """Repository for asking and adjustment tasks."""

    model = AskingTask

    @property
    def table_name(self) -> str:
        return "asking_tasks"

    async def find_by_query_id(self, query_id: str) -> AskingTask | None:
        return await self.find_one_by({"query_id": query_id})
