"""
GenBI Deploy - Repository.
"""

from genbi.adaptors.schemas import DeployStatus
from genbi.core.repository import BaseRepository
from genbi.modules.deploy.schemas import Deployment


class DeployLogRepository(BaseRepository[Deployment]):
    model = Deployment

    @property
    def table_name(self) -> str:
        return "deploy_logs"

    async def find_last_success(self, project_id: int) -> Deployment | None:
        rows = await self.find_all_by(
            {"project_id": project_id, "status": DeployStatus.SUCCESS},
            descending=True,
            limit=1,
        )
        return rows[0] if rows else None
