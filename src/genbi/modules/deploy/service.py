"""
GenBI Deploy - Service.

Deploys the current manifest to the AI service and records every attempt.
A deployment is keyed by the SHA-1 of the canonical manifest JSON; an
unchanged manifest is not deployed twice unless forced.
"""

import hashlib
import json
import logging
from typing import Any

from genbi.adaptors.ai_service import AIServiceAdaptor
from genbi.adaptors.schemas import DeployStatus
from genbi.core.mdl import MDLService
from genbi.modules.deploy.repository import DeployLogRepository
from genbi.modules.deploy.schemas import Deployment, DeployResponse
from genbi.observability import ServiceTag, Telemetry, TelemetryEvent

logger = logging.getLogger(__name__)


def manifest_hash(manifest: dict[str, Any]) -> str:
    canonical = json.dumps(manifest, sort_keys=True, separators=(",", ":"))
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


class DeployService:
    def __init__(
        self,
        *,
        adaptor: AIServiceAdaptor,
        deploy_log_repository: DeployLogRepository,
        mdl_service: MDLService,
        telemetry: Telemetry,
    ):
        self._adaptor = adaptor
        self._deploy_logs = deploy_log_repository
        self._mdl_service = mdl_service
        self._telemetry = telemetry

    async def get_last_deployment(self, project_id: int) -> Deployment | None:
        """Latest successful deployment of the project."""
        return await self._deploy_logs.find_last_success(project_id)

    async def deploy(self, force: bool = False) -> DeployResponse:
        mdl = await self._mdl_service.make_current_model_mdl()
        project_id = mdl.project.id
        hash = manifest_hash(mdl.manifest)

        if not force:
            last = await self.get_last_deployment(project_id)
            if last is not None and last.hash == hash:
                logger.info(f"Manifest {hash} already deployed for project {project_id}, skipping")
                return DeployResponse(status=DeployStatus.SUCCESS, hash=hash)

        result = await self._adaptor.deploy(mdl.manifest, hash)
        await self._deploy_logs.create_one(
            {
                "project_id": project_id,
                "hash": hash,
                "manifest": mdl.manifest,
                "status": result.status,
                "error": result.error,
            }
        )

        success = result.status == DeployStatus.SUCCESS
        if success:
            self._telemetry.send_event(TelemetryEvent.DEPLOY_SEMANTICS, {"hash": hash})
        else:
            logger.error(f"Deployment of manifest {hash} failed: {result.error}")
            self._telemetry.send_event(
                TelemetryEvent.DEPLOY_SEMANTICS,
                {"hash": hash, "error": result.error},
                ServiceTag.AI,
                False,
            )
        return DeployResponse(status=result.status, hash=hash, error=result.error)

    async def delete_all_by_project_id(self, project_id: int) -> int:
        await self._adaptor.delete_semantics(project_id)
        return await self._deploy_logs.delete_all_by({"project_id": project_id})
