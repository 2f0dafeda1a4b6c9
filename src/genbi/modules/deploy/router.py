"""
GenBI Deploy - Router.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from genbi.core.project import ProjectService
from genbi.deps import get_deploy_service, get_project_service, require_deploy
from genbi.exceptions import NotFoundException
from genbi.modules.deploy.schemas import Deployment, DeployRequest, DeployResponse
from genbi.modules.deploy.service import DeployService

router = APIRouter(
    prefix="/deploy",
    tags=["deploy"],
    dependencies=[require_deploy],
)


@router.post("", response_model=DeployResponse)
async def deploy(
    body: DeployRequest,
    service: Annotated[DeployService, Depends(get_deploy_service)],
):
    """Deploy the current manifest to the AI service. Waits for indexing."""
    return await service.deploy(force=body.force)


@router.get("/last", response_model=Deployment)
async def get_last_deployment(
    service: Annotated[DeployService, Depends(get_deploy_service)],
    projects: Annotated[ProjectService, Depends(get_project_service)],
):
    project = await projects.get_current_project()
    deployment = await service.get_last_deployment(project.id)
    if deployment is None:
        raise NotFoundException("Deployment", project.id)
    return deployment
