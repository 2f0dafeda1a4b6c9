"""
GenBI Core - MDL Service.

The manifest (MDL) is an opaque JSON payload handed to the AI service and the
query engine. It is read from the configured file on each call so an edited
manifest is picked up on the next deploy.
"""

from typing import Any

from pydantic import BaseModel

from genbi.core.project import Project, ProjectService


class MakeMDLResult(BaseModel):
    project: Project
    manifest: dict[str, Any]


class MDLService:
    def __init__(self, project_service: ProjectService):
        self._project_service = project_service

    async def make_current_model_mdl(self) -> MakeMDLResult:
        project = await self._project_service.get_current_project()
        return MakeMDLResult(project=project, manifest=self._project_service.load_manifest())
