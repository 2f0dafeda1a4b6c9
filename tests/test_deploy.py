"""Tests for manifest loading and semantics deployment."""

import json

import pytest

from genbi.adaptors.schemas import DeployResult, DeployStatus
from genbi.config import ProjectSettings
from genbi.core.project import ProjectService
from genbi.exceptions import ValidationException
from genbi.modules.deploy.service import manifest_hash


class TestProjectService:
    @pytest.mark.asyncio
    async def test_current_project_language(self):
        project = await ProjectService(ProjectSettings(id=3, language="es")).get_current_project()

        assert project.id == 3
        assert project.ai_language == "Spanish"

    @pytest.mark.asyncio
    async def test_unknown_language_falls_back_to_english(self):
        project = await ProjectService(ProjectSettings(language="xx")).get_current_project()

        assert project.ai_language == "English"

    def test_manifest_from_file(self, tmp_path):
        path = tmp_path / "mdl.json"
        path.write_text(json.dumps({"models": [{"name": "orders"}]}))

        manifest = ProjectService(ProjectSettings(manifest_path=str(path))).load_manifest()

        assert manifest["models"][0]["name"] == "orders"

    def test_no_manifest_path(self):
        assert ProjectService(ProjectSettings()).load_manifest() == {}

    def test_unreadable_manifest(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(ValidationException):
            ProjectService(ProjectSettings(manifest_path=str(path))).load_manifest()


class TestManifestHash:
    def test_key_order_does_not_matter(self):
        assert manifest_hash({"a": 1, "b": [1, 2]}) == manifest_hash({"b": [1, 2], "a": 1})

    def test_sha1_hex(self):
        value = manifest_hash({})
        assert len(value) == 40
        assert value == "bf21a9e8fbc5a3846fb05b4fa0859e0917b2202f"


class TestDeployService:
    @pytest.mark.asyncio
    async def test_unchanged_manifest_deployed_once(self, container, fake_ai):
        service = container.deploy_service

        first = await service.deploy()
        second = await service.deploy()

        assert first.status == DeployStatus.SUCCESS
        assert second.hash == first.hash
        assert fake_ai.calls["deploy"] == [first.hash]
        last = await service.get_last_deployment(1)
        assert last.hash == first.hash

    @pytest.mark.asyncio
    async def test_force_redeploys(self, container, fake_ai):
        await container.deploy_service.deploy()
        await container.deploy_service.deploy(force=True)

        assert len(fake_ai.calls["deploy"]) == 2

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_reported(self, container, fake_ai):
        fake_ai.deploy_result = DeployResult(status=DeployStatus.FAILED, error="timeout")

        result = await container.deploy_service.deploy()

        assert result.status == DeployStatus.FAILED
        assert result.error == "timeout"
        assert await container.deploy_service.get_last_deployment(1) is None
        [event] = container.telemetry.recent_events("deploy_semantics")
        assert event.success is False
        assert event.service == "AI"

    @pytest.mark.asyncio
    async def test_delete_all_by_project_id(self, container, fake_ai, deployed):
        removed = await container.deploy_service.delete_all_by_project_id(1)

        assert removed == 1
        assert fake_ai.calls["delete_semantics"] == [1]
