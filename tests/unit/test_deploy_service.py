"""Unit-тесты оркестратора деплоев."""

import pytest

from domain.exceptions import AutoDeployConflict, EnvironmentLocked, ExternalUnavailable, Unauthorized
from shared.models.deployment import Deployment
from shared.services.watchdog_scheduler import WatchdogKind
from tests.utils.test_helpers import create_environment


class TestCreateDeployment:
    """Ручной деплой: авторизация, CD, блокировки, отправка."""

    @pytest.mark.asyncio
    async def test_unlocked_environment(self, deploy_service, github, scheduler, staging, alice):
        """staging без блокировки и CD: один деплой с указанным ref."""
        github.last = Deployment(id=7, repository="acme/api", environment="staging", ref="v1")

        result = await deploy_service.create_deployment(alice, staging, ref="main")

        assert result.ok
        assert result.value.deployment.ref == "main"
        assert result.value.last_deployment.id == 7
        assert len(github.created) == 1
        assert github.created[0].repository == "acme/api"
        assert github.created[0].force is False

        watchdogs = scheduler.of_kind(WatchdogKind.GITHUB_DEPLOYMENT)
        assert len(watchdogs) == 1
        assert watchdogs[0]["args"] == (alice.id, "acme/api", result.value.deployment.id, 0, "staging", "main")

    @pytest.mark.asyncio
    async def test_default_ref(self, deploy_service, github, staging, alice):
        result = await deploy_service.create_deployment(alice, staging)

        assert result.value.deployment.ref == "master"

    @pytest.mark.asyncio
    async def test_locked_by_another_user(self, deploy_service, github, production, alice, bob):
        """prod заблокирован B: EnvironmentLocked и ни одного вызова Deployments API."""
        await deploy_service.lock_environment(bob, production)

        result = await deploy_service.create_deployment(alice, production)

        assert isinstance(result.error, EnvironmentLocked)
        assert result.error.lock.user.github_login == "bob"
        assert github.github_calls == []

    @pytest.mark.asyncio
    async def test_own_lock_allows_deploy(self, deploy_service, github, staging, alice):
        await deploy_service.lock_environment(alice, staging)

        result = await deploy_service.create_deployment(alice, staging)

        assert result.ok
        assert len(github.created) == 1

    @pytest.mark.asyncio
    async def test_strong_lock_blocks_owner(self, deploy_service, github, staging, alice):
        """Строгая блокировка не даёт деплоить и самому владельцу."""
        await deploy_service.lock_environment(alice, staging, strong=True)

        result = await deploy_service.create_deployment(alice, staging)

        assert isinstance(result.error, EnvironmentLocked)
        assert github.created == []

    @pytest.mark.asyncio
    async def test_owner_of_regular_lock_can_deploy(self, deploy_service, github, staging, alice):
        """Обычная блокировка не мешает владельцу; строгость задаётся при блокировке."""
        await deploy_service.lock_environment(alice, staging)

        result = await deploy_service.create_deployment(alice, staging)

        assert result.ok
        assert len(github.created) == 1

    @pytest.mark.asyncio
    async def test_auto_deploy_conflict(self, deploy_service, db_session, github, alice):
        environment = await create_environment(db_session, name="qa", auto_deploy_ref="refs/heads/master")

        result = await deploy_service.create_deployment(alice, environment)

        assert isinstance(result.error, AutoDeployConflict)
        assert github.github_calls == []

    @pytest.mark.asyncio
    async def test_skip_cd_check(self, deploy_service, db_session, github, alice):
        environment = await create_environment(db_session, name="qa", auto_deploy_ref="refs/heads/master")

        result = await deploy_service.create_deployment(alice, environment, ref="hotfix", skip_cd_check=True)

        assert result.ok
        assert github.created[0].ref == "hotfix"

    @pytest.mark.asyncio
    async def test_force_ignores_contexts(self, deploy_service, github, staging, alice):
        await deploy_service.create_deployment(alice, staging, force=True)

        assert github.created[0].force is True

    @pytest.mark.asyncio
    async def test_unauthorized(self, deploy_service, github, staging, alice):
        github.denied_users.add("alice")

        result = await deploy_service.create_deployment(alice, staging)

        assert isinstance(result.error, Unauthorized)
        assert github.github_calls == []

    @pytest.mark.asyncio
    async def test_github_unavailable(self, deploy_service, github, scheduler, staging, alice):
        github.fail_create = ExternalUnavailable("github", "timeout")

        result = await deploy_service.create_deployment(alice, staging)

        assert isinstance(result.error, ExternalUnavailable)
        assert scheduler.of_kind(WatchdogKind.GITHUB_DEPLOYMENT) == []

    @pytest.mark.asyncio
    async def test_unwrap_raises_business_error(self, deploy_service, github, staging, alice):
        github.denied_users.add("alice")

        result = await deploy_service.create_deployment(alice, staging)

        with pytest.raises(Unauthorized):
            result.unwrap()


class TestLocksThroughFacade:
    """Блокировки через оркестратор требуют доступа к репозиторию."""

    @pytest.mark.asyncio
    async def test_lock_requires_access(self, deploy_service, github, staging, alice):
        github.allowed = False

        result = await deploy_service.lock_environment(alice, staging)

        assert isinstance(result.error, Unauthorized)
        assert await deploy_service.locks.active(staging) is None

    @pytest.mark.asyncio
    async def test_unlock_and_unlock_all(self, deploy_service, staging, production, alice):
        await deploy_service.lock_environment(alice, staging)
        await deploy_service.lock_environment(alice, production)

        unlocked = await deploy_service.unlock_environment(alice, staging)
        assert unlocked.ok
        assert unlocked.value.released_at is not None

        released = await deploy_service.unlock_all(alice)
        assert released.value == 1
        assert await deploy_service.locks.active(production) is None


class TestPushTracking:
    """Push в ветку создаёт автодеплои окружений с CD на этот ref."""

    @pytest.mark.asyncio
    async def test_track_push(self, deploy_service, db_session, github, alice):
        continuous = await create_environment(db_session, name="qa", auto_deploy_ref="refs/heads/master")
        await create_environment(db_session, name="manual")

        repository = continuous.repository
        auto_deployments = await deploy_service.track_push(repository, "refs/heads/master", "deadbeef", alice)

        assert len(auto_deployments) == 1
        # Обязательных контекстов нет: деплой сразу
        assert [request.environment for request in github.created] == ["qa"]

    @pytest.mark.asyncio
    async def test_track_push_short_ref(self, deploy_service, db_session, github, alice):
        continuous = await create_environment(db_session, name="qa", auto_deploy_ref="master")

        auto_deployments = await deploy_service.track_push(continuous.repository, "refs/heads/master",
                                                           "deadbeef", alice)

        assert len(auto_deployments) == 1

    @pytest.mark.asyncio
    async def test_other_branch_ignored(self, deploy_service, db_session, github, alice):
        continuous = await create_environment(db_session, name="qa", auto_deploy_ref="refs/heads/master")

        auto_deployments = await deploy_service.track_push(continuous.repository, "refs/heads/feature",
                                                           "deadbeef", alice)

        assert auto_deployments == []
        assert github.created == []


class TestMessageActions:

    @pytest.mark.asyncio
    async def test_create_and_find(self, deploy_service):
        class DeployAction:
            pass

        action = await deploy_service.create_message_action(DeployAction, environment="staging", force=True)
        found = await deploy_service.find_message_action(action.callback_id)

        assert len(action.callback_id) == 36
        assert found.action == "DeployAction"
        assert found.params == {"environment": "staging", "force": True}

    @pytest.mark.asyncio
    async def test_unknown_callback(self, deploy_service):
        assert await deploy_service.find_message_action("missing") is None
