"""Unit-тесты watchdog'ов."""

import pytest
import pytest_asyncio

from core.config.settings import settings
from domain.entities.auto_deployment import AutoDeploymentState
from domain.entities.commit_status import CommitStatus
from domain.exceptions import ExternalUnavailable, InvalidRequest
from shared.models.deployment import DeploymentState
from shared.services.watchdog_scheduler import WatchdogKind, backoff_delay
from shared.services.watchdog_service import WatchdogService
from shared.templates.notifications.base_templates import DeployMessageType
from tests.utils.test_helpers import create_environment


@pytest.fixture
def watchdogs(deploy_service):
    return WatchdogService(deploy_service)


class TestLockNag:

    @pytest.mark.asyncio
    async def test_nags_owner_of_active_lock(self, watchdogs, deploy_service, sender, staging, alice):
        lock = (await deploy_service.lock_environment(alice, staging)).value.lock

        assert await watchdogs.check_lock(lock.id) is True

        nags = sender.of_type(DeployMessageType.LOCK_NAG)
        assert len(nags) == 1
        assert nags[0]["account"] == 1001
        assert nags[0]["variables"]["environment"] == "staging"

    @pytest.mark.asyncio
    async def test_released_lock_is_ignored(self, watchdogs, deploy_service, sender, staging, alice):
        lock = (await deploy_service.lock_environment(alice, staging)).value.lock
        await deploy_service.unlock_environment(alice, staging)

        assert await watchdogs.check_lock(lock.id) is False
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_missing_lock(self, watchdogs):
        assert await watchdogs.check_lock(404) is False


class TestAutoDeploymentWatchdog:

    @pytest_asyncio.fixture
    async def pending(self, deploy_service, db_session, alice):
        environment = await create_environment(
            db_session, name="qa", auto_deploy_ref="refs/heads/master", required_contexts=["ci", "security"],
        )
        return await deploy_service.create_auto_deployment(environment, "abc123", alice)

    @pytest.mark.asyncio
    async def test_still_pending_reports_missing_contexts(self, watchdogs, deploy_service, sender, pending):
        await deploy_service.track_context_state_change(CommitStatus(sha="abc123", context="ci", state="success"))

        state = await watchdogs.check_auto_deployment(pending.id)

        assert state is AutoDeploymentState.PENDING
        stuck = sender.of_type(DeployMessageType.AUTO_DEPLOYMENT_STUCK)
        assert len(stuck) == 1
        assert stuck[0]["variables"]["missing_contexts"] == "security"

    @pytest.mark.asyncio
    async def test_done_is_idempotent_exit(self, watchdogs, deploy_service, github, sender, pending):
        for context in ("ci", "security"):
            await deploy_service.track_context_state_change(CommitStatus(sha="abc123", context=context, state="success"))
        sent_before = len(sender.sent)

        assert await watchdogs.check_auto_deployment(pending.id) is None
        assert len(github.created) == 1
        assert len(sender.sent) == sent_before

    @pytest.mark.asyncio
    async def test_converged_statuses_are_deployed_once(self, watchdogs, db_session, github, scheduler, pending):
        """Статусы сошлись, но событие не продвинуло автодеплой: watchdog деплоит сам."""
        db_session.add_all([
            CommitStatus(sha="abc123", context="ci", state="success"),
            CommitStatus(sha="abc123", context="security", state="success"),
        ])
        await db_session.commit()

        state = await watchdogs.check_auto_deployment(pending.id)

        assert state is AutoDeploymentState.READY
        assert len(github.created) == 1
        assert github.created[0].ref == "abc123"
        assert github.created[0].force is True
        assert pending.state == AutoDeploymentState.DONE.value
        assert len(scheduler.of_kind(WatchdogKind.GITHUB_DEPLOYMENT)) == 1

        assert await watchdogs.check_auto_deployment(pending.id) is None
        assert len(github.created) == 1

    @pytest.mark.asyncio
    async def test_failed_context_is_finalized_by_watchdog(self, watchdogs, db_session, github, sender, pending):
        db_session.add_all([
            CommitStatus(sha="abc123", context="ci", state="success"),
            CommitStatus(sha="abc123", context="security", state="failure"),
        ])
        await db_session.commit()

        state = await watchdogs.check_auto_deployment(pending.id)

        assert state is AutoDeploymentState.FAILED
        assert github.created == []
        assert pending.state == AutoDeploymentState.DONE.value
        failed = sender.of_type(DeployMessageType.AUTO_DEPLOYMENT_FAILED)
        assert len(failed) == 1
        assert failed[0]["variables"]["failed_contexts"] == "security"
        assert sender.of_type(DeployMessageType.AUTO_DEPLOYMENT_STUCK) == []

        assert await watchdogs.check_auto_deployment(pending.id) is None
        assert len(sender.of_type(DeployMessageType.AUTO_DEPLOYMENT_FAILED)) == 1


class TestGitHubDeploymentWatchdog:

    @pytest.mark.asyncio
    async def test_success_notifies_creator(self, watchdogs, github, sender, alice):
        github.statuses = [DeploymentState.SUCCESS]

        outcome = await watchdogs.check_github_deployment(alice.id, "acme/api", 42, 0, "staging", "main")

        assert outcome == "success"
        succeeded = sender.of_type(DeployMessageType.DEPLOYMENT_SUCCEEDED)
        assert len(succeeded) == 1
        assert succeeded[0]["variables"]["deployment_id"] == 42

    @pytest.mark.asyncio
    async def test_failure_notifies_creator(self, watchdogs, github, sender, alice):
        github.statuses = [DeploymentState.ERROR]

        outcome = await watchdogs.check_github_deployment(alice.id, "acme/api", 42)

        assert outcome == "error"
        failed = sender.of_type(DeployMessageType.DEPLOYMENT_FAILED)
        assert failed[0]["variables"]["state"] == "error"

    @pytest.mark.asyncio
    async def test_in_progress_reschedules(self, watchdogs, github, scheduler, sender, alice):
        github.statuses = [DeploymentState.IN_PROGRESS]

        outcome = await watchdogs.check_github_deployment(alice.id, "acme/api", 42, 3, "staging", "main")

        assert outcome == "rescheduled"
        assert sender.sent == []
        rescheduled = scheduler.of_kind(WatchdogKind.GITHUB_DEPLOYMENT)
        assert rescheduled[0]["args"] == (alice.id, "acme/api", 42, 4, "staging", "main")
        assert rescheduled[0]["delay"] == settings.deployment_watchdog_delay_seconds

    @pytest.mark.asyncio
    async def test_stuck_after_max_attempts(self, watchdogs, github, scheduler, sender, alice):
        github.statuses = [DeploymentState.QUEUED]
        last_attempt = settings.deployment_watchdog_max_attempts - 1

        outcome = await watchdogs.check_github_deployment(alice.id, "acme/api", 42, last_attempt)

        assert outcome == "stuck"
        assert len(sender.of_type(DeployMessageType.DEPLOYMENT_STUCK)) == 1
        assert scheduler.scheduled == []

    @pytest.mark.asyncio
    async def test_unreachable_github_backs_off(self, watchdogs, github, scheduler, sender, alice):
        """Недоступный GitHub - не исход: перепроверка с экспоненциальной задержкой."""
        github.statuses = [ExternalUnavailable("github", "timeout")]

        outcome = await watchdogs.check_github_deployment(alice.id, "acme/api", 42, 2)

        assert outcome == "rescheduled"
        assert sender.sent == []
        rescheduled = scheduler.of_kind(WatchdogKind.GITHUB_DEPLOYMENT)
        assert rescheduled[0]["args"][3] == 3
        assert rescheduled[0]["delay"] == backoff_delay(2)

    @pytest.mark.asyncio
    async def test_rejected_status_request_is_abandoned(self, watchdogs, github, scheduler, alice):
        github.statuses = [InvalidRequest("Not Found")]

        assert await watchdogs.check_github_deployment(alice.id, "acme/api", 42) == "skipped"
        assert scheduler.scheduled == []

    @pytest.mark.asyncio
    async def test_unknown_user(self, watchdogs, github):
        assert await watchdogs.check_github_deployment(999, "acme/api", 42) == "skipped"
        assert github.calls == []


class TestBackoff:

    def test_grows_and_caps(self):
        assert backoff_delay(0) == settings.deployment_watchdog_delay_seconds
        assert backoff_delay(1) == settings.deployment_watchdog_delay_seconds * settings.deployment_watchdog_backoff_factor
        assert backoff_delay(50) == settings.deployment_watchdog_max_delay_seconds
