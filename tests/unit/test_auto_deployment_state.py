"""Unit-тесты машины состояний автодеплоя (без БД)."""

import pytest

from domain.entities.auto_deployment import (
    AutoDeployment,
    AutoDeploymentState,
    compute_state,
    missing_contexts,
)
from domain.entities.commit_status import CommitStatus
from domain.exceptions import InvariantViolation


def _status(context, state, sha="abc123"):
    return CommitStatus(sha=sha, context=context, state=state)


class TestComputeState:
    """Вычисление состояния по статусам коммита."""

    def test_no_required_contexts_is_ready(self):
        assert compute_state([], []) is AutoDeploymentState.READY

    def test_partial_success_is_pending(self):
        statuses = [_status("ci", "success")]
        assert compute_state(statuses, ["ci", "security"]) is AutoDeploymentState.PENDING

    def test_all_success_is_ready(self):
        statuses = [_status("ci", "success"), _status("security", "success")]
        assert compute_state(statuses, ["ci", "security"]) is AutoDeploymentState.READY

    @pytest.mark.parametrize("failing_state", ["failure", "error"])
    def test_failing_required_context_is_failed(self, failing_state):
        statuses = [_status("ci", "success"), _status("security", failing_state)]
        assert compute_state(statuses, ["ci", "security"]) is AutoDeploymentState.FAILED

    def test_latest_status_per_context_wins(self):
        """Перезапущенный CI: последний статус перекрывает упавший."""
        statuses = [
            _status("ci", "failure"),
            _status("security", "success"),
            _status("ci", "success"),
        ]
        assert compute_state(statuses, ["ci", "security"]) is AutoDeploymentState.READY

    def test_optional_context_failure_is_ignored(self):
        statuses = [_status("ci", "success"), _status("lint", "failure")]
        assert compute_state(statuses, ["ci"]) is AutoDeploymentState.READY

    def test_missing_contexts(self):
        statuses = [_status("ci", "success"), _status("security", "pending")]
        assert missing_contexts(statuses, ["ci", "security", "e2e"]) == ["security", "e2e"]


class TestAutoDeploymentTransitions:
    """Монотонные переходы состояний."""

    def _auto_deployment(self, state):
        return AutoDeployment(id=1, sha="abc123", state=state.value)

    def test_pending_to_ready(self):
        auto_deployment = self._auto_deployment(AutoDeploymentState.PENDING)

        assert auto_deployment.transition_to(AutoDeploymentState.READY) is True
        assert auto_deployment.ready
        assert auto_deployment.done_at is None

    def test_same_state_is_noop(self):
        auto_deployment = self._auto_deployment(AutoDeploymentState.PENDING)
        assert auto_deployment.transition_to(AutoDeploymentState.PENDING) is False

    def test_done_sets_done_at(self):
        auto_deployment = self._auto_deployment(AutoDeploymentState.FAILED)

        auto_deployment.done()

        assert auto_deployment.state_enum is AutoDeploymentState.DONE
        assert auto_deployment.done_at is not None
        assert not auto_deployment.active

    def test_pending_cannot_be_finalized(self):
        auto_deployment = self._auto_deployment(AutoDeploymentState.PENDING)
        with pytest.raises(InvariantViolation):
            auto_deployment.done()

    @pytest.mark.parametrize("target", [AutoDeploymentState.PENDING, AutoDeploymentState.READY])
    def test_nothing_leaves_done(self, target):
        auto_deployment = self._auto_deployment(AutoDeploymentState.DONE)
        with pytest.raises(InvariantViolation):
            auto_deployment.transition_to(target)

    def test_ready_cannot_become_failed(self):
        auto_deployment = self._auto_deployment(AutoDeploymentState.READY)
        with pytest.raises(InvariantViolation):
            auto_deployment.transition_to(AutoDeploymentState.FAILED)

    def test_unknown_state_crashes(self):
        auto_deployment = AutoDeployment(id=1, sha="abc123", state="paused")
        with pytest.raises(InvariantViolation):
            auto_deployment.state_enum


class TestAutoDeploymentValidation:
    """Валидация запроса на автодеплой."""

    def test_malformed_sha(self):
        auto_deployment = AutoDeployment(sha="not-a-sha", user_id=1, environment_id=1)

        errors = auto_deployment.validate()

        assert errors
        assert not auto_deployment.is_valid

    def test_missing_user(self):
        auto_deployment = AutoDeployment(sha="abc123", environment_id=1)

        assert "user is required" in auto_deployment.validate()

    def test_valid(self):
        auto_deployment = AutoDeployment(sha="abc123", user_id=1, environment_id=1)

        assert auto_deployment.validate() == []
        assert auto_deployment.is_valid
