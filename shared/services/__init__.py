"""Shared services package."""

from .deploy_service import DeployService
from .lock_service import LockService
from .auto_deployment_service import AutoDeploymentService
from .watchdog_service import WatchdogService
from .watchdog_scheduler import CeleryWatchdogScheduler, WatchdogKind, WatchdogScheduler

__all__ = [
    'DeployService',
    'LockService',
    'AutoDeploymentService',
    'WatchdogService',
    'CeleryWatchdogScheduler',
    'WatchdogKind',
    'WatchdogScheduler',
]
