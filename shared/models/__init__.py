"""Shared models package."""

from .deployment import (
    Deployment,
    DeploymentRequest,
    DeploymentResponse,
    DeploymentState,
    LockResponse,
    ServiceResult,
)

__all__ = [
    'Deployment',
    'DeploymentRequest',
    'DeploymentResponse',
    'DeploymentState',
    'LockResponse',
    'ServiceResult',
]
