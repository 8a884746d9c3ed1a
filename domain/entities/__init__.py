"""
Модуль доменных сущностей DeployBot
"""

# Импортируем модели в правильном порядке
from .base import Base
from .user import User
from .repository import Repository
from .environment import Environment
from .lock import Lock
from .commit_status import CommitStatus, CommitStatusState
from .auto_deployment import AutoDeployment, AutoDeploymentState
from .message_action import MessageAction

__all__ = [
    "Base",
    "User",
    "Repository",
    "Environment",
    "Lock",
    "CommitStatus",
    "CommitStatusState",
    "AutoDeployment",
    "AutoDeploymentState",
    "MessageAction",
]
