"""Database models"""

from syncbridge.models.base import Base
from syncbridge.models.github_repo import GitHubRepo
from syncbridge.models.linear_team import LinearTeam
from syncbridge.models.sync import Sync
from syncbridge.models.sync_log import SyncLog
from syncbridge.models.synced_issue import SyncedIssue
from syncbridge.models.synced_milestone import MilestoneKind, SyncedMilestone
from syncbridge.models.user_identity import UserIdentity

__all__ = [
    "Base",
    "LinearTeam",
    "GitHubRepo",
    "Sync",
    "SyncedIssue",
    "SyncedMilestone",
    "MilestoneKind",
    "UserIdentity",
    "SyncLog",
]
