"""Synced milestone model"""
import enum

from sqlalchemy import BigInteger, Column, DateTime, Enum, Integer, String, UniqueConstraint

from syncbridge.models.base import Base
from syncbridge.models.synced_issue import utcnow


class MilestoneKind(str, enum.Enum):
    """Which Linear grouping a GitHub milestone stands for"""
    CYCLE = "cycle"
    PROJECT = "project"


class SyncedMilestone(Base):
    """Correspondence between a GitHub milestone and a Linear cycle or project"""

    __tablename__ = "synced_milestones"
    __table_args__ = (
        UniqueConstraint("github_milestone_number", "github_repo_id", name="uq_synced_milestones_github"),
        UniqueConstraint("linear_resource_id", "linear_team_id", name="uq_synced_milestones_linear"),
    )

    id = Column(Integer, primary_key=True, index=True)

    github_milestone_number = Column(Integer, nullable=False)
    github_repo_id = Column(BigInteger, nullable=False, index=True)

    linear_resource_id = Column(String, nullable=False)
    linear_resource_kind = Column(Enum(MilestoneKind), nullable=False, default=MilestoneKind.CYCLE)
    linear_team_id = Column(String, nullable=False)

    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return (
            f"<SyncedMilestone(github=#{self.github_milestone_number}, "
            f"{self.linear_resource_kind.value}={self.linear_resource_id})>"
        )
