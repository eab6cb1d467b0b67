"""Synced issue model"""
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, UniqueConstraint

from syncbridge.models.base import Base


def utcnow() -> datetime:
    """UTC 'now' as tz-naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SyncedIssue(Base):
    """Correspondence between one Linear ticket and one GitHub issue"""

    __tablename__ = "synced_issues"
    __table_args__ = (
        UniqueConstraint("linear_issue_id", "linear_team_id", name="uq_synced_issues_linear_issue"),
        UniqueConstraint("github_issue_number", "github_repo_id", name="uq_synced_issues_github_issue"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Linear ticket
    linear_issue_id = Column(String, nullable=False, index=True)
    linear_issue_number = Column(Integer, nullable=False)
    linear_team_id = Column(String, nullable=False)

    # GitHub issue
    github_issue_id = Column(BigInteger, nullable=False)
    github_issue_number = Column(Integer, nullable=False)
    github_repo_id = Column(BigInteger, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow)
    last_synced_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<SyncedIssue(linear={self.linear_issue_id}, github=#{self.github_issue_number})>"
