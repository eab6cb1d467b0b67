"""Sync log model"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Enum
from datetime import datetime
import enum
from syncbridge.models.base import Base


class SyncStatus(str, enum.Enum):
    """Outcome of one webhook delivery"""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SyncSource(str, enum.Enum):
    """Which tracker delivered the webhook"""
    LINEAR = "linear"
    GITHUB = "github"


class SyncLog(Base):
    """Audit trail of handled webhook deliveries"""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Null when the delivery matched no sync
    sync_id = Column(Integer, ForeignKey("syncs.id", ondelete="SET NULL"), nullable=True)

    # Delivery
    source = Column(Enum(SyncSource), nullable=False)
    event = Column(String, nullable=True)  # e.g. "issues.labeled", "Issue.update"
    status = Column(Enum(SyncStatus), nullable=False)
    message = Column(Text, nullable=True)

    # Item information
    linear_issue_id = Column(String, nullable=True)
    github_issue_number = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<SyncLog(source={self.source}, status={self.status})>"
