"""GitHub repository model"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Integer, String

from syncbridge.models.base import Base


class GitHubRepo(Base):
    """A GitHub repository that delivers webhooks to this service"""

    __tablename__ = "github_repos"

    id = Column(Integer, primary_key=True, index=True)
    repo_id = Column(BigInteger, nullable=False, unique=True, index=True)
    repo_name = Column(String, nullable=False)  # owner/name
    webhook_secret = Column(String, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<GitHubRepo(name={self.repo_name}, repo_id={self.repo_id})>"
