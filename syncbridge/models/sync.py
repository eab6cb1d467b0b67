"""Sync model"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from syncbridge.models.base import Base


class Sync(Base):
    """One authorized link between a Linear team and a GitHub repository"""

    __tablename__ = "syncs"
    __table_args__ = (
        UniqueConstraint(
            "linear_team_id",
            "github_repo_id",
            "linear_user_id",
            name="uq_syncs_team_repo_user",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Linear side
    linear_user_id = Column(String, nullable=False, index=True)
    linear_team_id = Column(String, ForeignKey("linear_teams.team_id"), nullable=False)
    linear_api_key = Column(Text, nullable=False)  # Fernet-encrypted

    # GitHub side
    github_user_id = Column(BigInteger, nullable=False, index=True)
    github_repo_id = Column(BigInteger, ForeignKey("github_repos.repo_id"), nullable=False)
    github_api_key = Column(Text, nullable=False)  # Fernet-encrypted

    # Identities this sync writes as, when they differ from the authorizing user.
    # Unset means "fall back to the global settings".
    linear_bot_user_id = Column(String, nullable=True)
    github_bot_login = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Eager loading: rows are used after their session has closed
    linear_team = relationship("LinearTeam", lazy="selectin")
    github_repo = relationship("GitHubRepo", lazy="selectin")

    def __repr__(self):
        return f"<Sync(team={self.linear_team_id}, repo={self.github_repo_id}, user={self.linear_user_id})>"
