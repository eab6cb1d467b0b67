"""User identity model"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, UniqueConstraint

from syncbridge.models.base import Base


class UserIdentity(Base):
    """The same person on Linear and on GitHub"""

    __tablename__ = "user_identities"
    __table_args__ = (
        UniqueConstraint("github_user_id", "linear_user_id", name="uq_user_identities_pair"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # GitHub user
    github_user_id = Column(BigInteger, nullable=False, index=True)
    github_username = Column(String, nullable=False, index=True)
    github_email = Column(String, nullable=True)

    # Linear user
    linear_user_id = Column(String, nullable=False, index=True)
    linear_username = Column(String, nullable=False, index=True)  # display name, used for @mentions
    linear_email = Column(String, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<UserIdentity({self.linear_username} <-> {self.github_username})>"
