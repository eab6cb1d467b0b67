"""Linear team model"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from syncbridge.models.base import Base


class LinearTeam(Base):
    """A Linear team and the special label/state ids the sync relies on"""

    __tablename__ = "linear_teams"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(String, nullable=False, unique=True, index=True)
    team_name = Column(String, nullable=False)
    team_key = Column(String, nullable=False)  # e.g. "ENG" in ENG-123

    # Presence of this label on a ticket is what links it to GitHub
    public_label_id = Column(String, nullable=False)

    # Workflow states used for close/reopen mapping
    todo_state_id = Column(String, nullable=False)
    done_state_id = Column(String, nullable=False)
    canceled_state_id = Column(String, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<LinearTeam(key={self.team_key}, team_id={self.team_id})>"
