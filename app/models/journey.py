"""
Seller Journey Models

Milestones a seller works through on the way to a mature account
(first sales, reputation protection, fulfillment).
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey

from app.models.base import Base
from app.utils.helpers import utcnow


MILESTONE_NOT_STARTED = "not_started"
MILESTONE_IN_PROGRESS = "in_progress"
MILESTONE_COMPLETED = "completed"
MILESTONE_BLOCKED = "blocked"


class Milestone(Base):
    """
    A single milestone for one seller account.

    Status only moves forward (not_started -> in_progress -> completed);
    blocked can be set from any state short of completed.
    """
    __tablename__ = "milestones"

    id = Column(Integer, primary_key=True, index=True)
    ml_account_id = Column(Integer, ForeignKey("mercado_livre_accounts.id"), index=True, nullable=False)

    phase = Column(String, nullable=True)  # e.g. "Fase 1 - Primeiras vendas"
    title = Column(String, nullable=False)
    status = Column(String, default=MILESTONE_NOT_STARTED, index=True)
    progress = Column(Integer, default=0)  # 0-100
    notes = Column(Text, nullable=True)

    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
