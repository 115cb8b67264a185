import enum

from sqlalchemy import Column, String, Enum, Index
from agrimarket.models.base import BaseModel


class LedgerStatus(str, enum.Enum):
    PENDING = "PENDING"
    ANCHORED = "ANCHORED"


class LedgerReference(BaseModel):
    """Bookkeeping row pointing a marketplace record at its ledger transaction."""

    __tablename__ = "ledger_references"
    __table_args__ = (Index("ix_ledger_references_entity", "entity_type", "entity_id"),)

    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False)
    event = Column(String(50), nullable=False)
    status = Column(Enum(LedgerStatus, name="ledger_status"), nullable=False, default=LedgerStatus.PENDING)
    transaction_id = Column(String(100))
