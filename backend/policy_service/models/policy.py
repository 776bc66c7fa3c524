"""Policy model"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, JSON, String

from policy_service.database import Base


class PolicyRecord(Base):
    """One row per policy document; soft-deleted rows keep status DELETED"""

    __tablename__ = "policies"

    id = Column(Integer, primary_key=True, index=True)
    policy_id = Column(String(255), unique=True, nullable=False, index=True)
    version = Column(String(100), nullable=False)
    tenant_id = Column(String(255), nullable=False, index=True)
    location = Column(String(255), nullable=False)
    rules = Column(JSON, default=dict, nullable=False)        # storage key -> {id, action, resource, conditions}
    assignments = Column(JSON, default=dict, nullable=False)  # {groups: {name: [rule ids]}, users: {...}}
    status = Column(String(20), default="ACTIVE", nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
