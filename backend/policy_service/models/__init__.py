"""Database models"""
from policy_service.models.policy import PolicyRecord

__all__ = ["PolicyRecord"]
