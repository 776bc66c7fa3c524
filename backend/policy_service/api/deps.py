"""API dependencies"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from policy_service.database import get_db
from policy_service.services.events import EventPublisher
from policy_service.services.policy_service import PolicyService
from policy_service.services.store import PolicyStore


def get_event_publisher(request: Request) -> EventPublisher:
    """Publisher built by the application lifespan"""
    return request.app.state.events


def get_policy_service(
    db: Session = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher),
) -> PolicyService:
    """Lifecycle manager bound to this request's session"""
    return PolicyService(PolicyStore(db), events)
