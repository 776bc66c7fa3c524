"""SQLAlchemy-backed policy store

The store is the only component that touches rows. It answers structural
filters, performs the single-row find-and-update the lifecycle manager relies
on, and translates database failures into :class:`ConflictError` /
:class:`StoreError`. Rows never leave this module; callers get
:class:`StoredPolicyDocument` snapshots.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session
from sqlalchemy.orm.attributes import flag_modified

from policy_service.core.errors import ConflictError, StoreError
from policy_service.models.policy import PolicyRecord
from policy_service.schemas.policy import PolicyDocument, StoredPolicyDocument

# Columns a patch may touch
UPDATABLE_FIELDS = ("policy_id", "version", "tenant_id", "location", "rules", "assignments", "status")
_JSON_FIELDS = ("rules", "assignments")


@dataclass
class PolicyFilter:
    """Structural predicate over stored policies; ``None`` fields match anything"""

    policy_id: Optional[str] = None
    tenant_id: Optional[str] = None
    version: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = None
    exclude_status: Optional[str] = None

    def apply(self, query: Query) -> Query:
        if self.policy_id is not None:
            query = query.filter(PolicyRecord.policy_id == self.policy_id)
        if self.tenant_id is not None:
            query = query.filter(PolicyRecord.tenant_id == self.tenant_id)
        if self.version is not None:
            query = query.filter(PolicyRecord.version == self.version)
        if self.location is not None:
            query = query.filter(PolicyRecord.location == self.location)
        if self.status is not None:
            query = query.filter(PolicyRecord.status == self.status)
        if self.exclude_status is not None:
            query = query.filter(PolicyRecord.status != self.exclude_status)
        return query


def to_document(record: PolicyRecord) -> StoredPolicyDocument:
    return StoredPolicyDocument.model_validate(
        {
            "policy": {
                "PolicyId": record.policy_id,
                "version": record.version,
                "tenantId": record.tenant_id,
                "location": record.location,
                "rules": record.rules or {},
                "assignments": record.assignments or {},
                "status": record.status,
            },
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }
    )


class PolicyStore:
    """Store collaborator over one SQLAlchemy session"""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, document: PolicyDocument) -> StoredPolicyDocument:
        """Persist a new policy; raises ConflictError when the PolicyId is taken"""
        fields = document.policy.model_dump(mode="json")
        record = PolicyRecord(**{name: fields[name] for name in UPDATABLE_FIELDS})
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f"Policy {document.policy.policy_id} already exists") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(str(exc)) from exc
        return to_document(record)

    def find_one(self, policy_filter: PolicyFilter) -> Optional[StoredPolicyDocument]:
        try:
            record = policy_filter.apply(self.db.query(PolicyRecord)).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(str(exc)) from exc
        return to_document(record) if record else None

    def find_many(self, policy_filter: PolicyFilter) -> List[StoredPolicyDocument]:
        try:
            records = policy_filter.apply(self.db.query(PolicyRecord)).order_by(PolicyRecord.id).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(str(exc)) from exc
        return [to_document(record) for record in records]

    def find_one_and_update(
        self, policy_filter: PolicyFilter, patch: Dict[str, Any]
    ) -> Optional[StoredPolicyDocument]:
        """
        Apply ``patch`` to the single row matching ``policy_filter``.

        The row is locked for the duration of the call and the change is
        committed before returning, so a concurrent caller whose filter no
        longer matches (e.g. the row was just soft-deleted) gets ``None``.
        Returns the updated document, or ``None`` when nothing matched.
        """
        unknown = set(patch) - set(UPDATABLE_FIELDS)
        if unknown:
            raise StoreError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        try:
            record = policy_filter.apply(self.db.query(PolicyRecord)).with_for_update().first()
            if record is None:
                self.db.rollback()
                return None

            for name, value in patch.items():
                if name == "assignments":
                    # groups and users are independent; only the supplied map is replaced
                    value = {**(record.assignments or {}), **value}
                setattr(record, name, value)
                # JSON columns are not reliably tracked as dirty on reassignment
                if name in _JSON_FIELDS:
                    flag_modified(record, name)

            self.db.commit()
            self.db.refresh(record)
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f"Policy {patch.get('policy_id')} already exists") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(str(exc)) from exc
        return to_document(record)
