"""Policy lifecycle management

:class:`PolicyService` owns the create / read / update / soft-delete
transitions of policy documents and composes reads with assignment
resolution. Every public method returns a :class:`PolicyResult`; store
failures come back as failed results, and event notifications are submitted
without being awaited so they can never change an operation's outcome.

A policy whose status is DELETED is invisible to every default read and to
update/delete, which report it exactly like a policy that never existed.
"""
from typing import Any, Callable, Dict, Optional

from policy_service.core.errors import NotFoundError, PolicyServiceError, PolicyValidationError
from policy_service.core.resolver import resolve_assignments
from policy_service.middleware.monitoring import record_policy_operation
from policy_service.schemas.policy import (
    PolicyDocument,
    PolicyResult,
    PolicyStatus,
    PolicyUpdateRequest,
    RulesMapping,
)
from policy_service.services.events import EventPublisher
from policy_service.services.store import PolicyFilter, PolicyStore
from policy_service.utils.logger import logger

# Filter keys accepted by get_all_policies -> PolicyFilter attribute
FILTER_FIELDS = {
    "PolicyId": "policy_id",
    "tenantId": "tenant_id",
    "version": "version",
    "location": "location",
    "status": "status",
}

_FAILURE_PREFIXES = {
    "create": "Failed to create policy",
    "read": "Failed to retrieve policy",
    "read_tenant": "Failed to retrieve policies",
    "read_all": "Failed to retrieve policies",
    "update": "Failed to update policy",
    "delete": "Failed to delete policy",
    "resolve": "Failed to generate rules mapping",
}


def build_filter(filters: Optional[Dict[str, Any]]) -> PolicyFilter:
    """
    Translate a caller-supplied filter into a :class:`PolicyFilter`.

    Keys may be given bare (``tenantId``) or prefixed (``policy.tenantId``).
    DELETED policies are excluded unless the filter names a status itself.
    """
    policy_filter = PolicyFilter()
    errors = []

    for key, value in (filters or {}).items():
        name = key[len("policy."):] if key.startswith("policy.") else key
        if name not in FILTER_FIELDS:
            errors.append(f"{key}: Unsupported filter field")
            continue
        if not isinstance(value, str):
            errors.append(f"{key}: Filter value must be a string")
            continue
        if name == "status" and value not in (PolicyStatus.ACTIVE.value, PolicyStatus.DELETED.value):
            errors.append(f"{key}: Status must be either ACTIVE or DELETED")
            continue
        setattr(policy_filter, FILTER_FIELDS[name], value)

    if errors:
        raise PolicyValidationError("Invalid filter", errors)

    if policy_filter.status is None:
        policy_filter.exclude_status = PolicyStatus.DELETED.value
    return policy_filter


class PolicyService:
    """Lifecycle manager over a policy store and an event publisher"""

    def __init__(self, store: PolicyStore, events: EventPublisher):
        self.store = store
        self.events = events

    # ── Create ────────────────────────────────────────────────────────────────

    def create_policy(self, document: PolicyDocument) -> PolicyResult:
        """Persist a new policy (status defaults to ACTIVE)"""
        policy_id = document.policy.policy_id
        try:
            saved = self.store.insert(document)
        except PolicyServiceError as exc:
            return self._failure("create", exc, policy_id)

        self._notify(self.events.publish_policy_created, saved)
        self._success("create", saved)
        return PolicyResult(success=True, data=saved, message="Policy created successfully")

    # ── Read ──────────────────────────────────────────────────────────────────

    def get_policy(self, policy_id: str) -> PolicyResult:
        """Return the policy unless it is absent or soft-deleted"""
        try:
            found = self.store.find_one(
                PolicyFilter(policy_id=policy_id, exclude_status=PolicyStatus.DELETED.value)
            )
        except PolicyServiceError as exc:
            return self._failure("read", exc, policy_id)

        if found is None:
            return self._failure("read", NotFoundError("Policy not found"), policy_id)

        record_policy_operation("read", "success")
        return PolicyResult(success=True, data=found)

    def get_policies_by_tenant(self, tenant_id: str) -> PolicyResult:
        try:
            policies = self.store.find_many(
                PolicyFilter(tenant_id=tenant_id, exclude_status=PolicyStatus.DELETED.value)
            )
        except PolicyServiceError as exc:
            return self._failure("read_tenant", exc, tenant_id=tenant_id)

        record_policy_operation("read_tenant", "success")
        return PolicyResult(success=True, data=policies)

    def get_all_policies(self, filters: Optional[Dict[str, Any]] = None) -> PolicyResult:
        """List policies; an explicit ``status`` filter replaces the DELETED exclusion"""
        try:
            policies = self.store.find_many(build_filter(filters))
        except PolicyServiceError as exc:
            return self._failure("read_all", exc)

        record_policy_operation("read_all", "success")
        return PolicyResult(success=True, data=policies)

    # ── Update ────────────────────────────────────────────────────────────────

    def update_policy(self, policy_id: str, request: PolicyUpdateRequest) -> PolicyResult:
        """Merge the supplied fields into an active policy; untouched fields are kept"""
        patch: Dict[str, Any] = {}
        changes = None
        if request.policy is not None:
            patch = request.policy.model_dump(mode="json", exclude_none=True)
            changes = {"policy": request.policy.model_dump(by_alias=True, mode="json", exclude_none=True)}

        if patch.pop("policy_id", policy_id) != policy_id:
            error = PolicyValidationError(
                "PolicyId cannot be changed", ["policy.PolicyId: PolicyId cannot be changed"]
            )
            return self._failure("update", error, policy_id)

        # A status-only DELETED patch is a soft delete
        if patch == {"status": PolicyStatus.DELETED.value}:
            return self.delete_policy(policy_id)

        try:
            updated = self.store.find_one_and_update(
                PolicyFilter(policy_id=policy_id, exclude_status=PolicyStatus.DELETED.value), patch
            )
        except PolicyServiceError as exc:
            return self._failure("update", exc, policy_id)

        if updated is None:
            return self._failure("update", NotFoundError("Policy not found or has been deleted"), policy_id)

        if updated.policy.status == PolicyStatus.DELETED:
            self._notify(self.events.publish_policy_deleted, policy_id, updated.policy.tenant_id or "unknown")
        else:
            self._notify(self.events.publish_policy_updated, policy_id, updated, changes)
        self._success("update", updated)
        return PolicyResult(success=True, data=updated, message="Policy updated successfully")

    # ── Soft delete ───────────────────────────────────────────────────────────

    def delete_policy(self, policy_id: str) -> PolicyResult:
        """Mark an active policy DELETED; the row itself is kept"""
        try:
            updated = self.store.find_one_and_update(
                PolicyFilter(policy_id=policy_id, exclude_status=PolicyStatus.DELETED.value),
                {"status": PolicyStatus.DELETED.value},
            )
        except PolicyServiceError as exc:
            return self._failure("delete", exc, policy_id)

        if updated is None:
            return self._failure("delete", NotFoundError("Policy not found or already deleted"), policy_id)

        tenant_id = updated.policy.tenant_id or "unknown"
        self._notify(self.events.publish_policy_deleted, policy_id, tenant_id)
        self._success("delete", updated)
        return PolicyResult(success=True, message=f"Policy {policy_id} marked as deleted successfully")

    # ── Assignment resolution ─────────────────────────────────────────────────

    def get_rules_mapping(self, policy_id: str) -> PolicyResult:
        """Rule id -> bound groups/users for an active policy"""
        result = self.get_policy(policy_id)
        if not result.success:
            return result

        mapping = resolve_assignments(result.data.policy)
        record_policy_operation("resolve", "success")
        return PolicyResult(
            success=True,
            data=RulesMapping(policy_id=policy_id, rules_to_users_and_groups=mapping),
        )

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _notify(self, publish: Callable[..., Any], *args: Any) -> None:
        """Hand an event to the publisher; nothing it does may fail the caller"""
        try:
            publish(*args)
        except Exception as exc:
            logger.warning("Policy event could not be submitted", extra={"error": str(exc)})

    def _success(self, operation: str, document: PolicyDocument) -> None:
        record_policy_operation(operation, "success")
        logger.info(
            f"Policy {operation} succeeded: {document.policy.policy_id}",
            extra={
                "policy_id": document.policy.policy_id,
                "tenant_id": document.policy.tenant_id,
                "action": f"{operation}_policy",
            },
        )

    def _failure(
        self,
        operation: str,
        exc: PolicyServiceError,
        policy_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> PolicyResult:
        record_policy_operation(operation, exc.kind)
        extra = {"policy_id": policy_id, "tenant_id": tenant_id, "action": f"{operation}_policy"}

        if isinstance(exc, (NotFoundError, PolicyValidationError)):
            logger.warning(exc.message, extra=extra)
            return PolicyResult(
                success=False,
                message=exc.message,
                errors=getattr(exc, "errors", None),
                error_kind=exc.kind,
            )

        if exc.kind == "conflict":
            logger.warning(exc.message, extra=extra)
        else:
            logger.error(f"{_FAILURE_PREFIXES[operation]}: {exc.message}", extra={**extra, "error": exc.message})
        return PolicyResult(
            success=False,
            error=f"{_FAILURE_PREFIXES[operation]}: {exc.message}",
            error_kind=exc.kind,
        )
