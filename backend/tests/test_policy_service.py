"""Tests for the policy lifecycle manager"""
import pytest
from sqlalchemy.orm import Session

from policy_service.core.errors import StoreError
from policy_service.core.validation import validate_create_policy, validate_update_policy
from policy_service.models.policy import PolicyRecord
from policy_service.schemas.policy import PolicyStatus
from policy_service.services.policy_service import PolicyService, build_filter
from policy_service.services.store import PolicyStore


def create(service: PolicyService, data: dict):
    return service.create_policy(validate_create_policy(data).data)


def update(service: PolicyService, policy_id: str, data: dict):
    return service.update_policy(policy_id, validate_update_policy(data).data)


def dumped(result) -> dict:
    return result.data.policy.model_dump(by_alias=True, mode="json")


# ── Create / read ─────────────────────────────────────────────────────────────

def test_create_then_read_returns_same_document(service: PolicyService, sample_policy_data: dict):
    created = create(service, sample_policy_data)
    assert created.success
    assert created.message == "Policy created successfully"

    read = service.get_policy("policy-1")

    assert read.success
    assert dumped(read) == {**sample_policy_data["policy"], "status": "ACTIVE"}
    assert read.data.created_at is not None
    assert read.data.updated_at is not None


def test_create_preserves_rule_order(service: PolicyService, sample_policy_data: dict):
    rules = sample_policy_data["policy"]["rules"]
    sample_policy_data["policy"]["rules"] = {"zz": rules["r2"], "aa": rules["r1"]}
    create(service, sample_policy_data)

    assert list(service.get_policy("policy-1").data.policy.rules) == ["zz", "aa"]


def test_create_publishes_event(service: PolicyService, publisher, sample_policy_data: dict):
    create(service, sample_policy_data)

    assert [(kind, policy_id) for kind, policy_id, _ in publisher.events] == [("created", "policy-1")]


def test_create_conflict(service: PolicyService, publisher, sample_policy_data: dict):
    create(service, sample_policy_data)

    result = create(service, sample_policy_data)

    assert not result.success
    assert result.error_kind == "conflict"
    assert result.error.startswith("Failed to create policy")
    assert len(publisher.events) == 1


def test_create_conflicts_with_soft_deleted_policy(service: PolicyService, sample_policy_data: dict):
    create(service, sample_policy_data)
    service.delete_policy("policy-1")

    result = create(service, sample_policy_data)

    assert result.error_kind == "conflict"


def test_notification_failure_does_not_fail_operations(db: Session, failing_publisher, sample_policy_data: dict):
    service = PolicyService(PolicyStore(db), failing_publisher)

    assert create(service, sample_policy_data).success
    assert update(service, "policy-1", {"policy": {"version": "2.0"}}).success
    assert service.delete_policy("policy-1").success


def test_get_missing_policy(service: PolicyService):
    result = service.get_policy("nope")

    assert not result.success
    assert result.error_kind == "not_found"
    assert result.message == "Policy not found"


def test_get_policies_by_tenant(service: PolicyService, make_policy_data):
    create(service, make_policy_data("a1", "tenant-a"))
    create(service, make_policy_data("a2", "tenant-a"))
    create(service, make_policy_data("b1", "tenant-b"))

    result = service.get_policies_by_tenant("tenant-a")

    assert result.success
    assert [doc.policy.policy_id for doc in result.data] == ["a1", "a2"]


def test_get_all_policies_with_filters(service: PolicyService, make_policy_data):
    create(service, make_policy_data("a1", "tenant-a"))
    create(service, make_policy_data("b1", "tenant-b"))

    everything = service.get_all_policies()
    only_b = service.get_all_policies({"policy.tenantId": "tenant-b"})

    assert [doc.policy.policy_id for doc in everything.data] == ["a1", "b1"]
    assert [doc.policy.policy_id for doc in only_b.data] == ["b1"]


def test_get_all_policies_rejects_unknown_filter(service: PolicyService):
    result = service.get_all_policies({"owner": "me"})

    assert not result.success
    assert result.error_kind == "validation"
    assert result.errors == ["owner: Unsupported filter field"]


# ── Update ────────────────────────────────────────────────────────────────────

def test_partial_update_changes_only_supplied_fields(
    service: PolicyService, publisher, sample_policy_data: dict
):
    create(service, sample_policy_data)
    before = dumped(service.get_policy("policy-1"))

    result = update(service, "policy-1", {"policy": {"version": "2.0"}})

    assert result.success
    assert result.message == "Policy updated successfully"
    after = dumped(service.get_policy("policy-1"))
    assert after == {**before, "version": "2.0"}
    assert publisher.events[-1] == ("updated", "policy-1", {"policy": {"version": "2.0"}})


def test_update_of_one_assignment_map_keeps_the_other(service: PolicyService, sample_policy_data: dict):
    sample_policy_data["policy"]["assignments"]["users"] = {"alice": ["1"]}
    create(service, sample_policy_data)

    result = update(service, "policy-1", {"policy": {"assignments": {"groups": {"g9": ["2"]}}}})

    assert result.success
    assignments = service.get_policy("policy-1").data.policy.assignments
    assert assignments.groups == {"g9": ["2"]}
    assert assignments.users == {"alice": ["1"]}


def test_update_assignment_users_only(service: PolicyService, sample_policy_data: dict):
    create(service, sample_policy_data)

    update(service, "policy-1", {"policy": {"assignments": {"users": {"bob": ["2"]}}}})

    assignments = service.get_policy("policy-1").data.policy.assignments
    assert assignments.groups == sample_policy_data["policy"]["assignments"]["groups"]
    assert assignments.users == {"bob": ["2"]}


def test_update_replaces_rules_and_assignments(service: PolicyService, sample_policy_data: dict):
    create(service, sample_policy_data)

    update(service, "policy-1", {
        "policy": {
            "rules": {"only": {"id": "7", "action": "DENY", "resource": "everything"}},
            "assignments": {"groups": {}, "users": {"alice": ["7"]}},
        }
    })

    mapping = service.get_rules_mapping("policy-1").data.rules_to_users_and_groups
    assert {rule_id: entry.model_dump() for rule_id, entry in mapping.items()} == {
        "7": {"groups": [], "users": ["alice"]}
    }


def test_update_with_empty_document_keeps_policy(service: PolicyService, sample_policy_data: dict):
    create(service, sample_policy_data)
    before = dumped(service.get_policy("policy-1"))

    result = update(service, "policy-1", {})

    assert result.success
    assert dumped(result) == before


def test_update_missing_policy(service: PolicyService, publisher):
    result = update(service, "nope", {"policy": {"version": "2.0"}})

    assert result.error_kind == "not_found"
    assert result.message == "Policy not found or has been deleted"
    assert publisher.events == []


def test_update_cannot_change_policy_id(service: PolicyService, sample_policy_data: dict):
    create(service, sample_policy_data)

    result = update(service, "policy-1", {"policy": {"PolicyId": "policy-2"}})

    assert result.error_kind == "validation"
    assert result.errors == ["policy.PolicyId: PolicyId cannot be changed"]
    assert service.get_policy("policy-1").success


def test_update_repeating_policy_id_is_allowed(service: PolicyService, sample_policy_data: dict):
    create(service, sample_policy_data)

    result = update(service, "policy-1", {"policy": {"PolicyId": "policy-1", "location": "eu-west-1"}})

    assert result.success
    assert result.data.policy.location == "eu-west-1"


# ── Soft delete ───────────────────────────────────────────────────────────────

def test_soft_delete_hides_policy_everywhere(service: PolicyService, publisher, sample_policy_data: dict):
    create(service, sample_policy_data)

    result = service.delete_policy("policy-1")

    assert result.success
    assert result.message == "Policy policy-1 marked as deleted successfully"
    assert publisher.events[-1] == ("deleted", "policy-1", "tenant-a")

    assert service.get_policy("policy-1").error_kind == "not_found"
    assert service.get_policies_by_tenant("tenant-a").data == []
    assert service.get_all_policies().data == []
    assert service.get_rules_mapping("policy-1").error_kind == "not_found"


def test_soft_deleted_policy_is_terminal(service: PolicyService, sample_policy_data: dict):
    create(service, sample_policy_data)
    service.delete_policy("policy-1")

    updated = update(service, "policy-1", {"policy": {"version": "2.0"}})
    deleted_again = service.delete_policy("policy-1")

    assert updated.error_kind == "not_found"
    assert deleted_again.error_kind == "not_found"
    assert deleted_again.message == "Policy not found or already deleted"


def test_soft_delete_keeps_the_row(service: PolicyService, db: Session, sample_policy_data: dict):
    create(service, sample_policy_data)
    service.delete_policy("policy-1")

    record = db.query(PolicyRecord).filter(PolicyRecord.policy_id == "policy-1").one()
    assert record.status == PolicyStatus.DELETED.value
    assert record.version == "1.0"


def test_explicit_status_filter_returns_deleted(service: PolicyService, make_policy_data):
    create(service, make_policy_data("keep"))
    create(service, make_policy_data("gone"))
    service.delete_policy("gone")

    deleted = service.get_all_policies({"status": "DELETED"})
    active = service.get_all_policies({"status": "ACTIVE"})

    assert [doc.policy.policy_id for doc in deleted.data] == ["gone"]
    assert deleted.data[0].policy.status == PolicyStatus.DELETED
    assert [doc.policy.policy_id for doc in active.data] == ["keep"]


def test_status_only_deleted_update_is_a_soft_delete(
    service: PolicyService, publisher, sample_policy_data: dict
):
    create(service, sample_policy_data)

    result = update(service, "policy-1", {"policy": {"status": "DELETED"}})

    assert result.success
    assert result.message == "Policy policy-1 marked as deleted successfully"
    assert publisher.events[-1] == ("deleted", "policy-1", "tenant-a")
    assert service.get_policy("policy-1").error_kind == "not_found"


def test_update_that_also_deletes_publishes_deleted(
    service: PolicyService, publisher, sample_policy_data: dict
):
    create(service, sample_policy_data)

    result = update(service, "policy-1", {"policy": {"status": "DELETED", "version": "9"}})

    assert result.success
    assert result.data.policy.status == PolicyStatus.DELETED
    assert [kind for kind, _, _ in publisher.events] == ["created", "deleted"]


def test_delete_missing_policy(service: PolicyService, publisher):
    result = service.delete_policy("nope")

    assert result.error_kind == "not_found"
    assert publisher.events == []


# ── Resolution ────────────────────────────────────────────────────────────────

def test_rules_mapping(service: PolicyService, sample_policy_data: dict):
    create(service, sample_policy_data)

    result = service.get_rules_mapping("policy-1")

    assert result.success
    assert result.data.policy_id == "policy-1"
    assert result.data.model_dump(by_alias=True)["rulesToUsersAndGroups"] == {
        "1": {"groups": ["g1", "g2"], "users": []},
        "2": {"groups": ["g1"], "users": []},
    }


def test_rules_mapping_missing_policy(service: PolicyService):
    result = service.get_rules_mapping("nope")

    assert not result.success
    assert result.error_kind == "not_found"


# ── Store failures ────────────────────────────────────────────────────────────

def test_store_failure_becomes_result(service: PolicyService, monkeypatch: pytest.MonkeyPatch):
    def broken(*args, **kwargs):
        raise StoreError("connection reset")

    monkeypatch.setattr(service.store, "find_one", broken)

    result = service.get_policy("policy-1")

    assert not result.success
    assert result.error_kind == "store_error"
    assert result.error == "Failed to retrieve policy: connection reset"


def test_store_failure_on_update_is_not_applied(
    service: PolicyService, publisher, sample_policy_data: dict, monkeypatch: pytest.MonkeyPatch
):
    create(service, sample_policy_data)

    def broken(*args, **kwargs):
        raise StoreError("write timeout")

    monkeypatch.setattr(service.store, "find_one_and_update", broken)
    result = update(service, "policy-1", {"policy": {"version": "2.0"}})
    monkeypatch.undo()

    assert result.error_kind == "store_error"
    assert service.get_policy("policy-1").data.policy.version == "1.0"
    assert [kind for kind, _, _ in publisher.events] == ["created"]


# ── Filters ───────────────────────────────────────────────────────────────────

def test_build_filter_defaults_to_excluding_deleted():
    policy_filter = build_filter({})

    assert policy_filter.exclude_status == "DELETED"
    assert policy_filter.status is None


def test_build_filter_status_overrides_exclusion():
    policy_filter = build_filter({"policy.status": "DELETED", "tenantId": "t"})

    assert policy_filter.status == "DELETED"
    assert policy_filter.exclude_status is None
    assert policy_filter.tenant_id == "t"
