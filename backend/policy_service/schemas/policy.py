"""Policy schemas

Wire names keep the JSON field names clients send (``PolicyId``, ``tenantId``);
Python attributes are snake_case. Dump with ``by_alias=True`` for responses.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator


def _required(message: str) -> AfterValidator:
    """Non-empty after trimming, otherwise fails with ``message``"""

    def check(value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError(message)
        return value

    return AfterValidator(check)


class RuleAction(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


def is_valid_policy_id(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) > 0


def is_valid_rule_action(value: Any) -> bool:
    return value in (RuleAction.ALLOW.value, RuleAction.DENY.value)


class PolicyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class Rule(BaseModel):
    """A single action/resource/condition triple.

    ``id`` is the semantic identifier referenced by assignments. It is
    unrelated to the key the rule is stored under in ``Policy.rules``.
    """

    id: Annotated[str, _required("Rule ID is required")]
    action: RuleAction
    resource: Annotated[str, _required("Resource is required")]
    conditions: str = ""

    @field_validator("action", mode="before")
    @classmethod
    def check_action(cls, value: Any) -> Any:
        if not is_valid_rule_action(value):
            raise ValueError("Action must be either ALLOW or DENY")
        return value


class RuleCreate(Rule):
    """Rule as accepted on create: conditions are mandatory"""

    conditions: Annotated[str, _required("Conditions are required")]


class Assignments(BaseModel):
    """Principal-centric bindings: principal name -> ordered rule ids"""

    groups: Dict[str, List[str]] = Field(default_factory=dict)
    users: Dict[str, List[str]] = Field(default_factory=dict)


class AssignmentsPatch(BaseModel):
    """Assignments in an update; a map that is left out keeps its stored value"""

    groups: Optional[Dict[str, List[str]]] = None
    users: Optional[Dict[str, List[str]]] = None


class Policy(BaseModel):
    """A versioned, tenant-scoped bundle of rules and assignments"""

    model_config = ConfigDict(populate_by_name=True)

    policy_id: Annotated[str, _required("PolicyId is required")] = Field(..., alias="PolicyId")
    version: Annotated[str, _required("Version is required")]
    tenant_id: Annotated[str, _required("TenantId is required")] = Field(..., alias="tenantId")
    location: Annotated[str, _required("Location is required")]
    rules: Dict[str, Rule]
    assignments: Assignments
    status: PolicyStatus = PolicyStatus.ACTIVE

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, value: Any) -> Any:
        return PolicyStatus.ACTIVE if value is None else value


class PolicyCreate(Policy):
    rules: Dict[str, RuleCreate]


class PolicyPatch(BaseModel):
    """Sparse policy update; every field is optional"""

    model_config = ConfigDict(populate_by_name=True)

    policy_id: Optional[Annotated[str, _required("PolicyId is required")]] = Field(None, alias="PolicyId")
    version: Optional[Annotated[str, _required("Version is required")]] = None
    tenant_id: Optional[Annotated[str, _required("TenantId is required")]] = Field(None, alias="tenantId")
    location: Optional[Annotated[str, _required("Location is required")]] = None
    rules: Optional[Dict[str, Rule]] = None
    assignments: Optional[AssignmentsPatch] = None
    status: Optional[PolicyStatus] = None


class PolicyDocument(BaseModel):
    """Unit of storage and transfer: exactly one policy"""

    policy: Policy


class PolicyCreateRequest(PolicyDocument):
    policy: PolicyCreate


class PolicyUpdateRequest(BaseModel):
    policy: Optional[PolicyPatch] = None


class StoredPolicyDocument(PolicyDocument):
    """Policy document as read back from the store"""

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RulePrincipals(BaseModel):
    """Groups and users bound to one rule id"""

    groups: List[str] = Field(default_factory=list)
    users: List[str] = Field(default_factory=list)


RuleToPrincipals = Dict[str, RulePrincipals]


class RulesMapping(BaseModel):
    """Payload of the rules-mapping endpoint"""

    model_config = ConfigDict(populate_by_name=True)

    policy_id: str = Field(..., alias="policyId")
    rules_to_users_and_groups: Dict[str, RulePrincipals] = Field(..., alias="rulesToUsersAndGroups")


class PolicyResult(BaseModel):
    """Uniform outcome of every lifecycle operation"""

    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None
    error: Optional[str] = None
    errors: Optional[List[str]] = None
    # not_found / conflict / validation / store_error; not serialized
    error_kind: Optional[str] = Field(None, exclude=True)
