"""Pydantic schemas for request/response validation"""
from policy_service.schemas.policy import (
    Assignments,
    AssignmentsPatch,
    Policy,
    PolicyCreate,
    PolicyCreateRequest,
    PolicyDocument,
    PolicyPatch,
    PolicyResult,
    PolicyStatus,
    PolicyUpdateRequest,
    Rule,
    RuleAction,
    RuleCreate,
    RulePrincipals,
    RulesMapping,
    RuleToPrincipals,
    StoredPolicyDocument,
)

__all__ = [
    "Assignments",
    "AssignmentsPatch",
    "Policy",
    "PolicyCreate",
    "PolicyCreateRequest",
    "PolicyDocument",
    "PolicyPatch",
    "PolicyResult",
    "PolicyStatus",
    "PolicyUpdateRequest",
    "Rule",
    "RuleAction",
    "RuleCreate",
    "RulePrincipals",
    "RulesMapping",
    "RuleToPrincipals",
    "StoredPolicyDocument",
]
