"""Assignment resolution: invert principal -> rule ids into rule id -> principals"""
from typing import Dict

from policy_service.schemas.policy import Policy, RulePrincipals, RuleToPrincipals


def resolve_assignments(policy: Policy) -> RuleToPrincipals:
    """
    Build the rule-centric view of a policy's assignments.

    Every ``Rule.id`` declared in ``policy.rules`` gets an entry, even when
    nothing is bound to it. Output keys are rule ids, never the storage keys
    of ``policy.rules``; when two storage keys carry the same id the later
    one replaces the earlier entry.

    Assignment references to ids that are not declared are dropped. Principal
    lists follow assignment order and are not de-duplicated.

    The policy is only read; the returned mapping shares nothing with it.
    """
    mapping: Dict[str, RulePrincipals] = {}

    for rule in policy.rules.values():
        mapping[rule.id] = RulePrincipals()

    for group_name, rule_ids in policy.assignments.groups.items():
        for rule_id in rule_ids:
            entry = mapping.get(rule_id)
            if entry is not None:
                entry.groups.append(group_name)

    for user_name, rule_ids in policy.assignments.users.items():
        for rule_id in rule_ids:
            entry = mapping.get(rule_id)
            if entry is not None:
                entry.users.append(user_name)

    return mapping


def count_principals(policy: Policy) -> Dict[str, int]:
    """Rule / group / user counts carried on policy events"""
    return {
        "ruleCount": len(policy.rules),
        "groupCount": len(policy.assignments.groups),
        "userCount": len(policy.assignments.users),
    }
