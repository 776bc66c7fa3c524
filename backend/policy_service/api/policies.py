"""Policy management endpoints"""
import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from policy_service.api.deps import get_policy_service
from policy_service.core.validation import is_valid_policy_id, validate_create_policy, validate_update_policy
from policy_service.schemas.policy import PolicyResult
from policy_service.services.policy_service import PolicyService

router = APIRouter(prefix="/api/policies", tags=["policies"])

_STATUS_BY_KIND = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "store_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

AVAILABLE_ENDPOINTS = [
    "GET /health",
    "POST /api/policies",
    "GET /api/policies/:id",
    "GET /api/policies/tenant/:tenantId",
    "GET /api/policies",
    "PUT /api/policies/:id",
    "DELETE /api/policies/:id",
    "GET /api/policies/:id/rules-mapping",
]


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _respond(result: PolicyResult, success_status: int = status.HTTP_200_OK) -> JSONResponse:
    """Serialize a lifecycle result, picking the status code from its error kind"""
    body = result.model_dump(mode="json", exclude_none=True, exclude={"data"})
    if result.data is not None:
        body["data"] = _dump(result.data)
    if result.success:
        return JSONResponse(status_code=success_status, content=body)
    return JSONResponse(
        status_code=_STATUS_BY_KIND.get(result.error_kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content=body,
    )


def _validation_failed(errors: List[str], message: str = "Validation failed") -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": message, "errors": errors},
    )


def _blank_policy_id() -> JSONResponse:
    return _validation_failed(["PolicyId: PolicyId is required"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_policy(
    payload: Any = Body(None),
    service: PolicyService = Depends(get_policy_service),
):
    """
    Create a new policy

    The body must be a complete policy document; status defaults to ACTIVE.
    """
    validation = validate_create_policy(payload)
    if not validation.success:
        return _validation_failed(validation.errors)

    result = service.create_policy(validation.data)
    if not result.success:
        return _respond(result)

    policy = result.data.policy
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={
            "success": True,
            "policyId": policy.policy_id,
            "data": {"policy": policy.model_dump(by_alias=True, mode="json")},
            "message": f"Policy {policy.policy_id} created successfully",
        },
    )


@router.get("/tenant/{tenant_id}")
def get_policies_by_tenant(tenant_id: str, service: PolicyService = Depends(get_policy_service)):
    """Get all active policies of a tenant"""
    return _respond(service.get_policies_by_tenant(tenant_id))


@router.get("")
def get_all_policies(
    filter: Optional[str] = Query(None, description='JSON object, e.g. {"tenantId": "t1", "status": "DELETED"}'),
    service: PolicyService = Depends(get_policy_service),
):
    """
    List policies with optional filtering

    DELETED policies are excluded unless the filter names a status.
    """
    filters: Dict[str, Any] = {}
    if filter:
        try:
            filters = json.loads(filter)
        except json.JSONDecodeError as exc:
            return _validation_failed([f"filter: {exc.msg}"], message="Invalid filter")
        if not isinstance(filters, dict):
            return _validation_failed(["filter: Filter must be a JSON object"], message="Invalid filter")

    return _respond(service.get_all_policies(filters))


@router.get("/{policy_id}")
def get_policy(policy_id: str, service: PolicyService = Depends(get_policy_service)):
    """Get an active policy by PolicyId"""
    if not is_valid_policy_id(policy_id):
        return _blank_policy_id()
    return _respond(service.get_policy(policy_id))


@router.put("/{policy_id}")
def update_policy(
    policy_id: str,
    payload: Any = Body(None),
    service: PolicyService = Depends(get_policy_service),
):
    """
    Update a policy

    Only the supplied fields change; deleted policies report 404.
    """
    if not is_valid_policy_id(policy_id):
        return _blank_policy_id()
    validation = validate_update_policy(payload if payload is not None else {})
    if not validation.success:
        return _validation_failed(validation.errors)

    return _respond(service.update_policy(policy_id, validation.data))


@router.delete("/{policy_id}")
def delete_policy(policy_id: str, service: PolicyService = Depends(get_policy_service)):
    """Soft delete a policy (status becomes DELETED)"""
    if not is_valid_policy_id(policy_id):
        return _blank_policy_id()
    return _respond(service.delete_policy(policy_id))


@router.get("/{policy_id}/rules-mapping")
def get_rules_mapping(policy_id: str, service: PolicyService = Depends(get_policy_service)):
    """Get the rule id -> groups/users mapping of an active policy"""
    if not is_valid_policy_id(policy_id):
        return _blank_policy_id()
    result = service.get_rules_mapping(policy_id)
    if not result.success and result.error_kind == "not_found":
        result = PolicyResult(
            success=False,
            message="Policy not found or failed to generate mapping",
            error_kind="not_found",
        )
    return _respond(result)
