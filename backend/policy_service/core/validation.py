"""Validation of incoming policy documents.

Both entry points take arbitrary decoded JSON and return a
:class:`ValidationResult`: either a typed document or the complete,
ordered list of ``"<field.path>: <message>"`` errors. Nothing partial is
ever handed back.
"""
from typing import Any, Dict, Generic, Iterable, List, NamedTuple, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from policy_service.schemas.policy import (  # noqa: F401
    PolicyCreateRequest,
    PolicyUpdateRequest,
    is_valid_policy_id,
    is_valid_rule_action,
)

T = TypeVar("T", bound=BaseModel)

# Prefix pydantic puts in front of messages raised from our own validators
_VALUE_ERROR_PREFIX = "Value error, "


class ValidationResult(NamedTuple, Generic[T]):
    data: Optional[T]
    errors: List[str]

    @property
    def success(self) -> bool:
        return self.data is not None


def format_errors(issues: Iterable[Dict[str, Any]]) -> List[str]:
    """Flatten pydantic (or FastAPI request) error entries into field-path messages"""
    messages = []
    for issue in issues:
        path = ".".join(str(part) for part in issue["loc"])
        message = issue["msg"]
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        messages.append(f"{path}: {message}" if path else message)
    return messages or ["Invalid data format"]


def _validate(schema: Type[T], data: Any) -> ValidationResult[T]:
    try:
        return ValidationResult(schema.model_validate(data), [])
    except ValidationError as exc:
        return ValidationResult(None, format_errors(exc.errors()))


def validate_create_policy(data: Any) -> ValidationResult[PolicyCreateRequest]:
    """Validate a full policy document for create"""
    return _validate(PolicyCreateRequest, data)


def validate_update_policy(data: Any) -> ValidationResult[PolicyUpdateRequest]:
    """Validate a sparse policy patch; every field, and ``policy`` itself, is optional"""
    return _validate(PolicyUpdateRequest, data)
