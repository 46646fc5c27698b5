"""
Event schemas
"""

from typing import Any, Dict, Optional, Union
from pydantic import ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from adoption_insights.core.exceptions import ValidationError
from adoption_insights.schemas.base import BaseSchema, flatten_errors

Scalar = Union[StrictStr, StrictInt, StrictFloat, StrictBool, None]
ScalarMap = Dict[str, Scalar]


class AnalyticsContext(BaseSchema):
    """Context block sent by the front-end analytics API"""
    model_config = ConfigDict(extra="allow")

    routeRef: Optional[str] = None
    pluginId: Optional[str] = None
    extension: Optional[str] = None
    userName: Optional[str] = None
    userId: Optional[str] = None
    timestamp: Optional[str] = None


class AnalyticsEventIn(BaseSchema):
    """Raw analytics event as posted by clients"""
    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "action": "navigate",
                "subject": "/catalog/default/component/example",
                "attributes": {"namespace": "default", "kind": "component", "name": "example"},
                "context": {
                    "routeRef": "catalog:entity",
                    "pluginId": "catalog",
                    "extension": "App",
                    "userName": "user:default/guest",
                    "userId": "edf9b585cd547bd4d13e21375202ef43",
                    "timestamp": "2025-03-02T16:25:32.819Z"
                }
            }
        },
    )

    action: Optional[str] = None
    subject: Optional[str] = None
    value: Optional[Any] = None
    attributes: Optional[Dict[str, Any]] = None
    context: Optional[AnalyticsContext] = None


_REQUIRED_MESSAGES = {
    "user_ref": "User reference is required",
    "plugin_id": "Plugin ID is required",
    "action": "Action is required",
}


class EventSchema(BaseSchema):
    """Admission check applied to a normalized event"""
    user_ref: Optional[str] = Field(default=None, validate_default=True)
    plugin_id: Optional[str] = Field(default=None, validate_default=True)
    action: Optional[str] = Field(default=None, validate_default=True)
    subject: Optional[str] = None
    value: Optional[Union[StrictInt, StrictFloat]] = None
    context: Union[ScalarMap, StrictStr] = Field(default_factory=dict)
    attributes: Union[ScalarMap, StrictStr] = Field(default_factory=dict)
    created_at: Optional[str] = None

    @field_validator("user_ref", "plugin_id", "action")
    @classmethod
    def require_non_empty(cls, v: Optional[str], info) -> str:
        if v is None or not v.strip():
            raise PydanticCustomError("required", _REQUIRED_MESSAGES[info.field_name])
        return v


def validate_event(event) -> EventSchema:
    """
    Validate a normalized event, raising ValidationError with field messages
    """
    payload = event.to_canonical_form() if hasattr(event, "to_canonical_form") else dict(event)
    try:
        return EventSchema.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError("Invalid event data", flatten_errors(e)) from e
