"""
Base Pydantic schemas
"""

from typing import Any, Dict, List
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError


class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
    )


def flatten_errors(exc: PydanticValidationError) -> Dict[str, List[str]]:
    """
    Collapse pydantic errors into ``{field: [message, ...]}``
    """
    field_errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "__root__"
        messages = field_errors.setdefault(field, [])
        message = _clean_message(error)
        if message not in messages:
            messages.append(message)
    return field_errors


def _clean_message(error: Dict[str, Any]) -> str:
    msg = error["msg"]
    prefix = "Value error, "
    if msg.startswith(prefix):
        return msg[len(prefix):]
    return msg
