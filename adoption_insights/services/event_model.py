"""
Canonical analytics event built from a raw client event
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

from adoption_insights.core.dates import parse_timestamp, to_iso_utc

JsonField = Union[Dict[str, Any], str]

# Fields written to the events table, in insert order
CANONICAL_FIELDS = (
    "user_ref",
    "plugin_id",
    "action",
    "context",
    "subject",
    "attributes",
    "created_at",
    "value",
)


def _serialize(value: Dict[str, Any]) -> str:
    return json.dumps(value, separators=(",", ":"), default=str)


@dataclass(frozen=True)
class TrackedEvent:
    """
    Immutable event record queued for persistence.

    ``context`` and ``attributes`` are dicts when the target store has native
    JSON support and JSON strings otherwise; one record never mixes the two.
    """
    user_ref: Optional[str]
    plugin_id: Optional[str]
    action: Optional[str]
    subject: Optional[str]
    context: JsonField
    attributes: JsonField
    created_at: str
    value: Optional[Any] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_analytics_event(cls, raw: Mapping[str, Any], json_capable: bool = True) -> "TrackedEvent":
        context = dict(raw.get("context") or {})
        attributes = dict(raw.get("attributes") or {})

        created_at = parse_timestamp(context.get("timestamp")) or datetime.now(timezone.utc)

        return cls(
            user_ref=context.get("userName") or context.get("userId"),
            plugin_id=context.get("pluginId"),
            action=raw.get("action"),
            subject=raw.get("subject"),
            value=raw.get("value"),
            context=context if json_capable else _serialize(context),
            attributes=attributes if json_capable else _serialize(attributes),
            created_at=to_iso_utc(created_at),
        )

    def to_canonical_form(self) -> Dict[str, Any]:
        """Persisted field set; the queue id is not part of it"""
        return {name: getattr(self, name) for name in CANONICAL_FIELDS}

    def to_json(self) -> str:
        return json.dumps({"id": self.id, **self.to_canonical_form()}, default=str)


def normalize(raw: Mapping[str, Any], json_capable: bool) -> TrackedEvent:
    return TrackedEvent.from_analytics_event(raw, json_capable)
