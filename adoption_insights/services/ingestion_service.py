"""
Admission of raw analytics events into the batch queue
"""

import logging
from typing import Any, Iterable, List, Mapping

from adoption_insights.schemas.event import validate_event
from adoption_insights.services.batch_processor import EventBatchProcessor
from adoption_insights.services.event_model import TrackedEvent, normalize

logger = logging.getLogger(__name__)


def has_identity(raw: Mapping[str, Any]) -> bool:
    """Events from anonymous sessions carry neither userId nor userName"""
    context = raw.get("context") or {}
    return bool(context.get("userId") or context.get("userName"))


class IngestionService:
    """Filters, normalizes and validates raw events before queueing them"""

    def __init__(self, processor: EventBatchProcessor, json_capable: bool):
        self.processor = processor
        self.json_capable = json_capable

    def track_events(self, raw_events: Iterable[Mapping[str, Any]]) -> List[TrackedEvent]:
        """
        Queue every identified event of a request.

        Anonymous events are dropped without error. The whole request is
        validated before anything is queued, so one invalid event rejects it.
        """
        raw_events = list(raw_events)
        admitted = [raw for raw in raw_events if has_identity(raw)]
        if len(admitted) < len(raw_events):
            logger.debug(f"Dropped {len(raw_events) - len(admitted)} anonymous events")

        events = [normalize(raw, self.json_capable) for raw in admitted]
        for event in events:
            validate_event(event)

        for event in events:
            self.processor.add_event(event)
        return events
