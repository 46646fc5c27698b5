"""
Tests for event admission into the batch queue
"""

import pytest

from adoption_insights.core.exceptions import ValidationError
from adoption_insights.services.ingestion_service import IngestionService, has_identity


@pytest.mark.unit
class TestIngestionService:

    def test_identified_events_are_queued(self, processor, raw_event):
        service = IngestionService(processor, json_capable=False)

        events = service.track_events([raw_event(), raw_event(action="search")])

        assert len(events) == 2
        assert processor.queue == events

    def test_anonymous_events_are_dropped(self, processor, raw_event):
        service = IngestionService(processor, json_capable=False)

        events = service.track_events([
            raw_event(user_name=None, user_id=None),
            raw_event(user_name=None, user_id="abc123"),
        ])

        assert [event.user_ref for event in events] == ["abc123"]
        assert len(processor.queue) == 1

    def test_invalid_event_rejects_whole_request(self, processor, raw_event):
        service = IngestionService(processor, json_capable=True)

        with pytest.raises(ValidationError) as exc_info:
            service.track_events([raw_event(), raw_event(action=None)])

        assert exc_info.value.field_errors == {"action": ["Action is required"]}
        assert processor.queue == []

    def test_json_capability_decides_field_shape(self, processor, raw_event):
        events = IngestionService(processor, json_capable=True).track_events([raw_event()])
        assert isinstance(events[0].context, dict)

        events = IngestionService(processor, json_capable=False).track_events([raw_event()])
        assert isinstance(events[0].context, str)

    def test_has_identity(self, raw_event):
        assert has_identity(raw_event())
        assert has_identity(raw_event(user_name=None))
        assert not has_identity(raw_event(user_name=None, user_id=None))
        assert not has_identity({"action": "navigate"})
