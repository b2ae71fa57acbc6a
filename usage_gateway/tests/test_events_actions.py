"""Tests for event listener / action flattening."""

from __future__ import annotations

import httpx

from admin_sdk.models import EventListener
from usage_gateway.core.events_actions import flatten_listeners, normalize_events_actions

LISTENERS = "/api/v1/events-actions/listeners"


def _listener(lid, name, status="on", actions=(), **extra):
    record = {"id": lid, "name": name, "status": status, "actions": list(actions)}
    record.update(extra)
    return record


def _action(aid, name, status="on", **extra):
    record = {"id": aid, "name": name, "status": status}
    record.update(extra)
    return record


class TestFlattenListeners:
    def test_shared_action_listed_once(self):
        shared = _action(7, "webhook", category="webhook")
        listeners = [
            EventListener.model_validate(_listener(1, "a", actions=[shared])),
            EventListener.model_validate(_listener(2, "b", actions=[shared, _action(8, "amazon-sqs")])),
        ]
        result = flatten_listeners(listeners)
        assert [a.id for a in result.actions] == [7, 8]
        assert len(result.listeners) == 2

    def test_first_occurrence_wins(self):
        listeners = [
            EventListener.model_validate(_listener(1, "a", actions=[_action(7, "first", status="on")])),
            EventListener.model_validate(_listener(2, "b", actions=[_action("7", "second", status="off")])),
        ]
        result = flatten_listeners(listeners)
        assert len(result.actions) == 1
        assert result.actions[0].name == "first"
        assert result.actions[0].enabled is True

    def test_enabled_only_when_status_on(self):
        listeners = [
            EventListener.model_validate(_listener(1, "on", status="on")),
            EventListener.model_validate(_listener(2, "off", status="off")),
            EventListener.model_validate(_listener(3, "missing", status=None)),
        ]
        result = flatten_listeners(listeners)
        assert [l.enabled for l in result.listeners] == [True, False, False]

    def test_event_from_category_or_type(self):
        listeners = [
            EventListener.model_validate(_listener(1, "a", category="user-activity")),
            EventListener.model_validate(_listener(2, "b", type="message")),
            EventListener.model_validate(_listener(3, "c")),
        ]
        result = flatten_listeners(listeners)
        assert [l.event for l in result.listeners] == ["user-activity", "message", None]

    def test_null_actions_treated_as_empty(self):
        listener = EventListener.model_validate({"id": 1, "name": "a", "status": "on", "actions": None})
        assert flatten_listeners([listener]).actions == []


class TestNormalizeEventsActions:
    def test_missing_subscribe_key_makes_no_call(self, upstream):
        result = upstream.run(lambda c: normalize_events_actions(c, ""))
        assert result.listeners == [] and result.actions == []
        assert upstream.requests == []

        result = upstream.run(lambda c: normalize_events_actions(c, None))
        assert result.listeners == [] and result.actions == []
        assert upstream.requests == []

    def test_listeners_and_actions(self, upstream):
        upstream.add(LISTENERS, {"listeners": [
            _listener(1, "join-hook", category="presence", actions=[_action(10, "slack", type="webhook")]),
        ]})

        result = upstream.run(lambda c: normalize_events_actions(c, "sub-c-123", limit=25))

        assert result.model_dump() == {
            "listeners": [{"id": 1, "name": "join-hook", "event": "presence", "enabled": True}],
            "actions": [{"id": 10, "name": "slack", "type": "webhook", "enabled": True}],
        }
        req = upstream.calls(LISTENERS)[0]
        assert req.url.params["subscribe_key"] == "sub-c-123"
        assert req.url.params["limit"] == "25"

    def test_not_found_is_empty(self, upstream):
        upstream.add(LISTENERS, {"message": "not configured"}, status=404)
        result = upstream.run(lambda c: normalize_events_actions(c, "sub-c-123"))
        assert result.listeners == [] and result.actions == []

    def test_server_error_is_empty(self, upstream):
        upstream.add(LISTENERS, {"message": "boom"}, status=502)
        result = upstream.run(lambda c: normalize_events_actions(c, "sub-c-123"))
        assert result.listeners == [] and result.actions == []

    def test_timeout_is_empty(self, upstream):
        upstream.add(LISTENERS, raises=httpx.ReadTimeout)
        result = upstream.run(lambda c: normalize_events_actions(c, "sub-c-123"))
        assert result.listeners == [] and result.actions == []
