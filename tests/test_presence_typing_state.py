from msgbridge.presence.typing_state import TypingFilter, TypingStateDiffer, state_key


def _differ():
    return TypingStateDiffer(clock=lambda: "2026-01-01T00:00:00Z")


def test_snapshot_sequence_emits_only_transitions():
    differ = _differ()
    emitted = []
    for states in ({"A": False}, {"A": True}, {"A": True}, {"A": False}):
        emitted.append(differ.observe_snapshot(chat_guid="iMessage;-;A", chat_identifier=None, states=states))
    assert [len(batch) for batch in emitted] == [0, 1, 0, 1]
    assert emitted[1][0].is_typing is True
    assert emitted[3][0].is_typing is False


def test_handle_missing_from_snapshot_counts_as_stopped():
    differ = _differ()
    differ.observe_snapshot(chat_guid="g", chat_identifier=None, states={"A": True, "B": True})
    events = differ.observe_snapshot(chat_guid="g", chat_identifier=None, states={"B": True})
    assert [(e.handle, e.is_typing) for e in events] == [("A", False)]
    assert differ.state("g", None) == {"B": True}


def test_direct_updates_are_deduplicated():
    differ = _differ()
    first = differ.observe_update(chat_guid=None, chat_identifier="chat1", handle="A", is_typing=True)
    repeat = differ.observe_update(chat_guid=None, chat_identifier="chat1", handle="A", is_typing=True)
    idle = differ.observe_update(chat_guid=None, chat_identifier="chat1", handle="B", is_typing=False)
    assert len(first) == 1
    assert repeat == []
    assert idle == []


def test_observe_accepts_raw_peer_shapes():
    differ = _differ()
    events = differ.observe({"chat_id": "chat1", "states": {"+1555": True}})
    assert events[0].chat_identifier == "chat1"
    events = differ.observe({"chat_guid": "g", "handle": "+1555", "is_typing": True, "timestamp": "t1"})
    assert events[0].timestamp == "t1"
    assert differ.observe({"states": {"x": True}}) == []
    assert differ.observe({"chat_guid": "g"}) == []


def test_fan_out_respects_filters():
    differ = _differ()
    everything, by_guid, by_identifier, other = [], [], [], []
    differ.register(1, TypingFilter(), everything.append)
    differ.register(2, TypingFilter(chat_guid="iMessage;-;A"), by_guid.append)
    differ.register(3, TypingFilter(chat_identifier="chatA"), by_identifier.append)
    differ.register(4, TypingFilter(raw="chatB"), other.append)

    differ.observe_snapshot(chat_guid="iMessage;-;A", chat_identifier="chatA", states={"A": True})
    differ.observe_snapshot(chat_guid=None, chat_identifier="chatB", states={"B": True})

    assert [e.handle for e in everything] == ["A", "B"]
    assert [e.handle for e in by_guid] == ["A"]
    assert [e.handle for e in by_identifier] == ["A"]
    assert [e.handle for e in other] == ["B"]


def test_unregistered_sink_stops_receiving():
    differ = _differ()
    seen = []
    differ.register(7, TypingFilter(), seen.append)
    assert differ.unregister(7)
    assert not differ.unregister(7)
    differ.observe_snapshot(chat_guid="g", chat_identifier=None, states={"A": True})
    assert seen == []
    assert differ.subscription_ids == []


def test_state_key_precedence():
    assert state_key("g", "i", "h") == "g"
    assert state_key(None, "i", "h") == "id:i"
    assert state_key(None, None, "h") == "handle:h"
    assert state_key(None, None) is None


def test_event_payload():
    differ = _differ()
    event = differ.observe_snapshot(chat_guid="g", chat_identifier="i", states={"A": True})[0]
    assert event.chat_ref == "g"
    assert event.to_payload() == {
        "chat_guid": "g",
        "chat_identifier": "i",
        "handle": "A",
        "is_typing": True,
        "timestamp": "2026-01-01T00:00:00Z",
    }
